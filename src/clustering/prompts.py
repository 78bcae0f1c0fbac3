"""
Prompt construction for LLM-driven clustering.

Two prompts:
- bulk: cluster every IR from scratch (JSON array response)
- incremental: place unassigned IRs into existing clusters and/or new
  clusters (JSON object response)
"""

from typing import List

from src.ir.schema import IntermediateRepresentation

from .schema import MAX_CLUSTERS_PER_IR, ExistingClusterSummary

# Member ids listed per existing cluster in the incremental prompt
MAX_MEMBER_IDS_IN_PROMPT = 50


def format_ir(ir: IntermediateRepresentation, index: int) -> str:
    """Render one IR as a prompt block."""
    return "\n".join([
        f"IR {index}:",
        f"- ID: {ir.id}",
        f"- Title: {ir.source_title or 'Untitled'}",
        f"- Summary: {ir.summary}",
        f"- Topics: {', '.join(ir.key_topics)}",
        f"- Key Concepts: {', '.join(ir.concept_names)}",
        f"- Difficulty: {ir.difficulty}",
        f"- Type: {ir.content_type}",
    ])


def format_irs(irs: List[IntermediateRepresentation]) -> str:
    return "\n\n".join(format_ir(ir, idx + 1) for idx, ir in enumerate(irs))


def format_existing_cluster(cluster: ExistingClusterSummary) -> str:
    """Render one existing cluster as a prompt block."""
    member_ids = cluster.ir_ids[:MAX_MEMBER_IDS_IN_PROMPT]
    more = len(cluster.ir_ids) - len(member_ids)
    members = ", ".join(member_ids) + (f" (+{more} more)" if more > 0 else "")
    return "\n".join([
        f"- Cluster ID: {cluster.id}",
        f"  Name: {cluster.name}",
        f"  Description: {cluster.description or 'n/a'}",
        f"  Members ({len(cluster.ir_ids)}): {members}",
    ])


def build_bulk_prompt(irs: List[IntermediateRepresentation]) -> str:
    """
    Build the bulk clustering prompt.

    Args:
        irs: Every known IR (two or more)

    Returns:
        Prompt requesting a JSON array of clusters
    """
    return f"""You are a learning content clustering expert. Your goal is to create clusters that represent the most key or important elements/themes across the content. An IR (article) can belong to multiple clusters when it meaningfully touches multiple important themes.

{format_irs(irs)}

Your task:
1. Identify the most key or important elements, themes, or learning topics across these IRs
2. Create clusters around those key elements (each cluster = one important theme/element)
3. Assign each IR to every cluster whose theme it meaningfully contributes to
4. An important, multi-topic article can appear in several clusters (e.g. up to 5); a narrow article might be in just 1

Return your response as a JSON array of clusters with this exact structure:
```json
[
  {{
    "name": "Cluster name (concise, descriptive of the key element/theme)",
    "description": "Brief description of what this cluster covers",
    "irIds": ["ir-id-1", "ir-id-2"],
    "aggregatedTopics": ["topic1", "topic2", "topic3"],
    "avgDifficulty": "beginner|intermediate|advanced"
  }}
]
```

Rules:
- Every IR must appear in at least one cluster (no orphan IRs)
- An IR may appear in multiple clusters when it touches multiple key themes (appropriate for multi-topic or important content)
- Hard limit: no IR may appear in more than {MAX_CLUSTERS_PER_IR} clusters
- Clusters are built from key/important elements; assign IRs to every cluster whose theme they meaningfully touch
- Cluster names should be clear and actionable (e.g., "React Fundamentals", "Python Data Science")
- aggregatedTopics should be the union of key topics from member IRs in that cluster
- avgDifficulty should be the most common difficulty level among members
- Create as many clusters as needed to cover key elements (no artificial cap on total number of clusters)
- Use the exact IR IDs given above

Return ONLY the JSON array, no additional text."""


def build_incremental_prompt(
    existing: List[ExistingClusterSummary],
    unassigned: List[IntermediateRepresentation],
) -> str:
    """
    Build the incremental assignment prompt.

    Args:
        existing: Persisted clusters
        unassigned: IRs that belong to no cluster yet

    Returns:
        Prompt requesting {"assignments": [...], "newClusters": [...]}
    """
    clusters_block = "\n".join(format_existing_cluster(c) for c in existing)

    return f"""You are a learning content clustering expert. A user already has topic clusters built from their bookmarks. New bookmarks (IRs) have arrived that are not in any cluster yet. Integrate them WITHOUT changing existing membership.

EXISTING CLUSTERS:
{clusters_block}

NEW UNASSIGNED IRs:
{format_irs(unassigned)}

Your task, for EACH unassigned IR:
(a) list the existing cluster IDs it should be ADDED to (only add; never remove anything), and/or
(b) if it fits no existing theme, put it in a brand-new cluster. Several unassigned IRs that share a new theme should share one new cluster.
An IR may be added to existing clusters AND be part of a new cluster.

Return your response as a JSON object with this exact structure:
```json
{{
  "assignments": [
    {{"irId": "unassigned-ir-id", "addToClusterIds": ["existing-cluster-id"]}}
  ],
  "newClusters": [
    {{
      "name": "Cluster name (concise, descriptive of the theme)",
      "description": "Brief description of what this cluster covers",
      "irIds": ["unassigned-ir-id"],
      "aggregatedTopics": ["topic1", "topic2"],
      "avgDifficulty": "beginner|intermediate|advanced"
    }}
  ]
}}
```

Rules:
- Every unassigned IR must appear at least once (in an assignment or in a new cluster)
- Only use cluster IDs from EXISTING CLUSTERS in addToClusterIds
- Only use IR IDs from NEW UNASSIGNED IRs
- Hard limit: no IR may end up in more than {MAX_CLUSTERS_PER_IR} clusters in total
- Use empty arrays when there is nothing to report

Return ONLY the JSON object, no additional text."""
