"""
LLM-driven clustering engine.

Two entry points:
- generate_clusters: cluster every IR from scratch (cold start / regenerate)
- assign_unassigned_irs: place new IRs without touching existing membership

Both are pure with respect to storage: they return results and leave
persistence to the caller (see refresh.ClusterRefresher).

Usage:
    from src.clustering.engine import generate_clusters
    clusters = generate_clusters(irs)
"""

import logging
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Set

from src.ir.schema import DEFAULT_DIFFICULTY, IntermediateRepresentation
from src.llm import GenerationConfig, generate_with_fallback, get_fallback_models

from .errors import NoIRsError
from .parsing import ClusterParseError, parse_cluster_array, parse_incremental_object
from .prompts import build_bulk_prompt, build_incremental_prompt
from .schema import (
    MAX_CLUSTERS_PER_IR,
    Assignment,
    ClusterResult,
    ExistingClusterSummary,
    IncrementalResult,
    new_cluster_id,
)

logger = logging.getLogger(__name__)

CLUSTERING_CONFIG = GenerationConfig(temperature=0.3, max_output_tokens=8192)

# Characters of raw oracle output logged when parsing fails
RAW_EXCERPT_CHARS = 500


def _call_oracle(prompt: str, label: str) -> str:
    response = generate_with_fallback(
        prompt,
        CLUSTERING_CONFIG,
        get_fallback_models("clustering"),
        label=label,
    )
    logger.info(f"[{label}] Response from {response.model}: {len(response.text)} chars")
    return response.text


def _excerpt(text: str) -> str:
    if len(text) <= RAW_EXCERPT_CHARS:
        return text
    return text[:RAW_EXCERPT_CHARS] + "..."


def build_cluster(raw: Any) -> ClusterResult:
    """
    Validate one oracle cluster object and apply defaults.

    Args:
        raw: Element of the oracle's cluster list

    Returns:
        ClusterResult with a fresh id and derived member_count

    Raises:
        ClusterParseError: Not an object, empty name, or irIds not a list
    """
    if not isinstance(raw, dict):
        raise ClusterParseError(f"Invalid cluster entry: {raw!r}")

    name = raw.get("name")
    ir_ids = raw.get("irIds")
    if not isinstance(name, str) or not name.strip() or not isinstance(ir_ids, list):
        raise ClusterParseError(f"Invalid cluster structure: {raw!r}")

    topics = raw.get("aggregatedTopics")
    return ClusterResult(
        id=new_cluster_id(),
        name=name.strip(),
        description=raw.get("description") or "",
        ir_ids=[str(i) for i in ir_ids],
        aggregated_topics=[str(t) for t in topics] if isinstance(topics, list) else [],
        avg_difficulty=raw.get("avgDifficulty") or DEFAULT_DIFFICULTY,
    )


def _single_ir_cluster(ir: IntermediateRepresentation) -> ClusterResult:
    topic = ir.key_topics[0] if ir.key_topics else "General"
    return ClusterResult(
        id=new_cluster_id(),
        name=f"Learning: {topic}",
        description=ir.summary,
        ir_ids=[ir.id],
        aggregated_topics=list(ir.key_topics),
        avg_difficulty=ir.difficulty or DEFAULT_DIFFICULTY,
    )


def _drop_unknown_members(clusters: List[ClusterResult], known_ids: Set[str]) -> List[ClusterResult]:
    """Strip IR ids the oracle invented; drop clusters left empty."""
    kept = []
    for cluster in clusters:
        unknown = [i for i in cluster.ir_ids if i not in known_ids]
        if unknown:
            logger.warning(f"Cluster '{cluster.name}' references unknown IRs {unknown}, dropping them")
            cluster.set_members([i for i in cluster.ir_ids if i in known_ids])
        if cluster.is_empty:
            logger.warning(f"Dropping cluster '{cluster.name}': no known members")
            continue
        kept.append(cluster)
    return kept


def find_orphans(irs: Iterable[IntermediateRepresentation], clusters: Iterable[ClusterResult]) -> List[str]:
    """
    Return ids of IRs that belong to no cluster (input order preserved).
    """
    covered = {ir_id for cluster in clusters for ir_id in cluster.ir_ids}
    return [ir.id for ir in irs if ir.id not in covered]


def enforce_membership_cap(
    clusters: List[ClusterResult],
    max_per_ir: int = MAX_CLUSTERS_PER_IR,
    initial_counts: Optional[Dict[str, int]] = None,
) -> List[ClusterResult]:
    """
    Keep at most max_per_ir memberships per IR.

    Memberships are counted in cluster order; the first max_per_ir
    survive and later ones are stripped. Clusters are updated in place.

    Args:
        clusters: Clusters in oracle response order
        max_per_ir: Membership cap
        initial_counts: Memberships each IR already holds elsewhere

    Returns:
        The same clusters, with member_count recomputed
    """
    counts = Counter(initial_counts or {})
    stripped = Counter()

    for cluster in clusters:
        kept = []
        for ir_id in cluster.ir_ids:
            if counts[ir_id] >= max_per_ir:
                stripped[ir_id] += 1
                continue
            counts[ir_id] += 1
            kept.append(ir_id)
        if len(kept) != len(cluster.ir_ids):
            cluster.set_members(kept)

    for ir_id, n in stripped.items():
        logger.warning(f"IR {ir_id} exceeded {max_per_ir} clusters; removed from {n} cluster(s)")

    return clusters


def generate_clusters(irs: List[IntermediateRepresentation]) -> List[ClusterResult]:
    """
    Cluster every IR from scratch.

    Args:
        irs: All known IRs

    Returns:
        Complete replacement cluster set

    Raises:
        NoIRsError: irs is empty
        ClusterParseError: Oracle output is not a valid cluster array
        LLMExhaustedError: Every model in the clustering chain failed
    """
    if not irs:
        raise NoIRsError()

    if len(irs) == 1:
        cluster = _single_ir_cluster(irs[0])
        logger.info(f"Single IR, synthesized cluster '{cluster.name}' without oracle call")
        return [cluster]

    logger.info(f"Bulk clustering {len(irs)} IRs")
    text = _call_oracle(build_bulk_prompt(irs), label="clustering")

    try:
        clusters = [build_cluster(raw) for raw in parse_cluster_array(text)]
    except ClusterParseError:
        logger.error(f"Failed to parse clustering response: {_excerpt(text)}")
        raise

    clusters = _drop_unknown_members(clusters, {ir.id for ir in irs})

    orphans = find_orphans(irs, clusters)
    if orphans:
        logger.warning(f"{len(orphans)} IR(s) not assigned to any cluster: {orphans}")

    clusters = [c for c in enforce_membership_cap(clusters) if not c.is_empty]

    logger.info(f"Generated {len(clusters)} clusters for {len(irs)} IRs")
    return clusters


def _build_assignments(
    raw_assignments: List[Any],
    existing_by_id: Dict[str, ExistingClusterSummary],
    unassigned_ids: Set[str],
    counts: Counter,
) -> List[Assignment]:
    assignments = []

    for raw in raw_assignments:
        if not isinstance(raw, dict):
            logger.warning(f"Skipping malformed assignment: {raw!r}")
            continue

        ir_id = str(raw.get("irId", ""))
        if ir_id not in unassigned_ids:
            logger.warning(f"Dropping assignment for unknown IR {ir_id!r}")
            continue

        target_ids = raw.get("addToClusterIds")
        if not isinstance(target_ids, list):
            logger.warning(f"Dropping assignment for IR {ir_id}: addToClusterIds is not a list")
            continue

        accepted = []
        for cluster_id in dict.fromkeys(str(c) for c in target_ids):
            cluster = existing_by_id.get(cluster_id)
            if cluster is None:
                logger.warning(f"Dropping unknown cluster {cluster_id!r} from assignment of IR {ir_id}")
                continue
            if ir_id in cluster.ir_ids:
                continue
            if counts[ir_id] >= MAX_CLUSTERS_PER_IR:
                logger.warning(f"IR {ir_id} reached {MAX_CLUSTERS_PER_IR} clusters; skipping {cluster_id}")
                continue
            counts[ir_id] += 1
            accepted.append(cluster_id)

        if accepted:
            assignments.append(Assignment(ir_id=ir_id, add_to_cluster_ids=accepted))

    return assignments


def assign_unassigned_irs(
    existing: List[ExistingClusterSummary],
    unassigned: List[IntermediateRepresentation],
) -> IncrementalResult:
    """
    Place IRs that belong to no cluster, without removing any membership.

    Args:
        existing: Persisted clusters
        unassigned: IRs in no cluster

    Returns:
        IncrementalResult (assignments into existing clusters plus new clusters)

    Raises:
        ClusterParseError: Oracle output is not a valid assignment object
        LLMExhaustedError: Every model in the clustering chain failed
    """
    if not unassigned:
        logger.info("No unassigned IRs, nothing to do")
        return IncrementalResult()

    logger.info(f"Assigning {len(unassigned)} IRs against {len(existing)} existing clusters")
    text = _call_oracle(build_incremental_prompt(existing, unassigned), label="clustering-incremental")

    try:
        parsed = parse_incremental_object(text)
        new_clusters = [build_cluster(raw) for raw in parsed["newClusters"]]
    except ClusterParseError:
        logger.error(f"Failed to parse incremental response: {_excerpt(text)}")
        raise

    existing_by_id = {c.id: c for c in existing}
    unassigned_ids = {ir.id for ir in unassigned}

    counts = Counter()
    for cluster in existing:
        for ir_id in cluster.ir_ids:
            counts[ir_id] += 1

    assignments = _build_assignments(parsed["assignments"], existing_by_id, unassigned_ids, counts)

    new_clusters = _drop_unknown_members(new_clusters, unassigned_ids)
    new_clusters = [c for c in enforce_membership_cap(new_clusters, initial_counts=counts) if not c.is_empty]

    covered = {a.ir_id for a in assignments}
    covered.update(ir_id for c in new_clusters for ir_id in c.ir_ids)
    uncovered = [ir.id for ir in unassigned if ir.id not in covered]
    if uncovered:
        logger.warning(f"{len(uncovered)} unassigned IR(s) still uncovered: {uncovered}")

    logger.info(f"Incremental result: {len(assignments)} assignments, {len(new_clusters)} new clusters")
    return IncrementalResult(
        assignments=assignments,
        new_clusters=new_clusters,
        uncovered_ir_ids=uncovered,
    )


def apply_assignments(
    existing: List[ClusterResult],
    assignments: List[Assignment],
) -> List[ClusterResult]:
    """
    Additively merge assignments into existing clusters.

    Returns new ClusterResult objects; inputs are not mutated. For every
    cluster the updated ir_ids are the old ids followed by new ones.

    Args:
        existing: Current clusters
        assignments: Output of assign_unassigned_irs

    Returns:
        Updated clusters, same order as existing
    """
    additions: Dict[str, List[str]] = {}
    for assignment in assignments:
        for cluster_id in assignment.add_to_cluster_ids:
            additions.setdefault(cluster_id, []).append(assignment.ir_id)

    updated = []
    for cluster in existing:
        updated.append(ClusterResult(
            id=cluster.id,
            name=cluster.name,
            description=cluster.description,
            ir_ids=cluster.ir_ids + additions.get(cluster.id, []),
            aggregated_topics=list(cluster.aggregated_topics),
            avg_difficulty=cluster.avg_difficulty,
            created_at=cluster.created_at,
            updated_at=cluster.updated_at,
        ))
    return updated
