"""
Schema definitions for topic clusters.

Clusters are mutable, named groups of IRs. Membership is many-to-many
and, outside of a full regeneration, only ever grows.

Firestore collection: clusters
  {
    "name": str,
    "description": str,
    "ir_ids": list[str],            # may arrive as a JSON string
    "aggregated_topics": list[str], # may arrive as a JSON string
    "member_count": int,            # always len(ir_ids)
    "avg_difficulty": str,
    "created_at": str,
    "updated_at": str
  }
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from src.ir.schema import DEFAULT_DIFFICULTY, parse_json_field

# Hard cap enforced by the engine, not the oracle
MAX_CLUSTERS_PER_IR = 10


def utc_now_iso() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def new_cluster_id() -> str:
    return str(uuid.uuid4())


class ClusteringMode(str, Enum):
    """How a refresh treats the persisted cluster set."""
    BULK = "bulk"  # regenerate everything, replace-all
    INCREMENTAL = "incremental"  # place unassigned IRs, append-only


@dataclass
class ClusterResult:
    """
    One cluster as produced by the engine or loaded from storage.

    Attributes:
        id: Cluster id (uuid4 for engine output)
        name: Short label
        description: One or two sentences
        ir_ids: Member IR ids (no duplicates)
        aggregated_topics: Union of member topics
        member_count: len(ir_ids)
        avg_difficulty: Most common member difficulty
    """

    id: str
    name: str
    description: str = ""
    ir_ids: List[str] = field(default_factory=list)
    aggregated_topics: List[str] = field(default_factory=list)
    member_count: int = 0
    avg_difficulty: str = DEFAULT_DIFFICULTY
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def __post_init__(self):
        """Normalize membership so member_count always matches ir_ids."""
        self.ir_ids = list(dict.fromkeys(self.ir_ids))
        self.member_count = len(self.ir_ids)

    def set_members(self, ir_ids: List[str]) -> None:
        """Replace membership and recompute member_count."""
        self.ir_ids = list(dict.fromkeys(ir_ids))
        self.member_count = len(self.ir_ids)

    @property
    def is_empty(self) -> bool:
        return self.member_count == 0

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to dictionary for Firestore storage.

        Returns:
            Dictionary with all fields except id (used as document id)
        """
        now = utc_now_iso()
        return {
            "name": self.name,
            "description": self.description,
            "ir_ids": list(self.ir_ids),
            "aggregated_topics": list(self.aggregated_topics),
            "member_count": self.member_count,
            "avg_difficulty": self.avg_difficulty,
            "created_at": self.created_at or now,
            "updated_at": now,
        }

    def to_api_dict(self) -> Dict[str, Any]:
        """Camel-case representation returned by the HTTP layer."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "irIds": list(self.ir_ids),
            "aggregatedTopics": list(self.aggregated_topics),
            "memberCount": self.member_count,
            "avgDifficulty": self.avg_difficulty,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], cluster_id: Optional[str] = None) -> "ClusterResult":
        """
        Create ClusterResult from a stored record.

        Args:
            data: Firestore document dict
            cluster_id: Document id (falls back to data["id"])

        Returns:
            ClusterResult instance (member_count recomputed from ir_ids)
        """
        return cls(
            id=cluster_id or data.get("id", ""),
            name=data.get("name", ""),
            description=data.get("description") or "",
            ir_ids=[str(i) for i in parse_json_field(data.get("ir_ids"))],
            aggregated_topics=[str(t) for t in parse_json_field(data.get("aggregated_topics"))],
            avg_difficulty=data.get("avg_difficulty") or DEFAULT_DIFFICULTY,
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@dataclass
class ExistingClusterSummary:
    """What the incremental prompt needs to know about a persisted cluster."""

    id: str
    name: str
    description: str = ""
    ir_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_cluster(cls, cluster: ClusterResult) -> "ExistingClusterSummary":
        return cls(
            id=cluster.id,
            name=cluster.name,
            description=cluster.description,
            ir_ids=list(cluster.ir_ids),
        )


@dataclass
class Assignment:
    """Additive placement of one unassigned IR into existing clusters."""

    ir_id: str
    add_to_cluster_ids: List[str] = field(default_factory=list)

    def to_api_dict(self) -> Dict[str, Any]:
        return {"irId": self.ir_id, "addToClusterIds": list(self.add_to_cluster_ids)}


@dataclass
class IncrementalResult:
    """
    Output of incremental assignment.

    Attributes:
        assignments: Additive updates to existing clusters
        new_clusters: Brand-new clusters to insert
        uncovered_ir_ids: Unassigned IRs the oracle placed nowhere
    """

    assignments: List[Assignment] = field(default_factory=list)
    new_clusters: List[ClusterResult] = field(default_factory=list)
    uncovered_ir_ids: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.assignments and not self.new_clusters
