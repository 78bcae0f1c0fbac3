"""
Cluster refresh orchestration.

Decides between bulk regeneration and incremental assignment, runs the
engine, and persists the outcome. Engine output is fully computed before
the first store write, so a parse failure or model exhaustion leaves the
stored cluster set untouched.

Usage:
    from src.clustering.refresh import ClusterRefresher
    result = ClusterRefresher(IRStore(), ClusterStore()).refresh()
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List

from src.ir.store import IRStore

from .engine import apply_assignments, assign_unassigned_irs, generate_clusters
from .schema import ClusteringMode, ExistingClusterSummary
from .store import ClusterStore

logger = logging.getLogger(__name__)

# One lock per cluster collection name
_refresh_locks: Dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


class RefreshInProgressError(Exception):
    """Another refresh of the same cluster set is running."""

    pass


def _lock_for(collection_name: str) -> threading.Lock:
    with _locks_guard:
        if collection_name not in _refresh_locks:
            _refresh_locks[collection_name] = threading.Lock()
        return _refresh_locks[collection_name]


@dataclass
class RefreshResult:
    """Summary of one refresh run."""

    mode: ClusteringMode
    clusters_generated: int = 0
    assignments_applied: int = 0
    new_clusters_created: int = 0
    uncovered_ir_ids: List[str] = field(default_factory=list)
    empty_clusters_deleted: int = 0
    duration_seconds: float = 0.0
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "clustersGenerated": self.clusters_generated,
            "assignmentsApplied": self.assignments_applied,
            "newClustersCreated": self.new_clusters_created,
            "uncoveredIrIds": list(self.uncovered_ir_ids),
            "emptyClustersDeleted": self.empty_clusters_deleted,
            "durationSeconds": round(self.duration_seconds, 3),
            "dryRun": self.dry_run,
        }


class ClusterRefresher:
    """
    Runs bulk or incremental clustering against the stores.

    At most one refresh per cluster collection runs at a time in this
    process; a concurrent call fails fast with RefreshInProgressError.
    """

    def __init__(self, ir_store: IRStore, cluster_store: ClusterStore, dry_run: bool = False):
        self.ir_store = ir_store
        self.cluster_store = cluster_store
        self.dry_run = dry_run

    def refresh(self, regenerate: bool = False) -> RefreshResult:
        """
        Refresh the cluster set.

        Args:
            regenerate: Force a full bulk regeneration

        Returns:
            RefreshResult

        Raises:
            RefreshInProgressError: A refresh of this cluster set is running
            NoIRsError: No IRs exist
            ClusterParseError / LLMExhaustedError: Engine failure (store unchanged)
        """
        lock = _lock_for(self.cluster_store.collection_name)
        if not lock.acquire(blocking=False):
            raise RefreshInProgressError(
                f"Cluster refresh already running for {self.cluster_store.collection_name}"
            )

        start_time = time.time()
        try:
            irs = self.ir_store.get_all_irs()
            existing = [c for c in self.cluster_store.get_all_clusters() if not c.is_empty]

            if regenerate or not existing:
                result = self._refresh_bulk(irs)
            else:
                result = self._refresh_incremental(irs, existing)
        finally:
            lock.release()

        result.duration_seconds = time.time() - start_time
        result.dry_run = self.dry_run
        logger.info(f"Refresh complete ({result.mode.value}) in {result.duration_seconds:.1f}s: {result.to_dict()}")
        return result

    def _refresh_bulk(self, irs) -> RefreshResult:
        logger.info(f"Bulk mode: regenerating clusters for {len(irs)} IRs")
        clusters = generate_clusters(irs)

        if self.dry_run:
            logger.info(f"[DRY RUN] Would replace cluster set with {len(clusters)} clusters")
        else:
            self.cluster_store.replace_all_clusters(clusters)

        return RefreshResult(mode=ClusteringMode.BULK, clusters_generated=len(clusters))

    def _refresh_incremental(self, irs, existing) -> RefreshResult:
        assigned = {ir_id for cluster in existing for ir_id in cluster.ir_ids}
        unassigned = [ir for ir in irs if ir.id not in assigned]
        logger.info(f"Incremental mode: {len(unassigned)} unassigned IRs, {len(existing)} clusters")

        summaries = [ExistingClusterSummary.from_cluster(c) for c in existing]
        incremental = assign_unassigned_irs(summaries, unassigned)

        result = RefreshResult(
            mode=ClusteringMode.INCREMENTAL,
            assignments_applied=len(incremental.assignments),
            new_clusters_created=len(incremental.new_clusters),
            uncovered_ir_ids=list(incremental.uncovered_ir_ids),
        )

        if self.dry_run:
            logger.info(
                f"[DRY RUN] Would apply {result.assignments_applied} assignments "
                f"and insert {result.new_clusters_created} clusters"
            )
            return result

        updated = apply_assignments(existing, incremental.assignments)
        changed = [
            after for before, after in zip(existing, updated)
            if len(after.ir_ids) > len(before.ir_ids)
        ]
        self.cluster_store.apply_incremental(changed, incremental.new_clusters)

        result.empty_clusters_deleted = self.cluster_store.delete_empty_clusters()
        return result

    def delete_ir(self, ir_id: str) -> bool:
        """
        Delete an IR and cascade to cluster membership.

        Returns:
            True if the IR existed
        """
        if self.dry_run:
            logger.info(f"[DRY RUN] Would delete IR {ir_id} and its memberships")
            return self.ir_store.get_ir(ir_id) is not None

        existed = self.ir_store.delete_ir(ir_id)
        self.cluster_store.remove_ir_from_clusters(ir_id)
        self.cluster_store.delete_empty_clusters()
        return existed
