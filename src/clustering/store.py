"""
Firestore-backed cluster store.

Clusters are the only mutable entities. Outside of a full regeneration
(replace_all_clusters) membership only grows, except when an IR is
deleted together with its bookmark.

Environment Variables:
    GCP_PROJECT: Google Cloud project ID
    CLUSTERS_COLLECTION: Firestore collection name (default: clusters)
"""

import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Tuple

from google.cloud import firestore

from src.ir.store import get_firestore_client

from .schema import ClusterResult, utc_now_iso

logger = logging.getLogger(__name__)

CLUSTERS_COLLECTION = os.environ.get("CLUSTERS_COLLECTION", "clusters")

# Firestore rejects batches with more than 500 writes
FIRESTORE_BATCH_LIMIT = 500


class ClusterStore:
    """Read/write access to the persisted cluster set."""

    def __init__(self, db: Optional[firestore.Client] = None, collection_name: Optional[str] = None):
        """
        Initialize cluster store.

        Args:
            db: Firestore client (shared lazy client if None)
            collection_name: Collection name (CLUSTERS_COLLECTION if None)
        """
        self.db = db or get_firestore_client()
        self.collection_name = collection_name or CLUSTERS_COLLECTION

    @property
    def collection(self):
        return self.db.collection(self.collection_name)

    def get_all_clusters(self) -> List[ClusterResult]:
        """Load every stored cluster, including empty ones."""
        clusters = [
            ClusterResult.from_dict(doc.to_dict(), doc.id)
            for doc in self.collection.stream()
        ]
        logger.info(f"Loaded {len(clusters)} clusters from {self.collection_name}")
        return clusters

    def get_cluster(self, cluster_id: str) -> Optional[ClusterResult]:
        doc = self.collection.document(cluster_id).get()
        if not doc.exists:
            return None
        return ClusterResult.from_dict(doc.to_dict(), doc.id)

    def insert_cluster(self, cluster: ClusterResult) -> None:
        self.collection.document(cluster.id).set(cluster.to_dict())
        logger.info(f"Inserted cluster {cluster.id} '{cluster.name}' ({cluster.member_count} members)")

    def _write_batched(self, writes: Iterable[Tuple[str, Any, Optional[Dict[str, Any]]]]) -> int:
        """
        Apply (op, doc_ref, data) writes, committing every FIRESTORE_BATCH_LIMIT operations.

        Returns:
            Number of batches committed
        """
        batch = self.db.batch()
        write_count = 0
        commits = 0

        for op, doc_ref, data in writes:
            if op == "delete":
                batch.delete(doc_ref)
            elif op == "set":
                batch.set(doc_ref, data)
            else:
                batch.update(doc_ref, data)
            write_count += 1

            if write_count == FIRESTORE_BATCH_LIMIT:
                batch.commit()
                commits += 1
                logger.info(f"Committed batch {commits} ({FIRESTORE_BATCH_LIMIT} writes)")
                batch = self.db.batch()
                write_count = 0

        if write_count:
            batch.commit()
            commits += 1

        return commits

    def replace_all_clusters(self, clusters: List[ClusterResult]) -> int:
        """
        Replace the whole cluster set.

        Deletes come first, then inserts, committed in batches of
        FIRESTORE_BATCH_LIMIT writes. Up to that many writes in total the
        replacement is atomic. Larger sets span several commits, so a
        concurrent reader may briefly see a partial set, and a failed
        commit leaves the earlier batches applied.

        Args:
            clusters: New cluster set

        Returns:
            Number of clusters deleted
        """
        old_refs = [doc.reference for doc in self.collection.stream()]

        writes = [("delete", ref, None) for ref in old_refs]
        writes += [
            ("set", self.collection.document(cluster.id), cluster.to_dict())
            for cluster in clusters
        ]

        commits = self._write_batched(writes)
        logger.info(
            f"Replaced cluster set: deleted {len(old_refs)}, inserted {len(clusters)} "
            f"({commits} batches)"
        )
        return len(old_refs)

    def apply_incremental(self, updated: List[ClusterResult], new_clusters: List[ClusterResult]) -> None:
        """
        Persist an incremental refresh in one write batch.

        Membership updates and inserts commit together unless they exceed
        FIRESTORE_BATCH_LIMIT writes.

        Args:
            updated: Existing clusters with merged membership
            new_clusters: Clusters created for uncovered IRs
        """
        now = utc_now_iso()
        writes = [
            ("update", self.collection.document(cluster.id), {
                "ir_ids": cluster.ir_ids,
                "member_count": cluster.member_count,
                "updated_at": now,
            })
            for cluster in updated
        ]
        writes += [
            ("set", self.collection.document(cluster.id), cluster.to_dict())
            for cluster in new_clusters
        ]

        if writes:
            self._write_batched(writes)
        logger.info(f"Updated {len(updated)} clusters, inserted {len(new_clusters)}")

    def add_irs_to_cluster(self, cluster_id: str, ir_ids: List[str]) -> bool:
        """
        Merge IR ids into a cluster's membership.

        Existing members are kept; new ids are appended without duplicates
        and member_count is recomputed.

        Returns:
            False if the cluster does not exist (nothing written)
        """
        cluster = self.get_cluster(cluster_id)
        if cluster is None:
            logger.warning(f"Cannot add IRs to unknown cluster {cluster_id}")
            return False

        cluster.set_members(cluster.ir_ids + list(ir_ids))
        self.collection.document(cluster_id).update({
            "ir_ids": cluster.ir_ids,
            "member_count": cluster.member_count,
            "updated_at": utc_now_iso(),
        })
        logger.info(f"Cluster {cluster_id} now has {cluster.member_count} members")
        return True

    def remove_ir_from_clusters(self, ir_id: str) -> int:
        """
        Remove an IR from every cluster containing it.

        Clusters emptied by the removal are deleted.

        Returns:
            Number of clusters the IR was removed from
        """
        touched = 0
        for cluster in self.get_all_clusters():
            if ir_id not in cluster.ir_ids:
                continue
            touched += 1
            cluster.set_members([i for i in cluster.ir_ids if i != ir_id])
            if cluster.is_empty:
                self.collection.document(cluster.id).delete()
                logger.info(f"Deleted cluster {cluster.id}: last member removed")
                continue
            self.collection.document(cluster.id).update({
                "ir_ids": cluster.ir_ids,
                "member_count": cluster.member_count,
                "updated_at": utc_now_iso(),
            })

        logger.info(f"Removed IR {ir_id} from {touched} clusters")
        return touched

    def delete_cluster(self, cluster_id: str) -> bool:
        """
        Delete a cluster.

        Returns:
            True if the cluster existed
        """
        doc_ref = self.collection.document(cluster_id)
        if not doc_ref.get().exists:
            return False
        doc_ref.delete()
        logger.info(f"Deleted cluster {cluster_id}")
        return True

    def delete_empty_clusters(self) -> int:
        """Delete clusters with no members; returns how many were deleted."""
        deleted = 0
        for cluster in self.get_all_clusters():
            if cluster.is_empty:
                self.collection.document(cluster.id).delete()
                deleted += 1

        if deleted:
            logger.info(f"Deleted {deleted} empty clusters")
        return deleted

    def list_visible_clusters(self) -> List[ClusterResult]:
        """
        Clusters safe to show to a user.

        Purges empty clusters first, then filters again on the loaded set.
        """
        self.delete_empty_clusters()
        return [
            c for c in self.get_all_clusters()
            if c.member_count > 0 and c.ir_ids
        ]
