"""
Firestore-backed IR store.

IRs are written once by the extractor and never mutated; they are
deleted only together with their bookmark.

Environment Variables:
    GCP_PROJECT: Google Cloud project ID
    IR_COLLECTION: Firestore collection name (default: intermediate_representations)
"""

import logging
import os
from typing import List, Optional

from google.cloud import firestore

from .schema import IntermediateRepresentation

logger = logging.getLogger(__name__)

IR_COLLECTION = os.environ.get("IR_COLLECTION", "intermediate_representations")

# Global Firestore client (lazy initialization)
_firestore_client = None


def get_firestore_client() -> firestore.Client:
    """
    Get or create Firestore client instance (cached).

    Returns:
        Initialized Firestore client
    """
    global _firestore_client

    if _firestore_client is None:
        project = os.getenv("GCP_PROJECT")
        logger.info(f"Initializing Firestore client for project: {project}")
        _firestore_client = firestore.Client(project=project)

    return _firestore_client


class IRStore:
    """Durable mapping bookmark -> immutable IR."""

    def __init__(self, db: Optional[firestore.Client] = None, collection_name: Optional[str] = None):
        """
        Initialize IR store.

        Args:
            db: Firestore client (shared lazy client if None)
            collection_name: Collection name (IR_COLLECTION if None)
        """
        self.db = db or get_firestore_client()
        self.collection_name = collection_name or IR_COLLECTION

    @property
    def collection(self):
        return self.db.collection(self.collection_name)

    def insert_ir(self, ir: IntermediateRepresentation) -> None:
        """Persist a freshly extracted IR (document id = IR id)."""
        self.collection.document(ir.id).set(ir.to_dict())
        logger.info(f"Stored IR {ir.id} for bookmark {ir.bookmark_id}")

    def get_ir(self, ir_id: str) -> Optional[IntermediateRepresentation]:
        """Fetch a single IR by id."""
        doc = self.collection.document(ir_id).get()
        if not doc.exists:
            return None
        return IntermediateRepresentation.from_dict(doc.to_dict(), doc.id)

    def get_ir_by_bookmark_id(self, bookmark_id: int) -> Optional[IntermediateRepresentation]:
        """Fetch the IR owned by a bookmark, if any."""
        docs = self.collection.where("bookmark_id", "==", bookmark_id).limit(1).stream()
        for doc in docs:
            return IntermediateRepresentation.from_dict(doc.to_dict(), doc.id)
        return None

    def get_all_irs(self) -> List[IntermediateRepresentation]:
        """
        Load every IR, newest first.

        Returns:
            List of IRs (list fields decoded leniently)
        """
        irs = [
            IntermediateRepresentation.from_dict(doc.to_dict(), doc.id)
            for doc in self.collection.stream()
        ]
        irs.sort(key=lambda ir: ir.created_at or "", reverse=True)
        logger.info(f"Loaded {len(irs)} IRs from {self.collection_name}")
        return irs

    def delete_ir(self, ir_id: str) -> bool:
        """
        Delete an IR.

        Cluster membership cleanup is the caller's job
        (see ClusterRefresher.delete_ir).

        Returns:
            True if the IR existed
        """
        doc_ref = self.collection.document(ir_id)
        if not doc_ref.get().exists:
            return False
        doc_ref.delete()
        logger.info(f"Deleted IR {ir_id}")
        return True
