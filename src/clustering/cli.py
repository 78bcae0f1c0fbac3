"""
Command-line cluster refresh.

Usage:
    python3 -m src.clustering [--regenerate] [--dry-run]

Environment Variables:
    GCP_PROJECT: Google Cloud project ID
    CLUSTERS_COLLECTION: Cluster collection (default: clusters)
    IR_COLLECTION: IR collection (default: intermediate_representations)
"""

import argparse
import logging
import os
import sys

from src.ir.store import IRStore

from .refresh import ClusterRefresher
from .store import ClusterStore

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main(argv=None):
    """Main entry point for a command-line cluster refresh."""
    parser = argparse.ArgumentParser(
        description='Refresh Learnspace topic clusters'
    )
    parser.add_argument(
        '--regenerate',
        action='store_true',
        help='Discard existing clusters and regenerate from all IRs'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Run clustering without writing to Firestore'
    )

    args = parser.parse_args(argv)

    if not os.getenv('GCP_PROJECT'):
        logger.warning("GCP_PROJECT not set, using default project from credentials")

    refresher = ClusterRefresher(IRStore(), ClusterStore(), dry_run=args.dry_run)

    try:
        result = refresher.refresh(regenerate=args.regenerate)
    except Exception as e:
        logger.error(f"Cluster refresh failed: {e}", exc_info=True)
        sys.exit(1)

    logger.info("=" * 60)
    logger.info(f"CLUSTER REFRESH - COMPLETE ({result.mode.value})")
    logger.info("=" * 60)
    logger.info(f"Clusters generated: {result.clusters_generated}")
    logger.info(f"Assignments applied: {result.assignments_applied}")
    logger.info(f"New clusters created: {result.new_clusters_created}")
    logger.info(f"Uncovered IRs: {len(result.uncovered_ir_ids)}")
    logger.info(f"Empty clusters deleted: {result.empty_clusters_deleted}")
    logger.info(f"Total time: {result.duration_seconds:.2f} seconds")
    return result


if __name__ == '__main__':
    main()
