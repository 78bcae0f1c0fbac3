"""
LLM-driven topic clustering for Learnspace.

Groups Intermediate Representations (IRs) into named, overlapping topic
clusters using the Gemini fallback chain.

Two execution modes:
1. Bulk: regenerate every cluster from all IRs (cold start or on request)
2. Incremental: place unassigned IRs additively, never removing membership
"""

from .engine import (
    apply_assignments,
    assign_unassigned_irs,
    enforce_membership_cap,
    generate_clusters,
)
from .errors import ClusteringError, NoIRsError
from .parsing import ClusterParseError
from .schema import (
    MAX_CLUSTERS_PER_IR,
    Assignment,
    ClusteringMode,
    ClusterResult,
    ExistingClusterSummary,
    IncrementalResult,
)

__all__ = [
    'MAX_CLUSTERS_PER_IR',
    'Assignment',
    'ClusterParseError',
    'ClusterResult',
    'ClusteringError',
    'ClusteringMode',
    'ExistingClusterSummary',
    'IncrementalResult',
    'NoIRsError',
    'apply_assignments',
    'assign_unassigned_irs',
    'enforce_membership_cap',
    'generate_clusters',
]
