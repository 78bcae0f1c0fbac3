"""
Exception hierarchy for clustering.

ClusterParseError (in parsing.py) also derives from ClusteringError.
"""


class ClusteringError(Exception):
    """Base class for clustering failures."""

    pass


class NoIRsError(ClusteringError):
    """Clustering was requested with no IRs."""

    def __init__(self, message: str = "No IRs found. Add some bookmarks first!"):
        super().__init__(message)
