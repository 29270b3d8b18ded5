"""
Read-only diagnostics over configured storage providers.
"""

from .service import (
    ComparisonReport,
    DiagnosticsService,
    ObjectCheck,
    compare_listings,
    matches_pattern,
    similar_paths,
)

__all__ = [
    "ComparisonReport",
    "DiagnosticsService",
    "ObjectCheck",
    "compare_listings",
    "matches_pattern",
    "similar_paths",
]
