"""Application Layer.

Configuration and orchestration of the domain services. Batches of
independent runs (percentile trade-off, buffer overlap) are dispatched here.

Exported for simplified imports.
"""

from .config import AnalysisConfig
from .lineament_analysis import (
    LineamentAnalysis,
    enrichment_tradeoff,
    overlap_table,
    run_analysis,
    run_analysis_from_sources,
)

__all__ = [
    "AnalysisConfig",
    "LineamentAnalysis",
    "enrichment_tradeoff",
    "overlap_table",
    "run_analysis",
    "run_analysis_from_sources",
]
