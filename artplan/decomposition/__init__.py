"""Splitting oversized stories and enablers into iteration-sized parts."""

from .decomposer import (
    CriteriaMapping,
    DecompositionAnalysis,
    DecompositionResult,
    StoryDecomposer,
    apply_decompositions,
)
from .strategies import distribute_criteria, distribute_points

__all__ = [
    "StoryDecomposer",
    "DecompositionResult",
    "DecompositionAnalysis",
    "CriteriaMapping",
    "apply_decompositions",
    "distribute_points",
    "distribute_criteria",
]
