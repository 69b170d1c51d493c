"""WSJF scoring and priority tiers."""

from .components import RawScoreInput, estimate_raw_scores
from .wsjf import PriorityUpdate, ScoredStory, ValueRecommendation, WSJFScorer

__all__ = [
    "RawScoreInput",
    "estimate_raw_scores",
    "ScoredStory",
    "PriorityUpdate",
    "ValueRecommendation",
    "WSJFScorer",
]
