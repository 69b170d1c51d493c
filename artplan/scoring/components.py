"""WSJF sub-score inputs and their estimation from work item text.

Callers normally supply RawScoreInput values from their own prioritization
sessions. When they do not, estimate_raw_scores() derives them from
keyword signals in the title and description.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from artplan.dependencies.detector import contains_phrase
from artplan.errors import ValidationError
from artplan.models.work_items import WorkItem

logger = logging.getLogger(__name__)

MAX_SUB_SCORE = 100.0

# Keyword groups: (base score, increment per matched keyword, keywords)
USER_IMPACT = (30, 15, ("user", "customer", "interface", "ui", "ux", "experience", "usability"))
BUSINESS_IMPACT = (
    25,
    20,
    ("revenue", "cost", "efficiency", "automation", "process", "kpi", "metric"),
)
TECHNICAL_DEBT = (
    20,
    15,
    ("refactor", "cleanup", "optimize", "performance", "maintainability", "debt"),
)
STRATEGIC_VALUE = (
    15,
    25,
    ("strategic", "vision", "roadmap", "competitive", "innovation", "growth"),
)

MARKET_WINDOW = (20, 20, ("deadline", "launch", "release", "market", "competitive", "window"))
CUSTOMER_COMMITMENT = (
    15,
    25,
    ("customer", "commitment", "promised", "demo", "presentation", "milestone"),
)
REGULATORY_DEADLINE = (
    10,
    30,
    ("compliance", "regulatory", "legal", "audit", "security", "gdpr", "hipaa"),
)

SECURITY_RISK = (
    15,
    25,
    ("security", "vulnerability", "encryption", "authentication", "authorization"),
)
OPERATIONAL_RISK = (
    20,
    20,
    ("reliability", "availability", "monitoring", "alerting", "backup", "recovery"),
)
TECHNICAL_RISK = (25, 15, ("stability", "performance", "scalability", "maintenance", "upgrade"))
BUSINESS_RISK = (10, 30, ("risk", "compliance", "continuity", "disaster", "contingency"))

COMPLEXITY_KEYWORDS = ("complex", "integration", "migration", "algorithm", "optimization")
UNCERTAINTY_KEYWORDS = ("research", "investigate", "explore", "unknown", "unclear", "tbd")
DEPENDENCY_KEYWORDS = ("depends", "requires", "needs", "after", "prerequisite")

MAX_COMPLEXITY = 5.0
MAX_UNCERTAINTY = 5.0


@dataclass(frozen=True)
class RawScoreInput:
    """The four WSJF sub-scores for one work item.

    Attributes:
        business_value: 0-100
        time_criticality: 0-100
        risk_reduction: 0-100
        job_size: Effort relative to other items; must be positive to score
        components: Optional breakdown of how each sub-score was composed
    """

    business_value: float
    time_criticality: float
    risk_reduction: float
    job_size: float
    components: dict[str, float] = field(default_factory=dict)

    def __post_init__(self):
        for name in ("business_value", "time_criticality", "risk_reduction"):
            value = getattr(self, name)
            if not 0 <= value <= MAX_SUB_SCORE:
                raise ValidationError(
                    f"{name} must be between 0 and {MAX_SUB_SCORE:g}, got {value}"
                )

    def to_dict(self) -> dict[str, Any]:
        return {
            "business_value": self.business_value,
            "time_criticality": self.time_criticality,
            "risk_reduction": self.risk_reduction,
            "job_size": self.job_size,
            "components": dict(self.components),
        }


def count_keywords(text: str, keywords: tuple[str, ...]) -> int:
    """Number of distinct keywords present in text."""
    return sum(1 for keyword in keywords if contains_phrase(text, keyword))


def _group_score(text: str, group: tuple[int, int, tuple[str, ...]]) -> float:
    base, step, keywords = group
    return min(MAX_SUB_SCORE, base + step * count_keywords(text, keywords))


def business_value_components(item: WorkItem) -> dict[str, float]:
    text = f"{item.title} {item.description}"
    return {
        "user_impact": _group_score(text, USER_IMPACT),
        "business_impact": _group_score(text, BUSINESS_IMPACT),
        "technical_debt": _group_score(text, TECHNICAL_DEBT),
        "strategic_value": _group_score(text, STRATEGIC_VALUE),
        "points_boost": float(min(20, item.estimate * 2)),
    }


def time_criticality_components(item: WorkItem) -> dict[str, float]:
    text = f"{item.title} {item.description}"
    priority_boost = max(0, (5 - item.priority) * 15) if item.priority else 0
    return {
        "market_window": _group_score(text, MARKET_WINDOW),
        "customer_commitment": _group_score(text, CUSTOMER_COMMITMENT),
        "regulatory_deadline": _group_score(text, REGULATORY_DEADLINE),
        "priority_boost": float(priority_boost),
    }


def risk_reduction_components(item: WorkItem) -> dict[str, float]:
    text = f"{item.title} {item.description}"
    return {
        "security_risk": _group_score(text, SECURITY_RISK),
        "operational_risk": _group_score(text, OPERATIONAL_RISK),
        "technical_risk": _group_score(text, TECHNICAL_RISK),
        "business_risk": _group_score(text, BUSINESS_RISK),
    }


def job_size_components(item: WorkItem, dependency_count: int | None = None) -> dict[str, float]:
    """Points scaled by complexity and uncertainty, plus half a point per dependency.

    An estimate of 0 yields a job size of 0, which the scorer rejects.
    """
    text = f"{item.title} {item.description}"
    complexity = min(MAX_COMPLEXITY, 1 + 0.5 * count_keywords(text, COMPLEXITY_KEYWORDS))
    uncertainty = min(MAX_UNCERTAINTY, 1 + 0.7 * count_keywords(text, UNCERTAINTY_KEYWORDS))
    if dependency_count is None:
        dependency_count = max(len(item.dependencies), count_keywords(text, DEPENDENCY_KEYWORDS))
    job_size = item.estimate * (1 + (complexity - 1) * 0.2 + (uncertainty - 1) * 0.2)
    if item.estimate > 0:
        job_size += dependency_count * 0.5
    return {
        "story_points": float(item.estimate),
        "complexity": complexity,
        "uncertainty": uncertainty,
        "dependencies": float(dependency_count),
        "job_size": round(job_size, 4),
    }


def _mean(values: dict[str, float]) -> float:
    return min(MAX_SUB_SCORE, sum(values.values()) / len(values))


def estimate_raw_scores(item: WorkItem, dependency_count: int | None = None) -> RawScoreInput:
    """Derive WSJF sub-scores from keyword signals in the item text.

    Args:
        item: Work item to estimate
        dependency_count: Known prerequisite count; inferred from the text if None

    Returns:
        RawScoreInput with the component breakdown attached
    """
    business = business_value_components(item)
    urgency = time_criticality_components(item)
    risk = risk_reduction_components(item)
    size = job_size_components(item, dependency_count)

    components = {
        **{f"business_value.{k}": v for k, v in business.items()},
        **{f"time_criticality.{k}": v for k, v in urgency.items()},
        **{f"risk_reduction.{k}": v for k, v in risk.items()},
        **{f"job_size.{k}": v for k, v in size.items()},
    }
    raw = RawScoreInput(
        business_value=round(_mean(business), 4),
        time_criticality=round(_mean(urgency), 4),
        risk_reduction=round(_mean(risk), 4),
        job_size=size["job_size"],
        components=components,
    )
    logger.debug(
        f"Estimated raw scores for {item.id}: BV={raw.business_value:.1f} "
        f"TC={raw.time_criticality:.1f} RR={raw.risk_reduction:.1f} size={raw.job_size:.2f}"
    )
    return raw
