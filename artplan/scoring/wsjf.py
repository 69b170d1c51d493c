"""Weighted Shortest Job First scoring and prioritization.

wsjf = (business_value * w_bv + time_criticality * w_tc + risk_reduction * w_rr) / job_size

A job size of zero or less is a scoring error for that item; it is never
coerced, since a substitute size would distort the relative ranking.
"""

import logging
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Any

from artplan.config import PriorityTier, ScoringConfig
from artplan.errors import ScoringError
from artplan.models.work_items import WorkItem
from artplan.scoring.components import RawScoreInput, estimate_raw_scores

logger = logging.getLogger(__name__)

MAX_PRIORITY_SCORE = 100.0
MIN_SIMILAR_WORD_LENGTH = 4

# Tie-break tolerances used by prioritize()
WSJF_TOLERANCE = 0.1
BUSINESS_VALUE_TOLERANCE = 5.0
JOB_SIZE_TOLERANCE = 1.0


@dataclass(frozen=True)
class ScoredStory:
    """A work item with its WSJF score and recommended priority tier."""

    item: WorkItem
    business_value: float
    time_criticality: float
    risk_reduction: float
    job_size: float
    wsjf_score: float
    priority_score: float  # 0-100
    recommended_priority: PriorityTier

    @property
    def id(self) -> str:
        return self.item.id

    @property
    def title(self) -> str:
        return self.item.title

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.item.id,
            "business_value": self.business_value,
            "time_criticality": self.time_criticality,
            "risk_reduction": self.risk_reduction,
            "job_size": self.job_size,
            "wsjf_score": self.wsjf_score,
            "priority_score": self.priority_score,
            "recommended_priority": self.recommended_priority.value,
        }


@dataclass(frozen=True)
class PriorityUpdate:
    """Suggested tracker priority change for one item."""

    item_id: str
    current_priority: int | None
    recommended_priority: int
    wsjf_score: float
    rationale: str

    @property
    def changes_priority(self) -> bool:
        return self.current_priority != self.recommended_priority


@dataclass(frozen=True)
class ValueRecommendation:
    """Prioritization advice for a group of scored items."""

    type: str  # PRIORITIZE, SPLIT, DELAY, COMBINE
    affected_items: tuple[str, ...]
    rationale: str
    expected_impact: str
    confidence: float


def title_keywords(title: str) -> set[str]:
    words = "".join(ch if ch.isalnum() or ch.isspace() else "" for ch in title.lower()).split()
    return {word for word in words if len(word) >= MIN_SIMILAR_WORD_LENGTH}


def jaccard(first: set[str], second: set[str]) -> float:
    union = first | second
    return len(first & second) / len(union) if union else 0.0


class WSJFScorer:
    """Scores work items with WSJF and maps scores to priority tiers."""

    def __init__(self, config: ScoringConfig | None = None):
        """Initialize the scorer.

        Args:
            config: Weights and tier thresholds (defaults if not provided)
        """
        self.config = config or ScoringConfig()

    def calculate(
        self, business_value: float, time_criticality: float, risk_reduction: float, job_size: float
    ) -> float:
        """Raw WSJF value; job_size must be positive."""
        numerator = (
            business_value * self.config.business_value_weight
            + time_criticality * self.config.time_criticality_weight
            + risk_reduction * self.config.risk_reduction_weight
        )
        return numerator / job_size

    def tier_for(self, wsjf_score: float) -> PriorityTier:
        """Highest tier whose threshold the score reaches."""
        if wsjf_score >= self.config.urgent_threshold:
            return PriorityTier.URGENT
        if wsjf_score >= self.config.high_threshold:
            return PriorityTier.HIGH
        if wsjf_score >= self.config.medium_threshold:
            return PriorityTier.MEDIUM
        return PriorityTier.LOW

    def score(self, item: WorkItem, raw: RawScoreInput | None = None) -> ScoredStory:
        """Score one work item.

        Args:
            item: Item to score
            raw: Sub-scores; estimated from the item text when None

        Raises:
            ScoringError: If the job size is zero or negative
        """
        raw = raw or estimate_raw_scores(item)
        if raw.job_size <= 0:
            raise ScoringError(
                f"Job size for {item.id} must be positive, got {raw.job_size}",
                story_id=item.id,
                phase="job_size",
                code="INVALID_JOB_SIZE",
            )

        wsjf_score = self.calculate(
            raw.business_value, raw.time_criticality, raw.risk_reduction, raw.job_size
        )
        scored = ScoredStory(
            item=item,
            business_value=raw.business_value,
            time_criticality=raw.time_criticality,
            risk_reduction=raw.risk_reduction,
            job_size=raw.job_size,
            wsjf_score=round(wsjf_score, 6),
            priority_score=round(min(MAX_PRIORITY_SCORE, wsjf_score * 10), 4),
            recommended_priority=self.tier_for(wsjf_score),
        )
        logger.debug(
            f"Scored {item.id}: wsjf={scored.wsjf_score:.2f} "
            f"tier={scored.recommended_priority.value}"
        )
        return scored

    def score_batch(
        self, items: list[WorkItem], raws: dict[str, RawScoreInput] | None = None
    ) -> tuple[list[ScoredStory], list[ScoringError]]:
        """Score every item; a failing item is reported without stopping the batch.

        Returns:
            (scored items in input order, errors)
        """
        raws = raws or {}
        scored: list[ScoredStory] = []
        errors: list[ScoringError] = []
        for item in items:
            try:
                scored.append(self.score(item, raws.get(item.id)))
            except ScoringError as e:
                logger.warning(f"Scoring failed for {item.id} during {e.phase}: {e.message}")
                errors.append(e)

        if scored:
            average = sum(s.wsjf_score for s in scored) / len(scored)
            logger.info(
                f"Scored {len(scored)} items (average WSJF {average:.2f}), {len(errors)} errors"
            )
        return scored, errors

    # ========== Prioritization ==========

    def prioritize(self, scored: list[ScoredStory]) -> list[ScoredStory]:
        """Highest WSJF first.

        Scores within 0.1 of each other fall through to business value (diff > 5),
        then smaller job size (diff > 1), then time criticality, then id.
        """

        def compare(a: ScoredStory, b: ScoredStory) -> int:
            if abs(a.wsjf_score - b.wsjf_score) > WSJF_TOLERANCE:
                return -1 if a.wsjf_score > b.wsjf_score else 1
            if abs(a.business_value - b.business_value) > BUSINESS_VALUE_TOLERANCE:
                return -1 if a.business_value > b.business_value else 1
            if abs(a.job_size - b.job_size) > JOB_SIZE_TOLERANCE:
                return -1 if a.job_size < b.job_size else 1
            if a.time_criticality != b.time_criticality:
                return -1 if a.time_criticality > b.time_criticality else 1
            return -1 if a.id < b.id else (1 if a.id > b.id else 0)

        ordered = sorted(scored, key=lambda s: s.id)
        return sorted(ordered, key=cmp_to_key(compare))

    def recommendations(self, scored: list[ScoredStory]) -> list[ValueRecommendation]:
        """PRIORITIZE, SPLIT, DELAY and COMBINE advice for the scored set."""
        result: list[ValueRecommendation] = []

        urgent = [s.id for s in scored if s.recommended_priority == PriorityTier.URGENT]
        if urgent:
            result.append(
                ValueRecommendation(
                    type="PRIORITIZE",
                    affected_items=tuple(urgent),
                    rationale=f"{len(urgent)} items reach the urgent WSJF threshold "
                    f"({self.config.urgent_threshold:g})",
                    expected_impact="Quick delivery of high business value",
                    confidence=0.9,
                )
            )

        large = [s.id for s in scored if s.job_size > self.config.split_job_size_threshold]
        if large:
            result.append(
                ValueRecommendation(
                    type="SPLIT",
                    affected_items=tuple(large),
                    rationale=f"{len(large)} items have a job size above "
                    f"{self.config.split_job_size_threshold:g}; consider decomposition",
                    expected_impact="Earlier value delivery through incremental implementation",
                    confidence=0.7,
                )
            )

        delay_below = self.config.medium_threshold / 2
        delayed = [
            s.id
            for s in scored
            if s.recommended_priority == PriorityTier.LOW and s.wsjf_score < delay_below
        ]
        if delayed:
            result.append(
                ValueRecommendation(
                    type="DELAY",
                    affected_items=tuple(delayed),
                    rationale=f"{len(delayed)} items score below {delay_below:g} WSJF",
                    expected_impact="Focus team capacity on higher-value work",
                    confidence=0.6,
                )
            )

        similar = self._similar_titles(scored)
        if len(similar) > 1:
            result.append(
                ValueRecommendation(
                    type="COMBINE",
                    affected_items=tuple(similar),
                    rationale=f"{len(similar)} items have closely related titles",
                    expected_impact="Reduced overhead and improved implementation efficiency",
                    confidence=0.5,
                )
            )
        return result

    def priority_update(self, scored: ScoredStory) -> PriorityUpdate:
        """Tracker priority suggested by the WSJF tier, with a rationale."""
        return PriorityUpdate(
            item_id=scored.id,
            current_priority=scored.item.priority,
            recommended_priority=scored.recommended_priority.tracker_priority,
            wsjf_score=scored.wsjf_score,
            rationale=(
                f"WSJF Score: {scored.wsjf_score:.2f} "
                f"(Business Value: {scored.business_value:.1f}, "
                f"Time Criticality: {scored.time_criticality:.1f}, "
                f"Risk Reduction: {scored.risk_reduction:.1f}, Job Size: {scored.job_size:.1f})"
            ),
        )

    def _similar_titles(self, scored: list[ScoredStory]) -> list[str]:
        keywords = {s.id: title_keywords(s.title) for s in scored}
        similar: list[str] = []
        for i, first in enumerate(scored):
            for second in scored[i + 1 :]:
                score = jaccard(keywords[first.id], keywords[second.id])
                if score >= self.config.combine_similarity_threshold:
                    similar.extend(s for s in (first.id, second.id) if s not in similar)
        return similar
