"""Deliverable value of an iteration: value streams, working software and risks."""

import logging

from artplan.assessment.context import PlanContext
from artplan.config import ValueStreamType, WorkItemType
from artplan.dependencies.detector import contains_phrase
from artplan.models.plan import AllocatedWorkItem, DeliverableValue, ValueDeliveryRisk, ValueStream
from artplan.models.work_items import Iteration, WorkItem

logger = logging.getLogger(__name__)

# First matching stream wins
VALUE_STREAM_KEYWORDS: tuple[tuple[ValueStreamType, tuple[str, ...]], ...] = (
    (ValueStreamType.CUSTOMER_FACING, ("customer", "user", "ui", "interface")),
    (ValueStreamType.REVENUE_GENERATING, ("revenue", "payment", "billing", "sales")),
    (ValueStreamType.EFFICIENCY_IMPROVING, ("performance", "optimization", "efficiency")),
    (ValueStreamType.TECHNICAL_DEBT, ("debt", "refactor", "cleanup")),
)

VALUE_STREAM_PRIORITIES: dict[ValueStreamType, float] = {
    ValueStreamType.CUSTOMER_FACING: 1.0,
    ValueStreamType.REVENUE_GENERATING: 0.9,
    ValueStreamType.EFFICIENCY_IMPROVING: 0.7,
    ValueStreamType.TECHNICAL_DEBT: 0.5,
    ValueStreamType.INFRASTRUCTURE: 0.3,
}

USER_FACING_KEYWORDS = ("user", "customer", "interface", "api", "endpoint")

MIN_WORKING_SOFTWARE_RATIO = 0.8
HIGH_DEPENDENCY_BLOCKERS = 3
STREAM_IMBALANCE = 0.5
MIN_ITEMS_FOR_BALANCE = 3
NO_VALUE = "No deliverable value"


def value_stream_type(item: WorkItem) -> ValueStreamType:
    text = f"{item.title} {item.description}"
    for stream_type, keywords in VALUE_STREAM_KEYWORDS:
        if any(contains_phrase(text, keyword) for keyword in keywords):
            return stream_type
    return ValueStreamType.INFRASTRUCTURE


def stream_name(stream_type: ValueStreamType) -> str:
    return " ".join(word.capitalize() for word in stream_type.value.split("-"))


def work_item_value(item: WorkItem) -> float:
    """Relative business value: base 50, more for stories and features and for higher priority."""
    value = 50.0
    if item.type == WorkItemType.STORY:
        value += 30
    elif item.type == WorkItemType.FEATURE:
        value += 50
    if item.priority:
        value += (5 - item.priority) * 20
    return value


def delivers_working_software(item: WorkItem) -> bool:
    """Items with acceptance criteria, or user-facing items, ship working software."""
    if item.acceptance_criteria:
        return True
    text = f"{item.title} {item.description}"
    return any(contains_phrase(text, keyword) for keyword in USER_FACING_KEYWORDS)


class ValueAssessor:
    """Scores the business value an iteration can deliver."""

    def __init__(self, context: PlanContext):
        self.context = context

    def value_streams(self, allocated: list[AllocatedWorkItem]) -> list[ValueStream]:
        """Group allocated items by value stream, highest weighted value first."""
        grouped: dict[ValueStreamType, list[AllocatedWorkItem]] = {}
        for entry in allocated:
            item = self.context.index.require(entry.work_item_id)
            grouped.setdefault(value_stream_type(item), []).append(entry)

        streams = []
        for stream_type, entries in grouped.items():
            total = sum(
                work_item_value(self.context.index.require(e.work_item_id)) for e in entries
            )
            streams.append(
                ValueStream(
                    id=f"{stream_type.value}-stream",
                    name=stream_name(stream_type),
                    type=stream_type.value,
                    work_items=tuple(e.work_item_id for e in entries),
                    total_value=total,
                    delivery_confidence=self._stream_confidence(entries),
                )
            )
        streams.sort(
            key=lambda s: (-s.total_value * VALUE_STREAM_PRIORITIES[ValueStreamType(s.type)], s.id)
        )
        return streams

    @staticmethod
    def _stream_confidence(entries: list[AllocatedWorkItem]) -> float:
        confidence = 0.9
        average_blockers = sum(len(e.blocked_by) for e in entries) / len(entries)
        if average_blockers > 2:
            confidence -= 0.2
        confidence *= sum(e.confidence for e in entries) / len(entries)
        return round(max(0.3, min(1.0, confidence)), 4)

    def _readiness(self, entry: AllocatedWorkItem) -> float:
        item = self.context.index.require(entry.work_item_id)
        readiness = entry.confidence
        if len(entry.blocked_by) > 2:
            readiness *= 0.8
        if len(item.acceptance_criteria) > 3:
            readiness *= 1.1
        return min(1.0, readiness)

    def risks(
        self,
        iteration: Iteration,
        allocated: list[AllocatedWorkItem],
        working: list[AllocatedWorkItem],
        unmet: list[str],
    ) -> list[ValueDeliveryRisk]:
        risks = []
        if allocated and len(working) / len(allocated) < MIN_WORKING_SOFTWARE_RATIO:
            ratio = len(working) / len(allocated)
            risks.append(
                ValueDeliveryRisk(
                    id=f"low-working-software-{iteration.id}",
                    description=f"Only {ratio:.0%} of work items deliver working software",
                    severity="high",
                    probability=0.8,
                    impact=0.7,
                    mitigations=(
                        "Prioritize user-facing stories",
                        "Defer infrastructure work to later iterations",
                        "Break down enablers to deliver incremental value",
                    ),
                )
            )

        concentrated = [e for e in allocated if len(e.blocked_by) > HIGH_DEPENDENCY_BLOCKERS]
        if concentrated:
            risks.append(
                ValueDeliveryRisk(
                    id=f"high-dependency-concentration-{iteration.id}",
                    description=(
                        f"{len(concentrated)} work items have more than "
                        f"{HIGH_DEPENDENCY_BLOCKERS} prerequisites"
                    ),
                    severity="medium",
                    probability=0.6,
                    impact=0.5,
                    mitigations=(
                        "Create contingency plans for critical dependencies",
                        "Consider parallel implementation paths",
                    ),
                )
            )

        if len(allocated) >= MIN_ITEMS_FOR_BALANCE:
            counts: dict[ValueStreamType, int] = {}
            for entry in allocated:
                stream_type = value_stream_type(self.context.index.require(entry.work_item_id))
                counts[stream_type] = counts.get(stream_type, 0) + 1
            if len(counts) > 1 and max(counts.values()) / len(allocated) > STREAM_IMBALANCE:
                risks.append(
                    ValueDeliveryRisk(
                        id=f"unbalanced-value-streams-{iteration.id}",
                        description="Value delivery concentrated in a single stream",
                        severity="medium",
                        probability=0.5,
                        impact=0.4,
                        mitigations=("Diversify work across value streams",),
                    )
                )

        if unmet:
            risks.append(
                ValueDeliveryRisk(
                    id=f"unmet-prerequisites-{iteration.id}",
                    description=f"Prerequisites {', '.join(unmet)} are not scheduled in this plan",
                    severity="high",
                    probability=0.9,
                    impact=0.8,
                    mitigations=(
                        "Schedule the prerequisites or agree delivery with the owning team",
                    ),
                )
            )
        return risks

    def assess_iteration(self, iteration: Iteration) -> DeliverableValue:
        """Whether the iteration ships working software, and how confidently.

        An iteration delivers value when at least one allocated item is
        complete, ships working software and has every HARD prerequisite
        scheduled in the plan.
        """
        allocated = self.context.allocated_in(iteration.id)
        if not allocated:
            return DeliverableValue(can_deliver_working_software=False, primary_value=NO_VALUE)

        working = [
            entry
            for entry in allocated
            if delivers_working_software(self.context.index.require(entry.work_item_id))
        ]
        unmet_by_item = {
            e.work_item_id: self.context.unmet_prerequisites(e.work_item_id) for e in allocated
        }
        deliverable = [e for e in working if e.is_complete and not unmet_by_item[e.work_item_id]]
        unmet = sorted({p for prerequisites in unmet_by_item.values() for p in prerequisites})

        streams = self.value_streams(allocated)
        risks = self.risks(iteration, allocated, working, unmet)

        total_value = sum(stream.total_value for stream in streams)
        coverage = (
            sum(s.total_value * VALUE_STREAM_PRIORITIES[ValueStreamType(s.type)] for s in streams)
            / total_value
            if total_value
            else 0.0
        )
        readiness = sum(self._readiness(e) for e in working) / len(working) if working else 0.0
        score = 0.3 * coverage + 0.4 * (len(working) / len(allocated)) + 0.3 * readiness
        if len(working) > 5:
            score += 0.1
        score -= 0.1 * sum(1 for risk in risks if risk.severity == "high")
        confidence = round(max(0.1, min(1.0, score)), 4)

        value = DeliverableValue(
            can_deliver_working_software=bool(deliverable),
            primary_value=streams[0].name if streams else NO_VALUE,
            secondary_values=tuple(stream.name for stream in streams[1:]),
            value_confidence=confidence,
            value_delivery_stories=tuple(e.work_item_id for e in deliverable),
            value_prerequisites=tuple(unmet),
            value_risks=tuple(risks),
            value_streams=tuple(streams),
        )
        logger.debug(
            f"Value for {iteration.id}: working software={value.can_deliver_working_software}, "
            f"confidence={confidence:.2f}, {len(risks)} risks"
        )
        return value
