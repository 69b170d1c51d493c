"""Heuristic dependency detection between work items.

Scans titles, descriptions and acceptance criteria for explicit ids,
shared technical keywords, business-flow phrases and technical name
patterns. Each detector returns a fresh list of relationships; the
analyzer merges them into a single edge per ordered pair.
"""

import logging
import re
from dataclasses import replace
from functools import lru_cache

from artplan.config import (
    CRITICAL_TECHNICAL_TERMS,
    DependencyDetectionConfig,
    DependencyStrength,
    DependencyType,
    DetectionMethod,
    WorkItemType,
)
from artplan.models.graph import DependencyRelationship
from artplan.models.work_items import WorkItem, WorkItemIndex

logger = logging.getLogger(__name__)

# Technical name patterns: CamelCase, *API, *Service, /url/paths
_TECH_TERM_PATTERNS = (
    re.compile(r"\b[A-Z][a-z]+(?:[A-Z][a-z]+)+\b"),
    re.compile(r"\b\w+API\b"),
    re.compile(r"\b\w+Service\b"),
    re.compile(r"(?<![\w/])/\w+(?:/\w+)*\b"),
)

# Terms that make an item more likely to be depended upon
FOUNDATIONAL_TERMS = ("api", "service", "database", "authentication", "infrastructure", "framework")

_TYPE_FOUNDATION_BONUS: dict[WorkItemType, float] = {
    WorkItemType.EPIC: 3,
    WorkItemType.FEATURE: 2,
    WorkItemType.ENABLER: 4,
    WorkItemType.STORY: 0,
}

# (phrases, relationship type, strength) in precedence order
BUSINESS_FLOW_INDICATORS: tuple[tuple[tuple[str, ...], DependencyType, DependencyStrength], ...] = (
    (("requires", "needs", "depends on"), DependencyType.REQUIRES, DependencyStrength.HARD),
    (("after", "following", "subsequent to"), DependencyType.REQUIRES, DependencyStrength.HARD),
    (("enables", "allows", "permits"), DependencyType.ENABLES, DependencyStrength.SOFT),
    (("related to", "connected to"), DependencyType.RELATED, DependencyStrength.OPTIONAL),
)

# Confidence of an id mention without any flow phrase
REFERENCE_CONFIDENCE = 0.7
# Confidence decay per parent level for inherited relationships
INHERITANCE_DECAY = 0.9
# Title words shorter than this are ignored when matching titles
MIN_TITLE_WORD_LENGTH = 4


@lru_cache(maxsize=512)
def _word_pattern(phrase: str) -> re.Pattern:
    # Whole words, optional plural, case-insensitive
    return re.compile(r"\b" + r"\s+".join(map(re.escape, phrase.split())) + r"s?\b", re.IGNORECASE)


@lru_cache(maxsize=512)
def _id_pattern(item_id: str) -> re.Pattern:
    return re.compile(r"(?<![\w-])" + re.escape(item_id) + r"(?![\w-])", re.IGNORECASE)


def contains_phrase(text: str, phrase: str) -> bool:
    """Whole-word, case-insensitive phrase match."""
    return _word_pattern(phrase).search(text) is not None


def mentions_id(text: str, item_id: str) -> bool:
    """Whether text mentions item_id as a standalone token."""
    return _id_pattern(item_id).search(text) is not None


def extract_technical_terms(text: str) -> set[str]:
    """Lower-cased technical names (CamelCase, *API, *Service, /paths) in text."""
    terms: set[str] = set()
    for pattern in _TECH_TERM_PATTERNS:
        terms.update(match.lower() for match in pattern.findall(text))
    return terms


def find_item_references(text: str, target: WorkItem) -> list[str]:
    """References to target in text: its id, or enough significant title words.

    A title reference needs min(2, n) of the target's n title words that are
    at least MIN_TITLE_WORD_LENGTH characters long.
    """
    references = []
    if mentions_id(text, target.id):
        references.append(target.id)

    title_words = sorted(
        {
            word
            for word in re.findall(r"\w+", target.title.lower())
            if len(word) >= MIN_TITLE_WORD_LENGTH
        }
    )
    if title_words:
        found = [word for word in title_words if contains_phrase(text, word)]
        if len(found) >= min(2, len(title_words)):
            references.append(f"title match: {' '.join(found)}")
    return references


def foundation_score(item: WorkItem) -> float:
    """How likely an item is to be depended upon by others."""
    score = 2.0 * sum(1 for term in FOUNDATIONAL_TERMS if contains_phrase(item.text, term))
    score += _TYPE_FOUNDATION_BONUS[item.type]
    score += min(item.estimate * 0.5, 5.0)
    return score


def relationship_id(source_id: str, target_id: str) -> str:
    return f"dep-{source_id}-{target_id}"


class DependencyDetector:
    """Runs every detection heuristic over a work item set."""

    def __init__(self, config: DependencyDetectionConfig | None = None):
        """Initialize the detector.

        Args:
            config: Keyword lists and thresholds (defaults if not provided)
        """
        self.config = config or DependencyDetectionConfig()

    # ========== Explicit ==========

    def detect_explicit(self, items: list[WorkItem]) -> list[DependencyRelationship]:
        """Edges for dependency ids supplied with the work items."""
        relationships = []
        for item in items:
            for target_id in dict.fromkeys(item.dependencies):
                relationships.append(
                    DependencyRelationship(
                        id=relationship_id(item.id, target_id),
                        source_id=item.id,
                        target_id=target_id,
                        type=DependencyType.REQUIRES,
                        strength=DependencyStrength.HARD,
                        confidence=1.0,
                        detection_method=DetectionMethod.MANUAL,
                        rationale="Declared dependency",
                        triggers=(target_id,),
                    )
                )
        return relationships

    def detect_references(self, items: list[WorkItem]) -> list[DependencyRelationship]:
        """Advisory edges where one item's text mentions another's id."""
        relationships = []
        for source in items:
            for target in items:
                if source.id == target.id or not mentions_id(source.text, target.id):
                    continue
                relationships.append(
                    DependencyRelationship(
                        id=relationship_id(source.id, target.id),
                        source_id=source.id,
                        target_id=target.id,
                        type=DependencyType.RELATED,
                        strength=DependencyStrength.SOFT,
                        confidence=REFERENCE_CONFIDENCE,
                        detection_method=DetectionMethod.KEYWORD,
                        rationale=f"Explicit reference found: {target.id}",
                        triggers=(target.id,),
                    )
                )
        return relationships

    # ========== Technical ==========

    def shared_technical_keywords(self, first: WorkItem, second: WorkItem) -> list[str]:
        return [
            keyword
            for keyword in self.config.technical_keywords
            if contains_phrase(first.text, keyword) and contains_phrase(second.text, keyword)
        ]

    @staticmethod
    def technical_confidence(shared: list[str]) -> float:
        confidence = min(len(shared) * 0.2, 0.8)
        if any(keyword in CRITICAL_TECHNICAL_TERMS for keyword in shared):
            confidence = min(confidence + 0.2, 1.0)
        return round(confidence, 4)

    def detect_technical(self, items: list[WorkItem]) -> list[DependencyRelationship]:
        """Edges between items sharing technical keywords.

        The more foundational item (higher foundation_score, then smaller id)
        is the prerequisite.
        """
        relationships = []
        ordered = sorted(items, key=lambda item: item.id)
        for i, first in enumerate(ordered):
            for second in ordered[i + 1 :]:
                shared = self.shared_technical_keywords(first, second)
                if not shared:
                    continue
                confidence = self.technical_confidence(shared)
                if confidence < self.config.confidence_threshold:
                    continue

                if foundation_score(second) > foundation_score(first):
                    dependent, prerequisite = first, second
                else:
                    dependent, prerequisite = second, first

                relationships.append(
                    DependencyRelationship(
                        id=relationship_id(dependent.id, prerequisite.id),
                        source_id=dependent.id,
                        target_id=prerequisite.id,
                        type=DependencyType.REQUIRES,
                        strength=(
                            DependencyStrength.HARD if confidence > 0.8 else DependencyStrength.SOFT
                        ),
                        confidence=confidence,
                        detection_method=DetectionMethod.KEYWORD,
                        rationale=f"Depends on foundational component: {', '.join(shared)}",
                        triggers=tuple(shared),
                    )
                )
        return relationships

    # ========== Business Flow ==========

    def _has_business_cue(self, text: str) -> bool:
        return any(contains_phrase(text, keyword) for keyword in self.config.business_keywords)

    def analyze_business_flow(
        self, source: WorkItem, target: WorkItem
    ) -> DependencyRelationship | None:
        """Flow relationship from source to target, if source's text implies one.

        Confidence is min(matches * 0.3 + references * 0.2, 0.9) for the
        best-scoring indicator group.
        """
        text = source.text
        if not self._has_business_cue(text):
            return None
        references = find_item_references(text, target)
        if not references:
            return None

        best: DependencyRelationship | None = None
        for phrases, dep_type, strength in BUSINESS_FLOW_INDICATORS:
            matches = [phrase for phrase in phrases if contains_phrase(text, phrase)]
            if not matches:
                continue
            confidence = round(min(len(matches) * 0.3 + len(references) * 0.2, 0.9), 4)
            if best is None or confidence > best.confidence:
                best = DependencyRelationship(
                    id=relationship_id(source.id, target.id),
                    source_id=source.id,
                    target_id=target.id,
                    type=dep_type,
                    strength=strength,
                    confidence=confidence,
                    detection_method=DetectionMethod.SEMANTIC,
                    rationale=f"Business dependency detected: {', '.join(matches)}",
                    triggers=tuple(matches + references),
                )
        return best

    def detect_business_flow(self, items: list[WorkItem]) -> list[DependencyRelationship]:
        if not self.config.enable_semantic_analysis:
            return []
        relationships = []
        for source in items:
            for target in items:
                if source.id == target.id:
                    continue
                relationship = self.analyze_business_flow(source, target)
                if relationship and relationship.confidence >= self.config.confidence_threshold:
                    relationships.append(relationship)
        return relationships

    # ========== Patterns ==========

    def detect_patterns(self, items: list[WorkItem]) -> list[DependencyRelationship]:
        """Advisory edges between items naming the same technical component."""
        terms = {item.id: extract_technical_terms(item.text) for item in items}
        ordered = sorted(items, key=lambda item: item.id)
        relationships = []
        for i, first in enumerate(ordered):
            for second in ordered[i + 1 :]:
                shared = sorted(terms[first.id] & terms[second.id])
                if not shared:
                    continue
                confidence = round(min(0.5 + 0.1 * len(shared), 0.8), 4)
                if confidence < self.config.confidence_threshold:
                    continue
                relationships.append(
                    DependencyRelationship(
                        id=relationship_id(first.id, second.id),
                        source_id=first.id,
                        target_id=second.id,
                        type=DependencyType.RELATED,
                        strength=DependencyStrength.SOFT,
                        confidence=confidence,
                        detection_method=DetectionMethod.PATTERN,
                        rationale=f"Shared technical components: {', '.join(shared)}",
                        triggers=tuple(shared),
                    )
                )
        return relationships

    # ========== Inheritance ==========

    def detect_inherited(
        self, index: WorkItemIndex, relationships: list[DependencyRelationship]
    ) -> list[DependencyRelationship]:
        """Propagate an ancestor's ordering dependencies to its descendants.

        A descendant n levels below the ancestor (n <= max_dependency_distance)
        receives the same type and strength with confidence scaled by
        INHERITANCE_DECAY ** n. Relationships pointing inside the descendant's
        own parent chain are skipped.
        """
        if not self.config.inherit_parent_dependencies:
            return []

        by_source: dict[str, list[DependencyRelationship]] = {}
        for relationship in relationships:
            if relationship.type in (DependencyType.REQUIRES, DependencyType.BLOCKED_BY):
                by_source.setdefault(relationship.source_id, []).append(relationship)

        inherited = []
        for item in index:
            ancestors = index.ancestors_of(item.id, max_depth=self.config.max_dependency_distance)
            lineage = {ancestor.id for ancestor in ancestors}
            for level, ancestor in enumerate(ancestors, start=1):
                for relationship in by_source.get(ancestor.id, []):
                    if relationship.target_id in lineage or relationship.target_id == item.id:
                        continue
                    confidence = round(relationship.confidence * INHERITANCE_DECAY**level, 4)
                    if confidence < self.config.confidence_threshold:
                        continue
                    inherited.append(
                        replace(
                            relationship,
                            id=relationship_id(item.id, relationship.target_id),
                            source_id=item.id,
                            confidence=confidence,
                            detection_method=DetectionMethod.INHERITED,
                            rationale=f"Inherited from {ancestor.id}: {relationship.rationale}",
                        )
                    )
        return inherited

    # ========== All ==========

    def detect_direct(self, items: list[WorkItem]) -> list[DependencyRelationship]:
        """Every non-inherited relationship, unmerged."""
        detected = (
            self.detect_explicit(items)
            + self.detect_references(items)
            + self.detect_technical(items)
            + self.detect_business_flow(items)
            + self.detect_patterns(items)
        )
        origins = {item.id: item.decomposed_from for item in items if item.decomposed_from}
        if origins:
            kept = [r for r in detected if not _between_siblings(r, origins)]
            if len(kept) < len(detected):
                logger.debug(
                    f"Ignored {len(detected) - len(kept)} heuristic relationships between parts "
                    "of the same decomposed item"
                )
            detected = kept
        logger.debug(f"Detected {len(detected)} candidate relationships across {len(items)} items")
        return detected


def _between_siblings(relationship: DependencyRelationship, origins: dict[str, str]) -> bool:
    """Parts split from one item share its text, so only declared links between them count."""
    if relationship.detection_method == DetectionMethod.MANUAL:
        return False
    origin = origins.get(relationship.source_id)
    return origin is not None and origin == origins.get(relationship.target_id)
