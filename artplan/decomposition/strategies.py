"""Points and acceptance-criteria distribution strategies.

Every function returns a new list and never mutates its arguments.
Criteria assignments are lists of sub-item indexes, one per criterion,
in the original criteria order.
"""

import re
from itertools import combinations_with_replacement

from artplan.config import CriteriaStrategy, PointsStrategy

_WORD_RE = re.compile(r"[a-z][a-z0-9]+")

# Common words that carry no theme
STOPWORDS = frozenset(
    {
        "given",
        "when",
        "then",
        "that",
        "this",
        "with",
        "should",
        "must",
        "will",
        "have",
        "from",
        "into",
        "their",
        "they",
        "there",
        "able",
        "user",
        "users",
        "system",
        "shall",
        "each",
        "which",
        "also",
    }
)

# Criteria themes used to describe logical boundaries
CRITERIA_THEMES = ("input", "processing", "output", "validation", "error")


# ========== Points ==========


def even_points(total: int, count: int) -> list[int]:
    """Equal shares with the remainder given to the first sub-items."""
    base, remainder = divmod(total, count)
    return [base + 1 if i < remainder else base for i in range(count)]


def weighted_points(total: int, weights: list[int]) -> list[int]:
    """Shares proportional to weights, using largest-remainder rounding.

    Falls back to even shares when all weights are zero. Ties in the
    fractional remainder go to the earlier sub-item.
    """
    weight_sum = sum(weights)
    if weight_sum <= 0:
        return even_points(total, len(weights))

    exact = [total * weight / weight_sum for weight in weights]
    shares = [int(value) for value in exact]
    shortfall = total - sum(shares)
    by_remainder = sorted(range(len(weights)), key=lambda i: (-(exact[i] - shares[i]), i))
    for i in by_remainder[:shortfall]:
        shares[i] += 1
    return shares


def fibonacci_values(limit: int) -> list[int]:
    """Distinct Fibonacci numbers from 1 up to limit."""
    values = []
    a, b = 1, 2
    while a <= limit:
        values.append(a)
        a, b = b, a + b
    return values


def fibonacci_points(total: int, count: int, max_points: int) -> list[int]:
    """Fibonacci-scale values (1, 2, 3, 5, 8, ...) summing as close to total as possible.

    Among equally close combinations the most even spread wins; the result
    is ordered largest first. Values never exceed max_points.
    """
    candidates = fibonacci_values(max_points)
    best: tuple | None = None
    for combo in combinations_with_replacement(candidates, count):
        key = (abs(sum(combo) - total), max(combo) - min(combo), sum(combo) < total)
        if best is None or key < best[0]:
            best = (key, combo)
    return sorted(best[1], reverse=True) if best else []


def distribute_points(
    strategy: PointsStrategy,
    total: int,
    count: int,
    max_points: int,
    criteria_counts: list[int],
) -> list[int]:
    """Split total into count shares using a strategy."""
    if strategy == PointsStrategy.FIBONACCI:
        return fibonacci_points(total, count, max_points)
    if strategy == PointsStrategy.WEIGHTED:
        return weighted_points(total, criteria_counts)
    return even_points(total, count)


# ========== Criteria ==========


def significant_words(text: str) -> set[str]:
    return {
        word for word in _WORD_RE.findall(text.lower()) if len(word) >= 4 and word not in STOPWORDS
    }


def sequential_assignment(criteria: list[str], count: int) -> list[int]:
    """Round-robin: criterion i goes to sub-item i mod count."""
    return [i % count for i in range(len(criteria))]


def balanced_assignment(criteria: list[str], count: int) -> list[int]:
    """Contiguous chunks whose sizes differ by at most one."""
    sizes = even_points(len(criteria), count)
    assignment = []
    for index, size in enumerate(sizes):
        assignment.extend([index] * size)
    return assignment


def thematic_assignment(criteria: list[str], count: int) -> list[int]:
    """Group criteria sharing significant words, then reshape to count groups.

    Each criterion joins the earliest existing group it shares a word with,
    otherwise starts a new group. Surplus groups are merged smallest-first into
    the group they overlap most (or the previous group); if there are too few,
    the largest group is split in half. Groups are numbered by the position of
    their first criterion.
    """
    words = [significant_words(criterion) for criterion in criteria]
    groups: list[list[int]] = []
    group_words: list[set[str]] = []

    for i, criterion_words in enumerate(words):
        for g, existing in enumerate(group_words):
            if criterion_words & existing:
                groups[g].append(i)
                existing.update(criterion_words)
                break
        else:
            groups.append([i])
            group_words.append(set(criterion_words))

    while len(groups) > count:
        smallest = min(range(len(groups)), key=lambda g: (len(groups[g]), -g))
        others = [g for g in range(len(groups)) if g != smallest]
        overlap = {g: len(group_words[g] & group_words[smallest]) for g in others}
        fallback = smallest - 1 if smallest > 0 else 1
        target = max(others, key=lambda g: (overlap[g], g == fallback, -g))
        groups[target].extend(groups[smallest])
        group_words[target].update(group_words[smallest])
        del groups[smallest]
        del group_words[smallest]

    while len(groups) < count:
        largest = max(range(len(groups)), key=lambda g: (len(groups[g]), -g))
        members = sorted(groups[largest])
        if len(members) < 2:
            break
        half = (len(members) + 1) // 2
        groups[largest] = members[:half]
        groups.append(members[half:])
        group_words.append(set())

    groups = sorted((sorted(group) for group in groups), key=lambda group: group[0])
    assignment = [0] * len(criteria)
    for g, group in enumerate(groups):
        for i in group:
            assignment[i] = g
    return assignment


def distribute_criteria(strategy: CriteriaStrategy, criteria: list[str], count: int) -> list[int]:
    """Sub-item index for each criterion."""
    if strategy == CriteriaStrategy.SEQUENTIAL:
        return sequential_assignment(criteria, count)
    if strategy == CriteriaStrategy.BALANCED:
        return balanced_assignment(criteria, count)
    return thematic_assignment(criteria, count)


def criteria_themes(criteria: list[str]) -> list[str]:
    """Descriptions of the recognised themes present in the criteria."""
    themes = []
    for theme in CRITERIA_THEMES:
        matches = sum(1 for criterion in criteria if theme in criterion.lower())
        if matches:
            themes.append(f"{theme} functionality ({matches} criteria)")
    return themes
