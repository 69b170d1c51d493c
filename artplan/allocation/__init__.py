"""Capacity-bounded, dependency-ordered allocation of work to iterations."""

from .allocator import (
    REASON_BEYOND_HORIZON,
    REASON_BLOCKED,
    REASON_EXCEEDS_CAPACITY,
    REASON_EXCEEDS_REMAINING,
    IterationAllocator,
    scheduling_prerequisites,
)
from .capacity import CapacityManager
from .iterations import create_iterations

__all__ = [
    "IterationAllocator",
    "CapacityManager",
    "create_iterations",
    "scheduling_prerequisites",
    "REASON_EXCEEDS_CAPACITY",
    "REASON_EXCEEDS_REMAINING",
    "REASON_BLOCKED",
    "REASON_BEYOND_HORIZON",
]
