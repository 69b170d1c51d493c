"""Dependency detection, cycle analysis and critical path computation."""

from .analyzer import (
    DETECTION_PRECEDENCE,
    DependencyAnalyzer,
    analyze_dependencies,
    merge_relationships,
)
from .detector import DependencyDetector, extract_technical_terms, find_item_references
from .graph import (
    analyze_critical_path,
    analyze_impact,
    build_graph,
    critical_path,
    detect_and_break_cycles,
    find_cycle,
    topological_order,
)

__all__ = [
    "DependencyAnalyzer",
    "DependencyDetector",
    "DETECTION_PRECEDENCE",
    "analyze_dependencies",
    "merge_relationships",
    "extract_technical_terms",
    "find_item_references",
    "build_graph",
    "critical_path",
    "analyze_critical_path",
    "analyze_impact",
    "detect_and_break_cycles",
    "find_cycle",
    "topological_order",
]
