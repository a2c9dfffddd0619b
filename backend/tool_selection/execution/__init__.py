"""
Execution - dependency resolution, tool nodes and the sub-question scheduler.
"""
from .resolver import (
    extract_numeric_value,
    resolve_references,
    dependency_values,
    validate_dependencies,
    ensure_entry_point
)
from .expressions import sanitize_expression, extract_expression, build_dependency_expression
from .executor import CalculatorNode, SearchNode, DirectNode, StructuredQueryNode, route_after_tool
from .scheduler import SubQuestionRouterNode, ResultCollectorNode

__all__ = [
    "extract_numeric_value",
    "resolve_references",
    "dependency_values",
    "validate_dependencies",
    "ensure_entry_point",
    "sanitize_expression",
    "extract_expression",
    "build_dependency_expression",
    "CalculatorNode",
    "SearchNode",
    "DirectNode",
    "StructuredQueryNode",
    "route_after_tool",
    "SubQuestionRouterNode",
    "ResultCollectorNode"
]
