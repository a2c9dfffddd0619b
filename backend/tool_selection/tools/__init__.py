"""
Tool adapters and ToolResult normalization.
"""
from .adapters import ToolAdapter, CalculatorTool, SearchTool, StructuredQueryTool, ToolRegistry
from .normalization import (
    FAILURE_PREFIX,
    format_failure,
    is_failure_text,
    looks_like_error,
    serialize_payload,
    to_tool_output,
    output_to_text,
    truncate_middle,
    extract_search_information
)

__all__ = [
    "ToolAdapter",
    "CalculatorTool",
    "SearchTool",
    "StructuredQueryTool",
    "ToolRegistry",
    "FAILURE_PREFIX",
    "format_failure",
    "is_failure_text",
    "looks_like_error",
    "serialize_payload",
    "to_tool_output",
    "output_to_text",
    "truncate_middle",
    "extract_search_information"
]
