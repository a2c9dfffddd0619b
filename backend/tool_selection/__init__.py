"""
Tool selection and multishot execution engine.

Classifies a query, answers it with one tool or decomposes it into
dependent sub-questions, and aggregates the results into one answer.
"""
from .config import EngineConfig, TimeoutConfig, ExecutionConfig, SearchConfig, StructuredQueryConfig, ModelConfig
from .domain import (
    ToolKind,
    QueryLabel,
    SubQuestion,
    RunContext,
    RunResult,
    ChatTurn,
    ToolCall
)
from .graph import ToolSelectionGraph

__all__ = [
    "ToolSelectionGraph",
    "EngineConfig",
    "TimeoutConfig",
    "ExecutionConfig",
    "SearchConfig",
    "StructuredQueryConfig",
    "ModelConfig",
    "ToolKind",
    "QueryLabel",
    "SubQuestion",
    "RunContext",
    "RunResult",
    "ChatTurn",
    "ToolCall"
]
