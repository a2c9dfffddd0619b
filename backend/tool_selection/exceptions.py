"""
Custom exceptions for the tool-selection engine.

Adapters and model wrappers raise these; graph nodes catch them and apply
the local recovery rules, so none of them ever reaches the caller of `run()`.
"""

from typing import Optional, Dict, Any


class ToolSelectionError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ToolError(ToolSelectionError):
    """Raised when a tool invocation fails."""

    def __init__(self, tool: str, message: str, tool_input: Optional[str] = None, **kwargs):
        self.tool = tool
        self.tool_input = tool_input
        super().__init__(f"{tool}: {message}", **kwargs)


class ToolTimeoutError(ToolError):
    """Raised when a tool call does not finish within its time budget."""

    def __init__(self, tool: str, timeout_seconds: float, **kwargs):
        self.timeout_seconds = timeout_seconds
        super().__init__(tool, f"timed out after {timeout_seconds}s", **kwargs)


class ToolResultError(ToolError):
    """Raised when a tool returns error-shaped text instead of raising."""


class ToolUnavailableError(ToolError):
    """Raised when the requested tool is not configured."""

    def __init__(self, tool: str, **kwargs):
        super().__init__(tool, "tool is not configured", **kwargs)


class ModelError(ToolSelectionError):
    """Raised when a language model call fails."""


class ModelTimeoutError(ModelError):
    """Raised when a language model call exceeds its time budget."""

    def __init__(self, purpose: str, timeout_seconds: float):
        self.purpose = purpose
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{purpose} model call timed out after {timeout_seconds}s")


class DecompositionParseError(ToolSelectionError):
    """Raised when a decomposition payload cannot be parsed at a given tier."""


class UnresolvedDependencyError(ToolSelectionError):
    """Raised when a sub-question references results that yield no usable value."""

    def __init__(self, unresolved_ids, **kwargs):
        self.unresolved_ids = list(unresolved_ids)
        super().__init__(
            f"Could not extract a usable value from: {', '.join(self.unresolved_ids)}",
            **kwargs
        )
