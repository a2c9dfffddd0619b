"""
Domain models - Core entities of the tool-selection engine.
Following SOLID: Single Responsibility Principle - each model has one clear purpose.
"""
from enum import Enum
from typing import List, Dict, Any, Optional, Literal, Union
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ToolKind(str, Enum):
    """Which adapter executes a sub-question (or a single-tool run)."""
    CALCULATOR = "calculator"
    SEARCH = "search"
    STRUCTURED_QUERY = "structured_query"
    DIRECT = "direct"


class QueryLabel(str, Enum):
    """Classification outcome for an incoming query."""
    CALCULATOR = "calculator"
    SEARCH = "search"
    COMPOSITE = "composite"
    UNCLEAR = "unclear"
    DIRECT = "direct"


class SubQuestion(BaseModel):
    """
    One atomic unit of work within a decomposed query.

    Instances are frozen; the scheduler replaces them with updated copies
    (see `mark_completed`) instead of mutating them in place.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    tool: ToolKind
    depends_on: List[str] = Field(default_factory=list)
    completed: bool = False
    result: Optional[str] = None

    def is_ready(self, completed_ids: set) -> bool:
        """True when not yet completed and every dependency is completed."""
        return not self.completed and all(dep in completed_ids for dep in self.depends_on)

    def mark_completed(self, result: str) -> "SubQuestion":
        return self.model_copy(update={"completed": True, "result": result})

    def without_dependencies(self) -> "SubQuestion":
        return self.model_copy(update={"depends_on": []})


class TextOutput(BaseModel):
    """Tool output that was prose from the start."""
    kind: Literal["text"] = "text"
    text: str


class StructuredOutput(BaseModel):
    """
    Tool output that arrived as a structured payload.

    Only the fields the engine knows how to use are lifted out; everything
    else stays in `raw` and is serialized defensively when needed.
    """
    kind: Literal["structured"] = "structured"
    answer_box: Optional[Dict[str, Any]] = None
    knowledge_graph: Optional[Dict[str, Any]] = None
    organic_results: List[Dict[str, Any]] = Field(default_factory=list)
    sports_results: Optional[Any] = None
    error: Optional[str] = None
    raw: Any = None

    @classmethod
    def from_payload(cls, payload: Any) -> "StructuredOutput":
        if not isinstance(payload, dict):
            return cls(raw=payload)

        def _as_dict(value: Any) -> Optional[Dict[str, Any]]:
            return value if isinstance(value, dict) else None

        organic = payload.get("organic_results")
        error = payload.get("error")
        return cls(
            answer_box=_as_dict(payload.get("answer_box")),
            knowledge_graph=_as_dict(payload.get("knowledge_graph")),
            organic_results=[r for r in organic if isinstance(r, dict)] if isinstance(organic, list) else [],
            sports_results=payload.get("sports_results"),
            error=str(error) if error else None,
            raw=payload,
        )


ToolOutput = Union[TextOutput, StructuredOutput]


class ChatTurn(BaseModel):
    """A single prior message of the conversation."""
    role: Literal["user", "assistant", "system"]
    content: str


class RunContext(BaseModel):
    """
    Explicit per-run options supplied by the caller.

    `search_query` and `structured_query` are the prior tool query templates
    the chat front-end may pin for a conversation.
    """
    chat_history: List[ChatTurn] = Field(default_factory=list)
    search_query: Optional[str] = None
    structured_query: Optional[str] = None
    run_structured_query: bool = True
    multishot_enabled: bool = True


class ToolCall(BaseModel):
    """Record of a tool invocation."""
    tool: ToolKind
    input: str
    success: bool
    error: Optional[str] = None
    sub_question_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class RunResult(BaseModel):
    """What `ToolSelectionGraph.run` hands back to its caller."""
    response: str
    tool_used: str
    analysis: str = ""
    is_multishot: bool = False
    sub_questions: List[SubQuestion] = Field(default_factory=list)
    tools_called: List[ToolCall] = Field(default_factory=list)
    debug_logs: List[str] = Field(default_factory=list)
