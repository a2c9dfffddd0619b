"""
RunState definition for the tool-selection workflow.

Each node receives the current snapshot and returns a partial update;
LangGraph merges it into the next snapshot. `debug_logs` and
`tools_called` are append-only channels, everything else is replaced.
"""
from operator import add
from typing import Annotated, Dict, List, Optional, TypedDict

from .domain.models import RunContext, SubQuestion, ToolCall


class RunState(TypedDict, total=False):
    """State threaded through one run of the tool-selection graph."""
    query: str
    context: RunContext

    # Classification
    label: str  # QueryLabel value
    analysis: str
    selected_tool: str  # ToolKind value for single-tool runs

    # Multishot workflow
    is_multishot: bool
    sub_questions: List[SubQuestion]
    intermediate_results: Dict[str, str]  # sub-question id -> normalized result text
    current_sub_question: Optional[SubQuestion]
    pending_output: Optional[str]  # Tool output waiting for the collector
    completed_steps: int
    safety_valve_triggered: bool

    processing_complete: bool
    final_response: str
    tool_used: str

    # Diagnostics (append-only)
    debug_logs: Annotated[List[str], add]
    tools_called: Annotated[List[ToolCall], add]


def create_initial_state(query: str, context: Optional[RunContext] = None) -> RunState:
    """Create a fresh RunState for one incoming query."""
    return RunState(
        query=query,
        context=context or RunContext(),
        label="",
        analysis="",
        selected_tool="",
        is_multishot=False,
        sub_questions=[],
        intermediate_results={},
        current_sub_question=None,
        pending_output=None,
        completed_steps=0,
        safety_valve_triggered=False,
        processing_complete=False,
        final_response="",
        tool_used="",
        debug_logs=[],
        tools_called=[],
    )


def completed_ids(sub_questions: List[SubQuestion]) -> set:
    return {sq.id for sq in sub_questions if sq.completed}


def next_ready_sub_question(sub_questions: List[SubQuestion]) -> Optional[SubQuestion]:
    """First sub-question in list order whose dependencies are all completed."""
    done = completed_ids(sub_questions)
    for sq in sub_questions:
        if sq.is_ready(done):
            return sq
    return None
