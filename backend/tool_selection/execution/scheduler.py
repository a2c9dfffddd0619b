"""
Execution Scheduler - sub-question routing and result collection.

The loop is route_sub_question -> execute_<tool> -> collect_result ->
route_sub_question, one ready sub-question per pass. Every pass through
the collector counts against the safety valve, so a malformed dependency
graph cannot keep the loop alive.
"""
import logging
import math
from typing import Any, Dict, Optional

from ..config import ExecutionConfig
from ..domain.models import ToolKind
from ..state import RunState, next_ready_sub_question
from ..tools.normalization import format_failure

logger = logging.getLogger(__name__)

TOOL_ROUTES = {
    ToolKind.CALCULATOR: "calculator",
    ToolKind.SEARCH: "search",
    ToolKind.DIRECT: "direct",
    ToolKind.STRUCTURED_QUERY: "structured_query",
}


class SubQuestionRouterNode:
    """Selects the next sub-question whose dependencies are all completed."""

    async def __call__(self, state: RunState) -> Dict[str, Any]:
        sub_questions = state.get("sub_questions", [])
        next_sq = next_ready_sub_question(sub_questions)

        if next_sq is None:
            done = sum(1 for sq in sub_questions if sq.completed)
            logger.info(f"[ROUTER] No ready sub-question ({done}/{len(sub_questions)} completed)")
            return {
                "current_sub_question": None,
                "pending_output": None,
                "debug_logs": [f"[ROUTER] Nothing left to run ({done}/{len(sub_questions)} completed)"]
            }

        logger.info(f"[ROUTER] Next sub-question {next_sq.id} -> {next_sq.tool.value}")
        return {
            "current_sub_question": next_sq,
            "pending_output": None,
            "debug_logs": [f"[ROUTER] {next_sq.id} ({next_sq.tool.value}): {next_sq.text[:80]}"]
        }

    @staticmethod
    def route(state: RunState) -> str:
        current = state.get("current_sub_question")
        if current is None:
            return "aggregate"
        return TOOL_ROUTES[current.tool]


class ResultCollectorNode:
    """
    Stores the current sub-question's output and decides continue vs aggregate.

    The safety valve forces aggregation once `max_completed_steps` passes
    have been collected, or, when `safety_valve_ratio` is set, once that
    fraction of all sub-questions is completed.
    """

    def __init__(self, config: Optional[ExecutionConfig] = None):
        self.config = config or ExecutionConfig()

    def valve_threshold(self, total: int) -> int:
        threshold = self.config.max_completed_steps
        if self.config.safety_valve_ratio is not None and total > 0:
            threshold = min(threshold, max(1, math.ceil(total * self.config.safety_valve_ratio)))
        return threshold

    async def __call__(self, state: RunState) -> Dict[str, Any]:
        current = state.get("current_sub_question")
        sub_questions = list(state.get("sub_questions", []))
        completed_steps = state.get("completed_steps", 0)

        if current is None:
            logger.warning("[COLLECTOR] Called without a current sub-question")
            return {
                "safety_valve_triggered": True,
                "debug_logs": ["[COLLECTOR] ✗ No current sub-question; forcing aggregation"]
            }

        output = state.get("pending_output")
        text = output if isinstance(output, str) and output else format_failure("No output from tool")

        results = dict(state.get("intermediate_results", {}))
        results[current.id] = text
        sub_questions = [
            sq.mark_completed(text) if sq.id == current.id else sq
            for sq in sub_questions
        ]
        completed_steps += 1

        total = len(sub_questions)
        done = sum(1 for sq in sub_questions if sq.completed)
        remaining_ready = next_ready_sub_question(sub_questions)

        valve = False
        if done < total:
            if completed_steps >= self.valve_threshold(total):
                valve = True
                logger.warning(
                    f"[COLLECTOR] Safety valve: {completed_steps} steps collected, "
                    f"{total - done} sub-questions left unresolved"
                )
            elif remaining_ready is None:
                valve = True
                logger.warning(f"[COLLECTOR] {total - done} sub-questions can never become ready")

        logger.info(f"[COLLECTOR] Stored result for {current.id} ({done}/{total} completed)")
        return {
            "sub_questions": sub_questions,
            "intermediate_results": results,
            "current_sub_question": None,
            "pending_output": None,
            "completed_steps": completed_steps,
            "safety_valve_triggered": valve,
            "debug_logs": [
                f"[COLLECTOR] {current.id} completed ({done}/{total})"
                + (" - safety valve triggered" if valve else "")
            ]
        }

    @staticmethod
    def route(state: RunState) -> str:
        if state.get("safety_valve_triggered"):
            return "aggregate"
        sub_questions = state.get("sub_questions", [])
        if sub_questions and all(sq.completed for sq in sub_questions):
            return "aggregate"
        return "continue"
