"""
Result Aggregator - one user-facing answer from all sub-question results.

Paths, in order:
1. Manual numeric aggregation when a calculator step is missing or failed
   (sum of the search values, optionally times a detected multiplier)
2. Model synthesis over every (sub-question, result) pair
3. Templated concatenation of the results when the model call fails

`fallback` runs the deterministic paths only and is what the graph uses
when a run hits its wall-clock ceiling or breaks down.
"""
import logging
from typing import Any, Dict, List, Optional

from ..config import TimeoutConfig
from ..domain.interfaces import ILanguageModel
from ..domain.models import SubQuestion, ToolKind
from ..exceptions import ModelError
from ..execution.resolver import extract_numeric_value
from ..infrastructure.language_model import complete_with_timeout
from ..infrastructure.tool_clients import format_number
from ..planning.templates import detect_multiplier
from ..state import RunState
from ..tools.normalization import is_failure_text, looks_like_error

logger = logging.getLogger(__name__)

MULTISHOT_TOOL_LABEL = "multishot"
RESULT_PREVIEW_CHARS = 1500


def calculator_step_failed(sub_questions: List[SubQuestion]) -> bool:
    return any(
        sq.tool == ToolKind.CALCULATOR and (is_failure_text(sq.result) or looks_like_error(sq.result))
        for sq in sub_questions
    )


def search_values(sub_questions: List[SubQuestion]) -> List[tuple]:
    """(sub-question, numeric value) for every search result that yields a number."""
    values = []
    for sq in sub_questions:
        if sq.tool != ToolKind.SEARCH or is_failure_text(sq.result):
            continue
        value = extract_numeric_value(sq.result)
        if value is not None:
            values.append((sq, float(value)))
    return values


def manual_aggregation(query: str, sub_questions: List[SubQuestion]) -> Optional[str]:
    """
    Compute the answer without a model: sum the search values and apply
    a multiplier found in the query.

    Returns None when there is not enough numeric data.
    """
    values = search_values(sub_questions)
    multiplier_text = detect_multiplier(query)

    if len(values) < 2 and not (values and multiplier_text):
        return None

    total = sum(value for _, value in values)
    lines = [f"- {sq.text}: {format_number(value)}" for sq, value in values]
    response = "Based on my research:\n\n" + "\n".join(lines) + "\n\n"

    if len(values) > 1:
        response += f"The combined total is {format_number(total)}.\n\n"

    final_value = total
    if multiplier_text:
        multiplier = float(multiplier_text)
        final_value = total * multiplier
        response += (
            f"Multiplying {format_number(total)} by {format_number(multiplier)} "
            f"gives {format_number(final_value)}.\n\n"
        )

    response += f"The final result is {format_number(final_value)}."
    logger.info(f"[AGGREGATOR] Manual aggregation result: {format_number(final_value)}")
    return response


def templated_concatenation(sub_questions: List[SubQuestion], results: Dict[str, str]) -> str:
    body = "\n\n".join(
        f'For "{sq.text}": {sq.result or results.get(sq.id) or "No result"}'
        for sq in sub_questions
    )
    return (
        "I found answers to parts of your question, but had trouble putting them all "
        f"together. Here's what I found:\n\n{body}"
    )


def partial_results_message(query: str, sub_questions: List[SubQuestion], results: Dict[str, str]) -> str:
    """Last-resort message; never empty."""
    gathered = [
        f'- {sq.text}: {(sq.result or results.get(sq.id))[:300]}'
        for sq in sub_questions
        if sq.result or results.get(sq.id)
    ]
    if not gathered:
        return (
            f'I wasn\'t able to gather enough information to answer "{query}". '
            "Please try again or rephrase your question."
        )
    return (
        f'I couldn\'t fully answer "{query}", but here are the partial results I gathered:\n\n'
        + "\n".join(gathered)
    )


class AggregatorNode:
    """LangGraph node that synthesizes the final multishot answer."""

    def __init__(self, model: ILanguageModel, timeouts: Optional[TimeoutConfig] = None):
        self.model = model
        self.timeouts = timeouts or TimeoutConfig()

    def build_prompt(self, query: str, sub_questions: List[SubQuestion], results: Dict[str, str]) -> str:
        sections = "\n\n".join(
            f"Sub-question: {sq.text}\n"
            f"Tool used: {sq.tool.value}\n"
            f"Result: {(sq.result or results.get(sq.id) or 'No result')[:RESULT_PREVIEW_CHARS]}"
            for sq in sub_questions
        )
        return f"""I've broken down a complex query into sub-questions and gathered results for each.
Now I need to synthesize these results into a coherent final answer.

Original query: {query}

Results for each sub-question:
{sections}

Your task:
1. Analyze how these results work together to answer the original query.
2. Synthesize a clear, comprehensive response that addresses the original query.
3. Reference the specific data obtained from each sub-question.
4. If a calculator step failed or looks like an error, extract the numeric values from the search results and perform the calculation yourself.

Generate a natural, helpful response that fully answers the original query."""

    def fallback(self, state: RunState) -> str:
        """Deterministic answer from whatever state exists; makes no model call."""
        query = state.get("query", "")
        sub_questions = state.get("sub_questions") or []
        results = state.get("intermediate_results") or {}
        completed = [sq for sq in sub_questions if sq.completed]

        manual = manual_aggregation(query, completed)
        if manual:
            return manual
        if completed:
            return templated_concatenation(completed, results)
        return partial_results_message(query, sub_questions, results)

    async def __call__(self, state: RunState) -> Dict[str, Any]:
        query = state["query"]
        sub_questions = state.get("sub_questions") or []
        results = state.get("intermediate_results") or {}
        logger.info(f"[AGGREGATOR] Aggregating {len(sub_questions)} sub-question results")

        response = None
        path = ""

        if not sub_questions:
            response, path = partial_results_message(query, [], results), "empty"
        elif calculator_step_failed(sub_questions):
            logger.info("[AGGREGATOR] Calculator step failed; attempting manual aggregation")
            response = manual_aggregation(query, sub_questions)
            path = "manual" if response else ""

        if response is None:
            try:
                response = await complete_with_timeout(
                    self.model,
                    self.build_prompt(query, sub_questions, results),
                    self.timeouts.aggregation_seconds,
                    "aggregation"
                )
                path = "model"
            except ModelError as e:
                logger.warning(f"[AGGREGATOR] Model synthesis failed: {e.message}")
                response, path = templated_concatenation(sub_questions, results), "template"

        if not response or not response.strip():
            response, path = partial_results_message(query, sub_questions, results), "partial"

        logger.info(f"[AGGREGATOR] Final response via {path} path")
        return {
            "final_response": response,
            "processing_complete": True,
            "tool_used": MULTISHOT_TOOL_LABEL,
            "debug_logs": [f"[AGGREGATOR] ✓ Final response via {path} path"]
        }
