"""
Tool execution nodes.

One node per ToolKind. Every node serves two modes:
- single-tool: answer the user's query; on failure hand over to the
  direct node without exposing the tool error
- multishot: execute the current sub-question and leave its normalized
  output in `pending_output` for the collector; failures are recorded as
  the sub-question's result and the run continues
"""
import logging
from typing import Any, Dict, List, Optional

from ..config import EngineConfig
from ..domain.interfaces import ILanguageModel
from ..domain.models import ChatTurn, SubQuestion, ToolCall, ToolKind
from ..exceptions import ModelError, ToolError, ToolSelectionError, UnresolvedDependencyError
from ..infrastructure.language_model import complete_with_timeout
from ..infrastructure.tool_clients import evaluate_expression, format_number
from ..state import RunState
from ..tools.adapters import ToolRegistry
from ..tools.normalization import extract_search_information, format_failure, is_failure_text, output_to_text
from .expressions import build_dependency_expression, extract_expression, sanitize_expression
from .resolver import REFERENCE, dependency_values, resolve_references

logger = logging.getLogger(__name__)

DIRECT_APOLOGY = (
    "I apologize, but I encountered an error while processing your request. "
    "Could you please try rephrasing your question?"
)
SQL_RESULTS_MARKER = "SQL Results"
USER_INPUT_PLACEHOLDER = "{{USER_INPUT}}"


class ToolNode:
    """Shared plumbing for the execution nodes."""

    tool_kind: ToolKind

    def __init__(self, model: ILanguageModel, tools: ToolRegistry, config: Optional[EngineConfig] = None):
        self.model = model
        self.tools = tools
        self.config = config or EngineConfig()

    @property
    def tag(self) -> str:
        return "[EXECUTOR]"

    def _call_record(
        self,
        tool_input: str,
        success: bool,
        error: Optional[str] = None,
        sub_question: Optional[SubQuestion] = None,
        tool: Optional[ToolKind] = None
    ) -> ToolCall:
        return ToolCall(
            tool=tool or self.tool_kind,
            input=tool_input,
            success=success,
            error=error,
            sub_question_id=sub_question.id if sub_question else None,
        )

    @staticmethod
    def _is_multishot(state: RunState) -> bool:
        return bool(state.get("is_multishot")) and state.get("current_sub_question") is not None

    def _fall_back_to_direct(self, reason: str, calls: List[ToolCall]) -> Dict[str, Any]:
        logger.warning(f"{self.tag} {self.tool_kind.value} failed ({reason}); falling back to direct answer")
        return {
            "selected_tool": ToolKind.DIRECT.value,
            "analysis": f"Attempted to use {self.tool_kind.value} but it failed; answered directly instead.",
            "tools_called": calls,
            "debug_logs": [f"{self.tag} ✗ {self.tool_kind.value} failed, falling back to direct"]
        }

    def _sub_question_output(
        self,
        sub_question: SubQuestion,
        text: str,
        calls: List[ToolCall]
    ) -> Dict[str, Any]:
        status = "✗" if is_failure_text(text) else "✓"
        return {
            "pending_output": text,
            "tools_called": calls,
            "debug_logs": [f"{self.tag} {status} {sub_question.id} ({sub_question.tool.value}): {text[:120]}"]
        }

    async def __call__(self, state: RunState) -> Dict[str, Any]:
        if self._is_multishot(state):
            return await self.run_sub_question(state, state["current_sub_question"])
        return await self.run_single(state)

    async def run_single(self, state: RunState) -> Dict[str, Any]:
        raise NotImplementedError

    async def run_sub_question(self, state: RunState, sub_question: SubQuestion) -> Dict[str, Any]:
        raise NotImplementedError


class CalculatorNode(ToolNode):
    """Expression extraction, evaluation and answer formatting."""

    tool_kind = ToolKind.CALCULATOR

    async def _model_expression(self, prompt: str) -> str:
        return await complete_with_timeout(
            self.model, prompt, self.config.timeouts.expression_seconds, "expression"
        )

    async def single_expression(self, query: str) -> str:
        """Heuristic extraction first, model second."""
        expression = extract_expression(query)
        if expression is None:
            expression = await self._model_expression(
                "Extract only the mathematical expression from this query.\n"
                "Return ONLY the expression, nothing else.\n\n"
                f"Query: {query}"
            )
        return expression

    async def dependent_expression(self, sub_question: SubQuestion, results: Dict[str, str]) -> str:
        """
        Expression for a multishot calculator step.

        Explicit references are resolved directly; otherwise the expression
        is built from the dependency values, and only as a last resort
        written by the model.

        Raises:
            UnresolvedDependencyError: If a needed result has no usable number.
        """
        text = sub_question.text
        substitute_zero = self.config.execution.substitute_zero_for_unresolved
        referenced = REFERENCE.findall(text)

        if referenced:
            resolved, unresolved = resolve_references(text, results, substitute_zero)
            if unresolved:
                raise UnresolvedDependencyError(unresolved)
            expression = extract_expression(resolved)
            if expression is not None:
                return expression

        dependency_ids = list(sub_question.depends_on) or referenced
        if not dependency_ids:
            return await self.single_expression(text)

        values, unresolved = dependency_values(dependency_ids, results)
        if unresolved and not substitute_zero:
            raise UnresolvedDependencyError(unresolved)
        if unresolved:
            logger.warning(f"[RESOLVER] Substituting 0 for unresolved {unresolved} as last resort")
            values = values + ["0"] * len(unresolved)

        expression = build_dependency_expression(text, values)
        if expression is not None:
            return expression

        listing = "\n".join(f"{dep}: {results.get(dep, 'Unknown')[:500]}" for dep in dependency_ids)
        generated = await self._model_expression(
            "I need to perform a calculation based on these previous results:\n"
            f"{listing}\n\n"
            f"The instruction is: {text}\n\n"
            "Give me a simple mathematical expression using the numeric values from the results, "
            "or the ids above where a value is needed.\n"
            "ONLY return the expression, nothing else."
        )
        resolved, unresolved = resolve_references(generated, results, substitute_zero)
        if unresolved:
            raise UnresolvedDependencyError(unresolved)
        return resolved

    async def evaluate(self, expression: str) -> str:
        """
        Run the calculator adapter; fall back to local evaluation on failure.

        Raises:
            ToolError: If neither the adapter nor the local evaluator produced a number.
        """
        sanitized = sanitize_expression(expression)
        if not sanitized:
            raise ToolError(self.tool_kind.value, "Could not extract a valid mathematical expression", expression)

        try:
            output = await self.tools.get(ToolKind.CALCULATOR).invoke(sanitized)
            return output_to_text(output)
        except ToolError as e:
            logger.info(f"{self.tag} Calculator failed ({e.message}); evaluating {sanitized!r} locally")
            try:
                value = evaluate_expression(sanitized)
            except (SyntaxError, ValueError, TypeError, ZeroDivisionError, OverflowError) as local_error:
                raise ToolError(self.tool_kind.value, f"{e.message}; local evaluation failed: {local_error}", sanitized) from e
            if value != value or value in (float("inf"), float("-inf")):
                raise ToolError(self.tool_kind.value, "The calculation resulted in an invalid number", sanitized) from e
            return format_number(value)

    async def run_single(self, state: RunState) -> Dict[str, Any]:
        query = state["query"]
        expression = ""
        try:
            expression = await self.single_expression(query)
            result = await self.evaluate(expression)
        except ToolSelectionError as e:
            call = self._call_record(expression or query, False, e.message)
            return self._fall_back_to_direct(e.message, [call])

        logger.info(f"{self.tag} {expression!r} = {result}")
        call = self._call_record(sanitize_expression(expression), True)

        try:
            response = await complete_with_timeout(
                self.model,
                f"The user asked: {query}\n\n"
                f"I've calculated the result: {result}\n\n"
                "Please generate a helpful and natural-sounding response that explains "
                "the calculation and provides the result.",
                self.config.timeouts.response_seconds,
                "calculator response"
            )
        except ModelError as e:
            logger.warning(f"{self.tag} Response formatting failed: {e.message}")
            response = f"The result of the calculation is {result}."

        return {
            "final_response": response,
            "tool_used": ToolKind.CALCULATOR.value,
            "tools_called": [call],
            "debug_logs": [f"{self.tag} ✓ calculator: {expression} = {result}"]
        }

    async def run_sub_question(self, state: RunState, sub_question: SubQuestion) -> Dict[str, Any]:
        results = state.get("intermediate_results", {})
        expression = ""
        try:
            expression = await self.dependent_expression(sub_question, results)
            result = await self.evaluate(expression)
        except UnresolvedDependencyError as e:
            text = format_failure(
                f"Could not perform the calculation because no usable number was found in "
                f"{', '.join(e.unresolved_ids)}."
            )
            call = self._call_record(expression or sub_question.text, False, e.message, sub_question)
            return self._sub_question_output(sub_question, text, [call])
        except ToolSelectionError as e:
            text = format_failure(f"Error performing calculation: {e.message}")
            call = self._call_record(expression or sub_question.text, False, e.message, sub_question)
            return self._sub_question_output(sub_question, text, [call])

        call = self._call_record(sanitize_expression(expression), True, sub_question=sub_question)
        return self._sub_question_output(sub_question, result, [call])


class SearchNode(ToolNode):
    """Web search, result extraction and answer synthesis."""

    tool_kind = ToolKind.SEARCH

    async def search_query(self, state: RunState) -> str:
        """Pinned query template if the caller supplied one, else a model rewrite."""
        context = state.get("context")
        if context and context.search_query and context.search_query.strip():
            logger.info(f"{self.tag} Using caller-supplied search query")
            return context.search_query.strip()

        query = state["query"]
        try:
            rewritten = await complete_with_timeout(
                self.model,
                "Convert this user question into a clear, concise search query for a search engine.\n"
                "Return ONLY the search query, nothing else.\n\n"
                f"User question: {query}",
                self.config.timeouts.analysis_seconds,
                "search query"
            )
            return rewritten.strip().strip('"')
        except ModelError as e:
            logger.warning(f"{self.tag} Search query rewrite failed, using raw query: {e.message}")
            return query

    async def run_single(self, state: RunState) -> Dict[str, Any]:
        query = state["query"]
        search_query = await self.search_query(state)

        try:
            output = await self.tools.get(ToolKind.SEARCH).invoke(search_query)
        except ToolError as e:
            call = self._call_record(search_query, False, e.message)
            return self._fall_back_to_direct(e.message, [call])

        search_config = self.config.search
        info = extract_search_information(output, search_config.max_result_chars, search_config.truncation_keep_chars)

        prompt = f"""
=== USER QUERY ===
{query}

=== SEARCH RESULTS ===
{info}

=== INSTRUCTIONS ===
Generate a helpful and natural-sounding response that answers the user's question based on the search results above.
Include relevant facts from the search results, but be concise.
If the search results don't directly answer the question, acknowledge that and provide the best information available.
"""
        try:
            response = await complete_with_timeout(
                self.model, prompt, self.config.timeouts.response_seconds, "search response"
            )
        except ModelError as e:
            logger.warning(f"{self.tag} Search answer synthesis failed: {e.message}")
            response = (
                f'I found some information about "{query}", but I\'m having trouble formatting it '
                f"into a helpful response. Here's what I found:\n\n{info[:300]}..."
            )

        return {
            "final_response": response,
            "tool_used": ToolKind.SEARCH.value,
            "tools_called": [self._call_record(search_query, True)],
            "debug_logs": [f"{self.tag} ✓ search: {search_query[:80]}"]
        }

    async def run_sub_question(self, state: RunState, sub_question: SubQuestion) -> Dict[str, Any]:
        # Unresolved references stay in the text; the search still runs
        search_text, _ = resolve_references(sub_question.text, state.get("intermediate_results", {}))
        try:
            output = await self.tools.get(ToolKind.SEARCH).invoke(search_text)
        except ToolError as e:
            call = self._call_record(search_text, False, e.message, sub_question)
            return self._sub_question_output(sub_question, format_failure(f"Search failed: {e.message}"), [call])

        call = self._call_record(search_text, True, sub_question=sub_question)
        return self._sub_question_output(sub_question, output_to_text(output), [call])


class DirectNode(ToolNode):
    """Answer with the language model alone, optionally grounded on structured-query rows."""

    tool_kind = ToolKind.DIRECT

    async def structured_rows(self, state: RunState) -> tuple:
        """
        Run the caller's structured-query template, if one applies.

        Returns:
            (rows text or None, list of ToolCall records)
        """
        context = state.get("context")
        query = state["query"]
        if (
            self.tools.structured_query is None
            or context is None
            or not context.run_structured_query
            or not (context.structured_query and context.structured_query.strip())
            or SQL_RESULTS_MARKER in query
        ):
            return None, []

        statement = context.structured_query.replace(USER_INPUT_PLACEHOLDER, query)
        try:
            output = await self.tools.structured_query.invoke(statement)
        except ToolError as e:
            logger.warning(f"{self.tag} Structured query failed, answering without rows: {e.message}")
            return None, [self._call_record(statement, False, e.message, tool=ToolKind.STRUCTURED_QUERY)]
        return output_to_text(output), [self._call_record(statement, True, tool=ToolKind.STRUCTURED_QUERY)]

    def build_prompt(self, query: str, history: List[ChatTurn], rows: Optional[str]) -> str:
        parts = ["You are a helpful assistant. Answer the user's question."]
        if history:
            transcript = "\n".join(f"{turn.role}: {turn.content}" for turn in history[-10:])
            parts.append(f"Conversation so far:\n{transcript}")
        if rows:
            parts.append(f"{SQL_RESULTS_MARKER}:\n{rows}")
        parts.append(f"Question: {query}")
        return "\n\n".join(parts)

    async def answer(self, query: str, history: List[ChatTurn], rows: Optional[str]) -> str:
        return await complete_with_timeout(
            self.model,
            self.build_prompt(query, history, rows),
            self.config.timeouts.response_seconds,
            "direct answer"
        )

    async def run_single(self, state: RunState) -> Dict[str, Any]:
        context = state.get("context")
        history = context.chat_history if context else []
        rows, calls = await self.structured_rows(state)

        try:
            response = await self.answer(state["query"], history, rows)
        except ModelError as e:
            logger.error(f"{self.tag} Direct answer failed: {e.message}")
            response = DIRECT_APOLOGY

        return {
            "final_response": response,
            "tool_used": ToolKind.STRUCTURED_QUERY.value if rows else ToolKind.DIRECT.value,
            "tools_called": calls,
            "debug_logs": [f"{self.tag} ✓ direct answer{' with structured query rows' if rows else ''}"]
        }

    async def run_sub_question(self, state: RunState, sub_question: SubQuestion) -> Dict[str, Any]:
        text, _ = resolve_references(sub_question.text, state.get("intermediate_results", {}))
        try:
            answer = await self.answer(text, [], None)
        except ModelError as e:
            return self._sub_question_output(sub_question, format_failure(f"Direct answer failed: {e.message}"), [])
        return self._sub_question_output(sub_question, answer, [])


class StructuredQueryNode(ToolNode):
    """Runs a sub-question's text as a structured query. Only reached from multishot plans."""

    tool_kind = ToolKind.STRUCTURED_QUERY

    async def run_sub_question(self, state: RunState, sub_question: SubQuestion) -> Dict[str, Any]:
        statement, _ = resolve_references(sub_question.text, state.get("intermediate_results", {}))
        try:
            output = await self.tools.get(ToolKind.STRUCTURED_QUERY).invoke(statement)
        except ToolError as e:
            call = self._call_record(statement, False, e.message, sub_question)
            return self._sub_question_output(sub_question, format_failure(f"Structured query failed: {e.message}"), [call])

        call = self._call_record(statement, True, sub_question=sub_question)
        return self._sub_question_output(sub_question, output_to_text(output), [call])


def route_after_tool(state: RunState) -> str:
    """Conditional edge shared by all execution nodes."""
    if state.get("is_multishot"):
        return "collect"
    if state.get("final_response"):
        return "done"
    return "direct"
