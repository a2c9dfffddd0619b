"""
Decomposer Node - turns a composite query into dependent sub-questions.

Fallback ladder:
1. Model plan, parsed by the three parser tiers (see parsing.py)
2. Template decomposition for canonical metric shapes
3. Emergency decomposition (always succeeds)

Whatever path wins, the list is validated: capped in size, ids made
unique, invalid dependencies dropped, and an entry point guaranteed.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..config import ExecutionConfig, TimeoutConfig
from ..domain.interfaces import ILanguageModel
from ..domain.models import SubQuestion, ToolKind
from ..exceptions import DecompositionParseError, ModelError, ModelTimeoutError
from ..infrastructure.language_model import complete_with_timeout
from ..state import RunState, next_ready_sub_question
from ..tools.adapters import ToolRegistry
from ..execution.resolver import ensure_entry_point, validate_dependencies
from .parsing import parse_decomposition
from .templates import emergency_decomposition, template_decomposition

logger = logging.getLogger(__name__)

# A model plan needs at least one step that calls a tool
ACTION_TOOLS = {ToolKind.SEARCH, ToolKind.CALCULATOR, ToolKind.STRUCTURED_QUERY}


def finalize_sub_questions(sub_questions: List[SubQuestion], max_sub_questions: int) -> List[SubQuestion]:
    """Cap, dedupe ids, drop invalid dependencies and guarantee an entry point."""
    unique: List[SubQuestion] = []
    seen = set()
    for sq in sub_questions:
        if sq.id in seen:
            logger.warning(f"[DECOMPOSER] Dropping duplicate sub-question id {sq.id}")
            continue
        seen.add(sq.id)
        unique.append(sq)

    if len(unique) > max_sub_questions:
        logger.warning(f"[DECOMPOSER] Truncating {len(unique)} sub-questions to {max_sub_questions}")
        unique = unique[:max_sub_questions]

    return ensure_entry_point(validate_dependencies(unique))


class DecomposerNode:
    """LangGraph node that produces the sub-question list for a multishot run."""

    def __init__(
        self,
        model: ILanguageModel,
        timeouts: Optional[TimeoutConfig] = None,
        execution: Optional[ExecutionConfig] = None,
        tools: Optional[ToolRegistry] = None
    ):
        self.model = model
        self.timeouts = timeouts or TimeoutConfig()
        self.execution = execution or ExecutionConfig()
        self.tools = tools

    @property
    def plannable_tools(self) -> set:
        """Tools a model plan may use; structured queries only when a client is configured."""
        kinds = {ToolKind.SEARCH, ToolKind.CALCULATOR, ToolKind.DIRECT}
        if self.tools is not None and self.tools.structured_query is not None:
            kinds.add(ToolKind.STRUCTURED_QUERY)
        return kinds

    def build_prompt(self, query: str) -> str:
        tool_help = '"search" for web searches, "calculator" for math, "direct" to reason over earlier answers'
        if ToolKind.STRUCTURED_QUERY in self.plannable_tools:
            tool_help += ', "structured_query" for a SQL statement against our database'
        return f"""Break down this complex query into 2-3 simpler sub-questions.

Query: {query}

For each sub-question, provide:
1. Which tool to use ({tool_help})
2. The exact sub-question text
3. Which earlier sub-questions it depends on

Format as a SIMPLE JSON object with the essential fields only:
{{
  "subQuestions": [
    {{"id": "q1", "question": "What is X?", "toolType": "search", "dependsOn": []}},
    {{"id": "q2", "question": "Calculate Y using q1", "toolType": "calculator", "dependsOn": ["q1"]}}
  ]
}}

Output ONLY the JSON, no explanations."""

    async def _model_decomposition(self, query: str) -> List[SubQuestion]:
        raw = await complete_with_timeout(
            self.model,
            self.build_prompt(query),
            self.timeouts.decomposition_seconds,
            "decomposition"
        )
        logger.debug(f"[DECOMPOSER] Raw decomposition: {raw[:500]}")
        plannable = self.plannable_tools
        parsed = parse_decomposition(raw)
        sub_questions = [sq for sq in parsed if sq.tool in plannable]
        if len(sub_questions) < len(parsed):
            dropped = [sq.id for sq in parsed if sq.tool not in plannable]
            logger.warning(f"[DECOMPOSER] Dropping sub-questions for unavailable tools: {dropped}")
        if not any(sq.tool in ACTION_TOOLS for sq in sub_questions):
            raise DecompositionParseError("model plan has no tool sub-questions")
        return sub_questions

    async def decompose(self, query: str) -> Tuple[List[SubQuestion], str]:
        """
        Returns:
            (validated sub-questions, name of the path that produced them)
        """
        try:
            sub_questions, source = await self._model_decomposition(query), "model"
        except ModelTimeoutError as e:
            logger.warning(f"[DECOMPOSER] {e.message}; using deterministic decomposition")
            sub_questions, source = None, ""
        except (ModelError, DecompositionParseError) as e:
            logger.warning(f"[DECOMPOSER] Model decomposition unusable: {e.message}")
            sub_questions, source = None, ""

        if not sub_questions:
            sub_questions = template_decomposition(query)
            source = "template"
        if not sub_questions:
            sub_questions = emergency_decomposition(query)
            source = "emergency"

        return finalize_sub_questions(sub_questions, self.execution.max_sub_questions), source

    async def __call__(self, state: RunState) -> Dict[str, Any]:
        query = state["query"]
        logger.info(f"[DECOMPOSER] Decomposing: {query[:100]}")

        sub_questions, source = await self.decompose(query)
        summary = ", ".join(
            f"{sq.id}:{sq.tool.value}<-{sq.depends_on}" for sq in sub_questions
        )
        logger.info(f"[DECOMPOSER] {len(sub_questions)} sub-questions from {source}: {summary}")

        return {
            "is_multishot": True,
            "sub_questions": sub_questions,
            "intermediate_results": {},
            "current_sub_question": next_ready_sub_question(sub_questions),
            "completed_steps": 0,
            "debug_logs": [f"[DECOMPOSER] {source} decomposition: {summary}"]
        }
