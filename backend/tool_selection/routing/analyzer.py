"""
Query Analyzer - classifier first, language model only when inconclusive.

The model is asked for exactly one label out of a closed vocabulary and is
treated as unreliable: the label is found by case-insensitive substring
match, and anything unrecognized, slow or failing becomes Direct.
"""
import logging
import re
from typing import Any, Dict, Optional

from ..config import TimeoutConfig
from ..domain.interfaces import ILanguageModel
from ..domain.models import QueryLabel, ToolKind
from ..exceptions import ModelError
from ..infrastructure.language_model import complete_with_timeout
from ..state import RunState
from ..tools.adapters import ToolRegistry
from .patterns import classify_query

logger = logging.getLogger(__name__)

# Checked in this order; the first hit wins
LABEL_VOCABULARY = (
    ("multishot", QueryLabel.COMPOSITE),
    ("multi-shot", QueryLabel.COMPOSITE),
    ("calculator", QueryLabel.CALCULATOR),
    ("search", QueryLabel.SEARCH),
    ("serpapi", QueryLabel.SEARCH),
    ("direct", QueryLabel.DIRECT),
)

_LABEL_LINE = re.compile(r"label\s*[:=]\s*(.+)", re.IGNORECASE)

PATTERN_ANALYSIS = {
    QueryLabel.COMPOSITE: "This query appears to require multiple tools in sequence.",
    QueryLabel.CALCULATOR: "This query appears to require mathematical calculation.",
    QueryLabel.SEARCH: "This query appears to require a web search for current information.",
}


def parse_label(text: Optional[str]) -> QueryLabel:
    """Map free model text onto the label vocabulary; unknown text is Direct."""
    if not text:
        return QueryLabel.DIRECT

    match = _LABEL_LINE.search(text)
    candidate = (match.group(1) if match else text).lower()

    for token, label in LABEL_VOCABULARY:
        if token in candidate:
            return label
    return QueryLabel.DIRECT


class ModelAnalyzer:
    """Asks the language model to pick one label for an unclear query."""

    def __init__(self, model: ILanguageModel, timeout_seconds: float = 8.0):
        self.model = model
        self.timeout_seconds = timeout_seconds

    def build_prompt(self, query: str) -> str:
        return f"""You need to analyze a user query and decide how it should be answered.

Options:
- "calculator" - mathematical calculations, arithmetic problems and numeric computations
- "search" - current events or facts that change over time or are not in your training data
- "multishot" - complex queries that need several tools in sequence (e.g. search for data, then calculate with it)
- "direct" - general questions that need neither calculation nor current web data

User query: {query}

Answer with exactly two lines:
LABEL: <one of calculator, search, multishot, direct>
REASON: <one short sentence>"""

    async def analyze(self, query: str) -> tuple:
        """
        Returns:
            (QueryLabel, raw analysis text). Never raises for model failures.
        """
        try:
            analysis = await complete_with_timeout(
                self.model, self.build_prompt(query), self.timeout_seconds, "analysis"
            )
        except ModelError as e:
            logger.warning(f"[ANALYZER] Model analysis failed, defaulting to direct: {e.message}")
            return QueryLabel.DIRECT, f"Model analysis unavailable ({e.message}); answering directly."

        label = parse_label(analysis)
        logger.info(f"[ANALYZER] Model picked {label.value}")
        return label, analysis


class QueryAnalyzerNode:
    """
    LangGraph node: runs the Pattern Classifier, escalates Unclear queries
    to the model and settles on a label the configured tools can serve.
    """

    def __init__(
        self,
        model: ILanguageModel,
        tools: ToolRegistry,
        timeouts: Optional[TimeoutConfig] = None
    ):
        self.tools = tools
        self.analyzer = ModelAnalyzer(model, (timeouts or TimeoutConfig()).analysis_seconds)

    def _settle(self, label: QueryLabel, multishot_enabled: bool) -> QueryLabel:
        """Downgrade labels whose tools are missing or disabled."""
        if label == QueryLabel.COMPOSITE and not (multishot_enabled and self.tools.search_available):
            return QueryLabel.DIRECT
        if label == QueryLabel.SEARCH and not self.tools.search_available:
            return QueryLabel.DIRECT
        if label == QueryLabel.CALCULATOR and self.tools.calculator is None:
            return QueryLabel.DIRECT
        if label == QueryLabel.UNCLEAR:
            return QueryLabel.DIRECT
        return label

    async def __call__(self, state: RunState) -> Dict[str, Any]:
        query = state["query"]
        context = state.get("context")
        multishot_enabled = context.multishot_enabled if context else True

        label = classify_query(query, search_available=self.tools.search_available)
        source = "pattern"

        if label == QueryLabel.UNCLEAR:
            label, analysis = await self.analyzer.analyze(query)
            source = "model"
        else:
            analysis = PATTERN_ANALYSIS[label]

        settled = self._settle(label, multishot_enabled)
        if settled != label:
            logger.info(f"[ANALYZER] {label.value} not available for this run, using {settled.value}")

        selected_tool = {
            QueryLabel.CALCULATOR: ToolKind.CALCULATOR.value,
            QueryLabel.SEARCH: ToolKind.SEARCH.value,
        }.get(settled, ToolKind.DIRECT.value)

        logger.info(f"[ANALYZER] Query labelled {settled.value} ({source})")
        return {
            "label": settled.value,
            "analysis": analysis,
            "selected_tool": selected_tool,
            "debug_logs": [f"[ANALYZER] {source} classification -> {settled.value}"]
        }

    @staticmethod
    def route(state: RunState) -> str:
        """Conditional edge out of analyze_query."""
        return "decompose" if state.get("label") == QueryLabel.COMPOSITE.value else "single_tool"
