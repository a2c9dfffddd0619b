"""
Tool Selection Graph - LangGraph workflow for single-tool and multishot runs.

GRAPH STRUCTURE:

    START
      ↓
    analyze_query ──────────────┐
      ↓ single_tool             │ decompose
    route_single_tool           ↓
      ↓                       decompose
    execute_calculator            ↓
    execute_search  ──┐       route_sub_question ←──────────┐
    execute_direct    │           ↓                         │
      ↓ (failure)     │       execute_<tool>                │
    execute_direct    │           ↓                         │ continue
      ↓               │       collect_result ───────────────┘
     END ←────────────┘           ↓ aggregate
                              aggregate
                                  ↓
                                 END

Every run is bounded twice: LangGraph's recursion limit caps super-steps,
and `run()` races the whole stream against a wall-clock ceiling. Either
limit ends in the aggregator's deterministic fallback, never an exception.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from langgraph.errors import GraphRecursionError
from langgraph.graph import StateGraph, END

from .aggregation import AggregatorNode
from .aggregation.aggregator import MULTISHOT_TOOL_LABEL
from .config import EngineConfig
from .domain.interfaces import ICalculatorClient, ILanguageModel, ISearchClient, IStructuredQueryClient
from .domain.models import RunContext, RunResult, ToolKind
from .execution import (
    CalculatorNode,
    DirectNode,
    ResultCollectorNode,
    SearchNode,
    StructuredQueryNode,
    SubQuestionRouterNode,
    route_after_tool
)
from .infrastructure import (
    ChatModelLanguageModel,
    HttpStructuredQueryClient,
    SafeExpressionCalculator,
    SerpApiSearchClient
)
from .planning import DecomposerNode
from .routing import QueryAnalyzerNode
from .state import RunState, create_initial_state
from .tools import ToolRegistry

logger = logging.getLogger(__name__)


class ToolSelectionGraph:
    """
    Tool-selection and multishot execution engine.

    Usage:
        engine = ToolSelectionGraph(model, search=SerpApiSearchClient())
        result = await engine.run("population of Chicago plus population of Houston")
    """

    def __init__(
        self,
        model: ILanguageModel,
        calculator: Optional[ICalculatorClient] = None,
        search: Optional[ISearchClient] = None,
        structured_query: Optional[IStructuredQueryClient] = None,
        config: Optional[EngineConfig] = None
    ):
        self.model = model
        self.config = config or EngineConfig()
        self.tools = ToolRegistry.from_clients(
            calculator=calculator or SafeExpressionCalculator(),
            search=search,
            structured_query=structured_query,
            timeout_seconds=self.config.timeouts.tool_seconds
        )

        self._init_nodes()
        self.workflow = self._build_graph()

    @classmethod
    def from_config(cls, config: Optional[EngineConfig] = None) -> "ToolSelectionGraph":
        """Build the engine with OpenAI, SerpAPI (when a key is set) and the structured-query endpoint (when configured)."""
        config = config or EngineConfig.from_env()
        search = SerpApiSearchClient(config.search) if config.search.api_key else None
        structured = (
            HttpStructuredQueryClient(config.structured_query)
            if config.structured_query.endpoint_url else None
        )
        if search is None:
            logger.info("[GRAPH] No SerpAPI key configured; search and multishot disabled")
        return cls(
            model=ChatModelLanguageModel.from_config(config.model),
            search=search,
            structured_query=structured,
            config=config
        )

    def _init_nodes(self):
        self.analyzer = QueryAnalyzerNode(self.model, self.tools, self.config.timeouts)
        self.decomposer = DecomposerNode(self.model, self.config.timeouts, self.config.execution, self.tools)
        self.sub_question_router = SubQuestionRouterNode()
        self.collector = ResultCollectorNode(self.config.execution)
        self.aggregator = AggregatorNode(self.model, self.config.timeouts)

        self.calculator_node = CalculatorNode(self.model, self.tools, self.config)
        self.search_node = SearchNode(self.model, self.tools, self.config)
        self.direct_node = DirectNode(self.model, self.tools, self.config)
        self.structured_query_node = StructuredQueryNode(self.model, self.tools, self.config)

    def _build_graph(self):
        workflow = StateGraph(RunState)

        logger.info("[GRAPH] Adding nodes...")
        workflow.add_node("analyze_query", self.analyzer)
        workflow.add_node("route_single_tool", self._route_single_tool_node)
        workflow.add_node("decompose", self.decomposer)
        workflow.add_node("route_sub_question", self.sub_question_router)
        workflow.add_node("execute_calculator", self.calculator_node)
        workflow.add_node("execute_search", self.search_node)
        workflow.add_node("execute_direct", self.direct_node)
        workflow.add_node("execute_structured_query", self.structured_query_node)
        workflow.add_node("collect_result", self.collector)
        workflow.add_node("aggregate", self.aggregator)

        workflow.set_entry_point("analyze_query")

        logger.info("[GRAPH] Adding edges...")
        workflow.add_conditional_edges(
            "analyze_query",
            QueryAnalyzerNode.route,
            {"single_tool": "route_single_tool", "decompose": "decompose"}
        )
        workflow.add_conditional_edges(
            "route_single_tool",
            self._route_single_tool,
            {
                "calculator": "execute_calculator",
                "search": "execute_search",
                "direct": "execute_direct",
            }
        )

        workflow.add_edge("decompose", "route_sub_question")
        workflow.add_conditional_edges(
            "route_sub_question",
            SubQuestionRouterNode.route,
            {
                "calculator": "execute_calculator",
                "search": "execute_search",
                "direct": "execute_direct",
                "structured_query": "execute_structured_query",
                "aggregate": "aggregate",
            }
        )

        for node in ("execute_calculator", "execute_search", "execute_direct", "execute_structured_query"):
            workflow.add_conditional_edges(
                node,
                route_after_tool,
                {"collect": "collect_result", "direct": "execute_direct", "done": END}
            )

        workflow.add_conditional_edges(
            "collect_result",
            ResultCollectorNode.route,
            {"continue": "route_sub_question", "aggregate": "aggregate"}
        )
        workflow.add_edge("aggregate", END)

        logger.info("[GRAPH] Compiling workflow...")
        compiled = workflow.compile()
        logger.info("[GRAPH] ✓ Tool selection graph ready")
        return compiled

    async def _route_single_tool_node(self, state: RunState) -> Dict[str, Any]:
        tool = state.get("selected_tool") or ToolKind.DIRECT.value
        logger.info(f"[GRAPH] Routing query to {tool}")
        return {"debug_logs": [f"[GRAPH] Single-tool run: {tool}"]}

    @staticmethod
    def _route_single_tool(state: RunState) -> str:
        tool = state.get("selected_tool")
        if tool in (ToolKind.CALCULATOR.value, ToolKind.SEARCH.value):
            return tool
        return "direct"

    async def run(self, query: str, context: Optional[RunContext] = None) -> RunResult:
        """
        Answer one query.

        Never raises for run-level failures: a timeout, the recursion limit
        or an unexpected node error yields a degraded answer built from
        the partial state.
        """
        initial_state = create_initial_state(query, context)
        last_state: Dict[str, Any] = dict(initial_state)
        degraded_reason = None

        async def _drive():
            nonlocal last_state
            async for snapshot in self.workflow.astream(
                initial_state,
                config={"recursion_limit": self.config.execution.recursion_limit},
                stream_mode="values"
            ):
                last_state = snapshot

        logger.info(f"[GRAPH] Run started: {query[:100]}")
        try:
            await asyncio.wait_for(_drive(), timeout=self.config.timeouts.run_seconds)
        except asyncio.TimeoutError:
            degraded_reason = f"run exceeded {self.config.timeouts.run_seconds}s"
        except GraphRecursionError:
            degraded_reason = f"recursion limit {self.config.execution.recursion_limit} reached"
        except Exception as e:
            logger.exception(f"[GRAPH] Run failed: {e}")
            degraded_reason = f"unexpected error: {e}"

        debug_logs = list(last_state.get("debug_logs", []))
        response = last_state.get("final_response") or ""
        tool_used = last_state.get("tool_used") or ""

        if degraded_reason or not response.strip():
            reason = degraded_reason or "run ended without a response"
            logger.warning(f"[GRAPH] Degraded run ({reason}); building response from partial state")
            debug_logs.append(f"[GRAPH] ✗ Degraded run: {reason}")
            response = self.aggregator.fallback(last_state)
            tool_used = tool_used or ToolKind.DIRECT.value

        is_multishot = bool(last_state.get("is_multishot"))
        if is_multishot:
            tool_used = MULTISHOT_TOOL_LABEL

        logger.info(f"[GRAPH] Run finished via {tool_used}")
        return RunResult(
            response=response,
            tool_used=tool_used,
            analysis=last_state.get("analysis") or "",
            is_multishot=is_multishot,
            sub_questions=list(last_state.get("sub_questions") or []),
            tools_called=list(last_state.get("tools_called") or []),
            debug_logs=debug_logs
        )
