"""
Infrastructure layer - External tool client implementations.
Following SOLID: Single Responsibility - each client handles one external service.
Open/Closed Principle - easy to add new tool clients without modifying existing ones.
"""
import ast
import json
import logging
import math
import operator
import re
from typing import Dict, Any, Optional, Union

import httpx

from ..config import SearchConfig, StructuredQueryConfig
from ..domain.interfaces import ICalculatorClient, ISearchClient, IStructuredQueryClient

logger = logging.getLogger(__name__)


_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
    ast.FloorDiv: operator.floordiv,
}
_UNARY_OPS = {ast.UAdd: operator.pos, ast.USub: operator.neg}

SAFE_FUNCTIONS = {
    "abs": abs,
    "round": round,
    **{name: getattr(math, name) for name in ("sqrt", "log", "log10", "exp", "sin", "cos", "tan", "ceil", "floor", "fabs")},
}
SAFE_CONSTANTS = {"pi": math.pi, "e": math.e}

MAX_EXPONENT = 1000
# Results are rendered through float, which tops out near 1e308
MAX_RESULT_DIGITS = 300


def format_number(value: float) -> str:
    """Render a numeric result without float noise ("250000", "252548.4")."""
    if isinstance(value, bool):
        raise TypeError("boolean is not a number")
    rounded = round(float(value), 10)
    if rounded.is_integer() and abs(rounded) < 1e15:
        return str(int(rounded))
    return repr(rounded)


def _digits(value: float) -> float:
    magnitude = abs(value)
    return math.log10(magnitude) if magnitude >= 1 else 0.0


def _check_size(left: float, right: float, op: ast.operator) -> None:
    """Refuse operations whose result would exceed MAX_RESULT_DIGITS before computing them."""
    if isinstance(op, ast.Pow):
        if abs(right) > MAX_EXPONENT:
            raise ValueError("exponent too large")
        if abs(left) > 1 and right > 0 and right * math.log10(abs(left)) > MAX_RESULT_DIGITS:
            raise ValueError("result too large")
    elif isinstance(op, ast.Mult):
        if left and right and _digits(left) + _digits(right) > MAX_RESULT_DIGITS:
            raise ValueError("result too large")


def evaluate_expression(expression: str) -> float:
    """
    Evaluate an arithmetic expression through a restricted AST walk.

    Allows numbers, + - * / // % **, parentheses, the functions in
    SAFE_FUNCTIONS and the constants in SAFE_CONSTANTS.

    Raises:
        ValueError: For any other name or syntax, or a result too large to render.
        ZeroDivisionError: On division by zero.
    """
    normalized = expression.replace("^", "**").replace("×", "*").replace("÷", "/").strip()
    if not normalized:
        raise ValueError("empty expression")

    tree = ast.parse(normalized, mode="eval")

    def _eval(node: ast.AST) -> float:
        if isinstance(node, ast.Expression):
            return _eval(node.body)
        if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            return node.value
        if isinstance(node, ast.Name):
            if node.id in SAFE_CONSTANTS:
                return SAFE_CONSTANTS[node.id]
            raise ValueError(f"name not allowed: {node.id}")
        if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
            return _UNARY_OPS[type(node.op)](_eval(node.operand))
        if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
            left = _eval(node.left)
            right = _eval(node.right)
            _check_size(left, right, node.op)
            result = _BINARY_OPS[type(node.op)](left, right)
            if isinstance(result, complex):
                raise ValueError("complex result")
            if _digits(result) > MAX_RESULT_DIGITS:
                raise ValueError("result too large")
            return result
        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in SAFE_FUNCTIONS:
                raise ValueError("function not allowed")
            if node.keywords:
                raise ValueError("keyword arguments not allowed")
            return SAFE_FUNCTIONS[node.func.id](*[_eval(arg) for arg in node.args])
        raise ValueError(f"unsupported element: {type(node).__name__}")

    return _eval(tree)


class SafeExpressionCalculator(ICalculatorClient):
    """Local calculator; reports problems as text the way hosted calculator tools do."""

    async def evaluate(self, expression: str) -> str:
        try:
            value = evaluate_expression(expression)
        except ZeroDivisionError:
            return "Error evaluating expression: division by zero"
        except (SyntaxError, ValueError, TypeError, OverflowError) as e:
            logger.warning(f"Calculator could not evaluate {expression!r}: {e}")
            return f"Error evaluating expression: {e}"

        if value != value or value in (float("inf"), float("-inf")):
            return "The calculation resulted in an invalid number"

        result = format_number(value)
        logger.info(f"Calculated {expression!r} = {result}")
        return result


def filter_search_response(data: Dict[str, Any], include_organic: bool) -> Dict[str, Any]:
    """
    Reduce a SerpAPI response to the fields useful for answering questions.

    Keeps population figures from the knowledge graph and answer box because
    the dependency resolver reads them.
    """
    filtered: Dict[str, Any] = {}

    if params := data.get("search_parameters"):
        filtered["search_parameters"] = {"engine": params.get("engine"), "q": params.get("q")}

    if graph := data.get("knowledge_graph"):
        filtered["knowledge_graph"] = {
            key: graph[key]
            for key in ("title", "type", "description", "population")
            if key in graph
        }

    if box := data.get("answer_box"):
        filtered["answer_box"] = {
            key: box[key]
            for key in ("title", "answer", "snippet", "population")
            if key in box
        }

    if related := data.get("related_questions"):
        filtered["related_questions"] = [
            {"question": q.get("question", ""), "answer": q.get("answer")}
            for q in related
        ]

    if stories := data.get("top_stories"):
        filtered["top_stories"] = [
            {"title": s.get("title", ""), "link": s.get("link", ""), "source": s.get("source")}
            for s in stories
        ]

    if include_organic and data.get("organic_results"):
        filtered["organic_results"] = [
            {"title": r.get("title", ""), "link": r.get("link", ""), "snippet": r.get("snippet")}
            for r in data["organic_results"]
        ]

    if data.get("error"):
        filtered["error"] = data["error"]

    return filtered


class SerpApiSearchClient(ISearchClient):
    """SerpAPI web search client."""

    def __init__(
        self,
        config: Optional[SearchConfig] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.config = config or SearchConfig()
        self.api_key = api_key or self.config.api_key
        self._transport = transport

    async def search(self, query: str) -> Union[str, Dict[str, Any]]:
        """Run a Google search through SerpAPI."""
        if not query or not query.strip():
            return {"error": "No search query provided"}
        if not self.api_key:
            return {"error": "No SerpAPI key configured"}

        try:
            async with httpx.AsyncClient(
                timeout=self.config.request_timeout_seconds,
                transport=self._transport
            ) as client:
                response = await client.get(
                    self.config.base_url,
                    params={"q": query, "api_key": self.api_key, "engine": self.config.engine}
                )
                data = response.json()

                if response.status_code != 200:
                    detail = data.get("error") if isinstance(data, dict) else None
                    logger.error(f"SerpAPI request failed ({response.status_code}): {detail}")
                    return {"error": f"SerpAPI request failed: {detail or response.reason_phrase}"}

                logger.info(f"SerpAPI search completed for '{query[:80]}'")

                if not self.config.include_organic:
                    data.pop("organic_results", None)

                if self.config.minimal:
                    return filter_search_response(data, self.config.include_organic)
                return data
        except Exception as e:
            logger.error(f"SerpAPI error: {e}")
            return {"error": str(e)}


_JSON_BLOCK = re.compile(r"(\{[\s\S]*\}|\[[\s\S]*\])")


class HttpStructuredQueryClient(IStructuredQueryClient):
    """Runs queries through an HTTP endpoint that proxies the database."""

    def __init__(
        self,
        config: StructuredQueryConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not config.endpoint_url:
            raise ValueError("StructuredQueryConfig.endpoint_url is required")
        self.config = config
        self._transport = transport

    async def query(self, statement: str) -> Any:
        async with httpx.AsyncClient(
            timeout=self.config.request_timeout_seconds,
            transport=self._transport
        ) as client:
            response = await client.get(self.config.endpoint_url, params={"query": statement})
            response.raise_for_status()
            body = response.text

        try:
            return json.loads(body)
        except json.JSONDecodeError:
            # The endpoint may print banner lines around the JSON payload
            match = _JSON_BLOCK.search(body)
            if match:
                return json.loads(match.group(0))
            logger.warning("Structured query returned non-JSON output")
            return body
