"""
Hand-written fakes for the engine's collaborators.

The fake language model answers by prompt keyword: the first keyword
found in the prompt decides the reply. A reply can be text, an exception
to raise, or HANG to block until the caller's timeout fires.
"""
import asyncio
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..domain.interfaces import ICalculatorClient, ILanguageModel, ISearchClient, IStructuredQueryClient
from ..infrastructure.tool_clients import SafeExpressionCalculator

HANG = object()

# Distinctive fragments of each prompt the engine sends
ANALYSIS_PROMPT = "LABEL: <one of"
DECOMPOSITION_PROMPT = "Break down this complex query"
EXPRESSION_PROMPT = "Extract only the mathematical expression"
DEPENDENT_EXPRESSION_PROMPT = "I need to perform a calculation based on these previous results"
CALCULATOR_RESPONSE_PROMPT = "I've calculated the result"
SEARCH_REWRITE_PROMPT = "Convert this user question"
SEARCH_ANSWER_PROMPT = "=== SEARCH RESULTS ==="
DIRECT_PROMPT = "Answer the user's question."
AGGREGATION_PROMPT = "synthesize these results"


async def _reply(reply: Any) -> Any:
    if reply is HANG:
        await asyncio.sleep(3600)
    if isinstance(reply, BaseException):
        raise reply
    return reply


class FakeLanguageModel(ILanguageModel):
    def __init__(
        self,
        responses: Optional[Sequence[Tuple[str, Any]]] = None,
        default: Any = "I am a helpful assistant."
    ):
        self.responses = list(responses or [])
        self.default = default
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        for keyword, reply in self.responses:
            if keyword in prompt:
                return await _reply(reply)
        return await _reply(self.default)

    def prompts_containing(self, keyword: str) -> List[str]:
        return [p for p in self.prompts if keyword in p]


class FakeSearchClient(ISearchClient):
    """Returns the payload of the first keyword found in the query (case-insensitive)."""

    def __init__(
        self,
        results: Optional[Dict[str, Any]] = None,
        default: Any = "No results found.",
        error: Optional[BaseException] = None,
        hang: bool = False
    ):
        self.results = results or {}
        self.default = default
        self.error = error
        self.hang = hang
        self.queries: List[str] = []

    async def search(self, query: str) -> Any:
        self.queries.append(query)
        if self.hang:
            await asyncio.sleep(3600)
        if self.error is not None:
            raise self.error
        for keyword, payload in self.results.items():
            if keyword.lower() in query.lower():
                return payload
        return self.default


class FakeCalculator(ICalculatorClient):
    """Evaluates locally unless a fixed reply or error is configured."""

    def __init__(self, reply: Optional[str] = None, error: Optional[BaseException] = None):
        self.reply = reply
        self.error = error
        self.expressions: List[str] = []
        self._local = SafeExpressionCalculator()

    async def evaluate(self, expression: str) -> str:
        self.expressions.append(expression)
        if self.error is not None:
            raise self.error
        if self.reply is not None:
            return self.reply
        return await self._local.evaluate(expression)


class FakeStructuredQueryClient(IStructuredQueryClient):
    def __init__(self, rows: Any = None, error: Optional[BaseException] = None):
        self.rows = rows if rows is not None else []
        self.error = error
        self.statements: List[str] = []

    async def query(self, statement: str) -> Any:
        self.statements.append(statement)
        if self.error is not None:
            raise self.error
        return self.rows
