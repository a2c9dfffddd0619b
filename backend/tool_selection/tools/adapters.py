"""
Tool Adapters - uniform `invoke(input) -> ToolOutput` contract.

Each adapter wraps one external collaborator, races it against its time
budget and turns every kind of failure (timeout, raised exception,
error-shaped text or payload) into a `ToolError` subclass. Graph nodes
catch those and decide how to recover.
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from ..domain.interfaces import ICalculatorClient, ISearchClient, IStructuredQueryClient
from ..domain.models import ToolKind, TextOutput, StructuredOutput, ToolOutput
from ..exceptions import ToolError, ToolTimeoutError, ToolResultError, ToolUnavailableError
from .normalization import looks_like_error, serialize_payload, to_tool_output

logger = logging.getLogger(__name__)


class ToolAdapter(ABC):
    """Base adapter: timeout race plus failure normalization."""

    kind: ToolKind

    def __init__(self, timeout_seconds: float = 5.0):
        self.timeout_seconds = timeout_seconds

    @abstractmethod
    async def _call(self, tool_input: str) -> Any:
        """Call the underlying collaborator."""
        pass

    def _check(self, output: ToolOutput, tool_input: str) -> ToolOutput:
        """Raise ToolResultError when the output signals a failure."""
        return output

    async def invoke(self, tool_input: str) -> ToolOutput:
        tool = self.kind.value
        try:
            raw = await asyncio.wait_for(self._call(tool_input), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.warning(f"[TOOL] {tool} timed out after {self.timeout_seconds}s")
            raise ToolTimeoutError(tool, self.timeout_seconds, tool_input=tool_input) from e
        except ToolError:
            raise
        except Exception as e:
            logger.warning(f"[TOOL] {tool} raised: {e}")
            raise ToolError(tool, str(e), tool_input=tool_input) from e

        return self._check(to_tool_output(raw), tool_input)


class CalculatorTool(ToolAdapter):
    """Calculator adapter; error strings count as failures."""

    kind = ToolKind.CALCULATOR

    def __init__(self, client: ICalculatorClient, timeout_seconds: float = 5.0):
        super().__init__(timeout_seconds)
        self.client = client

    async def _call(self, tool_input: str) -> Any:
        return await self.client.evaluate(tool_input)

    def _check(self, output: ToolOutput, tool_input: str) -> ToolOutput:
        text = output.text if isinstance(output, TextOutput) else serialize_payload(output.raw)
        if looks_like_error(text):
            raise ToolResultError(self.kind.value, text or "empty result", tool_input=tool_input)
        return TextOutput(text=text.strip())


class SearchTool(ToolAdapter):
    """Web search adapter; accepts prose or structured payloads."""

    kind = ToolKind.SEARCH

    def __init__(self, client: ISearchClient, timeout_seconds: float = 5.0):
        super().__init__(timeout_seconds)
        self.client = client

    async def _call(self, tool_input: str) -> Any:
        return await self.client.search(tool_input)

    def _check(self, output: ToolOutput, tool_input: str) -> ToolOutput:
        if isinstance(output, StructuredOutput):
            if output.error:
                raise ToolResultError(self.kind.value, output.error, tool_input=tool_input)
            return output
        if not output.text.strip() or output.text.strip().lower().startswith("error"):
            raise ToolResultError(self.kind.value, output.text or "empty result", tool_input=tool_input)
        return output


class StructuredQueryTool(ToolAdapter):
    """Database query adapter; rows are always serialized to JSON text."""

    kind = ToolKind.STRUCTURED_QUERY

    def __init__(self, client: IStructuredQueryClient, timeout_seconds: float = 5.0):
        super().__init__(timeout_seconds)
        self.client = client

    async def _call(self, tool_input: str) -> Any:
        rows = await self.client.query(tool_input)
        if isinstance(rows, str):
            return rows
        try:
            return json.dumps(rows, indent=2, default=str)
        except (TypeError, ValueError):
            return serialize_payload(rows)

    def _check(self, output: ToolOutput, tool_input: str) -> ToolOutput:
        text = output.text if isinstance(output, TextOutput) else serialize_payload(output.raw)
        if text.strip().lower().startswith("error"):
            raise ToolResultError(self.kind.value, text, tool_input=tool_input)
        return TextOutput(text=text)


class ToolRegistry:
    """The adapters configured for a run; missing ones raise ToolUnavailableError."""

    def __init__(
        self,
        calculator: Optional[CalculatorTool] = None,
        search: Optional[SearchTool] = None,
        structured_query: Optional[StructuredQueryTool] = None
    ):
        self.calculator = calculator
        self.search = search
        self.structured_query = structured_query

    @classmethod
    def from_clients(
        cls,
        calculator: Optional[ICalculatorClient] = None,
        search: Optional[ISearchClient] = None,
        structured_query: Optional[IStructuredQueryClient] = None,
        timeout_seconds: float = 5.0
    ) -> "ToolRegistry":
        return cls(
            calculator=CalculatorTool(calculator, timeout_seconds) if calculator else None,
            search=SearchTool(search, timeout_seconds) if search else None,
            structured_query=StructuredQueryTool(structured_query, timeout_seconds) if structured_query else None,
        )

    @property
    def search_available(self) -> bool:
        return self.search is not None

    def get(self, kind: ToolKind) -> ToolAdapter:
        adapter = {
            ToolKind.CALCULATOR: self.calculator,
            ToolKind.SEARCH: self.search,
            ToolKind.STRUCTURED_QUERY: self.structured_query,
        }.get(kind)
        if adapter is None:
            raise ToolUnavailableError(kind.value)
        return adapter
