"""
Tests for the tool adapters and registry.
"""
import json

import pytest

from ..domain.models import StructuredOutput, TextOutput, ToolKind
from ..exceptions import ToolError, ToolResultError, ToolTimeoutError, ToolUnavailableError
from ..tools.adapters import CalculatorTool, SearchTool, StructuredQueryTool, ToolRegistry
from .fakes import FakeCalculator, FakeSearchClient, FakeStructuredQueryClient


class TestCalculatorTool:

    @pytest.mark.asyncio
    async def test_evaluates(self):
        output = await CalculatorTool(FakeCalculator()).invoke("25 * 4")
        assert output == TextOutput(text="100")

    @pytest.mark.asyncio
    async def test_error_text_raises(self):
        tool = CalculatorTool(FakeCalculator(reply="Error evaluating expression: bad input"))
        with pytest.raises(ToolResultError) as exc_info:
            await tool.invoke("2 +")
        assert exc_info.value.tool == "calculator"
        assert exc_info.value.tool_input == "2 +"

    @pytest.mark.asyncio
    async def test_division_by_zero_raises(self):
        with pytest.raises(ToolResultError):
            await CalculatorTool(FakeCalculator()).invoke("1 / 0")


class TestSearchTool:

    @pytest.mark.asyncio
    async def test_timeout(self):
        tool = SearchTool(FakeSearchClient(hang=True), timeout_seconds=0.05)
        with pytest.raises(ToolTimeoutError):
            await tool.invoke("anything")

    @pytest.mark.asyncio
    async def test_raised_exception_is_wrapped(self):
        tool = SearchTool(FakeSearchClient(error=RuntimeError("connection reset")))
        with pytest.raises(ToolError) as exc_info:
            await tool.invoke("anything")
        assert not isinstance(exc_info.value, ToolTimeoutError)
        assert "connection reset" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_error_payload_raises(self):
        tool = SearchTool(FakeSearchClient(default={"error": "Monthly quota exhausted"}))
        with pytest.raises(ToolResultError):
            await tool.invoke("anything")

    @pytest.mark.asyncio
    async def test_empty_text_raises(self):
        with pytest.raises(ToolResultError):
            await SearchTool(FakeSearchClient(default="   ")).invoke("anything")

    @pytest.mark.asyncio
    async def test_structured_payload_passes_through(self):
        payload = {"knowledge_graph": {"title": "Chicago", "population": "2,700,000"}}
        output = await SearchTool(FakeSearchClient(default=payload)).invoke("chicago")
        assert isinstance(output, StructuredOutput)
        assert output.knowledge_graph["population"] == "2,700,000"


@pytest.mark.asyncio
async def test_structured_query_rows_serialized():
    client = FakeStructuredQueryClient(rows=[{"region": "EU", "sales": 12}])
    output = await StructuredQueryTool(client).invoke("SELECT * FROM sales")
    assert json.loads(output.text) == [{"region": "EU", "sales": 12}]
    assert client.statements == ["SELECT * FROM sales"]


class TestToolRegistry:

    def test_missing_tool_raises(self):
        registry = ToolRegistry.from_clients(calculator=FakeCalculator())
        assert not registry.search_available
        with pytest.raises(ToolUnavailableError):
            registry.get(ToolKind.SEARCH)

    def test_configured_tools(self):
        registry = ToolRegistry.from_clients(
            calculator=FakeCalculator(), search=FakeSearchClient(), timeout_seconds=1.5
        )
        assert registry.search_available
        assert registry.get(ToolKind.SEARCH).timeout_seconds == 1.5
        assert isinstance(registry.get(ToolKind.CALCULATOR), CalculatorTool)
