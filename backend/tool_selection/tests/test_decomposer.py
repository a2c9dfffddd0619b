"""
Tests for the Decomposer node and its fallback ladder.
"""
import pytest

from ..config import ExecutionConfig, TimeoutConfig
from ..domain.models import SubQuestion, ToolKind
from ..planning.decomposer import DecomposerNode, finalize_sub_questions
from ..state import create_initial_state
from ..tools.adapters import ToolRegistry
from .conftest import SCENARIO_B_QUERY
from .fakes import DECOMPOSITION_PROMPT, HANG, FakeLanguageModel, FakeStructuredQueryClient

MODEL_PLAN = """{"subQuestions": [
  {"id": "q1", "question": "What is the population of Chicago?", "toolType": "search", "dependsOn": []},
  {"id": "q2", "question": "What is the population of Houston?", "toolType": "search", "dependsOn": []},
  {"id": "q3", "question": "Add q1 and q2", "toolType": "calculator", "dependsOn": ["q1", "q2"]}
]}"""


def _node(reply, tools=None, **execution):
    model = FakeLanguageModel(responses=[(DECOMPOSITION_PROMPT, reply)])
    return DecomposerNode(
        model,
        TimeoutConfig(decomposition_seconds=0.1),
        ExecutionConfig(**execution),
        tools,
    )


class TestFallbackLadder:

    @pytest.mark.asyncio
    async def test_model_plan_is_used(self):
        sub_questions, source = await _node(MODEL_PLAN).decompose(SCENARIO_B_QUERY)
        assert source == "model"
        assert [sq.id for sq in sub_questions] == ["q1", "q2", "q3"]

    @pytest.mark.asyncio
    async def test_model_timeout_uses_template(self):
        sub_questions, source = await _node(HANG).decompose(SCENARIO_B_QUERY)
        assert source == "template"
        assert len(sub_questions) == 4

    @pytest.mark.asyncio
    async def test_unparsable_plan_uses_template(self):
        sub_questions, source = await _node("I would search first.").decompose(SCENARIO_B_QUERY)
        assert source == "template"

    @pytest.mark.asyncio
    async def test_plan_with_only_direct_steps_is_unusable(self):
        plan = '{"subQuestions": [{"id": "q1", "question": "Think", "toolType": "direct", "dependsOn": []}]}'
        _, source = await _node(plan).decompose(SCENARIO_B_QUERY)
        assert source == "template"

    @pytest.mark.asyncio
    async def test_structured_query_steps_need_a_configured_client(self):
        plan = """{"subQuestions": [
  {"id": "q1", "question": "SELECT SUM(amount) FROM orders", "toolType": "sql", "dependsOn": []},
  {"id": "q2", "question": "Explain what q1 means", "toolType": "direct", "dependsOn": ["q1"]}
]}"""
        _, source = await _node(plan).decompose(SCENARIO_B_QUERY)
        assert source == "template"

        tools = ToolRegistry.from_clients(structured_query=FakeStructuredQueryClient())
        sub_questions, source = await _node(plan, tools=tools).decompose(SCENARIO_B_QUERY)
        assert source == "model"
        assert [sq.tool for sq in sub_questions] == [ToolKind.STRUCTURED_QUERY, ToolKind.DIRECT]

    @pytest.mark.asyncio
    async def test_direct_steps_kept_beside_tool_steps(self):
        plan = """{"subQuestions": [
  {"id": "q1", "question": "Who designed the Eiffel Tower?", "toolType": "search", "dependsOn": []},
  {"id": "q2", "question": "Summarize q1 in one sentence", "toolType": "direct", "dependsOn": ["q1"]},
  {"id": "q3", "question": "SELECT 1", "toolType": "structured_query", "dependsOn": []}
]}"""
        sub_questions, source = await _node(plan).decompose("Who designed the Eiffel Tower, in short?")
        assert source == "model"
        assert [sq.id for sq in sub_questions] == ["q1", "q2"]

    def test_prompt_offers_structured_query_only_when_configured(self):
        assert "structured_query" not in _node("").build_prompt("x")
        tools = ToolRegistry.from_clients(structured_query=FakeStructuredQueryClient())
        assert "structured_query" in _node("", tools=tools).build_prompt("x")

    @pytest.mark.asyncio
    async def test_emergency_when_no_template_fits(self):
        query = "find the tallest building, then multiply its floors by 2"
        sub_questions, source = await _node(RuntimeError("boom")).decompose(query)
        assert source == "emergency"
        assert sub_questions[0].text == query

    @pytest.mark.asyncio
    async def test_plan_is_capped(self):
        items = ",".join(
            f'{{"id": "q{i}", "question": "Look up item {i}", "toolType": "search", "dependsOn": []}}'
            for i in range(1, 9)
        )
        sub_questions, _ = await _node(f'{{"subQuestions": [{items}]}}', max_sub_questions=3).decompose("x")
        assert len(sub_questions) == 3


class TestFinalize:

    def test_invalid_dependencies_are_dropped(self):
        sub_questions = finalize_sub_questions([
            SubQuestion(id="q1", text="a", tool=ToolKind.SEARCH, depends_on=["q1"]),
            SubQuestion(id="q2", text="b", tool=ToolKind.CALCULATOR, depends_on=["q1", "q9", "q3"]),
            SubQuestion(id="q3", text="c", tool=ToolKind.SEARCH),
        ], max_sub_questions=5)

        assert sub_questions[0].depends_on == []
        assert sub_questions[1].depends_on == ["q1"]

    def test_duplicate_ids_keep_first(self):
        sub_questions = finalize_sub_questions([
            SubQuestion(id="q1", text="first", tool=ToolKind.SEARCH),
            SubQuestion(id="q1", text="second", tool=ToolKind.SEARCH),
        ], max_sub_questions=5)
        assert [sq.text for sq in sub_questions] == ["first"]

    def test_entry_point_guaranteed(self):
        sub_questions = finalize_sub_questions([
            SubQuestion(id="q1", text="a", tool=ToolKind.SEARCH, depends_on=["q2"]),
            SubQuestion(id="q2", text="b", tool=ToolKind.SEARCH, depends_on=["q1"]),
        ], max_sub_questions=5)
        assert any(not sq.depends_on for sq in sub_questions)


@pytest.mark.asyncio
async def test_node_initializes_multishot_state():
    state = create_initial_state(SCENARIO_B_QUERY)
    update = await _node(HANG)(state)

    assert update["is_multishot"] is True
    assert update["completed_steps"] == 0
    assert update["intermediate_results"] == {}
    assert update["current_sub_question"].id == "q1"
