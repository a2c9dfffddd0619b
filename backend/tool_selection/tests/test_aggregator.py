"""
Tests for the Result Aggregator.
"""
import pytest

from ..aggregation import AggregatorNode, calculator_step_failed, manual_aggregation, partial_results_message
from ..config import TimeoutConfig
from ..state import create_initial_state
from ..tools.normalization import format_failure
from .conftest import SCENARIO_B_QUERY
from .fakes import AGGREGATION_PROMPT, HANG, FakeLanguageModel

CHICAGO_RESULT = '{"knowledge_graph": {"title": "Chicago", "population": "2,700,000"}}'
HOUSTON_RESULT = "Houston has a population of 2.3 million people."


def _completed(sub_questions, results):
    return [sq.mark_completed(results[sq.id]) if sq.id in results else sq for sq in sub_questions]


def _state(sub_questions, results, query=SCENARIO_B_QUERY):
    state = create_initial_state(query)
    state.update(is_multishot=True, sub_questions=sub_questions, intermediate_results=results)
    return state


@pytest.fixture
def failed_calculator_run(scenario_b_sub_questions):
    results = {
        "q1": CHICAGO_RESULT,
        "q2": HOUSTON_RESULT,
        "q3": format_failure("Error performing calculation: calculator: timed out after 0.2s"),
        "q4": format_failure("Could not perform the calculation because no usable number was found in q3."),
    }
    return _completed(scenario_b_sub_questions, results), results


class TestManualAggregation:

    def test_sum_then_multiplier(self, failed_calculator_run):
        sub_questions, _ = failed_calculator_run
        response = manual_aggregation(SCENARIO_B_QUERY, sub_questions)

        assert "The combined total is 5000000." in response
        assert "Multiplying 5000000 by 0.05 gives 250000." in response
        assert response.endswith("The final result is 250000.")

    def test_single_value_needs_multiplier(self, scenario_b_sub_questions):
        sub_questions = _completed(scenario_b_sub_questions, {"q1": CHICAGO_RESULT})
        assert manual_aggregation("population of Chicago", sub_questions) is None
        assert "5400000" in manual_aggregation("population of Chicago times 2", sub_questions)

    def test_failed_searches_are_ignored(self, scenario_b_sub_questions):
        sub_questions = _completed(scenario_b_sub_questions, {
            "q1": CHICAGO_RESULT,
            "q2": format_failure("Search failed: search: timed out after 5.0s"),
        })
        assert manual_aggregation("population of Chicago plus population of Houston", sub_questions) is None


def test_calculator_step_failed(failed_calculator_run, scenario_b_sub_questions):
    sub_questions, _ = failed_calculator_run
    assert calculator_step_failed(sub_questions)

    succeeded = _completed(scenario_b_sub_questions, {
        "q1": CHICAGO_RESULT, "q2": HOUSTON_RESULT, "q3": "5000000", "q4": "250000"
    })
    assert not calculator_step_failed(succeeded)


def test_partial_results_message_is_never_empty():
    assert "rephrase" in partial_results_message("anything", [], {})


class TestAggregatorNode:

    @pytest.mark.asyncio
    async def test_manual_path_skips_model(self, failed_calculator_run):
        sub_questions, results = failed_calculator_run
        model = FakeLanguageModel(default=HANG)

        update = await AggregatorNode(model, TimeoutConfig(aggregation_seconds=0.1))(_state(sub_questions, results))

        assert update["final_response"].endswith("The final result is 250000.")
        assert update["tool_used"] == "multishot"
        assert update["processing_complete"] is True
        assert model.prompts == []

    @pytest.mark.asyncio
    async def test_model_synthesis(self, scenario_b_sub_questions):
        results = {"q1": CHICAGO_RESULT, "q2": HOUSTON_RESULT, "q3": "5000000", "q4": "250000"}
        model = FakeLanguageModel(responses=[(AGGREGATION_PROMPT, "5% of the combined population is 250,000.")])

        update = await AggregatorNode(model)(_state(_completed(scenario_b_sub_questions, results), results))

        assert update["final_response"] == "5% of the combined population is 250,000."
        prompt = model.prompts_containing(AGGREGATION_PROMPT)[0]
        assert "Sub-question: Multiply the combined population by 0.05" in prompt
        assert "Result: 250000" in prompt

    @pytest.mark.asyncio
    async def test_model_failure_uses_template(self, scenario_b_sub_questions):
        results = {"q1": CHICAGO_RESULT, "q2": HOUSTON_RESULT, "q3": "5000000", "q4": "250000"}
        model = FakeLanguageModel(default=RuntimeError("rate limited"))

        update = await AggregatorNode(model)(_state(_completed(scenario_b_sub_questions, results), results))

        assert 'For "Multiply the combined population by 0.05": 250000' in update["final_response"]

    @pytest.mark.asyncio
    async def test_no_sub_questions(self):
        update = await AggregatorNode(FakeLanguageModel())(_state([], {}, query="what now"))
        assert 'answer "what now"' in update["final_response"]

    def test_fallback_uses_completed_results_only(self, scenario_b_sub_questions):
        sub_questions = _completed(scenario_b_sub_questions, {"q1": CHICAGO_RESULT, "q2": HOUSTON_RESULT})
        response = AggregatorNode(FakeLanguageModel()).fallback(
            _state(sub_questions, {"q1": CHICAGO_RESULT, "q2": HOUSTON_RESULT})
        )
        assert response.endswith("The final result is 250000.")

    def test_fallback_without_results(self, scenario_b_sub_questions):
        response = AggregatorNode(FakeLanguageModel()).fallback(_state(scenario_b_sub_questions, {}))
        assert response.strip()
        assert SCENARIO_B_QUERY in response
