"""
Pytest configuration and fixtures.
"""
import pytest

from ..config import EngineConfig, ExecutionConfig, TimeoutConfig
from ..domain.models import SubQuestion, ToolKind
from .fakes import FakeCalculator, FakeLanguageModel, FakeSearchClient

CHICAGO_POPULATION = 2_700_000
HOUSTON_POPULATION = 2_300_000

SCENARIO_B_QUERY = "population of Chicago plus population of Houston, multiplied by 0.05"


@pytest.fixture
def fast_config() -> EngineConfig:
    """Short time budgets so timeout paths run in milliseconds."""
    return EngineConfig(
        timeouts=TimeoutConfig(
            tool_seconds=0.2,
            analysis_seconds=0.2,
            decomposition_seconds=0.2,
            expression_seconds=0.2,
            response_seconds=0.2,
            aggregation_seconds=0.2,
            run_seconds=5.0,
        ),
        execution=ExecutionConfig(),
    )


@pytest.fixture
def population_search() -> FakeSearchClient:
    """Chicago as a structured payload, Houston as prose."""
    return FakeSearchClient(results={
        "chicago": {
            "search_parameters": {"engine": "google", "q": "population of Chicago"},
            "knowledge_graph": {"title": "Chicago", "type": "City in Illinois", "population": "2,700,000"},
        },
        "houston": "Houston has a population of 2.3 million people as of the latest estimate.",
    })


@pytest.fixture
def calculator() -> FakeCalculator:
    return FakeCalculator()


@pytest.fixture
def model() -> FakeLanguageModel:
    return FakeLanguageModel()


@pytest.fixture
def scenario_b_sub_questions() -> list:
    return [
        SubQuestion(id="q1", text="What is the current population of Chicago?", tool=ToolKind.SEARCH),
        SubQuestion(id="q2", text="What is the current population of Houston?", tool=ToolKind.SEARCH),
        SubQuestion(
            id="q3", text="Add the populations of Chicago and Houston",
            tool=ToolKind.CALCULATOR, depends_on=["q1", "q2"]
        ),
        SubQuestion(
            id="q4", text="Multiply the combined population by 0.05",
            tool=ToolKind.CALCULATOR, depends_on=["q3"]
        ),
    ]
