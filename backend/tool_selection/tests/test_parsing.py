"""
Tests for the decomposition parser tiers.
"""
import pytest

from ..domain.models import SubQuestion, ToolKind
from ..exceptions import DecompositionParseError
from ..planning.parsing import (
    parse_array_objects,
    parse_decomposition,
    parse_fields,
    parse_strict,
    parse_tool,
    serialize_sub_questions,
)

CLEAN = """{
  "subQuestions": [
    {"id": "q1", "question": "What is the population of Chicago?", "toolType": "search", "dependsOn": []},
    {"id": "q2", "question": "Multiply q1 by 2", "toolType": "calculator", "dependsOn": ["q1"]}
  ]
}"""


class TestParseTool:

    @pytest.mark.parametrize("name,expected", [
        ("search", ToolKind.SEARCH),
        ("SerpAPI", ToolKind.SEARCH),
        ("web_search", ToolKind.SEARCH),
        ("Calculator", ToolKind.CALCULATOR),
        ("math", ToolKind.CALCULATOR),
        ("sql", ToolKind.STRUCTURED_QUERY),
        ("direct", ToolKind.DIRECT),
    ])
    def test_aliases(self, name, expected):
        assert parse_tool(name) == expected

    def test_unknown_tool(self):
        assert parse_tool("telepathy") is None
        assert parse_tool(None) is None


class TestStrictTier:

    def test_clean_json(self):
        sub_questions = parse_strict(CLEAN)
        assert [sq.id for sq in sub_questions] == ["q1", "q2"]
        assert sub_questions[1].tool == ToolKind.CALCULATOR
        assert sub_questions[1].depends_on == ["q1"]

    def test_code_fences_are_stripped(self):
        assert len(parse_strict(f"```json\n{CLEAN}\n```")) == 2

    def test_prose_around_json_fails(self):
        with pytest.raises(DecompositionParseError):
            parse_strict(f"Here is the plan:\n{CLEAN}")

    def test_string_depends_on_becomes_list(self):
        payload = '{"subQuestions": [{"id": "q1", "question": "a?", "toolType": "search", "dependsOn": "q0"}]}'
        assert parse_strict(payload)[0].depends_on == ["q0"]


class TestArrayTier:

    def test_prose_wrapped_payload(self):
        sub_questions = parse_array_objects(f"Sure! Here is the plan:\n{CLEAN}\nHope it helps.")
        assert [sq.id for sq in sub_questions] == ["q1", "q2"]

    def test_trailing_commas(self):
        text = """{"subQuestions": [
            {"id": "q1", "question": "What is X?", "toolType": "search", "dependsOn": [],},
            {"id": "q2", "question": "Double q1", "toolType": "calculator", "dependsOn": ["q1"],},
        ]}"""
        assert len(parse_array_objects(text)) == 2

    def test_bad_object_is_skipped(self):
        text = """{"subQuestions": [
            {"id": "q1", "question": "What is X?", "toolType": "search", "dependsOn": []},
            {"id": "q2", "question": "Broken", "toolType": "teleport", "dependsOn": []}
        ]}"""
        sub_questions = parse_array_objects(text)
        assert [sq.id for sq in sub_questions] == ["q1"]


class TestFieldsTier:

    def test_calculators_depend_on_preceding_items(self):
        # No dependsOn at all: calculators inherit everything listed before them
        text = """
        "id": "q1", "question": "What is the population of Austin?", "toolType": "search"
        "id": "q2", "question": "What is the population of Dallas?", "toolType": "search"
        "id": "q3", "question": "Add them", "toolType": "calculator"
        """
        sub_questions = parse_fields(text)
        assert sub_questions[0].depends_on == []
        assert sub_questions[2].depends_on == ["q1", "q2"]

    def test_mismatched_counts_fail(self):
        text = '"id": "q1", "id": "q2", "question": "only one", "toolType": "search"'
        with pytest.raises(DecompositionParseError):
            parse_fields(text)


class TestParseDecomposition:

    def test_garbage_raises(self):
        with pytest.raises(DecompositionParseError):
            parse_decomposition("I cannot help with that.")

    def test_empty_raises(self):
        with pytest.raises(DecompositionParseError):
            parse_decomposition("   ")

    def test_falls_through_to_fields_tier(self):
        # Unbalanced brackets defeat the first two tiers
        text = (
            '{"subQuestions": [ {"id": "q1", "question": "What is the GDP of Peru?", '
            '"toolType": "search", "dependsOn": [] '
        )
        sub_questions = parse_decomposition(text)
        assert sub_questions[0].text == "What is the GDP of Peru?"

    def test_serialized_list_parses_back_equal(self):
        original = [
            SubQuestion(id="q1", text='What is the "current" population of Chicago?', tool=ToolKind.SEARCH),
            SubQuestion(id="q2", text="Multiply q1 by 3", tool=ToolKind.CALCULATOR, depends_on=["q1"]),
        ]
        assert parse_decomposition(serialize_sub_questions(original)) == original
