"""
Tests for the Pattern Classifier.
"""
import pytest

from ..domain.models import QueryLabel
from ..routing.patterns import classify_query, is_calculation, is_composite


class TestCalculatorPatterns:

    @pytest.mark.parametrize("query", [
        "what is 25 * 4?",
        "What is 2 + 2",
        "calculate 17 / 3",
        "12 * (3 + 4) = ?",
        "(8 - 3) ^ 2",
        "what is 5% of 200",
        "10 plus 32",
    ])
    def test_arithmetic_is_calculator(self, query):
        assert classify_query(query) == QueryLabel.CALCULATOR

    def test_calculator_wins_over_search_words(self):
        """A question word plus an expression is still a calculation."""
        query = "What is the latest value of 3 * 7?"
        assert not is_composite(query)
        assert classify_query(query, search_available=True) == QueryLabel.CALCULATOR

    def test_question_without_digits_is_not_calculation(self):
        assert not is_calculation("what is the meaning of life")


class TestCompositePatterns:

    @pytest.mark.parametrize("query", [
        "population of Chicago plus population of Houston, multiplied by 0.05",
        "What is the GDP of France divided by the GDP of Spain?",
        "What is the total population of Texas and Ohio?",
        "First find the price of gold, then multiply it by 3",
        "multiply the population of Denver by 2",
    ])
    def test_composite_queries(self, query):
        assert classify_query(query, search_available=True) == QueryLabel.COMPOSITE

    def test_composite_requires_search(self):
        query = "population of Chicago plus population of Houston"
        assert classify_query(query, search_available=False) != QueryLabel.COMPOSITE

    def test_domain_noun_inside_word_does_not_match(self):
        # "average" contains "age", "message" contains "age"
        assert not is_composite("send this message together with the average")


class TestSearchAndUnclear:

    def test_question_is_search(self):
        assert classify_query("Who won the 2022 World Cup?") == QueryLabel.SEARCH

    def test_current_events_are_search(self):
        assert classify_query("latest news about the Mars rover") == QueryLabel.SEARCH

    def test_search_needs_search_tool(self):
        assert classify_query("Who won the 2022 World Cup?", search_available=False) == QueryLabel.UNCLEAR

    def test_no_pattern_is_unclear(self):
        assert classify_query("Tell me a joke about cats") == QueryLabel.UNCLEAR

    def test_empty_query_is_unclear(self):
        assert classify_query("   ") == QueryLabel.UNCLEAR
