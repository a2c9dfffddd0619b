"""
Pattern Classifier - cheap regex labelling before any model call.

Order of checks:
1. Composite patterns (only when a search tool is configured)
2. Calculator patterns
3. Search patterns (only when a search tool is configured)
Anything else is Unclear and goes to the model-assisted analyzer.
"""
import re
from typing import List, Pattern

from ..domain.models import QueryLabel

DOMAIN_NOUNS = (
    "population", "distance", "height", "age", "temperature", "gdp",
    "sales", "revenue", "cost", "price", "area", "salary", "income",
)

RELATIONS = (
    "plus", "added to", "combined with", "sum of", "total of", "combined", "together",
    "minus", "less", "subtract", "difference between", "reduced by",
    "multiplied by", "multiply", "times", "product of",
    "divided by", "divide", "quotient of", "split by",
    "percent", "percentage",
)

_NOUNS = "|".join(DOMAIN_NOUNS)
_RELATIONS = "|".join(re.escape(r) for r in RELATIONS)

COMPOSITE_PATTERNS: List[Pattern] = [
    # "population of X plus population of Y", "GDP of X divided by ..."
    re.compile(rf"\b(?:{_NOUNS})s?\b.*?(?:\b(?:{_RELATIONS})\b|%)", re.IGNORECASE),
    # "multiply the population of X by 2"
    re.compile(rf"\b(?:{_RELATIONS})\b.*?\b(?:{_NOUNS})s?\b", re.IGNORECASE),
    re.compile(r"\b(?:total|combined|aggregate)\s+(?:population|revenue|sales|gdp|cost)s?\b", re.IGNORECASE),
    re.compile(r"\bwhat is (?:the|a) .+ (?:of|for) .+ and .+ (?:combined|together|in total)\b", re.IGNORECASE),
    re.compile(r"\bhow (?:many|much) .+ (?:in|of|for) both .+ and .+", re.IGNORECASE),
    # Explicit multi-step language
    re.compile(r"\bfirst\b.+\bthen\b", re.IGNORECASE),
    re.compile(
        r"\b(?:find|get|look up|search|determine|tell me|what is)\b.+"
        r"\b(?:then|and then|after that|subsequently)\b.+"
        r"\b(?:add|subtract|multiply|divide|calculate|compute)\b",
        re.IGNORECASE
    ),
]

_NUMBER = r"\d+(?:[.,]\d+)*"
_OPERATOR = r"(?:\*\*|[+\-*/^×÷x])"
_ARITHMETIC = rf"{_NUMBER}\s*{_OPERATOR}\s*\(?\s*-?{_NUMBER}"

CALCULATOR_PATTERNS: List[Pattern] = [
    re.compile(rf"\b(?:what\s+is|what's|calculate|compute|evaluate|solve)\b.*?{_ARITHMETIC}", re.IGNORECASE),
    re.compile(rf"^\s*\(?\s*-?{_ARITHMETIC}[\d\s+\-*/^().×÷]*\??\s*$", re.IGNORECASE),
    re.compile(rf"{_ARITHMETIC}[\d\s+\-*/^().×÷]*=\s*\?", re.IGNORECASE),
    re.compile(rf"{_NUMBER}\s+(?:plus|minus|times|multiplied by|divided by)\s+-?{_NUMBER}", re.IGNORECASE),
    re.compile(rf"{_NUMBER}\s*(?:%|percent)\s+of\s+{_NUMBER}", re.IGNORECASE),
    re.compile(rf"\b(?:square root|sqrt) of\s+{_NUMBER}", re.IGNORECASE),
]

SEARCH_PATTERNS: List[Pattern] = [
    re.compile(
        r"^\s*(?:who|what|when|where|why|how|is|are|was|were|did|do|does|can|could|should|would)\b",
        re.IGNORECASE
    ),
    re.compile(r"\b(?:latest|news|recent|current|today|tonight|yesterday)\b", re.IGNORECASE),
    re.compile(r"\b(?:stock price|market|weather|score)\b", re.IGNORECASE),
]


def is_composite(query: str) -> bool:
    return any(p.search(query) for p in COMPOSITE_PATTERNS)


def is_calculation(query: str) -> bool:
    return bool(re.search(r"\d", query)) and any(p.search(query) for p in CALCULATOR_PATTERNS)


def is_search(query: str) -> bool:
    return any(p.search(query) for p in SEARCH_PATTERNS)


def classify_query(query: str, search_available: bool = True) -> QueryLabel:
    """
    Label a query from its text alone.

    Pure function: no model calls, no side effects.
    """
    if not query or not query.strip():
        return QueryLabel.UNCLEAR

    if search_available and is_composite(query):
        return QueryLabel.COMPOSITE

    if is_calculation(query):
        return QueryLabel.CALCULATOR

    if search_available and is_search(query):
        return QueryLabel.SEARCH

    return QueryLabel.UNCLEAR
