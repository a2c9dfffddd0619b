"""
Deterministic decompositions used when the model's plan is missing or unusable.

`template_decomposition` recognizes "<metric> of <places> ... add/multiply"
shapes; `emergency_decomposition` always succeeds.
"""
import logging
import re
from typing import List, Optional

from ..domain.models import SubQuestion, ToolKind
from ..infrastructure.tool_clients import format_number

logger = logging.getLogger(__name__)

KNOWN_CITIES = (
    "new york", "los angeles", "chicago", "houston", "phoenix", "philadelphia",
    "san antonio", "san diego", "dallas", "san jose", "austin", "jacksonville",
    "fort worth", "columbus", "indianapolis", "charlotte", "san francisco",
    "seattle", "denver", "washington", "boston", "nashville",
)

METRICS = {
    "population": "populations",
    "gdp": "GDPs",
    "revenue": "revenues",
    "area": "areas",
    "price": "prices",
    "sales": "sales",
}

_CITY_PATTERN = re.compile(r"\b(" + "|".join(KNOWN_CITIES) + r")\b", re.IGNORECASE)
_OF_PLACE = re.compile(r"\b(?:of|in|for|and)\s+((?:[A-Z][\w'.-]*)(?:\s+[A-Z][\w'.-]*)*)")
_METRIC = re.compile(r"\b(" + "|".join(METRICS) + r")\b", re.IGNORECASE)
_NUMBER = r"(\d+(?:\.\d+)?)"
_MULTIPLIERS = (
    re.compile(rf"\bmultipl(?:y|ied)\b.*?\bby\s+{_NUMBER}", re.IGNORECASE),
    re.compile(rf"\btimes\s+{_NUMBER}", re.IGNORECASE),
    re.compile(rf"[*×]\s*{_NUMBER}"),
)
_PERCENT = re.compile(rf"{_NUMBER}\s*(?:%|percent\b)", re.IGNORECASE)
_SUBTRACT = re.compile(r"\b(?:minus|subtract|difference|less)\b", re.IGNORECASE)
ARITHMETIC_VOCABULARY = re.compile(
    r"\b(?:calculate|compute|multiply|multiplied|divide|divided|add|subtract|sum|percent|plus|minus|times)\b|%",
    re.IGNORECASE
)

# Capitalized words that start sentences or name metrics rather than places
_NOT_PLACES = {"what", "the", "and", "population", "gdp", "i", "how"}


def detect_locations(query: str) -> List[str]:
    """Known cities plus capitalized names after "of"/"in"/"for"/"and", in order of appearance."""
    found = []
    for match in _CITY_PATTERN.finditer(query):
        found.append((match.start(), match.group(1).title()))

    for match in _OF_PLACE.finditer(query):
        name = match.group(1).strip(" .,'")
        if name.lower() in _NOT_PLACES or any(name.lower() == city.lower() for _, city in found):
            continue
        if _CITY_PATTERN.search(name):
            continue
        found.append((match.start(1), name))

    locations = []
    for _, name in sorted(found):
        if name.lower() not in {loc.lower() for loc in locations}:
            locations.append(name)
    return locations


def detect_metric(query: str) -> Optional[str]:
    match = _METRIC.search(query)
    return match.group(1).lower() if match else None


def detect_multiplier(query: str) -> Optional[str]:
    """Return the multiplier literal ("0.05"); percentages are converted ("5%" -> "0.05")."""
    for pattern in _MULTIPLIERS:
        match = pattern.search(query)
        if match:
            return match.group(1)
    match = _PERCENT.search(query)
    if match:
        return format_number(float(match.group(1)) / 100)
    return None


def template_decomposition(query: str) -> Optional[List[SubQuestion]]:
    """
    Synthesize sub-questions for canonical metric queries.

    Returns None when the query does not fit a known shape.
    """
    metric = detect_metric(query)
    locations = detect_locations(query)
    if not metric or not locations:
        return None

    multiplier = detect_multiplier(query)
    plural = METRICS[metric]
    label = metric if metric != "gdp" else "GDP"

    sub_questions = [
        SubQuestion(id=f"q{index}", text=f"What is the current {label} of {location}?", tool=ToolKind.SEARCH)
        for index, location in enumerate(locations, start=1)
    ]
    search_ids = [sq.id for sq in sub_questions]

    if len(locations) > 1:
        combine_id = f"q{len(sub_questions) + 1}"
        if _SUBTRACT.search(query) and len(locations) == 2:
            text = f"Subtract the {label} of {locations[1]} from the {label} of {locations[0]}"
            combined = f"resulting {label}"
        else:
            text = f"Add the {plural} of {' and '.join(locations)}"
            combined = f"combined {label}"
        sub_questions.append(
            SubQuestion(id=combine_id, text=text, tool=ToolKind.CALCULATOR, depends_on=search_ids)
        )
        if multiplier:
            sub_questions.append(SubQuestion(
                id=f"q{len(sub_questions) + 1}",
                text=f"Multiply the {combined} by {multiplier}",
                tool=ToolKind.CALCULATOR,
                depends_on=[combine_id],
            ))
    elif multiplier:
        sub_questions.append(SubQuestion(
            id=f"q{len(sub_questions) + 1}",
            text=f"Multiply the {label} of {locations[0]} by {multiplier}",
            tool=ToolKind.CALCULATOR,
            depends_on=[search_ids[0]],
        ))

    logger.info(f"[DECOMPOSER] Template decomposition: {len(sub_questions)} sub-questions for {locations}")
    return sub_questions


def emergency_decomposition(query: str) -> List[SubQuestion]:
    """One search over the whole query, plus a dependent calculation when arithmetic is asked for."""
    sub_questions = [SubQuestion(id="q1", text=query.strip(), tool=ToolKind.SEARCH)]
    if ARITHMETIC_VOCABULARY.search(query):
        sub_questions.append(SubQuestion(
            id="q2",
            text=f"Perform the calculation requested in: {query.strip()}",
            tool=ToolKind.CALCULATOR,
            depends_on=["q1"],
        ))
    logger.info(f"[DECOMPOSER] Emergency decomposition: {len(sub_questions)} sub-questions")
    return sub_questions
