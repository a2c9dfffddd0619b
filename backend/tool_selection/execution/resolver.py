"""
Dependency Resolver.

Substitutes completed sub-question results into later inputs and keeps the
dependency graph executable:
- numeric extraction from free text or JSON results
- Sum(q1, q2) rewriting and qN reference substitution
- dependency validation (unknown, self and forward references dropped)
- entry-point guarantee
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from ..domain.models import SubQuestion
from ..infrastructure.tool_clients import format_number
from ..tools.normalization import is_failure_text

logger = logging.getLogger(__name__)

_MILLION = re.compile(r"(?<![\w.,])(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)\s*million", re.IGNORECASE)
_COMMA_NUMBER = re.compile(r"(?<![\w.])-?\d{1,3}(?:,\d{3})+(?:\.\d+)?")
_BARE_NUMBER = re.compile(r"(?<![\w.])-?\d+(?:\.\d+)?")
_SUM_CALL = re.compile(r"Sum\s*\(\s*([^)]+?)\s*\)", re.IGNORECASE)
REFERENCE = re.compile(r"\bq\d+\b")

_POPULATION_CONTAINERS = ("knowledge_graph", "answer_box")


def _number_in_text(text: str) -> Optional[str]:
    match = _MILLION.search(text)
    if match:
        return format_number(float(match.group(1).replace(",", "")) * 1_000_000)

    match = _COMMA_NUMBER.search(text)
    if match:
        return match.group(0).replace(",", "")

    match = _BARE_NUMBER.search(text)
    if match:
        return match.group(0)
    return None


def _population_field(payload: Any) -> Optional[Any]:
    if not isinstance(payload, dict):
        return None
    if payload.get("population") is not None:
        return payload["population"]
    for container in _POPULATION_CONTAINERS:
        nested = payload.get(container)
        if isinstance(nested, dict) and nested.get("population") is not None:
            return nested["population"]
    return None


def extract_numeric_value(result: Optional[str]) -> Optional[str]:
    """
    Pull one usable number out of a prior result.

    Order: JSON population fields, "<n> million", first comma-formatted
    number, first bare number. Returns None when nothing numeric is found.
    Already-numeric input comes back unchanged.
    """
    if result is None:
        return None
    text = str(result).strip()
    if not text:
        return None

    if text[0] in "{[":
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            payload = None
        field = _population_field(payload)
        if field is not None:
            if isinstance(field, (int, float)) and not isinstance(field, bool):
                return format_number(field)
            value = _number_in_text(str(field))
            if value is not None:
                logger.info(f"[RESOLVER] Extracted population {value} from structured result")
                return value

    return _number_in_text(text)


def _resolve_id(ref: str, results: Dict[str, str]) -> Optional[str]:
    result = results.get(ref)
    if result is None or is_failure_text(result):
        return None
    return extract_numeric_value(result)


def resolve_references(
    expression: str,
    results: Dict[str, str],
    substitute_zero: bool = False
) -> Tuple[str, List[str]]:
    """
    Replace Sum(...) calls and qN references with numeric values.

    Returns:
        (resolved expression, ids that could not be resolved). Unresolved ids
        are left in the text unless `substitute_zero` is set.
    """
    unresolved: List[str] = []

    def _value(ref: str) -> str:
        value = _resolve_id(ref, results)
        if value is not None:
            return value
        if substitute_zero:
            logger.warning(f"[RESOLVER] No usable value for {ref}; substituting 0 as last resort")
            return "0"
        logger.warning(f"[RESOLVER] Could not resolve dependency {ref}")
        if ref not in unresolved:
            unresolved.append(ref)
        return ref

    def _rewrite_sum(match: re.Match) -> str:
        args = [arg.strip() for arg in match.group(1).split(",") if arg.strip()]
        operands = [_value(arg) if REFERENCE.fullmatch(arg) else arg for arg in args]
        return f"({' + '.join(operands)})"

    resolved = expression
    while _SUM_CALL.search(resolved):
        resolved = _SUM_CALL.sub(_rewrite_sum, resolved)

    resolved = REFERENCE.sub(lambda m: _value(m.group(0)), resolved)
    if resolved != expression:
        logger.info(f"[RESOLVER] {expression!r} -> {resolved!r}")
    return resolved, unresolved


def dependency_values(
    dependency_ids: List[str],
    results: Dict[str, str]
) -> Tuple[List[str], List[str]]:
    """Numeric values of the given results, plus the ids that yielded none."""
    values, unresolved = [], []
    for dep in dependency_ids:
        value = _resolve_id(dep, results)
        if value is None:
            unresolved.append(dep)
        else:
            values.append(value)
    return values, unresolved


def validate_dependencies(sub_questions: List[SubQuestion]) -> List[SubQuestion]:
    """
    Keep only references to sub-questions listed earlier.

    Unknown, self and forward references are dropped, so the result is a
    DAG in list order.
    """
    seen: set = set()
    validated = []
    for sq in sub_questions:
        kept = []
        for dep in sq.depends_on:
            if dep in seen and dep not in kept:
                kept.append(dep)
            else:
                logger.warning(f"[RESOLVER] Dropping invalid dependency {dep!r} of {sq.id}")
        if kept != sq.depends_on:
            sq = sq.model_copy(update={"depends_on": kept})
        validated.append(sq)
        seen.add(sq.id)
    return validated


def ensure_entry_point(sub_questions: List[SubQuestion]) -> List[SubQuestion]:
    """Clear the first sub-question's dependencies when none can start."""
    if not sub_questions or any(not sq.depends_on for sq in sub_questions):
        return sub_questions
    logger.warning(f"[RESOLVER] No entry point; clearing dependencies of {sub_questions[0].id}")
    return [sub_questions[0].without_dependencies()] + list(sub_questions[1:])
