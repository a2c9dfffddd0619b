"""
Calculator expression helpers: sanitizing, heuristic extraction from
natural language, and deterministic expressions over dependency values.
"""
import logging
import re
from typing import List, Optional

from ..infrastructure.tool_clients import SAFE_CONSTANTS, SAFE_FUNCTIONS
from .resolver import REFERENCE

logger = logging.getLogger(__name__)

_WORD_OPERATORS = (
    (re.compile(r"\bmultiplied\s+by\b", re.IGNORECASE), "*"),
    (re.compile(r"\bdivided\s+by\b", re.IGNORECASE), "/"),
    (re.compile(r"\btimes\b", re.IGNORECASE), "*"),
    (re.compile(r"\bplus\b", re.IGNORECASE), "+"),
    (re.compile(r"\bminus\b", re.IGNORECASE), "-"),
    (re.compile(r"(?<=\d)\s*[x×]\s*(?=\d)"), " * "),
    (re.compile(r"÷"), "/"),
)
_PERCENT_OF = re.compile(r"(\d+(?:\.\d+)?)\s*(?:%|percent)\s+of\s+(\d[\d,]*(?:\.\d+)?)", re.IGNORECASE)
_SQUARE_ROOT = re.compile(r"\b(?:square\s+root|sqrt)\s+of\s+(\d[\d,]*(?:\.\d+)?)", re.IGNORECASE)
_CANDIDATE = re.compile(r"(?:[(\-]|sqrt\()*\d(?:[\d\s+\-*/^().,]|sqrt\()*[\d)]")
_HAS_OPERATOR = re.compile(r"[\d)]\s*(?:\*\*|[+\-*/^])\s*[(\-]*\d")
_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z_0-9]*")
_CALL = re.compile(r"\b([A-Za-z_][A-Za-z_0-9]*)\(")
_MATH_PREFIX = re.compile(r"\bmath\.")
_LITERAL = re.compile(r"(?<![\w.])(\d+(?:\.\d+)?)\s*(%|percent\b)?", re.IGNORECASE)

OPERATION_WORDS = {
    "+": re.compile(r"\b(?:add|adding|sum|combined?|total|plus)\b", re.IGNORECASE),
    "-": re.compile(r"\b(?:subtract|minus|difference|less)\b", re.IGNORECASE),
    "*": re.compile(r"\b(?:multiply|multiplied|times|product)\b", re.IGNORECASE),
    "/": re.compile(r"\b(?:divide|divided|ratio|per)\b", re.IGNORECASE),
}


def _known_name(match: "re.Match") -> str:
    name = match.group(0)
    return name if name in SAFE_FUNCTIONS or name in SAFE_CONSTANTS else ""


def sanitize_expression(expression: str) -> str:
    """
    Normalize an expression for the calculator.

    Tightens parentheses, spaces binary operators, joins adjacent bare
    numbers with "+", keeps the calculator's known functions and
    constants, and strips everything else that is not arithmetic.
    Returns "" when the expression calls a function the calculator
    does not know, so the call fails instead of computing something else.
    """
    sanitized = expression.strip().strip("`").replace("×", "*").replace("÷", "/")
    sanitized = _MATH_PREFIX.sub("", sanitized)
    for call in _CALL.finditer(sanitized):
        if call.group(1) not in SAFE_FUNCTIONS:
            logger.warning(f"Unknown function {call.group(1)!r} in expression {expression!r}")
            return ""

    sanitized = re.sub(r"\(\s+", "(", sanitized)
    sanitized = re.sub(r"\s+\)", ")", sanitized)

    previous = None
    while previous != sanitized:
        previous = sanitized
        sanitized = re.sub(r"(\d)([+\-*/])(\d)", r"\1 \2 \3", sanitized)

    sanitized = re.sub(r"(\d+)\s+(?=\d)", r"\1 + ", sanitized)
    sanitized = _IDENTIFIER.sub(_known_name, sanitized)
    if not _CALL.search(sanitized):
        sanitized = sanitized.replace(",", "")
    sanitized = re.sub(r"[^0-9A-Za-z_+\-*/^().,\s]", "", sanitized)
    sanitized = re.sub(r"\s+", " ", sanitized).strip()
    return sanitized


def extract_expression(text: str) -> Optional[str]:
    """Find an arithmetic expression in natural language, or None."""
    rewritten = _PERCENT_OF.sub(
        lambda m: f"({m.group(1)} / 100 * {m.group(2).replace(',', '')})", text
    )
    rewritten = _SQUARE_ROOT.sub(lambda m: f"sqrt({m.group(1).replace(',', '')})", rewritten)
    for pattern, replacement in _WORD_OPERATORS:
        rewritten = pattern.sub(replacement, rewritten)

    candidates = [c.strip() for c in _CANDIDATE.findall(rewritten)]
    candidates = [c for c in candidates if _HAS_OPERATOR.search(c) or "sqrt(" in c]
    if not candidates:
        return None

    expression = max(candidates, key=len)
    # Drop unbalanced leading or trailing parentheses picked up from prose
    while expression.count("(") > expression.count(")") and expression.startswith("("):
        expression = expression[1:]
    while expression.count(")") > expression.count("(") and expression.endswith(")"):
        expression = expression[:-1]
    return expression.replace(",", "").strip() or None


def infer_operation(text: str) -> Optional[str]:
    """Operator named earliest in the instruction ("Add ..." -> "+")."""
    found = []
    for operator, pattern in OPERATION_WORDS.items():
        match = pattern.search(text)
        if match:
            found.append((match.start(), operator))
    return min(found)[1] if found else None


def _literal_operand(text: str) -> Optional[str]:
    without_refs = REFERENCE.sub(" ", text)
    match = _LITERAL.search(without_refs)
    if not match:
        return None
    if match.group(2):
        return f"{match.group(1)} / 100"
    return match.group(1)


def build_dependency_expression(text: str, values: List[str]) -> Optional[str]:
    """
    Build an expression from an instruction and its dependency values.

    "Add the populations of A and B" with [v1, v2] -> "v1 + v2"
    "Multiply the combined population by 0.05" with [v] -> "(v) * 0.05"
    Returns None when the instruction names no operation.
    """
    if not values:
        return None

    operation = infer_operation(text)
    literal = _literal_operand(text)
    mentions = {op for op, pattern in OPERATION_WORDS.items() if pattern.search(text)}

    if literal and ("*" in mentions or "/" in mentions or "%" in text or "percent" in text.lower()):
        scale = "/" if "/" in mentions and "*" not in mentions else "*"
        join = " - " if "-" in mentions and len(values) > 1 else " + "
        return f"({join.join(values)}) {scale} {literal}"

    if operation is None:
        return None

    if len(values) > 1:
        return f" {operation} ".join(values)

    if literal:
        return f"{values[0]} {operation} {literal}"
    return None
