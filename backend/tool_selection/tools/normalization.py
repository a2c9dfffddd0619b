"""
ToolResult normalization.

Every tool result is stored as text. Structured payloads are serialized
defensively: nested objects with many keys are collapsed, cycles and very
deep nesting are cut, and the final text is capped in size.
"""
import json
import logging
import re
from typing import Any, Optional

from ..domain.models import TextOutput, StructuredOutput, ToolOutput

logger = logging.getLogger(__name__)

MAX_NESTED_KEYS = 10
MAX_DEPTH = 6
MAX_SERIALIZED_CHARS = 20000
TRUNCATION_MARKER = "\n\n...[Content truncated for brevity]...\n\n"

_ERROR_MARKERS = (
    "error",
    "don't know",
    "do not know",
    "invalid",
    "could not",
    "unable to",
    "timed out",
)
_NUMERIC_TEXT = re.compile(r"^\s*-?[\d,]*\.?\d+\s*$")

FAILURE_PREFIX = "Error:"


def format_failure(message: str) -> str:
    """Result text recorded for a sub-question whose tool call failed."""
    return f"{FAILURE_PREFIX} {message}"


def is_failure_text(text: Optional[str]) -> bool:
    return text is None or text.startswith(FAILURE_PREFIX)


def looks_like_error(text: Optional[str]) -> bool:
    """True for missing results and the error strings calculators return instead of raising."""
    if text is None or not text.strip():
        return True
    if _NUMERIC_TEXT.match(text):
        return False
    lowered = text.lower()
    return any(marker in lowered for marker in _ERROR_MARKERS)


def _flatten(value: Any, depth: int, seen: set) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value

    if isinstance(value, BaseException):
        return str(value)

    if callable(value):
        return "function"

    if isinstance(value, (dict, list, tuple, set)):
        marker = id(value)
        if marker in seen:
            return "[Circular reference]"
        if depth > MAX_DEPTH:
            return "[Nested object]"

        seen = seen | {marker}
        if isinstance(value, dict):
            if depth > 0 and len(value) > MAX_NESTED_KEYS:
                return f"[Complex Object with {len(value)} properties]"
            return {str(k): _flatten(v, depth + 1, seen) for k, v in value.items()}
        return [_flatten(v, depth + 1, seen) for v in value]

    return str(value)


def serialize_payload(payload: Any, max_chars: int = MAX_SERIALIZED_CHARS) -> str:
    """Serialize an arbitrary payload to bounded JSON text."""
    if isinstance(payload, str):
        text = payload
    else:
        try:
            text = json.dumps(_flatten(payload, 0, set()), indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.warning(f"Could not serialize tool payload: {e}")
            text = str(payload)

    if len(text) > max_chars:
        text = text[:max_chars] + "...[truncated]"
    return text


def to_tool_output(value: Any) -> ToolOutput:
    """Wrap raw adapter output in the tagged union."""
    if isinstance(value, (TextOutput, StructuredOutput)):
        return value
    if value is None:
        return TextOutput(text="")
    if isinstance(value, str):
        return TextOutput(text=value)
    if isinstance(value, dict):
        return StructuredOutput.from_payload(value)
    return StructuredOutput(raw=value)


def output_to_text(output: ToolOutput) -> str:
    """Normalize a tool output to the text stored in RunState."""
    if isinstance(output, TextOutput):
        return output.text
    return serialize_payload(output.raw)


def truncate_middle(text: str, max_chars: int, keep_chars: int) -> str:
    """Keep the head and tail of long text around a truncation marker."""
    if len(text) <= max_chars:
        return text
    return f"{text[:keep_chars]}{TRUNCATION_MARKER}{text[-keep_chars:]}"


def extract_search_information(output: ToolOutput, max_chars: int = 3000, keep_chars: int = 1000) -> str:
    """
    Turn a search result into prompt-ready text.

    Preference order for structured payloads: organic results, sports
    results, answer box, then the bounded serialization of the payload.
    """
    if isinstance(output, TextOutput):
        info = output.text or "No relevant information found."
    elif output.organic_results:
        info = "\n".join(
            f"[Result {index}]\n"
            f"Title: {result.get('title', '')}\n"
            f"Snippet: {result.get('snippet', '')}\n"
            f"Source: {result.get('source', '')}\n"
            for index, result in enumerate(output.organic_results, start=1)
        )
    elif output.sports_results:
        info = f"Sports Results: {serialize_payload(output.sports_results)}"
    elif output.answer_box:
        box = output.answer_box
        info = f"Answer: {box.get('answer') or box.get('snippet') or serialize_payload(box)}"
    else:
        info = serialize_payload(output.raw)

    truncated = truncate_middle(info, max_chars, keep_chars)
    if truncated is not info:
        logger.info("Truncated search information to fit the prompt budget")
    return truncated
