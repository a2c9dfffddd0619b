"""
Decomposition output parser.

The model is asked for:

    {"subQuestions": [{"id": "q1", "question": "...", "toolType": "search", "dependsOn": []}, ...]}

Parsing falls through three tiers, most to least strict:
1. the whole payload as JSON
2. the subQuestions array located by regex, then each object on its own
3. id / question / toolType fields pulled out one by one
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional

from ..domain.models import SubQuestion, ToolKind
from ..exceptions import DecompositionParseError

logger = logging.getLogger(__name__)

TOOL_ALIASES = {
    "search": ToolKind.SEARCH,
    "serpapi": ToolKind.SEARCH,
    "web_search": ToolKind.SEARCH,
    "websearch": ToolKind.SEARCH,
    "web": ToolKind.SEARCH,
    "calculator": ToolKind.CALCULATOR,
    "calc": ToolKind.CALCULATOR,
    "math": ToolKind.CALCULATOR,
    "structured_query": ToolKind.STRUCTURED_QUERY,
    "sql": ToolKind.STRUCTURED_QUERY,
    "direct": ToolKind.DIRECT,
}

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_ARRAY = re.compile(r'"subQuestions"\s*:\s*(\[[\s\S]*\])')
_OBJECT = re.compile(r"\{[^{}]*\}")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")

_ID_FIELD = re.compile(r'"id"\s*:\s*"([^"]+)"')
_QUESTION_FIELD = re.compile(r'"question"\s*:\s*"((?:[^"\\]|\\.)*)"')
_TOOL_FIELD = re.compile(r'"toolType"\s*:\s*"([^"]+)"')
_DEPENDS_FIELD = re.compile(r'"dependsOn"\s*:\s*\[([^\]]*)\]')


def parse_tool(value: Any) -> Optional[ToolKind]:
    if not isinstance(value, str):
        return None
    return TOOL_ALIASES.get(value.strip().lower())


def _strip_fences(text: str) -> str:
    return _FENCE.sub("", text.strip()).strip()


def _to_sub_question(item: Any) -> SubQuestion:
    if not isinstance(item, dict):
        raise DecompositionParseError(f"sub-question is not an object: {item!r}")

    sq_id = item.get("id")
    question = item.get("question")
    tool = parse_tool(item.get("toolType"))
    if not isinstance(sq_id, str) or not sq_id.strip():
        raise DecompositionParseError("sub-question without id", {"item": item})
    if not isinstance(question, str) or not question.strip():
        raise DecompositionParseError(f"sub-question {sq_id} has no question", {"item": item})
    if tool is None:
        raise DecompositionParseError(f"sub-question {sq_id} has unknown toolType", {"item": item})

    depends_on = item.get("dependsOn") or []
    if isinstance(depends_on, str):
        depends_on = [depends_on]
    if not isinstance(depends_on, list):
        depends_on = []

    return SubQuestion(
        id=sq_id.strip(),
        text=question.strip(),
        tool=tool,
        depends_on=[str(dep).strip() for dep in depends_on if str(dep).strip()],
    )


def parse_strict(text: str) -> List[SubQuestion]:
    """Tier 1: the entire payload must be valid JSON of the expected shape."""
    try:
        payload = json.loads(_strip_fences(text))
    except json.JSONDecodeError as e:
        raise DecompositionParseError(f"payload is not valid JSON: {e}") from e

    items = payload.get("subQuestions") if isinstance(payload, dict) else payload
    if not isinstance(items, list) or not items:
        raise DecompositionParseError("payload has no subQuestions array")
    return [_to_sub_question(item) for item in items]


def parse_array_objects(text: str) -> List[SubQuestion]:
    """Tier 2: locate the subQuestions array, then parse each object best-effort."""
    match = _ARRAY.search(text)
    if not match:
        raise DecompositionParseError("no subQuestions array found")

    array_text = _TRAILING_COMMA.sub(r"\1", match.group(1))
    try:
        items = json.loads(array_text)
        if isinstance(items, list):
            parsed = [_to_sub_question(item) for item in items]
            if parsed:
                return parsed
    except (json.JSONDecodeError, DecompositionParseError):
        pass

    sub_questions = []
    for object_text in _OBJECT.findall(array_text):
        try:
            item = json.loads(_TRAILING_COMMA.sub(r"\1", object_text))
            sub_questions.append(_to_sub_question(item))
        except (json.JSONDecodeError, DecompositionParseError) as e:
            logger.debug(f"[DECOMPOSER] Skipping unparsable sub-question object: {e}")

    if not sub_questions:
        raise DecompositionParseError("no sub-question object could be parsed")
    return sub_questions


def parse_fields(text: str) -> List[SubQuestion]:
    """
    Tier 3: field-by-field extraction.

    Requires as many ids as questions as toolTypes. When dependsOn lists do
    not line up with them, calculator items depend on everything before them.
    """
    ids = _ID_FIELD.findall(text)
    questions = _QUESTION_FIELD.findall(text)
    tools = _TOOL_FIELD.findall(text)
    if not ids or not (len(ids) == len(questions) == len(tools)):
        raise DecompositionParseError(
            "field counts do not match",
            {"ids": len(ids), "questions": len(questions), "tool_types": len(tools)}
        )

    depends = _DEPENDS_FIELD.findall(text)
    depends_aligned = len(depends) == len(ids)

    sub_questions = []
    for index, (sq_id, question, tool_name) in enumerate(zip(ids, questions, tools)):
        tool = parse_tool(tool_name) or ToolKind.SEARCH
        if depends_aligned:
            depends_on = re.findall(r'"([^"]+)"', depends[index])
        elif tool == ToolKind.CALCULATOR:
            depends_on = list(ids[:index])
        else:
            depends_on = []

        try:
            question = json.loads(f'"{question}"')
        except json.JSONDecodeError:
            pass

        sub_questions.append(SubQuestion(id=sq_id, text=question, tool=tool, depends_on=depends_on))
    return sub_questions


PARSER_TIERS = (
    ("strict", parse_strict),
    ("array", parse_array_objects),
    ("fields", parse_fields),
)


def parse_decomposition(text: str) -> List[SubQuestion]:
    """
    Parse model output into sub-questions, trying each tier in order.

    Raises:
        DecompositionParseError: When no tier produced a non-empty list.
    """
    if not text or not text.strip():
        raise DecompositionParseError("empty decomposition output")

    errors = []
    for name, parser in PARSER_TIERS:
        try:
            sub_questions = parser(text)
        except DecompositionParseError as e:
            errors.append(f"{name}: {e.message}")
            continue
        logger.info(f"[DECOMPOSER] Parsed {len(sub_questions)} sub-questions ({name} tier)")
        return sub_questions

    raise DecompositionParseError("all parser tiers failed", {"errors": errors})


def serialize_sub_questions(sub_questions: List[SubQuestion]) -> str:
    """Render sub-questions in the shape the parser reads back."""
    payload: Dict[str, Any] = {
        "subQuestions": [
            {
                "id": sq.id,
                "question": sq.text,
                "toolType": sq.tool.value,
                "dependsOn": list(sq.depends_on),
            }
            for sq in sub_questions
        ]
    }
    return json.dumps(payload, indent=2)
