"""
Planning - query decomposition into dependent sub-questions.
"""
from .decomposer import DecomposerNode, finalize_sub_questions
from .parsing import (
    parse_decomposition,
    parse_strict,
    parse_array_objects,
    parse_fields,
    serialize_sub_questions
)
from .templates import template_decomposition, emergency_decomposition, detect_multiplier, detect_locations

__all__ = [
    "DecomposerNode",
    "finalize_sub_questions",
    "parse_decomposition",
    "parse_strict",
    "parse_array_objects",
    "parse_fields",
    "serialize_sub_questions",
    "template_decomposition",
    "emergency_decomposition",
    "detect_multiplier",
    "detect_locations"
]
