"""
Routing - Pattern Classifier and Model-Assisted Analyzer.
"""
from .patterns import classify_query, is_composite, is_calculation, is_search
from .analyzer import ModelAnalyzer, QueryAnalyzerNode, parse_label

__all__ = [
    "classify_query",
    "is_composite",
    "is_calculation",
    "is_search",
    "ModelAnalyzer",
    "QueryAnalyzerNode",
    "parse_label"
]
