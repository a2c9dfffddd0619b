"""
Infrastructure layer - concrete collaborators (calculator, search, database, model).
"""
from .tool_clients import (
    SafeExpressionCalculator,
    SerpApiSearchClient,
    HttpStructuredQueryClient,
    evaluate_expression,
    filter_search_response,
    format_number
)
from .language_model import ChatModelLanguageModel, complete_with_timeout

__all__ = [
    "SafeExpressionCalculator",
    "SerpApiSearchClient",
    "HttpStructuredQueryClient",
    "evaluate_expression",
    "filter_search_response",
    "format_number",
    "ChatModelLanguageModel",
    "complete_with_timeout"
]
