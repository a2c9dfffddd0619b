"""
Domain layer - models and collaborator interfaces.
"""
from .models import (
    ToolKind,
    QueryLabel,
    SubQuestion,
    TextOutput,
    StructuredOutput,
    ToolOutput,
    ChatTurn,
    RunContext,
    ToolCall,
    RunResult
)
from .interfaces import (
    ICalculatorClient,
    ISearchClient,
    IStructuredQueryClient,
    ILanguageModel
)

__all__ = [
    "ToolKind",
    "QueryLabel",
    "SubQuestion",
    "TextOutput",
    "StructuredOutput",
    "ToolOutput",
    "ChatTurn",
    "RunContext",
    "ToolCall",
    "RunResult",
    "ICalculatorClient",
    "ISearchClient",
    "IStructuredQueryClient",
    "ILanguageModel"
]
