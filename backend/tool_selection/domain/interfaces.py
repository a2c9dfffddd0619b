"""
Domain interfaces - Abstractions for the external collaborators of the engine.
Following SOLID: Dependency Inversion Principle - depend on abstractions, not concrete implementations.
Interface Segregation Principle - one narrow interface per capability.
"""
from abc import ABC, abstractmethod
from typing import Any, Union, Dict


class ICalculatorClient(ABC):
    """Evaluates arithmetic expressions."""

    @abstractmethod
    async def evaluate(self, expression: str) -> str:
        """Return the result as text. May return an error string instead of raising."""
        pass


class ISearchClient(ABC):
    """Web search provider."""

    @abstractmethod
    async def search(self, query: str) -> Union[str, Dict[str, Any]]:
        """Return prose or a structured payload (answer box, knowledge graph, organic results...)."""
        pass


class IStructuredQueryClient(ABC):
    """Database query executor."""

    @abstractmethod
    async def query(self, statement: str) -> Any:
        """Execute a query and return its rows (JSON-compatible) or raw text."""
        pass


class ILanguageModel(ABC):
    """Single-turn text completion."""

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Complete the prompt and return the model text."""
        pass
