"""
Engine configuration dataclasses.

Provides centralized configuration with sensible defaults for:
- Timeouts (per tool call, per model call, whole run)
- Execution limits (safety valve, recursion limit, decomposition size)
- Search provider (SerpAPI)
- Structured query endpoint
- Language model
"""

from dataclasses import dataclass, field
from typing import Optional
import logging
import os

logger = logging.getLogger(__name__)


@dataclass
class TimeoutConfig:
    """Time budgets in seconds for every suspension point."""

    tool_seconds: float = 5.0  # Calculator / search / structured query
    analysis_seconds: float = 8.0  # Model-assisted classification
    decomposition_seconds: float = 10.0
    expression_seconds: float = 8.0  # Model-generated calculator expressions
    response_seconds: float = 10.0  # Single-tool answer formatting
    aggregation_seconds: float = 15.0
    run_seconds: float = 60.0  # Whole-run ceiling

    def __post_init__(self):
        """Validate configuration."""
        for name in (
            "tool_seconds", "analysis_seconds", "decomposition_seconds",
            "expression_seconds", "response_seconds", "aggregation_seconds", "run_seconds"
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")


@dataclass
class ExecutionConfig:
    """Limits for the sub-question scheduler."""

    max_completed_steps: int = 20  # Absolute safety-valve ceiling
    safety_valve_ratio: Optional[float] = None  # e.g. 0.5 stops after half the sub-questions
    recursion_limit: int = 100  # LangGraph super-step limit
    max_sub_questions: int = 5  # Cap for model-produced decompositions
    substitute_zero_for_unresolved: bool = False  # Last-resort fallback, logged when used

    def __post_init__(self):
        """Validate configuration."""
        if self.max_completed_steps <= 0:
            raise ValueError("max_completed_steps must be positive")
        if self.safety_valve_ratio is not None and not 0 < self.safety_valve_ratio <= 1:
            raise ValueError("safety_valve_ratio must be in (0, 1]")
        if self.recursion_limit < 10:
            raise ValueError("recursion_limit must be at least 10")
        if self.max_sub_questions <= 0:
            raise ValueError("max_sub_questions must be positive")


@dataclass
class SearchConfig:
    """Configuration for the SerpAPI search client."""

    base_url: str = "https://serpapi.com/search"
    engine: str = "google"
    include_organic: bool = False
    minimal: bool = True  # Keep only the fields useful to the model
    max_result_chars: int = 3000
    truncation_keep_chars: int = 1000  # Kept from both head and tail when truncating
    request_timeout_seconds: float = 10.0

    # Environment variable for API key
    api_key_env_var: str = "SERPAPI_KEY"

    def __post_init__(self):
        """Validate configuration."""
        if self.truncation_keep_chars * 2 > self.max_result_chars:
            raise ValueError("truncation_keep_chars must be at most half of max_result_chars")

    @property
    def api_key(self) -> Optional[str]:
        """Get SerpAPI key from environment (None when search is not configured)."""
        return os.getenv(self.api_key_env_var) or None


@dataclass
class StructuredQueryConfig:
    """Configuration for the structured (SQL) query endpoint."""

    endpoint_url: Optional[str] = None
    request_timeout_seconds: float = 30.0


@dataclass
class ModelConfig:
    """Configuration for the chat model."""

    model_name: str = "gpt-4o-mini"
    temperature: float = 0.7

    # Environment variable for API key
    api_key_env_var: str = "OPENAI_API_KEY"

    @property
    def api_key(self) -> str:
        """Get OpenAI API key from environment."""
        key = os.getenv(self.api_key_env_var)
        if not key:
            raise ValueError(
                f"OpenAI API key not found in environment variable: {self.api_key_env_var}"
            )
        return key


def _float_from_env(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric value for {name}: {raw!r}")
        return None


@dataclass
class EngineConfig:
    """Aggregated engine configuration."""

    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    structured_query: StructuredQueryConfig = field(default_factory=StructuredQueryConfig)
    model: ModelConfig = field(default_factory=ModelConfig)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create configuration with environment variable overrides."""
        config = cls()

        if (value := _float_from_env("TOOL_TIMEOUT_SECONDS")) and value > 0:
            config.timeouts.tool_seconds = value
        if (value := _float_from_env("DECOMPOSITION_TIMEOUT_SECONDS")) and value > 0:
            config.timeouts.decomposition_seconds = value
        if (value := _float_from_env("AGGREGATION_TIMEOUT_SECONDS")) and value > 0:
            config.timeouts.aggregation_seconds = value
        if (value := _float_from_env("RUN_TIMEOUT_SECONDS")) and value > 0:
            config.timeouts.run_seconds = value

        if endpoint := os.getenv("STRUCTURED_QUERY_URL"):
            config.structured_query.endpoint_url = endpoint

        if model_name := os.getenv("OPENAI_MODEL"):
            config.model.model_name = model_name

        return config
