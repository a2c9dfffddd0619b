"""
Language model adapter and the timeout-bounded completion helper.

The engine treats the model as a black-box `complete(prompt) -> text`
capability; `ChatModelLanguageModel` adapts any LangChain chat model
(ChatOpenAI by default) to that contract.
"""
import asyncio
import logging
from typing import Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage
from langchain_openai import ChatOpenAI

from ..config import ModelConfig
from ..domain.interfaces import ILanguageModel
from ..exceptions import ModelError, ModelTimeoutError

logger = logging.getLogger(__name__)


class ChatModelLanguageModel(ILanguageModel):
    """Wraps a LangChain chat model as a single-turn completion."""

    def __init__(self, llm: BaseChatModel):
        self.llm = llm

    @classmethod
    def from_config(cls, config: Optional[ModelConfig] = None) -> "ChatModelLanguageModel":
        config = config or ModelConfig()
        llm = ChatOpenAI(
            model=config.model_name,
            temperature=config.temperature,
            openai_api_key=config.api_key
        )
        return cls(llm)

    async def complete(self, prompt: str) -> str:
        response = await self.llm.ainvoke([HumanMessage(content=prompt)])
        content = response.content
        if isinstance(content, list):
            # Multi-part content: keep the text parts only
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part)
                for part in content
            )
        return str(content)


async def complete_with_timeout(
    model: ILanguageModel,
    prompt: str,
    timeout_seconds: float,
    purpose: str
) -> str:
    """
    Race a model call against a timer.

    Raises:
        ModelTimeoutError: If the call did not finish in time.
        ModelError: If the call raised or returned nothing.
    """
    try:
        text = await asyncio.wait_for(model.complete(prompt), timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        raise ModelTimeoutError(purpose, timeout_seconds) from e
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(f"{purpose} model call failed: {e}")
        raise ModelError(f"{purpose} model call failed: {e}") from e

    if text is None or not str(text).strip():
        raise ModelError(f"{purpose} model call returned an empty completion")
    return str(text).strip()
