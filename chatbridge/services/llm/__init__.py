from chatbridge.services.llm.base import LLMError, LLMProvider, LLMResponse, ToolCall
from chatbridge.services.llm.openai_provider import (
    OpenAIProvider,
    get_analysis_provider,
    get_primary_provider,
)

__all__ = [
    "LLMError",
    "LLMProvider",
    "LLMResponse",
    "ToolCall",
    "OpenAIProvider",
    "get_primary_provider",
    "get_analysis_provider",
]
