from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional


class LLMError(Exception):
    """Provider returned an error or an unusable response."""


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: dict


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    # Raw assistant message, appended verbatim before tool results.
    message: dict = field(default_factory=dict)


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        tools: Optional[List[dict]] = None,
    ) -> LLMResponse:
        """Generate a completion, possibly with tool calls."""
        pass
