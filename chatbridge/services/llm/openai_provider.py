import json
from typing import List, Optional

import httpx

from chatbridge.config import settings
from chatbridge.logging_config import get_logger
from chatbridge.services.llm.base import LLMError, LLMProvider, LLMResponse, ToolCall

logger = get_logger("llm.openai")

_primary_provider = None
_analysis_provider = None


def _parse_tool_calls(raw_calls: Optional[list]) -> List[ToolCall]:
    calls = []
    for raw in raw_calls or []:
        function = raw.get("function") or {}
        raw_args = function.get("arguments") or "{}"
        try:
            arguments = json.loads(raw_args) if isinstance(raw_args, str) else dict(raw_args)
        except ValueError:
            logger.warning(f"Tool call {function.get('name')} has malformed arguments: {raw_args[:200]}")
            arguments = {}
        if not isinstance(arguments, dict):
            arguments = {}
        calls.append(ToolCall(id=raw.get("id", ""), name=function.get("name", ""), arguments=arguments))
    return calls


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions API, or any endpoint speaking the same protocol."""

    def __init__(
        self,
        api_key: Optional[str],
        default_model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout_seconds: float = 60.0,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = f"{base_url.rstrip('/')}/chat/completions"
        self.timeout_seconds = timeout_seconds

    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        tools: Optional[List[dict]] = None,
    ) -> LLMResponse:
        model = model or self.default_model

        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        logger.debug(f"OpenAI request: model={model}, messages_count={len(messages)}, tools={len(tools or [])}")

        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(
                    self.base_url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as e:
            raise LLMError(f"OpenAI request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"OpenAI error: {response.text[:500]}")
            raise LLMError(f"OpenAI API error: {response.status_code} - {response.text[:500]}")

        data = response.json()
        choices = data.get("choices") or []
        if not choices:
            raise LLMError("OpenAI response has no choices")

        message = choices[0].get("message") or {}
        content = message.get("content") or ""
        tool_calls = _parse_tool_calls(message.get("tool_calls"))

        logger.debug(f"OpenAI content: {content[:100] if content else 'EMPTY'}, tool_calls={len(tool_calls)}")

        return LLMResponse(
            content=content,
            model=data.get("model", model),
            usage=data.get("usage"),
            tool_calls=tool_calls,
            message=message,
        )


def get_primary_provider() -> OpenAIProvider:
    """Provider that drives the conversation and calls tools."""
    global _primary_provider
    if _primary_provider is None:
        _primary_provider = OpenAIProvider(
            api_key=settings.openai_api_key,
            default_model=settings.default_model,
            base_url=settings.openai_base_url,
            timeout_seconds=settings.llm_timeout_seconds,
        )
    return _primary_provider


def get_analysis_provider() -> OpenAIProvider:
    """Secondary provider for post-conversation classification."""
    global _analysis_provider
    if _analysis_provider is None:
        _analysis_provider = OpenAIProvider(
            api_key=settings.analysis_api_key or settings.openai_api_key,
            default_model=settings.analysis_model,
            base_url=settings.analysis_base_url or settings.openai_base_url,
            timeout_seconds=settings.llm_timeout_seconds,
        )
    return _analysis_provider
