"""Text-generation client.

Provider-agnostic via LiteLLM: any model string LiteLLM understands
(``anthropic/...``, ``openai/...``, ``gemini/...``) works. Configure via
LLM_MODEL / LLM_API_KEY / LLM_API_BASE.

The pipeline only depends on the ``TextGenerator`` protocol so tests can
substitute a scripted fake.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import litellm

from ..core.config import settings
from ..exceptions import ProviderError
from .circuit_breaker import CircuitBreakerOpen, get_breaker

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7


@dataclass
class GenerationResult:
    text: str
    usage: dict[str, int] = field(default_factory=dict)


class TextGenerator(Protocol):
    async def generate_text(
        self,
        prompt: str,
        *,
        temperature: Optional[float] = None,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> GenerationResult:
        ...


class LiteLLMTextGenerator:
    """``TextGenerator`` backed by ``litellm.acompletion``.

    Every failure, including an open circuit, surfaces as ``ProviderError``.
    Nothing is retried here; a failed call fails the run.
    """

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ):
        self.model = model or settings.llm_model
        self.api_key = api_key if api_key is not None else settings.llm_api_key
        self.api_base = api_base if api_base is not None else settings.llm_api_base
        self.timeout = timeout or settings.llm_timeout
        self.max_tokens = max_tokens or settings.llm_max_tokens
        self._breaker = get_breaker(self.model)

    async def generate_text(
        self,
        prompt: str,
        *,
        temperature: Optional[float] = None,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> GenerationResult:
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": DEFAULT_TEMPERATURE if temperature is None else temperature,
            "max_tokens": max_tokens or self.max_tokens,
            "timeout": self.timeout,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        try:
            response = await self._breaker.call(lambda: litellm.acompletion(**kwargs))
        except CircuitBreakerOpen as e:
            raise ProviderError("generate_text", str(e), {"model": self.model}) from e
        except Exception as e:
            logger.error(
                "Text generation failed",
                extra={"model": self.model, "error_type": type(e).__name__},
            )
            raise ProviderError("generate_text", str(e), {"model": self.model}) from e

        text = response.choices[0].message.content or ""
        usage = _usage_dict(getattr(response, "usage", None))
        logger.debug("Text generation finished", extra={"model": self.model, **usage})
        return GenerationResult(text=text, usage=usage)


def _usage_dict(usage: Any) -> dict[str, int]:
    if usage is None:
        return {}
    result: dict[str, int] = {}
    for key in ("prompt_tokens", "completion_tokens", "total_tokens"):
        value = getattr(usage, key, None)
        if isinstance(value, int):
            result[key] = value
    return result
