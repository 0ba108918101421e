"""Tests for the LiteLLM-backed text generator."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from pagesmith.clients.circuit_breaker import CircuitState, get_breaker
from pagesmith.clients.llm_client import LiteLLMTextGenerator
from pagesmith.exceptions import ProviderError


def _response(text, usage=None):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=usage,
    )


@pytest.fixture()
def generator():
    return LiteLLMTextGenerator(model="test/model", api_key="sk-test", api_base="", timeout=5, max_tokens=1000)


class TestGenerateText:

    @pytest.mark.asyncio
    async def test_returns_text_and_usage(self, generator):
        usage = SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15)
        with patch("litellm.acompletion", new=AsyncMock(return_value=_response("hello", usage))) as call:
            result = await generator.generate_text("Say hello", system="Be terse.", temperature=0.2)

        assert result.text == "hello"
        assert result.usage == {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}
        kwargs = call.await_args.kwargs
        assert kwargs["model"] == "test/model"
        assert kwargs["messages"] == [
            {"role": "system", "content": "Be terse."},
            {"role": "user", "content": "Say hello"},
        ]
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 1000
        assert kwargs["api_key"] == "sk-test"
        assert "api_base" not in kwargs

    @pytest.mark.asyncio
    async def test_defaults(self, generator):
        with patch("litellm.acompletion", new=AsyncMock(return_value=_response(None))) as call:
            result = await generator.generate_text("Hi", max_tokens=50)

        assert result.text == ""
        assert result.usage == {}
        kwargs = call.await_args.kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "Hi"}]
        assert kwargs["temperature"] == 0.7
        assert kwargs["max_tokens"] == 50

    @pytest.mark.asyncio
    async def test_provider_failure_becomes_provider_error(self, generator):
        with patch("litellm.acompletion", new=AsyncMock(side_effect=RuntimeError("429 rate limit"))):
            with pytest.raises(ProviderError) as exc_info:
                await generator.generate_text("Hi")

        assert exc_info.value.operation == "generate_text"
        assert "429 rate limit" in exc_info.value.message
        assert exc_info.value.context == {"model": "test/model"}

    @pytest.mark.asyncio
    async def test_open_circuit_short_circuits(self, generator):
        failing = AsyncMock(side_effect=RuntimeError("down"))
        with patch("litellm.acompletion", new=failing):
            for _ in range(3):
                with pytest.raises(ProviderError):
                    await generator.generate_text("Hi")

            assert get_breaker("test/model").state == CircuitState.OPEN

            with pytest.raises(ProviderError) as exc_info:
                await generator.generate_text("Hi")

        assert failing.await_count == 3
        assert "Circuit breaker OPEN" in exc_info.value.message
