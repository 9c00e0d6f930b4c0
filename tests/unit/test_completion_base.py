"""Unit tests for completion base classes and the provider factory.

Tests cover:
- Abstract base class enforcement
- CompletionRequest/CompletionResult validation
- Provider table and factory selection
"""

import logging
from typing import get_args
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from chat_invoice.completion.base import CompletionProvider, CompletionRequest, CompletionResult
from chat_invoice.completion.factory import PROVIDERS, create_completion_provider
from chat_invoice.completion.ollama_provider import OllamaCompletionProvider
from chat_invoice.completion.openai_provider import OpenAICompletionProvider
from chat_invoice.shared.config import Settings


def test_completion_request_defaults() -> None:
    """Requests default to low temperature and JSON output."""
    request = CompletionRequest(system_prompt="sys", user_prompt="user", max_tokens=100)

    assert request.temperature == 0.1
    assert request.json_output is True


def test_completion_request_rejects_zero_budget() -> None:
    """Token budget must be positive."""
    with pytest.raises(ValidationError):
        CompletionRequest(system_prompt="sys", user_prompt="user", max_tokens=0)


def test_completion_result_with_failure() -> None:
    """Test CompletionResult for a failed call."""
    result = CompletionResult(content=None, success=False, error="Test error", provider="test")

    assert result.success is False
    assert result.content is None
    assert result.error == "Test error"


def test_completion_provider_is_abstract() -> None:
    """Test that CompletionProvider cannot be instantiated directly."""
    with pytest.raises(TypeError, match="Can't instantiate abstract class"):
        CompletionProvider(Settings(_env_file=None))  # type: ignore[abstract]


def test_completion_provider_requires_provider_name() -> None:
    """Concrete providers must implement every abstract member."""

    class IncompleteProvider(CompletionProvider):
        def complete(self, request: CompletionRequest) -> CompletionResult:
            return CompletionResult(content=None, success=False, provider="incomplete")

        def is_available(self) -> bool:
            return True

    with pytest.raises(TypeError):
        IncompleteProvider(Settings(_env_file=None))  # type: ignore[abstract]


def test_providers_cover_every_configurable_name() -> None:
    """Each value allowed for completion_provider has an implementation."""
    allowed = set(get_args(Settings.model_fields["completion_provider"].annotation))

    assert set(PROVIDERS) == allowed


def test_create_completion_provider_unknown_name() -> None:
    """Unknown names raise ValueError listing the available providers."""
    settings = Settings.model_construct(completion_provider="nonexistent")

    with pytest.raises(ValueError, match="Unknown completion provider") as exc_info:
        create_completion_provider(settings)

    assert "Available providers: openai, ollama" in str(exc_info.value)


@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
def test_create_completion_provider_default() -> None:
    """Factory creates the OpenAI provider by default."""
    provider = create_completion_provider(Settings(_env_file=None))

    assert isinstance(provider, OpenAICompletionProvider)
    assert provider.provider_name == "openai"


def test_create_completion_provider_ollama() -> None:
    """Factory honours completion_provider=ollama."""
    settings = Settings(_env_file=None, completion_provider="ollama")

    with patch.object(OllamaCompletionProvider, "is_available", return_value=True):
        provider = create_completion_provider(settings)

    assert isinstance(provider, OllamaCompletionProvider)


@patch.dict("os.environ", {}, clear=True)
def test_create_completion_provider_warns_when_unavailable(
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Missing credentials are logged, not raised."""
    with caplog.at_level(logging.WARNING):
        provider = create_completion_provider(Settings(_env_file=None))

    assert provider.is_available() is False
    assert "not available" in caplog.text
