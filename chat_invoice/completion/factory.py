"""Completion provider selection from settings."""

import logging

from chat_invoice.completion.base import CompletionProvider
from chat_invoice.completion.ollama_provider import OllamaCompletionProvider
from chat_invoice.completion.openai_provider import OpenAICompletionProvider
from chat_invoice.shared.config import Settings

logger = logging.getLogger(__name__)

# Keys match the values allowed for Settings.completion_provider
PROVIDERS: dict[str, type[CompletionProvider]] = {
    "openai": OpenAICompletionProvider,
    "ollama": OllamaCompletionProvider,
}


def create_completion_provider(settings: Settings) -> CompletionProvider:
    """Create the completion provider named by ``settings.completion_provider``.

    An unavailable provider (no API key, Ollama down) is still returned:
    every interpretation then takes the fallback path, so the warning is the
    only signal at startup.

    Raises:
        ValueError: If the configured provider is unknown
    """
    name = settings.completion_provider
    try:
        provider = PROVIDERS[name](settings)
    except KeyError:
        raise ValueError(
            f"Unknown completion provider: '{name}'. Available providers: {', '.join(PROVIDERS)}"
        ) from None

    if provider.is_available():
        logger.info(f"Completion provider '{name}' ready")
    else:
        logger.warning(
            f"Completion provider '{name}' is not available; "
            "orders will be interpreted with the fallback draft"
        )
    return provider
