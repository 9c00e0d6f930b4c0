"""Abstract base class for text-completion providers.

The order interpreter talks to a text-completion collaborator through this
interface, so the cloud (OpenAI) and self-hosted (Ollama) backends can be
swapped by configuration.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python

Design follows existing patterns:
- Pydantic BaseModel for type-safe requests and results
- ABC for interface enforcement (Python standard library)
- Settings injection (consistent with existing service initialization)
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from chat_invoice.shared.config import Settings


class CompletionRequest(BaseModel):
    """A single completion request.

    Attributes:
        system_prompt: Instructions for the model
        user_prompt: Prompt carrying the message, catalog and output schema
        max_tokens: Output token budget
        temperature: Sampling temperature
        json_output: Ask the backend for a JSON-only response when it supports it
    """

    system_prompt: str
    user_prompt: str
    max_tokens: int = Field(gt=0)
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    json_output: bool = True


class CompletionResult(BaseModel):
    """Result of a completion call.

    Attributes:
        content: Raw text returned by the model, None if the call failed
        success: Whether the call succeeded
        error: Error message if the call failed
        provider: Name of provider that served the call (e.g., 'openai', 'ollama')
    """

    content: str | None
    success: bool
    error: str | None = None
    provider: str


class CompletionProvider(ABC):
    """Abstract base class for text-completion providers.

    Implementations never raise for transport or API failures; they report
    them through ``CompletionResult.success`` so callers can degrade.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize provider with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings

    @abstractmethod
    def complete(self, request: CompletionRequest) -> CompletionResult:
        """Run a completion.

        Args:
            request: Prompt, token budget and temperature

        Returns:
            CompletionResult with the raw model text or an error
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is available/configured.

        Returns:
            True if provider can be used, False otherwise
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier (e.g., 'openai', 'ollama')
        """
        pass
