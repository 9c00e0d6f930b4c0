"""OpenAI-based completion provider.

Uses the OpenAI chat completions API in JSON mode. Includes retry logic with
exponential backoff for transient API errors; the client itself is created
with the configured timeout and without its own retries so tenacity is the
only retry layer.
"""

import logging
import os
from typing import Any

from openai import OpenAI
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from chat_invoice.completion.base import CompletionProvider, CompletionRequest, CompletionResult
from chat_invoice.shared.config import Settings

logger = logging.getLogger(__name__)


class OpenAICompletionProvider(CompletionProvider):
    """OpenAI-based completion provider.

    Requires OPENAI_API_KEY environment variable.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize OpenAI completion provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._client: OpenAI | None = None

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'openai'
        """
        return "openai"

    def is_available(self) -> bool:
        """Check if OpenAI API key is configured.

        Returns:
            True if OPENAI_API_KEY environment variable is set
        """
        return os.getenv("OPENAI_API_KEY") is not None

    def complete(self, request: CompletionRequest) -> CompletionResult:
        """Run a chat completion against OpenAI.

        Args:
            request: Prompt, token budget and temperature

        Returns:
            CompletionResult with the message content or error, provider='openai'
        """
        if not self.is_available():
            return CompletionResult(
                content=None,
                success=False,
                error="OPENAI_API_KEY environment variable not set",
                provider=self.provider_name,
            )

        try:
            api_key = os.getenv("OPENAI_API_KEY")
            if self._client is None or self._client.api_key != api_key:
                self._client = OpenAI(
                    api_key=api_key,
                    timeout=self.settings.completion_timeout_seconds,
                    max_retries=0,
                )

            response = self._call_openai_with_retry(request)

            content = response.choices[0].message.content
            if not content:
                return CompletionResult(
                    content=None,
                    success=False,
                    error="Empty message content in API response",
                    provider=self.provider_name,
                )

            return CompletionResult(content=content, success=True, provider=self.provider_name)

        except Exception as e:
            logger.warning(f"OpenAI completion failed: {e}")
            return CompletionResult(
                content=None,
                success=False,
                error=f"Completion failed: {str(e)}",
                provider=self.provider_name,
            )

    @retry(
        retry=retry_if_exception_type((Exception,)),
        wait=wait_exponential_jitter(initial=1, max=30),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _call_openai_with_retry(self, request: CompletionRequest) -> Any:
        """Call OpenAI API with retry logic for transient errors.

        Args:
            request: Completion request

        Returns:
            OpenAI API response

        Raises:
            Exception: After all retry attempts are exhausted
        """
        if self._client is None:
            raise RuntimeError("OpenAI client not initialized")

        kwargs: dict[str, Any] = {
            "model": self.settings.openai_model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.json_output:
            kwargs["response_format"] = {"type": "json_object"}

        return self._client.chat.completions.create(**kwargs)
