"""Ollama-based completion provider for self-hosted LLM inference.

Keeps order text on-premises by talking to a local Ollama server.

Requires Ollama server running on the configured base URL.
See: https://ollama.ai/
"""

import logging
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from chat_invoice.completion.base import CompletionProvider, CompletionRequest, CompletionResult
from chat_invoice.shared.config import Settings

logger = logging.getLogger(__name__)


class OllamaCompletionProvider(CompletionProvider):
    """Ollama-based completion provider using the /api/chat endpoint.

    Supports models like Qwen2.5, Llama3, Mistral.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize Ollama completion provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._model = settings.ollama_model
        self._client = httpx.Client(timeout=settings.completion_timeout_seconds)

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'ollama'
        """
        return "ollama"

    def is_available(self) -> bool:
        """Check if Ollama server is running and model is available.

        Returns:
            True if Ollama server responds and model is pulled
        """
        try:
            response = self._client.get(f"{self._base_url}/api/tags")
            if response.status_code != 200:
                return False
            models = response.json().get("models", [])
            model_names = [m.get("name", "").split(":")[0] for m in models]
            return self._model.split(":")[0] in model_names
        except Exception:
            return False

    def complete(self, request: CompletionRequest) -> CompletionResult:
        """Run a chat completion against Ollama.

        Args:
            request: Prompt, token budget and temperature

        Returns:
            CompletionResult with the message content or error, provider='ollama'
        """
        try:
            content = self._call_ollama_with_retry(request)
            if not content.strip():
                return CompletionResult(
                    content=None,
                    success=False,
                    error="Empty response from Ollama",
                    provider=self.provider_name,
                )
            return CompletionResult(content=content, success=True, provider=self.provider_name)

        except Exception as e:
            logger.error(f"Ollama completion failed: {e}")
            return CompletionResult(
                content=None,
                success=False,
                error=f"Completion failed: {str(e)}",
                provider=self.provider_name,
            )

    @retry(
        retry=retry_if_exception_type((httpx.HTTPError, httpx.TimeoutException)),
        wait=wait_exponential_jitter(initial=1, max=30),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _call_ollama_with_retry(self, request: CompletionRequest) -> str:
        """Call Ollama API with retry logic for transient errors.

        Args:
            request: Completion request

        Returns:
            Message content from Ollama

        Raises:
            httpx.HTTPError: After all retry attempts exhausted
        """
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            "stream": False,
            "options": {
                "temperature": request.temperature,
                "num_predict": request.max_tokens,
            },
        }
        if request.json_output:
            payload["format"] = "json"

        response = self._client.post(f"{self._base_url}/api/chat", json=payload)
        response.raise_for_status()
        result: str = response.json().get("message", {}).get("content", "")
        return result
