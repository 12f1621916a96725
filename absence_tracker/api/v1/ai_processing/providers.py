"""
Extraction provider adapters.

Every provider exposes the same narrow capability: send a prompt, get raw text plus
usage back, or raise ProviderError. Grok and OpenAI both speak the OpenAI-compatible
chat completion API, so they are two configurations of ChatCompletionProvider.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from absence_tracker.core.config import ExtractionConfig, ProviderConfig
from absence_tracker.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractionPrompt:
    system: str
    user: str


@dataclass(frozen=True)
class ProviderResponse:
    text: str
    tokens_used: int = 0
    cost_usd: float = 0.0
    latency_ms: int = 0


class ProviderError(Exception):
    """One provider attempt failed: transport, timeout, non-2xx or empty content."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


class ExtractionProvider(ABC):
    name: str
    model: str

    @abstractmethod
    async def extract(self, prompt: ExtractionPrompt, timeout: float) -> ProviderResponse:
        """Return the raw completion text and usage, or raise ProviderError."""


def estimate_cost(tokens_used: int, cost_per_1k_tokens: float) -> float:
    if not tokens_used:
        return 0.0
    return tokens_used / 1000 * cost_per_1k_tokens


class ChatCompletionProvider(ExtractionProvider):
    def __init__(
        self,
        config: ProviderConfig,
        max_tokens: int = 1000,
        temperature: float = 0.1,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not config.api_key:
            raise ConfigurationError(f"No API key configured for extraction provider '{config.name}'")
        self.name = config.name
        self.model = config.model
        self._config = config
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._client = client

    @property
    def url(self) -> str:
        return f"{self._config.base_url.rstrip('/')}/chat/completions"

    def _payload(self, prompt: ExtractionPrompt) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": prompt.system},
                {"role": "user", "content": prompt.user},
            ],
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
        }

    async def _post(self, payload: Dict[str, Any], timeout: float) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._config.api_key}"}
        if self._client is not None:
            return await self._client.post(self.url, json=payload, headers=headers, timeout=timeout)
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.post(self.url, json=payload, headers=headers)

    async def extract(self, prompt: ExtractionPrompt, timeout: float) -> ProviderResponse:
        started = time.perf_counter()
        try:
            response = await self._post(self._payload(prompt), timeout)
        except httpx.TimeoutException as exc:
            raise ProviderError(self.name, f"timed out after {timeout:.1f}s") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(self.name, f"request failed: {exc}") from exc
        latency_ms = int((time.perf_counter() - started) * 1000)

        if not response.is_success:
            raise ProviderError(self.name, f"HTTP {response.status_code} {response.reason_phrase}")
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(self.name, "response body is not JSON") from exc

        content = _first_message_content(data)
        if not content or not content.strip():
            raise ProviderError(self.name, "empty completion content")

        usage = data.get("usage") if isinstance(data, dict) else None
        tokens_used = usage.get("total_tokens") if isinstance(usage, dict) else None
        tokens_used = tokens_used if isinstance(tokens_used, int) else 0
        return ProviderResponse(
            text=content,
            tokens_used=tokens_used,
            cost_usd=estimate_cost(tokens_used, self._config.cost_per_1k_tokens),
            latency_ms=latency_ms,
        )


def _first_message_content(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    return content if isinstance(content, str) else None


def build_providers(
    config: ExtractionConfig,
    client: Optional[httpx.AsyncClient] = None,
) -> List[ExtractionProvider]:
    """Providers in priority order. Entries without an API key are left out; none at all is fatal."""
    providers: List[ExtractionProvider] = []
    for provider_config in config.providers:
        if not provider_config.api_key:
            logger.warning("extraction provider %s has no API key configured; not used", provider_config.name)
            continue
        providers.append(
            ChatCompletionProvider(
                provider_config,
                max_tokens=config.max_tokens,
                temperature=config.temperature,
                client=client,
            )
        )
    if not providers:
        raise ConfigurationError(
            "No extraction provider credentials configured; set GROK_API_KEY and/or OPENAI_API_KEY"
        )
    return providers
