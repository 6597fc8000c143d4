"""HTTP client for metered AI providers.

Both providers speak the OpenAI-compatible chat completions protocol
(POST {base_url}/chat/completions with a Bearer key). Every attempt is
paced by the provider's rate limiter and the whole call is wrapped in the
retry policy, so a retried call is paced again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from ai_governance.config import Settings
from ai_governance.errors import (
    ProviderAuthenticationError,
    ProviderPermanentError,
    ProviderTransientError,
)
from ai_governance.providers.rate_limiter import RateLimiterRegistry
from ai_governance.providers.retry import RetryPolicy, call_with_retry, classify_response

log = structlog.get_logger(__name__)


@dataclass
class ProviderEndpoint:
    base_url: str
    api_key: str


@dataclass
class ProviderResponse:
    """Parsed chat completion.

    Token counts are None when the provider did not report usage.
    """

    content: str
    model: str
    input_tokens: int | None = None
    output_tokens: int | None = None
    citations: list[str] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)


class ProviderClient:
    """Rate-limited, retried chat completion calls."""

    def __init__(
        self,
        endpoints: dict[str, ProviderEndpoint],
        *,
        limiters: RateLimiterRegistry | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoints = endpoints
        self._limiters = limiters or RateLimiterRegistry()
        self._retry_policy = retry_policy or RetryPolicy()
        self._http = http_client or httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        limiters: RateLimiterRegistry | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> ProviderClient:
        return cls(
            {
                "openai": ProviderEndpoint(
                    base_url=settings.openai_base_url,
                    api_key=settings.openai_api_key.get_secret_value(),
                ),
                "perplexity": ProviderEndpoint(
                    base_url=settings.perplexity_base_url,
                    api_key=settings.perplexity_api_key.get_secret_value(),
                ),
            },
            limiters=limiters or RateLimiterRegistry.from_settings(settings),
            retry_policy=RetryPolicy(
                max_attempts=settings.retry_max_attempts,
                base_delay=settings.retry_base_delay_seconds,
                max_delay=settings.retry_max_delay_seconds,
            ),
            timeout=settings.provider_timeout_seconds,
            http_client=http_client,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    def _endpoint(self, provider: str) -> ProviderEndpoint:
        endpoint = self._endpoints.get(provider)
        if endpoint is None:
            raise ProviderPermanentError(provider, "unknown provider")
        if not endpoint.api_key:
            raise ProviderAuthenticationError(provider, "API key not configured")
        return endpoint

    async def chat_completion(
        self,
        provider: str,
        model: str,
        messages: list[dict[str, str]],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        extra: dict[str, Any] | None = None,
    ) -> ProviderResponse:
        """Send a chat completion request.

        Raises:
            ProviderAuthenticationError: Missing or rejected API key (no retry)
            ProviderPermanentError: Other 4xx or malformed response (no retry)
            ProviderTransientError: 429/5xx/network failure after retries
        """
        endpoint = self._endpoint(provider)
        payload: dict[str, Any] = {"model": model, "messages": messages}
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if extra:
            payload.update(extra)

        url = f"{endpoint.base_url.rstrip('/')}/chat/completions"
        headers = {
            "Authorization": f"Bearer {endpoint.api_key}",
            "Content-Type": "application/json",
        }

        async def attempt() -> httpx.Response:
            await self._limiters.acquire(provider)
            try:
                response = await self._http.post(url, json=payload, headers=headers)
            except httpx.TransportError as exc:
                raise ProviderTransientError(provider, f"network error: {exc}") from exc
            classify_response(provider, response)
            return response

        log.debug("provider.request", provider=provider, model=model, messages=len(messages))
        response = await call_with_retry(attempt, self._retry_policy, provider)
        result = self._parse(provider, response)
        log.info(
            "provider.response",
            provider=provider,
            model=result.model,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
        )
        return result

    @staticmethod
    def _parse(provider: str, response: httpx.Response) -> ProviderResponse:
        try:
            data = response.json()
            message = data["choices"][0]["message"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ProviderPermanentError(
                provider,
                f"malformed completion response: {exc}",
                status_code=response.status_code,
            ) from exc

        usage = data.get("usage") or {}
        return ProviderResponse(
            content=message.get("content") or "",
            model=data.get("model", ""),
            input_tokens=usage.get("prompt_tokens"),
            output_tokens=usage.get("completion_tokens"),
            citations=list(data.get("citations") or []),
            raw=data,
        )
