"""Provider base classes and the shared HTTP completion machinery."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable

import httpx

from deskpilot.exceptions import LLMAPIError, RequestAbortedError
from deskpilot.llm.errors import (
    EMPTY_RESPONSE,
    GENERIC,
    NETWORK,
    ApiFailure,
    RetryPolicy,
    classify_failure,
    with_retry,
)
from deskpilot.llm.recovery import recover_tool_calls
from deskpilot.llm.types import LLMResponse, Message
from deskpilot.logging import get_logger
from deskpilot.tools.catalog import ToolDefinition

log = get_logger(__name__)


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        abort_event: asyncio.Event | None = None,
    ) -> LLMResponse:
        pass

    @abstractmethod
    async def complete_streaming(
        self,
        system_prompt: str,
        messages: list[Message],
        abort_event: asyncio.Event | None = None,
    ) -> AsyncIterator[str]:
        pass

    async def close(self) -> None:
        """Release network resources."""
        return None


class HTTPProvider(LLMProvider):
    """Provider speaking JSON over HTTP with retry and tool-call recovery.

    Subclasses describe their wire format through ``_build_request``,
    ``_parse_response`` and the streaming hooks; everything else (transport,
    error classification, retry/backoff, recovery) lives here.
    """

    provider_name: str = ""
    label: str = ""

    def __init__(
        self,
        model: str,
        base_url: str,
        api_key: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.retry_policy = retry_policy or RetryPolicy()
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    @abstractmethod
    def _build_request(
        self,
        system_prompt: str,
        messages: list[Message],
        tools: list[ToolDefinition],
        stream: bool = False,
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        """Return (url, headers, json body) for one call."""

    @abstractmethod
    def _parse_response(self, data: dict[str, Any]) -> LLMResponse | ApiFailure:
        """Convert a successful response body into an ``LLMResponse``."""

    @abstractmethod
    def _stream_decoder(
        self,
    ) -> Callable[[AsyncIterator[bytes]], AsyncIterator[str]]:
        """Return a function decoding the raw stream into text fragments."""

    def _empty_response(self) -> ApiFailure:
        return ApiFailure(kind=EMPTY_RESPONSE, message=f"Empty response from {self.label}")

    async def _attempt(
        self,
        system_prompt: str,
        messages: list[Message],
        tools: list[ToolDefinition],
    ) -> LLMResponse | ApiFailure:
        """One HTTP round trip. Non-2xx responses are classified, never raised."""
        url, headers, body = self._build_request(system_prompt, messages, tools)
        try:
            log.debug(
                "Calling provider",
                provider=self.provider_name,
                model=self.model,
                url=url,
                msg_count=len(messages),
                tool_count=len(tools),
            )
            response = await self.client.post(url, json=body, headers=headers)
        except httpx.HTTPError as e:
            log.warning("Provider transport error", provider=self.provider_name, error=str(e))
            return ApiFailure(
                kind=NETWORK,
                message=f"Could not reach {self.label}. Check your network connection and AI settings.",
            )

        log.debug("Provider response status", provider=self.provider_name, status=response.status_code)

        if response.status_code >= 400:
            failure = classify_failure(response.status_code, response.text)
            recovered = recover_tool_calls(failure)
            if recovered is not None:
                recovered.model = self.model
                return recovered
            return failure

        try:
            data = response.json()
        except ValueError:
            return ApiFailure(
                kind=GENERIC,
                message=f"Received an unreadable response from {self.label}.",
                status_code=response.status_code,
            )
        if not isinstance(data, dict):
            return self._empty_response()
        return self._parse_response(data)

    async def complete(
        self,
        system_prompt: str,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        abort_event: asyncio.Event | None = None,
    ) -> LLMResponse:
        """Generate a completion, retrying transient failures."""
        outcome = await with_retry(
            lambda: self._attempt(system_prompt, messages, list(tools or [])),
            policy=self.retry_policy,
            abort_event=abort_event,
        )
        if isinstance(outcome, ApiFailure):
            raise LLMAPIError(outcome)
        return outcome

    async def complete_streaming(
        self,
        system_prompt: str,
        messages: list[Message],
        abort_event: asyncio.Event | None = None,
    ) -> AsyncIterator[str]:
        """Stream a text-only completion."""
        url, headers, body = self._build_request(system_prompt, messages, [], stream=True)
        decode = self._stream_decoder()
        try:
            async with self.client.stream("POST", url, json=body, headers=headers) as response:
                if response.status_code >= 400:
                    raw = (await response.aread()).decode("utf-8", errors="replace")
                    raise LLMAPIError(classify_failure(response.status_code, raw))
                async for fragment in decode(response.aiter_bytes()):
                    if abort_event is not None and abort_event.is_set():
                        raise RequestAbortedError()
                    yield fragment
        except httpx.HTTPError as e:
            log.warning("Provider stream error", provider=self.provider_name, error=str(e))
            raise LLMAPIError(
                ApiFailure(
                    kind=NETWORK,
                    message=f"Could not reach {self.label}. Check your network connection and AI settings.",
                )
            )

    async def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self.client.aclose()
