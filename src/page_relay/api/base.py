"""Abstract API adapter and the shared httpx request path."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator

import httpx

from page_relay.config.models import PlatformDescriptor
from page_relay.exceptions import ApiError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


@dataclass
class ApiResponse:
    content: str
    model: str
    input_tokens: int | None = None
    output_tokens: int | None = None

    def to_dict(self) -> dict:
        return {
            "content": self.content,
            "model": self.model,
            "usage": {
                "inputTokens": self.input_tokens,
                "outputTokens": self.output_tokens,
            },
        }


def error_kind_for_status(status_code: int) -> str:
    if status_code in (401, 403):
        return "auth"
    if status_code == 429:
        return "rate_limit"
    if status_code >= 500:
        return "server"
    return "request"


def chat_messages(prompt: str, history: list[dict] | None = None) -> list[dict]:
    """Prior ``{role, content}`` turns followed by the new user prompt."""
    messages = [
        {"role": turn["role"], "content": turn["content"]}
        for turn in history or []
        if turn.get("role") in ("user", "assistant") and turn.get("content")
    ]
    messages.append({"role": "user", "content": prompt})
    return messages


class ApiAdapter(ABC):
    """Direct-mode call path for one provider."""

    def __init__(self, descriptor: PlatformDescriptor):
        self.descriptor = descriptor

    @property
    def platform_id(self) -> str:
        return self.descriptor.id

    @abstractmethod
    async def send(
        self, api_key: str, model: str, prompt: str, history: list[dict] | None = None
    ) -> ApiResponse:
        """Send one user prompt, after any prior turns, and return the normalized reply."""
        ...

    async def stream(
        self, api_key: str, model: str, prompt: str, history: list[dict] | None = None
    ) -> AsyncIterator[str]:
        """Yield the reply as text chunks. Defaults to one chunk from ``send``."""
        response = await self.send(api_key, model, prompt, history)
        if response.content:
            yield response.content

    @abstractmethod
    async def validate(self, api_key: str) -> bool:
        """Lightweight call proving the key works.

        Returns False when the provider rejects the key; other failures
        raise ``ApiError``.
        """
        ...


class HttpApiAdapter(ApiAdapter):
    """JSON-over-HTTP adapter built on httpx.

    Streaming reads server-sent events: ``data:`` lines carrying one JSON
    chunk each, optionally terminated by ``data: [DONE]``.

    Args:
        transport: Optional httpx transport, e.g. ``httpx.MockTransport``.
    """

    def __init__(
        self,
        descriptor: PlatformDescriptor,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(descriptor)
        self.timeout = timeout
        self.transport = transport

    def _auth(self, api_key: str) -> tuple[dict[str, str], dict[str, str]]:
        """Headers and query params carrying the key, per the descriptor's authType."""
        auth_type = self.descriptor.auth_type
        if auth_type == "bearer":
            return {"Authorization": f"Bearer {api_key}"}, {}
        if auth_type == "header":
            return {self.descriptor.auth_header or "x-api-key": api_key}, {}
        return {}, {"key": api_key}

    @abstractmethod
    def _request_url(self, model: str) -> str:
        ...

    @abstractmethod
    def _validation_url(self) -> str:
        ...

    @abstractmethod
    def _payload(self, model: str, messages: list[dict]) -> dict:
        ...

    @abstractmethod
    def _parse(self, data: dict, model: str) -> ApiResponse:
        ...

    @abstractmethod
    def _parse_chunk(self, data: dict) -> str:
        """Text carried by one streamed event."""
        ...

    def _stream_url(self, model: str) -> str:
        return self._request_url(model)

    def _stream_payload(self, model: str, messages: list[dict]) -> dict:
        return self._payload(model, messages)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:200] or response.reason_phrase
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict):
            return error.get("message") or str(error)
        if error:
            return str(error)
        return response.reason_phrase

    def _status_error(self, response: httpx.Response) -> ApiError:
        return ApiError(
            f"{self.descriptor.display_name} API error ({response.status_code}): "
            f"{self._error_message(response)}",
            kind=error_kind_for_status(response.status_code),
            platform_id=self.platform_id,
            status_code=response.status_code,
        )

    def _network_error(self, error: Exception) -> ApiError:
        return ApiError(
            f"{self.descriptor.display_name} request failed: {error}",
            kind="network",
            platform_id=self.platform_id,
        )

    async def _request(self, method: str, url: str, api_key: str, payload: dict | None = None) -> Any:
        headers, params = self._auth(api_key)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, json=payload, headers=headers, params=params)
        except httpx.TransportError as e:
            raise self._network_error(e) from e

        if response.is_error:
            raise self._status_error(response)
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(
                f"{self.descriptor.display_name} returned a non-JSON response",
                kind="server",
                platform_id=self.platform_id,
                status_code=response.status_code,
            ) from e

    async def send(
        self, api_key: str, model: str, prompt: str, history: list[dict] | None = None
    ) -> ApiResponse:
        payload = self._payload(model, chat_messages(prompt, history))
        data = await self._request("POST", self._request_url(model), api_key, payload)
        try:
            return self._parse(data, model)
        except (KeyError, IndexError, TypeError) as e:
            raise ApiError(
                f"Unexpected {self.descriptor.display_name} response shape: {e}",
                kind="server",
                platform_id=self.platform_id,
            ) from e

    async def stream(
        self, api_key: str, model: str, prompt: str, history: list[dict] | None = None
    ) -> AsyncIterator[str]:
        headers, params = self._auth(api_key)
        payload = self._stream_payload(model, chat_messages(prompt, history))
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                async with client.stream(
                    "POST", self._stream_url(model), json=payload, headers=headers, params=params
                ) as response:
                    if response.is_error:
                        await response.aread()
                        raise self._status_error(response)
                    async for line in response.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:"):].strip()
                        if data == "[DONE]":
                            break
                        if not data:
                            continue
                        try:
                            chunk = self._parse_chunk(json.loads(data))
                        except (ValueError, KeyError, IndexError, TypeError) as e:
                            raise ApiError(
                                f"Unexpected {self.descriptor.display_name} stream event: {e}",
                                kind="server",
                                platform_id=self.platform_id,
                            ) from e
                        if chunk:
                            yield chunk
        except httpx.TransportError as e:
            raise self._network_error(e) from e

    async def validate(self, api_key: str) -> bool:
        try:
            await self._request("GET", self._validation_url(), api_key)
        except ApiError as e:
            if e.kind == "auth":
                return False
            raise
        return True
