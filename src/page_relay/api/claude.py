"""Claude adapter over the Anthropic SDK."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Callable

from page_relay.api.base import DEFAULT_TIMEOUT, ApiAdapter, ApiResponse, chat_messages, error_kind_for_status
from page_relay.config.models import PlatformDescriptor
from page_relay.exceptions import ApiError

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096


class ClaudeAdapter(ApiAdapter):
    """Messages API through ``AsyncAnthropic``.

    SDK-level retries are disabled; the coordinator owns the retry policy.

    Args:
        client_factory: Builds a client for an API key. Defaults to
            ``AsyncAnthropic`` pointed at the descriptor's endpoint.
    """

    def __init__(
        self,
        descriptor: PlatformDescriptor,
        timeout: float = DEFAULT_TIMEOUT,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        client_factory: Callable[[str], Any] | None = None,
    ):
        super().__init__(descriptor)
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.client_factory = client_factory

    def _client(self, api_key: str):
        if self.client_factory is not None:
            return self.client_factory(api_key)
        try:
            from anthropic import AsyncAnthropic
        except ImportError:
            raise ImportError(
                "anthropic is required for ClaudeAdapter. "
                "Install with: pip install page-relay"
            )
        return AsyncAnthropic(
            api_key=api_key,
            base_url=self.descriptor.endpoint,
            max_retries=0,
            timeout=self.timeout,
        )

    def _convert(self, error: Exception) -> ApiError:
        from anthropic import APIConnectionError, APIStatusError

        if isinstance(error, APIConnectionError):
            return ApiError(f"Claude request failed: {error}", kind="network", platform_id=self.platform_id)
        if isinstance(error, APIStatusError):
            return ApiError(
                f"Claude API error ({error.status_code}): {error.message}",
                kind=error_kind_for_status(error.status_code),
                platform_id=self.platform_id,
                status_code=error.status_code,
            )
        return ApiError(f"Claude API error: {error}", platform_id=self.platform_id)

    async def send(
        self, api_key: str, model: str, prompt: str, history: list[dict] | None = None
    ) -> ApiResponse:
        from anthropic import APIError

        client = self._client(api_key)
        try:
            response = await client.messages.create(
                model=model,
                max_tokens=self.max_tokens,
                messages=chat_messages(prompt, history),
            )
        except APIError as e:
            raise self._convert(e) from e
        finally:
            await client.close()

        text_parts = [block.text for block in response.content if block.type == "text"]
        return ApiResponse(
            content="\n".join(text_parts),
            model=response.model or model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

    async def stream(
        self, api_key: str, model: str, prompt: str, history: list[dict] | None = None
    ) -> AsyncIterator[str]:
        from anthropic import APIError

        client = self._client(api_key)
        try:
            async with client.messages.stream(
                model=model,
                max_tokens=self.max_tokens,
                messages=chat_messages(prompt, history),
            ) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield text
        except APIError as e:
            raise self._convert(e) from e
        finally:
            await client.close()

    async def validate(self, api_key: str) -> bool:
        from anthropic import APIError

        client = self._client(api_key)
        try:
            await client.models.list(limit=1)
        except APIError as e:
            error = self._convert(e)
            if error.kind == "auth":
                return False
            raise error from e
        finally:
            await client.close()
        return True
