"""Direct-mode delivery with bounded retry of transient failures."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import TYPE_CHECKING, AsyncIterator, Callable

from page_relay.api.base import ApiAdapter, ApiResponse
from page_relay.api.providers import create_api_adapter
from page_relay.config.loader import get_platform
from page_relay.exceptions import ApiError, ValidationError

if TYPE_CHECKING:
    from page_relay.credentials.manager import CredentialManager

logger = logging.getLogger(__name__)

API_MAX_RETRIES = int(os.environ.get("PAGE_RELAY_API_MAX_RETRIES", "3"))


class ApiCoordinator:
    """Builds, sends and retries provider API calls.

    Network and server errors are retried up to ``max_retries`` attempts in
    total, waiting ``retry_delay * 2 ** attempt`` seconds in between. Auth,
    rate-limit and request errors are raised on first sight.
    """

    def __init__(
        self,
        credentials: "CredentialManager",
        max_retries: int = API_MAX_RETRIES,
        retry_delay: float = 1.0,
        adapter_factory: Callable[[str], ApiAdapter] = create_api_adapter,
    ):
        self.credentials = credentials
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.adapter_factory = adapter_factory

    async def _prepare(
        self, platform_id: str, model: str | None, credentials: dict | None
    ) -> tuple[ApiAdapter, str, str]:
        credentials = credentials or await self.credentials.get(platform_id)
        if not credentials or not credentials.get("apiKey"):
            raise ValidationError(f"No API key configured for {platform_id}")
        descriptor = get_platform(platform_id)
        use_model = model or credentials.get("model") or descriptor.default_model
        return self.adapter_factory(platform_id), credentials["apiKey"], use_model

    def _backoff(self, platform_id: str, error: ApiError, attempt: int) -> float:
        """Seconds to wait before the next attempt; re-raises errors that end the call."""
        if not error.retryable:
            logger.error(f"{platform_id} API call failed ({error.kind}), not retrying: {error}")
            raise error
        if attempt == self.max_retries - 1:
            logger.error(f"{platform_id} API call failed after {self.max_retries} attempts: {error}")
            raise error
        wait = self.retry_delay * 2 ** attempt
        logger.warning(
            f"{platform_id} {error.kind} error, retrying in {wait}s "
            f"(attempt {attempt + 1}/{self.max_retries})"
        )
        return wait

    async def process(
        self,
        platform_id: str,
        prompt: str,
        model: str | None = None,
        credentials: dict | None = None,
        history: list[dict] | None = None,
    ) -> ApiResponse:
        adapter, api_key, use_model = await self._prepare(platform_id, model, credentials)

        for attempt in range(self.max_retries):
            try:
                response = await adapter.send(api_key, use_model, prompt, history)
                logger.info(
                    f"{platform_id} API call succeeded with {use_model} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                return response
            except ApiError as e:
                await asyncio.sleep(self._backoff(platform_id, e, attempt))

        raise ApiError(f"Failed after {self.max_retries} retries", platform_id=platform_id)

    async def stream(
        self,
        platform_id: str,
        prompt: str,
        model: str | None = None,
        credentials: dict | None = None,
        history: list[dict] | None = None,
    ) -> AsyncIterator[str]:
        """Yield reply chunks as they arrive.

        Retries follow ``process`` until the first chunk is out; after that a
        failure is raised to the consumer.
        """
        adapter, api_key, use_model = await self._prepare(platform_id, model, credentials)

        for attempt in range(self.max_retries):
            started = False
            try:
                async for chunk in adapter.stream(api_key, use_model, prompt, history):
                    started = True
                    yield chunk
                logger.info(f"{platform_id} stream finished with {use_model}")
                return
            except ApiError as e:
                if started:
                    logger.error(f"{platform_id} stream failed after output began: {e}")
                    raise
                await asyncio.sleep(self._backoff(platform_id, e, attempt))

        raise ApiError(f"Failed after {self.max_retries} retries", platform_id=platform_id)

    async def check_availability(self, platform_id: str) -> bool:
        """True iff stored credentials exist and pass validation."""
        credentials = await self.credentials.get(platform_id)
        if not credentials or not credentials.get("apiKey"):
            return False
        result = await self.credentials.validate(platform_id, credentials)
        return bool(result.get("isValid"))

    def list_models(self, platform_id: str) -> list[str]:
        return list(get_platform(platform_id).models)
