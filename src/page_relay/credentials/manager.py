"""Per-provider API credentials kept in the sync storage area."""

from __future__ import annotations

import logging
from typing import Callable

from page_relay.api.base import ApiAdapter
from page_relay.api.providers import create_api_adapter
from page_relay.config.loader import get_platform
from page_relay.exceptions import ApiError, ValidationError
from page_relay.storage import keys
from page_relay.storage.base import BaseStore

logger = logging.getLogger(__name__)


def mask_api_key(api_key: str | None) -> str:
    """``first4...last4``, or eight asterisks for keys of eight characters or fewer."""
    if not api_key or len(api_key) <= 8:
        return "********"
    return f"{api_key[:4]}...{api_key[-4:]}"


def _check_credentials(platform_id: str, credentials: dict | None) -> None:
    if not isinstance(credentials, dict):
        raise ValidationError(f"Credentials for {platform_id} must be an object")
    api_key = credentials.get("apiKey")
    if not isinstance(api_key, str) or not api_key.strip():
        raise ValidationError(f"An API key is required for {platform_id}")
    model = credentials.get("model")
    if model is not None and not isinstance(model, str):
        raise ValidationError(f"Model for {platform_id} must be a string")


class CredentialManager:
    """CRUD and validation of ``{platformId: {apiKey, model}}``.

    ``get`` returns the raw key for internal callers; anything shown to a
    user goes through ``get_masked``.
    """

    def __init__(
        self,
        storage: BaseStore,
        adapter_factory: Callable[[str], ApiAdapter] = create_api_adapter,
    ):
        self.storage = storage
        self.adapter_factory = adapter_factory

    async def _all(self) -> dict:
        return await self.storage.get_value(keys.API_CREDENTIALS, {}) or {}

    async def get(self, platform_id: str) -> dict | None:
        return (await self._all()).get(platform_id)

    async def get_masked(self, platform_id: str) -> dict | None:
        credentials = await self.get(platform_id)
        if credentials is None:
            return None
        return {**credentials, "apiKey": mask_api_key(credentials.get("apiKey"))}

    async def has(self, platform_id: str) -> bool:
        credentials = await self.get(platform_id)
        return bool(credentials and credentials.get("apiKey"))

    async def store(self, platform_id: str, credentials: dict) -> None:
        get_platform(platform_id)
        _check_credentials(platform_id, credentials)
        stored = await self._all()
        stored[platform_id] = dict(credentials)
        await self.storage.set({keys.API_CREDENTIALS: stored})
        logger.info(f"Stored credentials for {platform_id} ({mask_api_key(credentials['apiKey'])})")

    async def remove(self, platform_id: str) -> None:
        stored = await self._all()
        if stored.pop(platform_id, None) is not None:
            await self.storage.set({keys.API_CREDENTIALS: stored})
            logger.info(f"Removed credentials for {platform_id}")

    async def validate(self, platform_id: str, credentials: dict | None = None) -> dict:
        """Check a key with one lightweight provider call.

        Raises:
            ValidationError: The key is missing or malformed (no call is made).
        """
        if credentials is None:
            credentials = await self.get(platform_id)
        _check_credentials(platform_id, credentials)
        adapter = self.adapter_factory(platform_id)
        try:
            is_valid = await adapter.validate(credentials["apiKey"])
        except ApiError as e:
            logger.warning(f"Validation call for {platform_id} failed: {e}")
            return {"isValid": False, "message": str(e)}
        if is_valid:
            return {"isValid": True, "message": "API key is valid"}
        return {"isValid": False, "message": f"{get_platform(platform_id).display_name} rejected the API key"}
