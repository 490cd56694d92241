"""Lazy, cached loading of the provider catalog and default prompts."""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from importlib import resources
from pathlib import Path

from page_relay.config.models import AutomationSelectors, PlatformDescriptor
from page_relay.exceptions import ConfigError

logger = logging.getLogger(__name__)

_AUTH_TYPES = {"bearer", "header", "query"}
_EDITORS = {"textarea", "contenteditable"}


def _read_document(filename: str) -> dict:
    override = os.environ.get("PAGE_RELAY_CONFIG_DIR")
    try:
        if override:
            text = (Path(override).expanduser() / filename).read_text(encoding="utf-8")
        else:
            text = resources.files("page_relay.config").joinpath(filename).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {filename}: {e}") from e
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"{filename} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{filename} must contain a JSON object")
    return data


def _parse_platform(platform_id: str, raw: dict) -> PlatformDescriptor:
    try:
        api = raw["api"]
        automation = raw["automation"]
        auth_type = api["authType"]
        if auth_type not in _AUTH_TYPES:
            raise ConfigError(f"{platform_id}: unknown authType {auth_type!r}")
        editor = automation.get("editor", "textarea")
        if editor not in _EDITORS:
            raise ConfigError(f"{platform_id}: unknown editor {editor!r}")
        models = tuple(api.get("models") or ())
        default_model = api.get("defaultModel") or (models[0] if models else "")
        return PlatformDescriptor(
            id=platform_id,
            display_name=raw.get("name", platform_id),
            url=raw["url"],
            endpoint=api["endpoint"],
            auth_type=auth_type,
            auth_header=api.get("authHeader"),
            models=models,
            default_model=default_model,
            automation_selectors=AutomationSelectors(
                editor=editor,
                input=tuple(automation["input"]),
                submit=tuple(automation["submit"]),
                login_markers=tuple(automation.get("loginMarkers") or ("log in", "sign in")),
                settle_delay_ms=int(automation.get("settleDelayMs", 1000)),
            ),
        )
    except KeyError as e:
        raise ConfigError(f"{platform_id}: missing required field {e}") from e


@lru_cache(maxsize=1)
def load_platform_catalog() -> dict[str, PlatformDescriptor]:
    """Parse platforms.json once per process."""
    raw = _read_document("platforms.json")
    catalog = {pid: _parse_platform(pid, entry) for pid, entry in raw.items()}
    logger.info(f"Loaded {len(catalog)} platform descriptors")
    return catalog


def get_platform(platform_id: str) -> PlatformDescriptor:
    catalog = load_platform_catalog()
    if platform_id not in catalog:
        raise ConfigError(f"Unknown platform: {platform_id}")
    return catalog[platform_id]


@lru_cache(maxsize=1)
def load_default_prompts() -> dict[str, dict]:
    """Parse prompts.json (content type -> {name, content}) once per process."""
    prompts = _read_document("prompts.json")
    for content_type, entry in prompts.items():
        if not isinstance(entry, dict) or not entry.get("content"):
            raise ConfigError(f"Default prompt for {content_type} has no content")
    return prompts


def clear_config_cache() -> None:
    load_platform_catalog.cache_clear()
    load_default_prompts.cache_clear()
