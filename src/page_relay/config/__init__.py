"""Static provider catalog and default prompts."""

from page_relay.config.loader import (
    clear_config_cache,
    get_platform,
    load_default_prompts,
    load_platform_catalog,
)
from page_relay.config.models import AutomationSelectors, PlatformDescriptor

__all__ = [
    "AutomationSelectors",
    "PlatformDescriptor",
    "clear_config_cache",
    "get_platform",
    "load_default_prompts",
    "load_platform_catalog",
]
