"""API credential storage and validation."""

from page_relay.credentials.manager import CredentialManager, mask_api_key

__all__ = [
    "CredentialManager",
    "mask_api_key",
]
