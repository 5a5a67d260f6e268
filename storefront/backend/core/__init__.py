"""Core module for the admin back office."""
from storefront.backend.core.config import get_web_settings, WebSettings
from storefront.backend.core.security import decode_token

__all__ = [
    "get_web_settings",
    "WebSettings",
    "decode_token",
]
