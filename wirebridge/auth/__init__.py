"""Upstream authentication providers."""

from .api_key import ApiKeyAuthProvider
from .base import AuthProvider
from .oauth_file import OAuthFileAuthProvider, normalize_resource_url

__all__ = [
    "AuthProvider",
    "ApiKeyAuthProvider",
    "OAuthFileAuthProvider",
    "normalize_resource_url",
]
