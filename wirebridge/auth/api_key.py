"""Static API key authentication."""

from __future__ import annotations

from typing import Optional

from ..core.exceptions import AuthenticationError
from ..types.chat import DetectedProtocol
from .base import AuthProvider, credential_headers


class ApiKeyAuthProvider(AuthProvider):
    mode = "api_key"

    def __init__(self, api_key: Optional[str]) -> None:
        self._api_key = (api_key or "").strip()

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def get_headers(self, protocol: DetectedProtocol) -> dict[str, str]:
        if not self._api_key:
            raise AuthenticationError(
                "No upstream API key configured; set upstream.api_key in the config"
            )
        return credential_headers(self._api_key, protocol)
