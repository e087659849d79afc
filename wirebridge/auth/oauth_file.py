"""OAuth credentials read from a CLI-managed JSON file.

The file holds ``access_token``, ``refresh_token``, ``expiry_date`` (epoch
milliseconds), ``token_type`` and optionally ``resource_url``. Expired tokens
are refreshed against the token endpoint and written back to the same file.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Optional

import httpx

from ..core.exceptions import AuthenticationError
from ..types.chat import DetectedProtocol
from .base import AuthProvider, credential_headers

logger = logging.getLogger("wirebridge")

DEFAULT_CREDENTIALS_PATH = "~/.qwen/oauth_creds.json"
DEFAULT_TOKEN_URL = "https://chat.qwen.ai/api/v1/oauth2/token"
DEFAULT_CLIENT_ID = "f0304373b74a44d2b584a3fb70ca9e56"

# Refreshed tokens are treated as expired this long before the real expiry
EXPIRY_MARGIN_MS = 60 * 1000


def normalize_resource_url(resource_url: Optional[str]) -> Optional[str]:
    """Turn a bare ``resource_url`` into an https base URL ending in /v1."""
    if not resource_url:
        return None
    url = resource_url.strip().rstrip("/")
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    if not url.endswith("/v1"):
        url = f"{url}/v1"
    return url


class OAuthFileAuthProvider(AuthProvider):
    mode = "oauth"

    def __init__(
        self,
        credentials_path: str = DEFAULT_CREDENTIALS_PATH,
        token_url: str = DEFAULT_TOKEN_URL,
        client_id: str = DEFAULT_CLIENT_ID,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.credentials_path = Path(credentials_path).expanduser()
        self.token_url = token_url
        self.client_id = client_id
        self._transport = transport
        self._clock = clock
        self._creds: Optional[dict[str, Any]] = None
        self._lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return self._creds is not None or self.credentials_path.exists()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def load(self) -> dict[str, Any]:
        """Read credentials from disk."""
        try:
            with self.credentials_path.open("r", encoding="utf-8") as fh:
                creds = json.load(fh)
        except FileNotFoundError as exc:
            raise AuthenticationError(
                f"OAuth credentials not found at {self.credentials_path}; log in with the CLI first"
            ) from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise AuthenticationError(
                f"Failed to read OAuth credentials from {self.credentials_path}: {exc}"
            ) from exc
        if not isinstance(creds, dict) or not creds.get("access_token"):
            raise AuthenticationError(
                f"OAuth credentials at {self.credentials_path} have no access_token"
            )
        self._creds = creds
        return creds

    def save(self, creds: dict[str, Any]) -> None:
        self.credentials_path.parent.mkdir(parents=True, exist_ok=True)
        with self.credentials_path.open("w", encoding="utf-8") as fh:
            json.dump(creds, fh, indent=2)

    def is_expired(self, creds: dict[str, Any]) -> bool:
        expiry = creds.get("expiry_date")
        if not isinstance(expiry, (int, float)):
            return False
        return expiry < self._now_ms()

    async def refresh(self, creds: dict[str, Any]) -> dict[str, Any]:
        refresh_token = creds.get("refresh_token")
        if not refresh_token:
            raise AuthenticationError("OAuth token expired and no refresh token is available")

        form = {
            "client_id": self.client_id,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=30) as client:
                response = await client.post(self.token_url, data=form)
        except httpx.HTTPError as exc:
            raise AuthenticationError(f"Failed to refresh OAuth token: {exc}") from exc

        if response.status_code >= 400:
            raise AuthenticationError(
                f"Failed to refresh OAuth token: token endpoint returned {response.status_code}"
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise AuthenticationError("Token endpoint returned invalid JSON") from exc
        if not data.get("access_token"):
            raise AuthenticationError("Token endpoint response has no access_token")

        refreshed = {
            "access_token": data["access_token"],
            # The token endpoint does not rotate refresh tokens
            "refresh_token": refresh_token,
            "expiry_date": self._now_ms() + int(data.get("expires_in", 0)) * 1000 - EXPIRY_MARGIN_MS,
            "token_type": data.get("token_type", creds.get("token_type")),
        }
        resource_url = data.get("resource_url") or creds.get("resource_url")
        if resource_url:
            refreshed["resource_url"] = resource_url

        try:
            self.save(refreshed)
        except OSError as exc:
            logger.warning("Refreshed OAuth token could not be saved to %s: %s", self.credentials_path, exc)
        logger.info("OAuth token refreshed; valid until %s", refreshed["expiry_date"])
        self._creds = refreshed
        return refreshed

    async def get_credentials(self) -> dict[str, Any]:
        async with self._lock:
            creds = self._creds or self.load()
            if self.is_expired(creds):
                logger.info("OAuth token expired; refreshing")
                creds = await self.refresh(creds)
            return creds

    async def get_headers(self, protocol: DetectedProtocol) -> dict[str, str]:
        creds = await self.get_credentials()
        return credential_headers(creds["access_token"], protocol)

    async def get_base_url(self) -> Optional[str]:
        creds = await self.get_credentials()
        return normalize_resource_url(creds.get("resource_url"))
