"""Upstream credential providers."""

from __future__ import annotations

from typing import Any, Optional

from ..types.chat import DetectedProtocol

ANTHROPIC_VERSION = "2023-06-01"


class AuthProvider:
    """Supplies the headers that authenticate one upstream request.

    Providers are asked again for every attempt, so a refreshed credential is
    picked up by the next retry.
    """

    mode = "none"

    async def get_headers(self, protocol: DetectedProtocol) -> dict[str, str]:
        raise NotImplementedError

    async def get_base_url(self) -> Optional[str]:
        """Upstream base URL dictated by the credential, if any."""
        return None

    @property
    def configured(self) -> bool:
        return False

    def describe(self) -> dict[str, Any]:
        return {"mode": self.mode, "configured": self.configured}

    async def aclose(self) -> None:
        return None


def credential_headers(token: str, protocol: DetectedProtocol) -> dict[str, str]:
    """Render a credential the way the upstream protocol expects it."""
    if protocol is DetectedProtocol.CLAUDE:
        return {"x-api-key": token, "anthropic-version": ANTHROPIC_VERSION}
    return {"Authorization": f"Bearer {token}"}
