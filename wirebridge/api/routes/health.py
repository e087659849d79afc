"""Health check endpoint."""

from fastapi import Request


async def health(request: Request) -> dict:
    """GET /health - resolver and auth readiness."""
    gateway = request.app.state.gateway
    table = gateway.resolver.table
    return {
        "status": "ok",
        "upstream": {
            "protocol": gateway.upstream.protocol.value,
            "base_url": gateway.upstream.base_url,
        },
        "resolver": {
            "rules": len(table),
            "default_model": table.default_model,
            "fixed_model": gateway.mode.fixed_model,
            "external_default": gateway.mode.external_default,
        },
        "auth": gateway.auth.describe(),
    }
