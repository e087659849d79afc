"""Administrative endpoints."""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from ...config_loader import load_mapping_table, load_mapping_table_from_env
from ...core.exceptions import ConfigurationError

logger = logging.getLogger("wirebridge")


async def reload_mappings(request: Request) -> JSONResponse:
    """POST /admin/reload-mappings - re-read the model mapping table.

    On failure the previous table stays active.
    """
    settings = request.app.state.settings
    resolver = request.app.state.gateway.resolver
    try:
        table = load_mapping_table_from_env()
        if table is None:
            if not settings.models.mapping_file:
                raise ConfigurationError("No mapping file is configured")
            table = load_mapping_table(
                settings.models.mapping_file, strict=settings.models.mapping_strict
            )
    except ConfigurationError as exc:
        logger.error("Model mapping reload failed; keeping previous table: %s", exc.message)
        return JSONResponse(
            {"status": "error", "error": {"type": exc.error_type, "message": exc.message}},
            status_code=500,
        )

    resolver.reload(table)
    return JSONResponse(
        {"status": "ok", "rules": len(table), "default_model": table.default_model}
    )
