"""Models listing endpoint - OpenAI compatible."""

import logging
import time

from fastapi import Request

logger = logging.getLogger("wirebridge")


def _model_entry(model_id: str, owned_by: str, created: int) -> dict:
    return {"id": model_id, "object": "model", "created": created, "owned_by": owned_by}


async def list_models(request: Request) -> dict:
    """List available models in OpenAI API format.

    GET /v1/models

    An external default model is advertised alone; otherwise a fixed model is
    advertised alone; otherwise the configured static list is returned.
    """
    logger.info("Received models list request")

    mode = request.app.state.gateway.mode
    available = request.app.state.settings.models.available
    created = int(time.time())

    if mode.external_default:
        models = [_model_entry(mode.external_default, "custom", created)]
    elif mode.fixed_model:
        models = [_model_entry(mode.fixed_model, "upstream", created)]
    else:
        models = [_model_entry(name, "anthropic", created) for name in available]

    return {
        "object": "list",
        "data": models,
    }
