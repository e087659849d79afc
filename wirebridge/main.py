"""FastAPI application factory for the gateway."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI

from .api.routes import (
    chat_completions,
    health,
    list_models,
    messages_endpoint,
    proxy_endpoint,
    reload_mappings,
)
from .auth import ApiKeyAuthProvider, AuthProvider, OAuthFileAuthProvider
from .config_loader import load_mapping_table, load_mapping_table_from_env
from .core.backend import Upstream
from .core.gateway import Gateway
from .core.model_mapping import EMPTY_TABLE, ModelMappingTable, ModelResolver, ResolutionMode
from .core.retry import RetryPolicy
from .core.transport import Transport
from .messages.translator import MessageTranslator
from .settings import Settings

logger = logging.getLogger("wirebridge")


def build_mapping_table(settings: Settings) -> ModelMappingTable:
    """MODEL_MAPPINGS wins over the mapping file; neither yields an empty table."""
    table = load_mapping_table_from_env()
    if table is not None:
        logger.info("Loaded %d model mapping rules from MODEL_MAPPINGS", len(table))
        return table
    if settings.models.mapping_file:
        return load_mapping_table(settings.models.mapping_file, strict=settings.models.mapping_strict)
    return EMPTY_TABLE


def build_auth_provider(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AuthProvider:
    if settings.auth.mode == "oauth":
        kwargs = {}
        if settings.auth.token_url:
            kwargs["token_url"] = settings.auth.token_url
        if settings.auth.client_id:
            kwargs["client_id"] = settings.auth.client_id
        return OAuthFileAuthProvider(
            credentials_path=settings.auth.credentials_path,
            transport=transport,
            **kwargs,
        )
    return ApiKeyAuthProvider(settings.upstream.api_key)


def build_gateway(
    settings: Settings,
    upstream_transport: Optional[httpx.AsyncBaseTransport] = None,
    auth_provider: Optional[AuthProvider] = None,
    mapping_table: Optional[ModelMappingTable] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> Gateway:
    table = mapping_table if mapping_table is not None else build_mapping_table(settings)
    resolver = ModelResolver(table)
    return Gateway(
        translator=MessageTranslator(resolver, settings.translation),
        transport=Transport(settings.upstream.timeout, transport=upstream_transport),
        auth=auth_provider or build_auth_provider(settings),
        upstream=Upstream(
            base_url=settings.upstream.base_url,
            protocol=settings.upstream.protocol,
        ),
        retry_policy=retry_policy or RetryPolicy(settings.retry),
        mode=ResolutionMode(
            fixed_model=settings.models.fixed_model,
            external_default=settings.models.default_model,
        ),
        emit_message_delta=settings.emit_message_delta,
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    upstream_transport: Optional[httpx.AsyncBaseTransport] = None,
    auth_provider: Optional[AuthProvider] = None,
    mapping_table: Optional[ModelMappingTable] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> FastAPI:
    """Factory function to create the FastAPI application.

    The collaborators can be injected for tests; otherwise they are built
    from ``settings``.
    """
    settings = settings or Settings()
    gateway = build_gateway(
        settings,
        upstream_transport=upstream_transport,
        auth_provider=auth_provider,
        mapping_table=mapping_table,
        retry_policy=retry_policy,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("wirebridge gateway starting up...")
        logger.info("Configured bind address %s:%s", settings.server_host, settings.server_port)
        logger.info(
            "Upstream: %s (%s protocol), auth mode: %s",
            gateway.upstream.base_url,
            gateway.upstream.protocol.value,
            gateway.auth.mode,
        )
        if gateway.mode.fixed_model:
            logger.info("Fixed model: %s", gateway.mode.fixed_model)
        if gateway.mode.external_default:
            logger.info("Default model: %s", gateway.mode.external_default)
        logger.info("Model mapping rules: %d", len(gateway.resolver.table))
        try:
            yield
        finally:
            await gateway.transport.aclose()
            await gateway.auth.aclose()
            logger.info("wirebridge gateway shut down")

    app = FastAPI(title="wirebridge", lifespan=lifespan)
    app.state.settings = settings
    app.state.gateway = gateway

    app.post("/v1/messages")(messages_endpoint)
    app.post("/v1/chat/completions")(chat_completions)
    app.post("/v1/proxy")(proxy_endpoint)
    app.get("/v1/models")(list_models)
    app.get("/health")(health)
    if settings.admin_enabled:
        app.post("/admin/reload-mappings")(reload_mappings)

    return app


__all__ = ["build_gateway", "build_mapping_table", "create_app"]
