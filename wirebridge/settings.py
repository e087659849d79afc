"""Typed view over the YAML configuration."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional

from .core.exceptions import ConfigurationError
from .core.retry import RetryConfig
from .messages.translator import TranslationOptions
from .types.chat import DetectedProtocol

logger = logging.getLogger("wirebridge")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

STATIC_MODELS = (
    "claude-3-opus-20240229",
    "claude-3-sonnet-20240229",
    "claude-3-haiku-20240307",
)

AUTH_MODES = ("api_key", "oauth")

# The OAuth portal serves a single model; requests are pinned to it unless
# models.fixed_model names another.
OAUTH_DEFAULT_MODEL = "qwen3-coder-plus"


@dataclass
class UpstreamSettings:
    base_url: str = "https://api.openai.com/v1"
    protocol: DetectedProtocol = DetectedProtocol.OPENAI
    api_key: Optional[str] = None
    timeout: float = 60


@dataclass
class AuthSettings:
    mode: str = "api_key"
    credentials_path: str = "~/.qwen/oauth_creds.json"
    token_url: Optional[str] = None
    client_id: Optional[str] = None


@dataclass
class ModelSettings:
    """Model resolution inputs.

    Attributes:
        default_model: External default used after the mapping table (``--model``).
        fixed_model: Forces every request onto one model (``--fixed-model``).
        mapping_file: JSON or YAML mapping table.
        mapping_strict: Fail startup when ``mapping_file`` is missing.
        available: Models listed by ``/v1/models`` when neither override is set.
    """

    default_model: Optional[str] = None
    fixed_model: Optional[str] = None
    mapping_file: Optional[str] = None
    mapping_strict: bool = False
    available: tuple[str, ...] = STATIC_MODELS


@dataclass
class Settings:
    server_host: str = DEFAULT_HOST
    server_port: int = DEFAULT_PORT
    log_level: str = "INFO"
    upstream: UpstreamSettings = field(default_factory=UpstreamSettings)
    auth: AuthSettings = field(default_factory=AuthSettings)
    models: ModelSettings = field(default_factory=ModelSettings)
    retry: RetryConfig = field(default_factory=RetryConfig)
    translation: TranslationOptions = field(default_factory=TranslationOptions)
    emit_message_delta: bool = True
    admin_enabled: bool = True

    @classmethod
    def from_mapping(cls, config: Optional[Mapping[str, Any]]) -> "Settings":
        """Build settings from a loaded config dict.

        Raises:
            ConfigurationError: A value has the wrong type or is out of range.
        """
        config = config or {}
        server = _section(config, "server")
        upstream_cfg = _section(config, "upstream")
        auth_cfg = _section(config, "auth")
        models_cfg = _section(config, "models")
        translation_cfg = _section(config, "translation")
        streaming_cfg = _section(config, "streaming")
        logging_cfg = _section(config, "logging")
        admin_cfg = _section(config, "admin")

        protocol_raw = str(upstream_cfg.get("protocol", "openai")).strip().lower()
        try:
            protocol = DetectedProtocol(protocol_raw)
        except ValueError as exc:
            raise ConfigurationError(
                f"upstream.protocol must be 'openai' or 'claude', got {protocol_raw!r}"
            ) from exc

        auth_mode = str(auth_cfg.get("mode", "api_key")).strip().lower()
        if auth_mode not in AUTH_MODES:
            raise ConfigurationError(
                f"auth.mode must be one of {', '.join(AUTH_MODES)}, got {auth_mode!r}"
            )

        fixed_model = _optional_str(models_cfg.get("fixed_model"))
        if fixed_model is None and auth_mode == "oauth":
            fixed_model = OAUTH_DEFAULT_MODEL

        available = models_cfg.get("available")
        if available is None:
            available = STATIC_MODELS
        elif not isinstance(available, list):
            raise ConfigurationError("models.available must be a list of model names")

        shell_tool = translation_cfg.get("shell_tool", {}) or {}
        translation_kwargs: dict[str, Any] = {}
        for key in ("system_prefix", "default_max_tokens", "default_temperature"):
            if key in translation_cfg:
                translation_kwargs[key] = translation_cfg[key]
        if "name" in shell_tool:
            translation_kwargs["shell_tool_name"] = shell_tool["name"] or None
        if "default_input" in shell_tool:
            if not isinstance(shell_tool["default_input"], Mapping):
                raise ConfigurationError("translation.shell_tool.default_input must be a mapping")
            translation_kwargs["shell_tool_default"] = dict(shell_tool["default_input"])

        try:
            return cls(
                server_host=str(server.get("host", DEFAULT_HOST)),
                server_port=int(server.get("port", DEFAULT_PORT)),
                log_level=str(logging_cfg.get("level", "INFO")).upper(),
                upstream=UpstreamSettings(
                    base_url=str(upstream_cfg.get("base_url", UpstreamSettings.base_url)),
                    protocol=protocol,
                    api_key=_optional_str(upstream_cfg.get("api_key")),
                    timeout=float(upstream_cfg.get("timeout", UpstreamSettings.timeout)),
                ),
                auth=AuthSettings(
                    mode=auth_mode,
                    credentials_path=str(
                        auth_cfg.get("credentials_path", AuthSettings.credentials_path)
                    ),
                    token_url=_optional_str(auth_cfg.get("token_url")),
                    client_id=_optional_str(auth_cfg.get("client_id")),
                ),
                models=ModelSettings(
                    default_model=_optional_str(models_cfg.get("default_model")),
                    fixed_model=fixed_model,
                    mapping_file=_optional_str(models_cfg.get("mapping_file")),
                    mapping_strict=bool(models_cfg.get("mapping_strict", False)),
                    available=tuple(str(m) for m in available),
                ),
                retry=RetryConfig.from_mapping(_section(config, "retry")),
                translation=TranslationOptions(
                    max_text_chars=_optional_int(translation_cfg.get("max_text_chars")),
                    max_tool_result_chars=_optional_int(
                        translation_cfg.get("max_tool_result_chars")
                    ),
                    **translation_kwargs,
                ),
                emit_message_delta=bool(streaming_cfg.get("emit_message_delta", True)),
                admin_enabled=bool(admin_cfg.get("enabled", True)),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid configuration value: {exc}") from exc

    def with_env_overrides(self, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Apply WIREBRIDGE_HOST / WIREBRIDGE_PORT / WIREBRIDGE_LOG_LEVEL."""
        environ = os.environ if environ is None else environ
        updated = self
        host = environ.get("WIREBRIDGE_HOST")
        if host:
            updated = replace(updated, server_host=host)
        port = environ.get("WIREBRIDGE_PORT")
        if port:
            try:
                updated = replace(updated, server_port=int(port))
            except ValueError:
                logger.warning("Ignoring invalid WIREBRIDGE_PORT=%r", port)
        level = environ.get("WIREBRIDGE_LOG_LEVEL")
        if level:
            updated = replace(updated, log_level=level.upper())
        return updated


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = config.get(name)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Config section '{name}' must be a mapping")
    return value


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    # Unresolved ${VAR} placeholders count as unset
    if not text or text.startswith("$"):
        return None
    return text


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(value)
