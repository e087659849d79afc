"""YAML configuration with ``${VAR}`` expansion and model mapping tables."""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .core.exceptions import ConfigurationError
from .core.model_mapping import EMPTY_TABLE, ModelMappingRule, ModelMappingTable

logger = logging.getLogger("wirebridge")

# Relative to the repository root
DEFAULT_CONFIG_PATH = "configs/config_default.yaml"

MODEL_MAPPINGS_ENV = "MODEL_MAPPINGS"

# ${NAME} or $NAME
_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def resolve_config_path(path: str) -> Path:
    """Return ``path`` as given when it exists or is absolute, else under the repo root."""
    candidate = Path(path).expanduser()
    if candidate.is_absolute() or candidate.exists():
        return candidate
    return Path(__file__).parent.parent / path


def resolve_env_path(config_path: Path, env_path: Optional[str] = None) -> Path:
    if env_path:
        return resolve_config_path(env_path)
    # .env next to the config file
    return config_path.with_name(".env")


def load_env_values(env_path: Path) -> dict[str, str]:
    """Read a dotenv file into a dict. ``os.environ`` is left untouched."""
    if not env_path.exists():
        return {}
    return {
        name: value
        for name, value in dotenv_values(env_path).items()
        if value is not None
    }


def load_config(
    path: Optional[str] = None,
    env_path: Optional[str] = None,
    substitute_env: bool = True,
) -> dict:
    """Read the gateway's YAML config.

    The path falls back to ``WIREBRIDGE_CONFIG`` and then to
    ``configs/config_default.yaml``. Placeholders are filled from the dotenv
    file beside the config (or ``env_path``) first, then from the process
    environment.

    Raises:
        ConfigurationError: Missing file, bad YAML, or a top level that is not
            a mapping.
    """
    if path is None:
        path = os.getenv("WIREBRIDGE_CONFIG") or DEFAULT_CONFIG_PATH

    config_path = resolve_config_path(path)
    logger.info("Reading config %s", config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    env_values: dict[str, str] = {}
    if substitute_env:
        env_file = resolve_env_path(config_path, env_path)
        if env_file.exists():
            logger.info("Using dotenv values from %s", env_file)
            env_values = load_env_values(env_file)

    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    if substitute_env:
        data = _substitute_env_vars(data, env_values)
    return data


def _substitute_env_vars(
    obj: Any, env_values: Optional[Mapping[str, str]] = None
) -> Any:
    """Expand ``${NAME}`` and ``$NAME`` in every string of a nested structure.

    ``env_values`` wins over ``os.environ``. A name found in neither stays in
    the text verbatim, with a warning.
    """
    env_values = env_values or {}

    if isinstance(obj, dict):
        return {key: _substitute_env_vars(value, env_values) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(item, env_values) for item in obj]
    if not isinstance(obj, str):
        return obj

    def lookup(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        value = env_values.get(name, os.environ.get(name))
        if value is None:
            logger.warning("Config references unset variable %s", name)
            return match.group(0)
        return value

    return _ENV_PATTERN.sub(lookup, obj)


# Model mapping tables


def parse_mapping_table(data: Any, source: str = "mapping table") -> ModelMappingTable:
    """Build a mapping table from ``{"mappings": [...], "defaultModel": ...}``.

    Raises:
        ConfigurationError: The structure or a rule is malformed.
    """
    if data is None:
        return EMPTY_TABLE
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"{source} must be an object with a 'mappings' list")

    raw_rules = data.get("mappings") or []
    if not isinstance(raw_rules, list):
        raise ConfigurationError(f"'mappings' in {source} must be a list")

    rules: list[ModelMappingRule] = []
    for index, raw in enumerate(raw_rules):
        if not isinstance(raw, Mapping):
            raise ConfigurationError(f"Mapping #{index + 1} in {source} must be an object")
        pattern = raw.get("pattern")
        target = raw.get("target")
        if not pattern or not target:
            raise ConfigurationError(
                f"Mapping #{index + 1} in {source} needs both 'pattern' and 'target'"
            )
        rules.append(
            ModelMappingRule(
                pattern=str(pattern),
                target=str(target),
                match_type=str(raw.get("type") or "contains").strip().lower(),
            )
        )

    default_model = data.get("defaultModel", data.get("default_model"))
    return ModelMappingTable(
        rules=tuple(rules),
        default_model=str(default_model) if default_model else None,
    )


def load_mapping_table(path: str, strict: bool = False) -> ModelMappingTable:
    """Load a JSON or YAML mapping file.

    A missing file is an error in strict mode; otherwise it is logged and an
    empty table is returned. Malformed files always raise.
    """
    mapping_path = resolve_config_path(path)
    if not mapping_path.exists():
        if strict:
            raise ConfigurationError(f"Model mapping file not found: {mapping_path}")
        logger.warning("Model mapping file %s not found; using an empty table", mapping_path)
        return EMPTY_TABLE

    try:
        text = mapping_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read model mapping file {mapping_path}: {exc}") from exc

    try:
        if mapping_path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Invalid model mapping file {mapping_path}: {exc}") from exc

    table = parse_mapping_table(data, source=str(mapping_path))
    logger.info(
        "Loaded %d model mapping rules from %s (default_model=%s)",
        len(table),
        mapping_path,
        table.default_model,
    )
    return table


def load_mapping_table_from_env(
    environ: Optional[Mapping[str, str]] = None,
) -> Optional[ModelMappingTable]:
    """Parse the ``MODEL_MAPPINGS`` variable, or return None when it is unset."""
    environ = os.environ if environ is None else environ
    raw = environ.get(MODEL_MAPPINGS_ENV)
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{MODEL_MAPPINGS_ENV} is not valid JSON: {exc}") from exc
    return parse_mapping_table(data, source=MODEL_MAPPINGS_ENV)
