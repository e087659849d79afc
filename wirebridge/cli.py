"""Command-line launcher for the gateway."""

import argparse
import sys
from dataclasses import replace
from typing import Optional, Sequence

import uvicorn

from .config_loader import load_config
from .core.exceptions import ConfigurationError
from .logging import setup_logging
from .main import create_app
from .settings import Settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wirebridge",
        description="Claude-style <-> OpenAI-style chat API gateway",
    )
    parser.add_argument("--config", help="Path to the YAML config (default: configs/config_default.yaml)")
    parser.add_argument("--host", help="Bind address (overrides config and WIREBRIDGE_HOST)")
    parser.add_argument("--port", type=int, help="Bind port (overrides config and WIREBRIDGE_PORT)")
    parser.add_argument(
        "--model",
        help="Default model used when no mapping rule or table default applies",
    )
    parser.add_argument("--fixed-model", help="Send every request to this model")
    parser.add_argument("--mapping-file", help="JSON or YAML model mapping file")
    parser.add_argument("--log-level", help="Log level (default: INFO)")
    return parser


def load_settings(args: argparse.Namespace) -> Settings:
    settings = Settings.from_mapping(load_config(args.config)).with_env_overrides()
    if args.host:
        settings = replace(settings, server_host=args.host)
    if args.port:
        settings = replace(settings, server_port=args.port)
    if args.log_level:
        settings = replace(settings, log_level=args.log_level.upper())
    models = settings.models
    if args.model:
        models = replace(models, default_model=args.model)
    if args.fixed_model:
        models = replace(models, fixed_model=args.fixed_model)
    if args.mapping_file:
        # An explicitly named mapping file must exist
        models = replace(models, mapping_file=args.mapping_file, mapping_strict=True)
    return replace(settings, models=models)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logger = setup_logging(args.log_level or "INFO")
    try:
        settings = load_settings(args)
        setup_logging(settings.log_level)
        app = create_app(settings)
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc.message)
        return 1

    uvicorn.run(
        app,
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
