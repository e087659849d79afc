"""Tests for the command-line launcher."""

import pytest

from wirebridge.cli import build_parser, load_settings, main


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    for name in ("WIREBRIDGE_HOST", "WIREBRIDGE_PORT", "WIREBRIDGE_LOG_LEVEL", "MODEL_MAPPINGS"):
        monkeypatch.delenv(name, raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(
        "server:\n  host: 127.0.0.1\n  port: 8000\n"
        "upstream:\n  base_url: http://upstream.local/v1\n  api_key: k\n"
    )
    return path


def test_flags_override_config(config_file):
    args = build_parser().parse_args([
        "--config", str(config_file),
        "--host", "0.0.0.0",
        "--port", "9001",
        "--model", "fallback",
        "--fixed-model", "pinned",
        "--log-level", "debug",
    ])

    settings = load_settings(args)

    assert settings.server_host == "0.0.0.0"
    assert settings.server_port == 9001
    assert settings.log_level == "DEBUG"
    assert settings.models.default_model == "fallback"
    assert settings.models.fixed_model == "pinned"


def test_mapping_file_flag_is_strict(config_file, tmp_path):
    args = build_parser().parse_args([
        "--config", str(config_file),
        "--mapping-file", str(tmp_path / "mapping.json"),
    ])

    settings = load_settings(args)

    assert settings.models.mapping_file == str(tmp_path / "mapping.json")
    assert settings.models.mapping_strict is True


def test_env_overrides_apply_before_flags(config_file, monkeypatch):
    monkeypatch.setenv("WIREBRIDGE_PORT", "7000")
    args = build_parser().parse_args(["--config", str(config_file)])

    assert load_settings(args).server_port == 7000


def test_missing_mapping_file_fails_startup(config_file, tmp_path):
    exit_code = main([
        "--config", str(config_file),
        "--mapping-file", str(tmp_path / "missing.json"),
    ])

    assert exit_code == 1


def test_missing_config_fails_startup(tmp_path):
    assert main(["--config", str(tmp_path / "nope.yaml")]) == 1
