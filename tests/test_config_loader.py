"""Tests for the config loader module."""

import json

import pytest
import yaml

from wirebridge.config_loader import (
    _substitute_env_vars,
    load_config,
    load_mapping_table,
    load_mapping_table_from_env,
    parse_mapping_table,
)
from wirebridge.core.exceptions import ConfigurationError
from wirebridge.settings import OAUTH_DEFAULT_MODEL, STATIC_MODELS, Settings
from wirebridge.types.chat import DetectedProtocol


class TestLoadConfig:
    """Tests for loading configuration from YAML files."""

    def test_loads_simple_config(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.safe_dump({"server": {"port": 9000}}))

        result = load_config(str(config_file))

        assert result["server"]["port"] == 9000

    def test_raises_error_for_missing_config(self):
        with pytest.raises(ConfigurationError, match="Config file not found"):
            load_config("/nonexistent/path/config.yaml")

    def test_raises_error_for_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("server: [unclosed")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(str(config_file))

    def test_env_var_selects_config_file(self, tmp_path, monkeypatch):
        config_file = tmp_path / "chosen.yaml"
        config_file.write_text("server:\n  port: 1234\n")
        monkeypatch.setenv("WIREBRIDGE_CONFIG", str(config_file))

        assert load_config()["server"]["port"] == 1234

    def test_substitutes_environment_variables(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WB_TEST_KEY", "sk-from-env")
        config_file = tmp_path / "config.yaml"
        config_file.write_text("upstream:\n  api_key: ${WB_TEST_KEY}\n")

        result = load_config(str(config_file))

        assert result["upstream"]["api_key"] == "sk-from-env"

    def test_dotenv_next_to_config_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WB_TEST_KEY", "from-process")
        (tmp_path / ".env").write_text("WB_TEST_KEY=from-dotenv\n")
        config_file = tmp_path / "config.yaml"
        config_file.write_text("upstream:\n  api_key: $WB_TEST_KEY\n")

        result = load_config(str(config_file))

        assert result["upstream"]["api_key"] == "from-dotenv"

    def test_substitution_can_be_disabled(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WB_TEST_KEY", "value")
        config_file = tmp_path / "config.yaml"
        config_file.write_text("key: ${WB_TEST_KEY}\n")

        assert load_config(str(config_file), substitute_env=False)["key"] == "${WB_TEST_KEY}"

    def test_default_config_loads(self, monkeypatch):
        monkeypatch.delenv("WIREBRIDGE_CONFIG", raising=False)
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)

        settings = Settings.from_mapping(load_config())

        assert settings.upstream.protocol is DetectedProtocol.OPENAI
        assert settings.upstream.api_key is None
        assert settings.models.mapping_file == "configs/model-mapping.json"


class TestSubstituteEnvVars:
    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("WB_A", "1")
        result = _substitute_env_vars({"list": ["x-${WB_A}", {"k": "$WB_A"}], "n": 5})
        assert result == {"list": ["x-1", {"k": "1"}], "n": 5}

    def test_unset_variable_is_kept(self, monkeypatch, caplog):
        monkeypatch.delenv("WB_MISSING", raising=False)
        assert _substitute_env_vars("${WB_MISSING}") == "${WB_MISSING}"
        assert "WB_MISSING" in caplog.text

    def test_explicit_values_take_priority(self, monkeypatch):
        monkeypatch.setenv("WB_A", "process")
        assert _substitute_env_vars("$WB_A", {"WB_A": "file"}) == "file"


class TestMappingTables:
    def test_json_file(self, tmp_path):
        path = tmp_path / "mapping.json"
        path.write_text(json.dumps({
            "mappings": [
                {"pattern": "claude-3-5", "target": "GLM-4", "type": "contains"},
                {"pattern": "gpt-4", "target": "qwen", "type": "EXACT"},
            ],
            "defaultModel": "fallback",
        }))

        table = load_mapping_table(str(path))

        assert len(table) == 2
        assert table.rules[0].target == "GLM-4"
        assert table.rules[1].match_type == "exact"
        assert table.default_model == "fallback"

    def test_yaml_file_and_default_type(self, tmp_path):
        path = tmp_path / "mapping.yaml"
        path.write_text("mappings:\n  - pattern: haiku\n    target: small\ndefault_model: big\n")

        table = load_mapping_table(str(path))

        assert table.rules[0].match_type == "contains"
        assert table.default_model == "big"

    def test_missing_file_non_strict_is_empty(self, tmp_path):
        table = load_mapping_table(str(tmp_path / "missing.json"))
        assert len(table) == 0
        assert table.default_model is None

    def test_missing_file_strict_raises(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_mapping_table(str(tmp_path / "missing.json"), strict=True)

    def test_malformed_json_raises(self, tmp_path):
        path = tmp_path / "mapping.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError):
            load_mapping_table(str(path))

    def test_rule_without_target_raises(self):
        with pytest.raises(ConfigurationError, match="pattern"):
            parse_mapping_table({"mappings": [{"pattern": "x"}]})

    def test_mappings_must_be_a_list(self):
        with pytest.raises(ConfigurationError):
            parse_mapping_table({"mappings": {"pattern": "x"}})

    def test_env_table(self):
        environ = {"MODEL_MAPPINGS": json.dumps({"mappings": [{"pattern": "a", "target": "b"}]})}
        table = load_mapping_table_from_env(environ)
        assert table is not None
        assert table.rules[0].pattern == "a"

    def test_env_table_unset(self):
        assert load_mapping_table_from_env({}) is None

    def test_env_table_invalid_json(self):
        with pytest.raises(ConfigurationError, match="MODEL_MAPPINGS"):
            load_mapping_table_from_env({"MODEL_MAPPINGS": "{"})


class TestSettings:
    def test_defaults_from_empty_config(self):
        settings = Settings.from_mapping({})
        assert settings.server_port == 8000
        assert settings.upstream.protocol is DetectedProtocol.OPENAI
        assert settings.models.available == STATIC_MODELS
        assert settings.emit_message_delta is True
        assert settings.translation.max_text_chars is None

    def test_full_mapping(self):
        settings = Settings.from_mapping({
            "server": {"host": "0.0.0.0", "port": "9100"},
            "upstream": {"protocol": "Claude", "base_url": "http://x/v1", "api_key": "k"},
            "auth": {"mode": "oauth", "credentials_path": "/tmp/creds.json"},
            "models": {"fixed_model": "pinned", "available": ["a", "b"]},
            "retry": {"max_retries": 5, "initial_delay": 200},
            "translation": {"max_text_chars": 100, "shell_tool": {"name": None}},
            "streaming": {"emit_message_delta": False},
            "admin": {"enabled": False},
        })
        assert settings.server_port == 9100
        assert settings.upstream.protocol is DetectedProtocol.CLAUDE
        assert settings.auth.mode == "oauth"
        assert settings.models.fixed_model == "pinned"
        assert settings.models.available == ("a", "b")
        assert settings.retry.max_retries == 5
        assert settings.retry.initial_delay == 200
        assert settings.translation.max_text_chars == 100
        assert settings.translation.shell_tool_name is None
        assert settings.emit_message_delta is False
        assert settings.admin_enabled is False

    def test_oauth_mode_pins_portal_model_by_default(self):
        settings = Settings.from_mapping({"auth": {"mode": "oauth"}, "models": {"fixed_model": None}})
        assert settings.models.fixed_model == OAUTH_DEFAULT_MODEL
        assert Settings.from_mapping({}).models.fixed_model is None

    def test_unresolved_placeholder_counts_as_unset(self):
        settings = Settings.from_mapping({"upstream": {"api_key": "${OPENAI_API_KEY}"}})
        assert settings.upstream.api_key is None

    @pytest.mark.parametrize(
        "config",
        [
            {"upstream": {"protocol": "grpc"}},
            {"auth": {"mode": "magic"}},
            {"server": {"port": "not-a-port"}},
            {"models": {"available": "one"}},
            {"server": "flat"},
        ],
    )
    def test_invalid_values_raise(self, config):
        with pytest.raises(ConfigurationError):
            Settings.from_mapping(config)

    def test_env_overrides(self):
        settings = Settings().with_env_overrides({
            "WIREBRIDGE_HOST": "0.0.0.0",
            "WIREBRIDGE_PORT": "9999",
            "WIREBRIDGE_LOG_LEVEL": "debug",
        })
        assert (settings.server_host, settings.server_port, settings.log_level) == (
            "0.0.0.0",
            9999,
            "DEBUG",
        )

    def test_invalid_env_port_is_ignored(self):
        assert Settings().with_env_overrides({"WIREBRIDGE_PORT": "x"}).server_port == 8000
