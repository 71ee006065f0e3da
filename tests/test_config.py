"""
Tests for settings loading and the credentials file.
"""

from pathlib import Path

import pytest

from taskgate.config import REDACTED_MARKER, Settings, load_credentials, load_settings
from taskgate.errors import ConfigError


def write(path: Path, text: str) -> Path:
    path.write_text(text)
    return path


class TestSettings:
    def test_defaults(self, tmp_path):
        settings = load_settings(environ={"TASKGATE_DATA_DIR": str(tmp_path)})
        assert settings.data_dir == tmp_path
        assert settings.max_retries == 3
        assert settings.max_workers == 5
        assert settings.dispatch_timeout == 120.0
        assert settings.agents == {}
        assert settings.db_path == tmp_path / "taskgate.db"

    def test_toml_file(self, tmp_path):
        config = write(
            tmp_path / "custom.toml",
            '[taskgate]\nmax_retries = 1\ndispatch_timeout = 30\n\n'
            '[agents.imager]\nprimary = "img/a"\nallowed = ["image"]\n',
        )
        settings = load_settings(config, environ={})
        assert settings.max_retries == 1
        assert settings.dispatch_timeout == 30.0
        assert settings.agents == {"imager": {"primary": "img/a", "allowed": ["image"]}}

    def test_config_in_data_dir_is_picked_up(self, tmp_path):
        write(tmp_path / "config.toml", "[taskgate]\nmax_workers = 2\n")
        settings = load_settings(environ={"TASKGATE_DATA_DIR": str(tmp_path)})
        assert settings.max_workers == 2

    def test_environment_overrides_file(self, tmp_path):
        config = write(tmp_path / "c.toml", "[taskgate]\nmax_retries = 1\n")
        settings = load_settings(config, environ={"TASKGATE_MAX_RETRIES": "5"})
        assert settings.max_retries == 5

    def test_unknown_key(self, tmp_path):
        config = write(tmp_path / "c.toml", "[taskgate]\nretries = 1\n")
        with pytest.raises(ConfigError, match="retries"):
            load_settings(config, environ={})

    def test_invalid_value(self, tmp_path):
        config = write(tmp_path / "c.toml", '[taskgate]\nmax_workers = "many"\n')
        with pytest.raises(ConfigError, match="max_workers"):
            load_settings(config, environ={})

    def test_boolean_is_not_an_integer(self, tmp_path):
        config = write(tmp_path / "c.toml", "[taskgate]\nmax_retries = true\n")
        with pytest.raises(ConfigError):
            load_settings(config, environ={})

    def test_invalid_environment_value(self, tmp_path):
        with pytest.raises(ConfigError, match="dispatch_timeout"):
            load_settings(environ={
                "TASKGATE_DATA_DIR": str(tmp_path),
                "TASKGATE_DISPATCH_TIMEOUT": "soon",
            })

    def test_explicit_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "nope.toml", environ={})

    def test_malformed_toml(self, tmp_path):
        config = write(tmp_path / "c.toml", "[taskgate\n")
        with pytest.raises(ConfigError, match="Cannot read"):
            load_settings(config, environ={})

    def test_agents_must_be_tables(self, tmp_path):
        config = write(tmp_path / "c.toml", '[agents]\nimager = "img/a"\n')
        with pytest.raises(ConfigError, match="agents"):
            load_settings(config, environ={})

    @pytest.mark.parametrize(
        "overrides",
        [
            {"max_retries": -1},
            {"max_workers": 0},
            {"dispatch_timeout": 0},
            {"max_output_size": 0},
            {"min_secret_length": 0},
        ],
    )
    def test_validation(self, overrides):
        with pytest.raises(ConfigError):
            Settings(**overrides)


class TestCredentials:
    def test_loads_values(self, tmp_path):
        env = write(tmp_path / ".env", "OPENROUTER_API_KEY=sk-or-v1-abc\nOTHER=value\n")
        assert load_credentials(env) == {"OPENROUTER_API_KEY": "sk-or-v1-abc", "OTHER": "value"}

    def test_drops_empty_and_redacted(self, tmp_path):
        env = write(
            tmp_path / ".env",
            f"EMPTY=\nHIDDEN={REDACTED_MARKER}\nKEPT=secret-value\n",
        )
        assert load_credentials(env) == {"KEPT": "secret-value"}

    def test_missing_file(self, tmp_path):
        assert load_credentials(tmp_path / ".env") == {}
