from pathlib import Path

import pytest
from gemini_proxy.constants import CODE_ASSIST_ENDPOINT, DEFAULT_CLIENT_ID
from gemini_proxy.core.common.exceptions import ConfigurationError
from gemini_proxy.core.config.app_config import (
    AppConfig,
    BackendConfig,
    LogLevel,
    default_config_dir,
    load_config,
)
from pydantic import ValidationError


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GEMINI_PROXY_CONFIG_DIR", raising=False)
    config = AppConfig.from_env(environ={})

    assert config.host == "localhost"
    assert config.port == 3000
    assert config.backend.api_url == CODE_ASSIST_ENDPOINT
    assert config.oauth.client_id == DEFAULT_CLIENT_ID
    assert config.logging.level is LogLevel.INFO
    assert config.credentials_file == Path.home() / ".gemini-proxy" / "config.json"


def test_env_overrides() -> None:
    config = AppConfig.from_env(
        environ={
            "APP_HOST": "0.0.0.0",
            "APP_PORT": "8080",
            "GEMINI_PROXY_CONFIG_DIR": "/tmp/proxy-creds",
            "CODE_ASSIST_ENDPOINT": "http://localhost:9000/",
            "GEMINI_CLIENT_ID": "my-client",
            "LOG_LEVEL": "debug",
            "REQUEST_LOGGING": "true",
        }
    )

    assert config.host == "0.0.0.0"
    assert config.port == 8080
    assert config.credentials_file == Path("/tmp/proxy-creds/config.json")
    assert config.backend.api_url == "http://localhost:9000"
    assert config.oauth.client_id == "my-client"
    assert config.logging.level is LogLevel.DEBUG
    assert config.logging.request_logging is True


def test_non_integer_port_is_ignored() -> None:
    assert AppConfig.from_env(environ={"APP_PORT": "abc"}).port == 3000


def test_default_config_dir_honours_override(tmp_path: Path) -> None:
    assert default_config_dir({"GEMINI_PROXY_CONFIG_DIR": str(tmp_path)}) == tmp_path


def test_invalid_api_url_rejected() -> None:
    with pytest.raises(ValidationError):
        BackendConfig(api_url="ftp://example.com")


def test_load_yaml_file(tmp_path: Path) -> None:
    path = tmp_path / "proxy.yaml"
    path.write_text(
        "port: 4000\n"
        "backend:\n"
        "  read_timeout: 42\n"
        "logging:\n"
        "  level: WARNING\n",
        encoding="utf-8",
    )

    config = load_config(path, environ={})

    assert config.port == 4000
    assert config.backend.read_timeout == 42
    assert config.backend.api_url == CODE_ASSIST_ENDPOINT
    assert config.logging.level is LogLevel.WARNING


def test_environment_wins_over_file(tmp_path: Path) -> None:
    path = tmp_path / "proxy.yml"
    path.write_text("port: 4000\n", encoding="utf-8")

    assert load_config(path, environ={"APP_PORT": "5000"}).port == 5000


def test_missing_file_falls_back_to_defaults(tmp_path: Path) -> None:
    assert load_config(tmp_path / "absent.yaml", environ={}).port == 3000


def test_unsupported_suffix(tmp_path: Path) -> None:
    path = tmp_path / "proxy.toml"
    path.write_text("port = 1", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_config(path, environ={})


def test_invalid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "proxy.yaml"
    path.write_text("port: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_config(path, environ={})


def test_non_mapping_yaml(tmp_path: Path) -> None:
    path = tmp_path / "proxy.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_config(path, environ={})
