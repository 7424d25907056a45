"""Tests for configuration loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from udlgate.config import SECRET_ENV_VAR, GatewayConfig, load_config

EXAMPLE_CONFIG = Path(__file__).parent.parent / "udlgate.example.yaml"


@pytest.fixture(autouse=True)
def _no_env_secret(monkeypatch):
    monkeypatch.delenv(SECRET_ENV_VAR, raising=False)


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "udlgate.yaml"
    path.write_text(text)
    return path


class TestLoadConfig:
    def test_example_config(self):
        config = load_config(EXAMPLE_CONFIG)
        assert config.server.port == 8787
        assert config.auth.secret == "change-me"
        assert config.storage.backend == "memory"
        assert config.storage.local_root == "./data/objects"
        assert config.observability.metrics is False
        assert config.observability.health_check is False

    def test_empty_file_uses_defaults(self, tmp_path):
        config = load_config(_write(tmp_path, ""))
        assert config == GatewayConfig()
        assert config.auth.secret == ""

    def test_nested_storage_sections(self, tmp_path):
        config = load_config(
            _write(
                tmp_path,
                """
storage:
  backend: aws
  aws:
    bucket: uploads
    region: eu-central-1
    prefix: gw/
    endpoint_url: http://localhost:9000
    use_path_style: true
""",
            )
        )
        assert config.storage.backend == "aws"
        assert config.storage.aws_bucket == "uploads"
        assert config.storage.aws_region == "eu-central-1"
        assert config.storage.aws_prefix == "gw/"
        assert config.storage.aws_endpoint_url == "http://localhost:9000"
        assert config.storage.aws_use_path_style is True

    def test_server_section(self, tmp_path):
        config = load_config(
            _write(tmp_path, "server:\n  port: 9999\n  log_format: json\n")
        )
        assert config.server.port == 9999
        assert config.server.log_format == "json"
        assert config.server.host == "0.0.0.0"

    def test_env_secret_overrides_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv(SECRET_ENV_VAR, "from-env")
        config = load_config(_write(tmp_path, "auth:\n  secret: from-file\n"))
        assert config.auth.secret == "from-env"

    def test_env_secret_without_auth_section(self, tmp_path, monkeypatch):
        monkeypatch.setenv(SECRET_ENV_VAR, "from-env")
        config = load_config(_write(tmp_path, "server:\n  port: 1\n"))
        assert config.auth.secret == "from-env"

    def test_numeric_secret_is_string(self, tmp_path):
        config = load_config(_write(tmp_path, "auth:\n  secret: 12345\n"))
        assert config.auth.secret == "12345"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")

    def test_invalid_port_type(self, tmp_path):
        with pytest.raises(ValidationError):
            load_config(_write(tmp_path, "server:\n  port: not-a-port\n"))


class TestImmutability:
    def test_models_are_frozen(self):
        config = GatewayConfig()
        with pytest.raises(ValidationError):
            config.auth.secret = "changed"
        with pytest.raises(ValidationError):
            config.server = config.server
