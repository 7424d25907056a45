"""Configuration loading and Pydantic models for udlgate."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

# Environment variable that overrides auth.secret, so the secret need not
# live in the YAML file.
SECRET_ENV_VAR = "UDLGATE_AUTH_SECRET"


class ServerConfig(BaseModel):
    """Server binding and runtime configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 8787
    log_level: str = "INFO"
    log_format: str = "text"
    shutdown_timeout: int = 30


class AuthConfig(BaseModel):
    """Shared-secret configuration.

    An empty secret rejects every request.
    """

    model_config = ConfigDict(frozen=True)

    secret: str = ""


class StorageConfig(BaseModel):
    """Backing store configuration."""

    model_config = ConfigDict(frozen=True)

    backend: str = "memory"
    memory_max_size_bytes: int = 0
    local_root: str = "./data/objects"
    aws_bucket: str = ""
    aws_region: str = "us-east-1"
    aws_prefix: str = ""
    aws_endpoint_url: str = ""
    aws_use_path_style: bool = False
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""


class ObservabilityConfig(BaseModel):
    """Operational endpoints. Both are unauthenticated when enabled."""

    model_config = ConfigDict(frozen=True)

    metrics: bool = False
    health_check: bool = False


class GatewayConfig(BaseModel):
    """Top-level udlgate configuration."""

    model_config = ConfigDict(frozen=True)

    server: ServerConfig = Field(default_factory=ServerConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


def _parse_server(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the server section from YAML data into a dict for Pydantic."""
    if data is None:
        return {}
    return {
        "host": data.get("host", "0.0.0.0"),
        "port": data.get("port", 8787),
        "log_level": data.get("log_level", "INFO"),
        "log_format": data.get("log_format", "text"),
        "shutdown_timeout": data.get("shutdown_timeout", 30),
    }


def _parse_auth(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the auth section from YAML data.

    The ``UDLGATE_AUTH_SECRET`` environment variable wins over the file.
    """
    result: dict[str, Any] = {}
    if data is not None:
        result["secret"] = str(data.get("secret", ""))
    env_secret = os.environ.get(SECRET_ENV_VAR)
    if env_secret:
        result["secret"] = env_secret
    return result


def _parse_storage(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the storage section from YAML data.

    Handles nested structure: storage.local.root_dir -> local_root, etc.
    """
    if data is None:
        return {}

    result: dict[str, Any] = {"backend": data.get("backend", "memory")}

    memory_section = data.get("memory")
    if isinstance(memory_section, dict):
        result["memory_max_size_bytes"] = memory_section.get("max_size_bytes", 0)

    local_section = data.get("local")
    if isinstance(local_section, dict):
        result["local_root"] = local_section.get("root_dir", "./data/objects")

    aws_section = data.get("aws")
    if isinstance(aws_section, dict):
        result["aws_bucket"] = aws_section.get("bucket", "")
        result["aws_region"] = aws_section.get("region", "us-east-1")
        result["aws_prefix"] = aws_section.get("prefix", "")
        result["aws_endpoint_url"] = aws_section.get("endpoint_url", "")
        result["aws_use_path_style"] = aws_section.get("use_path_style", False)
        result["aws_access_key_id"] = aws_section.get("access_key_id", "")
        result["aws_secret_access_key"] = aws_section.get("secret_access_key", "")

    return result


def _parse_observability(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the observability section from YAML data."""
    if data is None:
        return {}
    return {
        "metrics": data.get("metrics", False),
        "health_check": data.get("health_check", False),
    }


def load_config(path: Path) -> GatewayConfig:
    """Load a GatewayConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated, immutable GatewayConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return GatewayConfig(
        server=ServerConfig(**_parse_server(raw.get("server"))),
        auth=AuthConfig(**_parse_auth(raw.get("auth"))),
        storage=StorageConfig(**_parse_storage(raw.get("storage"))),
        observability=ObservabilityConfig(**_parse_observability(raw.get("observability"))),
    )
