"""Configuration loading and validation for Fleet Queue."""

import os
from pathlib import Path
import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator
import yaml

from .auth import EncryptedFileTokenProvider, EnvTokenProvider, StaticTokenProvider, TokenProvider


class ServerConfig(BaseModel):
    """Fleet server connection configuration."""

    url: str
    token: Optional[str] = None
    token_file: Optional[str] = None  # Path to encrypted token file
    token_env: str = "FLEET_API_TOKEN"  # Read at call time when neither token nor token_file is set
    encryption_key: Optional[str] = None  # Passphrase for token_file
    queue_path: str = "/api/MissionQueue"
    hub_path: str = "/hubs/queue"
    timeout_seconds: float = 30.0

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("token", "encryption_key")
    @classmethod
    def resolve_env_var(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return _resolve_env_var(v)

    @field_validator("queue_path", "hub_path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.startswith("/"):
            v = "/" + v
        return v.rstrip("/")

    @model_validator(mode="after")
    def check_token_file_key(self) -> "ServerConfig":
        if self.token_file and not self.encryption_key:
            raise ValueError("encryption_key is required when token_file is set")
        return self

    @property
    def resolved_token_file(self) -> Optional[Path]:
        if self.token_file:
            return Path(self.token_file).expanduser()
        return None


class PushConfig(BaseModel):
    """Push channel (hub) configuration."""

    enabled: bool = True
    max_reconnect_attempts: int = Field(default=5, ge=0)
    reconnect_interval_seconds: float = Field(default=5.0, ge=0)
    backoff_base_seconds: float = Field(default=1.0, ge=0)
    backoff_max_seconds: float = Field(default=10.0, ge=0)
    ping_interval_seconds: float = Field(default=15.0, gt=0)


class MonitorConfig(BaseModel):
    """Queue monitor behaviour."""

    poll_interval_seconds: float = Field(default=5.0, gt=0)
    privileged: bool = False  # Skip admin authorization before cancel


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    file: Optional[str] = "~/.fleet_queue/fleet_queue.log"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Level must be one of: {valid_levels}")
        return v

    @property
    def resolved_file(self) -> Optional[Path]:
        if self.file:
            return Path(self.file).expanduser()
        return None


class Config(BaseModel):
    """Main configuration model."""

    server: ServerConfig
    push: PushConfig = Field(default_factory=PushConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def hub_url(self) -> str:
        return f"{self.server.url}{self.server.hub_path}"

    def token_provider(self) -> TokenProvider:
        """Build the token source described by the server section."""
        token_file = self.server.resolved_token_file
        if token_file and not self.server.token:
            return EncryptedFileTokenProvider(token_file, self.server.encryption_key or "")
        if not self.server.token:
            return EnvTokenProvider(self.server.token_env)
        return StaticTokenProvider(self.server.token)


def _resolve_env_var(value: str) -> str:
    """Resolve environment variable references in config values.

    Supports ${VAR_NAME} syntax.
    """
    pattern = r"\$\{([^}]+)\}"
    match = re.match(pattern, value)
    if match:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            raise ValueError(f"Environment variable {var_name} not set")
        return env_value
    return value


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, searches in default locations.

    Returns:
        Validated Config object.

    Raises:
        FileNotFoundError: If config file not found.
        ValueError: If config validation fails.
    """
    if config_path is None:
        search_paths = [
            Path.cwd() / "config.yaml",
            Path.home() / ".fleet_queue" / "config.yaml",
            Path("/etc/fleet_queue/config.yaml"),
        ]
        for path in search_paths:
            if path.exists():
                config_path = path
                break
        else:
            raise FileNotFoundError(
                f"Config file not found. Searched: {[str(p) for p in search_paths]}"
            )

    config_path = Path(config_path).expanduser()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw_config = yaml.safe_load(f)

    return Config.model_validate(raw_config or {})


def ensure_directories(config: Config) -> None:
    """Ensure required directories exist."""
    if config.logging.resolved_file:
        config.logging.resolved_file.parent.mkdir(parents=True, exist_ok=True)

