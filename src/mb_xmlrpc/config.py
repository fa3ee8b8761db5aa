"""Centralized client and application configuration."""

import base64
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

DEFAULT_DATA_DIR = Path.home() / ".local" / "mb-xmlrpc"
DEFAULT_USER_AGENT = "mb-xmlrpc"


class ClientConfig(BaseModel):
    """How requests reach one XML-RPC server."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(description="XML-RPC endpoint URL")
    username: str | None = Field(default=None, description="HTTP basic auth user name")
    password: str = Field(default="", description="HTTP basic auth password")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, min_length=1, description="User-Agent header value")
    proxy: str | None = Field(default=None, description="Proxy URL, e.g. http://proxy:3128")
    timeout: float = Field(default=30.0, gt=0, description="Transfer timeout in seconds")
    verify_tls: bool = Field(default=True, description="Verify server TLS certificates")

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            msg = f"URL must start with http:// or https://, got {value!r}"
            raise ValueError(msg)
        return value

    @computed_field(description="Authorization header value, when credentials are set")
    @property
    def authorization(self) -> str | None:
        """Authorization header value, when credentials are set."""
        if not self.username:
            return None
        token = base64.b64encode(f"{self.username}:{self.password}".encode()).decode("ascii")
        return f"Basic {token}"


class Config(BaseModel):
    """Application-wide configuration for the command line tool."""

    model_config = ConfigDict(frozen=True)

    data_dir: Path = Field(description="Base directory for all application data")
    server: ClientConfig | None = Field(default=None, description="Target server, None when no URL is configured")

    @computed_field(description="Optional TOML configuration file")
    @property
    def config_path(self) -> Path:
        """Optional TOML configuration file."""
        return self.data_dir / "config.toml"

    @computed_field(description="Log file")
    @property
    def log_path(self) -> Path:
        """Log file."""
        return self.data_dir / "xmlrpc.log"

    @staticmethod
    def build(data_dir: Path | None = None, url: str | None = None) -> "Config":
        """Build a Config from defaults and optional config.toml. An explicit url wins over the file."""
        resolved_dir = data_dir if data_dir is not None else DEFAULT_DATA_DIR
        config_path = resolved_dir / "config.toml"

        server: dict[str, Any] = {}
        if config_path.is_file():
            with config_path.open("rb") as f:
                toml_data = tomllib.load(f)
            for key in ("url", "username", "password", "user_agent", "proxy"):
                if isinstance(toml_data.get(key), str):
                    server[key] = toml_data[key]
            if isinstance(toml_data.get("timeout"), int | float):
                server["timeout"] = toml_data["timeout"]
            if isinstance(toml_data.get("verify_tls"), bool):
                server["verify_tls"] = toml_data["verify_tls"]
        if url is not None:
            server["url"] = url

        return Config(data_dir=resolved_dir, server=ClientConfig(**server) if "url" in server else None)
