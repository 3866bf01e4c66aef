"""
Configuration loading and validation for gqlgate gateways.

Settings come from environment variables (``GQLGATE_*``), optionally seeded
from a YAML file. Environment variables win over file values.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "GQLGATE_"
CONFIG_PATH_ENV = "GQLGATE_CONFIG"


class GatewaySettings(BaseSettings):
    """Gateway settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="ignore")

    # Query registry
    registry_mode: Literal["open", "whitelist"] = "open"
    persisted_manifest: Optional[Path] = None
    redis_url: Optional[str] = None

    # Execution bounds
    resolver_timeout: Optional[float] = Field(default=10.0, gt=0)
    mutation_timeout: Optional[float] = Field(default=15.0, gt=0)
    max_concurrent_resolvers: int = Field(default=64, ge=1)
    max_depth: int = Field(default=15, ge=1)
    mask_errors: bool = True

    # Transport
    admin_token: Optional[str] = None
    allow_get: bool = True
    graphql_path: str = "/graphql"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])


def load_config(path: Path | str = "gqlgate.yaml") -> GatewaySettings:
    """
    Load settings from a YAML file, then apply environment overrides.

    A missing file yields settings from the environment alone.
    """
    path = Path(path)
    data: dict = {}
    if path.exists():
        data = yaml.safe_load(path.read_text()) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must be a mapping")

    # Init kwargs outrank the environment in pydantic-settings, so drop overridden keys
    data = {
        key: value
        for key, value in data.items()
        if f"{ENV_PREFIX}{key}".upper() not in {name.upper() for name in os.environ}
    }
    return GatewaySettings(**data)
