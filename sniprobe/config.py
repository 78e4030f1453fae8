"""
SniProbe — Configuration System

All configuration is Pydantic-validated and loaded from:
1. default.yaml (defaults)
2. Environment variables (overrides)

Every tunable parameter of the harness lives here.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sniprobe.primitives.probe import SniPolicy, validate_host_name

# ─── Sub-configs ──────────────────────────────────────────────────


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"  # Loopback only
    port: int = 0  # 0 = OS-assigned
    backlog: int = 50
    handshake_timeout_s: float = 10.0
    # How often the accept loop wakes up to check for stop()
    accept_poll_interval_s: float = 0.2
    # When False no SNI observer is installed; any server name is accepted unseen
    observe_sni: bool = True


class CredentialsConfig(BaseModel):
    # PKCS#12 key store. Empty = generate an ephemeral self-signed identity.
    keystore_path: str = ""
    password: str = "storepass"
    hostname: str = "example.com"  # SAN of a generated certificate
    key_size: int = 2048
    validity_days: int = 3650


class ClientConfig(BaseModel):
    sni_policy: SniPolicy = SniPolicy.PER_CONNECTION
    connect_timeout_s: float = 10.0
    verify_peer: bool = True


class DemoConfig(BaseModel):
    # None = connect without setting any server name
    hostnames: list[str | None] = Field(
        default_factory=lambda: ["alpha.example", "beta.example", None]
    )
    reuse_modes: list[bool] = Field(default_factory=lambda: [True, False])
    # Open each pass with a connection that sets no server name
    prime_without_sni: bool = False
    # How long to wait for the server's record after a connection attempt
    observation_timeout_s: float = 2.0

    @field_validator("hostnames")
    @classmethod
    def _check_hostnames(cls, value: list[str | None]) -> list[str | None]:
        return [validate_host_name(h) if h is not None else None for h in value]


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "console"  # "console" | "json"


# ─── Root Configuration ──────────────────────────────────────────


class SniProbeConfig(BaseSettings):
    """
    Root configuration. Loads from YAML, overridable by env vars.
    """

    model_config = SettingsConfigDict(
        env_prefix="SNIPROBE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    demo: DemoConfig = Field(default_factory=DemoConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> SniProbeConfig:
    """
    Load configuration from YAML file, then apply environment variable overrides.
    """
    raw: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                raw = yaml.safe_load(f) or {}

    # Inject secrets and switches from environment
    import os

    if keystore_path := os.environ.get("SNIPROBE_KEYSTORE_PATH"):
        raw.setdefault("credentials", {})["keystore_path"] = keystore_path
    if keystore_pw := os.environ.get("SNIPROBE_KEYSTORE_PASSWORD"):
        raw.setdefault("credentials", {})["password"] = keystore_pw
    if sni_policy := os.environ.get("SNIPROBE_SNI_POLICY"):
        raw.setdefault("client", {})["sni_policy"] = sni_policy.strip().lower()
    if log_level := os.environ.get("SNIPROBE_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if overrides:
        raw = _deep_merge(raw, overrides)

    return SniProbeConfig(**raw)
