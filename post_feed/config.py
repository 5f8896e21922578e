from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import yaml
from dotenv import dotenv_values
from pydantic import ValidationError

from .config_schema import AppConfig
from .errors import ConfigError
from .retry import RetryConfig


@dataclass(frozen=True)
class RuntimeSecrets:
    supabase_url: str
    service_key: str


def load_config(path: str | Path | None = None) -> AppConfig:
    """
    Load a YAML config file and validate it into a typed AppConfig.

    With no path, the built-in defaults are returned.
    Raises ConfigError with a readable validation message on failure.
    """
    if path is None:
        return AppConfig()

    p = Path(path)

    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")

    try:
        raw_text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {p}") from e

    try:
        data = yaml.safe_load(raw_text)
    except Exception as e:  # PyYAML can raise multiple exception types
        raise ConfigError(f"Failed to parse YAML in {p}: {e}") from e

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML in {p} must be a mapping/object")

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_pydantic_errors(e, p)) from e


def load_environment(dotenv_path: str | Path | None = ".env") -> dict[str, str]:
    """
    Merge variables from a .env file under the process environment.

    Real environment variables win over .env entries.
    """
    merged: dict[str, str] = {}
    if dotenv_path is not None and Path(dotenv_path).is_file():
        for key, value in dotenv_values(dotenv_path).items():
            if value is not None:
                merged[key] = value
    merged.update(os.environ)
    return merged


def resolve_runtime_secrets(
    config: AppConfig, *, environ: Mapping[str, str] | None = None
) -> RuntimeSecrets:
    """
    Validate that the backend URL and service credential are present and non-empty.
    """
    env = os.environ if environ is None else environ

    url_env = config.supabase.url_env
    key_env = config.supabase.service_key_env

    missing: list[str] = []
    if not (env.get(url_env) or "").strip():
        missing.append(url_env)
    if not (env.get(key_env) or "").strip():
        missing.append(key_env)

    if missing:
        joined = ", ".join(missing)
        raise ConfigError(f"Missing required environment variables: {joined}")

    return RuntimeSecrets(
        supabase_url=env[url_env].strip(),
        service_key=env[key_env].strip(),
    )


def retry_config(config: AppConfig) -> RetryConfig:
    return RetryConfig(
        max_attempts=int(config.retry.max_attempts),
        base_delay_seconds=float(config.retry.base_delay_seconds),
    )


def _format_pydantic_errors(err: ValidationError, path: Path) -> str:
    lines: list[str] = [f"Invalid configuration in {path}:"]
    for item in err.errors():
        loc = ".".join(str(part) for part in item.get("loc", [])) or "<root>"
        msg = item.get("msg", "invalid value")
        lines.append(f"- {loc}: {msg}")
    return "\n".join(lines)
