"""Persisted configuration management."""

from __future__ import annotations

import json
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any

from .models import Config

CONFIG_PATH = (Path.home() / ".agrivoice" / "config.json").expanduser()

GENERATOR_MODES = ("remote", "local-only")


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded or saved."""


def load_config() -> Config:
    """Return the stored configuration with environment overrides applied."""

    config = _read_config_file()
    _apply_environment(config)
    validate_config(config)
    return config


def _read_config_file() -> Config:
    if not CONFIG_PATH.exists():
        return Config()
    try:
        payload = json.loads(CONFIG_PATH.read_text())
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Failed to parse configuration file: {exc}") from exc
    try:
        return Config(**payload)
    except TypeError as exc:
        raise ConfigError(f"Invalid configuration file: {exc}") from exc


def save_config(config: Config) -> None:
    validate_config(config)
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    data = {k: v for k, v in asdict(config).items() if v is not None}
    CONFIG_PATH.write_text(json.dumps(data, indent=2))


def update_config(**kwargs: Any) -> Config:
    config = _read_config_file()
    for key, value in kwargs.items():
        if hasattr(config, key):
            setattr(config, key, value)
        else:
            raise ConfigError(f"Unknown configuration key: {key}")
    save_config(config)
    return config


def validate_config(config: Config) -> None:
    if config.generator_mode not in GENERATOR_MODES:
        raise ConfigError(
            f"Unknown generator mode {config.generator_mode!r}; expected one of {', '.join(GENERATOR_MODES)}"
        )
    for name in ("provider_timeout", "upstream_timeout", "api_timeout"):
        if getattr(config, name) <= 0:
            raise ConfigError(f"{name} must be positive")


def _apply_environment(config: Config) -> None:
    env = os.environ
    if env.get("AGRIVOICE_GENERATOR_MODE"):
        config.generator_mode = env["AGRIVOICE_GENERATOR_MODE"].strip().lower()
    if env.get("OPENROUTER_API_KEY"):
        config.openrouter_api_key = env["OPENROUTER_API_KEY"]
    if env.get("OPENROUTER_MODEL"):
        config.openrouter_model = env["OPENROUTER_MODEL"]
    if env.get("AGRIVOICE_ALLOWED_ORIGINS"):
        config.allowed_origins = [
            origin.strip() for origin in env["AGRIVOICE_ALLOWED_ORIGINS"].split(",") if origin.strip()
        ]
    if env.get("AGRIVOICE_SERVER_URL"):
        config.server_url = env["AGRIVOICE_SERVER_URL"]
    if env.get("PORT"):
        try:
            config.port = int(env["PORT"])
        except ValueError as exc:
            raise ConfigError(f"PORT must be an integer, got {env['PORT']!r}") from exc
