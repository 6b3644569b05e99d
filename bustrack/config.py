"""Configuration loader for the bus trip supervisor client."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
import yaml

LOG_FILE_NAME = "bustrack.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class ApiConfig:
    """School API connection settings."""

    base_url: str
    school_id: str | None
    timeout_seconds: float
    waiting_target_supported: bool = False
    debug_http: bool = False
    token: str = ""


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""

    level: str
    log_dir: str


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    api: ApiConfig
    log: LoggingConfig


def _require_key(mapping: dict[str, Any], key: str, context: str) -> Any:
    if key not in mapping:
        raise ValueError(f"Missing required key '{key}' in {context} config")
    return mapping[key]


def _optional_bool(mapping: dict[str, Any], key: str, context: str) -> bool:
    value = mapping.get(key, False)
    if not isinstance(value, bool):
        raise ValueError(f"'{key}' in {context} config must be true or false, got {value!r}")
    return value


def _require_section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = _require_key(data, name, name)
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' config must be a mapping")
    return section


def load_config(path: str = "config/config.yaml") -> AppConfig:
    """Load application configuration from a YAML file."""
    load_dotenv()
    token = os.environ.get("BUSTRACK_API_TOKEN", "")
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        raise ValueError(f"Config file not found: {path}") from exc

    if not isinstance(data, dict):
        raise ValueError("Config file must contain a mapping at the top level")

    api_section = _require_section(data, "api")
    logging_section = _require_section(data, "logging")

    school_id = api_section.get("school_id")
    api = ApiConfig(
        base_url=str(_require_key(api_section, "base_url", "api")).rstrip("/"),
        school_id=str(school_id) if school_id else None,
        timeout_seconds=float(_require_key(api_section, "timeout_seconds", "api")),
        waiting_target_supported=_optional_bool(api_section, "waiting_target_supported", "api"),
        debug_http=_optional_bool(api_section, "debug_http", "api"),
        token=token,
    )

    log = LoggingConfig(
        level=_require_key(logging_section, "level", "logging"),
        log_dir=_require_key(logging_section, "log_dir", "logging"),
    )

    return AppConfig(api=api, log=log)


def configure_logging(config: LoggingConfig) -> None:
    """Route log records to the console and to a file under log_dir."""
    level = logging.getLevelName(str(config.level).upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown logging level: {config.level}")

    log_dir = Path(config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    file_handler = logging.FileHandler(log_dir / LOG_FILE_NAME, encoding="utf-8")
    file_handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.addHandler(console)
    root.addHandler(file_handler)

    # urllib3 logs every connection at DEBUG, which drowns out our own tracing.
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))


__all__ = ["ApiConfig", "AppConfig", "LoggingConfig", "configure_logging", "load_config"]
