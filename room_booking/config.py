"""Settings for the booking core.

Values come from built-in defaults, then an optional YAML file, then
``ROOM_BOOKING_*`` environment variables, later sources winning. The YAML
file is given explicitly or through ``ROOM_BOOKING_CONFIG``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

CONFIG_ENV_VAR = "ROOM_BOOKING_CONFIG"
_ENV_FIELDS = {
    "ROOM_BOOKING_DATABASE_URL": "database_url",
    "ROOM_BOOKING_TIMEZONE": "timezone",
    "ROOM_BOOKING_STORAGE_TIMEOUT": "storage_timeout_seconds",
    "ROOM_BOOKING_LOG_LEVEL": "log_level",
    "ROOM_BOOKING_LOG_FILE": "log_file",
}


@dataclass(frozen=True)
class BookingSettings:
    database_url: str = "sqlite:///data/room_booking.db"
    timezone: str = "Europe/Paris"
    storage_timeout_seconds: float = 5.0
    log_level: str = "INFO"
    log_file: str | None = None

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> BookingSettings:
    env = os.environ if environ is None else environ
    settings = BookingSettings()

    config_path = path or env.get(CONFIG_ENV_VAR)
    if config_path:
        settings = replace(settings, **_read_yaml_settings(Path(config_path)))

    overrides = {name: env[key] for key, name in _ENV_FIELDS.items() if env.get(key)}
    if overrides:
        settings = replace(settings, **overrides)

    return _coerce(settings)


def _read_yaml_settings(path: Path) -> dict[str, Any]:
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as error:
        raise ValueError(f"Failed to read settings file: {path}") from error

    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValueError(f"Settings file must contain a mapping: {path}")

    known = {field.name for field in fields(BookingSettings)}
    unknown = sorted(str(key) for key in payload if key not in known)
    if unknown:
        raise ValueError(f"Unknown settings in {path}: {', '.join(unknown)}")
    return dict(payload)


def _coerce(settings: BookingSettings) -> BookingSettings:
    try:
        timeout = float(settings.storage_timeout_seconds)
    except (TypeError, ValueError) as error:
        raise ValueError("storage_timeout_seconds must be a number") from error
    if timeout <= 0:
        raise ValueError("storage_timeout_seconds must be greater than zero")

    try:
        ZoneInfo(str(settings.timezone))
    except (ZoneInfoNotFoundError, ValueError) as error:
        raise ValueError(f"Unknown timezone: {settings.timezone}") from error

    return replace(
        settings,
        database_url=str(settings.database_url),
        timezone=str(settings.timezone),
        storage_timeout_seconds=timeout,
        log_level=str(settings.log_level).upper(),
        log_file=str(settings.log_file) if settings.log_file else None,
    )
