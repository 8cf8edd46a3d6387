"""
Service settings.

Only three user settings matter to the task store: the markdown file path,
the daily notification time and the notifications switch. They are read
from the desktop app's settings JSON when it exists, then overridden by
environment variables. The rest are service knobs (polling, debounce, REST
API port).
"""

import json
import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, ValidationError, field_validator

from utils.dates import parse_hhmm

log = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = Path.home() / ".zuri" / "settings.json"

_TRUE_VALUES = ("true", "1", "yes")


class Settings(BaseModel):
    markdown_path: Optional[Path] = None
    notification_time: str = "00:00"
    notifications_enabled: bool = True
    poll_interval: float = 0.75
    debounce_seconds: float = 0.12
    api_enabled: bool = True
    api_port: int = 9410

    @field_validator("notification_time")
    @classmethod
    def _normalize_time(cls, value: str) -> str:
        hour, minute = parse_hhmm(value)
        return f"{hour:02d}:{minute:02d}"


def _env_bool(raw: str) -> bool:
    return raw.strip().lower() in _TRUE_VALUES


def _read_settings_file(path: Path) -> dict:
    """
    Pull the fields the store uses out of the app's settings JSON.

    A missing file is normal; an unreadable or malformed one is logged and
    ignored.
    """
    if not path.is_file():
        return {}
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        log.warning("Ignoring unreadable settings file %s: %s", path, e)
        return {}
    if not isinstance(raw, dict):
        log.warning("Ignoring settings file %s: not a JSON object", path)
        return {}

    values: dict = {}
    if raw.get("markdownPath"):
        values["markdown_path"] = raw["markdownPath"]
    if isinstance(raw.get("notificationTime"), str):
        values["notification_time"] = raw["notificationTime"]
    features = raw.get("features")
    if isinstance(features, dict) and "notifications" in features:
        values["notifications_enabled"] = bool(features["notifications"])
    return values


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from defaults, the settings JSON, then the environment."""
    env = os.environ if environ is None else environ

    settings_file = Path(env.get("TASKDOC_SETTINGS", "") or DEFAULT_SETTINGS_FILE)
    values = _read_settings_file(settings_file.expanduser())

    if env.get("MARKDOWN_PATH"):
        values["markdown_path"] = env["MARKDOWN_PATH"]
    if env.get("NOTIFICATION_TIME"):
        values["notification_time"] = env["NOTIFICATION_TIME"]
    if env.get("NOTIFICATIONS_ENABLED"):
        values["notifications_enabled"] = _env_bool(env["NOTIFICATIONS_ENABLED"])
    if env.get("POLL_INTERVAL"):
        values["poll_interval"] = env["POLL_INTERVAL"]
    if env.get("DEBOUNCE_SECONDS"):
        values["debounce_seconds"] = env["DEBOUNCE_SECONDS"]
    if env.get("API_ENABLED"):
        values["api_enabled"] = _env_bool(env["API_ENABLED"])
    if env.get("API_PORT"):
        values["api_port"] = env["API_PORT"]

    try:
        settings = Settings(**values)
    except ValidationError as e:
        raise ValueError(f"Invalid settings: {e}") from e

    if settings.markdown_path is not None:
        settings.markdown_path = settings.markdown_path.expanduser()
    return settings
