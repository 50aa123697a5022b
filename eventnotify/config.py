"""Global configuration for eventnotify."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

DEFAULTS: dict[str, Any] = {
    "dispatch_batch_size": 50,
    "dispatch_interval_seconds": 60,
    "enable_scheduler": True,
    "default_feedback_delay_hours": 3,
    "default_event_duration_hours": 4,
    "starting_nudge_minutes": 15,
    "comment_preview_length": 100,
    "event_timezone": "Asia/Ho_Chi_Minh",
    "default_locale": "en",
    "push_webhook_url": "",
    "push_timeout_seconds": 10.0,
    "seed_events": 3,
    "seed_rsvps_per_event": 5,
    "app_host": "0.0.0.0",
    "app_port": 8000,
}

TYPE_CASTERS: dict[str, Callable[[Any], Any]] = {
    "dispatch_batch_size": int,
    "dispatch_interval_seconds": int,
    "enable_scheduler": bool,
    "default_feedback_delay_hours": int,
    "default_event_duration_hours": int,
    "starting_nudge_minutes": int,
    "comment_preview_length": int,
    "event_timezone": str,
    "default_locale": str,
    "push_webhook_url": str,
    "push_timeout_seconds": float,
    "seed_events": int,
    "seed_rsvps_per_event": int,
    "app_host": str,
    "app_port": int,
}


@dataclass(frozen=True)
class Settings:
    base_dir: Path
    data_dir: Path
    database_path: Path
    database_url: str
    dispatch_batch_size: int
    dispatch_interval_seconds: int
    enable_scheduler: bool
    default_feedback_delay_hours: int
    default_event_duration_hours: int
    starting_nudge_minutes: int
    comment_preview_length: int
    event_timezone: str
    default_locale: str
    push_webhook_url: str
    push_timeout_seconds: float
    seed_events: int
    seed_rsvps_per_event: int
    root_token_key: str
    app_host: str
    app_port: int
    config_path: Path


def _boolify(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Cannot parse boolean value from {value!r}")


def _cast_value(key: str, value: Any) -> Any:
    if key not in TYPE_CASTERS:
        return value
    caster = TYPE_CASTERS[key]
    if caster is bool:
        return _boolify(value)
    return caster(value)


def _load_toml_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        return tomllib.load(handle)


def _config_layered_value(key: str, *, toml_config: dict[str, Any]) -> Any:
    env_key = f"EVENTNOTIFY_{key.upper()}"
    if env_key in os.environ:
        return _cast_value(key, os.environ[env_key])
    if key in toml_config:
        return _cast_value(key, toml_config[key])
    return DEFAULTS[key]


def _resolve_paths(
    *,
    base_dir: Path,
    data_dir: str | Path | None,
    database_path: str | Path | None,
):
    resolved_base = Path(base_dir)
    resolved_data = Path(data_dir) if data_dir else resolved_base / "data"
    if not resolved_data.is_absolute():
        resolved_data = resolved_base / resolved_data
    resolved_db = (
        Path(database_path) if database_path else resolved_data / "eventnotify.db"
    )
    if not resolved_db.is_absolute():
        resolved_db = resolved_base / resolved_db
    return resolved_base, resolved_data, resolved_db


def _resolve_database_url(toml_config: dict[str, Any], database_path: Path) -> str:
    """Return the SQLAlchemy URL; an explicitly empty value means unconfigured."""
    if "EVENTNOTIFY_DATABASE_URL" in os.environ:
        return os.environ["EVENTNOTIFY_DATABASE_URL"].strip()
    if "database_url" in toml_config:
        return str(toml_config["database_url"]).strip()
    return f"sqlite:///{database_path}"


def load_settings(config_override: Path | None = None) -> Settings:
    base_dir = Path(os.getenv("EVENTNOTIFY_BASE_DIR", Path.cwd()))
    env_config = os.getenv("EVENTNOTIFY_CONFIG")
    config_path = Path(config_override or env_config or base_dir / "eventnotify.toml")
    toml_config = _load_toml_config(config_path)

    base_dir_value, data_dir_value, database_path_value = _resolve_paths(
        base_dir=base_dir,
        data_dir=os.getenv("EVENTNOTIFY_DATA_DIR", toml_config.get("data_dir")),
        database_path=os.getenv("EVENTNOTIFY_DB", toml_config.get("database_path")),
    )

    layered = {
        key: _config_layered_value(key, toml_config=toml_config) for key in DEFAULTS
    }
    settings = Settings(
        base_dir=base_dir_value,
        data_dir=data_dir_value,
        database_path=database_path_value,
        database_url=_resolve_database_url(toml_config, database_path_value),
        root_token_key="root_admin_token",
        config_path=config_path,
        **layered,
    )
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    return settings


def settings_as_dict(settings: Settings) -> dict[str, Any]:
    values: dict[str, Any] = {
        "base_dir": str(settings.base_dir),
        "data_dir": str(settings.data_dir),
        "database_path": str(settings.database_path),
        "database_url": settings.database_url,
    }
    for key in DEFAULTS:
        values[key] = getattr(settings, key)
    return values


def _toml_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def write_config_file(config: dict[str, Any], *, path: Path) -> None:
    lines = ["# eventnotify configuration\n"]
    for key in sorted(config.keys()):
        lines.append(f"{key} = {_toml_literal(config[key])}\n")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(lines), encoding="utf-8")


def update_config_file(updates: dict[str, Any], *, path: Path | None = None) -> Settings:
    current_settings = settings if "settings" in globals() else load_settings()
    target_path = path or current_settings.config_path
    existing = _load_toml_config(target_path)
    merged = {**existing}
    for key, value in updates.items():
        if key not in DEFAULTS:
            continue
        merged[key] = _cast_value(key, value)
    write_config_file(merged, path=target_path)
    new_settings = load_settings(target_path)
    globals()["settings"] = new_settings
    return new_settings


settings = load_settings()
