import json
import logging
from pathlib import Path

from fncli import UsageError, cli

from . import config
from .core.errors import ValidationError
from .core.models import UserSettings
from .db import get_db
from .lib.errors import echo

__all__ = ["ensure_user", "get_settings", "update_settings"]

logger = logging.getLogger(__name__)


def ensure_user(user_id: str, db_path: Path | None = None) -> None:
    if not user_id:
        raise ValidationError("user id is required")
    with get_db(db_path) as conn:
        conn.execute("INSERT OR IGNORE INTO users (id) VALUES (?)", (user_id,))


def _load_raw(user_id: str, db_path: Path | None) -> dict[str, object]:
    with get_db(db_path) as conn:
        row = conn.execute("SELECT settings FROM users WHERE id = ?", (user_id,)).fetchone()
    if not row or not row[0]:
        return {}
    try:
        loaded = json.loads(row[0])
    except json.JSONDecodeError:
        logger.warning("settings for user %s are not valid json, using defaults", user_id)
        return {}
    return loaded if isinstance(loaded, dict) else {}


def get_settings(user_id: str, db_path: Path | None = None) -> UserSettings:
    return UserSettings.from_mapping(_load_raw(user_id, db_path))


def update_settings(
    user_id: str, changes: dict[str, object], db_path: Path | None = None
) -> UserSettings:
    """Merge changes into the stored settings. Invalid values raise before anything is written."""
    merged = UserSettings.from_mapping({**_load_raw(user_id, db_path), **changes})
    with get_db(db_path) as conn:
        cursor = conn.execute(
            "UPDATE users SET settings = ?, updated = CURRENT_TIMESTAMP WHERE id = ?",
            (json.dumps(merged.to_dict()), user_id),
        )
        if cursor.rowcount == 0:
            conn.execute(
                "INSERT INTO users (id, settings) VALUES (?, ?)",
                (user_id, json.dumps(merged.to_dict())),
            )
    logger.info("updated settings for %s: %s", user_id, ", ".join(sorted(changes)))
    return merged


# ── cli ──────────────────────────────────────────────────────────────────────


@cli("daylist settings", name="show", default=True)
def settings_show() -> None:
    """Show your settings"""
    for key, value in get_settings(config.get_user_id()).to_dict().items():
        echo(f"  {key:<28} {value}")


@cli("daylist settings", name="set")
def settings_set(key: str, value: str) -> None:
    """Change a setting: `daylist settings set task_completion_behavior hide`"""
    if key not in UserSettings().to_dict():
        raise UsageError(f"unknown setting '{key}'")
    updated = update_settings(config.get_user_id(), {key: value})
    echo(f"→ {key} = {updated.to_dict()[key]}")
