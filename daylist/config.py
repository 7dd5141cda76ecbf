from pathlib import Path

import yaml

DAYLIST_DIR = Path.home() / ".daylist"
DB_PATH = DAYLIST_DIR / "daylist.db"
CONFIG_PATH = DAYLIST_DIR / "config.yaml"
BACKUP_DIR = DAYLIST_DIR / "backups"
LOG_DIR = DAYLIST_DIR / "logs"

DEFAULT_USER = "local"


class Config:
    """Single-instance config manager. Load once, cache in memory."""

    _instance: "Config | None" = None
    _data: dict[str, object]

    def __new__(cls) -> "Config":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._data = {}
            cls._instance._load()
        return cls._instance

    def _load(self) -> None:
        """Load config from disk."""
        if not CONFIG_PATH.exists():
            self._data = {}
            return
        with CONFIG_PATH.open() as f:
            loaded = yaml.safe_load(f)
        self._data = loaded if isinstance(loaded, dict) else {}

    def get(self, key: str, default: object = None) -> object:
        """Get config value."""
        return self._data.get(key, default)


def get_user_id() -> str:
    """User the command line acts as."""
    val = Config().get("user_id")
    return str(val).strip() if val else DEFAULT_USER


def get_timezone() -> str:
    """IANA zone name, or empty for the machine's local zone."""
    val = Config().get("timezone")
    return str(val).strip() if val else ""


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def get_log_level() -> str:
    """Console log level name. Unknown names fall back to WARNING."""
    val = Config().get("log_level")
    level = str(val).strip().upper() if val else "WARNING"
    return level if level in LOG_LEVELS else "WARNING"
