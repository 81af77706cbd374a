"""ConfigManager — environment profiles and logging setup."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# All known configuration keys with defaults
_CONFIG_KEYS: dict[str, dict[str, Any]] = {
    "BUILDVCS_ENV": {"default": "development", "description": "Environment profile"},
    "BUILDVCS_DB": {"default": "buildvcs.db", "description": "Version database path"},
    "BUILDVCS_LOG_LEVEL": {"default": "INFO", "description": "Logging level"},
    "BUILDVCS_HISTORY_LIMIT": {"default": "50", "description": "Default commit history page size"},
    "BUILDVCS_RECENT_COMMITS": {"default": "20", "description": "Commits shown with a repository"},
    "BUILDVCS_BUSY_TIMEOUT": {"default": "5.0", "description": "Seconds to wait on a locked database"},
}

_PROFILES: dict[str, dict[str, str]] = {
    "development": {
        "BUILDVCS_ENV": "development",
        "BUILDVCS_LOG_LEVEL": "DEBUG",
    },
    "production": {
        "BUILDVCS_ENV": "production",
        "BUILDVCS_LOG_LEVEL": "WARNING",
    },
    "testing": {
        "BUILDVCS_ENV": "testing",
        "BUILDVCS_LOG_LEVEL": "DEBUG",
        "BUILDVCS_DB": ":memory:",
    },
}

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class ConfigManager:
    """Manage BuildVCS configuration across environments."""

    def generate_env_template(self, project_path: str | Path) -> Path:
        """Create .env.example with all config keys.

        Returns the path to the generated file.
        """
        root = Path(project_path)
        env_path = root / ".env.example"

        lines = ["# BuildVCS Configuration Template", "# Copy to .env and fill in values", ""]
        for key, info in _CONFIG_KEYS.items():
            lines.append(f"# {info['description']}")
            lines.append(f"{key}={info['default']}")
            lines.append("")

        env_path.write_text("\n".join(lines), encoding="utf-8")
        return env_path

    def load_config(self, project_path: str | Path) -> dict[str, str]:
        """Load merged config: defaults -> profile -> config.json -> .env -> env vars.

        Returns a flat dict of configuration values.
        """
        root = Path(project_path)
        config: dict[str, str] = {}

        # 1. Defaults
        for key, info in _CONFIG_KEYS.items():
            config[key] = str(info["default"])

        # 2. Profile overrides
        env_name = os.environ.get("BUILDVCS_ENV", config["BUILDVCS_ENV"])
        config.update(_PROFILES.get(env_name, {}))

        # 3. .buildvcs/config.json
        config_json = root / ".buildvcs" / "config.json"
        if config_json.is_file():
            try:
                data = json.loads(config_json.read_text(encoding="utf-8"))
                for k, v in data.items():
                    config[k] = str(v)
            except (json.JSONDecodeError, OSError):
                logger.warning("Could not read %s", config_json, exc_info=True)

        # 4. .env file
        env_file = root / ".env"
        if env_file.is_file():
            try:
                lines = env_file.read_text(encoding="utf-8").splitlines()
            except OSError:
                logger.warning("Could not read %s", env_file, exc_info=True)
                lines = []
            for line in lines:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                if "=" in line:
                    k, v = line.split("=", 1)
                    config[k.strip()] = v.strip()

        # 5. Environment variables override all
        for key in _CONFIG_KEYS:
            env_val = os.environ.get(key)
            if env_val is not None:
                config[key] = env_val

        return config

    @staticmethod
    def resolve_db_path(config: dict[str, str], project_path: str | Path) -> str:
        """Return the database path, relative paths anchored at *project_path*."""
        db = config.get("BUILDVCS_DB", _CONFIG_KEYS["BUILDVCS_DB"]["default"])
        if db == ":memory:" or Path(db).is_absolute():
            return db
        return str(Path(project_path) / db)


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """Attach a stream handler to the ``buildvcs`` logger at *level*.

    Calling it again only changes the level.
    """
    pkg_logger = logging.getLogger("buildvcs")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    pkg_logger.setLevel(level)
    if not any(getattr(h, "_buildvcs", False) for h in pkg_logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        handler._buildvcs = True  # type: ignore[attr-defined]
        pkg_logger.addHandler(handler)
    return pkg_logger
