"""
config.py
=========
Settings for the file-share server.
"""
import copy
import json
import os
from pathlib import Path

from logger import get_logger

logger = get_logger("config")


def normalize_port(val):
    """``"8080"`` -> 8080; non-numeric values are kept (named pipe); negatives -> False."""
    try:
        port = int(val)
    except (TypeError, ValueError):
        return val
    if port >= 0:
        return port
    return False


class Config:
    """Server configuration, defaults merged with an optional JSON file."""

    DEFAULTS = {
        "files_folder_path": "files",
        "public_path": "public",
        "port": 8080,
        "allow_deletion": False,
        "progress_threshold": 10,   # percent between upload progress reports
        "ready_timeout": 30,        # seconds /info waits for the initial scan
        "broadcast_debounce": 0.25, # seconds
        "log_dir": None,
        "disable": {
            "file_download": False,
            "info": False
        }
    }

    def __init__(self, config_path: str = None, base_dir: Path = None):
        """
        Args:
            config_path: JSON settings file; defaults only when None
            base_dir: folder relative paths resolve against; defaults to the
                config file's folder, else the working directory
        """
        self.config_path = Path(config_path) if config_path else None
        if base_dir is not None:
            self.base_dir = Path(base_dir)
        elif self.config_path is not None:
            self.base_dir = self.config_path.resolve().parent
        else:
            self.base_dir = Path.cwd()

        self._config = copy.deepcopy(self.DEFAULTS)
        self.load()

        env_port = os.environ.get("PORT")
        if env_port:
            self.set("port", value=env_port)

    def load(self) -> None:
        if self.config_path is None or not self.config_path.exists():
            return
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                saved_config = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"failed to load {self.config_path}: {e}; using defaults")
            return
        if not isinstance(saved_config, dict):
            logger.warning(f"{self.config_path} is not a JSON object; using defaults")
            return
        self._deep_update(self._config, saved_config)

    def get(self, *keys, default=None):
        """``get("disable", "info")``; ``default`` when any key is missing."""
        value = self._config
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, *keys, value) -> None:
        if len(keys) < 1:
            return

        config = self._config
        for key in keys[:-1]:
            if key not in config:
                config[key] = {}
            config = config[key]
        config[keys[-1]] = value

    def _deep_update(self, base: dict, update: dict) -> None:
        for key, value in update.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_update(base[key], value)
            else:
                base[key] = value

    def _resolve(self, raw) -> Path:
        path = Path(raw)
        if not path.is_absolute():
            path = self.base_dir / path
        return path

    @property
    def files_folder_path(self) -> Path:
        return self._resolve(self.get("files_folder_path"))

    @property
    def public_path(self) -> Path:
        return self._resolve(self.get("public_path"))

    @property
    def log_dir(self):
        raw = self.get("log_dir")
        return self._resolve(raw) if raw else None

    @property
    def port(self):
        return normalize_port(self.get("port"))

    @property
    def allow_deletion(self) -> bool:
        return self.get("allow_deletion") is True

    def is_disabled(self, feature: str) -> bool:
        return bool(self.get("disable", feature, default=False))
