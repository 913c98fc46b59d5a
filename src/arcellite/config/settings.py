import os
from typing import Any, Dict, List

import yaml


def _env_list(name: str, default: str) -> List[str]:
    value = os.getenv(name, default)
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    # Removable storage
    mount_root = os.getenv("ARCELLITE_MOUNT_ROOT", "/media/arcellite")
    allowed_roots = _env_list("ARCELLITE_ALLOWED_ROOTS", "/media/,/run/media/,/mnt/")

    # Service user that should own mounted filesystems
    service_user = os.getenv("ARCELLITE_SERVICE_USER", "arcellite")
    service_uid = int(os.getenv("ARCELLITE_SERVICE_UID", "1000"))
    service_gid = int(os.getenv("ARCELLITE_SERVICE_GID", "1000"))

    # Hot-plug polling (seconds)
    poll_interval = float(os.getenv("ARCELLITE_POLL_INTERVAL", "3"))
    keepalive_interval = float(os.getenv("ARCELLITE_KEEPALIVE_INTERVAL", "30"))

    # Subprocess timeouts (seconds)
    privileged_timeout = float(os.getenv("ARCELLITE_PRIVILEGED_TIMEOUT", "60"))
    lsblk_timeout = float(os.getenv("ARCELLITE_LSBLK_TIMEOUT", "5"))
    stat_timeout = float(os.getenv("ARCELLITE_STAT_TIMEOUT", "5"))
    list_timeout = float(os.getenv("ARCELLITE_LIST_TIMEOUT", "10"))
    lock_timeout = float(os.getenv("ARCELLITE_LOCK_TIMEOUT", "120"))

    cors_origins = _env_list("ARCELLITE_CORS_ORIGINS", "http://localhost:3000")

    def apply_overrides(self, overrides: Dict[str, Any]) -> List[str]:
        """
        Set known attributes from a mapping, converted to the type of the
        current value. Returns the keys that were applied.
        """
        applied = []
        for key, value in overrides.items():
            if key.startswith("_") or not hasattr(self, key) or callable(getattr(self, key)):
                continue
            setattr(self, key, _coerce(key, getattr(self, key), value))
            applied.append(key)
        return applied


def _coerce(key: str, current: Any, value: Any) -> Any:
    """Converts a config file value to the type of the setting it replaces."""
    if isinstance(current, list):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
            return [item.strip() for item in value if item.strip()]
        raise ValueError(f"{key} must be a list of strings or a comma-separated string")

    if isinstance(value, (dict, list, tuple, bool)) or value is None:
        raise ValueError(f"{key} must be a {type(current).__name__}, got {value!r}")

    try:
        return type(current)(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be a {type(current).__name__}, got {value!r}")


def load_config_file(path: str) -> List[str]:
    """
    Loads a YAML file and applies the `storage` section (or the whole
    document if there is no such section) on top of the global config.
    """
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")

    section = data.get("storage", data)
    return config.apply_overrides(section)


config = Config()
