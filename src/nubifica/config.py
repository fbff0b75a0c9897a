from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import sys


DEFAULT_IDENTITY_BASE_URL = "https://identitytoolkit.googleapis.com/v1"


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path
    backups_dir: Path


@dataclass(frozen=True)
class IdentitySettings:
    api_key: str
    base_url: str = DEFAULT_IDENTITY_BASE_URL
    timeout_seconds: float = 10.0


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "Nubifica") -> AppPaths:
    override = os.environ.get("NUBIFICA_HOME")
    if override:
        base = Path(override)
    elif sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    backups = base / "backups"
    db = base / "nubifica.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs, backups_dir=backups)


def load_identity_settings() -> IdentitySettings | None:
    """Identity provider settings from the environment, or None when unset."""
    api_key = os.environ.get("NUBIFICA_IDENTITY_API_KEY", "").strip()
    if not api_key:
        return None
    base_url = os.environ.get("NUBIFICA_IDENTITY_BASE_URL", DEFAULT_IDENTITY_BASE_URL).rstrip("/")
    return IdentitySettings(api_key=api_key, base_url=base_url)
