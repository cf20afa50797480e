# Seedkeeper - Runtime configuration
#
# Settings come from environment variables (optionally a .env file next to
# the working directory). Everything has a sensible desktop default so the
# app runs with no configuration at all.

import os
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

APP_NAME = "seedkeeper"

DEFAULT_KDF_ITERATIONS = 600_000
DEFAULT_INACTIVITY_MINUTES = 15
DEFAULT_LOGOUT_MINUTES = 1440
DEFAULT_SYNC_API_URL = "http://127.0.0.1:7777"
DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 8000


def default_data_dir() -> Path:
    """Per-user application data directory for the current platform."""
    if sys.platform == "win32":
        base = os.getenv("LOCALAPPDATA") or str(Path.home() / "AppData" / "Local")
        return Path(base) / APP_NAME
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_NAME
    base = os.getenv("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(base) / APP_NAME


@dataclass(frozen=True)
class VaultSettings:
    """Resolved configuration for one running vault instance."""

    data_dir: Path
    audit_log_dir: Path
    kdf_iterations: int = DEFAULT_KDF_ITERATIONS
    inactivity_minutes: int = DEFAULT_INACTIVITY_MINUTES
    default_logout_minutes: int = DEFAULT_LOGOUT_MINUTES
    sync_api_url: str = DEFAULT_SYNC_API_URL
    api_host: str = DEFAULT_API_HOST
    api_port: int = DEFAULT_API_PORT

    @property
    def store_path(self) -> Path:
        return self.data_dir / "seedkeeper.db"

    @property
    def device_key_path(self) -> Path:
        return self.data_dir / "device.key"

    def with_data_dir(self, data_dir: Path) -> "VaultSettings":
        """Copy of these settings rooted at another data directory."""
        data_dir = Path(data_dir)
        return replace(self, data_dir=data_dir, audit_log_dir=data_dir / "audit_logs")


def _int_setting(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def load_settings(
    env: Optional[Mapping[str, str]] = None,
    dotenv: bool = True,
) -> VaultSettings:
    """Build VaultSettings from the environment.

    Args:
        env: Mapping to read instead of os.environ (for tests).
        dotenv: Load a .env file into os.environ first (ignored when env is given).
    """
    if env is None:
        if dotenv:
            load_dotenv()
        env = os.environ

    data_dir = Path(env.get("SEEDKEEPER_DATA_DIR") or default_data_dir())
    audit_dir = Path(env.get("SEEDKEEPER_AUDIT_LOG_DIR") or data_dir / "audit_logs")

    iterations = _int_setting(env, "SEEDKEEPER_KDF_ITERATIONS", DEFAULT_KDF_ITERATIONS)
    if iterations < 1:
        raise ValueError("SEEDKEEPER_KDF_ITERATIONS must be positive")

    return VaultSettings(
        data_dir=data_dir,
        audit_log_dir=audit_dir,
        kdf_iterations=iterations,
        inactivity_minutes=_int_setting(
            env, "SEEDKEEPER_INACTIVITY_MINUTES", DEFAULT_INACTIVITY_MINUTES
        ),
        default_logout_minutes=_int_setting(
            env, "SEEDKEEPER_DEFAULT_LOGOUT_MINUTES", DEFAULT_LOGOUT_MINUTES
        ),
        sync_api_url=env.get("SEEDKEEPER_SYNC_API_URL") or DEFAULT_SYNC_API_URL,
        api_host=env.get("SEEDKEEPER_API_HOST") or DEFAULT_API_HOST,
        api_port=_int_setting(env, "SEEDKEEPER_API_PORT", DEFAULT_API_PORT),
    )
