from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping
import logging
import os
import sys


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class Settings:
    db_path: Path
    logs_dir: Path
    identity_url: str = ""
    identity_api_key: str = ""
    low_stock_threshold: int = 10
    db_timeout: float = 30.0
    log_level: int = logging.INFO


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "Curuza") -> AppPaths:
    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    db = base / "curuza.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs)


def _int_var(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer. Received: {raw!r}") from exc
    if value < 0:
        raise ValueError(f"{name} must be >= 0. Received: {value}")
    return value


def _float_var(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number. Received: {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be > 0. Received: {value}")
    return value


def _log_level(env: Mapping[str, str]) -> int:
    raw = env.get("CURUZA_LOG_LEVEL", "").strip().upper()
    if not raw:
        return logging.INFO
    level = logging.getLevelName(raw)
    if not isinstance(level, int):
        raise ValueError(f"CURUZA_LOG_LEVEL is not a logging level. Received: {raw!r}")
    return level


def load_settings(env: Mapping[str, str] | None = None, paths: AppPaths | None = None) -> Settings:
    env = os.environ if env is None else env

    db_raw = env.get("CURUZA_DB_PATH", "").strip()
    if db_raw:
        db_path = Path(db_raw)
        logs_dir = db_path.parent / "logs"
    else:
        paths = paths or get_app_paths()
        db_path = paths.db_path
        logs_dir = paths.logs_dir

    return Settings(
        db_path=db_path,
        logs_dir=logs_dir,
        identity_url=env.get("CURUZA_IDENTITY_URL", "").strip().rstrip("/"),
        identity_api_key=env.get("CURUZA_IDENTITY_API_KEY", "").strip(),
        low_stock_threshold=_int_var(env, "CURUZA_LOW_STOCK_THRESHOLD", 10),
        db_timeout=_float_var(env, "CURUZA_DB_TIMEOUT", 30.0),
        log_level=_log_level(env),
    )
