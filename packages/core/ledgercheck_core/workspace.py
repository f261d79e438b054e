"""Helpers for managing review session workspace paths."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .config import DEFAULT_DATA_ROOT


def session_root(session_slug: str, data_root: Optional[Path] = None) -> Path:
    root = (data_root or DEFAULT_DATA_ROOT) / session_slug
    root.mkdir(parents=True, exist_ok=True)
    return root


def reports_path(session_slug: str, data_root: Optional[Path] = None) -> Path:
    path = session_root(session_slug, data_root) / "reports"
    path.mkdir(parents=True, exist_ok=True)
    return path


def accounts_db_path(session_slug: str, data_root: Optional[Path] = None) -> Path:
    return session_root(session_slug, data_root) / "accounts.db"
