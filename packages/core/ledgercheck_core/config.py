"""Runtime settings loaded from the environment."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from ledgercheck_schemas import FrozenModel
from pydantic import Field

DEFAULT_DATA_ROOT = Path("data/sessions")
DEFAULT_CURRENCY = "INR"
DEFAULT_VARIANCE_THRESHOLD = 0.1


class Settings(FrozenModel):
    """Values every core service reads at runtime."""

    data_root: Path = DEFAULT_DATA_ROOT
    default_currency: str = DEFAULT_CURRENCY
    variance_threshold: float = Field(default=DEFAULT_VARIANCE_THRESHOLD, ge=0.0)
    reference_path: Optional[Path] = None
    header_scan_rows: int = Field(default=10, ge=1)
    scheduler_poll_seconds: float = Field(default=60.0, gt=0.0)


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """Build settings from ``LEDGERCHECK_*`` variables.

    A ``.env`` file (``env_file`` or one in the working directory) is read
    first; variables already set in the environment take precedence.
    """
    dotenv_path = env_file or Path.cwd() / ".env"
    if dotenv_path.exists():
        load_dotenv(dotenv_path=dotenv_path, override=False)
    reference = os.getenv("LEDGERCHECK_REFERENCE_PATH")
    return Settings(
        data_root=Path(os.getenv("LEDGERCHECK_DATA_ROOT", str(DEFAULT_DATA_ROOT))),
        default_currency=os.getenv("LEDGERCHECK_DEFAULT_CURRENCY", DEFAULT_CURRENCY),
        variance_threshold=float(
            os.getenv(
                "LEDGERCHECK_VARIANCE_THRESHOLD", str(DEFAULT_VARIANCE_THRESHOLD)
            )
        ),
        reference_path=Path(reference) if reference else None,
        header_scan_rows=int(os.getenv("LEDGERCHECK_HEADER_SCAN_ROWS", "10")),
        scheduler_poll_seconds=float(
            os.getenv("LEDGERCHECK_SCHEDULER_POLL_SECONDS", "60")
        ),
    )


__all__ = [
    "DEFAULT_CURRENCY",
    "DEFAULT_DATA_ROOT",
    "DEFAULT_VARIANCE_THRESHOLD",
    "Settings",
    "load_settings",
]
