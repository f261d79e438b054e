"""Core engines for LedgerCheck GL account review."""

from .classification import classify_account, classify_many
from .config import Settings, load_settings
from .errors import (
    AccountNotFound,
    AlreadyFinalized,
    DuplicateAccountError,
    LedgerCheckError,
    MissingReason,
    ParseError,
    Unauthorized,
    ValidationError,
)
from .ingestion import (
    UploadReconciler,
    commit_upload,
    reconcile_uploads,
    sort_accounts,
)
from .normalization import normalize_amount
from .reference import ReferenceTables, load_reference_tables
from .reporting import (
    build_balance_sheet_summary,
    build_report_bundle,
    collect_number_issues,
    compute_threshold_metrics,
    write_report_json,
)
from .scheduler import Clock, ReportScheduler, SystemClock, calculate_next_run
from .scoring import (
    calculate_priority_score,
    calculate_variance_insight,
    determine_threshold_level,
    score_account,
)
from .sheets import UploadedFile, read_sheets
from .store import AccountStore, InMemoryAccountStore, SqliteAccountStore
from .workflow import (
    approve,
    approve_account,
    correct,
    correct_account,
    edit,
    edit_account,
    reject,
    reject_account,
)
from .workspace import accounts_db_path, reports_path, session_root

__all__ = [
    "AccountNotFound",
    "AccountStore",
    "AlreadyFinalized",
    "Clock",
    "DuplicateAccountError",
    "InMemoryAccountStore",
    "LedgerCheckError",
    "MissingReason",
    "ParseError",
    "ReferenceTables",
    "ReportScheduler",
    "Settings",
    "SqliteAccountStore",
    "SystemClock",
    "Unauthorized",
    "UploadReconciler",
    "UploadedFile",
    "ValidationError",
    "accounts_db_path",
    "approve",
    "approve_account",
    "build_balance_sheet_summary",
    "build_report_bundle",
    "calculate_next_run",
    "calculate_priority_score",
    "calculate_variance_insight",
    "classify_account",
    "classify_many",
    "collect_number_issues",
    "commit_upload",
    "compute_threshold_metrics",
    "correct",
    "correct_account",
    "determine_threshold_level",
    "edit",
    "edit_account",
    "load_reference_tables",
    "load_settings",
    "normalize_amount",
    "read_sheets",
    "reconcile_uploads",
    "reject",
    "reject_account",
    "reports_path",
    "score_account",
    "session_root",
    "sort_accounts",
    "write_report_json",
]
