"""Account storage: a protocol plus SQLite and in-memory backends."""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator, Optional, Protocol, Sequence

from ledgercheck_schemas import (
    Account,
    CorrectionLogEntry,
    CorrectionResult,
    UploadSession,
    UploadStatus,
)

from .errors import AccountNotFound, DuplicateAccountError
from .ingestion import sort_accounts
from .workspace import accounts_db_path

logger = logging.getLogger(__name__)

Transition = Callable[[Account], Account]
CorrectionTransition = Callable[[Account], CorrectionResult]

_SCHEMA = """
CREATE TABLE IF NOT EXISTS accounts (
    id INTEGER PRIMARY KEY,
    account_number TEXT NOT NULL UNIQUE,
    account_json TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS corrections (
    change_id TEXT PRIMARY KEY,
    account_id INTEGER NOT NULL,
    correction_json TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS uploads (
    upload_id TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    upload_json TEXT NOT NULL,
    created_at TEXT NOT NULL
);
"""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AccountStore(Protocol):
    """Persistence contract the workflow and ingestion code rely on.

    ``commit_batch`` must be all-or-nothing and ``apply_transition`` must be
    an atomic read-modify-write for the given account id; an exception
    raised by the transition leaves the stored account untouched.
    ``apply_correction`` stores the corrected account and its log entry in
    the same atomic step, so either both are written or neither is.
    """

    def load(self) -> list[Account]: ...

    def get(self, account_id: int) -> Account: ...

    def commit_batch(
        self, accounts: Sequence[Account], clear_existing: bool = False
    ) -> None: ...

    def apply_transition(self, account_id: int, transition: Transition) -> Account: ...

    def apply_correction(
        self, account_id: int, transition: CorrectionTransition
    ) -> CorrectionResult: ...

    def list_corrections(self) -> list[CorrectionLogEntry]: ...

    def record_upload(self, session: UploadSession) -> None: ...

    def list_uploads(self) -> list[UploadSession]: ...


def _check_batch(existing: Sequence[Account], accounts: Sequence[Account]) -> None:
    taken_numbers = {acc.account_number for acc in existing}
    taken_ids = {acc.id for acc in existing}
    for account in accounts:
        if account.account_number in taken_numbers:
            raise DuplicateAccountError(
                f"G/L Account '{account.account_number}' already exists in the store"
            )
        if account.id in taken_ids:
            raise DuplicateAccountError(
                f"Account id {account.id} ({account.account_number}) is already taken"
            )
        taken_numbers.add(account.account_number)
        taken_ids.add(account.id)


def _check_transition(account_id: int, before: Account, after: Account) -> None:
    if after.id != account_id or after.account_number != before.account_number:
        raise ValueError(
            f"Transition for account {account_id} changed its identity"
        )


class SqliteAccountStore:
    """SQLite-backed store, one database per review session."""

    def __init__(self, session_slug: str, data_root: Optional[Path] = None) -> None:
        self.session_slug = session_slug
        self.db_path = accounts_db_path(session_slug, data_root)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        conn = self._connect()
        try:
            conn.executescript(_SCHEMA)
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        # IMMEDIATE takes the write lock up front so concurrent writers queue.
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def load(self) -> list[Account]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT account_json FROM accounts ORDER BY id ASC"
            ).fetchall()
        finally:
            conn.close()
        return sort_accounts(
            Account.model_validate_json(row["account_json"]) for row in rows
        )

    def get(self, account_id: int) -> Account:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT account_json FROM accounts WHERE id = ?", (account_id,)
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            raise AccountNotFound(account_id)
        return Account.model_validate_json(row["account_json"])

    def commit_batch(
        self, accounts: Sequence[Account], clear_existing: bool = False
    ) -> None:
        now = _utc_now().isoformat()
        with self._transaction() as conn:
            if clear_existing:
                conn.execute("DELETE FROM accounts")
                existing: list[Account] = []
            else:
                existing = [
                    Account.model_validate_json(row["account_json"])
                    for row in conn.execute("SELECT account_json FROM accounts")
                ]
            _check_batch(existing, accounts)
            conn.executemany(
                """
                INSERT INTO accounts (id, account_number, account_json, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                [
                    (acc.id, acc.account_number, acc.model_dump_json(), now)
                    for acc in accounts
                ],
            )
        logger.info(
            "Committed %d account(s) to session %s (clear_existing=%s)",
            len(accounts),
            self.session_slug,
            clear_existing,
        )

    def _fetch_for_update(self, conn: sqlite3.Connection, account_id: int) -> Account:
        row = conn.execute(
            "SELECT account_json FROM accounts WHERE id = ?", (account_id,)
        ).fetchone()
        if row is None:
            raise AccountNotFound(account_id)
        return Account.model_validate_json(row["account_json"])

    def _update_account(self, conn: sqlite3.Connection, account: Account) -> None:
        conn.execute(
            "UPDATE accounts SET account_json = ?, updated_at = ? WHERE id = ?",
            (account.model_dump_json(), _utc_now().isoformat(), account.id),
        )

    def _insert_correction(
        self, conn: sqlite3.Connection, entry: CorrectionLogEntry
    ) -> None:
        conn.execute(
            """
            INSERT INTO corrections (change_id, account_id, correction_json, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (
                entry.change_id,
                entry.account_id,
                entry.model_dump_json(),
                entry.timestamp.isoformat(),
            ),
        )

    def apply_transition(self, account_id: int, transition: Transition) -> Account:
        with self._transaction() as conn:
            current = self._fetch_for_update(conn, account_id)
            updated = transition(current)
            _check_transition(account_id, current, updated)
            self._update_account(conn, updated)
        return updated

    def apply_correction(
        self, account_id: int, transition: CorrectionTransition
    ) -> CorrectionResult:
        with self._transaction() as conn:
            current = self._fetch_for_update(conn, account_id)
            result = transition(current)
            _check_transition(account_id, current, result.account)
            self._update_account(conn, result.account)
            self._insert_correction(conn, result.correction)
        return result

    def list_corrections(self) -> list[CorrectionLogEntry]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT correction_json FROM corrections ORDER BY rowid DESC"
            ).fetchall()
        finally:
            conn.close()
        return [
            CorrectionLogEntry.model_validate_json(row["correction_json"])
            for row in rows
        ]

    def record_upload(self, session: UploadSession) -> None:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT upload_id, upload_json FROM uploads WHERE status = ?",
                (UploadStatus.ACTIVE.value,),
            ).fetchall()
            for row in rows:
                archived = UploadSession.model_validate_json(
                    row["upload_json"]
                ).model_copy(update={"status": UploadStatus.ARCHIVED})
                conn.execute(
                    "UPDATE uploads SET status = ?, upload_json = ? WHERE upload_id = ?",
                    (
                        UploadStatus.ARCHIVED.value,
                        archived.model_dump_json(),
                        row["upload_id"],
                    ),
                )
            conn.execute(
                """
                INSERT INTO uploads (upload_id, status, upload_json, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    session.upload_id,
                    session.status.value,
                    session.model_dump_json(),
                    session.timestamp.isoformat(),
                ),
            )

    def list_uploads(self) -> list[UploadSession]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT upload_json FROM uploads ORDER BY rowid ASC"
            ).fetchall()
        finally:
            conn.close()
        return [UploadSession.model_validate_json(row["upload_json"]) for row in rows]


class InMemoryAccountStore:
    """Process-local store guarded by a single lock."""

    def __init__(self, accounts: Sequence[Account] = ()) -> None:
        self._lock = threading.Lock()
        self._accounts: dict[int, Account] = {}
        self._corrections: list[CorrectionLogEntry] = []
        self._uploads: list[UploadSession] = []
        if accounts:
            self.commit_batch(accounts)

    def load(self) -> list[Account]:
        with self._lock:
            snapshot = [acc.model_copy(deep=True) for acc in self._accounts.values()]
        return sort_accounts(snapshot)

    def get(self, account_id: int) -> Account:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise AccountNotFound(account_id)
            return account.model_copy(deep=True)

    def commit_batch(
        self, accounts: Sequence[Account], clear_existing: bool = False
    ) -> None:
        with self._lock:
            existing = [] if clear_existing else list(self._accounts.values())
            _check_batch(existing, accounts)
            merged = {acc.id: acc for acc in existing}
            merged.update((acc.id, acc.model_copy(deep=True)) for acc in accounts)
            self._accounts = merged

    def apply_transition(self, account_id: int, transition: Transition) -> Account:
        with self._lock:
            current = self._accounts.get(account_id)
            if current is None:
                raise AccountNotFound(account_id)
            updated = transition(current.model_copy(deep=True))
            _check_transition(account_id, current, updated)
            self._accounts[account_id] = updated
            return updated.model_copy(deep=True)

    def _record_correction(self, entry: CorrectionLogEntry) -> None:
        self._corrections.append(entry)

    def apply_correction(
        self, account_id: int, transition: CorrectionTransition
    ) -> CorrectionResult:
        with self._lock:
            current = self._accounts.get(account_id)
            if current is None:
                raise AccountNotFound(account_id)
            result = transition(current.model_copy(deep=True))
            _check_transition(account_id, current, result.account)
            # Log first: a failed append must leave the account as it was.
            self._record_correction(result.correction)
            self._accounts[account_id] = result.account
            return result.model_copy(deep=True)

    def list_corrections(self) -> list[CorrectionLogEntry]:
        with self._lock:
            return list(reversed(self._corrections))

    def record_upload(self, session: UploadSession) -> None:
        with self._lock:
            self._uploads = [
                item.model_copy(update={"status": UploadStatus.ARCHIVED})
                for item in self._uploads
            ]
            self._uploads.append(session)

    def list_uploads(self) -> list[UploadSession]:
        with self._lock:
            return list(self._uploads)


__all__ = [
    "AccountStore",
    "CorrectionTransition",
    "InMemoryAccountStore",
    "SqliteAccountStore",
    "Transition",
]
