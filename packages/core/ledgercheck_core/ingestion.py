"""Reconcile uploaded GL extracts into proposed account records."""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, ClassVar, Iterable, Mapping, Optional, Sequence

from ledgercheck_schemas import (
    Account,
    AuditEntry,
    Classification,
    FileSummary,
    FlagStatus,
    FrozenModel,
    IssueKind,
    NormalizationResult,
    ReviewStatus,
    Stage,
    UploadBatch,
    UploadIssue,
    UploadSession,
)

from .classification import classify_account
from .config import Settings
from .errors import HeaderDetectionError, ParseError
from .normalization import normalize_amount
from .reference import ReferenceTables
from .scoring import (
    calculate_priority_score,
    calculate_variance_insight,
    determine_threshold_level,
    flag_for_percent,
    parse_manual_severity,
)
from .sheets import Sheet, UploadedFile, cell_text, read_sheets

if TYPE_CHECKING:
    from .store import AccountStore

logger = logging.getLogger(__name__)

HEADER_ALIASES: Mapping[str, tuple[str, ...]] = {
    "account_number": ("G/L Account Number", "GL Account Number", "GL Acct No", "GL #"),
    "account_name": ("G/L Acct", "GL Account Name", "GL Account", "Account Name"),
    "responsible_department": (
        "Responsible Department",
        "Department",
        "Dept",
        "Cost Center",
    ),
    "main_head": ("Main Head", "Primary Head"),
    "sub_head": ("Sub head", "Sub Head", "Secondary Head"),
    "bs_pl": ("BS/PL", "Statement Type"),
    "status_category": ("Status", "Category"),
    "spoc": ("Departement SPOC", "SPOC", "Contact", "Department SPOC"),
    "reviewer": ("Departement Reviewer", "Reviewer"),
    "department_reviewer": ("Department Reviewer",),
    "review_checkpoint": ("Review Check Point at ABEX", "ABEX Checkpoint"),
    "analysis_required": ("Analysis Required",),
    "type_of_report": ("Type of Report",),
    "flag_status": ("Flag", "Flag (Green / Red)", "Flag (Green/Red)"),
    "percent_variance": ("% Variance", "Percent Variance"),
    "recon_status": ("Recon / Non Recon", "Reconciliation Status"),
    "confirmation_source": ("Confirmation (Internal / External)", "Confirmation Source"),
    "working_needed": ("Working Needed",),
    "query_type": ("Query type / Action points", "Query Type", "Action Points"),
    "severity": ("C/M/L", "Severity"),
    "balance": ("Balance", "Ending Balance", "Amount", "Closing Balance"),
    "currency": ("Currency", "Curr", "Ccy"),
    "balance_date": ("Balance Date", "As Of Date", "Posting Date", "Date"),
}

MANDATORY_FIELDS: tuple[str, ...] = (
    "account_number",
    "account_name",
    "responsible_department",
)
MIN_ALIAS_MATCHES = 3

_DATE_FORMATS: Sequence[str] = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d/%m/%y",
    "%d-%b-%Y",
    "%d %b %Y",
)
_PERCENT_NOISE_RE = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER_RE = re.compile(r"^-?(?:\d+(?:\.\d*)?|\.\d+)")


class UploadRow(FrozenModel):
    """One data row keyed by internal field name; blanks are empty strings."""

    row_number: int
    account_number: str = ""
    account_name: str = ""
    responsible_department: str = ""
    main_head: str = ""
    sub_head: str = ""
    bs_pl: str = ""
    status_category: str = ""
    spoc: str = ""
    reviewer: str = ""
    department_reviewer: str = ""
    review_checkpoint: str = ""
    analysis_required: str = ""
    type_of_report: str = ""
    flag_status: str = ""
    percent_variance: str = ""
    recon_status: str = ""
    confirmation_source: str = ""
    working_needed: str = ""
    query_type: str = ""
    severity: str = ""
    balance: str = ""
    currency: str = ""
    balance_date: str = ""

    def is_blank(self) -> bool:
        values = self.model_dump(exclude={"row_number"})
        return all(value == "" for value in values.values())

    def missing_mandatory(self) -> list[str]:
        return [name for name in MANDATORY_FIELDS if not getattr(self, name).strip()]


@dataclass(slots=True)
class SheetLayout:
    """Chosen sheet plus the position and labels of its header row."""

    sheet: Sheet
    header_index: int
    headers: list[str]
    alias_matches: int

    @property
    def data_rows(self) -> list[list[object]]:
        return self.sheet.rows[self.header_index + 1 :]

    def row_number(self, data_index: int) -> int:
        return self.header_index + data_index + 2


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _non_empty(row: Sequence[object]) -> int:
    return sum(1 for cell in row if cell_text(cell) != "")


def find_header_row(sheet: Sheet, scan_rows: int = 10) -> Optional[int]:
    """Index of the first of the top rows with more than two filled cells."""
    for index, row in enumerate(sheet.rows[:scan_rows]):
        if _non_empty(row) > 2:
            return index
    return None


def count_alias_matches(
    headers: Iterable[str],
    aliases: Mapping[str, tuple[str, ...]] = HEADER_ALIASES,
) -> int:
    lowered = {header.strip().lower() for header in headers}
    return sum(
        1
        for names in aliases.values()
        for alias in names
        if alias.lower() in lowered
    )


def select_layout(
    sheets: Sequence[Sheet],
    scan_rows: int = 10,
    aliases: Mapping[str, tuple[str, ...]] = HEADER_ALIASES,
) -> Optional[SheetLayout]:
    """Pick the sheet whose header row matches the most aliases; first wins ties."""
    best: Optional[SheetLayout] = None
    for sheet in sheets:
        header_index = find_header_row(sheet, scan_rows)
        if header_index is None:
            continue
        headers = [cell_text(cell) for cell in sheet.rows[header_index]]
        matches = count_alias_matches(headers, aliases)
        if best is None or matches > best.alias_matches:
            best = SheetLayout(
                sheet=sheet,
                header_index=header_index,
                headers=headers,
                alias_matches=matches,
            )
    return best


def map_headers(
    headers: Sequence[str],
    aliases: Mapping[str, tuple[str, ...]] = HEADER_ALIASES,
) -> dict[int, str]:
    """Column index to internal field, using each field's first matching alias."""
    lowered = [header.strip().lower() for header in headers]
    columns: dict[int, str] = {}
    for internal, names in aliases.items():
        for alias in names:
            target = alias.lower()
            if target in lowered:
                columns[lowered.index(target)] = internal
                break
    return columns


def detect_layout(
    file_name: str,
    sheets: Sequence[Sheet],
    scan_rows: int = 10,
    aliases: Mapping[str, tuple[str, ...]] = HEADER_ALIASES,
    mandatory: Sequence[str] = MANDATORY_FIELDS,
) -> tuple[SheetLayout, dict[int, str]]:
    """Choose the sheet to import and map its columns, or raise.

    Raises ``HeaderDetectionError`` when no sheet has at least
    ``MIN_ALIAS_MATCHES`` recognised headers or a mandatory column is absent.
    """
    layout = select_layout(sheets, scan_rows, aliases)
    if layout is None or layout.alias_matches < MIN_ALIAS_MATCHES:
        raise HeaderDetectionError(
            f"Could not find a valid sheet with required headers in '{file_name}'.",
            layout,
        )
    columns = map_headers(layout.headers, aliases)
    missing = [name for name in mandatory if name not in columns.values()]
    if missing:
        raise HeaderDetectionError(
            f"Missing required headers in '{file_name}': {', '.join(missing)}. "
            f"Found headers: [{', '.join(layout.headers)}]",
            layout,
        )
    return layout, columns


def _header_mapping(layout: SheetLayout, columns: Mapping[int, str]) -> dict[str, str]:
    return {layout.headers[index]: name for index, name in columns.items()}


def build_row(
    cells: Sequence[object], columns: Mapping[int, str], row_number: int
) -> UploadRow:
    values = {
        internal: cell_text(cells[index]) if index < len(cells) else ""
        for index, internal in columns.items()
    }
    return UploadRow(row_number=row_number, **values)


def parse_percent(value: str) -> Optional[float]:
    match = _LEADING_NUMBER_RE.match(_PERCENT_NOISE_RE.sub("", value or ""))
    return float(match.group(0)) if match else None


def parse_flag(value: str) -> Optional[FlagStatus]:
    lowered = (value or "").lower()
    if "red" in lowered:
        return FlagStatus.RED
    if "green" in lowered:
        return FlagStatus.GREEN
    return None


def parse_balance_date(value: str) -> Optional[date]:
    candidate = value.strip()
    if not candidate:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(candidate, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(candidate).date()
    except ValueError as exc:
        raise ValueError(f"Unsupported date format: {value}") from exc


def build_account(
    row: UploadRow,
    *,
    account_id: int,
    classification: Classification,
    amount: NormalizationResult,
    previous: Optional[Account],
    balance_date: Optional[date],
    variance_threshold: float,
    now: datetime,
) -> Account:
    """Merge a validated row with defaults and its prior-version account."""
    prior_balance = previous.normalized_balance if previous else None
    insight = calculate_variance_insight(
        amount.normalized, prior_balance, variance_threshold
    )
    provided_percent = parse_percent(row.percent_variance)
    percent = provided_percent if provided_percent is not None else insight.percent_variance
    flag = parse_flag(row.flag_status)
    if flag is None:
        flag = (
            flag_for_percent(provided_percent, variance_threshold)
            if provided_percent is not None
            else insight.flag_status
        )

    exceeds = percent is not None and abs(percent) > variance_threshold * 100
    analysis = row.analysis_required or ("Yes" if exceeds else "No")
    needs_analysis = analysis == "Yes"

    recon = row.recon_status or (previous.recon_status if previous else "Recon")
    confirmation = row.confirmation_source or (
        previous.confirmation_source if previous else "Internal"
    )
    type_of_report = row.type_of_report or (previous.type_of_report if previous else "")
    if row.working_needed:
        working_needed = row.working_needed
    elif needs_analysis:
        working_needed = "Review variance details"
    else:
        working_needed = previous.working_needed if previous else ""
    query_type = (
        row.query_type
        or (previous.query_type if previous else "")
        or ("Variance Review" if needs_analysis else "")
    )
    checkpoint = (
        row.review_checkpoint
        or (previous.review_checkpoint if previous else "")
        or ("Pending" if needs_analysis else "Complete")
    )
    department_reviewer = (
        row.department_reviewer
        or row.reviewer
        or (previous.department_reviewer or previous.reviewer if previous else "")
    )
    reviewer = department_reviewer or row.reviewer or "N/A"

    level = parse_manual_severity(row.severity) or determine_threshold_level(
        amount.normalized, 0, ReviewStatus.PENDING
    )
    priority = calculate_priority_score(
        amount.normalized,
        0,
        classification.source,
        classification.confidence,
        level,
    )

    return Account(
        id=account_id,
        account_number=row.account_number.strip(),
        account_name=row.account_name or "N/A",
        department_name=classification.department_name,
        department_id=classification.department_id,
        logic_id=classification.logic_id,
        input_department=row.responsible_department,
        classification_confidence=classification.confidence,
        classification_source=classification.source,
        evidence=list(classification.evidence),
        classification_notes=classification.notes,
        matched_keywords=list(classification.keywords_matched),
        matched_patterns=list(classification.patterns_matched),
        main_head=row.main_head or "N/A",
        sub_head=row.sub_head or "N/A",
        bs_pl=row.bs_pl or "BS",
        status_category=row.status_category or "Assets",
        spoc=row.spoc or "N/A",
        reviewer=reviewer,
        department_reviewer=department_reviewer or reviewer,
        balance_raw=row.balance or None,
        normalized_balance=amount.normalized,
        currency=amount.currency,
        balance_issues=list(amount.issues),
        balance_date=balance_date,
        threshold_level=level,
        priority_score=priority,
        frequency_bucket=level,
        percent_variance=percent,
        previous_balance=prior_balance,
        flag_status=flag,
        recon_status=recon,
        confirmation_source=confirmation,
        type_of_report=type_of_report,
        analysis_required=analysis,
        working_needed=working_needed,
        query_type=query_type,
        review_checkpoint=checkpoint,
        review_status=ReviewStatus.PENDING,
        current_stage=Stage.CHECKER1,
        mistake_count=0,
        audit_log=[
            AuditEntry(
                timestamp=now,
                actor="System",
                role=Stage.CHECKER1,
                action="Data Ingestion",
                from_stage="N/A",
                to_stage=Stage.CHECKER1.value,
            )
        ],
    )


def sort_accounts(accounts: Iterable[Account]) -> list[Account]:
    """Order by name, then department, then account number, ignoring case."""
    return sorted(
        accounts,
        key=lambda account: (
            account.account_name.casefold(),
            account.department_name.casefold(),
            account.account_number.casefold(),
        ),
    )


@dataclass(slots=True)
class _Claim:
    file_name: str
    row: int


@dataclass(slots=True)
class _BatchState:
    """Bookkeeping shared by the files of one batch."""

    existing_numbers: set[str]
    previous_by_number: dict[str, Account]
    claims: dict[str, _Claim] = field(default_factory=dict)
    next_id: int = 1

    def allocate_id(self) -> int:
        allocated = self.next_id
        self.next_id += 1
        return allocated


@dataclass(slots=True)
class UploadReconciler:
    """Turn uploaded extracts into a proposed batch of new accounts.

    The reconciler never touches a store: callers hand it the current
    snapshot and commit the returned ``UploadBatch`` themselves.
    """

    settings: Settings = field(default_factory=Settings)
    tables: Optional[ReferenceTables] = None

    header_aliases: ClassVar[Mapping[str, tuple[str, ...]]] = HEADER_ALIASES
    mandatory_fields: ClassVar[tuple[str, ...]] = MANDATORY_FIELDS

    def reconcile(
        self,
        uploads: Sequence[UploadedFile],
        existing: Sequence[Account] = (),
        clear_existing: bool = True,
        now: Optional[datetime] = None,
    ) -> UploadBatch:
        timestamp = now or _utc_now()
        state = _BatchState(
            existing_numbers=(
                set() if clear_existing else {acc.account_number for acc in existing}
            ),
            previous_by_number={acc.account_number: acc for acc in existing},
            next_id=1 if clear_existing else max((acc.id for acc in existing), default=0) + 1,
        )

        accounts: list[Account] = []
        summaries: list[FileSummary] = []
        for upload in uploads:
            file_accounts, summary = self._reconcile_file(upload, state, timestamp)
            accounts.extend(file_accounts)
            summaries.append(summary)

        issues = [issue for summary in summaries for issue in summary.issues]
        logger.info(
            "Reconciled %d file(s): %d account(s) proposed, %d issue(s)",
            len(summaries),
            len(accounts),
            len(issues),
        )
        return UploadBatch(
            accounts=sort_accounts(accounts),
            files=summaries,
            issues=issues,
            clear_existing=clear_existing,
        )

    def _reconcile_file(
        self, upload: UploadedFile, state: _BatchState, now: datetime
    ) -> tuple[list[Account], FileSummary]:
        try:
            layout, columns = detect_layout(
                upload.name,
                read_sheets(upload),
                self.settings.header_scan_rows,
                self.header_aliases,
                self.mandatory_fields,
            )
        except HeaderDetectionError as exc:
            return [], self._rejected(upload, str(exc), exc.layout)
        except ParseError as exc:
            return [], self._rejected(upload, str(exc))

        header_mapping = _header_mapping(layout, columns)
        data_rows = layout.data_rows
        rows = [
            build_row(cells, columns, layout.row_number(index))
            for index, cells in enumerate(data_rows)
        ]
        issues: list[UploadIssue] = []
        duplicates = self._in_file_duplicates(upload, rows, issues)

        accounts: list[Account] = []
        for row in rows:
            if row.is_blank() or row.account_number.strip() in duplicates:
                continue
            account = self._reconcile_row(upload, row, state, issues, now)
            if account is not None:
                accounts.append(account)

        summary = FileSummary(
            name=upload.name,
            size=upload.size,
            sheet_name=layout.sheet.name,
            header_row=layout.header_index + 1,
            header_mapping=header_mapping,
            records_scanned=len(data_rows),
            records_imported=len(accounts),
            issues=issues,
        )
        logger.info(
            "File '%s' sheet '%s': %d of %d row(s) imported",
            upload.name,
            layout.sheet.name,
            len(accounts),
            len(data_rows),
        )
        return accounts, summary

    def _in_file_duplicates(
        self, upload: UploadedFile, rows: Sequence[UploadRow], issues: list[UploadIssue]
    ) -> set[str]:
        rows_by_number: dict[str, list[int]] = {}
        for row in rows:
            number = row.account_number.strip()
            if number:
                rows_by_number.setdefault(number, []).append(row.row_number)

        duplicates: set[str] = set()
        for number, row_numbers in rows_by_number.items():
            if len(row_numbers) > 1:
                duplicates.add(number)
                issues.append(
                    UploadIssue(
                        file_name=upload.name,
                        kind=IssueKind.VALIDATION,
                        account_number=number,
                        message=(
                            f"Duplicate G/L Account '{number}' in '{upload.name}' on rows "
                            f"{', '.join(str(n) for n in row_numbers)}. Rows ignored."
                        ),
                    )
                )
        return duplicates

    def _reconcile_row(
        self,
        upload: UploadedFile,
        row: UploadRow,
        state: _BatchState,
        issues: list[UploadIssue],
        now: datetime,
    ) -> Optional[Account]:
        def _issue(kind: IssueKind, message: str, number: Optional[str] = None) -> None:
            issues.append(
                UploadIssue(
                    file_name=upload.name,
                    row=row.row_number,
                    kind=kind,
                    message=message,
                    account_number=number,
                )
            )

        if row.missing_mandatory():
            _issue(
                IssueKind.VALIDATION,
                f"Row {row.row_number} in '{upload.name}' is missing one or more "
                f"required fields ({', '.join(row.missing_mandatory())}) and was ignored.",
                row.account_number.strip() or None,
            )
            return None

        number = row.account_number.strip()
        if number in state.existing_numbers:
            _issue(
                IssueKind.VALIDATION,
                f"G/L Account '{number}' already exists in the current workflow "
                "and was skipped.",
                number,
            )
            return None

        claim = state.claims.get(number)
        if claim is not None:
            _issue(
                IssueKind.VALIDATION,
                f"G/L Account '{number}' already loaded from '{claim.file_name}' "
                f"(row {claim.row}). Duplicate ignored.",
                number,
            )
            return None

        classification = classify_account(
            number, row.account_name, row.responsible_department, self.tables
        )
        amount = normalize_amount(
            row.balance, row.currency or None, self.settings.default_currency
        )
        for problem in amount.issues:
            _issue(IssueKind.WARNING, f"Balance issue in '{number}': {problem}", number)

        try:
            balance_date = parse_balance_date(row.balance_date)
        except ValueError:
            balance_date = None
            _issue(
                IssueKind.WARNING,
                f"Balance date '{row.balance_date}' for '{number}' could not be parsed.",
                number,
            )

        account = build_account(
            row,
            account_id=state.allocate_id(),
            classification=classification,
            amount=amount,
            previous=state.previous_by_number.get(number),
            balance_date=balance_date,
            variance_threshold=self.settings.variance_threshold,
            now=now,
        )
        state.claims[number] = _Claim(file_name=upload.name, row=row.row_number)
        return account

    def _rejected(
        self,
        upload: UploadedFile,
        message: str,
        layout: Optional[SheetLayout] = None,
    ) -> FileSummary:
        logger.warning("Rejected upload '%s': %s", upload.name, message)
        if layout is None:
            sheet_name, header_row, scanned = "Not detected", None, 0
            header_mapping: dict[str, str] = {}
        else:
            sheet_name = layout.sheet.name
            header_row = layout.header_index + 1
            scanned = len(layout.data_rows)
            header_mapping = _header_mapping(
                layout, map_headers(layout.headers, self.header_aliases)
            )
        return FileSummary(
            name=upload.name,
            size=upload.size,
            sheet_name=sheet_name,
            header_row=header_row,
            header_mapping=header_mapping,
            records_scanned=scanned,
            records_imported=0,
            rejected=True,
            issues=[
                UploadIssue(file_name=upload.name, kind=IssueKind.PARSE, message=message)
            ],
        )


def reconcile_uploads(
    uploads: Sequence[UploadedFile],
    existing: Sequence[Account] = (),
    clear_existing: bool = True,
    settings: Optional[Settings] = None,
    tables: Optional[ReferenceTables] = None,
) -> UploadBatch:
    """Convenience helper for one-off reconciliation."""
    reconciler = UploadReconciler(settings=settings or Settings(), tables=tables)
    return reconciler.reconcile(uploads, existing, clear_existing)


def commit_upload(
    store: "AccountStore",
    batch: UploadBatch,
    uploaded_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> UploadSession:
    """Append (or replace with) the batch atomically and record the session."""
    store.commit_batch(batch.accounts, clear_existing=batch.clear_existing)
    session = UploadSession(
        upload_id=f"UPL-{uuid.uuid4().hex[:12].upper()}",
        timestamp=now or _utc_now(),
        uploaded_by=uploaded_by,
        files=batch.files,
        records_count=len(batch.accounts),
        message=(
            "Started new session with fresh dataset."
            if batch.clear_existing
            else "Appended data to existing session."
        ),
    )
    store.record_upload(session)
    logger.info(
        "Committed upload %s with %d account(s)", session.upload_id, session.records_count
    )
    return session


__all__ = [
    "HEADER_ALIASES",
    "MANDATORY_FIELDS",
    "MIN_ALIAS_MATCHES",
    "SheetLayout",
    "UploadReconciler",
    "UploadRow",
    "build_account",
    "commit_upload",
    "count_alias_matches",
    "detect_layout",
    "find_header_row",
    "map_headers",
    "parse_balance_date",
    "reconcile_uploads",
    "select_layout",
    "sort_accounts",
]
