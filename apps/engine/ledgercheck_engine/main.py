"""FastAPI application entrypoint for LedgerCheck."""

from __future__ import annotations

import base64
import binascii
import logging
import threading
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from ledgercheck_core import (
    AccountNotFound,
    AlreadyFinalized,
    DuplicateAccountError,
    MissingReason,
    ReportScheduler,
    Settings,
    SqliteAccountStore,
    Unauthorized,
    UploadedFile,
    UploadReconciler,
    approve_account,
    build_balance_sheet_summary,
    build_report_bundle,
    collect_number_issues,
    commit_upload,
    compute_threshold_metrics,
    correct_account,
    edit_account,
    load_reference_tables,
    load_settings,
    reject_account,
    reports_path,
    write_report_json,
)
from ledgercheck_schemas import (
    Account,
    AccountListResponse,
    Actor,
    BalanceSheetSummary,
    CorrectionLogEntry,
    CorrectionRequest,
    CorrectionResult,
    EditRequest,
    NumberIssue,
    RejectRequest,
    ReportJob,
    ReportSchedule,
    ScheduleCreateRequest,
    ThresholdMetric,
    UploadRequest,
    UploadResponse,
    UploadSession,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions/{session_slug}", tags=["engine"])


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _store(request: Request, session_slug: str) -> SqliteAccountStore:
    return SqliteAccountStore(session_slug, _settings(request).data_root)


def _reconciler(request: Request) -> UploadReconciler:
    return request.app.state.reconciler


def _scheduler(request: Request, session_slug: str) -> ReportScheduler:
    state = request.app.state
    with state.scheduler_lock:
        scheduler = state.schedulers.get(session_slug)
        if scheduler is None:
            settings = _settings(request)
            store = SqliteAccountStore(session_slug, settings.data_root)
            directory = reports_path(session_slug, settings.data_root)
            scheduler = ReportScheduler(
                bundle_provider=lambda: build_report_bundle(
                    store.load(), store.list_corrections(), store.list_uploads()
                ),
                writer=lambda bundle: write_report_json(bundle, directory),
            )
            state.schedulers[session_slug] = scheduler
            if state.run_scheduler_thread:
                scheduler.start(settings.scheduler_poll_seconds)
    return scheduler


def _decode_uploads(payload: UploadRequest) -> list[UploadedFile]:
    uploads: list[UploadedFile] = []
    for item in payload.files:
        try:
            content = base64.b64decode(item.content_base64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise HTTPException(
                status_code=400,
                detail=f"File '{item.name}' is not valid base64 content",
            ) from exc
        uploads.append(UploadedFile(name=item.name, content=content))
    return uploads


@router.post("/uploads/preview", response_model=UploadResponse)
def preview_upload(
    session_slug: str, payload: UploadRequest, request: Request
) -> UploadResponse:
    """Reconcile the files against the session without committing anything."""
    store = _store(request, session_slug)
    batch = _reconciler(request).reconcile(
        _decode_uploads(payload), store.load(), payload.clear_existing
    )
    return UploadResponse(batch=batch)


@router.post("/uploads", response_model=UploadResponse)
def upload_accounts(
    session_slug: str, payload: UploadRequest, request: Request
) -> UploadResponse:
    store = _store(request, session_slug)
    batch = _reconciler(request).reconcile(
        _decode_uploads(payload), store.load(), payload.clear_existing
    )
    if not batch.accounts:
        logger.warning(
            "Upload to session %s produced no accounts (%d issue(s))",
            session_slug,
            len(batch.issues),
        )
        raise HTTPException(
            status_code=400,
            detail={
                "message": "No accounts could be imported from the upload",
                "issues": [issue.model_dump(mode="json") for issue in batch.issues],
            },
        )
    session = commit_upload(store, batch, uploaded_by=payload.uploaded_by)
    return UploadResponse(batch=batch, session=session)


@router.get("/uploads", response_model=list[UploadSession])
def list_uploads(session_slug: str, request: Request) -> list[UploadSession]:
    return _store(request, session_slug).list_uploads()


@router.get("/accounts", response_model=AccountListResponse)
def list_accounts(session_slug: str, request: Request) -> AccountListResponse:
    return AccountListResponse(accounts=_store(request, session_slug).load())


@router.get("/accounts/{account_id}", response_model=Account)
def get_account(session_slug: str, account_id: int, request: Request) -> Account:
    return _store(request, session_slug).get(account_id)


@router.post("/accounts/{account_id}/approve", response_model=Account)
def approve(
    session_slug: str, account_id: int, actor: Actor, request: Request
) -> Account:
    return approve_account(_store(request, session_slug), account_id, actor)


@router.post("/accounts/{account_id}/reject", response_model=Account)
def reject(
    session_slug: str, account_id: int, payload: RejectRequest, request: Request
) -> Account:
    return reject_account(
        _store(request, session_slug), account_id, payload.actor, payload.reason
    )


@router.post("/accounts/{account_id}/corrections", response_model=CorrectionResult)
def correct(
    session_slug: str, account_id: int, payload: CorrectionRequest, request: Request
) -> CorrectionResult:
    return correct_account(
        _store(request, session_slug),
        account_id,
        payload.actor,
        payload.amount,
        payload.reason,
        variance_threshold=_settings(request).variance_threshold,
    )


@router.patch("/accounts/{account_id}", response_model=Account)
def edit(
    session_slug: str, account_id: int, payload: EditRequest, request: Request
) -> Account:
    return edit_account(
        _store(request, session_slug), account_id, payload.actor, payload.updates
    )


@router.get("/corrections", response_model=list[CorrectionLogEntry])
def list_corrections(session_slug: str, request: Request) -> list[CorrectionLogEntry]:
    return _store(request, session_slug).list_corrections()


@router.get("/reports/threshold-metrics", response_model=list[ThresholdMetric])
def threshold_metrics(session_slug: str, request: Request) -> list[ThresholdMetric]:
    return compute_threshold_metrics(_store(request, session_slug).load())


@router.get("/reports/balance-sheet", response_model=BalanceSheetSummary)
def balance_sheet(session_slug: str, request: Request) -> BalanceSheetSummary:
    return build_balance_sheet_summary(_store(request, session_slug).load())


@router.get("/reports/number-issues", response_model=list[NumberIssue])
def number_issues(session_slug: str, request: Request) -> list[NumberIssue]:
    return collect_number_issues(_store(request, session_slug).load())


@router.post("/reports", response_model=ReportJob)
def generate_report(session_slug: str, request: Request) -> ReportJob:
    return _scheduler(request, session_slug).run_now()


@router.get("/reports/jobs", response_model=list[ReportJob])
def list_report_jobs(session_slug: str, request: Request) -> list[ReportJob]:
    return _scheduler(request, session_slug).jobs()


@router.get("/reports/schedules", response_model=list[ReportSchedule])
def list_schedules(session_slug: str, request: Request) -> list[ReportSchedule]:
    return _scheduler(request, session_slug).schedules()


@router.post("/reports/schedules", response_model=ReportSchedule)
def create_schedule(
    session_slug: str, payload: ScheduleCreateRequest, request: Request
) -> ReportSchedule:
    return _scheduler(request, session_slug).add_schedule(
        payload.frequency, payload.recipients
    )


@router.post("/reports/schedules/run-due", response_model=list[ReportJob])
def run_due_schedules(session_slug: str, request: Request) -> list[ReportJob]:
    return _scheduler(request, session_slug).run_pending()


def _error_handler(status_code: int):
    async def handler(_request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler


SCHEDULER_STOP_TIMEOUT = 5.0


def stop_schedulers(app: FastAPI) -> None:
    """Stop every session scheduler and forget it."""
    with app.state.scheduler_lock:
        schedulers = list(app.state.schedulers.items())
        app.state.schedulers.clear()
    for session_slug, scheduler in schedulers:
        scheduler.stop(timeout=SCHEDULER_STOP_TIMEOUT)
        logger.info("Stopped report scheduler for session %s", session_slug)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    stop_schedulers(app)


def create_app(
    settings: Optional[Settings] = None, run_scheduler_thread: bool = False
) -> FastAPI:
    """Build and configure the FastAPI application."""
    settings = settings or load_settings()
    app = FastAPI(title="LedgerCheck Engine", version="0.1.0", lifespan=_lifespan)

    app.state.settings = settings
    app.state.reconciler = UploadReconciler(
        settings=settings,
        tables=(
            load_reference_tables(settings.reference_path)
            if settings.reference_path
            else None
        ),
    )
    app.state.schedulers = {}
    app.state.scheduler_lock = threading.Lock()
    app.state.run_scheduler_thread = run_scheduler_thread

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AccountNotFound, _error_handler(404))
    app.add_exception_handler(Unauthorized, _error_handler(403))
    app.add_exception_handler(AlreadyFinalized, _error_handler(409))
    app.add_exception_handler(DuplicateAccountError, _error_handler(409))
    app.add_exception_handler(MissingReason, _error_handler(422))

    @app.get("/health", tags=["system"])  # pragma: no cover - trivial
    def healthcheck() -> dict[str, bool]:
        return {"ok": True}

    app.include_router(router)

    return app


app = create_app()


def run() -> None:  # pragma: no cover - manual entrypoint
    """Run the development server with uvicorn."""
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(
        "ledgercheck_engine.main:scheduled_app",
        host="127.0.0.1",
        port=8000,
        factory=True,
    )


def scheduled_app() -> FastAPI:  # pragma: no cover - manual entrypoint
    return create_app(run_scheduler_thread=True)


if __name__ == "__main__":  # pragma: no cover - manual entrypoint
    run()
