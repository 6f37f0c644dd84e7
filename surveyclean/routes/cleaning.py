from __future__ import annotations

import io
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException
from fastapi.responses import StreamingResponse

from surveyclean.errors import StageOrderError
from surveyclean.models.cleaning_log import CleaningLogEntry
from surveyclean.schemas.cleaning import AuditLogEntry, CleaningConfig, CleaningSummaryResponse
from surveyclean.services.pipeline import PipelineSession, Stage
from surveyclean.services.session_store import get_session

router = APIRouter(prefix="/sessions", tags=["cleaning"])


def _summary(session: PipelineSession) -> CleaningSummaryResponse:
    run = session.cleaning_run
    if run is None:
        raise HTTPException(status_code=404, detail="Cleaning results not available yet")
    return CleaningSummaryResponse(
        session_id=session.id,
        stale=Stage.CLEANED in session.stale,
        **run.summary(),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Run / cancel
# ─────────────────────────────────────────────────────────────────────────────

@router.post("/{session_id}/cleaning/run")
def run_cleaning(
    session_id: str,
    background_tasks: BackgroundTasks,
    config: Optional[CleaningConfig] = None,
    background: bool = False,
):
    """Run the enabled cleaning modules. With ``background=true`` returns as soon as the run is claimed."""
    session = get_session(session_id)
    config = config or CleaningConfig()
    if background:
        session.start_cleaning()
        background_tasks.add_task(session.finish_cleaning_async, config)
        return {"session_id": session.id, "status": "running"}

    session.run_cleaning(config)
    return _summary(session)


@router.post("/{session_id}/cleaning/cancel")
def cancel_cleaning(session_id: str):
    session = get_session(session_id)
    cancelled = session.cancel_cleaning()
    return {
        "session_id": session.id,
        "cancel_requested": cancelled,
        "progress": session.cleaning_progress,
    }


# ─────────────────────────────────────────────────────────────────────────────
# Cleaning summary / audit trail
# ─────────────────────────────────────────────────────────────────────────────

@router.get("/{session_id}/cleaning/summary", response_model=CleaningSummaryResponse)
def cleaning_summary(session_id: str):
    return _summary(get_session(session_id))


@router.get("/{session_id}/audit-trail", response_model=list[AuditLogEntry])
def audit_trail(
    session_id: str,
    limit: int = 100,
    offset: int = 0,
    module: Optional[str] = None,
):
    entries: list[CleaningLogEntry] = get_session(session_id).audit_log()
    if module:
        entries = [e for e in entries if e.module == module]
    return entries[offset:offset + limit]


# ─────────────────────────────────────────────────────────────────────────────
# Export
# ─────────────────────────────────────────────────────────────────────────────

@router.get("/{session_id}/export")
def export_csv(session_id: str):
    session = get_session(session_id)
    run = session.cleaning_run
    if run is None:
        raise HTTPException(status_code=404, detail="No cleaned dataset to export")
    if not run.finished or Stage.CLEANED in session.stale:
        state = "stale" if run.finished else run.status
        raise StageOrderError(f"Cleaning run is {state}; re-run cleaning before exporting", value=state)
    dataset = run.dataset

    csv_bytes = dataset.frame.to_csv(index=False).encode("utf-8")
    return StreamingResponse(
        io.BytesIO(csv_bytes),
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="cleaned_{session.id}.csv"',
            "X-Cleaning-Status": run.status,
        },
    )
