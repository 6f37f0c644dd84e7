from fastapi import APIRouter, HTTPException, Request

from surveyclean.config import settings
from surveyclean.models.dataset import Dataset
from surveyclean.schemas.pipeline import NavigateRequest, StageResponse
from surveyclean.schemas.upload import SessionCreateRequest, SessionResponse
from surveyclean.services.session_store import create_session, delete_session, get_session

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("", response_model=SessionResponse, status_code=201)
def create(payload: SessionCreateRequest, request: Request):
    """Start a session from a parsed header and rows."""
    size = int(request.headers.get("content-length") or 0)
    if size > settings.MAX_UPLOAD_MB * 1024 * 1024:
        raise HTTPException(status_code=413, detail=f"Payload exceeds {settings.MAX_UPLOAD_MB} MB")
    try:
        dataset = Dataset.from_rows(payload.header, payload.rows, payload.types, payload.roles)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    session = create_session(dataset)
    return session.snapshot()


@router.get("/{session_id}", response_model=SessionResponse)
def get(session_id: str):
    return get_session(session_id).snapshot()


@router.delete("/{session_id}", status_code=204)
def delete(session_id: str):
    delete_session(session_id)


@router.post("/{session_id}/navigate", response_model=StageResponse)
def navigate(session_id: str, payload: NavigateRequest):
    """Move back (or forward again) to a stage whose output is still current."""
    session = get_session(session_id)
    stage = session.navigate(payload.stage)
    return StageResponse(
        session_id=session.id,
        stage=stage.value,
        stale=session.snapshot()["stale"],
    )
