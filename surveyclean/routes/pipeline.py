from fastapi import APIRouter

from surveyclean.schemas.pipeline import CollaboratorPayload, StageResponse
from surveyclean.schemas.weights import WeightedSummaryResponse
from surveyclean.services.session_store import get_session

router = APIRouter(prefix="/sessions", tags=["pipeline"])


@router.get("/{session_id}/weights/summary", response_model=WeightedSummaryResponse)
def weighted_summary(session_id: str):
    session = get_session(session_id)
    return WeightedSummaryResponse(session_id=session.id, **session.weighted_summary())


@router.post("/{session_id}/visualization", response_model=StageResponse)
def record_visualization(session_id: str, body: CollaboratorPayload):
    session = get_session(session_id)
    session.record_visualization(body.payload)
    return StageResponse(session_id=session.id, stage=session.stage.value, stale=session.snapshot()["stale"])


@router.post("/{session_id}/report", response_model=StageResponse)
def record_report(session_id: str, body: CollaboratorPayload):
    session = get_session(session_id)
    session.record_report(body.payload)
    return StageResponse(session_id=session.id, stage=session.stage.value, stale=session.snapshot()["stale"])
