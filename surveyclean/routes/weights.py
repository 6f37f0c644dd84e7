from fastapi import APIRouter

from surveyclean.schemas.weights import (
    ApplySuggestionRequest,
    SetWeightRequest,
    WeightStateResponse,
    WeightSuggestionsResponse,
)
from surveyclean.services.pipeline import PipelineSession
from surveyclean.services.session_store import get_session

router = APIRouter(prefix="/sessions", tags=["weights"])


def _state(session: PipelineSession) -> WeightStateResponse:
    return WeightStateResponse(session_id=session.id, **session.weight_engine().state())


@router.post("/{session_id}/weights/enter", response_model=WeightStateResponse)
def enter_weighting(session_id: str):
    """Start (or resume) weighting: equal split unless the response columns are unchanged."""
    session = get_session(session_id)
    session.enter_weighting()
    return _state(session)


@router.get("/{session_id}/weights", response_model=WeightStateResponse)
def get_weights(session_id: str):
    return _state(get_session(session_id))


@router.put("/{session_id}/weights/{column}", response_model=WeightStateResponse)
def set_weight(session_id: str, column: str, payload: SetWeightRequest):
    session = get_session(session_id)
    session.set_weight(column, payload.value)
    return _state(session)


@router.post("/{session_id}/weights/{column}/lock", response_model=WeightStateResponse)
def lock_column(session_id: str, column: str):
    session = get_session(session_id)
    session.lock(column)
    return _state(session)


@router.delete("/{session_id}/weights/{column}/lock", response_model=WeightStateResponse)
def unlock_column(session_id: str, column: str):
    session = get_session(session_id)
    session.unlock(column)
    return _state(session)


@router.post("/{session_id}/weights/suggestions", response_model=WeightSuggestionsResponse)
def weight_suggestions(session_id: str):
    """Compute suggested weights; nothing changes until apply-suggestion is called."""
    session = get_session(session_id)
    return WeightSuggestionsResponse(
        session_id=session.id,
        suggestions=session.compute_weight_suggestions(),
    )


@router.post("/{session_id}/weights/apply-suggestion", response_model=WeightStateResponse)
def apply_suggestion(session_id: str, payload: ApplySuggestionRequest):
    session = get_session(session_id)
    session.apply_suggestion(payload.weights, payload.rationale)
    return _state(session)


@router.post("/{session_id}/weights/reset", response_model=WeightStateResponse)
def reset_weights(session_id: str):
    session = get_session(session_id)
    session.reset_weights()
    return _state(session)


@router.post("/{session_id}/weights/undo", response_model=WeightStateResponse)
def undo_weights(session_id: str):
    session = get_session(session_id)
    session.undo_weights()
    return _state(session)


@router.post("/{session_id}/weights/complete", response_model=WeightStateResponse)
def complete_weighting(session_id: str):
    session = get_session(session_id)
    session.complete_weighting()
    return _state(session)
