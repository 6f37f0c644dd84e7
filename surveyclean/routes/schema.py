from fastapi import APIRouter

from surveyclean.schemas.pipeline import SchemaSuggestionResponse, SchemaUpdateRequest
from surveyclean.schemas.upload import SessionResponse
from surveyclean.services.schema_inference import suggest_schema
from surveyclean.services.session_store import get_session

router = APIRouter(prefix="/sessions", tags=["schema"])


@router.get("/{session_id}/schema/suggestion", response_model=SchemaSuggestionResponse)
def schema_suggestion(session_id: str):
    session = get_session(session_id)
    return SchemaSuggestionResponse(
        session_id=session.id,
        columns=suggest_schema(session.uploaded.column_names),
    )


@router.put("/{session_id}/schema", response_model=SessionResponse)
def configure_schema(session_id: str, payload: SchemaUpdateRequest):
    session = get_session(session_id)
    assignment = {
        name: column.model_dump(mode="json", exclude_none=True)
        for name, column in payload.columns.items()
    }
    session.configure_schema(assignment)
    return session.snapshot()
