"""In-process registry of pipeline sessions."""

import logging
import threading
from collections import OrderedDict

from surveyclean.config import settings
from surveyclean.errors import SessionNotFound
from surveyclean.models.dataset import Dataset
from surveyclean.services.pipeline import PipelineSession

logger = logging.getLogger(__name__)

_sessions: "OrderedDict[str, PipelineSession]" = OrderedDict()
_lock = threading.Lock()


def create_session(dataset: Dataset) -> PipelineSession:
    """Register a new session; the oldest idle session is evicted past SESSION_LIMIT."""
    session = PipelineSession(dataset)
    with _lock:
        _sessions[session.id] = session
        while len(_sessions) > settings.SESSION_LIMIT:
            evicted_id = next((sid for sid, s in _sessions.items() if not s.cleaning_active), None)
            if evicted_id is None:
                break
            _sessions.pop(evicted_id)
            logger.info("evicted session %s (limit %d)", evicted_id, settings.SESSION_LIMIT)
    return session


def get_session(session_id: str) -> PipelineSession:
    with _lock:
        session = _sessions.get(session_id)
    if session is None:
        raise SessionNotFound(f"Session '{session_id}' not found", value=session_id)
    return session


def delete_session(session_id: str) -> None:
    with _lock:
        session = _sessions.pop(session_id, None)
    if session is None:
        raise SessionNotFound(f"Session '{session_id}' not found", value=session_id)
    session.cancel_cleaning()


def clear_sessions() -> None:
    with _lock:
        _sessions.clear()
