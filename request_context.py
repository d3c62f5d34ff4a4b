from __future__ import annotations

import uuid
from contextvars import ContextVar

_request_id: ContextVar[str] = ContextVar("_request_id", default="-")
_session_id: ContextVar[str] = ContextVar("_session_id", default="-")

def new_request_id() -> str:
    rid = uuid.uuid4().hex[:12]
    _request_id.set(rid)
    return rid

def get_request_id() -> str:
    return _request_id.get()

def bind_session_id(session_id: str) -> None:
    """Tag every log line of the current request/task with the planner session."""
    _session_id.set(session_id)

def get_session_id() -> str:
    return _session_id.get()
