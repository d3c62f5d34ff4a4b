# sessions.py
from __future__ import annotations
from datetime import datetime
from typing import Dict, Optional
import logging, time, uuid

from planner import PlannerSession

log = logging.getLogger("planner")

class SessionManager:
    """In-memory planner sessions. Everything runs on one event loop, so no locking."""

    def __init__(self):
        self._sessions: Dict[str, PlannerSession] = {}

    def create(self) -> PlannerSession:
        session = PlannerSession(id=uuid.uuid4().hex[:12])
        self._sessions[session.id] = session
        log.info("Planner session created", extra={"session_id": session.id})
        return session

    def get(self, session_id: str) -> Optional[PlannerSession]:
        return self._sessions.get(session_id)

    def __len__(self) -> int:
        return len(self._sessions)

    def prune(self, older_than_seconds: int = 3600) -> int:
        """Drop idle sessions not touched for `older_than_seconds`. Busy sessions are kept."""
        cutoff = time.time() - older_than_seconds
        to_del = []
        for sid, session in self._sessions.items():
            if session.busy:
                continue
            try:
                ts = datetime.fromisoformat(session.updated_at).timestamp()
            except ValueError:
                ts = time.time()
            if ts < cutoff:
                to_del.append(sid)
        for sid in to_del:
            self._sessions.pop(sid, None)
        if to_del:
            log.info("Pruned planner sessions", extra={"pruned": len(to_del), "remaining": len(self._sessions)})
        return len(to_del)

manager = SessionManager()
