from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional
import os

try:
    from google.cloud import firestore  # type: ignore
except Exception:  # pragma: no cover
    firestore = None  # type: ignore


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _empty_session(user_id: str) -> Dict[str, Any]:
    return {
        "user_id": user_id,
        "awaiting_mine_count": None,
        "patterns_emitted": 0,
        "created_at": None,
        "updated_at": None,
    }


def _stats_view(user_id: str, session: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    session = session or _empty_session(user_id)
    pending = session.get("awaiting_mine_count")
    return {
        "user_id": user_id,
        "patterns_emitted": int(session.get("patterns_emitted", 0) or 0),
        "awaiting_identifier": pending is not None,
        "pending_mine_count": pending,
    }


class InMemoryPersistence:
    """Simple in-memory conversation store for tests and local dev."""

    def __init__(self) -> None:
        self.sessions: Dict[str, Dict[str, Any]] = {}

    def get_session(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self.sessions.get(user_id)

    def get_pending_mine_count(self, user_id: str) -> Optional[int]:
        session = self.sessions.get(user_id)
        if not session:
            return None
        return session.get("awaiting_mine_count")

    def set_pending_mine_count(self, user_id: str, mine_count: int) -> Dict[str, Any]:
        now = _now()
        session = self.sessions.get(user_id)
        if session is None:
            session = _empty_session(user_id)
            session["created_at"] = now
            self.sessions[user_id] = session
        session["awaiting_mine_count"] = mine_count
        session["updated_at"] = now
        return session

    def clear_pending(self, user_id: str, emitted: bool = False) -> Dict[str, Any]:
        session = self.sessions.get(user_id)
        if session is None:
            raise KeyError("session_not_found")
        session["awaiting_mine_count"] = None
        session["updated_at"] = _now()
        if emitted:
            session["patterns_emitted"] = int(session.get("patterns_emitted", 0)) + 1
        return session

    def get_stats(self, user_id: str) -> Dict[str, Any]:
        return _stats_view(user_id, self.sessions.get(user_id))


class FirestorePersistence:
    """Firestore-backed conversation store using Native mode.

    Uses FIRESTORE_EMULATOR_HOST if present; otherwise connects to production.
    One document per user in ``minePatternSessions``.
    """

    def __init__(self, client: Optional[Any] = None) -> None:
        if client is not None:
            self.client = client
        else:
            if firestore is None:
                raise RuntimeError("google-cloud-firestore not available")
            self.client = firestore.Client(project=os.environ.get("GOOGLE_CLOUD_PROJECT"))

    def _session_ref(self, user_id: str):
        return self.client.collection("minePatternSessions").document(user_id)

    def get_session(self, user_id: str) -> Optional[Dict[str, Any]]:
        doc = self._session_ref(user_id).get()
        if not doc.exists:
            return None
        return doc.to_dict()

    def get_pending_mine_count(self, user_id: str) -> Optional[int]:
        session = self.get_session(user_id)
        if not session:
            return None
        return session.get("awaiting_mine_count")

    def set_pending_mine_count(self, user_id: str, mine_count: int) -> Dict[str, Any]:
        now = _now()
        ref = self._session_ref(user_id)
        snap = ref.get()
        if snap.exists:
            update = {"awaiting_mine_count": mine_count, "updated_at": now}
            ref.update(update)
            merged = dict(snap.to_dict() or {})
            merged.update(update)
            return merged
        doc = _empty_session(user_id)
        doc.update({"awaiting_mine_count": mine_count, "created_at": now, "updated_at": now})
        ref.set(doc)
        return doc

    def clear_pending(self, user_id: str, emitted: bool = False) -> Dict[str, Any]:
        if firestore is None:
            raise RuntimeError("google-cloud-firestore not available")

        @firestore.transactional  # type: ignore
        def _tx(tx):
            ref = self._session_ref(user_id)
            snap = ref.get(transaction=tx)
            if not snap.exists:
                raise KeyError("session_not_found")
            session = snap.to_dict() or {}
            update: Dict[str, Any] = {
                "awaiting_mine_count": None,
                "updated_at": _now(),
            }
            if emitted:
                update["patterns_emitted"] = int(session.get("patterns_emitted", 0) or 0) + 1
            tx.update(ref, update)
            merged = dict(session)
            merged.update(update)
            return merged

        return _tx(self.client.transaction())

    def get_stats(self, user_id: str) -> Dict[str, Any]:
        return _stats_view(user_id, self.get_session(user_id))
