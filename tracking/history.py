"""Session history log (completed and abandoned sessions)."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import config
from tracking.store import StateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletedSession:
    """One finished session. Never mutated after creation."""

    duration_seconds: int
    completed: bool
    breaks_taken: int = 0
    date: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def duration_string(self) -> str:
        """Compact duration like "1h 5m" or "25m"."""
        hours = self.duration_seconds // 3600
        minutes = (self.duration_seconds % 3600) // 60
        if hours > 0:
            return f"{hours}h {minutes}m"
        return f"{minutes}m"

    def date_string(self, now: Optional[datetime] = None) -> str:
        """Relative day label: "Today", "Yesterday" or "N days ago"."""
        today = (now or datetime.now()).date()
        days_ago = (today - self.date.date()).days
        if days_ago <= 0:
            return "Today"
        if days_ago == 1:
            return "Yesterday"
        return f"{days_ago} days ago"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "duration": self.duration_seconds,
            "completed": self.completed,
            "breaksTaken": self.breaks_taken,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompletedSession":
        return cls(
            id=str(data["id"]),
            date=datetime.fromisoformat(data["date"]),
            duration_seconds=int(data["duration"]),
            completed=bool(data["completed"]),
            breaks_taken=int(data.get("breaksTaken", 0)),
        )


class SessionHistory:
    """Append-only, most-recent-first list of CompletedSession records."""

    def __init__(self, store: StateStore, key: str = config.STATE_KEY_HISTORY) -> None:
        self._store = store
        self._key = key
        self.sessions: List[CompletedSession] = self._load_sessions()

    def add(self, session: CompletedSession) -> None:
        self.sessions.insert(0, session)
        self._save_sessions()
        status = "completed" if session.completed else "ended early"
        logger.info(
            f"Session {status}: {session.duration_string}, {session.breaks_taken} break(s)"
        )

    @property
    def total_sessions(self) -> int:
        return len(self.sessions)

    @property
    def success_rate(self) -> int:
        """Percentage of sessions that ran to completion (0 when empty)."""
        if not self.sessions:
            return 0
        completed = sum(1 for s in self.sessions if s.completed)
        return int(completed / len(self.sessions) * 100)

    def _save_sessions(self) -> None:
        self._store.set(self._key, [s.to_dict() for s in self.sessions])

    def _load_sessions(self) -> List[CompletedSession]:
        data = self._store.get(self._key)
        if not isinstance(data, list):
            if data is not None:
                logger.warning("Session history is not a list, starting fresh")
            return []

        sessions = []
        for item in data:
            try:
                sessions.append(CompletedSession.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                # Skip the bad record, keep the rest of the history
                logger.warning(f"Skipping malformed history record: {e}")
        return sessions
