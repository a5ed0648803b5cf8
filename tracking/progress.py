"""Session progress state and evidence delta tracking."""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

import config
from tracking.store import StateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionProgressState:
    """
    Running record of one focus session's goal and verified progress.

    Instances are immutable; every update produces a new state so a failed
    verification can never leave a half-written record behind.
    """

    session_goal: str
    state_summary: str = config.INITIAL_STATE_SUMMARY
    break_number: int = 0
    last_evidence_text: str = ""

    def advanced(self, new_summary: str, evidence_text: str) -> "SessionProgressState":
        """Return the state after one successful verification call."""
        return replace(
            self,
            state_summary=new_summary,
            break_number=self.break_number + 1,
            last_evidence_text=evidence_text,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionGoal": self.session_goal,
            "stateSummary": self.state_summary,
            "breakNumber": self.break_number,
            "lastEvidenceText": self.last_evidence_text,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionProgressState":
        """
        Rebuild a state from its persisted form.

        Raises:
            KeyError, TypeError, ValueError: If the record is malformed.
        """
        break_number = int(data["breakNumber"])
        if break_number < 0:
            raise ValueError(f"Negative breakNumber: {break_number}")
        return cls(
            session_goal=str(data["sessionGoal"]),
            state_summary=str(data["stateSummary"]),
            break_number=break_number,
            last_evidence_text=str(data.get("lastEvidenceText", "")),
        )


def compute_delta(state: Optional[SessionProgressState], new_evidence_text: str) -> str:
    """
    Work out which part of the submitted evidence is new since the last check.

    This is append detection, not a diff: if the previous evidence appears
    inside the new text it is cut out and the rest trimmed; otherwise the
    whole text counts as new.

    Args:
        state: Current progress state (None means nothing seen yet).
        new_evidence_text: Full evidence text for this submission.

    Returns:
        The delta text to send for verification.

    Examples:
        >>> s = SessionProgressState("g", last_evidence_text="Wrote intro")
        >>> compute_delta(s, "Wrote introAdded conclusion")
        'Added conclusion'
    """
    if state is None or not state.last_evidence_text:
        return new_evidence_text

    if state.last_evidence_text in new_evidence_text:
        return new_evidence_text.replace(state.last_evidence_text, "").strip()

    return new_evidence_text


def combine_evidence(note: str, image_text: str) -> str:
    """Join the non-blank parts of a typed note and recognized image text."""
    parts = [part for part in (note, image_text) if part and part.strip()]
    return config.EVIDENCE_JOINER.join(parts)


class ProgressStateManager:
    """
    Owns the persisted SessionProgressState for the current session.

    One instance per orchestrator; nothing here is process-global.
    """

    def __init__(self, store: StateStore, key: str = config.STATE_KEY_PROGRESS) -> None:
        self._store = store
        self._key = key
        self.current_state: Optional[SessionProgressState] = self._load_state()

    def start_new_session(self, goal: str) -> SessionProgressState:
        """Create and persist a fresh state for ``goal``."""
        self.current_state = SessionProgressState(session_goal=goal)
        self._save_state()
        logger.info(f"Progress state created for goal: {goal!r}")
        return self.current_state

    def update_state(self, new_summary: str, evidence_text: str) -> Optional[SessionProgressState]:
        """
        Record a successful verification call.

        Args:
            new_summary: Summary returned by the verifier.
            evidence_text: Full cumulative evidence submitted (not the delta).

        Returns:
            The new state, or None if no session is active.
        """
        if self.current_state is None:
            logger.warning("update_state called with no active progress state")
            return None

        self.current_state = self.current_state.advanced(new_summary, evidence_text)
        self._save_state()
        return self.current_state

    def clear_state(self) -> None:
        self.current_state = None
        self._store.remove(self._key)

    def get_evidence_delta(self, new_text: str) -> str:
        return compute_delta(self.current_state, new_text)

    def _save_state(self) -> None:
        if self.current_state is None:
            return
        self._store.set(self._key, self.current_state.to_dict())

    def _load_state(self) -> Optional[SessionProgressState]:
        data = self._store.get(self._key)
        if data is None:
            return None
        try:
            return SessionProgressState.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding malformed progress state: {e}")
            return None
