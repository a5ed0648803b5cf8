"""Persisted countdown state for an active focus session."""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ActiveTimerState:
    """
    Absolute-time record of a running focus countdown.

    Remaining time is always derived from ``end_time`` and the current
    clock, so the countdown stays correct across suspension and restarts.
    While ``paused_at`` is set the countdown is frozen at that instant.
    """

    end_time: datetime
    total_duration_seconds: int
    breaks_taken: int = 0
    paused_at: Optional[datetime] = None

    @classmethod
    def starting_at(cls, now: datetime, duration_seconds: int) -> "ActiveTimerState":
        """Create a timer that ends ``duration_seconds`` after ``now``."""
        if duration_seconds <= 0:
            raise ValueError(f"Duration must be positive, got {duration_seconds}")
        return cls(
            end_time=now + timedelta(seconds=duration_seconds),
            total_duration_seconds=duration_seconds,
        )

    @property
    def is_paused(self) -> bool:
        return self.paused_at is not None

    def _reference_time(self, now: Optional[datetime]) -> datetime:
        if self.paused_at is not None:
            return self.paused_at
        return now or datetime.now()

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self._reference_time(now) >= self.end_time

    def time_remaining(self, now: Optional[datetime] = None) -> int:
        """Whole seconds left, never negative (truncated, not rounded)."""
        remaining = (self.end_time - self._reference_time(now)).total_seconds()
        return max(0, int(remaining))

    def with_breaks(self, breaks_taken: int) -> "ActiveTimerState":
        return replace(self, breaks_taken=breaks_taken)

    def extended_by(self, seconds: float) -> "ActiveTimerState":
        """Shift the end time later."""
        return replace(self, end_time=self.end_time + timedelta(seconds=seconds))

    def paused(self, now: datetime) -> "ActiveTimerState":
        """Freeze the countdown at ``now`` (no-op if already paused)."""
        if self.paused_at is not None:
            return self
        return replace(self, paused_at=now)

    def resumed(self, now: datetime) -> "ActiveTimerState":
        """Unfreeze, pushing the end time out by the paused span."""
        if self.paused_at is None:
            return self
        paused_seconds = max(0.0, (now - self.paused_at).total_seconds())
        return replace(self.extended_by(paused_seconds), paused_at=None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endTime": self.end_time.isoformat(),
            "totalDuration": self.total_duration_seconds,
            "breaksTaken": self.breaks_taken,
            "pausedAt": self.paused_at.isoformat() if self.paused_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActiveTimerState":
        """
        Raises:
            KeyError, TypeError, ValueError: If the record is malformed.
        """
        total = int(data["totalDuration"])
        if total <= 0:
            raise ValueError(f"Non-positive totalDuration: {total}")
        paused_at = data.get("pausedAt")
        return cls(
            end_time=datetime.fromisoformat(data["endTime"]),
            total_duration_seconds=total,
            breaks_taken=max(0, int(data.get("breaksTaken", 0))),
            paused_at=datetime.fromisoformat(paused_at) if paused_at else None,
        )


def format_clock(seconds: int) -> str:
    """
    Format a countdown for display.

    Examples:
        >>> format_clock(3725)
        '1:02:05'
        >>> format_clock(95)
        '1:35'
    """
    seconds = max(0, int(seconds))
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
