"""Break reward policies: map a verification score to break seconds."""

import logging
import math
from typing import Optional, Protocol, Sequence, Tuple

import config

logger = logging.getLogger(__name__)


class RewardPolicy(Protocol):
    """Strategy for turning a verification decision into a break length."""

    name: str

    def reward_seconds(self, score: float, allow_break: bool) -> int:
        ...


class TieredRewardPolicy:
    """
    Step function over the score.

    [0, 0.6) -> no break, [0.6, 0.7) -> 3 min, [0.7, 0.85) -> 5 min,
    [0.85, 1.0] -> 10 min. Anything else falls back to 5 min.
    """

    name = "tiered"

    # (lower bound, seconds), highest tier first
    TIERS: Sequence[Tuple[float, int]] = (
        (0.85, 600),
        (0.7, 300),
        (0.6, 180),
    )
    MIN_PASSING_SCORE = 0.6
    DEFAULT_SECONDS = 300

    def reward_seconds(self, score: float, allow_break: bool) -> int:
        if not allow_break:
            return 0

        if 0.0 <= score < self.MIN_PASSING_SCORE:
            return 0

        if score <= 1.0:
            for lower, seconds in self.TIERS:
                if score >= lower:
                    return seconds

        logger.warning(f"Unexpected score {score!r}, using default break")
        return self.DEFAULT_SECONDS


class LinearRewardPolicy:
    """Whole minutes proportional to the score, up to ``max_minutes``."""

    name = "linear"

    def __init__(self, max_minutes: int = 30) -> None:
        self.max_minutes = max_minutes

    def reward_seconds(self, score: float, allow_break: bool) -> int:
        if not allow_break:
            return 0
        if math.isnan(score):
            return 0
        clamped = max(0.0, min(1.0, score))
        return int(math.floor(clamped * self.max_minutes)) * 60


def get_reward_policy(name: Optional[str] = None) -> RewardPolicy:
    """
    Create a reward policy by name.

    Args:
        name: "tiered" or "linear" (defaults to config.REWARD_POLICY).

    Returns:
        The policy instance. Unknown names fall back to tiered.
    """
    name = (name or config.REWARD_POLICY).lower()
    if name == "linear":
        return LinearRewardPolicy()
    if name != "tiered":
        logger.warning(f"Unknown reward policy '{name}', defaulting to tiered. "
                       f"Supported policies: 'tiered', 'linear'")
    return TieredRewardPolicy()


def format_break_duration(seconds: int) -> str:
    """Format a break length as "m:ss" (e.g. 300 -> "5:00")."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"
