"""
App-blocking collaborator interface.

Real blocking (Screen Time shields, Family Controls) lives in the host
platform. The orchestrator only talks to an ``AppBlocker``; the
``NoOpBlocker`` stands in on platforms without blocking support.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Optional, Protocol

from core.errors import AuthorizationError, BlockingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlockSelection:
    """Apps, categories and web domains chosen by the user for blocking."""

    applications: FrozenSet[str] = field(default_factory=frozenset)
    categories: FrozenSet[str] = field(default_factory=frozenset)
    web_domains: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return not (self.applications or self.categories or self.web_domains)


class AppBlocker(Protocol):
    """Shield apply/clear contract."""

    def start_blocking(self, selection: Any, duration_minutes: int) -> None:
        """
        Apply shields for ``duration_minutes``.

        Raises:
            AuthorizationError: OS permission not granted.
            BlockingError: Any other failure (e.g. nothing selected).
        """
        ...

    def stop_blocking(self) -> None:
        """Clear all shields. Must not raise."""
        ...


class NoOpBlocker:
    """
    Blocker that only records and logs what it was asked to do.

    Used when the host platform has no blocking support, and by tests.
    """

    def __init__(self, authorized: bool = True, require_selection: bool = False) -> None:
        """
        Args:
            authorized: When False, start_blocking raises AuthorizationError.
            require_selection: When True, an empty selection raises BlockingError.
        """
        self.authorized = authorized
        self.require_selection = require_selection
        self.is_active: bool = False
        self.last_duration_minutes: Optional[int] = None

    def start_blocking(self, selection: Any, duration_minutes: int) -> None:
        if not self.authorized:
            raise AuthorizationError("Screen Time permission required. Please enable in Settings.")
        if self.require_selection and (selection is None or getattr(selection, "is_empty", False)):
            raise BlockingError("No apps or categories selected. Configure blocked items first.")

        self.is_active = True
        self.last_duration_minutes = duration_minutes
        logger.info(f"Blocking started for {duration_minutes} min")

    def stop_blocking(self) -> None:
        if self.is_active:
            logger.info("Blocking stopped")
        self.is_active = False
