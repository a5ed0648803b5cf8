"""
SessionOrchestrator — focus session state machine for Clast.

Drives the focus countdown, the evidence review that gates every break,
and the break countdown. Owns the persisted timer, progress state and
session history for exactly one session at a time.

This module has ZERO UI dependencies. Views call the public transition
methods and receive updates via callbacks; they never mutate engine
state directly.

Phases:
    idle -> awaiting_goal -> focusing -> evidence_review
         -> (focusing | on_break) -> completed | abandoned

Callbacks:
    on_status_change(phase: SessionPhase, text: str)
    on_error(error_type: str, message: str)
    on_break_started(seconds: int)
    on_session_ended(session: CompletedSession)
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence

import config
from ai.rewards import RewardPolicy, get_reward_policy
from ai.text_extractor import ImageSource, OpenAITextRecognizer, TextRecognizer, extract_text
from ai.verifier import VerificationResponse, Verifier, create_verifier
from core.blocking import AppBlocker, NoOpBlocker
from core.errors import (
    AuthorizationError,
    BlockingError,
    ClastError,
    SessionStateError,
    ValidationError,
)
from tracking.history import CompletedSession, SessionHistory
from tracking.progress import ProgressStateManager, combine_evidence
from tracking.store import StateStore
from tracking.timer import ActiveTimerState

logger = logging.getLogger(__name__)


class SessionPhase(Enum):
    """Where the current session is in its lifecycle."""
    IDLE = "idle"
    AWAITING_GOAL = "awaiting_goal"
    FOCUSING = "focusing"
    EVIDENCE_REVIEW = "evidence_review"
    ON_BREAK = "on_break"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


ACTIVE_PHASES = frozenset({
    SessionPhase.FOCUSING,
    SessionPhase.EVIDENCE_REVIEW,
    SessionPhase.ON_BREAK,
})

_PHASE_TEXT = {
    SessionPhase.IDLE: "Ready to Start",
    SessionPhase.AWAITING_GOAL: "Set a Goal",
    SessionPhase.FOCUSING: "Focusing",
    SessionPhase.EVIDENCE_REVIEW: "Reviewing Progress",
    SessionPhase.ON_BREAK: "On Break",
    SessionPhase.COMPLETED: "Session Complete",
    SessionPhase.ABANDONED: "Session Ended Early",
}


@dataclass(frozen=True)
class VerificationOutcome:
    """Result of one evidence submission."""
    response: VerificationResponse
    reward_seconds: int
    break_granted: bool


class SessionOrchestrator:
    """
    Core session engine.

    Handles:
    - Session lifecycle (goal, focus countdown, early end, completion)
    - Evidence review: delta tracking, verification, break rewards
    - Break countdown and app-blocking hand-off
    - Persistence and resume after the process was suspended or killed

    The engine does not own a thread. ``tick()`` is called once a second
    by ``run()`` or by the host UI's own timer; the verification call is
    the only coroutine and it never blocks the tick.
    """

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    def __init__(
        self,
        store: Optional[StateStore] = None,
        verifier: Optional[Verifier] = None,
        reward_policy: Optional[RewardPolicy] = None,
        blocker: Optional[AppBlocker] = None,
        recognizer: Optional[TextRecognizer] = None,
        selection: Any = None,
        pause_main_timer_during_break: Optional[bool] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Args:
            store: Persisted state backend (defaults to StateStore in config.STATE_DIR).
            verifier: Progress judge (defaults to create_verifier()).
            reward_policy: Score-to-break mapping (defaults to get_reward_policy()).
            blocker: App-blocking collaborator (defaults to NoOpBlocker).
            recognizer: Image text recognizer (created lazily if omitted).
            selection: Opaque app/site selection passed to the blocker.
            pause_main_timer_during_break: Freeze the main countdown during
                review and breaks (defaults to config.PAUSE_MAIN_TIMER_DURING_BREAK).
            clock: Returns "now" (tests inject a fake clock).
        """
        self.store: StateStore = store or StateStore()
        self.verifier: Verifier = verifier or create_verifier()
        self.reward_policy: RewardPolicy = reward_policy or get_reward_policy()
        self.blocker: AppBlocker = blocker or NoOpBlocker()
        self._recognizer: Optional[TextRecognizer] = recognizer
        self.selection = selection
        if pause_main_timer_during_break is None:
            pause_main_timer_during_break = config.PAUSE_MAIN_TIMER_DURING_BREAK
        self.pause_main_timer_during_break: bool = pause_main_timer_during_break
        self._clock: Callable[[], datetime] = clock or datetime.now

        # Persisted collaborators
        self.progress = ProgressStateManager(self.store)
        self.history = SessionHistory(self.store)
        self.active_timer: Optional[ActiveTimerState] = None

        # Session state
        self.phase: SessionPhase = SessionPhase.IDLE
        self.break_end_time: Optional[datetime] = None
        self._restored_timer: Optional[ActiveTimerState] = None
        self._verifying: bool = False
        # Bumped whenever a session starts or ends so late verification
        # results can tell they belong to a finished session
        self._session_token: int = 0

        # ---- Callbacks (set by the UI) ----
        self.on_status_change: Optional[Callable[[SessionPhase, str], None]] = None
        self.on_error: Optional[Callable[[str, str], None]] = None
        self.on_break_started: Optional[Callable[[int], None]] = None
        self.on_session_ended: Optional[Callable[[CompletedSession], None]] = None

    @property
    def recognizer(self) -> TextRecognizer:
        if self._recognizer is None:
            self._recognizer = OpenAITextRecognizer()
        return self._recognizer

    @property
    def is_verifying(self) -> bool:
        return self._verifying

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def resume(self) -> SessionPhase:
        """
        Restore a session persisted by a previous process.

        - Timer expired while suspended: log it as completed, clear it and
          leave a pending completion notice.
        - Timer still running: continue focusing (or ask for the goal again
          if the progress state was lost).

        Safe to call repeatedly; an expired timer is recorded only once.
        """
        if self.phase in ACTIVE_PHASES or self.phase is SessionPhase.AWAITING_GOAL:
            return self.phase

        timer = self._load_active_timer()
        if timer is None:
            if self.progress.current_state is not None:
                logger.info("Clearing stale progress state with no active timer")
                self.progress.clear_state()
            return self.phase

        now = self._now()
        if timer.is_paused:
            # Process stopped during review or a paused break
            timer = timer.resumed(now)
            self.store.set(config.STATE_KEY_ACTIVE_TIMER, timer.to_dict())
            logger.info("Restored a paused timer, end time shifted by the paused span")

        if timer.is_expired(now):
            logger.info("Session completed while the app was closed")
            session = CompletedSession(
                duration_seconds=timer.total_duration_seconds,
                completed=True,
                breaks_taken=timer.breaks_taken,
                date=timer.end_time,
            )
            self.history.add(session)
            self._clear_session_state()
            self.store.set(config.STATE_KEY_PENDING_COMPLETION, session.to_dict())
            self._disengage_blocking()
            self._set_phase(SessionPhase.COMPLETED)
            return self.phase

        self._session_token += 1
        if self.progress.current_state is None:
            logger.info("Restored timer has no progress state, asking for goal")
            self._restored_timer = timer
            self._set_phase(SessionPhase.AWAITING_GOAL)
            return self.phase

        self.active_timer = timer
        logger.info(f"Resumed session with {timer.time_remaining(now)}s remaining")
        self._engage_blocking(timer.time_remaining(now))
        self._set_phase(SessionPhase.FOCUSING)
        return self.phase

    def begin_session(self) -> SessionPhase:
        """
        Start a new session flow.

        Picks up any persisted session first; otherwise waits for a goal.

        Raises:
            SessionStateError: If a session is already running.
        """
        if self.phase in ACTIVE_PHASES:
            raise SessionStateError("A session is already running")
        if self.phase is SessionPhase.AWAITING_GOAL:
            return self.phase

        self.resume()
        if self.phase in ACTIVE_PHASES or self.phase is SessionPhase.AWAITING_GOAL:
            return self.phase

        self._set_phase(SessionPhase.AWAITING_GOAL)
        return self.phase

    def start_focus(self, goal: str, duration_seconds: Optional[int] = None) -> SessionPhase:
        """
        Accept the session goal and start the focus countdown.

        Args:
            goal: What the user wants to get done (must not be blank).
            duration_seconds: Session length; ignored when resuming a
                restored timer.

        Raises:
            SessionStateError: If not awaiting a goal.
            ValidationError: Blank goal or non-positive duration.
            AuthorizationError, BlockingError: Blocking could not start.
        """
        if self.phase is not SessionPhase.AWAITING_GOAL:
            raise SessionStateError("Start a new session before setting a goal")

        goal = (goal or "").strip()
        if not goal:
            raise ValidationError("Please enter a goal for this session")

        now = self._now()
        timer = self._restored_timer
        if timer is None:
            if isinstance(duration_seconds, bool) or not isinstance(duration_seconds, int) \
                    or duration_seconds <= 0:
                raise ValidationError("Session duration must be greater than zero")
            timer = ActiveTimerState.starting_at(now, duration_seconds)

        # Nothing is persisted until blocking is confirmed
        self._engage_blocking(timer.time_remaining(now), raise_errors=True)

        self.progress.start_new_session(goal)
        self.active_timer = timer
        self._save_active_timer()
        self._restored_timer = None
        self._session_token += 1

        logger.info(f"Focus started: {timer.total_duration_seconds}s, goal={goal!r}")
        self._set_phase(SessionPhase.FOCUSING)
        return self.phase

    def tick(self) -> SessionPhase:
        """Advance the countdowns by re-reading the clock."""
        now = self._now()

        if self.phase is SessionPhase.FOCUSING:
            if self.time_remaining(now) <= 0:
                self._complete_session()

        elif self.phase is SessionPhase.ON_BREAK:
            if not self.pause_main_timer_during_break and self.time_remaining(now) <= 0:
                self._complete_session()
            elif self.break_time_remaining(now) <= 0:
                logger.info("Break time ended")
                self.end_break()

        return self.phase

    async def run(self, interval: Optional[float] = None) -> SessionPhase:
        """Tick until the session leaves the active phases."""
        interval = interval or config.TICK_INTERVAL
        while self.phase in ACTIVE_PHASES:
            self.tick()
            if self.phase not in ACTIVE_PHASES:
                break
            await asyncio.sleep(interval)
        return self.phase

    def end_session(self) -> Optional[CompletedSession]:
        """
        End the session early.

        Returns:
            The incomplete session record, or None if nothing had started.
        """
        if self.phase not in ACTIVE_PHASES and self.phase is not SessionPhase.AWAITING_GOAL:
            return None

        timer = self.active_timer or self._restored_timer
        if timer is None:
            # Goal prompt dismissed before anything started
            self._clear_session_state()
            self._set_phase(SessionPhase.IDLE)
            return None

        if self.active_timer is not None:
            remaining = self.time_remaining()
        else:
            remaining = timer.time_remaining(self._now())

        session = CompletedSession(
            duration_seconds=timer.total_duration_seconds - remaining,
            completed=False,
            breaks_taken=timer.breaks_taken,
        )
        self._finish(session, SessionPhase.ABANDONED)
        return session

    def take_pending_completion(self) -> Optional[CompletedSession]:
        """Return the completed-while-closed notice once, then forget it."""
        data = self.store.get(config.STATE_KEY_PENDING_COMPLETION)
        if data is None:
            return None
        self.store.remove(config.STATE_KEY_PENDING_COMPLETION)
        try:
            return CompletedSession.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding malformed pending completion: {e}")
            return None

    # ------------------------------------------------------------------
    # Evidence review and breaks
    # ------------------------------------------------------------------

    def request_break(self) -> SessionPhase:
        """
        Leave the focus countdown to submit progress evidence.

        Raises:
            SessionStateError: If not currently focusing.
        """
        self.tick()
        if self.phase is not SessionPhase.FOCUSING:
            raise SessionStateError("Breaks can only be requested while focusing")

        if self.pause_main_timer_during_break:
            self.active_timer = self.active_timer.paused(self._now())
            self._save_active_timer()
        self._set_phase(SessionPhase.EVIDENCE_REVIEW)
        return self.phase

    def cancel_review(self) -> SessionPhase:
        """Return to focusing without submitting evidence."""
        if self.phase is not SessionPhase.EVIDENCE_REVIEW:
            return self.phase
        if self._verifying:
            raise SessionStateError("A verification is already in progress")
        self._return_to_focus()
        return self.phase

    async def extract_image_text(self, images: Sequence[ImageSource]) -> str:
        """
        Recognize text in evidence images. No session state changes.

        Raises:
            EvidenceExtractionError: If an image cannot be read.
            ConfigurationError: If text recognition has no credentials.
        """
        if not images:
            return ""
        try:
            return await extract_text(images, self.recognizer)
        except ClastError as e:
            self._notify_error(e.error_type, f"Could not read text from images: {e}")
            raise

    async def submit_evidence(self, note: str = "", image_text: str = "") -> Optional[VerificationOutcome]:
        """
        Verify progress and, if it earns one, start a break.

        Progress state is updated on every successful verification (granted
        or not) so the same evidence is never counted as new twice. Failures
        leave it untouched and return to focusing.

        Args:
            note: What the user says they accomplished.
            image_text: Text recognized from their screenshots.

        Returns:
            The outcome, or None if the session ended while verifying.

        Raises:
            SessionStateError: Not reviewing evidence, or a call is in flight.
            ValidationError: Both note and image text are blank.
            ConfigurationError, TransportError, ProtocolError: Verification failed.
        """
        if self.phase is not SessionPhase.EVIDENCE_REVIEW:
            raise SessionStateError("Request a break before submitting evidence")
        if self._verifying:
            raise SessionStateError("A verification is already in progress")

        state = self.progress.current_state
        if state is None:
            raise SessionStateError("No active session state found")

        evidence_text = combine_evidence(note, image_text)
        if not evidence_text:
            raise ValidationError("Describe your progress or attach a screenshot")

        delta = self.progress.get_evidence_delta(evidence_text)
        user_note = note if note and note.strip() else config.IMAGES_ONLY_NOTE
        token = self._session_token

        self._verifying = True
        try:
            response = await self.verifier.verify_progress(
                session_goal=state.session_goal,
                current_summary=state.state_summary,
                user_note=user_note,
                scraped_delta=delta,
            )
        except ClastError as e:
            logger.warning(f"Verification failed ({e.error_type}): {e}")
            if token == self._session_token and self.phase is SessionPhase.EVIDENCE_REVIEW:
                self._return_to_focus()
            self._notify_error(e.error_type, str(e))
            raise
        except asyncio.CancelledError:
            if token == self._session_token and self.phase is SessionPhase.EVIDENCE_REVIEW:
                self._return_to_focus()
            raise
        finally:
            self._verifying = False

        if token != self._session_token or self.phase is not SessionPhase.EVIDENCE_REVIEW:
            logger.info("Session ended during verification, discarding result")
            return None

        if self.time_remaining() <= 0:
            logger.info("Session time ran out during verification, discarding result")
            self._complete_session()
            return None

        self.progress.update_state(response.updated_summary, evidence_text)
        reward = self.reward_policy.reward_seconds(response.score, response.allow_break)
        granted = response.allow_break and reward > 0

        logger.info(
            f"Verification decision: score={response.score:.2f}, "
            f"allowBreak={response.allow_break}, reward={reward}s"
        )

        if granted:
            self._start_break(reward)
        else:
            self._return_to_focus()

        return VerificationOutcome(response=response, reward_seconds=reward, break_granted=granted)

    def end_break(self) -> SessionPhase:
        """End the break (timer ran out or user ended it early) and re-block."""
        if self.phase is not SessionPhase.ON_BREAK:
            return self.phase

        self.break_end_time = None
        self._return_to_focus()
        remaining = self.time_remaining()
        if remaining > 0:
            self._engage_blocking(remaining)
        logger.info(f"Break ended, {remaining}s of focus remaining")
        return self.phase

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def time_remaining(self, now: Optional[datetime] = None) -> int:
        """Seconds left in the focus session (frozen while paused)."""
        if self.active_timer is None:
            return 0
        return self.active_timer.time_remaining(now or self._now())

    def break_time_remaining(self, now: Optional[datetime] = None) -> int:
        if self.phase is not SessionPhase.ON_BREAK or self.break_end_time is None:
            return 0
        remaining = (self.break_end_time - (now or self._now())).total_seconds()
        return max(0, int(remaining))

    def get_status(self) -> Dict[str, Any]:
        """
        Snapshot for views (polled or read after a callback).

        Returns:
            dict with keys: phase, status_text, goal, time_remaining,
            break_time_remaining, total_duration, breaks_taken,
            break_number, progress, is_verifying.
        """
        now = self._now()
        state = self.progress.current_state
        total = self.active_timer.total_duration_seconds if self.active_timer else 0
        remaining = self.time_remaining(now)
        return {
            "phase": self.phase.value,
            "status_text": _PHASE_TEXT[self.phase],
            "goal": state.session_goal if state else None,
            "time_remaining": remaining,
            "break_time_remaining": self.break_time_remaining(now),
            "total_duration": total,
            "breaks_taken": self.active_timer.breaks_taken if self.active_timer else 0,
            "break_number": state.break_number if state else 0,
            "progress": (total - remaining) / total if total > 0 else 0.0,
            "is_verifying": self._verifying,
        }

    # ------------------------------------------------------------------
    # Internal transitions
    # ------------------------------------------------------------------

    def _now(self) -> datetime:
        return self._clock()

    def _start_break(self, seconds: int) -> None:
        self.break_end_time = self._now() + timedelta(seconds=seconds)
        self.active_timer = self.active_timer.with_breaks(self.active_timer.breaks_taken + 1)
        self._save_active_timer()
        self._disengage_blocking()
        logger.info(f"Break started: {seconds}s")
        self._set_phase(SessionPhase.ON_BREAK)
        if self.on_break_started:
            try:
                self.on_break_started(seconds)
            except Exception as e:
                logger.debug(f"on_break_started callback error: {e}")

    def _return_to_focus(self) -> None:
        """Go back to focusing, pushing the end time out by any paused time."""
        if self.active_timer is not None and self.active_timer.is_paused:
            self.active_timer = self.active_timer.resumed(self._now())
            self._save_active_timer()
        self._set_phase(SessionPhase.FOCUSING)

    def _complete_session(self) -> None:
        timer = self.active_timer
        session = CompletedSession(
            duration_seconds=timer.total_duration_seconds,
            completed=True,
            breaks_taken=timer.breaks_taken,
        )
        self._finish(session, SessionPhase.COMPLETED)

    def _finish(self, session: CompletedSession, phase: SessionPhase) -> None:
        self.history.add(session)
        self._clear_session_state()
        self._disengage_blocking()
        self._set_phase(phase)
        self._notify_session_ended(session)

    def _clear_session_state(self) -> None:
        self.store.remove(config.STATE_KEY_ACTIVE_TIMER)
        self.progress.clear_state()
        self.active_timer = None
        self._restored_timer = None
        self.break_end_time = None
        self._session_token += 1

    # ------------------------------------------------------------------
    # Blocking hand-off
    # ------------------------------------------------------------------

    def _engage_blocking(self, remaining_seconds: int, raise_errors: bool = False) -> None:
        minutes = math.ceil(remaining_seconds / 60)
        try:
            self.blocker.start_blocking(self.selection, minutes)
        except (AuthorizationError, BlockingError) as e:
            if raise_errors:
                self._notify_error(e.error_type, str(e))
                raise
            logger.warning(f"Failed to re-enable app blocking: {e}")
            self._notify_error(e.error_type, f"Failed to re-enable app blocking: {e}")

    def _disengage_blocking(self) -> None:
        try:
            self.blocker.stop_blocking()
        except Exception as e:
            logger.warning(f"Failed to stop app blocking: {e}")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _save_active_timer(self) -> None:
        if self.active_timer is not None:
            self.store.set(config.STATE_KEY_ACTIVE_TIMER, self.active_timer.to_dict())

    def _load_active_timer(self) -> Optional[ActiveTimerState]:
        data = self.store.get(config.STATE_KEY_ACTIVE_TIMER)
        if data is None:
            return None
        try:
            return ActiveTimerState.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding malformed active timer: {e}")
            self.store.remove(config.STATE_KEY_ACTIVE_TIMER)
            return None

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def _set_phase(self, phase: SessionPhase) -> None:
        if phase is not self.phase:
            logger.info(f"Phase: {self.phase.value} -> {phase.value}")
        self._notify_status_change(phase, _PHASE_TEXT[phase])

    def _notify_status_change(self, phase: SessionPhase, text: str) -> None:
        self.phase = phase
        if self.on_status_change:
            try:
                self.on_status_change(phase, text)
            except Exception as e:
                logger.debug(f"on_status_change callback error: {e}")

    def _notify_error(self, error_type: str, message: str) -> None:
        """Notify of an error via callback."""
        if self.on_error:
            try:
                self.on_error(error_type, message)
            except Exception as e:
                logger.debug(f"on_error callback error: {e}")

    def _notify_session_ended(self, session: CompletedSession) -> None:
        if self.on_session_ended:
            try:
                self.on_session_ended(session)
            except Exception as e:
                logger.debug(f"on_session_ended callback error: {e}")
