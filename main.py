#!/usr/bin/env python3
"""
Clast - Main Entry Point

A focus timer where breaks are earned: before each break you describe
(or screenshot) what you got done, and a verification service decides
whether it counts and how long the break is.

Usage:
    python main.py                          # Interactive session
    python main.py --minutes 25 --goal "Finish report"
    python main.py --history                # Show past sessions
"""

import sys
import asyncio
import logging
import argparse
from typing import List, Optional

import config
from ai.rewards import format_break_duration
from core.engine import SessionOrchestrator, SessionPhase
from core.errors import ClastError
from instance_lock import InstanceLock
from tracking.history import SessionHistory
from tracking.store import StateStore
from tracking.timer import format_clock

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format=config.LOG_FORMAT
)
logger = logging.getLogger(__name__)

# Suppress noisy third-party library logs (HTTP requests, etc.)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("openai").setLevel(logging.WARNING)

HELP_TEXT = """
Commands:
  s   show status
  b   take a break (submit progress) / end break early
  q   end the session early
"""


class ClastCLI:
    """Terminal front end over SessionOrchestrator."""

    def __init__(self, orchestrator: SessionOrchestrator):
        self.engine = orchestrator
        self.engine.on_status_change = self._on_status_change
        self.engine.on_error = self._on_error
        self.engine.on_break_started = self._on_break_started
        self.engine.on_session_ended = self._on_session_ended

    # ---- Callbacks ----

    def _on_status_change(self, phase: SessionPhase, text: str) -> None:
        print(f"• {text}")

    def _on_error(self, error_type: str, message: str) -> None:
        if error_type == "not_authorized":
            print("🔒 App blocking needs permission. Grant Screen Time access and try again.")
        else:
            print(f"❌ {message}")

    def _on_break_started(self, seconds: int) -> None:
        print(f"☕ Break unlocked: {format_break_duration(seconds)}. Apps are unblocked.")

    def _on_session_ended(self, session) -> None:
        if session.completed:
            print(f"\n✨ Session complete! {session.duration_string} focused, "
                  f"{session.breaks_taken} break(s).")
        else:
            print(f"\nSession ended early after {session.duration_string}.")

    # ---- Flow ----

    async def _ask(self, prompt: str) -> str:
        try:
            return (await asyncio.to_thread(input, prompt)).strip()
        except EOFError:
            return "q"

    async def start(self, goal: Optional[str], minutes: Optional[int]) -> bool:
        """Run the goal prompt until focusing starts. Returns False if the user gave up."""
        pending = self.engine.take_pending_completion()
        if pending:
            print(f"✓ Your last session finished while Clast was closed ({pending.duration_string}).")

        self.engine.begin_session()
        if self.engine.phase is SessionPhase.FOCUSING:
            print(f"▶ Resuming session: {format_clock(self.engine.time_remaining())} left")
            return True

        while self.engine.phase is SessionPhase.AWAITING_GOAL:
            goal = goal or await self._ask("🎯 What do you want to get done this session? ")
            if goal.lower() == "q":
                self.engine.end_session()
                return False
            if minutes is None:
                answer = await self._ask("⏱️  How many minutes? ")
                try:
                    minutes = int(answer)
                except ValueError:
                    print("Please enter a whole number of minutes.")
                    continue
            try:
                self.engine.start_focus(goal, minutes * 60)
            except ClastError as e:
                print(f"❌ {e}")
                goal, minutes = None, None
                if e.error_type == "not_authorized":
                    return False
        return True

    async def take_break(self) -> None:
        try:
            self.engine.request_break()
        except ClastError as e:
            print(f"❌ {e}")
            return

        note = await self._ask("📝 What did you accomplish? (blank for screenshots only) ")
        paths_answer = await self._ask("🖼️  Screenshot paths, comma separated (optional): ")
        paths: List[str] = [p.strip() for p in paths_answer.split(",") if p.strip()]

        image_text = ""
        if paths:
            try:
                image_text = await self.engine.extract_image_text(paths)
            except ClastError:
                # Already reported through on_error; the note alone may still be enough
                image_text = ""

        print("🔍 Verifying progress...")
        try:
            outcome = await self.engine.submit_evidence(note, image_text)
        except ClastError as e:
            # Verification failures were reported through on_error already
            if e.error_type in ("validation", "invalid_state"):
                print(f"❌ {e}")
            if self.engine.phase is SessionPhase.EVIDENCE_REVIEW:
                self.engine.cancel_review()
            return

        if outcome is None:
            return
        print(f"   Score: {int(outcome.response.score * 100)}")
        print(f"   {outcome.response.reason}")
        if not outcome.break_granted:
            print("⛔ Not enough progress for a break yet. Keep going!")

    async def command_loop(self) -> None:
        print(HELP_TEXT)
        while self.engine.phase in (SessionPhase.FOCUSING, SessionPhase.ON_BREAK):
            command = (await self._ask("")).lower()
            if self.engine.phase not in (SessionPhase.FOCUSING, SessionPhase.ON_BREAK):
                break
            if command == "s":
                self.print_status()
            elif command == "b":
                if self.engine.phase is SessionPhase.ON_BREAK:
                    self.engine.end_break()
                else:
                    await self.take_break()
            elif command == "q":
                self.engine.end_session()
            elif command:
                print(HELP_TEXT)

    def print_status(self) -> None:
        status = self.engine.get_status()
        line = f"⏱️  {format_clock(status['time_remaining'])} left ({int(status['progress'] * 100)}% complete)"
        if status["phase"] == SessionPhase.ON_BREAK.value:
            line += f" | ☕ break {format_break_duration(status['break_time_remaining'])}"
        print(line)
        print(f"🎯 {status['goal']} | breaks: {status['breaks_taken']}")

    async def run(self, goal: Optional[str], minutes: Optional[int]) -> None:
        if not await self.start(goal, minutes):
            return
        ticker = asyncio.create_task(self.engine.run())
        try:
            await self.command_loop()
        finally:
            if self.engine.phase in (SessionPhase.FOCUSING, SessionPhase.ON_BREAK,
                                     SessionPhase.EVIDENCE_REVIEW):
                # Leave the session persisted; the next launch resumes it
                print("\n⏸️  Exiting. Your session keeps running and will resume next launch.")
            ticker.cancel()


def show_history() -> None:
    """Print the session history with summary statistics."""
    history = SessionHistory(StateStore())
    print("\n" + "=" * 60)
    print("📈 Session History")
    print("=" * 60)
    if not history.sessions:
        print("\nNo sessions yet.")
        return
    print(f"\nTotal sessions: {history.total_sessions}")
    print(f"Success rate: {history.success_rate}%\n")
    for session in history.sessions:
        mark = "✓" if session.completed else "✗"
        print(f"  {mark} {session.date_string():<12} {session.duration_string:>8}  "
              f"{session.breaks_taken} break(s)")


def main():
    """Main entry point — parses arguments and launches the session."""
    parser = argparse.ArgumentParser(
        description="Clast - Focus timer with earned breaks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                               Interactive session
  python main.py --minutes 50 --goal "Draft"   Start straight away
  python main.py --history                     Show past sessions
        """
    )
    parser.add_argument("--goal", help="Session goal (prompted if omitted)")
    parser.add_argument("--minutes", type=int, help="Session length in minutes")
    parser.add_argument("--history", action="store_true", help="Show session history and exit")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.history:
        show_history()
        return

    lock = InstanceLock()
    if not lock.acquire():
        pid = lock.existing_pid()
        pid_info = f" (PID: {pid})" if pid else ""
        print(f"\nClast is already running{pid_info}.")
        print("Only one session can run at a time.\n")
        sys.exit(1)

    try:
        cli = ClastCLI(SessionOrchestrator())
        asyncio.run(cli.run(args.goal, args.minutes))
    except KeyboardInterrupt:
        print("\n\nGoodbye!")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        print(f"\nFatal error: {e}")
        sys.exit(1)
    finally:
        lock.release()


if __name__ == "__main__":
    main()
