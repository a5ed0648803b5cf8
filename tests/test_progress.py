"""Unit tests for progress state and evidence delta tracking."""

import unittest
import tempfile
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tracking.progress import (
    ProgressStateManager,
    SessionProgressState,
    combine_evidence,
    compute_delta,
)
from tracking.store import StateStore
import config


class TestComputeDelta(unittest.TestCase):
    """Append detection between consecutive submissions."""

    def test_appended_text_is_the_delta(self):
        state = SessionProgressState("Write essay", last_evidence_text="Wrote intro")
        self.assertEqual(compute_delta(state, "Wrote introAdded conclusion"), "Added conclusion")

    def test_delta_is_trimmed(self):
        state = SessionProgressState("Finish report", last_evidence_text="Wrote 3 paragraphs")
        self.assertEqual(
            compute_delta(state, "Wrote 3 paragraphs and fixed formatting"),
            "and fixed formatting",
        )

    def test_first_submission_is_verbatim(self):
        state = SessionProgressState("Write essay")
        self.assertEqual(compute_delta(state, "  Wrote intro  "), "  Wrote intro  ")

    def test_no_state_is_verbatim(self):
        self.assertEqual(compute_delta(None, "Wrote intro"), "Wrote intro")

    def test_rewritten_evidence_is_verbatim(self):
        """Previous text not contained in the new text -> whole text is new."""
        state = SessionProgressState("Write essay", last_evidence_text="Wrote intro")
        self.assertEqual(compute_delta(state, "Rewrote the intro"), "Rewrote the intro")

    def test_identical_resubmission_is_empty(self):
        state = SessionProgressState("Write essay", last_evidence_text="Wrote intro")
        self.assertEqual(compute_delta(state, "Wrote intro"), "")

    def test_every_occurrence_removed(self):
        state = SessionProgressState("g", last_evidence_text="ab")
        self.assertEqual(compute_delta(state, "ab cd ab"), "cd")


class TestCombineEvidence(unittest.TestCase):

    def test_note_and_image_text(self):
        self.assertEqual(combine_evidence("Did it", "Screen"), "Did it\n\nScreen")

    def test_blank_parts_dropped(self):
        self.assertEqual(combine_evidence("   ", "Screen"), "Screen")
        self.assertEqual(combine_evidence("Did it", ""), "Did it")
        self.assertEqual(combine_evidence("", "  "), "")


class TestSessionProgressState(unittest.TestCase):

    def test_defaults(self):
        state = SessionProgressState("Finish report")
        self.assertEqual(state.state_summary, config.INITIAL_STATE_SUMMARY)
        self.assertEqual(state.break_number, 0)
        self.assertEqual(state.last_evidence_text, "")

    def test_advanced_increments_break_number(self):
        state = SessionProgressState("Finish report").advanced("Intro done.", "Wrote intro")
        self.assertEqual(state.break_number, 1)
        self.assertEqual(state.state_summary, "Intro done.")
        self.assertEqual(state.last_evidence_text, "Wrote intro")
        self.assertEqual(state.session_goal, "Finish report")

    def test_persisted_field_names(self):
        state = SessionProgressState("Finish report", "Summary", 2, "Evidence")
        self.assertEqual(state.to_dict(), {
            "sessionGoal": "Finish report",
            "stateSummary": "Summary",
            "breakNumber": 2,
            "lastEvidenceText": "Evidence",
        })
        self.assertEqual(SessionProgressState.from_dict(state.to_dict()), state)

    def test_negative_break_number_rejected(self):
        with self.assertRaises(ValueError):
            SessionProgressState.from_dict({
                "sessionGoal": "g", "stateSummary": "s", "breakNumber": -1,
            })


class TestProgressStateManager(unittest.TestCase):
    """Persistence through StateStore."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.store = StateStore(Path(self.tmpdir.name))

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_start_and_reload(self):
        manager = ProgressStateManager(self.store)
        manager.start_new_session("Finish report")
        manager.update_state("Intro done.", "Wrote intro")

        reloaded = ProgressStateManager(self.store)
        self.assertEqual(reloaded.current_state, manager.current_state)
        self.assertEqual(reloaded.current_state.break_number, 1)

    def test_start_replaces_previous_state(self):
        manager = ProgressStateManager(self.store)
        manager.start_new_session("Old goal")
        manager.update_state("Something", "Evidence")
        manager.start_new_session("New goal")
        self.assertEqual(manager.current_state, SessionProgressState("New goal"))

    def test_update_without_session_is_noop(self):
        manager = ProgressStateManager(self.store)
        self.assertIsNone(manager.update_state("Summary", "Evidence"))
        self.assertIsNone(self.store.get(config.STATE_KEY_PROGRESS))

    def test_clear_state(self):
        manager = ProgressStateManager(self.store)
        manager.start_new_session("Finish report")
        manager.clear_state()
        self.assertIsNone(manager.current_state)
        self.assertIsNone(ProgressStateManager(self.store).current_state)

    def test_get_evidence_delta_uses_current_state(self):
        manager = ProgressStateManager(self.store)
        manager.start_new_session("Write essay")
        manager.update_state("Intro done.", "Wrote intro")
        self.assertEqual(manager.get_evidence_delta("Wrote introAdded conclusion"), "Added conclusion")

    def test_malformed_state_ignored(self):
        self.store.set(config.STATE_KEY_PROGRESS, {"sessionGoal": "g"})
        self.assertIsNone(ProgressStateManager(self.store).current_state)


if __name__ == '__main__':
    unittest.main()
