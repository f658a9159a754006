# FILE: tests/test_progress.py
"""
Tests for blender_agent/agent/progress.py
Append-only progress log with merge-by-step.
"""

import sys
from pathlib import Path

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))


class TestProgressTracker:
    """Test progress entries."""

    def test_add_appends_in_order(self):
        """Entries keep insertion order with unique ids."""
        from blender_agent.agent.progress import ProgressTracker

        tracker = ProgressTracker()
        tracker.add("db_history", "Loaded history")
        tracker.add("agent_loop_1", "Iteration 1")
        steps = tracker.to_list()
        assert [s["step"] for s in steps] == ["db_history", "agent_loop_1"]
        assert steps[0]["id"] != steps[1]["id"]

    def test_add_error_records_error(self):
        """add_error stores the error text."""
        from blender_agent.agent.progress import ProgressTracker

        tracker = ProgressTracker()
        entry = tracker.add_error("agent_act_1", "Execution failed", ValueError("bad"))
        assert entry.error == "bad"
        assert tracker.to_list()[0]["error"] == "bad"

    def test_merge_updates_latest_same_step(self):
        """merge patches the most recent entry with the same step."""
        from blender_agent.agent.progress import ProgressTracker

        tracker = ProgressTracker()
        tracker.add("asset_search", "Searching", data={"provider": "sketchfab"})
        tracker.add("agent_loop_1", "Iteration 1")
        tracker.merge("asset_search", message="Imported", data={"provider": "sketchfab", "uid": "abc"})
        assert len(tracker) == 2
        entry = tracker.find("asset_search")
        assert entry.message == "Imported"
        assert entry.data["uid"] == "abc"

    def test_merge_without_match_appends(self):
        """merge with an unknown step appends a new entry."""
        from blender_agent.agent.progress import ProgressTracker

        tracker = ProgressTracker()
        tracker.merge("capture_viewport", message="Captured")
        assert len(tracker) == 1
        assert tracker.steps[0].message == "Captured"

    def test_merge_keeps_unspecified_fields(self):
        """Fields not passed to merge are untouched."""
        from blender_agent.agent.progress import ProgressTracker

        tracker = ProgressTracker()
        tracker.add("rag", "Searching docs", data={"query": "bevel"})
        tracker.merge("rag", message="3 chunks")
        assert tracker.find("rag").data == {"query": "bevel"}

    def test_length_never_decreases(self):
        """No operation removes entries."""
        from blender_agent.agent.progress import ProgressTracker

        tracker = ProgressTracker()
        sizes = []
        for op in range(6):
            if op % 2:
                tracker.merge("step", message=str(op))
            else:
                tracker.add(f"step_{op}", "m")
            sizes.append(len(tracker))
        assert sizes == sorted(sizes)
