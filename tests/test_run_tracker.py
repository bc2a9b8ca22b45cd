"""
Tests for run statistics and status
"""

from shared.run_tracker import RowResult, RunTracker


def ok(cluster_id):
    return RowResult(cluster_id=cluster_id, success=True, target_table="t")


def bad(cluster_id):
    return RowResult(cluster_id=cluster_id, success=False, target_table="t", error=ValueError("bad"))


class TestRunTracker:
    """Tests for RunTracker"""

    def test_clean_run_is_success(self):
        tracker = RunTracker("s.t")
        tracker.start()
        tracker.set_received(2)
        tracker.record_row(ok("A"))
        tracker.record_row(ok("B"))
        tracker.set_merged(2)

        summary = tracker.complete()

        assert summary.status == RunTracker.STATUS_SUCCESS
        assert summary.records_loaded == 2
        assert summary.rows_merged == 2
        assert summary.failed_rows == []

    def test_failed_row_makes_partial(self):
        tracker = RunTracker("s.t")
        tracker.start()
        tracker.record_row(ok("A"))
        tracker.record_row(bad("B"))

        summary = tracker.complete()

        assert summary.status == RunTracker.STATUS_PARTIAL
        assert summary.records_processed == 2
        assert summary.records_failed == 1
        assert [r.cluster_id for r in summary.failed_rows] == ["B"]

    def test_failed_merge_makes_partial(self):
        tracker = RunTracker("s.t")
        tracker.start()
        tracker.record_row(ok("A"))

        summary = tracker.complete(merge_ok=False, error_message="merge failed")

        assert summary.status == RunTracker.STATUS_PARTIAL
        assert summary.error_message == "merge failed"

    def test_fail(self):
        tracker = RunTracker("s.t")
        tracker.start()

        summary = tracker.fail("schema missing")

        assert summary.status == RunTracker.STATUS_FAILED
        assert summary.error_message == "schema missing"
        assert summary.duration_seconds >= 0

