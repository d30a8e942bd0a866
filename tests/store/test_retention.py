"""Tests for cellcache.store.retention."""

from structlog.testing import capture_logs

from cellcache.store.retention import FieldRetentionTracker


class TestFieldRetentionTracker:
    def test_retain_initialises_at_one(self):
        tracker = FieldRetentionTracker()
        tracker.retain(["fld1"])
        assert tracker.count("fld1") == 1
        assert tracker.is_retained("fld1")

    def test_n_retains_need_n_releases(self):
        tracker = FieldRetentionTracker()
        tracker.retain(["fld1"])
        tracker.retain(["fld1"])
        assert tracker.release(["fld1"]) == []
        assert tracker.release(["fld1"]) == ["fld1"]
        assert tracker.count("fld1") == 0
        assert "fld1" not in tracker._counts

    def test_release_returns_only_keys_at_zero(self):
        tracker = FieldRetentionTracker()
        tracker.retain(["fld1", "fld2"])
        tracker.retain(["fld2"])
        assert tracker.release(["fld1", "fld2"]) == ["fld1"]

    def test_over_release_is_clamped_and_logged(self):
        tracker = FieldRetentionTracker(name="tbl1.fields")
        with capture_logs() as logs:
            assert tracker.release(["fld1"]) == ["fld1"]
        assert tracker.count("fld1") == 0
        assert logs == [
            {
                "event": "retention.over_released",
                "log_level": "warning",
                "tracker": "tbl1.fields",
                "key": "fld1",
            }
        ]

    def test_retained_keys(self):
        tracker = FieldRetentionTracker()
        tracker.retain(["fld1", "fld2"])
        tracker.release(["fld1"])
        assert tracker.retained_keys() == ["fld2"]
