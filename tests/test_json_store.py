"""Tests for the JSON file document store."""

import pytest

from duedesk.adapters.json_store import JsonFileStore
from duedesk.core.errors import InvalidInput, NotFound


@pytest.fixture
def store(tmp_path):
    return JsonFileStore(tmp_path / "data", batch_limit=3)


class TestJsonFileStore:
    def test_creates_data_dir(self, tmp_path):
        JsonFileStore(tmp_path / "nested" / "data")
        assert (tmp_path / "nested" / "data").is_dir()

    def test_set_and_get(self, store):
        store.set("tasks", "t1", {"title": "GST"})
        assert store.get("tasks", "t1") == {"title": "GST"}
        assert store.get("tasks", "missing") is None

    def test_persists_across_instances(self, store):
        store.set("tasks", "t1", {"title": "GST"})
        again = JsonFileStore(store.data_dir)
        assert again.get("tasks", "t1") == {"title": "GST"}

    def test_no_temp_file_left(self, store):
        store.set("tasks", "t1", {"title": "GST"})
        assert [p.name for p in store.data_dir.iterdir()] == ["tasks.json"]

    def test_merge_creates_or_updates(self, store):
        store.merge("jobRuns", "daily", {"last_run_ymd": "2025-01-15"})
        store.merge("jobRuns", "daily", {"updated_at": "x"})
        assert store.get("jobRuns", "daily") == {"last_run_ymd": "2025-01-15", "updated_at": "x"}

    def test_update_missing_raises(self, store):
        with pytest.raises(NotFound):
            store.update("tasks", "nope", {"title": "x"})

    def test_update_merges(self, store):
        store.set("tasks", "t1", {"title": "GST", "status": "PENDING"})
        store.update("tasks", "t1", {"status": "COMPLETED"})
        assert store.get("tasks", "t1") == {"title": "GST", "status": "COMPLETED"}

    def test_delete_is_idempotent(self, store):
        store.set("tasks", "t1", {"title": "GST"})
        store.delete("tasks", "t1")
        store.delete("tasks", "t1")
        assert store.get("tasks", "t1") is None

    def test_add_allocates_id(self, store):
        doc_id = store.add("auditLogs", {"action": "X"})
        assert store.get("auditLogs", doc_id) == {"action": "X"}
        assert store.new_id("tasks") != store.new_id("tasks")

    def test_get_many_skips_missing(self, store):
        store.set("tasks", "a", {"n": 1})
        store.set("tasks", "b", {"n": 2})
        assert store.get_many("tasks", ["a", "x", "b"]) == {"a": {"n": 1}, "b": {"n": 2}}

    def test_query_filters(self, store):
        store.set("tasks", "a", {"due_date_ymd": "2025-01-10", "status": "PENDING", "series_id": "s1"})
        store.set("tasks", "b", {"due_date_ymd": "2025-01-20", "status": "COMPLETED", "series_id": "s1"})
        store.set("tasks", "c", {"due_date_ymd": "2025-02-01", "status": "PENDING"})

        def ids(filters):
            return sorted(i for i, _ in store.query("tasks", filters))

        assert ids([("series_id", "==", "s1")]) == ["a", "b"]
        assert ids([("due_date_ymd", "<=", "2025-01-20"), ("status", "!=", "COMPLETED")]) == ["a"]
        assert ids([("due_date_ymd", ">", "2025-01-10")]) == ["b", "c"]
        assert ids([("status", "in", ["COMPLETED"])]) == ["b"]
        assert ids(None) == ["a", "b", "c"]

    def test_range_filter_ignores_missing_field(self, store):
        store.set("tasks", "a", {"status": "PENDING"})
        assert store.query("tasks", [("due_date_ymd", "<=", "2025-01-20")]) == []

    def test_batch_update(self, store):
        for i in "abc":
            store.set("tasks", i, {"total": 1})
        store.batch_update("tasks", {i: {"total": 5} for i in "abc"})
        assert all(store.get("tasks", i)["total"] == 5 for i in "abc")

    def test_batch_over_limit_rejected(self, store):
        with pytest.raises(InvalidInput):
            store.batch_update("tasks", {i: {} for i in "abcd"})

    def test_batch_with_missing_doc_writes_nothing(self, store):
        store.set("tasks", "a", {"total": 1})
        with pytest.raises(NotFound):
            store.batch_update("tasks", {"a": {"total": 2}, "zz": {"total": 2}})
        assert store.get("tasks", "a") == {"total": 1}
