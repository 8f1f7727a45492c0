"""
Tests for the ref table.
"""

import datetime
import hashlib
import logging

import pytest

from merkle_vfs.errors import InvalidOperation, InvalidReference, RefConflict
from merkle_vfs.refs import RefTable


def missing_hash() -> str:
    return hashlib.sha256(b"never stored").hexdigest()


class TestSetAndGet:

    def test_namespaces_created(self, db_path, refs):
        for namespace in ("work", "heads", "tags"):
            assert (db_path / "refs" / namespace).is_dir()

    def test_set_and_get(self, refs, store):
        h = store.put_text("x")
        refs.set_ref("refs/heads/main", h)
        assert refs.get_ref("refs/heads/main") == h

    def test_unknown_ref(self, refs):
        assert refs.get_ref("refs/heads/nope") is None

    def test_set_unknown_hash(self, refs):
        with pytest.raises(InvalidReference):
            refs.set_ref("refs/heads/main", missing_hash())
        assert refs.get_ref("refs/heads/main") is None

    @pytest.mark.parametrize("name", ["HEAD", "refs", "refs/", "refs//x", "refs/../x", "refs/.hidden", "/refs/x"])
    def test_bad_names(self, refs, store, name):
        with pytest.raises(InvalidOperation):
            refs.set_ref(name, store.put_text("x"))

    def test_persisted_as_plain_text(self, db_path, refs, store):
        h = store.put_text("x")
        refs.set_ref("refs/tags/v1/final", h)
        assert (db_path / "refs" / "tags" / "v1" / "final").read_text() == h

    def test_reload(self, db_path, refs, store):
        h = store.put_text("x")
        refs.set_ref("refs/heads/main", h)
        fresh = RefTable(db_path, store)
        assert fresh.get_ref("refs/heads/main") == h
        assert len(fresh) == 1

    def test_invalid_ref_file_skipped(self, db_path, store, caplog):
        (db_path / "refs" / "heads").mkdir(parents=True)
        (db_path / "refs" / "heads" / "junk").write_text("not a hash")
        with caplog.at_level(logging.WARNING):
            table = RefTable(db_path, store)
        assert table.get_ref("refs/heads/junk") is None
        assert "refs/heads/junk" in caplog.text


class TestResolveRoot:

    def test_hash(self, refs, store):
        h = store.put_text("x")
        assert refs.resolve_root(h) == h

    def test_missing_hash(self, refs):
        assert refs.resolve_root(missing_hash()) is None

    def test_ref_name(self, refs, store):
        h = store.put_text("x")
        refs.set_ref("refs/heads/main", h)
        assert refs.resolve_root("refs/heads/main") == h

    def test_unknown(self, refs):
        assert refs.resolve_root("refs/heads/ghost") is None

    def test_working_namespace(self, refs):
        assert refs.is_working("refs/work/HEAD")
        assert not refs.is_working("refs/heads/main")


class TestListing:

    def test_most_recent_first(self, refs, store):
        h = store.put_text("x")
        refs.set_ref("refs/heads/a", h)
        refs.set_ref("refs/heads/b", h)
        refs.set_ref("refs/tags/c", h)
        refs.set_ref("refs/heads/a", h)
        assert [r.name for r in refs.list_refs()] == ["refs/heads/a", "refs/tags/c", "refs/heads/b"]

    def test_prefix(self, refs, store):
        h = store.put_text("x")
        refs.set_ref("refs/heads/a", h)
        refs.set_ref("refs/tags/c", h)
        assert [r.name for r in refs.list_refs("refs/tags/")] == ["refs/tags/c"]

    def test_info_fields(self, refs, store):
        h = store.put_text("x")
        refs.set_ref("refs/heads/a", h)
        (info,) = refs.list_refs()
        assert info.hash == h
        assert info.updated_at.tzinfo == datetime.timezone.utc

    def test_changes_since(self, refs, store):
        h = store.put_text("x")
        refs.set_ref("refs/heads/old", h)
        refs.set_ref("refs/heads/new", h)
        cutoff = (refs.times["refs/heads/old"] + refs.times["refs/heads/new"]) / 2
        assert [r.name for r in refs.changes_since(cutoff)] == ["refs/heads/new"]

    def test_changes_since_includes_exact_time(self, refs, store):
        h = store.put_text("x")
        refs.set_ref("refs/heads/old", h)
        refs.set_ref("refs/heads/new", h)
        since = refs.times["refs/heads/new"]
        assert [r.name for r in refs.changes_since(since)] == ["refs/heads/new"]


class TestDelete:

    def test_delete(self, db_path, refs, store):
        refs.set_ref("refs/heads/a", store.put_text("x"))
        assert refs.delete_ref("refs/heads/a") is True
        assert refs.get_ref("refs/heads/a") is None
        assert not (db_path / "refs" / "heads" / "a").exists()
        assert refs.list_refs() == []

    def test_delete_missing(self, refs):
        assert refs.delete_ref("refs/heads/none") is False
        assert refs.delete_ref("not-a-ref") is False


class TestNotifications:

    def test_set_notifies(self, refs, store):
        seen = []
        refs.subscribe(lambda name, h: seen.append((name, h)), "refs/heads/a")
        h = store.put_text("x")
        refs.set_ref("refs/heads/a", h)
        refs.set_ref("refs/heads/b", h)
        assert seen == [("refs/heads/a", h)]

    def test_unchanged_hash_is_silent(self, refs, store):
        h = store.put_text("x")
        refs.set_ref("refs/heads/a", h)
        seen = []
        refs.subscribe(lambda name, h: seen.append(h))
        refs.set_ref("refs/heads/a", h)
        assert seen == []

    def test_delete_notifies_empty_hash(self, refs, store):
        refs.set_ref("refs/heads/a", store.put_text("x"))
        seen = []
        refs.subscribe(lambda name, h: seen.append((name, h)))
        refs.delete_ref("refs/heads/a")
        assert seen == [("refs/heads/a", "")]

    def test_failing_listener_dropped(self, refs, store, caplog):
        calls = []

        def broken(name, h):
            calls.append(h)
            raise RuntimeError("connection closed")

        refs.subscribe(broken)
        with caplog.at_level(logging.WARNING):
            refs.set_ref("refs/heads/a", store.put_text("1"))
        refs.set_ref("refs/heads/a", store.put_text("2"))
        assert len(calls) == 1
        assert "connection closed" in caplog.text

    def test_unsubscribe(self, refs, store):
        seen = []
        listener = refs.subscribe(lambda name, h: seen.append(h))
        assert refs.unsubscribe(listener)
        assert not refs.unsubscribe(listener)
        refs.set_ref("refs/heads/a", store.put_text("x"))
        assert seen == []


class TestExpectedHash:

    def test_matching_expected(self, refs, store):
        h1 = store.put_text("1")
        h2 = store.put_text("2")
        refs.set_ref("refs/heads/a", h1)
        refs.set_ref("refs/heads/a", h2, expected=h1)
        assert refs.get_ref("refs/heads/a") == h2

    def test_stale_expected(self, refs, store):
        h1 = store.put_text("1")
        h2 = store.put_text("2")
        refs.set_ref("refs/heads/a", h1)
        with pytest.raises(RefConflict) as info:
            refs.set_ref("refs/heads/a", h2, expected=h2)
        assert info.value.actual == h1
        assert refs.get_ref("refs/heads/a") == h1

    def test_expected_absent(self, refs, store):
        h = store.put_text("1")
        refs.set_ref("refs/heads/new", h, expected="")
        with pytest.raises(RefConflict):
            refs.set_ref("refs/heads/new", h, expected="")
