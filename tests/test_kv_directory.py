"""Tests for the Directory KV store."""

import os

import pytest

from snapgit.kv.directory import Directory


@pytest.fixture
def store(tmp_path):
    return Directory(tmp_path / "store", lock_timeout=0.05)


class TestDirectoryBasic:
    def test_set_get(self, store):
        store.set("objects/abc", b"v")
        assert store.get("objects/abc") == b"v"
        assert (store.root / "objects" / "abc").read_bytes() == b"v"

    def test_get_missing(self, store):
        assert store.get("nope") is None

    def test_overwrite(self, store):
        store.set("HEAD", b"old")
        store.set("HEAD", b"new")
        assert store.get("HEAD") == b"new"

    def test_keys_with_prefix(self, store):
        store.set("objects/a", b"1")
        store.set("objects/b", b"2")
        store.set("branches/main", b"3")
        assert list(store.keys("objects/")) == ["objects/a", "objects/b"]
        assert "branches/main" in store.keys()

    def test_keys_skip_temp_and_lock_files(self, store):
        store.set("branches/main", b"1")
        (store.root / "branches" / ".tmp-stray").write_bytes(b"partial")
        (store.root / "branches" / "dev.lock").write_bytes(b"")
        assert list(store.keys()) == ["branches/main"]

    def test_no_temp_files_left_behind(self, store):
        store.set("objects/a", b"1")
        store.cas("objects/b", b"2", expected=None)
        store.cas("objects/a", b"3", expected=b"1")
        leftovers = [
            name for name in os.listdir(store.root / "objects") if name.startswith(".")
        ]
        assert leftovers == []

    def test_invalid_keys(self, store):
        for key in ("../escape", "a//b", ".hidden", "refs/main.lock", ""):
            with pytest.raises(ValueError, match="Invalid key"):
                store.set(key, b"x")

    def test_remove_and_clear(self, store):
        store.set("a", b"1")
        store.set("b/c", b"2")
        store.remove("a")
        store.remove("a")
        assert store.get("a") is None
        store.clear()
        assert list(store.keys()) == []

    def test_survives_reopen(self, store):
        store.set("branches/main", b"abc")
        reopened = Directory(store.root)
        assert reopened.get("branches/main") == b"abc"


class TestDirectoryCAS:
    def test_cas_create(self, store):
        assert store.cas("k", b"val", expected=None)
        assert store.get("k") == b"val"

    def test_cas_create_fails_if_exists(self, store):
        store.set("k", b"existing")
        assert not store.cas("k", b"new", expected=None)
        assert store.get("k") == b"existing"

    def test_cas_success(self, store):
        store.set("k", b"old")
        assert store.cas("k", b"new", expected=b"old")
        assert store.get("k") == b"new"
        assert not (store.root / "k.lock").exists()

    def test_cas_failure(self, store):
        store.set("k", b"old")
        assert not store.cas("k", b"new", expected=b"wrong")
        assert store.get("k") == b"old"

    def test_cas_on_missing_key_with_expected_value(self, store):
        assert not store.cas("k", b"new", expected=b"old")
        assert store.get("k") is None

    def test_held_lock_times_out(self, store):
        store.set("k", b"old")
        (store.root / "k.lock").write_bytes(b"")
        with pytest.raises(TimeoutError):
            store.cas("k", b"new", expected=b"old")
        assert store.get("k") == b"old"

    def test_stale_lock_blocks_until_removed(self, store):
        store.set("k", b"old")
        stale = store.root / "k.lock"
        stale.write_bytes(b"")
        for _ in range(2):
            with pytest.raises(TimeoutError):
                store.cas("k", b"new", expected=b"old")
        stale.unlink()
        assert store.cas("k", b"new", expected=b"old")
