"""Tests for the RefStore: branches, HEAD, mirrors, remotes."""

import pytest

from snapgit import Branch, Detached, MergeState, RefStore
from snapgit.kv.memory import Memory


class TestBranches:
    def test_missing_branch(self):
        refs = RefStore()
        assert refs.get_branch("main") is None

    def test_create_with_expected_none(self):
        refs = RefStore()
        assert refs.set_branch("main", None, "c1")
        assert refs.get_branch("main") == "c1"

    def test_create_fails_if_exists(self):
        refs = RefStore()
        refs.set_branch("main", None, "c1")
        assert not refs.set_branch("main", None, "c2")
        assert refs.get_branch("main") == "c1"

    def test_cas_advance(self):
        refs = RefStore()
        refs.set_branch("main", None, "c1")
        assert refs.set_branch("main", "c1", "c2")
        assert refs.get_branch("main") == "c2"

    def test_cas_conflict(self):
        refs = RefStore()
        refs.set_branch("main", None, "c1")
        refs.set_branch("main", "c1", "c2")
        assert not refs.set_branch("main", "c1", "c3")
        assert refs.get_branch("main") == "c2"

    def test_delete(self):
        refs = RefStore()
        refs.set_branch("dev", None, "c1")
        assert refs.delete_branch("dev")
        assert not refs.delete_branch("dev")
        assert refs.get_branch("dev") is None

    def test_branches_listing(self):
        refs = RefStore()
        refs.set_branch("main", None, "c1")
        refs.set_branch("dev", None, "c2")
        assert refs.branches() == {"dev": "c2", "main": "c1"}

    @pytest.mark.parametrize("name", ["", "a/b", "../x", ".hidden", "x.lock", "a b"])
    def test_invalid_names(self, name):
        with pytest.raises(ValueError, match="Invalid branch name"):
            RefStore().set_branch(name, None, "c1")


class TestHead:
    def test_default_head(self):
        assert RefStore().get_head() == Branch("main")
        assert RefStore(default_branch="trunk").get_head() == Branch("trunk")

    def test_set_detached(self):
        refs = RefStore()
        refs.set_head(Detached("c1"))
        assert refs.get_head() == Detached("c1")

    def test_set_branch_head(self):
        refs = RefStore()
        refs.set_head(Detached("c1"))
        refs.set_head(Branch("dev"))
        assert refs.get_head() == Branch("dev")

    def test_head_shared_through_store(self):
        store = Memory()
        RefStore(store).set_head(Detached("c1"))
        assert RefStore(store).get_head() == Detached("c1")

    def test_rejects_other_types(self):
        with pytest.raises(TypeError):
            RefStore().set_head("main")  # type: ignore


class TestRemotes:
    def test_add_and_list(self):
        refs = RefStore()
        assert refs.add_remote("origin", "/srv/repo")
        assert not refs.add_remote("origin", "/elsewhere")
        assert refs.get_remote("origin") == "/srv/repo"
        assert refs.remotes() == {"origin": "/srv/repo"}

    def test_mirrors_are_overwritten(self):
        refs = RefStore()
        refs.set_remote_mirror("origin", "main", "c1")
        refs.set_remote_mirror("origin", "main", "c5")
        assert refs.get_remote_mirror("origin", "main") == "c5"
        assert refs.get_remote_mirror("origin", "dev") is None

    def test_mirrors_are_separate_from_branches(self):
        refs = RefStore()
        refs.set_remote_mirror("origin", "main", "c1")
        assert refs.get_branch("main") is None
        assert refs.branches() == {}

    def test_remote_mirrors_listing(self):
        refs = RefStore()
        refs.add_remote("origin", "/srv/repo")
        refs.set_remote_mirror("origin", "main", "c1")
        refs.set_remote_mirror("origin", "dev", "c2")
        refs.set_remote_mirror("backup", "main", "c3")
        assert refs.remote_mirrors("origin") == {"dev": "c2", "main": "c1"}
        assert refs.remotes() == {"origin": "/srv/repo"}

    def test_remove_remote_drops_mirrors(self):
        refs = RefStore()
        refs.add_remote("origin", "/srv/repo")
        refs.set_remote_mirror("origin", "main", "c1")
        assert refs.remove_remote("origin")
        assert refs.get_remote("origin") is None
        assert refs.remote_mirrors("origin") == {}
        assert not refs.remove_remote("origin")


class TestMergeState:
    def test_round_trip(self):
        refs = RefStore()
        assert refs.get_merge_state() is None
        refs.set_merge_state(MergeState("main", ("t1", "s1")))
        assert refs.get_merge_state() == MergeState("main", ("t1", "s1"))

    def test_clear(self):
        refs = RefStore()
        refs.set_merge_state(MergeState("main", ("t1", "s1")))
        refs.set_merge_state(None)
        assert refs.get_merge_state() is None
