"""Tests for the snapgit.repository() factory function."""

import pytest

from snapgit import Branch, DirectoryTree, MemoryTree, Repository, repository
from snapgit.kv.directory import Directory
from snapgit.kv.disk import Disk
from snapgit.kv.memory import Memory


class TestRepositoryFactory:
    def test_default_is_in_memory(self):
        repo = repository()
        assert isinstance(repo, Repository)
        assert isinstance(repo.store, Memory)
        assert isinstance(repo.worktree, MemoryTree)
        assert repo.head == Branch("main")

    def test_invalid_kind(self):
        with pytest.raises(ValueError, match="Unknown kind"):
            repository("redis")

    def test_disk_requires_path(self):
        with pytest.raises(ValueError, match="path is required"):
            repository("disk")

    def test_directory_requires_path(self):
        with pytest.raises(ValueError, match="path is required"):
            repository("directory")

    def test_default_branch(self):
        repo = repository(branch="dev")
        assert repo.head == Branch("dev")
        repo.worktree["f"] = b"1"
        tip = repo.commit()
        assert repo.list_branches() == ["dev"]
        assert repo.refs.get_branch("dev") == tip

    def test_worktree_path(self, tmp_path):
        repo = repository(worktree=tmp_path / "work")
        assert isinstance(repo.worktree, DirectoryTree)

    def test_ignore_patterns(self):
        repo = repository(ignore=["*.log"])
        repo.worktree["keep.txt"] = b"k"
        repo.worktree["debug.log"] = b"noise"
        repo.commit()
        assert repo.files() == {"keep.txt": b"k"}


class TestPersistentKinds:
    def test_directory_reopen(self, tmp_path):
        repo = repository("directory", path=tmp_path / "repo")
        assert isinstance(repo.store, Directory)
        repo.worktree["f"] = b"persisted"
        tip = repo.commit()
        repo.create_branch("dev")

        again = repository("directory", path=tmp_path / "repo")
        assert again.current_commit == tip
        assert again.list_branches() == ["dev", "main"]
        assert again.files() == {"f": b"persisted"}

    def test_disk_reopen(self, tmp_path):
        repo = repository("disk", path=tmp_path / "repo")
        assert isinstance(repo.store, Disk)
        tip = repo.commit(b"opaque")
        repo.store.close()

        again = repository("disk", path=tmp_path / "repo")
        assert again.current_commit == tip
        assert again.objects.get(tip).snapshot == b"opaque"
        again.store.close()
