"""Tests for path-level diff and three-way patch application."""

from snapgit import Change, TextPatcher, diff
from snapgit.diffpatch import merge_text

BASE = b"one\ntwo\nthree\nfour\nfive\n"


class TestDiff:
    def test_add_remove_modify(self):
        changes = diff(
            {"keep": b"k", "gone": b"g", "edit": b"old"},
            {"keep": b"k", "edit": b"new", "added": b"a"},
        )
        assert list(changes) == [
            Change("added", None, b"a"),
            Change("edit", b"old", b"new"),
            Change("gone", b"g", None),
        ]
        assert changes.paths == ("added", "edit", "gone")

    def test_identical(self):
        assert len(diff({"a": b"1"}, {"a": b"1"})) == 0


class TestApply:
    def test_clean_on_unchanged_tree(self):
        changes = diff({"f": b"old"}, {"f": b"new", "g": b"add"})
        result = TextPatcher().apply(changes, {"f": b"old", "other": b"x"})
        assert result.clean
        assert result.files == {"f": b"new", "g": b"add", "other": b"x"}

    def test_deletion(self):
        changes = diff({"f": b"old"}, {})
        result = TextPatcher().apply(changes, {"f": b"old"})
        assert result.files == {}

    def test_already_applied(self):
        changes = diff({"f": b"old"}, {"f": b"new"})
        result = TextPatcher().apply(changes, {"f": b"new"})
        assert result.clean
        assert result.files == {"f": b"new"}

    def test_non_overlapping_text_edits_merge(self):
        theirs = BASE.replace(b"five", b"FIVE")
        ours = BASE.replace(b"one", b"ONE")
        result = TextPatcher().apply(diff({"f": BASE}, {"f": theirs}), {"f": ours})
        assert result.clean
        assert result.files["f"] == b"ONE\ntwo\nthree\nfour\nFIVE\n"

    def test_overlapping_edits_conflict(self):
        theirs = BASE.replace(b"three", b"theirs")
        ours = BASE.replace(b"three", b"ours")
        result = TextPatcher().apply(diff({"f": BASE}, {"f": theirs}), {"f": ours})
        assert not result.clean
        assert result.conflicts == ("f",)
        merged = result.files["f"]
        assert b"<<<<<<< ours\nours\n=======\ntheirs\n>>>>>>> theirs\n" in merged
        assert merged.startswith(b"one\ntwo\n")

    def test_modify_delete_conflict_keeps_tree(self):
        changes = diff({"f": BASE}, {})
        ours = BASE.replace(b"two", b"TWO")
        result = TextPatcher().apply(changes, {"f": ours})
        assert result.conflicts == ("f",)
        assert result.files["f"] == ours

    def test_binary_clash_conflicts(self):
        changes = diff({"f": b"\x00a"}, {"f": b"\x00b"})
        result = TextPatcher().apply(changes, {"f": b"\x00c"})
        assert result.conflicts == ("f",)
        assert result.files["f"] == b"\x00c"


class TestMergeText:
    def test_binary_returns_none(self):
        assert merge_text(b"\x00", b"a", b"b") is None

    def test_missing_final_newline_in_conflict(self):
        merged, clean = merge_text(b"x", b"ours", b"theirs")
        assert not clean
        assert merged == b"<<<<<<< ours\nours\n=======\ntheirs\n>>>>>>> theirs\n"
