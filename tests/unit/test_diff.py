"""
Unit tests for history patches.

Tests cover:
- Patch creation for creations, edits and no-ops
- Replaying patches onto the old text
- Mismatch detection
"""

import pytest

from clwm.clwm_lib.diff import PatchError, apply_patch, make_patch


class TestMakePatch:
    """Tests for make_patch."""

    def test_identical_is_empty(self):
        """Identical texts give an empty patch."""
        assert make_patch("same", "same") == ""
        assert make_patch("", "") == ""

    def test_creation(self):
        """Patch from empty text adds every line."""
        patch = make_patch("", "Alice")
        assert patch.splitlines() == [
            "--- original",
            "+++ modified",
            "@@ -0,0 +1 @@",
            "+Alice",
        ]

    def test_edit(self):
        """Patch of an edit removes and adds the changed line."""
        patch = make_patch("Alice", "Alicia")
        assert "-Alice" in patch.splitlines()
        assert "+Alicia" in patch.splitlines()


class TestApplyPatch:
    """Tests for apply_patch."""

    @pytest.mark.parametrize(
        "old,new",
        [
            ("", "Alice"),
            ("Alice", ""),
            ("Alice", "Bob"),
            ("a\nb\nc", "a\nB\nc"),
            ("a\nb\nc", "x\na\nb\nc"),
            ("a\nb\nc", "a\nb\nc\nd"),
            ("\n".join(str(i) for i in range(30)), "\n".join(str(i) for i in range(1, 31))),
        ],
    )
    def test_reconstructs_new_text(self, old, new):
        """Applying a patch yields the new text."""
        assert apply_patch(old, make_patch(old, new)) == new

    def test_empty_patch(self):
        """Empty patch returns the old text unchanged."""
        assert apply_patch("unchanged", "") == "unchanged"

    def test_mismatch(self):
        """Mismatched context raises PatchError."""
        patch = make_patch("Alice", "Bob")
        with pytest.raises(PatchError, match="does not match"):
            apply_patch("Carol", patch)

    def test_out_of_range(self):
        """Hunk past the end of the text raises PatchError."""
        with pytest.raises(PatchError):
            apply_patch("", "@@ -5,1 +5,1 @@\n-x\n+y")

    def test_unexpected_line(self):
        """Unknown line prefix raises PatchError."""
        with pytest.raises(PatchError, match="unexpected"):
            apply_patch("a", "@@ -1 +1 @@\n?a")
