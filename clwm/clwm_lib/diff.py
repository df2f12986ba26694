"""
Textual patches for change history.

make_patch produces a unified diff between two serialized field values;
apply_patch replays such a patch onto the old text. History rows store one
patch per field, with "" as the old text on creation.

Invariants:
    - make_patch(a, a) == ""
    - apply_patch(old, make_patch(old, new)) == new, modulo a trailing newline
      (the diff is line based and does not record end-of-file newlines)
"""

from __future__ import annotations

import difflib
import re

_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


class PatchError(ValueError):
    """A patch does not apply to the given text."""

    pass


def make_patch(old: str, new: str) -> str:
    """Create a unified diff transforming old into new.

    Args:
        old: Previous serialized value ("" on creation)
        new: New serialized value

    Returns:
        Patch text, empty if nothing changed
    """
    lines = difflib.unified_diff(
        old.splitlines(),
        new.splitlines(),
        fromfile="original",
        tofile="modified",
        lineterm="",
    )
    return "\n".join(lines)


def apply_patch(old: str, patch: str) -> str:
    """Apply a patch created by make_patch.

    Args:
        old: Text the patch was computed from
        patch: Unified diff text

    Returns:
        Reconstructed new text

    Raises:
        PatchError: If a context or removed line does not match old
    """
    if not patch:
        return old

    source = old.splitlines()
    result: list[str] = []
    pos = 0
    in_hunk = False

    for line in patch.split("\n"):
        header = _HUNK_HEADER.match(line)
        if header:
            start, length = int(header.group(1)), header.group(2)
            # A zero-length hunk is anchored after its start line
            index = start if length == "0" else start - 1
            if index < pos or index > len(source):
                raise PatchError(f"hunk out of range: {line}")
            result.extend(source[pos:index])
            pos = index
            in_hunk = True
            continue
        if not in_hunk:
            continue  # file headers

        tag, text = line[:1], line[1:]
        if tag == "+":
            result.append(text)
        elif tag in (" ", "-"):
            if pos >= len(source) or source[pos] != text:
                raise PatchError(f"line {pos + 1} does not match patch: {text!r}")
            if tag == " ":
                result.append(text)
            pos += 1
        elif tag != "\\":
            raise PatchError(f"unexpected patch line: {line!r}")

    result.extend(source[pos:])
    return "\n".join(result)
