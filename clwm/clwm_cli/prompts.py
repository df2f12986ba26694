"""
Interactive fallbacks for omitted command-line values.

Every value argument the user leaves out is read from one line of standard
input; definitions and data documents fall back to the user's editor.

Invariants:
    - Prompts go to stderr so stdout carries only command output
    - A trailing newline (and carriage return) is stripped from every answer
    - End of input is an error, never an implicit empty answer
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import sys
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

TRUE_WORDS = ("true", "yes", "y", "1")
FALSE_WORDS = ("false", "no", "n", "0")


class CliInputError(ValueError):
    """User input could not be read or parsed."""

    pass


def read_line(prompt: str) -> str:
    """Read one line from stdin after writing prompt to stderr.

    Raises:
        CliInputError: If stdin is at end of input
    """
    sys.stderr.write(f"{prompt}: ")
    sys.stderr.flush()
    line = sys.stdin.readline()
    if not line:
        raise CliInputError(f"no input for {prompt}")
    return line.rstrip("\r\n")


def arg_input(value: str | None, prompt: str, default: str | None = None) -> str:
    """Return value, or prompt for it when it was omitted.

    Args:
        value: Value given on the command line, None if omitted
        prompt: Text shown to the user
        default: Answer used when the user enters an empty line
    """
    if value is not None:
        return value
    if default is not None:
        answer = read_line(f"{prompt} [{default}]")
        return answer if answer else default
    return read_line(prompt)


def parse_int(text: str, what: str) -> int:
    try:
        return int(text.strip())
    except ValueError as e:
        raise CliInputError(f"{what} must be an integer, got {text!r}") from e


def parse_bool(text: str, what: str) -> bool:
    word = text.strip().lower()
    if word in TRUE_WORDS:
        return True
    if word in FALSE_WORDS:
        return False
    raise CliInputError(f"{what} must be true or false, got {text!r}")


def int_input(value: int | None, prompt: str, default: int | None = None) -> int:
    if value is not None:
        return value
    return parse_int(arg_input(None, prompt, None if default is None else str(default)), prompt)


def optional_int_input(value: int | None, prompt: str) -> int | None:
    """Prompt for an integer that may be left blank (None)."""
    if value is not None:
        return value
    answer = read_line(f"{prompt} (blank for none)")
    return parse_int(answer, prompt) if answer.strip() else None


def bool_input(value: bool | None, prompt: str, default: bool | None = None) -> bool:
    if value is not None:
        return value
    default_text = None if default is None else ("true" if default else "false")
    return parse_bool(arg_input(None, prompt, default_text), prompt)


def read_file(path: str | Path) -> str:
    """Read a UTF-8 document given on the command line.

    Raises:
        CliInputError: If the file cannot be read
    """
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise CliInputError(f"cannot read {path}: {e.strerror or e}") from e


def edit_text(initial: str, editor: str, suffix: str = ".yaml") -> str:
    """Open initial text in the user's editor and return the saved result.

    Args:
        initial: Starting document
        editor: Editor command line, e.g. "vi" or "code --wait"
        suffix: Temporary file suffix, used by editors for highlighting

    Raises:
        CliInputError: If the editor cannot be started or exits non-zero
    """
    fd, name = tempfile.mkstemp(prefix="clwm-", suffix=suffix)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(initial)
        command = shlex.split(editor) + [name]
        logger.debug("Starting editor", extra={"command": command})
        try:
            subprocess.run(command, check=True)
        except (OSError, subprocess.CalledProcessError) as e:
            raise CliInputError(f"editor {editor!r} failed: {e}") from e
        return Path(name).read_text(encoding="utf-8")
    finally:
        os.unlink(name)


def document_input(path: str | None, editor: str, initial: str = "") -> str:
    """Read a document from path, or from the editor when path is omitted."""
    if path is not None:
        return read_file(path)
    return edit_text(initial, editor)
