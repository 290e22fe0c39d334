"""Read the raised exception back out of an interpreter's stderr."""

from __future__ import annotations

import re

_TRACEBACK_HEADER = "Traceback (most recent call last):"
_FAULT_LINE_RE = re.compile(r"^(?P<name>[A-Za-z_][\w.]*)(?::.*)?$")


def exception_line(stderr: str) -> str | None:
    """Return the `Name: message` line of the last traceback in `stderr`.

    Frames, source excerpts and carets are indented under the header; the first
    line back at column zero names the exception. Continuation lines of a
    multi-line message and `add_note` notes follow it and are ignored. Without a
    traceback (syntax errors, plain stderr writes) the last non-blank line is used.
    """
    lines = stderr.splitlines()
    header = None
    for idx, line in enumerate(lines):
        if line.rstrip() == _TRACEBACK_HEADER:
            header = idx
    if header is not None:
        for line in lines[header + 1 :]:
            if line.strip() and not line[:1].isspace():
                return line.rstrip()
        return None
    tail = [line.strip() for line in lines if line.strip()]
    return tail[-1] if tail else None


def fault_name(stderr: str) -> str | None:
    line = exception_line(stderr)
    if line is None:
        return None
    match = _FAULT_LINE_RE.match(line)
    return match.group("name") if match else None


__all__ = ["exception_line", "fault_name"]
