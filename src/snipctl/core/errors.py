from __future__ import annotations

from dataclasses import dataclass

from .exit_codes import ERR_STRUCTURAL


@dataclass
class ScriptError(Exception):
    message: str
    code: int
    kind: str = "generic_error"

    def __str__(self) -> str:
        return self.message


class StructuralError(ScriptError):
    """Malformed fencing in one Document; fails extraction of that Document only."""

    def __init__(self, document: str, line: int, message: str = "unterminated code fence") -> None:
        super().__init__(f"{document}:{line}: {message}", ERR_STRUCTURAL, kind="structural_error")
        self.document = document
        self.line = line
        self.reason = message
