from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from .faults import exception_line


class ResultStatus(str, Enum):
    OK = "ok"
    FAULT = "fault"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class Verdict(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED_NO_EXPECTATION = "skipped-no-expectation"
    SKIPPED_TIMEOUT = "skipped-timeout"

    @property
    def skipped(self) -> bool:
        return self in (Verdict.SKIPPED_NO_EXPECTATION, Verdict.SKIPPED_TIMEOUT)


class FailureKind(str, Enum):
    TIMEOUT = "timeout"
    RUNTIME_FAULT = "runtime-fault"
    COMPARISON_MISMATCH = "comparison-mismatch"
    MISSING_FAULT = "missing-fault"


@dataclass(frozen=True)
class Snippet:
    document: str
    index: int
    language: str
    source: str
    start_line: int
    end_line: int
    expected_output: str | None = None
    expected_fault: str | None = None
    timeout_seconds: float | None = None

    @property
    def has_expectation(self) -> bool:
        return self.expected_output is not None or self.expected_fault is not None

    @property
    def locator(self) -> str:
        return f"{self.document}:{self.start_line}-{self.end_line}"

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.start_line, self.index)


@dataclass(frozen=True)
class Document:
    path: str
    title: str
    snippets: tuple[Snippet, ...] = ()


@dataclass(frozen=True)
class ExecutionResult:
    snippet: Snippet
    status: ResultStatus
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    fault: str | None = None
    duration_ms: int = field(default=0, compare=False)

    @property
    def error_description(self) -> str:
        if self.status == ResultStatus.TIMEOUT:
            return "timed out"
        if self.status == ResultStatus.CANCELLED:
            return "cancelled at run deadline"
        if self.status == ResultStatus.FAULT:
            line = exception_line(self.stderr)
            if line:
                return line.strip()
            return f"exited with code {self.exit_code}"
        return ""


@dataclass(frozen=True)
class ReportEntry:
    snippet: Snippet
    result: ExecutionResult
    verdict: Verdict
    failure: FailureKind | None = None
    detail: str = ""


@dataclass(frozen=True)
class DocumentReport:
    path: str
    title: str
    entries: tuple[ReportEntry, ...] = ()
    error: str | None = None
    counts: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.entries, key=lambda row: row.snippet.sort_key))
        object.__setattr__(self, "entries", ordered)
        if not self.counts:
            object.__setattr__(self, "counts", count_verdicts(ordered))

    @property
    def status(self) -> str:
        if self.error is not None:
            return "error"
        unfinished = any(row.verdict == Verdict.SKIPPED_TIMEOUT for row in self.entries)
        return "fail" if self.counts["failed"] or unfinished else "pass"


@dataclass(frozen=True)
class Report:
    documents: tuple[DocumentReport, ...] = ()
    deadline_exceeded: bool = False
    counts: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.counts:
            entries = [entry for doc in self.documents for entry in doc.entries]
            object.__setattr__(self, "counts", count_verdicts(entries))

    @property
    def structural_errors(self) -> tuple[DocumentReport, ...]:
        return tuple(doc for doc in self.documents if doc.error is not None)

    @property
    def entries(self) -> tuple[ReportEntry, ...]:
        return tuple(entry for doc in self.documents for entry in doc.entries)


def count_verdicts(entries: tuple[ReportEntry, ...] | list[ReportEntry]) -> dict[str, int]:
    passed = sum(1 for row in entries if row.verdict == Verdict.PASSED)
    failed = sum(1 for row in entries if row.verdict == Verdict.FAILED)
    skipped = sum(1 for row in entries if row.verdict.skipped)
    return {"passed": passed, "failed": failed, "skipped": skipped, "total": len(entries)}


__all__ = [
    "Document",
    "DocumentReport",
    "ExecutionResult",
    "FailureKind",
    "Report",
    "ReportEntry",
    "ResultStatus",
    "Snippet",
    "Verdict",
    "count_verdicts",
]
