from __future__ import annotations

from typing import Any, Iterable

from ..contracts.validate import REPORT, validate
from ..core.exit_codes import ERR_FAILED, ERR_STRUCTURAL, OK
from ..core.serialize import dumps_json
from .extract import ExtractionOutcome
from .model import DocumentReport, Report, ReportEntry, ResultStatus, Verdict


def build_report(outcomes: Iterable[ExtractionOutcome], entries: Iterable[ReportEntry]) -> Report:
    """Group checked entries under their Documents, in extraction order."""
    by_document: dict[str, list[ReportEntry]] = {}
    deadline_exceeded = False
    for entry in entries:
        by_document.setdefault(entry.snippet.document, []).append(entry)
        if entry.result.status == ResultStatus.CANCELLED:
            deadline_exceeded = True
    documents: list[DocumentReport] = []
    for outcome in outcomes:
        if outcome.document is None:
            error = outcome.error.reason if outcome.error is not None else "document could not be loaded"
            if outcome.error is not None and outcome.error.line:
                error = f"{error} (line {outcome.error.line})"
            documents.append(DocumentReport(path=outcome.path, title=outcome.path, error=error))
            continue
        documents.append(
            DocumentReport(
                path=outcome.document.path,
                title=outcome.document.title,
                entries=tuple(by_document.get(outcome.document.path, ())),
            )
        )
    return Report(documents=tuple(documents), deadline_exceeded=deadline_exceeded)


def exit_status(report: Report) -> int:
    if report.structural_errors:
        return ERR_STRUCTURAL
    if any(entry.verdict in (Verdict.FAILED, Verdict.SKIPPED_TIMEOUT) for entry in report.entries):
        return ERR_FAILED
    return OK


def _status_word(code: int) -> str:
    return {OK: "pass", ERR_FAILED: "fail"}.get(code, "error")


def _entry_row(entry: ReportEntry) -> dict[str, Any]:
    return {
        "locator": entry.snippet.locator,
        "index": entry.snippet.index,
        "language": entry.snippet.language,
        "verdict": entry.verdict.value,
        "failure": entry.failure.value if entry.failure is not None else None,
        "status": entry.result.status.value,
        "expected": entry.snippet.expected_output,
        "expected_fault": entry.snippet.expected_fault,
        "actual": entry.result.stdout,
        "fault": entry.result.fault,
        "detail": entry.detail,
    }


def build_report_payload(report: Report) -> dict[str, Any]:
    code = exit_status(report)
    payload: dict[str, Any] = {
        "schema_name": REPORT,
        "schema_version": 1,
        "tool": "snipctl",
        "kind": "snippet-report",
        "status": _status_word(code),
        "exit_code": code,
        "deadline_exceeded": report.deadline_exceeded,
        "summary": dict(report.counts),
        "warnings": [f"{doc.path}: {doc.error}" for doc in report.structural_errors],
        "documents": [
            {
                "path": doc.path,
                "title": doc.title,
                "status": doc.status,
                "error": doc.error,
                "summary": dict(doc.counts),
                "snippets": [_entry_row(entry) for entry in doc.entries],
            }
            for doc in report.documents
        ],
    }
    validate(REPORT, payload)
    return payload


def render_json(payload: dict[str, Any]) -> str:
    return dumps_json(payload)


def _counts_text(counts: dict[str, int] | Any) -> str:
    return (
        f"passed={int(counts.get('passed', 0))} failed={int(counts.get('failed', 0))} "
        f"skipped={int(counts.get('skipped', 0))} total={int(counts.get('total', 0))}"
    )


def _problem_lines(doc: DocumentReport) -> list[str]:
    out: list[str] = []
    for entry in doc.entries:
        if entry.verdict == Verdict.FAILED:
            out.append(f"  - {entry.snippet.locator} [{entry.failure.value if entry.failure else 'failed'}]")
        elif entry.verdict == Verdict.SKIPPED_TIMEOUT:
            out.append(f"  - {entry.snippet.locator} [skipped-timeout]")
        else:
            continue
        out.extend(f"    {line}" for line in entry.detail.splitlines())
    return out


def render_text(report: Report, *, quiet: bool = False, verbose: bool = False) -> str:
    out: list[str] = []
    for doc in report.documents:
        if doc.error is not None:
            out.append(f"ERROR {doc.path}: {doc.error}")
            continue
        problems = _problem_lines(doc)
        if quiet and not problems:
            continue
        out.append(f"{doc.status.upper()} {doc.path} {_counts_text(doc.counts)}")
        if verbose:
            for entry in doc.entries:
                out.append(f"  {entry.verdict.value} {entry.snippet.locator} [{entry.result.duration_ms}ms]")
        out.extend(problems)
    if quiet:
        return "\n".join(out) if out else "PASS"
    if report.deadline_exceeded:
        cancelled = sum(1 for entry in report.entries if entry.result.status == ResultStatus.CANCELLED)
        out.append(f"deadline exceeded: {cancelled} snippet(s) not completed")
    out.append(
        f"summary: documents={len(report.documents)} {_counts_text(report.counts)} "
        f"errors={len(report.structural_errors)}"
    )
    return "\n".join(out)


__all__ = [
    "build_report",
    "build_report_payload",
    "exit_status",
    "render_json",
    "render_text",
]
