from __future__ import annotations

from snipctl.contracts.validate import validate
from snipctl.core.errors import StructuralError
from snipctl.core.exit_codes import ERR_FAILED, ERR_STRUCTURAL, OK
from snipctl.docs.compare import compare
from snipctl.docs.extract import ExtractionOutcome
from snipctl.docs.model import Document, ExecutionResult, ResultStatus, Snippet, Verdict
from snipctl.docs.report import build_report, build_report_payload, exit_status, render_text


def _snippet(path: str, index: int, expected: str | None = "ok") -> Snippet:
    return Snippet(
        document=path,
        index=index,
        language="python",
        source="print('ok')\n",
        start_line=index * 5 + 1,
        end_line=index * 5 + 3,
        expected_output=expected,
    )


def _document(path: str, snippets: tuple[Snippet, ...]) -> ExtractionOutcome:
    return ExtractionOutcome(path, Document(path=path, title=path.upper(), snippets=snippets))


def _ok(snippet: Snippet, stdout: str = "ok\n", duration_ms: int = 3) -> ExecutionResult:
    return ExecutionResult(snippet=snippet, status=ResultStatus.OK, stdout=stdout, exit_code=0, duration_ms=duration_ms)


def test_empty_document_has_zero_counts() -> None:
    report = build_report([_document("empty.md", ())], [])
    assert len(report.documents) == 1
    doc = report.documents[0]
    assert dict(doc.counts) == {"passed": 0, "failed": 0, "skipped": 0, "total": 0}
    assert doc.status == "pass"
    assert doc.error is None
    assert exit_status(report) == OK
    assert "PASS empty.md passed=0 failed=0 skipped=0 total=0" in render_text(report)


def test_entries_are_reordered_to_extraction_order() -> None:
    snippets = tuple(_snippet("a.md", n) for n in range(4))
    entries = [compare(_ok(s)) for s in reversed(snippets)]
    report = build_report([_document("a.md", snippets)], entries)
    assert [e.snippet.index for e in report.documents[0].entries] == [0, 1, 2, 3]


def test_documents_keep_input_order() -> None:
    a = _snippet("a.md", 0)
    b = _snippet("b.md", 0)
    report = build_report([_document("b.md", (b,)), _document("a.md", (a,))], [compare(_ok(a)), compare(_ok(b))])
    assert [doc.path for doc in report.documents] == ["b.md", "a.md"]
    assert dict(report.counts) == {"passed": 2, "failed": 0, "skipped": 0, "total": 2}


def test_failure_is_listed_with_locator_and_both_values() -> None:
    good = _snippet("ops.md", 0)
    bad = _snippet("ops.md", 1, expected="4")
    report = build_report([_document("ops.md", (good, bad))], [compare(_ok(good)), compare(_ok(bad, stdout="5\n"))])
    assert exit_status(report) == ERR_FAILED
    text = render_text(report)
    assert "FAIL ops.md passed=1 failed=1 skipped=0 total=2" in text
    assert "  - ops.md:6-8 [comparison-mismatch]" in text
    assert "    -4" in text
    assert "    +5" in text
    assert text.splitlines()[-1] == "summary: documents=1 passed=1 failed=1 skipped=0 total=2 errors=0"
    payload = build_report_payload(report)
    row = payload["documents"][0]["snippets"][1]
    assert row["expected"] == "4"
    assert row["actual"] == "5\n"
    assert row["failure"] == "comparison-mismatch"
    assert payload["status"] == "fail"
    assert payload["exit_code"] == ERR_FAILED


def test_structural_error_sets_exit_code_two() -> None:
    good = _snippet("good.md", 0)
    outcomes = [
        ExtractionOutcome("broken.md", None, StructuralError("broken.md", 7)),
        _document("good.md", (good,)),
    ]
    report = build_report(outcomes, [compare(_ok(good))])
    assert exit_status(report) == ERR_STRUCTURAL
    assert report.documents[0].status == "error"
    assert report.documents[0].error == "unterminated code fence (line 7)"
    text = render_text(report)
    assert "ERROR broken.md: unterminated code fence (line 7)" in text
    assert "PASS good.md" in text
    payload = build_report_payload(report)
    assert payload["warnings"] == ["broken.md: unterminated code fence (line 7)"]
    assert payload["status"] == "error"


def test_skipped_timeout_fails_the_run() -> None:
    first = _snippet("slow.md", 0)
    second = _snippet("slow.md", 1)
    entries = [compare(_ok(first)), compare(ExecutionResult(snippet=second, status=ResultStatus.CANCELLED))]
    report = build_report([_document("slow.md", (first, second))], entries)
    assert report.deadline_exceeded
    assert report.documents[0].entries[1].verdict == Verdict.SKIPPED_TIMEOUT
    assert dict(report.counts)["skipped"] == 1
    assert exit_status(report) == ERR_FAILED
    text = render_text(report)
    assert "[skipped-timeout]" in text
    assert "deadline exceeded: 1 snippet(s) not completed" in text


def test_no_expectation_snippets_do_not_fail_the_run() -> None:
    snippet = _snippet("notes.md", 0, expected=None)
    fault = ExecutionResult(snippet=snippet, status=ResultStatus.FAULT, stderr="ValueError: nope\n", fault="ValueError", exit_code=1)
    report = build_report([_document("notes.md", (snippet,))], [compare(fault)])
    assert report.documents[0].entries[0].verdict == Verdict.SKIPPED_NO_EXPECTATION
    assert exit_status(report) == OK


def test_quiet_and_verbose_rendering() -> None:
    snippet = _snippet("a.md", 0)
    report = build_report([_document("a.md", (snippet,))], [compare(_ok(snippet, duration_ms=12))])
    assert render_text(report, quiet=True) == "PASS"
    verbose = render_text(report, verbose=True)
    assert "  passed a.md:1-3 [12ms]" in verbose


def test_report_ignores_durations_for_equality() -> None:
    snippet = _snippet("a.md", 0)
    first = build_report([_document("a.md", (snippet,))], [compare(_ok(snippet, duration_ms=1))])
    second = build_report([_document("a.md", (snippet,))], [compare(_ok(snippet, duration_ms=999))])
    assert first == second
    assert build_report_payload(first) == build_report_payload(second)


def test_payload_matches_contract() -> None:
    snippet = _snippet("a.md", 0)
    report = build_report([_document("a.md", (snippet,)), _document("b.md", ())], [compare(_ok(snippet))])
    payload = build_report_payload(report)
    validate("snipctl.report.v1", payload)
    assert payload["summary"] == {"passed": 1, "failed": 0, "skipped": 0, "total": 1}
    assert [doc["path"] for doc in payload["documents"]] == ["a.md", "b.md"]
    assert payload["documents"][0]["title"] == "A.MD"
