from __future__ import annotations

import difflib

from .model import ExecutionResult, FailureKind, ReportEntry, ResultStatus, Verdict


def normalize_output(text: str) -> str:
    lines = [line.rstrip() for line in text.replace("\r\n", "\n").replace("\r", "\n").split("\n")]
    while lines and not lines[-1]:
        lines.pop()
    return "\n".join(lines)


def output_diff(expected: str, actual: str) -> str:
    return "\n".join(
        difflib.unified_diff(
            expected.split("\n") if expected else [],
            actual.split("\n") if actual else [],
            fromfile="expected",
            tofile="actual",
            lineterm="",
        )
    )


def fault_matches(expected: str, actual: str | None) -> bool:
    if not actual:
        return False
    return actual == expected or actual.rsplit(".", 1)[-1] == expected.rsplit(".", 1)[-1]


def _compare_output(result: ExecutionResult) -> ReportEntry:
    snippet = result.snippet
    expected = normalize_output(snippet.expected_output or "")
    actual = normalize_output(result.stdout)
    if expected == actual:
        return ReportEntry(snippet, result, Verdict.PASSED)
    return ReportEntry(
        snippet,
        result,
        Verdict.FAILED,
        FailureKind.COMPARISON_MISMATCH,
        output_diff(expected, actual),
    )


def _fault_detail(result: ExecutionResult) -> str:
    snippet = result.snippet
    lines = [result.error_description]
    if snippet.expected_fault is not None:
        lines.append(f"expected {snippet.expected_fault} to be raised, got {result.fault or 'an unrecognised fault'}")
    if snippet.expected_output is not None:
        diff = output_diff(normalize_output(snippet.expected_output), normalize_output(result.stdout))
        if diff:
            lines.append(diff)
    return "\n".join(lines)


def compare(result: ExecutionResult) -> ReportEntry:
    """Classify one ExecutionResult against its Snippet's expectation."""
    snippet = result.snippet
    if not snippet.has_expectation:
        return ReportEntry(snippet, result, Verdict.SKIPPED_NO_EXPECTATION)
    if result.status == ResultStatus.CANCELLED:
        return ReportEntry(snippet, result, Verdict.SKIPPED_TIMEOUT, detail=result.error_description)
    if result.status == ResultStatus.TIMEOUT:
        timeout = result.stderr.splitlines()[-1] if result.stderr else result.error_description
        return ReportEntry(snippet, result, Verdict.FAILED, FailureKind.TIMEOUT, timeout)
    if result.status == ResultStatus.FAULT:
        if snippet.expected_fault is not None and fault_matches(snippet.expected_fault, result.fault):
            if snippet.expected_output is None:
                return ReportEntry(snippet, result, Verdict.PASSED)
            return _compare_output(result)
        return ReportEntry(snippet, result, Verdict.FAILED, FailureKind.RUNTIME_FAULT, _fault_detail(result))
    if snippet.expected_fault is not None:
        return ReportEntry(
            snippet,
            result,
            Verdict.FAILED,
            FailureKind.MISSING_FAULT,
            f"expected {snippet.expected_fault} to be raised",
        )
    return _compare_output(result)
