"""Snippet extraction, execution, comparison and reporting."""

from .compare import compare, normalize_output
from .extract import extract_document, load_documents
from .model import Document, DocumentReport, ExecutionResult, FailureKind, Report, ReportEntry, ResultStatus, Snippet, Verdict
from .pipeline import verify
from .report import build_report, build_report_payload, exit_status, render_text
from .runner import run_snippet, run_snippets

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
    "build_report",
    "build_report_payload",
    "compare",
    "exit_status",
    "extract_document",
    "load_documents",
    "normalize_output",
    "render_text",
    "run_snippet",
    "run_snippets",
    "verify",
]
