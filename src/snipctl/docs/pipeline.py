from __future__ import annotations

from pathlib import Path
from typing import Iterable

from ..config import VerifyConfig
from ..core.context import RunContext
from ..core.errors import ScriptError
from ..core.exit_codes import ERR_INPUT
from ..core.logging import log_event
from .compare import compare
from .discover import discover_documents
from .extract import ExtractionOutcome, load_documents
from .model import Report, Snippet
from .report import build_report
from .runner import run_snippets


def extract_paths(inputs: Iterable[Path], config: VerifyConfig, ctx: RunContext) -> list[ExtractionOutcome]:
    paths = discover_documents(inputs, ctx.cwd, config.include, config.exclude)
    if not paths:
        raise ScriptError("no documents matched the given paths and globs", ERR_INPUT, kind="input_error")
    outcomes = load_documents(paths, config.runnable_languages)
    for outcome in outcomes:
        if outcome.error is not None:
            log_event(ctx, "warn", "extract", "structural-error", document=outcome.path, line=outcome.error.line, error=outcome.error.reason)
        elif outcome.document is not None:
            log_event(ctx, "debug", "extract", "document", document=outcome.path, snippets=len(outcome.document.snippets))
    return outcomes


def verify(inputs: Iterable[Path], config: VerifyConfig, ctx: RunContext) -> Report:
    """Extract, run, compare and aggregate in a single forward pass."""
    outcomes = extract_paths(inputs, config, ctx)
    snippets: list[Snippet] = [s for outcome in outcomes if outcome.document is not None for s in outcome.document.snippets]
    results = run_snippets(snippets, config, ctx)
    report = build_report(outcomes, [compare(result) for result in results])
    log_event(
        ctx,
        "info",
        "report",
        "summary",
        documents=len(report.documents),
        errors=len(report.structural_errors),
        **dict(report.counts),
    )
    return report
