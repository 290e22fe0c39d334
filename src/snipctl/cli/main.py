from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .. import __version__
from ..config import load_config, VerifyConfig
from ..core.context import RunContext
from ..core.errors import ScriptError
from ..core.exit_codes import ERR_INTERNAL, ERR_STRUCTURAL, OK
from ..core.logging import log_event
from ..core.serialize import write_json
from ..docs.pipeline import extract_paths, verify
from ..docs.report import build_report_payload, exit_status, render_json, render_text
from .output import emit, render_error, resolve_output_format


def _version_string() -> str:
    return f"snipctl {__version__}"


def _add_selection_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("paths", nargs="+", help="documents or directories to scan")
    p.add_argument("--include", action="append", metavar="GLOB", help="document glob to include (repeatable)")
    p.add_argument("--exclude", action="append", metavar="GLOB", help="document glob to exclude (repeatable)")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="snipctl", description="Verify runnable examples in tutorial documents.")
    p.add_argument("--version", action="version", version=_version_string())
    p.add_argument("--json", action="store_true", help="emit JSON output")
    p.add_argument("--format", choices=["text", "json"], default=None, help="output format")
    p.add_argument("--run-id", help="run identifier attached to log events")
    p.add_argument("--config", help="YAML configuration file (default: ./snipctl.yaml when present)")
    p.add_argument("--log-json", action="store_true", help="emit log events as JSON lines on stderr")
    vg = p.add_mutually_exclusive_group()
    vg.add_argument("--verbose", action="store_true", help="enable verbose diagnostics")
    vg.add_argument("--quiet", action="store_true", help="only report failures")
    sub = p.add_subparsers(dest="cmd", required=True)

    check_p = sub.add_parser("check", help="run snippets and compare them with their declared output")
    _add_selection_args(check_p)
    check_p.add_argument("--timeout", type=float, help="per-snippet timeout in seconds")
    check_p.add_argument("--jobs", type=int, help="number of snippets evaluated in parallel")
    check_p.add_argument("--deadline", type=float, help="global run deadline in seconds")
    check_p.add_argument("--json-report", help="also write the JSON report to this path")

    list_p = sub.add_parser("list", help="list extracted snippets without running them")
    _add_selection_args(list_p)

    config_p = sub.add_parser("config", help="configuration commands")
    config_sub = config_p.add_subparsers(dest="config_cmd", required=True)
    config_sub.add_parser("show", help="print the effective configuration")

    sub.add_parser("version", help="print the snipctl version")
    return p


def _load_config(ctx: RunContext, ns: argparse.Namespace) -> VerifyConfig:
    overrides = {
        "timeout_seconds": getattr(ns, "timeout", None),
        "jobs": getattr(ns, "jobs", None),
        "deadline_seconds": getattr(ns, "deadline", None),
        "include": getattr(ns, "include", None),
        "exclude": getattr(ns, "exclude", None),
    }
    config_file = Path(ns.config) if ns.config else None
    if config_file is not None and not config_file.is_absolute():
        config_file = ctx.cwd / config_file
    return load_config(ctx.cwd, config_file=config_file, overrides=overrides)


def _cmd_check(ctx: RunContext, ns: argparse.Namespace) -> int:
    config = _load_config(ctx, ns)
    report = verify([Path(raw) for raw in ns.paths], config, ctx)
    as_json = ctx.output_format == "json"
    if as_json or ns.json_report:
        payload = build_report_payload(report)
        if ns.json_report:
            write_json(Path(ns.json_report), payload)
        if as_json:
            print(render_json(payload))
    if not as_json:
        print(render_text(report, quiet=ctx.quiet, verbose=ctx.verbose))
    return exit_status(report)


def _cmd_list(ctx: RunContext, ns: argparse.Namespace) -> int:
    config = _load_config(ctx, ns)
    outcomes = extract_paths([Path(raw) for raw in ns.paths], config, ctx)
    documents: list[dict[str, object]] = []
    lines: list[str] = []
    for outcome in outcomes:
        if outcome.document is None:
            reason = outcome.error.reason if outcome.error is not None else "document could not be loaded"
            line = outcome.error.line if outcome.error is not None else 0
            documents.append({"path": outcome.path, "error": reason, "line": line, "snippets": []})
            lines.append(f"ERROR {outcome.path}:{line}: {reason}")
            continue
        rows: list[dict[str, object]] = []
        for snippet in outcome.document.snippets:
            if snippet.expected_fault is not None:
                expectation = f"raises {snippet.expected_fault}"
            elif snippet.expected_output is not None:
                expectation = "output"
            else:
                expectation = "none"
            rows.append(
                {
                    "locator": snippet.locator,
                    "language": snippet.language,
                    "expectation": expectation,
                    "timeout_seconds": snippet.timeout_seconds,
                }
            )
            lines.append(f"{snippet.locator} {snippet.language} expectation={expectation}")
        documents.append({"path": outcome.path, "title": outcome.document.title, "error": None, "snippets": rows})
    failed = any(outcome.error is not None for outcome in outcomes)
    if ctx.output_format == "json":
        emit({"schema_version": 1, "tool": "snipctl", "status": "error" if failed else "ok", "documents": documents}, True)
    else:
        print("\n".join(lines))
    return ERR_STRUCTURAL if failed else OK


def _cmd_config(ctx: RunContext, ns: argparse.Namespace) -> int:
    config = _load_config(ctx, ns)
    emit({"schema_version": 1, "tool": "snipctl", "status": "ok", "config": config.to_payload()}, ctx.output_format == "json")
    return OK


def _cmd_version(ctx: RunContext, ns: argparse.Namespace) -> int:
    if ctx.output_format == "json":
        emit({"schema_version": 1, "tool": "snipctl", "status": "ok", "version": __version__}, True)
    else:
        print(_version_string())
    return OK


COMMANDS = {
    "check": _cmd_check,
    "list": _cmd_list,
    "config": _cmd_config,
    "version": _cmd_version,
}


def main(argv: list[str] | None = None) -> int:
    raw_argv = argv if argv is not None else sys.argv[1:]
    parser = build_parser()
    ns = parser.parse_args(raw_argv)
    fmt = resolve_output_format(cli_json=ns.json, cli_format=ns.format)
    ctx = RunContext.from_args(ns.run_id, fmt, ns.verbose, ns.quiet, ns.log_json)  # type: ignore[arg-type]
    try:
        log_event(ctx, "debug", "cli", "start", cmd=ns.cmd, fmt=ctx.output_format)
        return COMMANDS[ns.cmd](ctx, ns)
    except ScriptError as exc:
        print(
            render_error(as_json=(fmt == "json"), message=str(exc), code=exc.code, kind=exc.kind, run_id=ctx.run_id),
            file=sys.stderr,
        )
        return exc.code
    except Exception as exc:  # pragma: no cover
        print(
            render_error(as_json=(fmt == "json"), message=f"internal error: {exc}", code=ERR_INTERNAL, kind="internal_error", run_id=ctx.run_id),
            file=sys.stderr,
        )
        return ERR_INTERNAL


if __name__ == "__main__":
    raise SystemExit(main())
