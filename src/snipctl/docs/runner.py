from __future__ import annotations

import os
import signal
import subprocess
import tempfile
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Sequence

from ..config import VerifyConfig
from ..core.context import RunContext
from ..core.logging import log_event
from .faults import fault_name
from .model import ExecutionResult, ResultStatus, Snippet

_ENV_PASSTHROUGH = ("PATH", "SYSTEMROOT", "COMSPEC", "PATHEXT", "LANG", "LC_ALL", "LC_CTYPE")

Clock = Callable[[], float]


def snippet_env(workdir: Path, base: dict[str, str] | None = None) -> dict[str, str]:
    source = os.environ if base is None else base
    env = {key: source[key] for key in _ENV_PASSTHROUGH if key in source}
    tmp = workdir / ".tmp"
    tmp.mkdir(exist_ok=True)
    env.update(
        {
            "HOME": str(workdir),
            "TMPDIR": str(tmp),
            "TMP": str(tmp),
            "TEMP": str(tmp),
            "TZ": "UTC",
            "PYTHONHASHSEED": "0",
            "PYTHONIOENCODING": "utf-8",
            "PYTHONDONTWRITEBYTECODE": "1",
        }
    )
    return env


def _kill_group(proc: subprocess.Popen[str]) -> None:
    if os.name == "nt":
        proc.kill()
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def run_snippet(
    snippet: Snippet,
    config: VerifyConfig,
    deadline: float | None = None,
    clock: Clock = time.monotonic,
) -> ExecutionResult:
    """Evaluate one Snippet in a fresh interpreter and working directory.

    Faults raised by the snippet are captured in the result. A snippet that
    outlives its timeout is killed together with every process it started and
    reported as `timeout`; one cut short by the run deadline (or never started
    because of it) is `cancelled`.
    """
    command = config.command_for(snippet.language)
    if command is None:
        return ExecutionResult(
            snippet=snippet,
            status=ResultStatus.FAULT,
            stderr=f"no interpreter configured for language `{snippet.language}`",
        )
    budget = snippet.timeout_seconds or config.timeout_seconds
    timeout = budget
    clamped = False
    if deadline is not None:
        remaining = deadline - clock()
        if remaining <= 0:
            return ExecutionResult(snippet=snippet, status=ResultStatus.CANCELLED)
        if remaining < budget:
            timeout, clamped = remaining, True

    started = time.monotonic()
    with tempfile.TemporaryDirectory(prefix="snipctl-", ignore_cleanup_errors=True) as td:
        workdir = Path(td)
        try:
            proc = subprocess.Popen(
                command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=workdir,
                env=snippet_env(workdir),
                text=True,
                encoding="utf-8",
                errors="replace",
                start_new_session=os.name != "nt",
            )
        except OSError as exc:
            return ExecutionResult(
                snippet=snippet,
                status=ResultStatus.FAULT,
                stderr=f"cannot start `{command[0]}`: {exc.strerror or exc}",
                duration_ms=int((time.monotonic() - started) * 1000),
            )
        try:
            stdout, stderr = proc.communicate(snippet.source, timeout=timeout)
        except subprocess.TimeoutExpired:
            # A finished child whose background processes still hold the pipes is not a timeout.
            finished = proc.poll() is not None
            _kill_group(proc)
            stdout, stderr = proc.communicate()
            if not finished:
                return ExecutionResult(
                    snippet=snippet,
                    status=ResultStatus.CANCELLED if clamped else ResultStatus.TIMEOUT,
                    stdout=stdout or "",
                    stderr=((stderr or "") + f"\nsnippet timed out after {timeout:g}s").strip(),
                    duration_ms=int((time.monotonic() - started) * 1000),
                )
        except BaseException:
            _kill_group(proc)
            proc.communicate()
            raise
    stdout = stdout or ""
    stderr = stderr or ""
    if proc.returncode == 0:
        status = ResultStatus.OK
        fault = None
    else:
        status = ResultStatus.FAULT
        fault = fault_name(stderr)
    return ExecutionResult(
        snippet=snippet,
        status=status,
        stdout=stdout,
        stderr=stderr,
        exit_code=proc.returncode,
        fault=fault,
        duration_ms=int((time.monotonic() - started) * 1000),
    )


def run_snippets(
    snippets: Sequence[Snippet],
    config: VerifyConfig,
    ctx: RunContext | None = None,
    clock: Clock = time.monotonic,
) -> list[ExecutionResult]:
    """Run Snippets on a worker pool; results come back in completion order."""
    deadline = None if config.deadline_seconds is None else clock() + config.deadline_seconds

    def _run_one(snippet: Snippet) -> ExecutionResult:
        result = run_snippet(snippet, config, deadline, clock)
        if ctx is not None:
            log_event(
                ctx,
                "debug",
                "runner",
                "snippet",
                locator=snippet.locator,
                status=result.status.value,
                duration_ms=result.duration_ms,
            )
        return result

    results: list[ExecutionResult] = []
    if config.jobs > 1 and len(snippets) > 1:
        with ThreadPoolExecutor(max_workers=min(config.jobs, len(snippets))) as ex:
            futures = [ex.submit(_run_one, snippet) for snippet in snippets]
            for future in as_completed(futures):
                results.append(future.result())
    else:
        for snippet in snippets:
            results.append(_run_one(snippet))
    cancelled = sum(1 for row in results if row.status == ResultStatus.CANCELLED)
    if cancelled and ctx is not None:
        log_event(ctx, "warn", "runner", "deadline", cancelled=cancelled, deadline_seconds=config.deadline_seconds)
    return results
