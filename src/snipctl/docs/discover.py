from __future__ import annotations

from fnmatch import fnmatch
from pathlib import Path
from typing import Iterable

from ..config import DEFAULT_DOCUMENT_GLOBS
from ..core.errors import ScriptError
from ..core.exit_codes import ERR_INPUT


def _matches(rel: str, patterns: Iterable[str]) -> bool:
    name = rel.rsplit("/", 1)[-1]
    return any(fnmatch(rel, pat) or fnmatch(name, pat) for pat in patterns)


def document_id(path: Path, cwd: Path) -> str:
    try:
        return path.resolve().relative_to(cwd.resolve()).as_posix()
    except ValueError:
        return path.as_posix()


def discover_documents(
    inputs: Iterable[Path],
    cwd: Path,
    include: Iterable[str] = (),
    exclude: Iterable[str] = (),
) -> list[tuple[Path, str]]:
    """Expand files and directories into (path, document id) pairs in a stable order.

    Directories are walked recursively in sorted order, skipping dot-directories,
    and keep files matching `include` (default: markdown and text files).
    Explicit files are always kept unless an `exclude` glob matches them.
    """
    include_globs = tuple(include) or DEFAULT_DOCUMENT_GLOBS
    exclude_globs = tuple(exclude)
    found: list[tuple[Path, str]] = []
    seen: set[Path] = set()
    for raw in inputs:
        path = raw if raw.is_absolute() else cwd / raw
        if not path.exists():
            raise ScriptError(f"no such document or directory: {raw}", ERR_INPUT, kind="input_error")
        if path.is_file():
            candidates = [(path, path.name)]
        else:
            candidates = []
            for child in sorted(path.rglob("*")):
                rel = child.relative_to(path)
                if not child.is_file() or any(part.startswith(".") for part in rel.parts):
                    continue
                if _matches(rel.as_posix(), include_globs):
                    candidates.append((child, rel.as_posix()))
        for candidate, rel in candidates:
            if exclude_globs and _matches(rel, exclude_globs):
                continue
            key = candidate.resolve()
            if key in seen:
                continue
            seen.add(key)
            found.append((candidate, document_id(candidate, cwd)))
    return found
