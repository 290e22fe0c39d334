"""Run configuration: defaults, pyproject, YAML file, environment, CLI flags."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from .contracts.validate import CONFIG, validate
from .core.errors import ScriptError
from .core.exit_codes import ERR_CONFIG

try:
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]

PYTHON_PLACEHOLDER = "{python}"
DEFAULT_CONFIG_FILE = "snipctl.yaml"
DEFAULT_DOCUMENT_GLOBS: tuple[str, ...] = ("*.md", "*.markdown", "*.txt")

_PYTHON_ARGV = (PYTHON_PLACEHOLDER, "-X", "utf8", "-s", "-")
DEFAULT_LANGUAGES: dict[str, tuple[str, ...]] = {
    "python": _PYTHON_ARGV,
    "python3": _PYTHON_ARGV,
    "py": _PYTHON_ARGV,
}

ENV_OVERRIDES: tuple[tuple[str, str, type], ...] = (
    ("SNIPCTL_TIMEOUT", "timeout_seconds", float),
    ("SNIPCTL_JOBS", "jobs", int),
    ("SNIPCTL_DEADLINE", "deadline_seconds", float),
)


@dataclass(frozen=True)
class VerifyConfig:
    timeout_seconds: float = 10.0
    jobs: int = 4
    deadline_seconds: float | None = None
    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    languages: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: dict(DEFAULT_LANGUAGES))

    @property
    def runnable_languages(self) -> frozenset[str]:
        return frozenset(self.languages)

    def command_for(self, language: str) -> list[str] | None:
        template = self.languages.get(language.lower())
        if template is None:
            return None
        return [sys.executable if part == PYTHON_PLACEHOLDER else part for part in template]

    def to_payload(self) -> dict[str, Any]:
        return {
            "timeout_seconds": self.timeout_seconds,
            "jobs": self.jobs,
            "deadline_seconds": self.deadline_seconds,
            "include": list(self.include),
            "exclude": list(self.exclude),
            "languages": {name: list(argv) for name, argv in sorted(self.languages.items())},
        }


def _normalize_keys(raw: Mapping[str, Any], source: str) -> dict[str, Any]:
    if not isinstance(raw, Mapping):
        raise ScriptError(f"{source}: configuration root must be a mapping", ERR_CONFIG, kind="config_error")
    return {str(key).strip().replace("-", "_"): value for key, value in raw.items()}


def _read_pyproject(cwd: Path) -> dict[str, Any]:
    path = cwd / "pyproject.toml"
    if not path.is_file():
        return {}
    try:
        payload = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ScriptError(f"{path}: invalid TOML: {exc}", ERR_CONFIG, kind="config_error") from exc
    section = payload.get("tool", {}).get("snipctl", {})
    return _normalize_keys(section, f"{path} [tool.snipctl]")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ScriptError(f"cannot read config file {path}: {exc.strerror}", ERR_CONFIG, kind="config_error") from exc
    except yaml.YAMLError as exc:
        raise ScriptError(f"{path}: invalid YAML: {exc}", ERR_CONFIG, kind="config_error") from exc
    if data is None:
        return {}
    return _normalize_keys(data, str(path))


def _read_env(env: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for var, key, cast in ENV_OVERRIDES:
        raw = env.get(var, "").strip()
        if not raw:
            continue
        try:
            values[key] = cast(raw)
        except ValueError as exc:
            raise ScriptError(f"{var}={raw!r} is not a valid {cast.__name__}", ERR_CONFIG, kind="config_error") from exc
    return values


def _merge(base: dict[str, Any], layer: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in layer.items():
        if value is None and key != "deadline_seconds":
            continue
        if key == "languages" and isinstance(value, Mapping) and isinstance(merged.get("languages"), Mapping):
            languages = dict(merged["languages"])
            languages.update({str(name).lower(): value[name] for name in value})
            merged["languages"] = languages
            continue
        merged[key] = value
    return merged


def load_config(
    cwd: Path,
    config_file: Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> VerifyConfig:
    merged = VerifyConfig().to_payload()
    merged = _merge(merged, _read_pyproject(cwd))
    if config_file is not None:
        if not config_file.is_file():
            raise ScriptError(f"config file not found: {config_file}", ERR_CONFIG, kind="config_error")
        merged = _merge(merged, _read_yaml(config_file))
    elif (cwd / DEFAULT_CONFIG_FILE).is_file():
        merged = _merge(merged, _read_yaml(cwd / DEFAULT_CONFIG_FILE))
    merged = _merge(merged, _read_env(os.environ if env is None else env))
    merged = _merge(merged, {k: v for k, v in (overrides or {}).items() if v is not None})
    validate(CONFIG, merged, code=ERR_CONFIG)
    return VerifyConfig(
        timeout_seconds=float(merged["timeout_seconds"]),
        jobs=int(merged["jobs"]),
        deadline_seconds=None if merged.get("deadline_seconds") is None else float(merged["deadline_seconds"]),
        include=tuple(merged.get("include", ())),
        exclude=tuple(merged.get("exclude", ())),
        languages={name: tuple(argv) for name, argv in merged["languages"].items()},
    )
