from __future__ import annotations

import io
import re
import tokenize
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from ..config import DEFAULT_LANGUAGES
from ..core.errors import StructuralError
from .model import Document, Snippet

_FENCE_OPEN_RE = re.compile(r"^(?P<indent> {0,3})(?P<fence>`{3,}|~{3,})(?P<info>.*)$")
_FENCE_CLOSE_RE = re.compile(r"^ {0,3}(?P<fence>`{3,}|~{3,})\s*$")
_HEADING_RE = re.compile(r"^#\s+(?P<title>.+?)(?:\s+#+)?\s*$")
_OUTPUT_LABEL_RE = re.compile(r"^\s*[*_]*output[*_]*\s*:\s*[*_]*\s*(?P<inline>.*?)\s*$", re.IGNORECASE)
_INLINE_EXPECT_RE = re.compile(r"#\s*(?:output\s*:|=>|->)[ \t]?(?P<text>.*)$", re.IGNORECASE)
_RAISES_RE = re.compile(r"#\s*raises\s*:\s*(?P<name>[A-Za-z_][\w.]*)", re.IGNORECASE)
_FAULT_NAME_RE = re.compile(r"^[A-Za-z_][\w.]*$")

NON_RUNNABLE_FLAGS = frozenset({"no-run", "norun", "skip"})


@dataclass(frozen=True)
class FenceInfo:
    language: str
    flags: frozenset[str]
    attrs: dict[str, str]

    @property
    def runnable(self) -> bool:
        return not self.flags.intersection(NON_RUNNABLE_FLAGS)


@dataclass(frozen=True)
class _Block:
    start_line: int
    end_line: int
    info: FenceInfo
    content: str


@dataclass(frozen=True)
class _Text:
    line: int
    text: str


@dataclass(frozen=True)
class ExtractionOutcome:
    path: str
    document: Document | None
    error: StructuralError | None = None


def parse_info(info: str) -> FenceInfo:
    tokens = info.replace(",", " ").replace("{", " ").replace("}", " ").split()
    language = tokens[0].lower().lstrip(".") if tokens else ""
    flags: set[str] = set()
    attrs: dict[str, str] = {}
    for token in tokens[1:]:
        if "=" in token:
            key, value = token.split("=", 1)
            attrs[key.strip().lower()] = value.strip().strip("\"'")
        else:
            flags.add(token.strip().lower())
    return FenceInfo(language=language, flags=frozenset(flags), attrs=attrs)


def _dedent(line: str, width: int) -> str:
    stripped = 0
    while stripped < width and stripped < len(line) and line[stripped] == " ":
        stripped += 1
    return line[stripped:]


def _tokenize(document: str, lines: list[str]) -> list[_Block | _Text]:
    tokens: list[_Block | _Text] = []
    idx = 0
    while idx < len(lines):
        line = lines[idx]
        match = _FENCE_OPEN_RE.match(line)
        if match is None or (match.group("fence")[0] == "`" and "`" in match.group("info")):
            tokens.append(_Text(line=idx + 1, text=line))
            idx += 1
            continue
        fence = match.group("fence")
        indent = len(match.group("indent"))
        start = idx + 1
        body: list[str] = []
        idx += 1
        closed = False
        while idx < len(lines):
            close = _FENCE_CLOSE_RE.match(lines[idx])
            if close is not None and close.group("fence")[0] == fence[0] and len(close.group("fence")) >= len(fence):
                closed = True
                break
            body.append(_dedent(lines[idx], indent))
            idx += 1
        if not closed:
            raise StructuralError(document, start)
        tokens.append(_Block(start_line=start, end_line=idx + 1, info=parse_info(match.group("info")), content="\n".join(body)))
        idx += 1
    return tokens


def _next_significant(tokens: list[_Block | _Text], start: int) -> int | None:
    for pos in range(start, len(tokens)):
        token = tokens[pos]
        if isinstance(token, _Text) and not token.text.strip():
            continue
        return pos
    return None


def _adjacent_output(tokens: list[_Block | _Text], after: int) -> tuple[str | None, int | None]:
    """Return the expectation declared right after a block and the index of the consumed block."""
    label_pos = _next_significant(tokens, after + 1)
    if label_pos is None:
        return None, None
    label = tokens[label_pos]
    if not isinstance(label, _Text):
        return None, None
    match = _OUTPUT_LABEL_RE.match(label.text)
    if match is None:
        return None, None
    inline = match.group("inline")
    if inline:
        if len(inline) >= 2 and inline.startswith("`") and inline.endswith("`"):
            inline = inline[1:-1]
        return inline, None
    block_pos = _next_significant(tokens, label_pos + 1)
    if block_pos is None:
        return None, None
    block = tokens[block_pos]
    if not isinstance(block, _Block):
        return None, None
    return block.content, block_pos


def _python_comments(source: str) -> dict[int, str] | None:
    """Map line numbers to the comment token on that line; None if the source does not tokenize."""
    comments: dict[int, str] = {}
    try:
        for token in tokenize.generate_tokens(io.StringIO(source).readline):
            if token.type == tokenize.COMMENT:
                comments[token.start[0]] = token.string
    except (tokenize.TokenError, SyntaxError):
        return None
    return comments


def inline_expectations(source: str, language: str = "python") -> tuple[str | None, str | None]:
    """Read `# Output:` / `# =>` / `# Raises:` comments from snippet source.

    Python sources are tokenized so markers inside string literals are ignored.
    Other languages, and Python that does not tokenize, are matched line by line.
    """
    comments = _python_comments(source) if language.lower() in DEFAULT_LANGUAGES else None
    expected: list[str] = []
    found = False
    fault: str | None = None
    lines = source.splitlines()
    idx = 0
    while idx < len(lines):
        line = lines[idx]
        comment = line if comments is None else comments.get(idx + 1)
        if comment is None:
            idx += 1
            continue
        raises = _RAISES_RE.search(comment)
        if raises is not None:
            fault = raises.group("name")
            idx += 1
            continue
        match = _INLINE_EXPECT_RE.search(comment)
        if match is None:
            idx += 1
            continue
        found = True
        text = match.group("text").rstrip()
        standalone = not comment[: match.start()].strip() and line.lstrip().startswith(comment.lstrip())
        if standalone and not text:
            idx += 1
            while idx < len(lines) and lines[idx].lstrip().startswith("#") and (comments is None or idx + 1 in comments):
                body = lines[idx].lstrip()[1:]
                expected.append(body[1:] if body.startswith(" ") else body)
                idx += 1
            continue
        expected.append(text)
        idx += 1
    return ("\n".join(expected) if found else None), fault


def _timeout_attr(document: str, block: _Block) -> float | None:
    raw = block.info.attrs.get("timeout")
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        value = 0.0
    if value <= 0:
        raise StructuralError(document, block.start_line, f"invalid timeout attribute `{raw}`")
    return value


def _raises_attr(document: str, block: _Block) -> str | None:
    raw = block.info.attrs.get("raises")
    if raw is None:
        return None
    if not _FAULT_NAME_RE.match(raw):
        raise StructuralError(document, block.start_line, f"invalid raises attribute `{raw}`")
    return raw


def document_title(path: str, tokens: Iterable[_Block | _Text]) -> str:
    for token in tokens:
        if isinstance(token, _Text):
            match = _HEADING_RE.match(token.text)
            if match is not None:
                return match.group("title")
    return Path(path).name


def extract_document(path: str, text: str, languages: Iterable[str]) -> Document:
    runnable = {lang.lower() for lang in languages}
    tokens = _tokenize(path, text.splitlines())
    consumed: set[int] = set()
    snippets: list[Snippet] = []
    for pos, token in enumerate(tokens):
        if pos in consumed or not isinstance(token, _Block):
            continue
        if not token.info.language or token.info.language not in runnable or not token.info.runnable:
            continue
        adjacent, consumed_pos = _adjacent_output(tokens, pos)
        if consumed_pos is not None:
            consumed.add(consumed_pos)
        inline_output, inline_fault = inline_expectations(token.content, token.info.language)
        snippets.append(
            Snippet(
                document=path,
                index=len(snippets),
                language=token.info.language,
                source=token.content + "\n" if token.content else "",
                start_line=token.start_line,
                end_line=token.end_line,
                expected_output=adjacent if adjacent is not None else inline_output,
                expected_fault=_raises_attr(path, token) or inline_fault,
                timeout_seconds=_timeout_attr(path, token),
            )
        )
    return Document(path=path, title=document_title(path, tokens), snippets=tuple(snippets))


def load_documents(paths: Iterable[tuple[Path, str]], languages: Iterable[str]) -> list[ExtractionOutcome]:
    """Extract every Document; a failure in one never stops the others."""
    runnable = tuple(languages)
    outcomes: list[ExtractionOutcome] = []
    for file_path, doc_id in paths:
        try:
            text = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            outcomes.append(ExtractionOutcome(doc_id, None, StructuralError(doc_id, 0, f"unreadable document: {exc}")))
            continue
        try:
            outcomes.append(ExtractionOutcome(doc_id, extract_document(doc_id, text, runnable)))
        except StructuralError as exc:
            outcomes.append(ExtractionOutcome(doc_id, None, exc))
    return outcomes
