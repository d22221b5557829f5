"""Unified diff helpers: per-file slicing and line-to-position mapping.

GitHub anchors review comments on a *diff position*: the number of lines below
the first ``@@`` hunk header of a file's diff. The line right after that first
header is position 1, and counting continues through every following line,
later hunk headers included, until the next file begins.

Findings refer to line numbers of the file at head, so the mapper walks the
hunks, tracks the head-side line number of every context (`` ``) and addition
(``+``) line, and returns the position of the exact requested line. Lines that
are not part of any hunk have no position; the publisher reports them at file
level instead.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Dict, List

from autoreview.models.review import FileReport

_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
_FILE_HEADER_PREFIX = "diff --git "
_QUOTED_HEAD_RE = re.compile(r'^"((?:[^"\\]|\\.)*)"')
_QUOTED_TAIL_RE = re.compile(r'"((?:[^"\\]|\\.)*)"$')
_OCTAL_ESCAPE_RE = re.compile(r"[0-7]{3}")
_C_ESCAPES = {"a": 7, "b": 8, "t": 9, "n": 10, "v": 11, "f": 12, "r": 13, '"': 34, "\\": 92}


@dataclass(slots=True)
class Hunk:
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    header_position: int
    positions: Dict[int, int] = field(default_factory=dict)

    @property
    def new_end(self) -> int:
        """Last head-side line covered by the hunk (``new_start - 1`` when empty)."""
        return self.new_start + self.new_count - 1


def _unquote_c(quoted: str) -> str:
    """Decode the body of a C-quoted git path (``core.quotePath``).

    Octal escapes are raw bytes of the UTF-8 encoded name, so the bytes are
    collected first and decoded once.
    """

    decoded = bytearray()
    index = 0
    while index < len(quoted):
        char = quoted[index]
        if char == "\\" and index + 1 < len(quoted):
            octal = quoted[index + 1 : index + 4]
            if _OCTAL_ESCAPE_RE.fullmatch(octal):
                decoded.append(int(octal, 8))
                index += 4
                continue
            escaped = _C_ESCAPES.get(quoted[index + 1])
            if escaped is not None:
                decoded.append(escaped)
                index += 2
                continue
        decoded.extend(char.encode("utf-8"))
        index += 1
    return decoded.decode("utf-8", errors="replace")


def _strip_path(raw: str) -> str:
    raw = raw.rstrip("\n").split("\t", 1)[0].strip()
    if len(raw) >= 2 and raw.startswith('"') and raw.endswith('"'):
        return _unquote_c(raw[1:-1])
    return raw


def _path_from_git_header(header: str) -> str | None:
    rest = header[len(_FILE_HEADER_PREFIX):].rstrip("\n").strip()
    # Either half is quoted on its own when it holds special characters
    tail = _QUOTED_TAIL_RE.search(rest)
    if tail:
        target = _unquote_c(tail.group(1))
        return target[2:] if target.startswith("b/") else None
    head = _QUOTED_HEAD_RE.match(rest)
    if head:
        target = rest[head.end():].strip()
        return target[2:] if target.startswith("b/") else None

    if not rest.startswith("a/"):
        return None
    # "a/<path> b/<path>" with identical halves is unambiguous even when the path has spaces
    if (len(rest) - 5) % 2 == 0:
        half = (len(rest) - 5) // 2
        a_path, b_part = rest[2 : 2 + half], rest[2 + half :]
        if b_part == f" b/{a_path}":
            return a_path
    if " b/" in rest:
        return rest.rsplit(" b/", 1)[1]
    return None


def _section_path(lines: List[str]) -> str | None:
    old_path: str | None = None
    for line in lines[1:]:
        if line.startswith("@@"):
            break
        if line.startswith("+++ "):
            target = _strip_path(line[4:])
            if target != "/dev/null":
                return target[2:] if target.startswith("b/") else target
        elif line.startswith("--- "):
            source = _strip_path(line[4:])
            if source != "/dev/null":
                old_path = source[2:] if source.startswith("a/") else source
    header_path = _path_from_git_header(lines[0])
    return header_path or old_path


def split_diff(diff_text: str) -> Dict[str, str]:
    """Split a multi-file unified diff into ``{path: fragment}``.

    Each fragment keeps its own ``diff --git`` header. Deleted files are keyed by
    their old path.
    """

    sections: Dict[str, str] = {}
    current: List[str] | None = None

    def _flush() -> None:
        if not current:
            return
        path = _section_path(current)
        if path and path not in sections:
            sections[path] = "".join(current)

    for line in diff_text.splitlines(keepends=True):
        if line.startswith(_FILE_HEADER_PREFIX):
            _flush()
            current = [line]
        elif current is not None:
            current.append(line)
    _flush()
    return sections


def extract_file_diff(diff_text: str, path: str) -> str | None:
    """Return the diff fragment for ``path``, or ``None`` when the diff has none."""

    return split_diff(diff_text).get(path)


def parse_hunks(fragment: str) -> List[Hunk]:
    """Parse the hunks of one file's diff fragment, recording head-line positions."""

    hunks: List[Hunk] = []
    position = 0
    current: Hunk | None = None
    new_line = 0

    for line in fragment.splitlines():
        match = _HUNK_HEADER_RE.match(line)
        if current is None and not match:
            # File header lines (diff --git, index, ---, +++) carry no position
            continue

        if match:
            if current is not None:
                position += 1
            old_start, old_count, new_start, new_count = match.groups()
            current = Hunk(
                old_start=int(old_start),
                old_count=int(old_count) if old_count is not None else 1,
                new_start=int(new_start),
                new_count=int(new_count) if new_count is not None else 1,
                header_position=position,
            )
            hunks.append(current)
            new_line = current.new_start
            continue

        position += 1
        marker = line[:1]
        if marker in (" ", "+", ""):
            # Blank lines are context lines whose leading space was stripped
            if current.new_start <= new_line <= current.new_end:
                current.positions[new_line] = position
            new_line += 1
        # "-" lines and "\ No newline at end of file" only advance the position

    return hunks


def _position_in(hunks: List[Hunk], line: int | None) -> int | None:
    if line is None or isinstance(line, bool) or not isinstance(line, int) or line <= 0:
        return None
    for hunk in hunks:
        if hunk.new_start <= line <= hunk.new_end:
            return hunk.positions.get(line)
    return None


def map_line_to_position(fragment: str | None, line: int | None) -> int | None:
    """Translate a head-file line number into a diff position.

    Returns ``None`` when the line is absent, not a positive integer, or outside
    every hunk of the fragment.
    """

    if not fragment:
        return None
    return _position_in(parse_hunks(fragment), line)


def anchor_findings(report: FileReport, fragment: str | None) -> FileReport:
    """Resolve a diff position for every finding of ``report`` in place."""

    hunks = parse_hunks(fragment) if fragment else []
    report.findings = [
        replace(finding, position=_position_in(hunks, finding.line)) for finding in report.findings
    ]
    return report
