"""Classify changed paths as analyzable or excluded."""

from __future__ import annotations

from fnmatch import fnmatchcase
from posixpath import basename
from typing import Iterable, List, Sequence, Tuple

# Documentation, structured-data configs, lockfiles, logs and generated artifacts
DEFAULT_EXCLUDED_PATTERNS: Tuple[str, ...] = (
    "*.md",
    "*.txt",
    "*.json",
    "*.yml",
    "*.yaml",
    "*.xml",
    "*.lock",
    "*.log",
    "go.sum",
    "*.min.js",
    "*.min.css",
    "*.map",
    "*.snap",
)


def is_excluded(path: str, patterns: Iterable[str] = DEFAULT_EXCLUDED_PATTERNS) -> bool:
    """Return True when ``path`` matches any deny-list glob.

    Globs are matched case-insensitively against both the basename and the full
    path, so ``*.md`` catches ``docs/CHANGELOG.MD`` and ``dist/*`` catches
    ``dist/app.js``.
    """

    lowered = path.lower()
    name = basename(lowered)
    for pattern in patterns:
        pattern = pattern.lower()
        if fnmatchcase(name, pattern) or fnmatchcase(lowered, pattern):
            return True
    return False


def classify_paths(
    paths: Sequence[str], patterns: Iterable[str] = DEFAULT_EXCLUDED_PATTERNS
) -> List[Tuple[str, bool]]:
    """Return ``(path, included)`` pairs in the order the paths were listed."""

    patterns = tuple(patterns)
    return [(path, not is_excluded(path, patterns)) for path in paths]
