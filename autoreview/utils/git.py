"""Read-only queries against the local git checkout."""

from __future__ import annotations

import re
import subprocess
from typing import List

from autoreview.logger import get_logger

logger = get_logger()

_GITHUB_REMOTE_RE = re.compile(
    r"(?:^git@[^:]+:|^ssh://git@[^/]+/|^https?://(?:[^@/]+@)?[^/]+/)"
    r"(?P<owner>[^/]+)/(?P<name>[^/]+?)(?:\.git)?/?$"
)


class GitCommandError(RuntimeError):
    """Raised when a git command fails or git is not installed."""


def run_command(cmd: List[str]) -> str:
    """Execute a command and return its stripped stdout."""
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
    except FileNotFoundError as exc:
        raise GitCommandError(f"{cmd[0]} is not installed") from exc
    except subprocess.CalledProcessError as exc:
        logger.debug(f"Command failed: {' '.join(cmd)} | stderr: {exc.stderr.strip()}")
        raise GitCommandError(f"Command failed: {' '.join(cmd)}") from exc
    return result.stdout.strip()


def current_branch() -> str | None:
    """Return the checked-out branch, or ``None`` on a detached HEAD."""

    branch = run_command(["git", "branch", "--show-current"])
    return branch or None


def parse_remote_url(url: str) -> str | None:
    """Extract ``owner/name`` from an SSH or HTTPS remote URL."""

    match = _GITHUB_REMOTE_RE.match(url.strip())
    if not match:
        return None
    return f"{match.group('owner')}/{match.group('name')}"


def origin_repository() -> str | None:
    """Derive ``owner/name`` from the ``origin`` remote of the working copy."""

    return parse_remote_url(run_command(["git", "config", "--get", "remote.origin.url"]))
