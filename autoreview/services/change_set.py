"""Resolve the change set under review and load its diff."""

from __future__ import annotations

from typing import Any, Callable, Dict, List

from autoreview.github_client import GitHubAPIError, GitHubClient
from autoreview.logger import get_logger, log_timing, log_with_context
from autoreview.models.review import ChangeSet, ChangeSetDiff
from autoreview.utils.git import GitCommandError, current_branch

logger = get_logger()


class ReviewRunError(RuntimeError):
    """Raised when a review run cannot proceed past a fatal stage."""

    def __init__(self, message: str, step: str, original_error: Exception | None = None):
        super().__init__(message)
        self.step = step
        self.original_error = original_error


class AmbiguousChangeSet(ReviewRunError):
    """No single change set matches the requested identifier or branch."""

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message, "resolving", original_error)


class ChangeSetUnreadable(ReviewRunError):
    """The platform could not return the change set's data."""

    def __init__(self, message: str, step: str = "loading", original_error: Exception | None = None):
        super().__init__(message, step, original_error)


def parse_identifier(identifier: int | str | None) -> tuple[int | None, str | None]:
    """Split a CLI identifier into ``(number, branch)``; at most one is set.

    ``42``, ``"42"`` and ``"#42"`` are change-set numbers; any other non-empty
    string names a head branch.
    """

    if identifier is None or isinstance(identifier, bool):
        return None, None
    if isinstance(identifier, int):
        if identifier <= 0:
            raise AmbiguousChangeSet(f"Invalid change set number: {identifier}")
        return identifier, None

    text = identifier.strip()
    if not text:
        return None, None
    digits = text[1:] if text.startswith("#") else text
    if digits.isdigit():
        number = int(digits)
        if number <= 0:
            raise AmbiguousChangeSet(f"Invalid change set number: {identifier}")
        return number, None
    return None, text


def _to_change_set(full_name: str, data: Dict[str, Any]) -> ChangeSet:
    head = data.get("head") or {}
    base = data.get("base") or {}
    number = data.get("number")
    if not isinstance(number, int) or not head.get("ref") or not head.get("sha") or not base.get("ref"):
        raise ChangeSetUnreadable(
            f"Change set data for {full_name} is missing number, head or base information",
            step="resolving",
        )
    return ChangeSet(
        repository=full_name,
        number=number,
        base_ref=base["ref"],
        head_ref=head["ref"],
        head_sha=head["sha"],
        title=data.get("title"),
    )


async def resolve_change_set(
    client: GitHubClient,
    full_name: str,
    identifier: int | str | None = None,
    *,
    branch_lookup: Callable[[], str | None] = current_branch,
) -> ChangeSet:
    """Resolve an explicit identifier, or the current branch, to exactly one change set."""

    ctx_logger = log_with_context(logger, repository=full_name)
    number, branch = parse_identifier(identifier)

    if number is not None:
        ctx_logger.info(f"Resolving change set #{number}")
        try:
            with log_timing(ctx_logger, "get_pull_request"):
                data = await client.get_pull_request(full_name=full_name, pull_number=number)
        except GitHubAPIError as exc:
            if exc.status_code == 404:
                raise AmbiguousChangeSet(f"No change set #{number} found in {full_name}", exc) from exc
            raise ChangeSetUnreadable(
                f"Could not read change set #{number} ({exc.status_code}): {exc}", "resolving", exc
            ) from exc
        change_set = _to_change_set(full_name, data)
    else:
        if branch is None:
            try:
                branch = branch_lookup()
            except GitCommandError as exc:
                raise AmbiguousChangeSet(
                    "No change set identifier provided and the current branch could not be determined", exc
                ) from exc
            if not branch:
                raise AmbiguousChangeSet(
                    "No change set identifier provided and HEAD is detached; pass a change set number"
                )

        ctx_logger.info(f"Looking up change set for head branch '{branch}'")
        try:
            candidates: List[Dict[str, Any]] = await client.find_pull_requests_by_head(
                full_name=full_name, branch=branch
            )
        except GitHubAPIError as exc:
            raise ChangeSetUnreadable(
                f"Could not list change sets for branch '{branch}' ({exc.status_code}): {exc}", "resolving", exc
            ) from exc

        if not candidates:
            raise AmbiguousChangeSet(f"No open change set found for branch '{branch}'")
        if len(candidates) > 1:
            numbers = ", ".join(f"#{item.get('number')}" for item in candidates)
            raise AmbiguousChangeSet(f"Branch '{branch}' matches several change sets ({numbers})")
        change_set = _to_change_set(full_name, candidates[0])

    ctx_logger.info(
        f"Resolved change set #{change_set.number}: base={change_set.base_ref}, head={change_set.head_ref}"
    )
    return change_set


async def load_change_set_diff(client: GitHubClient, change_set: ChangeSet) -> ChangeSetDiff:
    """Fetch the unified diff and the ordered list of changed paths present at head."""

    ctx_logger = log_with_context(logger, repository=change_set.repository, change_set=change_set.number)
    try:
        with log_timing(ctx_logger, "fetch_diff"):
            diff_text = await client.get_pull_request_diff(
                full_name=change_set.repository, pull_number=change_set.number
            )
        with log_timing(ctx_logger, "fetch_changed_files"):
            files = await client.list_pull_request_files(
                full_name=change_set.repository, pull_number=change_set.number
            )
    except GitHubAPIError as exc:
        raise ChangeSetUnreadable(
            f"Could not load change set #{change_set.number} ({exc.status_code}): {exc}", "loading", exc
        ) from exc

    paths: List[str] = []
    seen: set[str] = set()
    for entry in files:
        path = entry.get("filename") or entry.get("path")
        if not path:
            ctx_logger.warning(f"Skipping file entry missing filename/path: {entry}")
            continue
        if entry.get("status") == "removed":
            ctx_logger.debug(f"Skipping removed file: {path}")
            continue
        if path in seen:
            continue
        seen.add(path)
        paths.append(path)

    ctx_logger.info(f"Loaded diff ({len(diff_text)} bytes) and {len(paths)} changed path(s)")
    return ChangeSetDiff(diff_text=diff_text, changed_paths=tuple(paths))
