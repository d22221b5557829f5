"""Drive one review run from change-set resolution to publication."""

from __future__ import annotations

from enum import Enum
from typing import Callable, List

from autoreview.analysis_client import Analyzer
from autoreview.config import Settings, SettingsError
from autoreview.github_client import GitHubClient
from autoreview.logger import get_logger, log_failure, log_success, log_timing, log_with_context
from autoreview.models.review import ChangedFile, ReviewOutcome
from autoreview.services.change_set import ReviewRunError, load_change_set_diff, resolve_change_set
from autoreview.services.diff import split_diff
from autoreview.services.dispatcher import AnalysisDispatcher
from autoreview.services.file_filter import classify_paths
from autoreview.services.publisher import ReviewPublisher
from autoreview.utils.git import GitCommandError, current_branch, origin_repository

logger = get_logger()


class ReviewStage(str, Enum):
    RESOLVING = "resolving"
    LOADING = "loading"
    FILTERING = "filtering"
    DISPATCHING = "dispatching"
    PUBLISHING = "publishing"
    DONE = "done"


def resolve_repository(
    settings: Settings, *, remote_lookup: Callable[[], str | None] = origin_repository
) -> str:
    """Return the configured ``owner/name``, falling back to the ``origin`` remote."""

    if settings.repository:
        return settings.repository
    try:
        repository = remote_lookup()
    except GitCommandError as exc:
        raise SettingsError(
            "Repository not configured and no git remote found. Set GITHUB_REPOSITORY or pass --repo."
        ) from exc
    if not repository:
        raise SettingsError("Could not derive owner/name from the origin remote. Set GITHUB_REPOSITORY.")
    return repository


class ReviewRunner:
    """Resolving → Loading → Filtering → Dispatching → Publishing → Done.

    Only Resolving and Loading can fail the run (``ReviewRunError``). Every later
    stage degrades per file, so a run that gets past Loading always reaches Done.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        github_client: GitHubClient,
        analyzer: Analyzer,
        instructions: str,
        repository: str,
        branch_lookup: Callable[[], str | None] = current_branch,
    ) -> None:
        self._settings = settings
        self._github = github_client
        self._analyzer = analyzer
        self._instructions = instructions
        self._repository = repository
        self._branch_lookup = branch_lookup
        self.stage = ReviewStage.RESOLVING

    def _enter(self, stage: ReviewStage, ctx_logger) -> None:
        self.stage = stage
        ctx_logger.info(f"=== RUN: {stage.value} ===")

    async def run(self, identifier: int | str | None = None) -> ReviewOutcome:
        settings = self._settings
        ctx_logger = log_with_context(logger, repository=self._repository)

        try:
            self._enter(ReviewStage.RESOLVING, ctx_logger)
            with log_timing(ctx_logger, "resolve_change_set"):
                change_set = await resolve_change_set(
                    self._github, self._repository, identifier, branch_lookup=self._branch_lookup
                )

            ctx_logger = log_with_context(logger, repository=self._repository, change_set=change_set.number)
            self._enter(ReviewStage.LOADING, ctx_logger)
            with log_timing(ctx_logger, "load_change_set_diff"):
                change_diff = await load_change_set_diff(self._github, change_set)
        except ReviewRunError as exc:
            log_failure(logger, f"Review run stopped while {exc.step}: {exc}", exc, repository=self._repository)
            raise

        outcome = ReviewOutcome(change_set=change_set)
        if not change_diff.changed_paths:
            ctx_logger.info(f"No files changed in #{change_set.number}; nothing to review")
            self._enter(ReviewStage.DONE, ctx_logger)
            return outcome

        self._enter(ReviewStage.FILTERING, ctx_logger)
        fragments = split_diff(change_diff.diff_text)
        files: List[ChangedFile] = [
            ChangedFile(path=path, included=included, diff=fragments.get(path, ""))
            for path, included in classify_paths(change_diff.changed_paths, settings.excluded_patterns)
        ]
        outcome.excluded_paths = [changed.path for changed in files if not changed.included]
        ctx_logger.info(
            f"{len(files) - len(outcome.excluded_paths)} file(s) to analyze, "
            f"{len(outcome.excluded_paths)} excluded"
        )

        self._enter(ReviewStage.DISPATCHING, ctx_logger)
        dispatcher = AnalysisDispatcher(
            self._github,
            self._analyzer,
            instructions=self._instructions,
            verbosity=settings.verbosity.value,
            concurrency=settings.concurrency,
            file_timeout=settings.file_timeout,
            run_timeout=settings.run_timeout,
        )
        with log_timing(ctx_logger, "dispatch_analysis"):
            outcome.reports = await dispatcher.dispatch(change_set, files)

        self._enter(ReviewStage.PUBLISHING, ctx_logger)
        publisher = ReviewPublisher(self._github, verbosity=settings.verbosity.value)
        with log_timing(ctx_logger, "publish_results"):
            outcome.publish = await publisher.publish(change_set, outcome.reports, outcome.excluded_paths)

        self._enter(ReviewStage.DONE, ctx_logger)
        log_success(
            logger,
            f"Review of #{change_set.number} completed (has_blocking={outcome.has_blocking})",
            repository=self._repository,
        )
        return outcome
