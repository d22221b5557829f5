"""Fan per-file analysis out over a bounded worker pool."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Sequence

from autoreview.analysis_client import AnalysisError, Analyzer
from autoreview.github_client import GitHubAPIError, GitHubClient
from autoreview.logger import get_logger, log_with_context
from autoreview.models.review import AnalysisRequest, ChangedFile, ChangeSet, FileReport
from autoreview.services.diff import anchor_findings
from autoreview.services.findings import parse_analysis

logger = get_logger()


class AnalysisDispatcher:
    """Analyze every included file independently and join the reports in listing order.

    A failure in one file (content fetch, analyzer error or timeout, unparsable
    response) only degrades that file's report. The returned list always has one
    report per included file, ordered like ``files``, whatever order the workers
    finish in.
    """

    def __init__(
        self,
        github_client: GitHubClient,
        analyzer: Analyzer,
        *,
        instructions: str,
        verbosity: str = "normal",
        concurrency: int = 4,
        file_timeout: float = 120.0,
        run_timeout: float | None = None,
    ) -> None:
        self._github = github_client
        self._analyzer = analyzer
        self._instructions = instructions
        self._verbosity = verbosity
        self._concurrency = max(1, concurrency)
        self._file_timeout = file_timeout
        self._run_timeout = run_timeout

    async def dispatch(self, change_set: ChangeSet, files: Sequence[ChangedFile]) -> List[FileReport]:
        included = [changed for changed in files if changed.included]
        if not included:
            return []

        ctx_logger = log_with_context(logger, repository=change_set.repository, change_set=change_set.number)
        ctx_logger.info(f"Dispatching {len(included)} file(s) with concurrency {self._concurrency}")

        semaphore = asyncio.Semaphore(self._concurrency)
        tasks: Dict[str, asyncio.Task[FileReport]] = {
            changed.path: asyncio.create_task(self._review_file(change_set, changed, semaphore))
            for changed in included
        }

        done, pending = await asyncio.wait(tasks.values(), timeout=self._run_timeout)
        if pending:
            ctx_logger.warning(f"Run timeout reached; abandoning {len(pending)} unfinished file(s)")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        reports: List[FileReport] = []
        for changed in included:
            task = tasks[changed.path]
            if task in done and not task.cancelled() and task.exception() is None:
                reports.append(task.result())
            elif task in done and not task.cancelled():
                exc = task.exception()
                log_with_context(logger, path=changed.path).error(f"Unexpected error analyzing {changed.path}: {exc}")
                reports.append(FileReport.degraded(changed.path, f"unexpected error ({exc})"))
            else:
                reports.append(FileReport.degraded(changed.path, "analysis did not finish before the run timeout"))

        degraded = sum(1 for report in reports if report.is_degraded)
        ctx_logger.info(f"Dispatch finished: {len(reports) - degraded} analyzed, {degraded} degraded")
        return reports

    async def _review_file(
        self, change_set: ChangeSet, changed: ChangedFile, semaphore: asyncio.Semaphore
    ) -> FileReport:
        ctx_logger = log_with_context(logger, path=changed.path)
        async with semaphore:
            try:
                changed.content = await self._github.get_file_content(
                    full_name=change_set.repository, path=changed.path, ref=change_set.head_sha
                )
            except GitHubAPIError as exc:
                ctx_logger.warning(f"Could not fetch content for {changed.path} ({exc.status_code}): {exc}")
                return FileReport.degraded(changed.path, "file content could not be fetched")

            if not changed.diff:
                ctx_logger.debug(f"No diff fragment found for {changed.path}")

            request = AnalysisRequest(
                instructions=self._instructions,
                path=changed.path,
                diff=changed.diff,
                content=changed.content,
                verbosity=self._verbosity,
            )

            ctx_logger.info(f"Analyzing {changed.path}")
            try:
                raw_response = await asyncio.wait_for(
                    self._analyzer.analyze(request), timeout=self._file_timeout
                )
            except asyncio.TimeoutError:
                ctx_logger.warning(f"Analysis of {changed.path} timed out after {self._file_timeout:g}s")
                return FileReport.degraded(changed.path, f"analysis timed out after {self._file_timeout:g}s")
            except AnalysisError as exc:
                ctx_logger.warning(f"Analysis of {changed.path} failed: {exc}")
                return FileReport.degraded(changed.path, "analysis service error")

        report = parse_analysis(changed.path, raw_response)
        if report.is_degraded:
            return report
        report = anchor_findings(report, changed.diff)
        anchored = sum(1 for finding in report.findings if finding.is_anchored)
        ctx_logger.info(
            f"Analyzed {changed.path}: {len(report.findings)} finding(s), {anchored} anchored to the diff"
        )
        return report
