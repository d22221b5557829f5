"""Publish file reports as line comments plus one aggregate summary comment."""

from __future__ import annotations

import hashlib
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Set

from autoreview.github_client import GitHubAPIError, GitHubClient
from autoreview.logger import get_logger, log_success, log_with_context
from autoreview.models.review import ChangeSet, FileReport, Finding, FindingKind, PublishResult

logger = get_logger()

SUMMARY_HEADER = "## 🤖 Automated Code Review"

SEVERITY_MARKERS: Dict[FindingKind, tuple[str, str]] = {
    FindingKind.BLOCKING: ("🔴", "BLOCKING"),
    FindingKind.IMPROVEMENT: ("🟡", "IMPROVEMENT"),
    FindingKind.MINOR: ("🔵", "MINOR"),
}

_MARKER_RE = re.compile(r"<!-- autoreview:(?:finding|summary):([0-9a-f]{40}) -->")


@dataclass(frozen=True, slots=True)
class PlannedComment:
    path: str
    line: int
    position: int
    body: str
    digest: str


def _digest(*parts: object) -> str:
    content = "\x1f".join("" if part is None else str(part) for part in parts)
    return hashlib.sha1(content.encode("utf-8")).hexdigest()


def _marker(kind: str, digest: str) -> str:
    return f"<!-- autoreview:{kind}:{digest} -->"


def extract_markers(bodies: Iterable[str | None]) -> Set[str]:
    """Collect the content digests embedded in previously published bodies."""

    found: Set[str] = set()
    for body in bodies:
        if body:
            found.update(_MARKER_RE.findall(body))
    return found


def format_finding(finding: Finding) -> str:
    emoji, prefix = SEVERITY_MARKERS[finding.kind]
    text = f"{emoji} **{prefix}**: {finding.message}"
    if finding.suggestion:
        text += f"\n\n**Suggestion**: {finding.suggestion}"
    return text


def published_findings(report: FileReport, verbosity: str) -> List[Finding]:
    """Findings that are shown for ``verbosity``; minimal hides minor ones."""

    if verbosity == "minimal":
        return [finding for finding in report.findings if finding.kind is not FindingKind.MINOR]
    return list(report.findings)


def plan_line_comments(reports: Sequence[FileReport], verbosity: str = "normal") -> List[PlannedComment]:
    """Build one line comment per anchored finding, in report then finding order."""

    planned: List[PlannedComment] = []
    for report in reports:
        for finding in published_findings(report, verbosity):
            if finding.position is None or finding.line is None:
                continue
            digest = _digest(
                report.path, finding.line, finding.position, finding.kind.value, finding.message, finding.suggestion
            )
            body = f"{format_finding(finding)}\n\n{_marker('finding', digest)}"
            planned.append(
                PlannedComment(
                    path=report.path, line=finding.line, position=finding.position, body=body, digest=digest
                )
            )
    return planned


def _format_score(report: FileReport) -> str:
    if report.is_degraded:
        return "analysis unavailable"
    if report.score is None:
        return "Score: N/A"
    return f"Score: {report.score:g}/10"


def _format_file_section(report: FileReport, verbosity: str) -> List[str]:
    lines = [f"### 📁 `{report.path}` ({_format_score(report)})"]
    if report.is_degraded:
        reason = f": {report.degraded_reason}" if report.degraded_reason else ""
        lines.append(f"**Status:** ⚠️ analysis unavailable{reason}")
        return lines

    lines.append("**Status:** ✅ analyzed")
    lines.append(report.summary)
    shown = published_findings(report, verbosity)
    if not report.findings:
        lines.append("✅ No issues found")
        return lines

    listed = shown if verbosity == "detailed" else [finding for finding in shown if not finding.is_anchored]
    inline = sum(1 for finding in shown if finding.is_anchored)
    for finding in listed:
        where = f"line {finding.line}" if finding.line is not None else "file"
        suffix = " (inline)" if finding.is_anchored else ""
        entry = f"- `{where}`{suffix} {format_finding(finding)}"
        lines.append(entry.replace("\n\n", "\n  "))
    if inline and verbosity != "detailed":
        lines.append(f"_{inline} finding(s) posted as line comments._")
    hidden = len(report.findings) - len(shown)
    if hidden:
        lines.append(f"_{hidden} minor finding(s) hidden by minimal verbosity._")
    return lines


def build_summary(
    change_set: ChangeSet,
    reports: Sequence[FileReport],
    excluded_paths: Sequence[str] = (),
    verbosity: str = "normal",
) -> str:
    """Render the aggregate summary; identical inputs give a byte-identical body."""

    analyzed = sum(1 for report in reports if not report.is_degraded)
    sections: List[str] = [
        SUMMARY_HEADER,
        f"Reviewed {len(reports)} file(s) in #{change_set.number} "
        f"(`{change_set.head_ref}` → `{change_set.base_ref}`): "
        f"{analyzed} analyzed, {len(reports) - analyzed} unavailable.",
    ]

    for report in reports:
        sections.append("\n\n".join(_format_file_section(report, verbosity)))

    if excluded_paths:
        skipped = "\n".join(f"- `{path}`" for path in excluded_paths)
        sections.append(f"### Skipped files\n{skipped}")

    counts = {kind: 0 for kind in FindingKind}
    for report in reports:
        for finding in report.findings:
            counts[finding.kind] += 1
    has_blocking = counts[FindingKind.BLOCKING] > 0
    totals = ", ".join(f"{counts[kind]} {kind.value}" for kind in FindingKind)
    result = "🔴 Blocking issues found" if has_blocking else "✅ No blocking issues found"
    sections.append(f"---\n**Findings:** {totals}\n\n**Result:** {result}")

    body = "\n\n".join(sections)
    return f"{body}\n\n{_marker('summary', _digest(body))}"


class ReviewPublisher:
    """Post planned comments, skipping any whose marker is already on the change set."""

    def __init__(self, github_client: GitHubClient, *, verbosity: str = "normal") -> None:
        self._github = github_client
        self._verbosity = verbosity

    async def _existing_markers(self, change_set: ChangeSet) -> Set[str]:
        ctx_logger = log_with_context(logger, change_set=change_set.number)
        try:
            review_comments = await self._github.list_review_comments(
                full_name=change_set.repository, pull_number=change_set.number
            )
            issue_comments = await self._github.list_issue_comments(
                full_name=change_set.repository, pull_number=change_set.number
            )
        except GitHubAPIError as exc:
            ctx_logger.warning(f"Could not list existing comments ({exc.status_code}); duplicates will not be skipped")
            return set()
        return extract_markers(comment.get("body") for comment in [*review_comments, *issue_comments])

    async def publish(
        self,
        change_set: ChangeSet,
        reports: Sequence[FileReport],
        excluded_paths: Sequence[str] = (),
    ) -> PublishResult:
        ctx_logger = log_with_context(logger, repository=change_set.repository, change_set=change_set.number)
        result = PublishResult(has_blocking=any(report.has_blocking for report in reports))
        existing = await self._existing_markers(change_set)

        for comment in plan_line_comments(reports, self._verbosity):
            if comment.digest in existing:
                result.skipped += 1
                continue
            try:
                await self._github.create_review_comment(
                    full_name=change_set.repository,
                    pull_number=change_set.number,
                    commit_id=change_set.head_sha,
                    path=comment.path,
                    body=comment.body,
                    line=comment.line,
                )
                result.posted += 1
                ctx_logger.debug(f"Posted comment on {comment.path}:{comment.line} (position {comment.position})")
            except GitHubAPIError as exc:
                result.failed += 1
                ctx_logger.warning(
                    f"Failed to post line comment on {comment.path}:{comment.line} ({exc.status_code}): {exc}"
                )

        result.summary_body = build_summary(change_set, reports, excluded_paths, self._verbosity)
        summary_digest = _MARKER_RE.search(result.summary_body).group(1)
        if summary_digest in existing:
            result.skipped += 1
            ctx_logger.info("Identical summary already posted; skipping")
        else:
            try:
                await self._github.create_issue_comment(
                    full_name=change_set.repository, pull_number=change_set.number, body=result.summary_body
                )
                result.posted += 1
            except GitHubAPIError as exc:
                result.failed += 1
                ctx_logger.error(f"Failed to post summary comment ({exc.status_code}): {exc}")

        log_success(
            logger,
            f"Published review for #{change_set.number}: posted={result.posted}, "
            f"skipped={result.skipped}, failed={result.failed}, has_blocking={result.has_blocking}",
            repository=change_set.repository,
        )
        return result


def write_job_summary(result: PublishResult) -> None:
    """Mirror the summary and the blocking signal into GitHub Actions files when present."""

    summary_path = os.getenv("GITHUB_STEP_SUMMARY")
    if summary_path and result.summary_body:
        Path(summary_path).parent.mkdir(parents=True, exist_ok=True)
        with open(summary_path, "a", encoding="utf-8") as handle:
            handle.write(result.summary_body + "\n")
        logger.debug("Job summary written")

    output_path = os.getenv("GITHUB_OUTPUT")
    if output_path:
        with open(output_path, "a", encoding="utf-8") as handle:
            handle.write(f"has_blocking={'true' if result.has_blocking else 'false'}\n")
