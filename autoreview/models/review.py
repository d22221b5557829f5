"""Shared data structures for review processing."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple


@dataclass(frozen=True, slots=True)
class ChangeSet:
    repository: str
    number: int
    base_ref: str
    head_ref: str
    head_sha: str
    title: str | None = None

    @property
    def owner(self) -> str:
        return self.repository.split("/", 1)[0]

    @property
    def name(self) -> str:
        return self.repository.split("/", 1)[1]


@dataclass(frozen=True, slots=True)
class ChangeSetDiff:
    """Everything the Diff Loader retrieved for one change set."""

    diff_text: str
    changed_paths: Tuple[str, ...]


@dataclass(slots=True)
class ChangedFile:
    path: str
    included: bool
    diff: str = ""
    content: str | None = None


@dataclass(frozen=True, slots=True)
class AnalysisRequest:
    instructions: str
    path: str
    diff: str
    content: str
    verbosity: str = "normal"


class FindingKind(str, Enum):
    BLOCKING = "blocking"
    IMPROVEMENT = "improvement"
    MINOR = "minor"


@dataclass(frozen=True, slots=True)
class Finding:
    kind: FindingKind
    message: str
    line: int | None = None
    suggestion: str | None = None
    # Diff position resolved by the mapper; None means file-level only
    position: int | None = None

    @property
    def is_anchored(self) -> bool:
        return self.position is not None


class ReportStatus(str, Enum):
    ANALYZED = "analyzed"
    DEGRADED = "degraded"


ANALYSIS_UNAVAILABLE = "analysis unavailable"


@dataclass(slots=True)
class FileReport:
    path: str
    score: float | None
    summary: str
    findings: List[Finding] = field(default_factory=list)
    status: ReportStatus = ReportStatus.ANALYZED
    degraded_reason: str | None = None

    @classmethod
    def degraded(cls, path: str, reason: str) -> "FileReport":
        return cls(
            path=path,
            score=None,
            summary=ANALYSIS_UNAVAILABLE,
            findings=[],
            status=ReportStatus.DEGRADED,
            degraded_reason=reason,
        )

    @property
    def is_degraded(self) -> bool:
        return self.status is ReportStatus.DEGRADED

    @property
    def has_blocking(self) -> bool:
        return any(finding.kind is FindingKind.BLOCKING for finding in self.findings)


@dataclass(slots=True)
class PublishResult:
    posted: int = 0
    skipped: int = 0
    failed: int = 0
    has_blocking: bool = False
    summary_body: str = ""


@dataclass(slots=True)
class ReviewOutcome:
    change_set: ChangeSet
    reports: List[FileReport] = field(default_factory=list)
    excluded_paths: List[str] = field(default_factory=list)
    publish: PublishResult | None = None

    @property
    def nothing_to_review(self) -> bool:
        return not self.reports and not self.excluded_paths

    @property
    def has_blocking(self) -> bool:
        return any(report.has_blocking for report in self.reports)
