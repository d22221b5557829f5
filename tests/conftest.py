"""Shared fixtures: a four-file pull request and stub collaborators."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List
from unittest.mock import AsyncMock

import pytest

from autoreview.github_client import GitHubClient
from autoreview.models.review import AnalysisRequest, ChangeSet

REPOSITORY = "octo/widgets"

A_TS_DIFF = (
    "diff --git a/a.ts b/a.ts\n"
    "index 1111111..2222222 100644\n"
    "--- a/a.ts\n"
    "+++ b/a.ts\n"
    "@@ -10,5 +10,7 @@ export function a() {\n"
    " const one = 1;\n"
    " const two = 2;\n"
    "+const three = 3;\n"
    "+const four = 4;\n"
    "-const five = 5;\n"
    "+const five = 50;\n"
    " return one;\n"
    " }\n"
    "@@ -40,2 +42,3 @@ export function b() {\n"
    " const x = 1;\n"
    "+const y = 2;\n"
    " return x;\n"
)

B_TS_DIFF = (
    "diff --git a/b.ts b/b.ts\n"
    "index 3333333..4444444 100644\n"
    "--- a/b.ts\n"
    "+++ b/b.ts\n"
    "@@ -1,2 +1,3 @@\n"
    " import x from 'x';\n"
    "+import y from 'y';\n"
    " run(x);\n"
)

C_TS_DIFF = (
    "diff --git a/c.ts b/c.ts\n"
    "new file mode 100644\n"
    "index 0000000..5555555\n"
    "--- /dev/null\n"
    "+++ b/c.ts\n"
    "@@ -0,0 +1,2 @@\n"
    "+export const c = 1;\n"
    "+export const d = 2;\n"
)

CHANGELOG_DIFF = (
    "diff --git a/CHANGELOG.md b/CHANGELOG.md\n"
    "index 6666666..7777777 100644\n"
    "--- a/CHANGELOG.md\n"
    "+++ b/CHANGELOG.md\n"
    "@@ -1,1 +1,2 @@\n"
    " # Changelog\n"
    "+- new entry\n"
)

FULL_DIFF = A_TS_DIFF + B_TS_DIFF + C_TS_DIFF + CHANGELOG_DIFF

PULL_REQUEST = {
    "number": 7,
    "title": "Add constants",
    "head": {"ref": "feature/constants", "sha": "abc123"},
    "base": {"ref": "main", "sha": "def456"},
}

CHANGED_FILES = [
    {"filename": "a.ts", "status": "modified"},
    {"filename": "b.ts", "status": "modified"},
    {"filename": "c.ts", "status": "added"},
    {"filename": "CHANGELOG.md", "status": "modified"},
]


def analysis_response(score: Any = 7, summary: str = "Looks reasonable.", findings: List[Dict[str, Any]] | None = None) -> str:
    record = {"score": score, "summary": summary, "findings": findings or []}
    return f"Here is my review:\n```json\n{json.dumps(record, indent=2)}\n```\n"


class StubAnalyzer:
    """Analyzer double returning canned text (or raising) per path, with optional delays."""

    def __init__(self, responses: Dict[str, Any], delays: Dict[str, float] | None = None) -> None:
        self.responses = responses
        self.delays = delays or {}
        self.requests: List[AnalysisRequest] = []

    async def analyze(self, request: AnalysisRequest) -> str:
        self.requests.append(request)
        delay = self.delays.get(request.path, 0)
        if delay:
            await asyncio.sleep(delay)
        response = self.responses[request.path]
        if isinstance(response, BaseException):
            raise response
        return response

    @property
    def paths(self) -> List[str]:
        return [request.path for request in self.requests]


def make_github(**overrides: Any) -> AsyncMock:
    """An ``AsyncMock`` GitHub client serving the four-file pull request."""

    github = AsyncMock(spec=GitHubClient)
    github.get_pull_request.return_value = PULL_REQUEST
    github.find_pull_requests_by_head.return_value = [PULL_REQUEST]
    github.get_pull_request_diff.return_value = FULL_DIFF
    github.list_pull_request_files.return_value = CHANGED_FILES
    github.get_file_content.side_effect = lambda *, full_name, path, ref: f"// content of {path}\n"
    github.list_review_comments.return_value = []
    github.list_issue_comments.return_value = []
    github.create_review_comment.return_value = {"id": 1}
    github.create_issue_comment.return_value = {"id": 2}
    for name, value in overrides.items():
        setattr(github, name, value)
    return github


@pytest.fixture
def change_set() -> ChangeSet:
    return ChangeSet(
        repository=REPOSITORY,
        number=7,
        base_ref="main",
        head_ref="feature/constants",
        head_sha="abc123",
        title="Add constants",
    )


@pytest.fixture
def github() -> AsyncMock:
    return make_github()
