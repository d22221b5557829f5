"""GitHub API client helpers."""

from __future__ import annotations

from typing import Any, Dict, List
from urllib.parse import quote

import httpx


class GitHubAPIError(RuntimeError):
    """Raised when a GitHub API request fails."""

    def __init__(self, message: str, status_code: int, response_body: Any | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


DEFAULT_ACCEPT_HEADER = "application/vnd.github+json"
DIFF_ACCEPT_HEADER = "application/vnd.github.v3.diff"
RAW_ACCEPT_HEADER = "application/vnd.github.raw"
DEFAULT_API_VERSION = "2022-11-28"
PAGE_SIZE = 100


class GitHubClient:
    """Pull-request scoped GitHub REST operations authenticated with a pre-obtained token."""

    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        timeout: float = 30.0,
        user_agent: str = "autoreview/0.3",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            headers={
                "User-Agent": user_agent,
                "Accept": DEFAULT_ACCEPT_HEADER,
                "X-GitHub-Api-Version": DEFAULT_API_VERSION,
                "Authorization": f"Bearer {token}",
            },
        )
        self._owns_client = client is None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        headers: Dict[str, str] | None = None,
        params: Dict[str, Any] | None = None,
        json: Any | None = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, url, headers=headers, params=params, json=json)
        except httpx.HTTPError as exc:
            raise GitHubAPIError(f"GitHub API request to {url} failed: {exc}", 0, None) from exc
        if response.status_code >= 400:
            detail: Any | None
            if response.content:
                try:
                    detail = response.json()
                except ValueError:
                    detail = response.text
            else:
                detail = None
            raise GitHubAPIError(
                f"GitHub API request to {url} failed with status {response.status_code}.",
                response.status_code,
                detail,
            )
        return response

    async def _paginate(self, url: str, *, params: Dict[str, Any] | None = None) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            response = await self._request(
                "GET", url, params={**(params or {}), "per_page": PAGE_SIZE, "page": page}
            )
            batch = response.json()
            if not isinstance(batch, list):
                raise GitHubAPIError(
                    f"Unexpected response while listing {url}.",
                    response.status_code,
                    batch,
                )
            items.extend(batch)
            if len(batch) < PAGE_SIZE:
                break
            page += 1
        return items

    @staticmethod
    def _split_full_name(full_name: str) -> tuple[str, str]:
        if "/" not in full_name:
            raise ValueError(f"Repository full name '{full_name}' is invalid.")
        owner, repo = full_name.split("/", 1)
        return owner, repo

    async def get_pull_request(self, *, full_name: str, pull_number: int) -> Dict[str, Any]:
        owner, repo = self._split_full_name(full_name)
        response = await self._request("GET", f"/repos/{owner}/{repo}/pulls/{pull_number}")
        return response.json()

    async def find_pull_requests_by_head(self, *, full_name: str, branch: str) -> List[Dict[str, Any]]:
        """List open pull requests whose head is ``branch`` in the same repository."""

        owner, repo = self._split_full_name(full_name)
        return await self._paginate(
            f"/repos/{owner}/{repo}/pulls",
            params={"head": f"{owner}:{branch}", "state": "open"},
        )

    async def get_pull_request_diff(self, *, full_name: str, pull_number: int) -> str:
        owner, repo = self._split_full_name(full_name)
        response = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/pulls/{pull_number}",
            headers={"Accept": DIFF_ACCEPT_HEADER},
        )
        return response.text

    async def list_pull_request_files(self, *, full_name: str, pull_number: int) -> List[Dict[str, Any]]:
        owner, repo = self._split_full_name(full_name)
        return await self._paginate(f"/repos/{owner}/{repo}/pulls/{pull_number}/files")

    async def get_file_content(self, *, full_name: str, path: str, ref: str) -> str:
        owner, repo = self._split_full_name(full_name)
        response = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/contents/{quote(path)}",
            headers={"Accept": RAW_ACCEPT_HEADER},
            params={"ref": ref},
        )
        return response.text

    async def list_review_comments(self, *, full_name: str, pull_number: int) -> List[Dict[str, Any]]:
        owner, repo = self._split_full_name(full_name)
        return await self._paginate(f"/repos/{owner}/{repo}/pulls/{pull_number}/comments")

    async def list_issue_comments(self, *, full_name: str, pull_number: int) -> List[Dict[str, Any]]:
        owner, repo = self._split_full_name(full_name)
        return await self._paginate(f"/repos/{owner}/{repo}/issues/{pull_number}/comments")

    async def create_review_comment(
        self,
        *,
        full_name: str,
        pull_number: int,
        commit_id: str,
        path: str,
        body: str,
        line: int,
        side: str = "RIGHT",
    ) -> Dict[str, Any]:
        owner, repo = self._split_full_name(full_name)
        payload: Dict[str, Any] = {
            "body": body,
            "commit_id": commit_id,
            "path": path,
            "line": line,
            "side": side,
        }
        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/pulls/{pull_number}/comments",
            json=payload,
        )
        return response.json()

    async def create_issue_comment(self, *, full_name: str, pull_number: int, body: str) -> Dict[str, Any]:
        owner, repo = self._split_full_name(full_name)
        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{pull_number}/comments",
            json={"body": body},
        )
        return response.json()

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
