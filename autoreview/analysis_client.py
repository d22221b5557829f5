"""Client wrapper for the external code analysis model."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Protocol

import httpx

from autoreview.logger import get_logger, log_with_context
from autoreview.models.review import AnalysisRequest

logger = get_logger()

MAX_DIFF_CHARS = 20_000
MAX_CONTENT_CHARS = 40_000
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

SYSTEM_PROMPT = "You are a senior code reviewer. Respond only with the JSON object requested."

_VERBOSITY_HINTS: Dict[str, str] = {
    "minimal": "Report only blocking problems and clear improvements. Skip nitpicks.",
    "normal": "Only include actionable feedback.",
    "detailed": (
        "Be thorough: report every blocking problem, improvement and minor issue you find, "
        "each with a concrete suggestion."
    ),
}


class AnalysisError(RuntimeError):
    """Raised when the analysis service fails to produce a response."""


class Analyzer(Protocol):
    async def analyze(self, request: AnalysisRequest) -> str:
        """Return free-form text containing one structured review record."""


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + f"\n... (truncated, {len(text) - limit} more characters)"


def build_prompt(request: AnalysisRequest) -> str:
    diff = _truncate(request.diff, MAX_DIFF_CHARS) if request.diff else "(no diff available)"
    content = _truncate(request.content, MAX_CONTENT_CHARS)
    focus = _VERBOSITY_HINTS.get(request.verbosity, _VERBOSITY_HINTS["normal"])

    return (
        "Analyze the following code changes and provide specific feedback.\n\n"
        f"REVIEW INSTRUCTIONS:\n{request.instructions}\n\n"
        f"FILE: {request.path}\n\n"
        f"CHANGES (diff format):\n{diff}\n\n"
        f"FULL FILE CONTENT:\n{content}\n\n"
        "Respond *only* with valid JSON matching this schema:\n"
        "{\n"
        "  \"score\": integer from 1 to 10,\n"
        "  \"summary\": string,\n"
        "  \"findings\": [\n"
        "    {\n"
        "      \"kind\": one of [\"blocking\", \"improvement\", \"minor\"],\n"
        "      \"line\": line number in the full file content, or null,\n"
        "      \"message\": string,\n"
        "      \"suggestion\": string or null\n"
        "    }\n"
        "  ]\n"
        "}\n"
        "Focus on security vulnerabilities, performance issues, code quality and maintainability, "
        "architecture compliance, and best practice violations. "
        f"{focus} Be specific about line numbers where possible."
    )


def _raise_for_status(action: str, response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    detail: Any | None
    try:
        detail = response.json()
    except ValueError:
        detail = response.text
    raise AnalysisError(f"Failed to {action}: status={response.status_code}, detail={detail}")


def _extract_message_text(payload: Any) -> str:
    try:
        content = payload["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise AnalysisError("Analysis response did not contain a message.") from exc
    if not isinstance(content, str) or not content.strip():
        raise AnalysisError("Analysis response message was empty.")
    return content


def _retry_after_seconds(response: httpx.Response) -> float | None:
    raw = response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(float(raw), 0.0)
    except ValueError:
        return None


class AnalysisClient:
    """Chat-completions client used as the review :class:`Analyzer`."""

    def __init__(
        self,
        api_key: str,
        *,
        endpoint: str,
        model: str,
        timeout: float = 90.0,
        max_attempts: int = 3,
        retry_delay: float = 2.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._model = model
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def analyze(self, request: AnalysisRequest) -> str:
        ctx_logger = log_with_context(logger, path=request.path)
        prompt = build_prompt(request)
        ctx_logger.debug(f"Prompt built: {len(prompt)} characters")

        body = {
            "model": self._model,
            "temperature": 0,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }

        for attempt in range(self._max_attempts):
            is_last = attempt == self._max_attempts - 1
            wait_time = self._retry_delay * (2 ** attempt)
            try:
                response = await self._client.post(self._endpoint, json=body)
            except httpx.HTTPError as exc:
                if is_last:
                    raise AnalysisError(f"Analysis request failed after {attempt + 1} attempts: {exc}") from exc
                ctx_logger.warning(f"Analysis request failed ({exc}). Retrying in {wait_time:.2f}s...")
                await asyncio.sleep(wait_time)
                continue

            if response.status_code in RETRYABLE_STATUS_CODES and not is_last:
                wait_time = _retry_after_seconds(response) or wait_time
                ctx_logger.warning(
                    f"Analysis service returned {response.status_code} on attempt {attempt + 1}. "
                    f"Retrying in {wait_time:.2f}s..."
                )
                await asyncio.sleep(wait_time)
                continue

            _raise_for_status("analyze file", response)
            try:
                payload = response.json()
            except ValueError as exc:
                raise AnalysisError("Analysis service returned invalid JSON.") from exc
            text = _extract_message_text(payload)
            ctx_logger.debug(f"Analysis response received ({len(text)} characters)")
            return text

        raise AnalysisError("Max retries exceeded")  # pragma: no cover - loop always returns or raises
