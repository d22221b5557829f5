"""Tests for the chat-completions analyzer client."""

from __future__ import annotations

import json
from typing import List

import httpx
import pytest

from autoreview.analysis_client import (
    MAX_DIFF_CHARS,
    AnalysisClient,
    AnalysisError,
    build_prompt,
)
from autoreview.models.review import AnalysisRequest

ENDPOINT = "https://models.example.test/chat/completions"


def _request(**overrides) -> AnalysisRequest:
    values = {
        "instructions": "Prefer const.",
        "path": "a.ts",
        "diff": "@@ -1 +1 @@\n-let a\n+const a\n",
        "content": "const a = 1;\n",
    }
    values.update(overrides)
    return AnalysisRequest(**values)


def _completion(text: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


def _client(responses: List[httpx.Response], seen: List[httpx.Request]) -> AnalysisClient:
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return queue.pop(0)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AnalysisClient("key", endpoint=ENDPOINT, model="test-model", retry_delay=0, client=http)


class TestBuildPrompt:
    def test_contains_inputs_and_schema(self):
        prompt = build_prompt(_request())

        assert "Prefer const." in prompt
        assert "FILE: a.ts" in prompt
        assert "+const a" in prompt
        assert "const a = 1;" in prompt
        assert '"kind": one of ["blocking", "improvement", "minor"]' in prompt

    def test_long_diff_is_truncated(self):
        prompt = build_prompt(_request(diff="+" * (MAX_DIFF_CHARS + 10)))

        assert "(truncated, 10 more characters)" in prompt

    def test_verbosity_changes_focus(self):
        assert "Skip nitpicks" in build_prompt(_request(verbosity="minimal"))
        assert "Be thorough" in build_prompt(_request(verbosity="detailed"))
        assert "Only include actionable feedback." in build_prompt(_request(verbosity="unknown"))


class TestAnalysisClient:
    @pytest.mark.asyncio
    async def test_returns_message_text(self):
        seen: List[httpx.Request] = []
        client = _client([httpx.Response(200, json=_completion('{"score": 8}'))], seen)

        text = await client.analyze(_request())

        assert text == '{"score": 8}'
        body = json.loads(seen[0].content)
        assert body["model"] == "test-model"
        assert body["temperature"] == 0
        assert [message["role"] for message in body["messages"]] == ["system", "user"]

    @pytest.mark.asyncio
    async def test_retries_rate_limit(self):
        seen: List[httpx.Request] = []
        client = _client(
            [httpx.Response(429, json={"error": "slow down"}), httpx.Response(200, json=_completion("ok"))],
            seen,
        )

        assert await client.analyze(_request()) == "ok"
        assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self):
        seen: List[httpx.Request] = []
        client = _client([httpx.Response(400, json={"error": "bad request"})], seen)

        with pytest.raises(AnalysisError, match="status=400"):
            await client.analyze(_request())
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        seen: List[httpx.Request] = []
        client = _client([httpx.Response(503, text="unavailable") for _ in range(3)], seen)

        with pytest.raises(AnalysisError, match="status=503"):
            await client.analyze(_request())
        assert len(seen) == 3

    @pytest.mark.asyncio
    async def test_missing_choices(self):
        client = _client([httpx.Response(200, json={"choices": []})], [])

        with pytest.raises(AnalysisError, match="did not contain a message"):
            await client.analyze(_request())

    @pytest.mark.asyncio
    async def test_empty_message(self):
        client = _client([httpx.Response(200, json=_completion("   "))], [])

        with pytest.raises(AnalysisError, match="empty"):
            await client.analyze(_request())
