"""Tests for the command-line entry point."""

from __future__ import annotations

import pytest

from autoreview import cli
from autoreview.config import Settings
from autoreview.models.review import ChangeSet, PublishResult, ReviewOutcome
from autoreview.services.change_set import AmbiguousChangeSet

CHANGE_SET = ChangeSet(
    repository="octo/widgets", number=7, base_ref="main", head_ref="feature/x", head_sha="abc123"
)


@pytest.fixture(autouse=True)
def settings(monkeypatch):
    monkeypatch.delenv("GITHUB_STEP_SUMMARY", raising=False)
    monkeypatch.delenv("GITHUB_OUTPUT", raising=False)
    base = Settings(github_token="token", repository="octo/widgets")
    monkeypatch.setattr(cli, "get_settings", lambda: base)
    return base


def _patch_run(monkeypatch, outcome=None, error=None):
    calls = []

    async def fake_run(settings, identifier):
        calls.append((settings, identifier))
        if error is not None:
            raise error
        return outcome

    monkeypatch.setattr(cli, "_run", fake_run)
    return calls


def test_publishes_and_prints_summary(monkeypatch, capsys):
    outcome = ReviewOutcome(
        change_set=CHANGE_SET, publish=PublishResult(posted=2, has_blocking=True, summary_body="## Review body")
    )
    calls = _patch_run(monkeypatch, outcome=outcome)

    exit_code = cli.main(["7", "--verbosity", "minimal", "--concurrency", "2", "--exclude", "*.lock"])

    assert exit_code == cli.EXIT_OK
    assert "## Review body" in capsys.readouterr().out
    settings, identifier = calls[0]
    assert identifier == "7"
    assert settings.verbosity.value == "minimal"
    assert settings.concurrency == 2
    assert settings.excluded_patterns == ("*.lock",)


def test_nothing_to_review(monkeypatch, capsys):
    _patch_run(monkeypatch, outcome=ReviewOutcome(change_set=CHANGE_SET))

    assert cli.main([]) == cli.EXIT_OK
    assert "Nothing to review in #7." in capsys.readouterr().out


def test_fatal_run_error(monkeypatch, capsys):
    _patch_run(monkeypatch, error=AmbiguousChangeSet("No open change set found for branch 'x'"))

    assert cli.main(["x"]) == cli.EXIT_FATAL
    assert "error: No open change set found" in capsys.readouterr().err


def test_invalid_override_is_fatal(monkeypatch, capsys):
    calls = _patch_run(monkeypatch, outcome=None)

    assert cli.main(["--concurrency", "0"]) == cli.EXIT_FATAL
    assert calls == []
    assert "error:" in capsys.readouterr().err


def test_missing_token_is_fatal(monkeypatch, capsys):
    monkeypatch.setattr(cli, "get_settings", lambda: Settings(repository="octo/widgets"))

    assert cli.main(["7"]) == cli.EXIT_FATAL
    assert "GITHUB_TOKEN" in capsys.readouterr().err
