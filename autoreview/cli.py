"""Command-line entry point: review one pull request and publish the results."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Sequence

from autoreview.analysis_client import AnalysisClient
from autoreview.config import ReviewVerbosity, Settings, SettingsError, get_settings, load_instructions
from autoreview.github_client import GitHubClient
from autoreview.logger import configure_logger, get_logger
from autoreview.models.review import ReviewOutcome
from autoreview.services.change_set import ReviewRunError
from autoreview.services.publisher import write_job_summary
from autoreview.services.review_runner import ReviewRunner, resolve_repository

logger = get_logger()

EXIT_OK = 0
EXIT_FATAL = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autoreview",
        description="Analyze the files of a pull request and publish review comments on it.",
    )
    parser.add_argument(
        "change_set",
        nargs="?",
        default=None,
        help="Pull request number (or head branch). Defaults to the PR of the current branch.",
    )
    parser.add_argument("--repo", default=None, help="Target repository as owner/name")
    parser.add_argument(
        "--verbosity",
        choices=[level.value for level in ReviewVerbosity],
        default=None,
        help="Review verbosity (default: REVIEW_VERBOSITY or normal)",
    )
    parser.add_argument("--concurrency", type=int, default=None, help="Files analyzed in parallel")
    parser.add_argument("--file-timeout", type=float, default=None, help="Per-file analysis timeout in seconds")
    parser.add_argument(
        "--run-timeout",
        type=float,
        default=None,
        help="Time limit in seconds for analyzing all files; the summary is still published",
    )
    parser.add_argument(
        "--exclude",
        action="append",
        default=None,
        metavar="GLOB",
        help="Exclude paths matching GLOB; repeatable, replaces the built-in deny-list",
    )
    parser.add_argument("--instructions", default=None, help="Path to the review instructions file")
    parser.add_argument("--log-level", default=None, help="Log level (default: APP_LOG_LEVEL or INFO)")
    return parser


def _settings_from_args(args: argparse.Namespace) -> Settings:
    return get_settings().with_overrides(
        repository=args.repo,
        verbosity=args.verbosity,
        concurrency=args.concurrency,
        file_timeout=args.file_timeout,
        run_timeout=args.run_timeout,
        excluded_patterns=tuple(args.exclude) if args.exclude else None,
        instructions_path=args.instructions,
    )


def _report_outcome(outcome: ReviewOutcome) -> None:
    if outcome.publish is None:
        print(f"Nothing to review in #{outcome.change_set.number}.")
        return
    print(outcome.publish.summary_body)
    write_job_summary(outcome.publish)


async def _run(settings: Settings, identifier: str | None) -> ReviewOutcome:
    token = settings.require_github_token()
    repository = resolve_repository(settings)
    instructions = load_instructions(settings.instructions_path)

    async with GitHubClient(base_url=settings.normalized_github_api_base_url, token=token) as github_client:
        analyzer = AnalysisClient(
            settings.require_analysis_api_key(),
            endpoint=str(settings.analysis_api_url),
            model=settings.analysis_model,
            timeout=settings.file_timeout,
        )
        try:
            runner = ReviewRunner(
                settings,
                github_client=github_client,
                analyzer=analyzer,
                instructions=instructions,
                repository=repository,
            )
            return await runner.run(identifier)
        finally:
            await analyzer.aclose()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    if args.log_level:
        configure_logger(level=args.log_level, force=True)

    try:
        settings = _settings_from_args(args)
        outcome = asyncio.run(_run(settings, args.change_set))
    except SettingsError as exc:
        logger.error(f"Configuration error: {exc}")
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FATAL
    except ReviewRunError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FATAL

    _report_outcome(outcome)
    return EXIT_OK


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
