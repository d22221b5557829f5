"""Application configuration helpers."""

from __future__ import annotations

import os
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Final, Tuple

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, ValidationError, field_validator

from autoreview.logger import get_logger
from autoreview.services.file_filter import DEFAULT_EXCLUDED_PATTERNS

# Load environment variables from a .env file in the working directory
load_dotenv(dotenv_path=Path.cwd() / ".env")

DEFAULT_INSTRUCTIONS_PATH: Final[str] = ".github/instructions/github-review.instructions.md"
DEFAULT_INSTRUCTIONS: Final[str] = (
    "Follow general coding best practices, security guidelines, and performance optimization."
)
DEFAULT_ANALYSIS_API_URL: Final[str] = "https://models.github.ai/inference/chat/completions"
DEFAULT_ANALYSIS_MODEL: Final[str] = "openai/gpt-4o"


class SettingsError(RuntimeError):
    """Raised when application configuration is invalid or incomplete."""


class ReviewVerbosity(str, Enum):
    MINIMAL = "minimal"
    NORMAL = "normal"
    DETAILED = "detailed"


class Settings(BaseModel):
    """Runtime settings loaded from environment variables.

    The model is frozen: one instance is built at startup and handed to every
    pipeline stage, which only ever reads from it.
    """

    model_config = ConfigDict(frozen=True)

    github_token: str | None = None
    github_api_base_url: AnyHttpUrl = "https://api.github.com"
    repository: str | None = None
    instructions_path: str = DEFAULT_INSTRUCTIONS_PATH
    verbosity: ReviewVerbosity = ReviewVerbosity.NORMAL
    concurrency: int = Field(default=4, ge=1, le=32)
    file_timeout: float = Field(default=120.0, gt=0)
    run_timeout: float = Field(default=900.0, gt=0)
    excluded_patterns: Tuple[str, ...] = DEFAULT_EXCLUDED_PATTERNS
    analysis_api_url: AnyHttpUrl = DEFAULT_ANALYSIS_API_URL
    analysis_model: str = DEFAULT_ANALYSIS_MODEL
    analysis_api_key: str | None = None

    @field_validator("repository")
    @classmethod
    def _check_repository(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip().strip("/")
        owner, _, name = value.partition("/")
        if not owner or not name or "/" in name:
            raise ValueError(f"Repository '{value}' must look like 'owner/name'.")
        return value

    @field_validator("excluded_patterns")
    @classmethod
    def _drop_blank_patterns(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(pattern.strip() for pattern in value if pattern and pattern.strip())

    @property
    def normalized_github_api_base_url(self) -> str:
        """Return the GitHub API base URL without a trailing slash."""
        return str(self.github_api_base_url).rstrip("/")

    def require_github_token(self) -> str:
        """Ensure the platform credential is configured and return it."""

        if not self.github_token:
            raise SettingsError(
                "GitHub credential is not configured. Set GITHUB_TOKEN (or GH_TOKEN)."
            )
        return self.github_token

    def require_analysis_api_key(self) -> str:
        """Return the analyzer credential, falling back to the GitHub token."""

        key = self.analysis_api_key or self.github_token
        if not key:
            raise SettingsError(
                "Analysis credential is not configured. Set ANALYSIS_API_KEY or GITHUB_TOKEN."
            )
        return key

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a validated copy with the non-``None`` overrides applied."""

        values = self.model_dump()
        values.update({key: value for key, value in overrides.items() if value is not None})
        try:
            return Settings.model_validate(values)
        except ValidationError as exc:
            raise SettingsError(f"Invalid configuration override: {_first_error(exc)}") from exc


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "value"
    return f"{location}: {first.get('msg')}"


def _parse_patterns_env(raw_value: str | None) -> Tuple[str, ...] | None:
    """Split a comma-separated deny-list; ``None`` keeps the built-in set."""

    if raw_value is None or not raw_value.strip():
        return None
    return tuple(part.strip() for part in raw_value.split(",") if part.strip())


def _repository_from_env() -> str | None:
    repository = os.getenv("GITHUB_REPOSITORY")
    if repository:
        return repository
    owner = os.getenv("GITHUB_REPOSITORY_OWNER")
    name = os.getenv("GITHUB_REPOSITORY_NAME")
    if owner and name:
        return f"{owner}/{name}"
    return None


def _build_settings() -> Settings:
    raw: dict[str, Any] = {
        "github_token": os.getenv("GITHUB_TOKEN") or os.getenv("GH_TOKEN"),
        "github_api_base_url": os.getenv("GITHUB_API_BASE_URL"),
        "repository": _repository_from_env(),
        "instructions_path": os.getenv("REVIEW_INSTRUCTIONS_PATH"),
        "verbosity": os.getenv("REVIEW_VERBOSITY"),
        "concurrency": os.getenv("REVIEW_CONCURRENCY"),
        "file_timeout": os.getenv("REVIEW_FILE_TIMEOUT"),
        "run_timeout": os.getenv("REVIEW_RUN_TIMEOUT"),
        "excluded_patterns": _parse_patterns_env(os.getenv("REVIEW_EXCLUDE")),
        "analysis_api_url": os.getenv("ANALYSIS_API_URL"),
        "analysis_model": os.getenv("ANALYSIS_MODEL") or os.getenv("COPILOT_MODEL"),
        "analysis_api_key": os.getenv("ANALYSIS_API_KEY"),
    }
    # Unset variables fall through to the model defaults
    values = {key: value for key, value in raw.items() if value not in (None, "")}
    if isinstance(values.get("verbosity"), str):
        values["verbosity"] = values["verbosity"].strip().lower()

    try:
        return Settings.model_validate(values)
    except ValidationError as exc:
        raise SettingsError(f"Invalid application configuration: {_first_error(exc)}") from exc


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return _build_settings()


def get_settings() -> Settings:
    """Retrieve cached application settings."""
    return _cached_settings()


def reset_settings_cache() -> None:
    """Clear the cached settings (primarily for tests)."""
    _cached_settings.cache_clear()


def load_instructions(path: str | Path) -> str:
    """Read the review instructions once, substituting the built-in default when absent."""

    logger = get_logger()
    instructions_file = Path(path).expanduser()
    if not instructions_file.is_file():
        logger.warning(f"Instructions file {instructions_file} not found, using default standards")
        return DEFAULT_INSTRUCTIONS

    text = instructions_file.read_text(encoding="utf-8").strip()
    if not text:
        logger.warning(f"Instructions file {instructions_file} is empty, using default standards")
        return DEFAULT_INSTRUCTIONS
    logger.info(f"Loaded review instructions from {instructions_file}")
    return text
