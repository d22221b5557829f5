"""Turn raw analysis output into validated file reports."""

from __future__ import annotations

import json
import math
import re
from typing import Any, Dict, List

from pydantic import ValidationError

from autoreview.logger import get_logger, log_with_context
from autoreview.models.analysis import AnalysisFindingPayload, AnalysisReportPayload
from autoreview.models.review import FileReport, Finding, FindingKind

logger = get_logger()

NO_SUMMARY = "No summary available"

_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")

_KIND_ALIASES: Dict[str, FindingKind] = {
    "blocking": FindingKind.BLOCKING,
    "blocker": FindingKind.BLOCKING,
    "critical": FindingKind.BLOCKING,
    "improvement": FindingKind.IMPROVEMENT,
    "major": FindingKind.IMPROVEMENT,
    "minor": FindingKind.MINOR,
    "nitpick": FindingKind.MINOR,
    "nit": FindingKind.MINOR,
    "info": FindingKind.MINOR,
}


class PayloadParseError(ValueError):
    """Raised when no usable structured record can be located in a response."""


def _load_object(candidate: str) -> Dict[str, Any] | None:
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def extract_record(text: str) -> Dict[str, Any]:
    """Locate the JSON object embedded in free-form text.

    Tried in order: the whole text, each fenced code block, and the span from the
    first ``{`` to the last ``}``.
    """

    text = (text or "").strip()
    if not text:
        raise PayloadParseError("empty response")

    if (record := _load_object(text)) is not None:
        return record

    for match in _FENCED_BLOCK_RE.finditer(text):
        if (record := _load_object(match.group(1).strip())) is not None:
            return record

    first_idx = text.find("{")
    last_idx = text.rfind("}")
    if first_idx != -1 and last_idx > first_idx:
        if (record := _load_object(text[first_idx : last_idx + 1])) is not None:
            return record

    raise PayloadParseError("no JSON object found in response")


def _coerce_kind(raw: Any) -> FindingKind | None:
    if isinstance(raw, str):
        return _KIND_ALIASES.get(raw.strip().lower())
    return None


def _coerce_line(raw: Any) -> int | None:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw > 0 else None
    if isinstance(raw, float):
        return int(raw) if raw.is_integer() and raw > 0 else None
    if isinstance(raw, str) and raw.strip().isdigit():
        value = int(raw.strip())
        return value if value > 0 else None
    return None


def _coerce_score(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, str):
        # Accept "7" and "7/10"
        raw = raw.strip().split("/", 1)[0].strip()
        try:
            raw = float(raw)
        except ValueError:
            return None
    if not isinstance(raw, (int, float)) or math.isnan(raw):
        return None
    value = float(raw)
    return value if 1.0 <= value <= 10.0 else None


def _coerce_suggestion(raw: Any) -> str | None:
    if not isinstance(raw, str):
        return None
    raw = raw.strip()
    if not raw or raw.lower() == "null":
        return None
    return raw


def _validate_finding(entry: Any, index: int, ctx_logger) -> Finding | None:
    if not isinstance(entry, dict):
        ctx_logger.warning(f"Dropping finding #{index}: expected an object, got {type(entry).__name__}")
        return None
    try:
        payload = AnalysisFindingPayload.model_validate(entry)
    except ValidationError as exc:
        reasons = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'finding'}: {error['msg']}"
            for error in exc.errors()
        )
        ctx_logger.warning(f"Dropping finding #{index}: {reasons}")
        return None

    kind = _coerce_kind(payload.kind)
    if kind is None:
        ctx_logger.info(f"Finding #{index} has unknown kind {payload.kind!r}; treating it as minor")
        kind = FindingKind.MINOR

    line = _coerce_line(payload.line)
    if line is None and payload.line is not None:
        ctx_logger.info(f"Finding #{index} has invalid line {payload.line!r}; reporting it at file level")

    return Finding(
        kind=kind,
        message=payload.message,
        line=line,
        suggestion=_coerce_suggestion(payload.suggestion),
    )


def parse_analysis(path: str, raw_response: str) -> FileReport:
    """Parse one analysis response into a :class:`FileReport`.

    Individual malformed findings are dropped or down-graded. A response without
    a usable record yields a degraded report instead of raising.
    """

    ctx_logger = log_with_context(logger, path=path)

    try:
        record = extract_record(raw_response)
        payload = AnalysisReportPayload.model_validate(record)
    except PayloadParseError as exc:
        ctx_logger.warning(f"Unparsable analysis response for {path}: {exc}")
        return FileReport.degraded(path, f"unparsable analysis response ({exc})")
    except ValidationError as exc:
        ctx_logger.warning(f"Analysis record for {path} does not match the report schema: {exc.error_count()} error(s)")
        return FileReport.degraded(path, "analysis response did not match the report schema")

    findings: List[Finding] = []
    for index, entry in enumerate(payload.findings, start=1):
        finding = _validate_finding(entry, index, ctx_logger)
        if finding is not None:
            findings.append(finding)

    dropped = len(payload.findings) - len(findings)
    if dropped:
        ctx_logger.info(f"Dropped {dropped} of {len(payload.findings)} finding(s) for {path}")

    score = _coerce_score(payload.score)
    if score is None and payload.score is not None:
        ctx_logger.info(f"Score {payload.score!r} for {path} is not within 1-10; marking it unavailable")

    summary = payload.summary.strip() if isinstance(payload.summary, str) else ""
    return FileReport(path=path, score=score, summary=summary or NO_SUMMARY, findings=findings)

