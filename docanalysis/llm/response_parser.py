# docanalysis/llm/response_parser.py

"""
Parses the completion output into report sections.

Guarantees:
• Accepts bare JSON or JSON wrapped in ``` / ```json fences
• snake_case and camelCase keys both accepted
• Severity and priority always land on a known level
• Section ids are synthetic: analysis-N, finding-N, rec-N
• Missing sections or wrongly typed fields raise ResponseParseError
"""

import json
import logging
import re
import unicodedata
from typing import Any, List, Optional

from pydantic import ValidationError

from docanalysis.errors import ResponseParseError
from docanalysis.models import (
    AnalysisSection,
    Finding,
    Priority,
    Recommendation,
    ReportSections,
    Severity,
)

logger = logging.getLogger(__name__)


_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL | re.IGNORECASE)

_SEVERITY_MAP = {
    "critica": Severity.critical,
    "critico": Severity.critical,
    "critical": Severity.critical,
    "alta": Severity.high,
    "alto": Severity.high,
    "high": Severity.high,
    "media": Severity.medium,
    "medio": Severity.medium,
    "medium": Severity.medium,
    "baja": Severity.low,
    "bajo": Severity.low,
    "low": Severity.low,
}

_PRIORITY_MAP = {
    "alta": Priority.high,
    "alto": Priority.high,
    "high": Priority.high,
    "media": Priority.medium,
    "medio": Priority.medium,
    "medium": Priority.medium,
    "baja": Priority.low,
    "bajo": Priority.low,
    "low": Priority.low,
}


def _fold(value: Optional[str]) -> str:
    """Lowercase and strip accents: 'Crítica' -> 'critica'."""

    if not isinstance(value, str):
        return ""

    decomposed = unicodedata.normalize("NFKD", value.strip().lower())

    return "".join(c for c in decomposed if not unicodedata.combining(c))


def normalize_severity(value: Optional[str]) -> Severity:
    return _SEVERITY_MAP.get(_fold(value), Severity.medium)


def normalize_priority(value: Optional[str]) -> Priority:
    return _PRIORITY_MAP.get(_fold(value), Priority.medium)


def _first(item: dict, *keys, default=None) -> Any:

    for key in keys:
        value = item.get(key)
        if value:
            return value

    return default


def _string_list(value) -> List[str]:

    if not isinstance(value, list):
        return []

    return [str(v) for v in value if v is not None and str(v).strip()]


def _list_of_dicts(parsed: dict, *keys) -> List[dict]:

    items = _first(parsed, *keys, default=[])

    if not isinstance(items, list):
        raise ResponseParseError(f"Expected a list for '{keys[0]}'")

    return [item for item in items if isinstance(item, dict)]


def _extract_json(content: str) -> str:

    match = _FENCE_PATTERN.search(content)

    if match:
        return match.group(1)

    return content.strip()


def parse_report_response(content: str) -> ReportSections:
    """
    Parse completion output into ReportSections.

    Raises:
        ResponseParseError: on invalid JSON or an unexpected shape
    """

    if not content or not content.strip():
        raise ResponseParseError("Empty completion content")

    try:
        parsed = json.loads(_extract_json(content))
    except json.JSONDecodeError as e:

        logger.warning(
            "Report response is not valid JSON",
            extra={"error": str(e), "response_length": len(content)},
        )

        raise ResponseParseError(f"Invalid JSON in completion: {e}") from e

    if not isinstance(parsed, dict):
        raise ResponseParseError("Completion JSON is not an object")

    try:
        sections = _build_sections(parsed)
    except ValidationError as e:

        logger.warning(
            "Report response has wrongly typed fields",
            extra={"error_count": e.error_count()},
        )

        raise ResponseParseError(f"Unexpected field types in completion: {e}") from e

    _require_complete(sections)

    return sections


def _build_sections(parsed: dict) -> ReportSections:

    document_analysis = [
        AnalysisSection(
            id=f"analysis-{i}",
            title=item.get("title") or f"Análisis de Documento {i}",
            content=item.get("content") or "",
            document_references=_string_list(
                _first(item, "document_ids", "document_references", "documentReferences")
            ),
        )
        for i, item in enumerate(_list_of_dicts(parsed, "document_analysis", "documentAnalysis"), 1)
    ]

    key_findings = [
        Finding(
            id=f"finding-{i}",
            title=item.get("title") or f"Hallazgo {i}",
            description=item.get("description") or "",
            severity=normalize_severity(item.get("severity")),
            document_references=_string_list(
                _first(item, "document_ids", "document_references", "documentReferences")
            ),
        )
        for i, item in enumerate(_list_of_dicts(parsed, "key_findings", "keyFindings"), 1)
    ]

    recommendations = [
        Recommendation(
            id=f"rec-{i}",
            title=item.get("title") or f"Recomendación {i}",
            description=item.get("description") or "",
            priority=normalize_priority(item.get("priority")),
            actionable_steps=_string_list(
                _first(item, "actionable_steps", "actionableSteps")
            ),
        )
        for i, item in enumerate(_list_of_dicts(parsed, "recommendations"), 1)
    ]

    return ReportSections(
        executive_summary=_first(parsed, "executive_summary", "executiveSummary", default=""),
        document_analysis=document_analysis,
        key_findings=key_findings,
        conclusions=parsed.get("conclusions") or "",
        recommendations=recommendations,
    )


def _require_complete(sections: ReportSections):
    """
    A report needs a summary, conclusions, and at least one finding and
    one recommendation.
    """

    missing = [
        name
        for name, present in (
            ("executive_summary", sections.executive_summary.strip()),
            ("conclusions", sections.conclusions.strip()),
            ("key_findings", sections.key_findings),
            ("recommendations", sections.recommendations),
        )
        if not present
    ]

    if missing:
        raise ResponseParseError(f"Completion is missing report sections: {', '.join(missing)}")
