# tests/test_response_parser.py
import json

import pytest

from docanalysis.errors import ResponseParseError
from docanalysis.llm.response_parser import (
    normalize_priority,
    normalize_severity,
    parse_report_response,
)
from docanalysis.models import Priority, Severity

from tests.conftest import ai_report_json


class TestNormalization:

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("crítica", Severity.critical),
            ("critica", Severity.critical),
            ("CRITICAL", Severity.critical),
            ("Alta", Severity.high),
            ("high", Severity.high),
            ("media", Severity.medium),
            ("baja", Severity.low),
            (" Low ", Severity.low),
            ("desconocida", Severity.medium),
            (None, Severity.medium),
            ("", Severity.medium),
        ],
    )
    def test_severity(self, raw, expected):
        assert normalize_severity(raw) == expected

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("alta", Priority.high),
            ("HIGH", Priority.high),
            ("Media", Priority.medium),
            ("baja", Priority.low),
            ("crítica", Priority.medium),
            (None, Priority.medium),
        ],
    )
    def test_priority(self, raw, expected):
        assert normalize_priority(raw) == expected


class TestParseReportResponse:

    def test_bare_json(self):
        sections = parse_report_response(ai_report_json("doc-1"))

        assert sections.executive_summary == "Resumen del contrato de servicios."
        assert sections.document_analysis[0].id == "analysis-1"
        assert sections.document_analysis[0].document_references == ["doc-1"]
        assert sections.key_findings[0].id == "finding-1"
        assert sections.key_findings[0].severity == Severity.high
        assert sections.recommendations[0].id == "rec-1"
        assert sections.recommendations[0].priority == Priority.medium
        assert sections.recommendations[0].actionable_steps == ["Convocar reunión", "Revisar cláusulas"]

    def test_fenced_json(self):
        content = f"Aquí está el informe:\n```json\n{ai_report_json('doc-1')}\n```\nSaludos."

        sections = parse_report_response(content)

        assert sections.conclusions == "El contrato requiere revisión."

    def test_camel_case_keys(self):
        content = json.dumps(
            {
                "executiveSummary": "Resumen",
                "keyFindings": [
                    {"title": "H", "description": "D", "severity": "baja", "document_references": ["d"]}
                ],
                "conclusions": "Conclusión",
                "recommendations": [
                    {"title": "R", "description": "D", "actionableSteps": ["uno"]}
                ],
            }
        )

        sections = parse_report_response(content)

        assert sections.executive_summary == "Resumen"
        assert sections.key_findings[0].severity == Severity.low
        assert sections.key_findings[0].document_references == ["d"]
        assert sections.recommendations[0].actionable_steps == ["uno"]
        assert sections.document_analysis == []

    def test_missing_titles_get_defaults(self):
        content = json.dumps(
            {
                "executive_summary": "Resumen",
                "key_findings": [{"description": "x"}, {"description": "y"}],
                "conclusions": "Conclusión",
                "recommendations": [{"description": "z"}],
            }
        )

        sections = parse_report_response(content)

        assert [f.title for f in sections.key_findings] == ["Hallazgo 1", "Hallazgo 2"]
        assert [f.id for f in sections.key_findings] == ["finding-1", "finding-2"]
        assert sections.recommendations[0].title == "Recomendación 1"

    @pytest.mark.parametrize(
        "content",
        [
            "",
            "no es json",
            "```json\n{roto\n```",
            "[1, 2, 3]",
            json.dumps({"key_findings": "no es una lista"}),
        ],
    )
    def test_malformed_content_raises(self, content):
        with pytest.raises(ResponseParseError):
            parse_report_response(content)

    @pytest.mark.parametrize(
        "section, field, value",
        [
            ("key_findings", "title", 7),
            ("document_analysis", "content", ["a", "b"]),
            ("recommendations", "description", {"texto": "x"}),
        ],
    )
    def test_wrongly_typed_fields_raise(self, section, field, value):
        report = json.loads(ai_report_json("doc-1"))
        report[section][0][field] = value

        with pytest.raises(ResponseParseError):
            parse_report_response(json.dumps(report))

    def test_non_string_summary_raises(self):
        report = json.loads(ai_report_json("doc-1"))
        report["executive_summary"] = {"texto": "resumen"}

        with pytest.raises(ResponseParseError):
            parse_report_response(json.dumps(report))

    @pytest.mark.parametrize(
        "missing",
        ["executive_summary", "conclusions", "key_findings", "recommendations"],
    )
    def test_incomplete_report_raises(self, missing):
        report = json.loads(ai_report_json("doc-1"))
        del report[missing]

        with pytest.raises(ResponseParseError):
            parse_report_response(json.dumps(report))

    def test_empty_object_raises(self):
        with pytest.raises(ResponseParseError):
            parse_report_response("{}")
