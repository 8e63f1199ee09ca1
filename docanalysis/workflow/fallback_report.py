# docanalysis/workflow/fallback_report.py

"""
Deterministic report generation.

No network, no randomness: the same project and documents always give
the same sections. Used when AI is disabled, when the completion call or
its parsing fails, and for projects without documents.

Guarantees:
• Non-empty executive summary and conclusions
• At least one finding and one recommendation
"""

import re
from collections import Counter
from typing import List, Optional, Tuple

from docanalysis.models import (
    AnalysisSection,
    Document,
    Finding,
    Priority,
    Project,
    Recommendation,
    ReportSections,
    ReportType,
    Severity,
)
from docanalysis.prompts.system_prompts import (
    PROJECT_TYPE_LABELS,
    REPORT_TEMPLATES,
    REPORT_TYPE_LABELS,
)


SPANISH_STOP_WORDS = frozenset({
    "este", "esta", "estos", "estas", "para", "porque", "cuando", "donde",
    "como", "sobre", "desde", "hasta", "entre", "durante", "mediante",
    "según", "contra", "hacia", "ante", "bajo", "cabe", "con", "de", "en",
    "por", "sin", "tras", "versus", "vía", "que", "quien", "cual", "cuales",
    "cuanto", "aunque", "mientras", "si", "sino", "pero", "mas", "y", "o",
    "u", "ni", "no", "también", "tampoco", "solo", "solamente", "aún",
    "todavía", "ya", "ahora", "entonces", "luego", "después", "antes", "hoy",
    "ayer", "mañana", "siempre", "nunca", "mucho", "poco", "más", "menos",
    "muy", "bastante", "demasiado", "todo", "todos", "toda", "todas",
    "alguno", "algunos", "alguna", "algunas", "ninguno", "ningunos",
    "ninguna", "ningunas", "otro", "otros", "otra", "otras", "mismo",
    "mismos", "misma", "mismas", "cada", "cualquier", "cualesquiera", "tan",
    "tanto", "tanta", "tantos", "tantas",
})

# Concept extraction
MIN_WORD_LENGTH = 5
MIN_WORD_COUNT = 2
TOP_CONCEPTS = 7

# Content thresholds
MIN_EXTRACTED_CHARS = 50
MIN_DESCRIPTION_CHARS = 20
SUBSTANTIAL_DESCRIPTION_CHARS = 100
SUMMARY_PARAGRAPH_CHARS = 200
ANALYSIS_PARAGRAPH_CHARS = 250

_WORD_PATTERN = re.compile(r"[a-záéíóúñü0-9]+")
_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


def _type_label(report_type: ReportType) -> str:
    return REPORT_TYPE_LABELS.get(getattr(report_type, "value", report_type), "ejecutivo")


def _template(report_type: ReportType):
    return REPORT_TEMPLATES[getattr(report_type, "value", report_type)]


# ============================================================
# CONTENT HELPERS
# ============================================================

def usable_content(document: Document) -> Optional[Tuple[str, bool]]:
    """
    Best available text for a document and whether it counts as real content.

    Extracted text wins; a description is accepted when long enough.
    """

    extracted = (document.extracted_text or "").strip()

    if document.has_extracted_content and len(extracted) > MIN_EXTRACTED_CHARS:
        return extracted, True

    description = (document.description or "").strip()

    if len(description) > MIN_DESCRIPTION_CHARS:
        return description, len(description) > SUBSTANTIAL_DESCRIPTION_CHARS

    if len(extracted) > MIN_EXTRACTED_CHARS:
        return extracted, True

    return None


def relevant_concepts(text: str, limit: int = TOP_CONCEPTS) -> List[str]:
    """
    Most frequent significant words: longer than four letters, not a
    stop word, seen at least twice. Ties keep first-seen order.
    """

    words = [
        word
        for word in _WORD_PATTERN.findall(text.lower())
        if len(word) >= MIN_WORD_LENGTH and word not in SPANISH_STOP_WORDS
    ]

    return [
        word
        for word, count in Counter(words).most_common(limit)
        if count >= MIN_WORD_COUNT
    ]


def _paragraphs(text: str, min_length: int) -> List[str]:
    return [p.strip() for p in _PARAGRAPH_SPLIT.split(text) if len(p.strip()) > min_length]


def _sentences(text: str, min_length: int) -> List[str]:
    return [s.strip() for s in _SENTENCE_SPLIT.split(text) if len(s.strip()) > min_length]


def _clip(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


# ============================================================
# INITIAL PHASE REPORT
# ============================================================

def build_initial_report(project: Project, report_type: ReportType) -> ReportSections:
    """
    Report for a project that has no documents yet.
    """

    template = _template(report_type)
    type_label = _type_label(report_type)
    project_label = PROJECT_TYPE_LABELS.get(getattr(project.type, "value", project.type), "general")

    executive_summary = (
        f"Este informe {type_label} proporciona un análisis inicial del proyecto "
        f"{project.name} (tipo {project_label}).\n\n"
        f"CONTEXTO: {template.context}\n\n"
        f"OBJETIVO: {template.objective}\n\n"
        "El proyecto se encuentra en fase inicial de recopilación de documentación. "
        + (
            project.description
            or "Se recomienda subir documentos relevantes para realizar un análisis más "
            "completo siguiendo la estructura de la plantilla."
        )
    )

    return ReportSections(
        executive_summary=executive_summary,
        document_analysis=[],
        key_findings=[
            Finding(
                id="finding-1",
                title="Estado Inicial del Proyecto",
                description=(
                    f"El proyecto {project.name} se encuentra en fase inicial. Se recomienda "
                    "subir documentos para realizar un análisis más completo siguiendo la "
                    f"metodología de {', '.join(template.structure)}."
                ),
                severity=Severity.low,
            )
        ],
        conclusions=(
            f"El proyecto {project.name} está en desarrollo. Para un análisis más completo "
            f"siguiendo la estructura de {' → '.join(template.structure)}, se recomienda "
            "subir documentos relevantes al proyecto."
        ),
        recommendations=[
            Recommendation(
                id="rec-1",
                title="Recopilación de Documentación",
                description=(
                    "Subir documentos relevantes al proyecto para permitir un análisis más "
                    f"detallado siguiendo la plantilla de informe {type_label}."
                ),
                priority=Priority.high,
                actionable_steps=[
                    "Identificar documentos clave relacionados con el proyecto",
                    "Subir documentos en formato PDF, Word o imágenes",
                    "Añadir descripciones y contexto a cada documento",
                    f"Generar un nuevo informe {type_label} después de subir documentos",
                ],
            )
        ],
    )


# ============================================================
# FALLBACK REPORT
# ============================================================

def build_fallback_report(
    project: Project,
    documents: List[Document],
    report_type: ReportType,
) -> ReportSections:
    """
    Report built only from project metadata and document text.
    """

    if not documents:
        return build_initial_report(project, report_type)

    contents = [(doc, usable_content(doc)) for doc in documents]

    all_content = "\n\n".join(content[0] for _, content in contents if content)

    has_real_content = any(content and content[1] for _, content in contents)

    return ReportSections(
        executive_summary=_executive_summary(project, documents, report_type, all_content, has_real_content),
        document_analysis=[
            _document_analysis(i, doc, content)
            for i, (doc, content) in enumerate(contents, 1)
        ],
        key_findings=_key_findings(documents, contents, all_content, has_real_content),
        conclusions=_conclusions(project, documents, all_content, has_real_content),
        recommendations=_recommendations(all_content),
    )


def _executive_summary(project, documents, report_type, all_content, has_real_content) -> str:

    type_label = _type_label(report_type)
    count = _plural(len(documents), "documento")

    if not has_real_content or len(all_content) < MIN_EXTRACTED_CHARS:

        context = f"Contexto del proyecto: {project.description}\n\n" if project.description else ""

        return (
            f'Este informe {type_label} analiza {count} del proyecto "{project.name}".\n\n'
            f"{context}"
            "Los documentos proporcionados no contienen suficiente contenido textual extraído "
            "para realizar un análisis profundo. Se recomienda procesar los documentos para "
            "extraer su contenido completo o añadir descripciones detalladas."
        )

    summary = [
        f'Este informe {type_label} presenta un análisis exhaustivo de {count} del proyecto "{project.name}".'
    ]

    if project.description:
        summary.append(f"Contexto del Proyecto:\n{project.description}")

    # longest paragraphs carry the most information
    paragraphs = sorted(_paragraphs(all_content, 50), key=len, reverse=True)[:3]

    if paragraphs:
        summary.append(
            "Resumen del Contenido:\n"
            + "\n\n".join(_clip(p, SUMMARY_PARAGRAPH_CHARS) for p in paragraphs)
        )
    else:
        sentences = _sentences(all_content, 30)[:5]
        if sentences:
            summary.append(
                "Puntos Clave Identificados:\n" + "\n".join(f"• {s}." for s in sentences)
            )

    return "\n\n".join(summary)


def _document_analysis(position: int, document: Document, content) -> AnalysisSection:

    title = f"Análisis de Documento {position}: {document.filename}"
    file_info = (
        f"{document.filename} ({document.file_type.value.upper()}, "
        f"{document.file_size / 1024:.2f} KB)"
    )

    if content and content[1]:

        text = content[0]
        paragraphs = _paragraphs(text, 30)[:2]

        if paragraphs:
            body = "\n\n".join(p[:ANALYSIS_PARAGRAPH_CHARS] for p in paragraphs)
            body += "..." if len(text) > 2 * ANALYSIS_PARAGRAPH_CHARS else ""
        else:
            lines = [line for line in text.split("\n") if len(line.strip()) > 20]
            body = _clip("\n".join(lines[:8]) or text, 400)

        analysis = f"Contenido del documento:\n\n{body}"

    elif content:

        analysis = (
            f"Documento: {file_info}\n\nDescripción proporcionada: {content[0]}\n\n"
            "Nota: Este documento no contiene texto extraído. Se recomienda procesar el "
            "documento para extraer su contenido completo."
        )

    else:

        analysis = (
            f"Documento: {file_info}\n\nEste documento no contiene texto extraído ni "
            "descripción disponible. Para realizar un análisis completo, es necesario "
            "procesar el documento para extraer su contenido textual o añadir una "
            "descripción manual."
        )

    return AnalysisSection(
        id=f"analysis-{position}",
        title=title,
        content=analysis,
        document_references=[document.id],
    )


def _key_findings(documents, contents, all_content, has_real_content) -> List[Finding]:

    all_ids = [doc.id for doc in documents]
    findings: List[Finding] = []

    if has_real_content and len(all_content) > SUBSTANTIAL_DESCRIPTION_CHARS:

        concepts = relevant_concepts(all_content)

        if concepts:
            findings.append(
                Finding(
                    id=f"finding-{len(findings) + 1}",
                    title="Conceptos y Temas Relevantes",
                    description=(
                        "El análisis del contenido revela los siguientes conceptos y temas "
                        f"principales: {', '.join(concepts)}. Estos términos aparecen "
                        "recurrentemente en la documentación, indicando su importancia "
                        "central en el contexto del proyecto."
                    ),
                    severity=Severity.medium,
                    document_references=all_ids,
                )
            )

        if len(_sentences(all_content, 40)) > 3:
            findings.append(
                Finding(
                    id=f"finding-{len(findings) + 1}",
                    title="Contenido Sustancial Disponible",
                    description=(
                        "Los documentos analizados contienen información textual completa y "
                        "estructurada. Se identificaron múltiples secciones y conceptos "
                        "relevantes que permiten un análisis detallado del proyecto."
                    ),
                    severity=Severity.low,
                    document_references=[
                        doc.id for doc, content in contents if content and content[1]
                    ],
                )
            )

    else:

        findings.append(
            Finding(
                id="finding-1",
                title="Contenido Limitado Disponible",
                description=(
                    "Los documentos proporcionados contienen información limitada o no se ha "
                    "podido extraer su contenido completo. Para un análisis más profundo, se "
                    "recomienda procesar los documentos para extraer su contenido textual o "
                    "añadir descripciones detalladas."
                ),
                severity=Severity.medium,
                document_references=all_ids,
            )
        )

    if not findings:
        findings.append(
            Finding(
                id="finding-1",
                title="Revisión de Documentación",
                description=(
                    f"Se han revisado {_plural(len(documents), 'documento')} del proyecto. "
                    "Los documentos contienen información disponible para análisis."
                ),
                severity=Severity.medium,
                document_references=all_ids,
            )
        )

    return findings


def _conclusions(project, documents, all_content, has_real_content) -> str:

    count = _plural(len(documents), "documento")

    if not has_real_content or len(all_content) < SUBSTANTIAL_DESCRIPTION_CHARS:
        return (
            f'El análisis de {count} del proyecto "{project.name}" muestra que '
            f"{project.description or 'los documentos no contienen suficiente contenido textual extraído para realizar un análisis completo'}. "
            "Para obtener insights más profundos, se recomienda procesar los documentos para "
            "extraer su contenido completo o utilizar herramientas de análisis con IA."
        )

    paragraphs = _paragraphs(all_content, 50)
    lead = _clip(paragraphs[0] if paragraphs else all_content, SUMMARY_PARAGRAPH_CHARS)
    context = f"en el contexto de {project.description}, " if project.description else ""

    return (
        f'Basado en el análisis exhaustivo de {count} del proyecto "{project.name}", '
        f"{context}se han identificado elementos y patrones relevantes en la documentación. "
        f"{lead}\n\n"
        "Se recomienda realizar un análisis más profundo utilizando herramientas de IA para "
        "obtener insights específicos y detallados sobre el contenido de los documentos."
    )


def _recommendations(all_content: str) -> List[Recommendation]:

    if not all_content:
        return [
            Recommendation(
                id="rec-1",
                title="Procesamiento de Documentos",
                description=(
                    "Algunos documentos no contienen texto extraído. Se recomienda procesar "
                    "los documentos para extraer su contenido textual."
                ),
                priority=Priority.high,
                actionable_steps=[
                    "Verificar que los documentos contengan texto extraíble",
                    "Procesar documentos PDF o imágenes con OCR si es necesario",
                    "Añadir descripciones manuales cuando el contenido no sea extraíble",
                ],
            )
        ]

    return [
        Recommendation(
            id="rec-1",
            title="Análisis Profundo",
            description=(
                "Se recomienda realizar un análisis más detallado de los documentos utilizando "
                "herramientas de IA para obtener insights más específicos."
            ),
            priority=Priority.medium,
            actionable_steps=[
                "Habilitar el análisis con IA para obtener insights más profundos",
                "Revisar los hallazgos identificados en los documentos",
                "Considerar la incorporación de documentos adicionales si es necesario",
            ],
        )
    ]
