# docanalysis/prompts/prompt_builder.py

from typing import List

from docanalysis.models import Document, Project, ProjectType, ReportType
from docanalysis.prompts.system_prompts import (
    NO_CONTEXT_NOTICE,
    PROJECT_TYPE_LABELS,
    REPORT_SYSTEM_PROMPT,
    REPORT_TEMPLATES,
    REPORT_USER_PROMPT,
)


def _value(enum_or_str) -> str:
    return getattr(enum_or_str, "value", enum_or_str)


def document_preview(document: Document, preview_chars: int) -> str:
    """
    Extracted text when present, else the description, else file metadata.
    """

    if document.extracted_text and document.extracted_text.strip():
        return document.extracted_text.strip()[:preview_chars]

    if document.description and document.description.strip():
        return document.description.strip()

    return (
        f"Documento {document.filename} ({_value(document.file_type).upper()}, "
        f"{document.file_size / 1024:.2f} KB). Sin contenido extraído disponible."
    )


def build_system_prompt(report_type: ReportType, project_type: ProjectType) -> str:

    template = REPORT_TEMPLATES[_value(report_type)]

    return REPORT_SYSTEM_PROMPT.format(
        project_label=PROJECT_TYPE_LABELS.get(_value(project_type), "general"),
        context=template.context,
        objective=template.objective,
        style=template.style,
        tone=template.tone,
        audience=template.audience,
        numbered_structure="\n".join(
            f"{i}. {section}" for i, section in enumerate(template.structure, 1)
        ),
        structure_list=", ".join(template.structure),
        structure_arrow=" → ".join(template.structure),
    ).strip()


def build_user_prompt(
    project: Project,
    documents: List[Document],
    context: str,
    preview_chars: int,
) -> str:
    """
    Project data, retrieved context and one block per document.

    Document ids are written out so findings can reference them.
    """

    document_blocks = "\n".join(
        f"""
Documento {i} (ID: {doc.id}):
- Nombre del archivo: {doc.filename}
- Tipo: {_value(doc.file_type)}
- Descripción: {doc.description or 'Ninguna'}
- Vista previa del contenido:
{document_preview(doc, preview_chars)}
"""
        for i, doc in enumerate(documents, 1)
    )

    prompt = REPORT_USER_PROMPT.format(
        project_name=project.name,
        project_type=_value(project.type),
        project_description=project.description or "No se proporcionó contexto adicional.",
        context=context or NO_CONTEXT_NOTICE,
        documents=document_blocks,
    )

    return prompt.strip()
