"""
Centralized report prompts and templates.

This file defines ALL report-writing behavior.

Production rule:
NEVER hardcode prompts inside workflow or model client.
Always import from here.
"""

from typing import Dict, List, NamedTuple


class ReportTemplate(NamedTuple):
    context: str
    objective: str
    style: str
    tone: str
    audience: str
    structure: List[str]


REPORT_TEMPLATES: Dict[str, ReportTemplate] = {
    "executive": ReportTemplate(
        context=(
            "El informe recopila información de diversas fuentes y sintetiza los principales "
            "resultados, hallazgos y conclusiones de una investigación. Debe servir como resumen "
            "ejecutivo de alto nivel para tomadores de decisiones."
        ),
        objective=(
            "Generar un informe ejecutivo de investigación con un resumen claro, hallazgos clave "
            "y conclusiones estratégicas, usando un lenguaje formal, directo y orientado a resultados."
        ),
        style=(
            'Redacción profesional, tipo "resumen para alta dirección", con encabezados, '
            "viñetas y secciones bien definidas."
        ),
        tone="Formal, analítico y objetivo. Evitar opiniones personales o lenguaje emocional.",
        audience=(
            "Directivos, gerentes o autoridades que necesitan una visión rápida y sintética "
            "de los resultados del análisis."
        ),
        structure=[
            "Resumen Ejecutivo",
            "Metodología de Investigación",
            "Hallazgos Principales",
            "Conclusiones y Recomendaciones",
            "Anexo de Referencias",
        ],
    ),
    "technical": ReportTemplate(
        context=(
            "El informe debe documentar un análisis técnico o científico basado en datos, "
            "experimentos, o revisión documental especializada."
        ),
        objective=(
            "Generar un informe técnico de investigación, incluyendo detalles metodológicos, "
            "interpretación de resultados y recomendaciones técnicas."
        ),
        style=(
            "Estilo técnico, estructurado y basado en evidencia. Debe incluir tablas, listas "
            "numeradas o figuras si es relevante."
        ),
        tone="Preciso, técnico y académico.",
        audience=(
            "Profesionales o especialistas del área técnica o científica que requieren conocer "
            "los detalles del proceso y los resultados del análisis."
        ),
        structure=[
            "Resumen Técnico",
            "Objetivos del Estudio",
            "Metodología Detallada",
            "Resultados y Análisis",
            "Conclusiones Técnicas",
            "Referencias Bibliográficas",
        ],
    ),
    "compliance": ReportTemplate(
        context=(
            "Se requiere evaluar si un conjunto de documentos, procesos o actividades cumplen "
            "con normativas legales, reglamentarias o internas."
        ),
        objective=(
            "Elaborar un informe de cumplimiento, identificando desviaciones, riesgos y "
            "recomendaciones correctivas."
        ),
        style=(
            "Estilo formal y normativo. Usa un lenguaje propio de auditoría, con claridad y "
            "precisión en los hallazgos."
        ),
        tone="Imparcial, objetivo y profesional.",
        audience=(
            "Auditores, equipos legales, directores de cumplimiento o autoridades regulatorias."
        ),
        structure=[
            "Resumen de Cumplimiento",
            "Alcance y Criterios de Evaluación",
            "Hallazgos de Cumplimiento / No Cumplimiento",
            "Análisis de Riesgos",
            "Recomendaciones Correctivas",
            "Anexo de Evidencias",
        ],
    ),
    "financial": ReportTemplate(
        context=(
            "El informe se centra en analizar información económica, presupuestaria o contable "
            "para determinar desempeño financiero, tendencias o riesgos."
        ),
        objective=(
            "Generar un informe financiero de análisis, basado en datos económicos o financieros, "
            "con hallazgos cuantitativos y conclusiones estratégicas."
        ),
        style=(
            "Estilo analítico y cuantitativo. Incluye cifras, indicadores clave, tablas o "
            "gráficos cuando corresponda."
        ),
        tone="Profesional, objetivo y analítico.",
        audience=(
            "Analistas financieros, inversionistas, autoridades fiscales o gerentes de finanzas."
        ),
        structure=[
            "Resumen Financiero",
            "Objetivos del Análisis",
            "Datos y Fuentes",
            "Análisis de Resultados",
            "Conclusiones y Recomendaciones Estratégicas",
            "Anexo de Tablas o Indicadores",
        ],
    ),
}


PROJECT_TYPE_LABELS = {
    "general": "general",
    "financial": "financiero",
    "legal": "legal",
}

REPORT_TYPE_LABELS = {
    "executive": "ejecutivo",
    "technical": "técnico",
    "compliance": "de cumplimiento",
    "financial": "financiero",
}


# Retrieval queries used to gather context for each report type
RETRIEVAL_QUERIES: Dict[str, List[str]] = {
    "executive": [
        "resultados principales y conclusiones",
        "riesgos, oportunidades y decisiones clave",
        "montos, plazos y compromisos relevantes",
    ],
    "technical": [
        "metodología, procedimientos y especificaciones técnicas",
        "resultados, mediciones y análisis de datos",
        "limitaciones técnicas y recomendaciones",
    ],
    "compliance": [
        "obligaciones, normativas y requisitos legales",
        "incumplimientos, desviaciones y sanciones",
        "plazos, cláusulas y responsabilidades contractuales",
    ],
    "financial": [
        "montos, presupuestos, costos e ingresos",
        "indicadores financieros, tendencias y variaciones",
        "riesgos financieros, deudas y obligaciones de pago",
    ],
}


REPORT_SYSTEM_PROMPT = """
Eres un experto analista de documentos especializado en análisis {project_label}.

CONTEXTO DE LA PLANTILLA:
{context}

OBJETIVO:
{objective}

ESTILO REQUERIDO:
{style}

TONO REQUERIDO:
{tone}

PÚBLICO OBJETIVO:
{audience}

ESTRUCTURA DEL INFORME (en orden):
{numbered_structure}

Genera tu respuesta como un objeto JSON con la siguiente estructura:
{{
  "executive_summary": "Un resumen completo siguiendo la estructura de la plantilla. Debe incluir: {structure_list}",
  "document_analysis": [
    {{
      "title": "Título del análisis",
      "content": "Contenido detallado del análisis con referencias específicas...",
      "document_ids": ["doc-id-1", "doc-id-2"]
    }}
  ],
  "key_findings": [
    {{
      "title": "Título del hallazgo",
      "description": "Descripción detallada del hallazgo con evidencia...",
      "severity": "alta|media|baja|crítica",
      "document_ids": ["doc-id-1"]
    }}
  ],
  "conclusions": "Conclusiones completas basadas en el análisis...",
  "recommendations": [
    {{
      "title": "Título de la recomendación",
      "description": "Descripción detallada dirigida al público objetivo...",
      "priority": "alta|media|baja",
      "actionable_steps": ["Paso 1", "Paso 2", "Paso 3"]
    }}
  ]
}}

IMPORTANTE:
- TODA la respuesta debe estar en ESPAÑOL
- SIGUE ESTRICTAMENTE la estructura de la plantilla: {structure_arrow}
- Sé específico y basado en evidencia
- Referencia contenido real de los documentos
- Usa niveles de severidad apropiados (crítica, alta, media, baja)
- Proporciona recomendaciones accionables
- Asegúrate de que todos los hallazgos sean rastreables a documentos fuente
- Responde ÚNICAMENTE con el objeto JSON
"""


REPORT_USER_PROMPT = """
Analiza los siguientes documentos para el proyecto "{project_name}" (tipo {project_type}).

Descripción del Proyecto: {project_description}

CONTEXTO RELEVANTE RECUPERADO:
----------------
{context}
----------------

Documentos a analizar:
{documents}

Genera un informe completo de análisis {project_type}. Enfócate en:
1. Insights y patrones clave en todos los documentos
2. Hallazgos críticos que requieren atención
3. Riesgos y oportunidades
4. Recomendaciones accionables con pasos específicos
5. Conclusiones basadas en evidencia

IMPORTANTE: Responde TODO en ESPAÑOL. Cita el contexto recuperado cuando sustente un hallazgo.
Asegúrate de que todos los hallazgos referencien IDs de documentos específicos para trazabilidad.
"""


NO_CONTEXT_NOTICE = "No se recuperó contexto relevante para este proyecto."
