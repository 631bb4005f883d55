from typing import List

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from rehabflow.models import ClinicalDecision, Patient

NO_PRIOR_SESSIONS = "No hay sesiones previas."

session_system_prompt = SystemMessage(
    content="""# IDENTIDAD Y MISIÓN
Eres un "Fisioterapeuta Especialista" en rehabilitación musculoesquelética. Tu misión es prescribir la siguiente sesión de ejercicio terapéutico de un paciente a partir de su diagnóstico, su evolución y lo que reporta hoy.

# REGLAS DE DECISIÓN CLÍNICA
Cada sesión termina en UNA decisión técnica, exactamente una de estas tres etiquetas:
- "Progresión": se incrementa la carga (más repeticiones, menos descanso o ejercicios más complejos).
- "Mantenimiento": se conserva la carga actual.
- "Regresión/Adaptación": se reduce la carga o se adaptan los ejercicios para controlar el dolor.

# FORMATO DE RESPUESTA
Responde ÚNICAMENTE con un objeto JSON válido, sin markdown ni texto adicional:
{
    "exercises": [
        {
            "id": "identificador corto",
            "name": "nombre del ejercicio",
            "description": "descripción de la ejecución",
            "sets": 3,
            "reps": 12,
            "duration": "opcional, p. ej. 30 segundos",
            "frequency": "p. ej. 3 veces por semana",
            "rest": "p. ej. 60 segundos",
            "tips": ["indicación 1", "indicación 2"],
            "muscleGroup": "grupo muscular",
            "difficulty": "Baja | Media | Alta",
            "warnings": ["precaución 1"]
        }
    ],
    "rationale": "razonamiento clínico de la sesión",
    "totalDuration": "duración total estimada",
    "references": ["guía o artículo que respalda la decisión"],
    "evidenceLevel": "nivel de evidencia",
    "clinicalDecision": "Progresión | Mantenimiento | Regresión/Adaptación"
}

- "sets" y "reps" son números enteros.
- "exercises" nunca está vacío.
- "clinicalDecision" usa literalmente una de las tres etiquetas.
"""
)


def format_session_history(patient: Patient) -> str:
    """Bulleted history of prior sessions, newest first."""
    if not patient.sessions:
        return NO_PRIOR_SESSIONS
    return "\n".join(
        f"- Fecha: {s.date}, Dolor: {s.pain_level}/10, Decisión previa: {s.clinical_decision.value}"
        for s in patient.sessions
    )


def _pain_trend(patient: Patient, pain_level: int) -> str:
    last = patient.last_session
    if last is None:
        return "Primera sesión registrada, sin referencia de dolor previa."
    if pain_level > last.pain_level:
        return f"El dolor ha AUMENTADO respecto a la sesión anterior ({last.pain_level}/10 -> {pain_level}/10)."
    if pain_level < last.pain_level:
        return f"El dolor ha disminuido respecto a la sesión anterior ({last.pain_level}/10 -> {pain_level}/10)."
    return f"El dolor se mantiene igual que en la sesión anterior ({pain_level}/10)."


def build_session_prompt(patient: Patient, pain_level: int, feedback: str) -> List[BaseMessage]:
    """
    Build the messages that ask the model for the patient's next session.

    Args:
        patient: Patient with diagnosis and prior sessions (newest first)
        pain_level: Pain reported today on the EVA scale (0-10)
        feedback: Free-text comments from the patient

    Returns:
        [system prompt, session request] ready for a chat model
    """
    diagnosis = patient.diagnosis
    notes = diagnosis.notes.strip() or "Sin notas."
    decisions = ", ".join(f'"{d.value}"' for d in ClinicalDecision)

    content = f"""Genera la siguiente sesión de tratamiento para el paciente "{patient.name}".

DIAGNÓSTICO INICIAL:
- Área: {diagnosis.area.value}
- Condición: {diagnosis.condition}
- Fase actual: {diagnosis.phase.value}
- Notas: {notes}

ESTADO ACTUAL DE LA SESIÓN:
- Dolor reportado hoy: {pain_level}/10 (Escala EVA)
- Comentarios del paciente: {feedback}
- Tendencia: {_pain_trend(patient, pain_level)}

HISTORIAL DE SESIONES PREVIAS:
{format_session_history(patient)}

CRITERIOS CLÍNICOS OBLIGATORIOS:
1. Si el dolor es > 4/10 o ha aumentado respecto a la sesión anterior, considera "{ClinicalDecision.REGRESSION.value}" o "{ClinicalDecision.MAINTENANCE.value}".
2. Si el dolor es < 2/10 y el feedback es positivo, busca "{ClinicalDecision.PROGRESSION.value}" de carga (más repeticiones, menos descanso o ejercicios más complejos).
3. Fundamenta tu decisión en Guías de Práctica Clínica (JOSPT/BJSM) y cítalas en "references".

La decisión clínica debe ser exactamente una de: {decisions}.
Responde en JSON."""

    return [session_system_prompt, HumanMessage(content=content)]
