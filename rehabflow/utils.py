from typing import List, Optional

from rehabflow.models import ClinicalDecision, Exercise, Patient, Routine


def pain_band(pain_level: int) -> str:
    """Severity band used to colour the EVA score: 0-3 low, 4-6 moderate, 7-10 high."""
    if pain_level > 6:
        return "alto"
    if pain_level > 3:
        return "moderado"
    return "bajo"


def format_exercise(exercise: Exercise, idx: int) -> str:
    lines = [f"{idx}. {exercise.name} [{exercise.muscle_group}] - {exercise.sets}x{exercise.reps}"]
    details = f"   Descanso: {exercise.rest} | Frecuencia: {exercise.frequency} | Dificultad: {exercise.difficulty.value}"
    if exercise.duration:
        details += f" | Duración: {exercise.duration}"
    lines.append(details)
    lines.append(f"   {exercise.description}")
    for tip in exercise.tips:
        lines.append(f"   • {tip}")
    for warning in exercise.warnings:
        lines.append(f"   ⚠ {warning}")
    return "\n".join(lines)


def format_routine(routine: Routine, decision: Optional[ClinicalDecision] = None) -> str:
    """Format a routine into the text block shown after a session is generated."""
    parts = []
    if decision is not None:
        parts.append("=" * 60)
        parts.append(f"DECISIÓN CLÍNICA: {decision.value}")
        parts.append("=" * 60)
    parts.append(f"Evidencia: {routine.evidence_level} | Duración total: {routine.total_duration}")
    parts.append("")
    for idx, exercise in enumerate(routine.exercises, 1):
        parts.append(format_exercise(exercise, idx))
        parts.append("")
    parts.append("Razonamiento clínico:")
    parts.append(f'"{routine.rationale}"')
    if routine.references:
        parts.append("")
        parts.append("Referencias:")
        for ref in routine.references:
            parts.append(f"- {ref}")
    return "\n".join(parts)


def format_history(patient: Patient) -> str:
    if not patient.sessions:
        return "Sin sesiones registradas."

    lines: List[str] = []
    for idx, session in enumerate(patient.sessions, 1):
        lines.append(
            f"[{idx}] {session.date} - {session.clinical_decision.value} - "
            f"Dolor: {session.pain_level}/10 ({pain_band(session.pain_level)})"
        )
        lines.append(f'    "{session.patient_feedback}"')
    return "\n".join(lines)


def format_patient_line(patient: Patient) -> str:
    diagnosis = patient.diagnosis
    return f"{patient.name} [{diagnosis.area.value}] {diagnosis.condition} - {len(patient.sessions)} sesiones"
