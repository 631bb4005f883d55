from langchain_core.messages import HumanMessage, SystemMessage

from rehabflow.models import ClinicalDecision, Session
from rehabflow.prompts import (
    NO_PRIOR_SESSIONS,
    build_session_prompt,
    format_session_history,
    session_system_prompt,
)


def _with_session(patient, routine_result, pain_level, decision):
    return patient.with_session(Session(
        pain_level=pain_level,
        patient_feedback="sin cambios",
        routine=routine_result.to_routine(),
        clinical_decision=decision,
    ))


def test_prompt_shape(ana):
    messages = build_session_prompt(ana, 3, "algo mejor")

    assert len(messages) == 2
    assert messages[0] is session_system_prompt
    assert isinstance(messages[0], SystemMessage)
    assert isinstance(messages[1], HumanMessage)


def test_prompt_embeds_diagnosis_and_current_state(ana):
    content = build_session_prompt(ana, 7, "empeoró al subir escaleras")[1].content

    assert "Ana López" in content
    assert "Área: Rodilla" in content
    assert "Condición: Tendinopatía rotuliana" in content
    assert "Aguda (PEACE & LOVE / Protección)" in content
    assert "Dolor reportado hoy: 7/10" in content
    assert "empeoró al subir escaleras" in content


def test_empty_history_renders_explicit_marker(ana):
    content = build_session_prompt(ana, 2, "bien")[1].content

    assert format_session_history(ana) == NO_PRIOR_SESSIONS
    assert NO_PRIOR_SESSIONS in content
    assert "- Fecha:" not in content


def test_history_is_bulleted_newest_first(ana, routine_result):
    patient = _with_session(ana, routine_result, 5, ClinicalDecision.MAINTENANCE)
    patient = _with_session(patient, routine_result, 2, ClinicalDecision.PROGRESSION)

    lines = format_session_history(patient).splitlines()

    assert len(lines) == 2
    assert lines[0].startswith("- Fecha: ")
    assert "Dolor: 2/10, Decisión previa: Progresión" in lines[0]
    assert "Dolor: 5/10, Decisión previa: Mantenimiento" in lines[1]
    assert NO_PRIOR_SESSIONS not in build_session_prompt(patient, 2, "bien")[1].content


def test_prompt_carries_clinical_criteria(ana):
    content = build_session_prompt(ana, 1, "mejoró notablemente")[1].content

    assert '> 4/10 o ha aumentado respecto a la sesión anterior' in content
    assert '"Regresión/Adaptación" o "Mantenimiento"' in content
    assert '< 2/10 y el feedback es positivo, busca "Progresión"' in content
    assert "JOSPT/BJSM" in content


def test_prompt_flags_pain_increase(ana, routine_result):
    patient = _with_session(ana, routine_result, 2, ClinicalDecision.PROGRESSION)

    assert "AUMENTADO" in build_session_prompt(patient, 4, "peor")[1].content
    assert "AUMENTADO" not in build_session_prompt(patient, 1, "mejor")[1].content


def test_prompt_is_deterministic(ana, routine_result):
    patient = _with_session(ana, routine_result, 3, ClinicalDecision.MAINTENANCE)

    first = build_session_prompt(patient, 3, "igual")
    second = build_session_prompt(patient, 3, "igual")

    assert [m.content for m in first] == [m.content for m in second]
