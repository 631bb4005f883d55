import json
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from rehabflow.errors import CorruptStateError, NotFoundError, ValidationError
from rehabflow.models import (
    AnatomicalArea,
    ClinicalDecision,
    Diagnosis,
    Patient,
    RecoveryPhase,
    Session,
)
from rehabflow.store import PatientStore


def _session(routine_result, pain_level=2, created_at=None):
    extra = {"created_at": created_at} if created_at else {}
    return Session(
        pain_level=pain_level,
        patient_feedback="mejoró notablemente",
        routine=routine_result.to_routine(),
        clinical_decision=routine_result.clinical_decision,
        **extra,
    )


def test_load_without_prior_state_is_empty(store):
    assert store.load() == []
    assert PatientStore.open(store.path).patients == []


def test_add_patient_grows_store_by_one(store):
    store.register_patient("Juan Pérez", "Esguince de tobillo", area=AnatomicalArea.ANKLE)
    before = store.patient_count

    patient = store.add_patient(Patient(name="Ana López", diagnosis=Diagnosis(condition="Tendinopatía rotuliana")))

    assert store.patient_count == before + 1
    assert store.patients[-1] == patient
    assert patient.sessions == ()


def test_add_patient_persists_immediately(store):
    patient = store.register_patient("Ana López", "Tendinopatía rotuliana")

    reopened = PatientStore.open(store.path)
    assert [p.id for p in reopened.patients] == [patient.id]


@pytest.mark.parametrize("name,condition", [("", "Lumbalgia"), ("   ", "Lumbalgia"), ("Luis", ""), ("Luis", "  ")])
def test_add_patient_requires_name_and_condition(store, name, condition):
    with pytest.raises(ValidationError):
        store.register_patient(name, condition)
    assert store.patient_count == 0
    assert store.load() == []


def test_append_session_prepends(store, ana, routine_result):
    first = _session(routine_result, pain_level=2)
    second = _session(routine_result, pain_level=7)

    store.append_session(ana.id, first)
    updated = store.append_session(ana.id, second)

    assert [s.id for s in updated.sessions] == [second.id, first.id]
    assert store.find_by_id(ana.id).sessions[0].pain_level == 7
    assert PatientStore.open(store.path).find_by_id(ana.id).sessions[1].id == first.id


def test_append_session_unknown_patient(store, ana, routine_result):
    with pytest.raises(NotFoundError):
        store.append_session("missing", _session(routine_result))
    assert store.find_by_id(ana.id).sessions == ()


def test_patients_view_cannot_change_history(store, ana, routine_result):
    store.append_session(ana.id, _session(routine_result))
    patient = store.patients[0]

    with pytest.raises(AttributeError):
        patient.sessions.append(_session(routine_result, pain_level=9))
    with pytest.raises(PydanticValidationError):
        patient.name = "Otra persona"
    with pytest.raises(PydanticValidationError):
        patient.sessions[0].pain_level = 9

    assert [s.pain_level for s in store.find_by_id(ana.id).sessions] == [2]
    assert store.load() == store.patients


def test_find_by_id(store, ana):
    assert store.find_by_id(ana.id) == ana
    assert store.find_by_id("nope") is None


def test_find_session(store, ana, routine_result):
    session = _session(routine_result)
    store.append_session(ana.id, session)

    assert store.find_session(ana.id, session.id) == session
    with pytest.raises(NotFoundError):
        store.find_session(ana.id, "other")
    with pytest.raises(NotFoundError):
        store.find_session("other", session.id)


def test_filter_empty_query_returns_everything_in_order(store):
    names = ["Juan Pérez", "Ana López", "Marta Gil"]
    for name in names:
        store.register_patient(name, "Lumbalgia")

    assert [p.name for p in store.filter_by_name_or_condition("")] == names
    assert [p.name for p in store.filter_by_name_or_condition("  ")] == names


def test_filter_is_case_insensitive_on_name_and_condition(store):
    store.register_patient("Juan Pérez", "Esguince de tobillo")
    store.register_patient("Ana López", "Tendinopatía rotuliana")

    assert [p.name for p in store.filter_by_name_or_condition("juan")] == ["Juan Pérez"]
    assert [p.name for p in store.filter_by_name_or_condition("TENDINOPATÍA")] == ["Ana López"]
    assert store.filter_by_name_or_condition("hombro") == []


def test_save_load_round_trip(store, routine_result):
    patients = [
        Patient(
            name="Ana López",
            diagnosis=Diagnosis(
                area=AnatomicalArea.KNEE,
                condition="Tendinopatía rotuliana",
                phase=RecoveryPhase.SUBACUTE,
                notes="Corredora",
            ),
        ).with_session(_session(routine_result)),
        Patient(name="Juan Pérez", diagnosis=Diagnosis(area=AnatomicalArea.WRIST, condition="Fractura distal de radio")),
    ]

    store.save(patients)

    assert store.load() == patients


def test_saved_document_is_versioned(store, ana):
    with open(store.path, encoding="utf-8") as f:
        document = json.load(f)

    assert document["schemaVersion"] == 1
    assert document["patients"][0]["name"] == "Ana López"
    assert document["patients"][0]["diagnosis"]["phase"] == RecoveryPhase.ACUTE.value


def test_session_fields_use_camel_case_on_disk(store, ana, routine_result):
    store.append_session(ana.id, _session(routine_result))
    with open(store.path, encoding="utf-8") as f:
        stored = json.load(f)["patients"][0]["sessions"][0]

    assert stored["painLevel"] == 2
    assert stored["clinicalDecision"] == ClinicalDecision.PROGRESSION.value
    assert "createdAt" in stored
    assert stored["routine"]["exercises"][0]["muscleGroup"] == "Cuádriceps"


@pytest.mark.parametrize("content", [
    "{not json",
    "[]",
    json.dumps({"patients": []}),
    json.dumps({"schemaVersion": 99, "patients": []}),
    json.dumps({"schemaVersion": 1, "patients": [{"name": "sin diagnóstico"}]}),
])
def test_corrupt_state(storage_path, content):
    with open(storage_path, "w", encoding="utf-8") as f:
        f.write(content)

    with pytest.raises(CorruptStateError):
        PatientStore(storage_path).load()


def test_open_recovers_from_corrupt_state(storage_path):
    with open(storage_path, "w", encoding="utf-8") as f:
        f.write("{not json")

    store = PatientStore.open(storage_path)

    assert store.patients == []
    assert store.take_load_warning()
    assert store.take_load_warning() is None


def test_sessions_today(store, ana, routine_result):
    yesterday = datetime.now(timezone.utc) - timedelta(days=1)
    store.append_session(ana.id, _session(routine_result, created_at=yesterday))
    store.append_session(ana.id, _session(routine_result))
    other = store.register_patient("Juan Pérez", "Cervicalgia", area=AnatomicalArea.NECK)
    store.append_session(other.id, _session(routine_result))

    assert store.sessions_today() == 2
    assert store.sessions_today(yesterday.astimezone().date()) == 1
