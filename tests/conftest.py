import json

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from rehabflow.generator import RoutineGenerator
from rehabflow.models import AnatomicalArea, RecoveryPhase, RoutineResult
from rehabflow.store import PatientStore


def _exercise(idx):
    return {
        "id": f"ex-{idx}",
        "name": f"Sentadilla isométrica {idx}",
        "description": "Mantener la posición con la espalda apoyada en la pared.",
        "sets": 3,
        "reps": 10 + idx,
        "duration": "30 segundos",
        "frequency": "Diario",
        "rest": "60 segundos",
        "tips": ["Rodilla alineada con el pie", "Respirar de forma continua"],
        "muscleGroup": "Cuádriceps",
        "difficulty": "Media",
        "warnings": ["Detener si el dolor supera 5/10"],
    }


@pytest.fixture
def make_payload():
    def _make(decision="Progresión", n_exercises=3, total_duration="30", **overrides):
        payload = {
            "exercises": [_exercise(i) for i in range(1, n_exercises + 1)],
            "rationale": "Dolor bajo y buena tolerancia a la carga.",
            "totalDuration": total_duration,
            "references": ["JOSPT Patellar Tendinopathy CPG 2024"],
            "evidenceLevel": "Nivel A",
            "clinicalDecision": decision,
        }
        payload.update(overrides)
        return payload
    return _make


@pytest.fixture
def fake_generator(make_payload):
    """Generator backed by a fake chat model answering the given payloads in order."""
    def _make(*payloads):
        payloads = payloads or (make_payload(),)
        responses = [json.dumps(p, ensure_ascii=False) for p in payloads]
        return RoutineGenerator(FakeListChatModel(responses=responses))
    return _make


@pytest.fixture
def routine_result(make_payload):
    return RoutineResult.model_validate(make_payload())


@pytest.fixture
def storage_path(tmp_path):
    return str(tmp_path / "rehabflow_patients.json")


@pytest.fixture
def store(storage_path):
    return PatientStore(storage_path)


@pytest.fixture
def ana(store):
    return store.register_patient(
        "Ana López",
        "Tendinopatía rotuliana",
        area=AnatomicalArea.KNEE,
        phase=RecoveryPhase.ACUTE,
    )
