"""
RehabFlow data model.

Patients own their sessions, sessions own a snapshot of the routine that was
prescribed for them. Patients and everything in their history are frozen
(collections are tuples), so the store hands out records that cannot be
changed behind its back. Field names are camelCase on the wire (storage
document and generation responses) and snake_case in Python.
"""

from datetime import datetime, date, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def new_id() -> str:
    return uuid4().hex


class AnatomicalArea(str, Enum):
    KNEE = "Rodilla"
    SHOULDER = "Hombro"
    BACK = "Espalda"
    ANKLE = "Tobillo"
    ELBOW = "Codo"
    WRIST = "Muñeca"
    HIP = "Cadera"
    NECK = "Cuello"


class RecoveryPhase(str, Enum):
    ACUTE = "Aguda (PEACE & LOVE / Protección)"
    SUBACUTE = "Subaguda (Carga Progresiva)"
    STRENGTHENING = "Fortalecimiento (Resistencia Mecánica)"
    RETURN_TO_SPORT = "Retorno (Control Sensoriomotor)"


class ClinicalDecision(str, Enum):
    PROGRESSION = "Progresión"
    MAINTENANCE = "Mantenimiento"
    REGRESSION = "Regresión/Adaptación"


class Difficulty(str, Enum):
    LOW = "Baja"
    MEDIUM = "Media"
    HIGH = "Alta"


# Language-neutral spellings accepted on input, keyed by casefolded text
_DECISION_ALIASES = {
    "progression": ClinicalDecision.PROGRESSION,
    "maintenance": ClinicalDecision.MAINTENANCE,
    "regression-adaptation": ClinicalDecision.REGRESSION,
    "regression/adaptation": ClinicalDecision.REGRESSION,
}
_DIFFICULTY_ALIASES = {
    "low": Difficulty.LOW,
    "medium": Difficulty.MEDIUM,
    "high": Difficulty.HIGH,
}


def _normalize_enum(value, enum_cls, aliases):
    if isinstance(value, str):
        key = value.strip().casefold()
        for member in enum_cls:
            if member.value.casefold() == key:
                return member
        return aliases.get(key, value)
    return value


class RehabModel(BaseModel):
    """Shared config: camelCase aliases, construction by field name allowed."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenModel(RehabModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Diagnosis(FrozenModel):
    area: AnatomicalArea = AnatomicalArea.KNEE
    condition: str
    phase: RecoveryPhase = RecoveryPhase.ACUTE
    notes: str = ""


class Exercise(FrozenModel):
    id: str
    name: str
    description: str
    sets: int = Field(ge=0, strict=True)
    reps: int = Field(ge=0, strict=True)
    duration: Optional[str] = None
    frequency: str
    rest: str
    tips: Tuple[str, ...]
    muscle_group: str
    difficulty: Difficulty
    warnings: Tuple[str, ...]

    @field_validator("difficulty", mode="before")
    @classmethod
    def _difficulty(cls, value):
        return _normalize_enum(value, Difficulty, _DIFFICULTY_ALIASES)


class Routine(FrozenModel):
    exercises: Tuple[Exercise, ...] = Field(min_length=1)
    rationale: str
    total_duration: str
    references: Tuple[str, ...]
    evidence_level: str


class RoutineResult(Routine):
    """Validated shape of a generation response: a routine plus the decision behind it."""
    clinical_decision: ClinicalDecision

    @field_validator("clinical_decision", mode="before")
    @classmethod
    def _decision(cls, value):
        return _normalize_enum(value, ClinicalDecision, _DECISION_ALIASES)

    def to_routine(self) -> Routine:
        return Routine.model_validate(self.model_dump(exclude={"clinical_decision"}))


class Session(FrozenModel):
    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    pain_level: int = Field(ge=0, le=10, strict=True)
    patient_feedback: str
    routine: Routine
    clinical_decision: ClinicalDecision

    @property
    def local_date(self) -> date:
        return self.created_at.astimezone().date()

    @property
    def date(self) -> str:
        # Display only, derived from created_at
        return self.local_date.strftime("%d/%m/%Y")


class Patient(FrozenModel):
    id: str = Field(default_factory=new_id)
    name: str
    diagnosis: Diagnosis
    sessions: Tuple[Session, ...] = ()

    def with_session(self, session: Session) -> "Patient":
        """Return a copy of the patient with `session` as the most recent entry."""
        return self.model_copy(update={"sessions": (session,) + self.sessions})

    @property
    def last_session(self) -> Optional[Session]:
        return self.sessions[0] if self.sessions else None


def _string_list() -> Dict[str, Any]:
    return {"type": "array", "items": {"type": "string"}}


def routine_response_schema() -> Dict[str, Any]:
    """
    Response schema handed to Gemini alongside the JSON mime type.

    Written out flat (no $ref) because the generation API only accepts a
    subset of JSON Schema. The service constrains its answer with it, but
    `parse_routine_response` still validates everything against RoutineResult.
    """
    exercise = {
        "type": "object",
        "properties": {
            "id": {"type": "string"},
            "name": {"type": "string"},
            "description": {"type": "string"},
            "sets": {"type": "integer"},
            "reps": {"type": "integer"},
            "duration": {"type": "string"},
            "frequency": {"type": "string"},
            "rest": {"type": "string"},
            "tips": _string_list(),
            "muscleGroup": {"type": "string"},
            "difficulty": {"type": "string", "enum": [d.value for d in Difficulty]},
            "warnings": _string_list(),
        },
        "required": [
            "id", "name", "description", "sets", "reps", "frequency",
            "rest", "tips", "muscleGroup", "difficulty", "warnings",
        ],
    }
    return {
        "type": "object",
        "properties": {
            "exercises": {"type": "array", "items": exercise},
            "rationale": {"type": "string"},
            "totalDuration": {"type": "string"},
            "references": _string_list(),
            "evidenceLevel": {"type": "string"},
            "clinicalDecision": {
                "type": "string",
                "enum": [d.value for d in ClinicalDecision],
                "description": "Decisión técnica: Progresión, Mantenimiento o Regresión/Adaptación",
            },
        },
        "required": ["exercises", "rationale", "totalDuration", "references", "evidenceLevel", "clinicalDecision"],
    }
