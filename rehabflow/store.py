"""
Patient record store.

Owns the durable list of patients and their session history. The whole
collection is written back to disk after every mutation, as a single JSON
document under the `rehabflow_patients` slot.
"""

import json
import os
import tempfile
from datetime import date
from typing import List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from rehabflow.config import logger, STORAGE_PATH, SCHEMA_VERSION
from rehabflow.errors import CorruptStateError, NotFoundError, ValidationError
from rehabflow.models import AnatomicalArea, Diagnosis, Patient, RecoveryPhase, Session


class PatientStore:
    """Single-user store of patients, persisted on every mutation."""

    def __init__(self, path: str = STORAGE_PATH, patients: Optional[Sequence[Patient]] = None):
        self.path = path
        self._patients: List[Patient] = list(patients or [])
        self.load_warning: Optional[str] = None

    @classmethod
    def open(cls, path: str = STORAGE_PATH) -> "PatientStore":
        """
        Open the store at `path`, recovering from a corrupt document.

        A corrupt document is not fatal: the store starts empty and keeps the
        reason in `load_warning` so the caller can tell the user once.
        """
        store = cls(path)
        try:
            store._patients = store.load()
        except CorruptStateError as e:
            logger.warning(f"Corrupt patient document at {path}, starting empty: {e}")
            store.load_warning = str(e)
        return store

    # ------------------------------------------------------------------ #
    # Durable state
    # ------------------------------------------------------------------ #

    def load(self) -> List[Patient]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CorruptStateError(f"Unreadable patient document: {e}") from e

        if not isinstance(document, dict) or "patients" not in document:
            raise CorruptStateError("Patient document has no 'patients' collection")
        version = document.get("schemaVersion")
        if version != SCHEMA_VERSION:
            raise CorruptStateError(f"Unsupported schema version: {version!r}")
        if not isinstance(document["patients"], list):
            raise CorruptStateError("'patients' is not a list")

        try:
            return [Patient.model_validate(p) for p in document["patients"]]
        except PydanticValidationError as e:
            raise CorruptStateError(f"Invalid patient record: {e}") from e

    def save(self, patients: Optional[Sequence[Patient]] = None) -> None:
        """Write the full collection in one replace, never a partial document."""
        patients = self._patients if patients is None else list(patients)
        document = {
            "schemaVersion": SCHEMA_VERSION,
            "patients": [p.model_dump(mode="json", by_alias=True) for p in patients],
        }
        folder = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(folder, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=folder, prefix=".rehabflow-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False, indent=4)
            os.replace(tmp_path, self.path)
            self._patients = patients
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def take_load_warning(self) -> Optional[str]:
        warning, self.load_warning = self.load_warning, None
        return warning

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #

    def add_patient(self, patient: Patient) -> Patient:
        if not patient.name.strip():
            raise ValidationError("Patient name is required")
        if not patient.diagnosis.condition.strip():
            raise ValidationError("Diagnosis condition is required")
        self.save(self._patients + [patient])
        logger.info(f"Registered patient {patient.id}")
        return patient

    def register_patient(
        self,
        name: str,
        condition: str,
        area: AnatomicalArea = AnatomicalArea.KNEE,
        phase: RecoveryPhase = RecoveryPhase.ACUTE,
        notes: str = "",
    ) -> Patient:
        diagnosis = Diagnosis(area=area, condition=condition, phase=phase, notes=notes)
        return self.add_patient(Patient(name=name, diagnosis=diagnosis))

    def append_session(self, patient_id: str, session: Session) -> Patient:
        """Prepend `session` to the patient's history and persist."""
        for idx, patient in enumerate(self._patients):
            if patient.id == patient_id:
                updated = patient.with_session(session)
                patients = list(self._patients)
                patients[idx] = updated
                self.save(patients)
                logger.info(f"Recorded session {session.id} for patient {patient_id}")
                return updated
        raise NotFoundError(f"No patient with id {patient_id}")

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    @property
    def patients(self) -> List[Patient]:
        # Patients are frozen, a shallow copy of the list is enough
        return list(self._patients)

    @property
    def patient_count(self) -> int:
        return len(self._patients)

    def find_by_id(self, patient_id: str) -> Optional[Patient]:
        for patient in self._patients:
            if patient.id == patient_id:
                return patient
        return None

    def find_session(self, patient_id: str, session_id: str) -> Session:
        patient = self.find_by_id(patient_id)
        if patient is None:
            raise NotFoundError(f"No patient with id {patient_id}")
        for session in patient.sessions:
            if session.id == session_id:
                return session
        raise NotFoundError(f"No session {session_id} for patient {patient_id}")

    def filter_by_name_or_condition(self, query: str) -> List[Patient]:
        needle = query.strip().casefold()
        if not needle:
            return self.patients
        return [
            p for p in self._patients
            if needle in p.name.casefold() or needle in p.diagnosis.condition.casefold()
        ]

    def sessions_today(self, today: Optional[date] = None) -> int:
        today = today or date.today()
        return sum(
            1 for p in self._patients for s in p.sessions if s.local_date == today
        )
