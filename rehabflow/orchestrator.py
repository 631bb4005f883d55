import asyncio
from enum import Enum
from typing import List, Optional, TypedDict

# LangChain imports
from langchain_core.messages import BaseMessage
from langchain_core.runnables import RunnableLambda
from langsmith import traceable

# LangGraph imports
from langgraph.graph import StateGraph, END

# Local imports
from rehabflow.config import logger, USER_ERROR_MESSAGE
from rehabflow.errors import (
    GenerationError,
    NotFoundError,
    SchemaValidationError,
    ValidationError,
)
from rehabflow.generator import RoutineGenerator
from rehabflow.models import ClinicalDecision, Patient, Routine, RoutineResult, Session
from rehabflow.prompts import build_session_prompt
from rehabflow.store import PatientStore


class SubmissionStatus(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILED = "failed"


class SessionState(TypedDict):
    ticket: int  # Attempt this run belongs to
    patient: Patient
    pain_level: int
    feedback: str
    messages: List[BaseMessage]
    result: Optional[RoutineResult]
    session: Optional[Session]
    error: Optional[Exception]
    discarded: bool


def validate_session_input(pain_level, feedback: str) -> None:
    if isinstance(pain_level, bool) or not isinstance(pain_level, int):
        raise ValidationError("Pain level must be an integer between 0 and 10")
    if not 0 <= pain_level <= 10:
        raise ValidationError("Pain level must be between 0 and 10")
    if not feedback or not feedback.strip():
        raise ValidationError("Patient feedback is required")


class SessionOrchestrator:
    """
    Drives one session-creation attempt at a time.

    Idle -> Submitting -> Success | Failed, and back to Idle on the next user
    interaction (dismissing, selecting a patient or navigating away). Only a
    successful generation ever touches the patient's history.
    """

    def __init__(self, store: PatientStore, generator: Optional[RoutineGenerator] = None):
        self.store = store
        self.generator = generator or RoutineGenerator()
        self.status = SubmissionStatus.IDLE
        self.error: Optional[str] = None
        self.selected_patient_id: Optional[str] = None
        self.active_routine: Optional[Routine] = None
        self.active_decision: Optional[ClinicalDecision] = None
        self._ticket = 0
        self.graph = self._compile()

    # ------------------------------------------------------------------ #
    # Graph nodes
    # ------------------------------------------------------------------ #

    def _build_prompt(self, state: SessionState) -> SessionState:
        state["messages"] = build_session_prompt(state["patient"], state["pain_level"], state["feedback"])
        return state

    @traceable(run_type="llm")
    def _generate(self, state: SessionState) -> SessionState:
        try:
            state["result"] = self.generator.generate(state["messages"])
        except GenerationError as e:
            state["error"] = e
        return state

    @traceable(run_type="llm")
    async def _agenerate(self, state: SessionState) -> SessionState:
        try:
            state["result"] = await self.generator.agenerate(state["messages"])
        except GenerationError as e:
            state["error"] = e
        return state

    def _record(self, state: SessionState) -> SessionState:
        if state["ticket"] != self._ticket:
            # The user left while the request was in flight
            logger.info(f"Discarding stale generation for patient {state['patient'].id}")
            state["discarded"] = True
            return state

        result = state["result"]
        session = Session(
            pain_level=state["pain_level"],
            patient_feedback=state["feedback"],
            routine=result.to_routine(),
            clinical_decision=result.clinical_decision,
        )
        try:
            self.store.append_session(state["patient"].id, session)
            state["session"] = session
        except (NotFoundError, OSError) as e:
            state["error"] = e
        return state

    def _fail(self, state: SessionState) -> SessionState:
        error = state["error"]
        patient_id = state["patient"].id
        if isinstance(error, SchemaValidationError):
            logger.error(f"Generation response drifted from the routine schema (patient {patient_id}): {error}")
        elif isinstance(error, GenerationError):
            logger.error(f"Generation service failed (patient {patient_id}): {error}")
        elif isinstance(error, NotFoundError):
            logger.error(f"Session target vanished from the store: {error}")
        else:
            logger.error(f"Could not persist session for patient {patient_id}: {error}")
        return state

    @staticmethod
    def _route(state: SessionState):
        if state["error"] is not None:
            return "fail"
        if state["session"] is None and not state["discarded"]:
            return "record"
        return END

    def _compile(self):
        workflow = StateGraph(SessionState)

        # Add nodes
        workflow.add_node("build_prompt", self._build_prompt)
        workflow.add_node("generate", RunnableLambda(self._generate, afunc=self._agenerate))
        workflow.add_node("record", self._record)
        workflow.add_node("fail", self._fail)

        # Create edges
        workflow.add_edge("build_prompt", "generate")
        workflow.add_conditional_edges("generate", self._route)
        workflow.add_conditional_edges("record", self._route)
        workflow.add_edge("fail", END)

        # Set the entry point
        workflow.set_entry_point("build_prompt")

        return workflow.compile()

    # ------------------------------------------------------------------ #
    # User actions
    # ------------------------------------------------------------------ #

    @property
    def selected_patient(self) -> Optional[Patient]:
        if self.selected_patient_id is None:
            return None
        return self.store.find_by_id(self.selected_patient_id)

    def select_patient(self, patient_id: str) -> Patient:
        patient = self.store.find_by_id(patient_id)
        if patient is None:
            raise NotFoundError(f"No patient with id {patient_id}")
        self.abandon()
        self.selected_patient_id = patient_id
        return patient

    def abandon(self) -> None:
        """Navigate away: invalidate any in-flight attempt and return to Idle."""
        self._ticket += 1
        self.status = SubmissionStatus.IDLE
        self.error = None
        self.active_routine = None
        self.active_decision = None

    def dismiss_error(self) -> None:
        if self.status in (SubmissionStatus.FAILED, SubmissionStatus.SUCCESS):
            self.status = SubmissionStatus.IDLE
            self.error = None

    def open_session(self, session_id: str) -> Session:
        """Show a past session's routine as the active one."""
        if self.selected_patient_id is None:
            raise NotFoundError("No patient selected")
        session = self.store.find_session(self.selected_patient_id, session_id)
        self.active_routine = session.routine
        self.active_decision = session.clinical_decision
        return session

    def _begin(self, pain_level: int, feedback: str) -> Optional[SessionState]:
        patient = self.selected_patient
        if patient is None or self.status is SubmissionStatus.SUBMITTING:
            return None
        validate_session_input(pain_level, feedback)

        self._ticket += 1
        self.status = SubmissionStatus.SUBMITTING
        self.error = None
        self.active_routine = None
        self.active_decision = None
        return {
            "ticket": self._ticket,
            "patient": patient,
            "pain_level": pain_level,
            "feedback": feedback.strip(),
            "messages": [],
            "result": None,
            "session": None,
            "error": None,
            "discarded": False,
        }

    def _finish(self, state: SessionState) -> Optional[Session]:
        if state["discarded"] or state["ticket"] != self._ticket:
            return None
        if state["error"] is not None:
            self.status = SubmissionStatus.FAILED
            self.error = USER_ERROR_MESSAGE
            return None

        session = state["session"]
        self.active_routine = session.routine
        self.active_decision = session.clinical_decision
        self.status = SubmissionStatus.SUCCESS
        return session

    def _abort(self, ticket: int, error: BaseException) -> None:
        # An exception escaped the graph, so _finish never ran for this attempt
        if ticket != self._ticket:
            return
        if isinstance(error, (asyncio.CancelledError, KeyboardInterrupt)):
            logger.info("Session attempt cancelled while in flight")
            self.abandon()
        else:
            logger.error(f"Session attempt failed unexpectedly: {error!r}")
            self.status = SubmissionStatus.FAILED
            self.error = USER_ERROR_MESSAGE

    def submit(self, pain_level: int, feedback: str) -> Optional[Session]:
        """
        Generate and record the next session for the selected patient.

        Returns:
            The recorded Session, or None when nothing was recorded (no
            patient selected, a submission already in flight, a failure or an
            abandoned attempt)

        Raises:
            ValidationError: pain level outside 0-10 or empty feedback

        Anything else escaping the workflow is re-raised once the attempt is
        closed: Idle after a cancellation, Failed otherwise.
        """
        initial_state = self._begin(pain_level, feedback)
        if initial_state is None:
            return None
        try:
            final_state = self.graph.invoke(initial_state)
        except BaseException as e:
            self._abort(initial_state["ticket"], e)
            raise
        return self._finish(final_state)

    async def asubmit(self, pain_level: int, feedback: str) -> Optional[Session]:
        """Async variant of `submit`; `abandon()` may be called while it is awaited."""
        initial_state = self._begin(pain_level, feedback)
        if initial_state is None:
            return None
        try:
            final_state = await self.graph.ainvoke(initial_state)
        except BaseException as e:
            self._abort(initial_state["ticket"], e)
            raise
        return self._finish(final_state)
