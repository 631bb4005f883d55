from datetime import date

from rehabflow.config import logger, STORAGE_PATH, USER_CORRUPT_STATE_MESSAGE
from rehabflow.errors import NotFoundError, ValidationError
from rehabflow.models import AnatomicalArea, RecoveryPhase
from rehabflow.orchestrator import SessionOrchestrator, SubmissionStatus
from rehabflow.store import PatientStore
from rehabflow.utils import format_history, format_patient_line, format_routine, pain_band


def choose(options, prompt, default=0):
    """
    Ask the user to pick one of `options` by number.

    Args:
        options: Sequence of enum members or strings to list
        prompt: Question shown above the list
        default: Index returned on an empty answer

    Returns:
        The chosen option
    """
    print(prompt)
    for idx, option in enumerate(options, 1):
        label = getattr(option, "value", option)
        print(f"  {idx}. {label}")
    answer = input(f"Opción [{default + 1}]: ").strip()
    if not answer:
        return options[default]
    try:
        return options[int(answer) - 1]
    except (ValueError, IndexError):
        print("Opción no válida, se usa el valor por defecto.")
        return options[default]


def create_patient_view(store: PatientStore):
    print("\n=== Nuevo Paciente ===")
    name = input("Nombre completo: ")
    area = choose(list(AnatomicalArea), "Área anatómica:")
    condition = input("Diagnóstico / condición: ")
    phase = choose(list(RecoveryPhase), "Fase de recuperación:")
    notes = input("Notas (opcional): ")
    try:
        patient = store.register_patient(name, condition, area=area, phase=phase, notes=notes)
    except ValidationError:
        print("Por favor completa el nombre y el diagnóstico.")
        return None
    print(f"Expediente creado para {patient.name}.")
    return patient


def session_view(orchestrator: SessionOrchestrator):
    """
    Record today's pain and feedback and generate the next routine.

    Args:
        orchestrator: Orchestrator with a selected patient
    """
    patient = orchestrator.selected_patient
    print(f"\n=== Nueva Sesión: {patient.name} ===")
    try:
        pain = int(input("Nivel de dolor hoy (EVA 0-10): ").strip())
    except ValueError:
        print("El dolor debe ser un número entre 0 y 10.")
        return
    feedback = input("Comentarios del paciente: ")

    print(f"Dolor {pain}/10 ({pain_band(pain)}). Generando sesión...")
    try:
        orchestrator.submit(pain, feedback)
    except ValidationError as e:
        print(f"Datos incompletos: {e}")
        return

    if orchestrator.status is SubmissionStatus.FAILED:
        print(orchestrator.error)
    elif orchestrator.status is SubmissionStatus.SUCCESS:
        print(format_routine(orchestrator.active_routine, orchestrator.active_decision))
    orchestrator.dismiss_error()


def history_view(orchestrator: SessionOrchestrator):
    patient = orchestrator.selected_patient
    print(f"\n=== Historial: {patient.name} ===")
    print(format_history(patient))
    if not patient.sessions:
        return
    answer = input("Número de sesión para ver su rutina (Enter para volver): ").strip()
    if not answer:
        return
    try:
        session = patient.sessions[int(answer) - 1]
        orchestrator.open_session(session.id)
    except (ValueError, IndexError, NotFoundError):
        print("Sesión no encontrada.")
        return
    print(format_routine(orchestrator.active_routine, orchestrator.active_decision))


def main():
    store = PatientStore.open(STORAGE_PATH)
    if store.take_load_warning():
        print(f"⚠️  {USER_CORRUPT_STATE_MESSAGE}")
    orchestrator = SessionOrchestrator(store)

    while True:
        print("\n=== Expedientes Clínicos ===")
        print(f"{store.patient_count} pacientes registrados | {store.sessions_today(date.today())} sesiones hoy")
        query = input("Buscar (Enter para todos, 'n' nuevo paciente, 'e' salir): ").strip()
        if query.lower() == "e":
            print("Saliendo...")
            break
        if query.lower() == "n":
            patient = create_patient_view(store)
            if patient is not None:
                orchestrator.select_patient(patient.id)
                session_view(orchestrator)
                orchestrator.abandon()
            continue

        patients = store.filter_by_name_or_condition(query)
        if not patients:
            print("Sin resultados.")
            continue
        for idx, patient in enumerate(patients, 1):
            print(f"  {idx}. {format_patient_line(patient)}")
        answer = input("Paciente (número, Enter para volver): ").strip()
        if not answer:
            continue
        try:
            patient = patients[int(answer) - 1]
        except (ValueError, IndexError):
            print("Paciente no válido.")
            continue

        orchestrator.select_patient(patient.id)
        action = input("'s' nueva sesión, 'h' historial: ").strip().lower()
        if action == "s":
            session_view(orchestrator)
        elif action == "h":
            history_view(orchestrator)
        orchestrator.abandon()

    logger.info("Console session closed")


if __name__ == "__main__":
    main()
