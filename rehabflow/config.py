import logging
import os
from functools import lru_cache

from dotenv import load_dotenv
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_ollama import ChatOllama

from rehabflow.models import routine_response_schema

load_dotenv()


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


############### CONFIG FLAGS ############
LOCAL_LLMS = _env_flag("REHABFLOW_LOCAL_LLMS")  # Set to True to use a local LLM (Ollama) instead of Gemini
SESSION_MODEL = os.getenv("REHABFLOW_MODEL", "gemini-2.5-pro")  # Gemini model for routine generation
LOCAL_MODEL = os.getenv("REHABFLOW_LOCAL_MODEL", "qwen3:4b")  # Ollama model used when LOCAL_LLMS is set
GENERATION_TIMEOUT = float(os.getenv("REHABFLOW_TIMEOUT", "120"))  # Seconds before a generation call is abandoned
DATA_FOLDER = os.getenv("REHABFLOW_DATA", "data/")  # Folder holding the patient document
STORAGE_SLOT = "rehabflow_patients"  # Name of the single storage slot
STORAGE_PATH = os.path.join(DATA_FOLDER, f"{STORAGE_SLOT}.json")
SCHEMA_VERSION = 1  # Version of the stored patient document
LOG_FILE = os.getenv("REHABFLOW_LOG_FILE", "rehabflow.log")
#########################################
logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s - %(levelname)s - %(message)s',
                    filename=LOG_FILE,
                    filemode='a')
logger = logging.getLogger("rehabflow")

USER_ERROR_MESSAGE = "Error al procesar la evolución clínica."
USER_CORRUPT_STATE_MESSAGE = (
    "No se pudieron leer los expedientes guardados. Se ha iniciado con una lista vacía."
)


@lru_cache(maxsize=1)
def build_session_model():
    """
    Build the chat model used to generate session routines.

    The Gemini client reads its key from GOOGLE_API_KEY. Construction is
    deferred until the first generation so importing the package never needs
    credentials.
    """
    if LOCAL_LLMS:
        return ChatOllama(
            model=LOCAL_MODEL,
            temperature=0,
            format="json",
        )

    return ChatGoogleGenerativeAI(
        model=SESSION_MODEL,
        temperature=0.2,
        timeout=GENERATION_TIMEOUT,
        max_retries=1,  # single attempt, retrying is a new user action
        response_mime_type="application/json",
        response_schema=routine_response_schema(),
    )
