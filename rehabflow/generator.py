"""
Routine generation client.

Sends the session prompt to the chat model and turns its answer into a
validated RoutineResult. Nothing from the model reaches the data model
without passing through `parse_routine_response`.
"""

import json
import re
from typing import Any, List

from langchain_core.messages import BaseMessage
from pydantic import ValidationError as PydanticValidationError

from rehabflow.config import build_session_model, logger
from rehabflow.errors import GenerationError, SchemaValidationError
from rehabflow.models import RoutineResult

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def _content_text(content: Any) -> str:
    # Gemini may answer with a list of content parts instead of a string
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, dict):
                parts.append(part.get("text", ""))
            else:
                parts.append(str(part))
        return "".join(parts)
    return content if isinstance(content, str) else str(content)


def parse_routine_response(content: Any) -> RoutineResult:
    """
    Decode and validate a generation response.

    Args:
        content: Message content as returned by the chat model (string or list of parts)

    Returns:
        The validated RoutineResult

    Raises:
        SchemaValidationError: when the content is not JSON or does not match the routine schema
    """
    text = _content_text(content).strip()
    fenced = _FENCE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaValidationError(f"Response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise SchemaValidationError(f"Expected a JSON object, got {type(data).__name__}")

    try:
        return RoutineResult.model_validate(data)
    except PydanticValidationError as e:
        raise SchemaValidationError(f"Response does not match the routine schema: {e}") from e


class RoutineGenerator:
    """Generation client around a LangChain chat model."""

    def __init__(self, model=None):
        self._model = model

    @property
    def model(self):
        if self._model is None:
            self._model = build_session_model()
        return self._model

    def generate(self, messages: List[BaseMessage]) -> RoutineResult:
        try:
            response = self.model.invoke(messages)
        except Exception as e:
            logger.error(f"Generation call failed: {e}")
            raise GenerationError(str(e)) from e

        return parse_routine_response(response.content)

    async def agenerate(self, messages: List[BaseMessage]) -> RoutineResult:
        try:
            response = await self.model.ainvoke(messages)
        except Exception as e:
            logger.error(f"Generation call failed: {e}")
            raise GenerationError(str(e)) from e

        return parse_routine_response(response.content)
