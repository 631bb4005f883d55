"""
RehabFlow error taxonomy.

Every failure in the core is recoverable: callers catch these at the
orchestrator or presentation boundary and return to a safe Idle state.
"""


class RehabFlowError(Exception):
    """Base class for all RehabFlow errors."""


class ValidationError(RehabFlowError):
    """Required user input is missing or out of range."""


class NotFoundError(RehabFlowError):
    """An operation referenced a patient or session that does not exist."""


class GenerationError(RehabFlowError):
    """The generation service could not produce a routine (network, timeout, quota...)."""


class SchemaValidationError(GenerationError):
    """The generation service answered, but not with the expected routine shape."""


class CorruptStateError(RehabFlowError):
    """The stored patient document could not be parsed."""
