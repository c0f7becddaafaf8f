"""Triage error types."""


class TriageError(Exception):
    """Base class for triage failures."""


class InvalidTransitionError(TriageError):
    """The orchestrator tried to move its state machine backwards or skip a state."""


class ContextNotFoundError(TriageError, LookupError):
    """No alert, customer or transaction could be loaded for a triage request."""
