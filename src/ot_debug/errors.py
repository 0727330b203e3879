# errors.py
# Error taxonomy for the debug session.


class StepValidationError(Exception):
    """Raised when a submitted step is malformed. Nothing is ledgered."""


class CollaboratorError(Exception):
    """
    Raised by the page inspector or header prober when the external call
    fails or times out. Phase analyzers convert it into an issue-log entry.
    """


class DispatchError(Exception):
    """Category for unexpected failures escaping a phase analyzer."""
