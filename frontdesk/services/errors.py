"""
Expected workflow outcomes.

These are raised by the service layer when a request is refused. They are
NOT failures of the system - each maps to a 4xx response with a
machine-readable kind.
"""


class WorkflowError(Exception):
    """Base class for refusals the caller can act on."""
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__


class ValidationError(WorkflowError):
    """Input has the wrong shape, e.g. a reason that is too short."""
    status_code = 400


class PermissionDeniedError(WorkflowError):
    """The actor's role or ownership does not allow the action."""
    status_code = 403

    @property
    def kind(self) -> str:
        return "PermissionError"


class NotFoundError(WorkflowError):
    """A referenced visitor or request does not exist."""
    status_code = 404


class ConflictError(WorkflowError):
    """The action would break an invariant, e.g. a second pending request."""
    status_code = 409


class InvalidStateError(WorkflowError):
    """A transition was attempted on a request that is no longer pending."""
    status_code = 409
