"""
exceptions.py
=============
Error taxonomy for the patient workflow core.

Every error carries a stable shape (type, code, message, detail) so the UI
layer can decide between a blocking dialog and an advisory banner:
 - validation / block / not_found  -> blocking, state unchanged
 - warning                         -> advisory only (AI unavailable)
"""


class WorkflowError(Exception):
    """Base class: uniform error format."""
    type = "error"
    code = "UNKNOWN"
    message = "Unknown error"

    def __init__(self, message=None, code=None, detail=None):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.code = code or self.code
        self.detail = detail if detail is not None else {}

    def to_dict(self):
        return {
            "success": False,
            "type": self.type,
            "code": self.code,
            "message": self.message,
            "detail": self.detail,
        }


class ValidationError(WorkflowError):
    """Required data missing or malformed for the requested change."""
    type = "validation"
    code = "VALIDATION_ERROR"
    message = "Validation failed"


class AlreadySigned(ValidationError):
    code = "ALREADY_SIGNED"
    message = "Clinical file is already signed"


class IllegalTransition(WorkflowError):
    """Requested state change is not in the allowed adjacency."""
    type = "block"
    code = "ILLEGAL_TRANSITION"
    message = "Transition not allowed"


class FileLocked(IllegalTransition):
    code = "FILE_LOCKED"
    message = "Clinical file is signed and can no longer be edited"


class PreconditionNotMet(WorkflowError):
    """A dependent workflow was used before its gate opened."""
    type = "block"
    code = "PRECONDITION_NOT_MET"
    message = "Precondition not met"


class FileNotSigned(PreconditionNotMet):
    code = "FILE_NOT_SIGNED"
    message = "Clinical file must be signed before orders or rounds"


class EntityNotFound(WorkflowError):
    type = "not_found"
    code = "NOT_FOUND"
    message = "Entity not found"


class AdvisorUnavailable(WorkflowError):
    """The AI advisor failed or timed out. Never fatal to a workflow step."""
    type = "warning"
    code = "ADVISOR_UNAVAILABLE"
    message = "AI advisory is currently unavailable"
