"""
Workflow Exceptions
Typed errors raised by the approval engine and its repositories

    WorkflowError (base)
    +-- NotFoundError            404  expense, step or policy missing, or not the caller's
    +-- InvalidStateError        409  step or expense already decided
    +-- UpstreamUnavailableError 503  directory / policy lookup failed or timed out
    +-- PolicyValidationError    400  sequence or rule rejected at write time
    +-- PermissionDeniedError    403
"""

from typing import Optional


class WorkflowError(Exception):
    """Base class for all approval workflow errors"""

    code: str = "WORKFLOW_ERROR"
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {
            "success": False,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable
        }


class NotFoundError(WorkflowError):
    code = "NOT_FOUND"
    status_code = 404


class InvalidStateError(WorkflowError):
    code = "INVALID_STATE"
    status_code = 409


class UpstreamUnavailableError(WorkflowError):
    """Directory or policy store lookup failed; the caller may retry"""

    code = "UPSTREAM_UNAVAILABLE"
    status_code = 503
    retryable = True


class PolicyValidationError(WorkflowError):
    code = "INVALID_POLICY"
    status_code = 400


class PermissionDeniedError(WorkflowError):
    code = "FORBIDDEN"
    status_code = 403
