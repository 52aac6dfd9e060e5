"""
Domain error taxonomy.

Services raise these; the exception handlers registered in ``backend.main``
render them into the standard ``{success, message, ...}`` envelope.

    raise NotFound("Contractor not found")
    raise ExclusivityConflict(active_contractor)
"""
from typing import Any, Dict, List, Optional


class ProgramError(Exception):
    """Base class for every error the API reports to its callers."""

    status_code: int = 400
    default_message: str = "Request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def payload(self) -> Dict[str, Any]:
        return {"success": False, "message": self.message}


class ValidationError(ProgramError):
    status_code = 400
    default_message = "Validation error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    def payload(self) -> Dict[str, Any]:
        body = super().payload()
        if self.errors:
            body["errors"] = self.errors
        return body


class DuplicateKey(ProgramError):
    status_code = 400
    default_message = "Record with this NIC number already exists"


class ExclusivityConflict(ProgramError):
    """Another contractor is already active; carries its identity."""

    status_code = 400
    default_message = (
        "Only one active contractor is allowed. "
        "Please deactivate the current active contractor first."
    )

    def __init__(self, active_contractor: Dict[str, Any], message: Optional[str] = None):
        super().__init__(message)
        self.active_contractor = active_contractor

    def payload(self) -> Dict[str, Any]:
        body = super().payload()
        body["activeContractor"] = self.active_contractor
        return body


class PreconditionFailed(ProgramError):
    status_code = 400
    default_message = "Precondition failed"


class Forbidden(ProgramError):
    status_code = 403
    default_message = "Access denied"


class NotFound(ProgramError):
    status_code = 404
    default_message = "Not found"


class InvalidTransition(ProgramError):
    status_code = 409
    default_message = "Transition not allowed from the current state"


class InfrastructureFailure(ProgramError):
    status_code = 500
    default_message = "Server error"
