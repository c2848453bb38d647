"""
Typed errors raised by the request workflow and master-data services.

Every error carries a machine-readable ``code`` and optional structured
``details``; ``main.py`` turns them into the standard error envelope:
{"error": {"code": "...", "message": "...", "details": {...}}}
"""

from typing import Any, Optional


class ProcureError(Exception):
    code: str = "PROCURE_ERROR"
    status_code: int = 400

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return {"error": body}


class NotFoundError(ProcureError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any = None):
        super().__init__(
            f"{entity} not found",
            {"entity": entity, "id": str(entity_id)} if entity_id is not None else None,
        )
        self.entity = entity


class NotAuthorizedError(ProcureError):
    code = "NOT_AUTHORIZED"
    status_code = 403


class InvalidStateError(ProcureError):
    """Action attempted against a node that does not accept it."""

    code = "INVALID_STATE"
    status_code = 409

    def __init__(
        self,
        message: str,
        current_state: Optional[dict[str, Optional[str]]] = None,
        processed_by: Optional[str] = None,
    ):
        details: dict[str, Any] = {}
        if current_state is not None:
            details["current_state"] = current_state
        if processed_by:
            details["processed_by"] = processed_by
        super().__init__(message, details)
        self.current_state = current_state
        self.processed_by = processed_by


class ValidationError(ProcureError):
    code = "VALIDATION_ERROR"
    status_code = 422


class ConflictError(ProcureError):
    code = "CONFLICT"
    status_code = 409
