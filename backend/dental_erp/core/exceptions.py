"""
Error taxonomy for the workflow and ledger services

Every service failure carries a machine-readable ``kind`` and a human
message; the API layer turns them into JSON responses.
"""

from fastapi import Request
from fastapi.responses import JSONResponse

from dental_erp.core.logging_config import get_logger

logger = get_logger(__name__)


class LabError(Exception):
    """Base class for expected business failures"""
    kind = "error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"success": False, "kind": self.kind, "error": self.message}


class ValidationError(LabError):
    """Missing or malformed input"""
    kind = "validation_error"


class InvalidTransitionError(LabError):
    """Status change not present in the transition table"""
    kind = "invalid_transition"


class PreconditionError(LabError):
    """QC not passed, already invoiced, PO not received..."""
    kind = "precondition_failed"


class InsufficientRemainingError(LabError):
    """Payment larger than the open amount"""
    kind = "insufficient_remaining"


class NotFoundError(LabError):
    kind = "not_found"
    status_code = 404


class ConflictError(LabError):
    """Cancel with payments, delete with dependents, duplicate expense, stale write"""
    kind = "conflict"
    status_code = 409


async def lab_error_handler(request: Request, exc: LabError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} rejected [{exc.kind}]: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "kind": "internal_error", "error": "Internal server error"}
    )
