"""
Domain error taxonomy and its HTTP rendering.

Every error names the entity it concerns and the rule that was violated so a
client can render an actionable message without seeing storage internals.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import DBAPIError, IntegrityError

log = structlog.get_logger()

# SQLSTATE codes that mean "another writer got there first; retry"
_RETRYABLE_SQLSTATES = {"40001", "40P01", "55P03"}
_UNIQUE_VIOLATION = "23505"


class DomainError(Exception):
    code = "DOMAIN_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID | str] = None,
        invariant: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.entity_type = entity_type
        self.entity_id = str(entity_id) if entity_id is not None else None
        self.invariant = invariant

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "invariant": self.invariant,
        }


class NotFound(DomainError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity_type: str, entity_id: uuid.UUID | str, *, invariant: str = "exists"):
        super().__init__(
            f"{entity_type} {entity_id} not found",
            entity_type=entity_type,
            entity_id=entity_id,
            invariant=invariant,
        )


class ValidationError(DomainError):
    code = "VALIDATION_ERROR"
    status_code = 422


class ReferentialConflict(DomainError):
    """A restrict policy blocked a deletion; ``blockers`` lists the dependents."""

    code = "REFERENTIAL_CONFLICT"
    status_code = 409

    def __init__(
        self,
        entity_type: str,
        entity_id: uuid.UUID | str,
        blockers: list[dict[str, Any]],
        *,
        invariant: str,
    ):
        kinds = sorted({b["entity_type"] for b in blockers})
        super().__init__(
            f"{entity_type} {entity_id} is still referenced by {len(blockers)} "
            f"{'/'.join(kinds)} row(s)",
            entity_type=entity_type,
            entity_id=entity_id,
            invariant=invariant,
        )
        self.blockers = blockers

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["blockers"] = self.blockers
        return data


class TransactionConflict(DomainError):
    """A concurrent writer won the race. Re-read state before retrying."""

    code = "TRANSACTION_CONFLICT"
    status_code = 409

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retryable"] = True
        return data


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def translate_db_error(
    exc: DBAPIError, entity_type: Optional[str] = None, entity_id: Any = None
) -> DomainError:
    """Map a driver error raised at flush/commit onto the domain taxonomy."""
    state = _sqlstate(exc)
    text = str(exc.orig).lower()
    if isinstance(exc, IntegrityError):
        if state == _UNIQUE_VIOLATION or "unique" in text:
            return ValidationError(
                f"duplicate {entity_type or 'row'}: {exc.orig}",
                entity_type=entity_type,
                entity_id=entity_id,
                invariant="unique",
            )
        # A referenced row vanished between our check and the write
        return TransactionConflict(
            f"concurrent change invalidated a reference: {exc.orig}",
            entity_type=entity_type,
            entity_id=entity_id,
            invariant="foreign_key",
        )
    if state in _RETRYABLE_SQLSTATES or "database is locked" in text:
        return TransactionConflict(
            f"concurrent write conflict: {exc.orig}",
            entity_type=entity_type,
            entity_id=entity_id,
            invariant="serializable",
        )
    raise exc


def from_pydantic(
    exc: PydanticValidationError, entity_type: Optional[str] = None, entity_id: Any = None
) -> ValidationError:
    """Collapse a pydantic error into a single domain ValidationError."""
    first = exc.errors()[0]
    loc = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "invalid value")
    if first.get("type") == "extra_forbidden":
        message = "unknown field"
    return ValidationError(
        f"{loc}: {message}" if loc else message,
        entity_type=entity_type,
        entity_id=entity_id,
        invariant=f"{entity_type}.{loc}" if entity_type and loc else loc or None,
    )


def register_error_handlers(app: FastAPI) -> None:
    """Render domain errors as ``{"error": {...}}`` JSON bodies."""

    @app.exception_handler(DomainError)
    async def _domain_error(request: Request, exc: DomainError):
        log.info(
            "request.domain_error",
            code=exc.code,
            entity_type=exc.entity_type,
            entity_id=exc.entity_id,
            invariant=exc.invariant,
            path=request.url.path,
        )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        loc = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        err = ValidationError(f"{loc}: {first.get('msg', 'invalid request')}", invariant=loc or None)
        return JSONResponse(status_code=err.status_code, content={"error": err.to_dict()})
