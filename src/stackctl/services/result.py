"""ServiceResult and ServiceError — the universal service contract.

INVARIANT: All service-layer methods return ServiceResult.
The CLI and plugins consume this type; parsing layers raise typed
exceptions which services translate into ``ServiceError`` codes.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode(StrEnum):
    """Stable error codes surfaced in ``ServiceError.code``."""

    COMPOSE_NOT_FOUND = "COMPOSE_NOT_FOUND"
    INVALID_COMPOSE = "INVALID_COMPOSE"
    PROXY_NOT_FOUND = "PROXY_NOT_FOUND"
    INVALID_PROXY = "INVALID_PROXY"
    UNKNOWN_SERVICE = "UNKNOWN_SERVICE"
    DEPENDENCY_CYCLE = "DEPENDENCY_CYCLE"
    RUNTIME_ERROR = "RUNTIME_ERROR"
    RUNTIME_UNAVAILABLE = "RUNTIME_UNAVAILABLE"
    STARTUP_FAILED = "STARTUP_FAILED"
    TARGET_EXISTS = "TARGET_EXISTS"
    LINT_FAILED = "LINT_FAILED"


class ServiceError(BaseModel):
    """Structured error payload within a ServiceResult."""

    model_config = {"frozen": True}

    code: str
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)


class ServiceResult(BaseModel):
    """Universal return type for all service operations.

    Attributes:
        ok: Whether the operation succeeded.
        op: Name of the operation (e.g. ``"up"``).
        data: Operation-specific payload. Failed operations may still carry
            data (for example the per-service states of a failed ``up``).
        warnings: Non-fatal issues encountered during the operation.
        error: Structured error if ``ok`` is False.
        meta: Optional metadata (timing, counts, etc.).
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None

    @classmethod
    def failure(
        cls,
        op: str,
        code: ErrorCode | str,
        message: str,
        *,
        data: dict[str, Any] | None = None,
        warnings: list[str] | None = None,
        **detail: Any,
    ) -> ServiceResult:
        """Build a failed result with a structured error."""
        return cls(
            ok=False,
            op=op,
            data=data or {},
            warnings=warnings or [],
            error=ServiceError(code=str(code), message=message, detail=detail),
        )
