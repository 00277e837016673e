"""Tagged service outcomes mapped to HTTP status codes by the API layer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class OutcomeKind(str, Enum):
    OK = "ok"
    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INTERNAL_ERROR = "internal_error"


STATUS_BY_KIND: dict[OutcomeKind, int] = {
    OutcomeKind.OK: 200,
    OutcomeKind.BAD_REQUEST: 400,
    OutcomeKind.UNAUTHORIZED: 401,
    OutcomeKind.FORBIDDEN: 403,
    OutcomeKind.NOT_FOUND: 404,
    OutcomeKind.CONFLICT: 409,
    OutcomeKind.INTERNAL_ERROR: 500,
}

GENERIC_INTERNAL_ERROR = "Erro interno"


@dataclass(frozen=True, slots=True)
class Outcome:
    """Result of a request-level operation: a payload or an error message."""

    kind: OutcomeKind
    payload: dict[str, object] | None = None
    error: str | None = None

    @property
    def is_ok(self) -> bool:
        return self.kind is OutcomeKind.OK

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def body(self) -> dict[str, object]:
        if self.is_ok:
            return self.payload or {}
        return {"error": self.error or GENERIC_INTERNAL_ERROR}

    @classmethod
    def ok(cls, payload: dict[str, object]) -> Outcome:
        return cls(OutcomeKind.OK, payload=payload)

    @classmethod
    def bad_request(cls, message: str) -> Outcome:
        return cls(OutcomeKind.BAD_REQUEST, error=message)

    @classmethod
    def unauthorized(cls, message: str = "Não autorizado") -> Outcome:
        return cls(OutcomeKind.UNAUTHORIZED, error=message)

    @classmethod
    def forbidden(cls, message: str) -> Outcome:
        return cls(OutcomeKind.FORBIDDEN, error=message)

    @classmethod
    def not_found(cls, message: str) -> Outcome:
        return cls(OutcomeKind.NOT_FOUND, error=message)

    @classmethod
    def conflict(cls, message: str) -> Outcome:
        return cls(OutcomeKind.CONFLICT, error=message)

    @classmethod
    def internal_error(cls) -> Outcome:
        return cls(OutcomeKind.INTERNAL_ERROR, error=GENERIC_INTERNAL_ERROR)
