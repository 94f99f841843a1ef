from dataclasses import dataclass
from enum import Enum
from typing import List

PROBLEM_TYPE_BASE = "https://example.com/problems"


class ErrorKind(str, Enum):
    INVALID_ARGUMENT = "invalid_argument"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_TRANSITION = "invalid_transition"
    UNAVAILABLE = "unavailable"


@dataclass
class DomainError(Exception):
    detail: str
    title: str = "Domain Error"
    type: str = f"{PROBLEM_TYPE_BASE}/domain-error"
    errors: List[dict] | None = None
    kind: ErrorKind = ErrorKind.INVALID_ARGUMENT
    status_code: int = 400

    def __str__(self) -> str:
        return self.detail

    @property
    def retryable(self) -> bool:
        return self.kind is ErrorKind.UNAVAILABLE


@dataclass
class InvalidArgumentError(DomainError):
    title: str = "Invalid Argument"
    type: str = f"{PROBLEM_TYPE_BASE}/invalid-argument"
    kind: ErrorKind = ErrorKind.INVALID_ARGUMENT
    status_code: int = 400


@dataclass
class ForbiddenError(DomainError):
    detail: str = "Not allowed"
    title: str = "Forbidden"
    type: str = f"{PROBLEM_TYPE_BASE}/forbidden"
    kind: ErrorKind = ErrorKind.FORBIDDEN
    status_code: int = 403


@dataclass
class NotFoundError(DomainError):
    title: str = "Not Found"
    type: str = f"{PROBLEM_TYPE_BASE}/not-found"
    kind: ErrorKind = ErrorKind.NOT_FOUND
    status_code: int = 404


@dataclass
class ConflictError(DomainError):
    title: str = "Conflict"
    type: str = f"{PROBLEM_TYPE_BASE}/conflict"
    kind: ErrorKind = ErrorKind.CONFLICT
    status_code: int = 409


@dataclass
class InvalidTransitionError(DomainError):
    title: str = "Invalid Transition"
    type: str = f"{PROBLEM_TYPE_BASE}/invalid-transition"
    kind: ErrorKind = ErrorKind.INVALID_TRANSITION
    status_code: int = 409


@dataclass
class UnavailableError(DomainError):
    title: str = "Service Unavailable"
    type: str = f"{PROBLEM_TYPE_BASE}/unavailable"
    kind: ErrorKind = ErrorKind.UNAVAILABLE
    status_code: int = 503
