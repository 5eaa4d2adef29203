"""
backend/app/models/common.py

Purpose:
    Shared outcome types for the wagering core. Core operations return either
    their result model or a ServiceError carrying one of the user-facing
    error kinds; routers translate the error into an HTTP response.

Dependencies:
    - pydantic
"""

from enum import Enum

from pydantic import BaseModel


class ErrorKind(str, Enum):
    not_found = "not_found"
    invalid_state = "invalid_state"
    insufficient_funds = "insufficient_funds"
    conflict = "conflict"


class ServiceError(BaseModel):
    """A recoverable, user-facing failure of a core operation."""
    kind: ErrorKind
    message: str


def not_found(message: str) -> ServiceError:
    return ServiceError(kind=ErrorKind.not_found, message=message)


def invalid_state(message: str) -> ServiceError:
    return ServiceError(kind=ErrorKind.invalid_state, message=message)


def insufficient_funds(message: str) -> ServiceError:
    return ServiceError(kind=ErrorKind.insufficient_funds, message=message)


def conflict(message: str) -> ServiceError:
    return ServiceError(kind=ErrorKind.conflict, message=message)
