"""Shared translation of core ServiceError outcomes into HTTP errors."""

from fastapi import HTTPException, status

from app.models.common import ErrorKind, ServiceError

_STATUS_BY_KIND = {
    ErrorKind.not_found: status.HTTP_404_NOT_FOUND,
    ErrorKind.invalid_state: status.HTTP_400_BAD_REQUEST,
    ErrorKind.insufficient_funds: status.HTTP_400_BAD_REQUEST,
    ErrorKind.conflict: status.HTTP_409_CONFLICT,
}


def raise_for_error(error: ServiceError) -> None:
    raise HTTPException(
        status_code=_STATUS_BY_KIND[error.kind],
        detail={"code": error.kind.value, "message": error.message},
    )
