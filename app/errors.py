"""API error types with machine-readable codes."""

from fastapi import HTTPException

TOKEN_MISSING = "TOKEN_MISSING"
TOKEN_EXPIRED = "TOKEN_EXPIRED"
TOKEN_INVALID = "TOKEN_INVALID"
INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
ACCOUNT_DEACTIVATED = "ACCOUNT_DEACTIVATED"
CONFLICT = "CONFLICT"
NOT_FOUND = "NOT_FOUND"
VALIDATION_FAILED = "VALIDATION_FAILED"
INTERNAL_ERROR = "INTERNAL_ERROR"


class APIError(HTTPException):
    """HTTPException that also carries an error code clients can branch on."""

    def __init__(self, status_code: int, detail: str, code: str | None = None, headers: dict | None = None) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.code = code


STATUS_BY_CODE = {
    TOKEN_MISSING: 401,
    TOKEN_EXPIRED: 401,
    TOKEN_INVALID: 403,
    INVALID_CREDENTIALS: 401,
    ACCOUNT_DEACTIVATED: 401,
    ACCOUNT_LOCKED: 423,
    CONFLICT: 409,
    NOT_FOUND: 404,
    VALIDATION_FAILED: 400,
}


def error_for_code(code: str | None, detail: str | None) -> APIError:
    """Build the HTTP error for a failed service result."""
    status_code = STATUS_BY_CODE.get(code or "", 400)
    return APIError(status_code=status_code, detail=detail or "Request failed", code=code)


def not_found(what: str) -> APIError:
    return APIError(status_code=404, detail=f"{what} not found", code=NOT_FOUND)


def conflict(detail: str) -> APIError:
    return APIError(status_code=409, detail=detail, code=CONFLICT)


def bad_request(detail: str) -> APIError:
    return APIError(status_code=400, detail=detail, code=VALIDATION_FAILED)
