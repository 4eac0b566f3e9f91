from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


# Failure codes returned by the attendance core and their HTTP mapping.
ATTENDANCE_ERROR_STATUS: dict[str, int] = {
    "OFFICER_NOT_FOUND": 404,
    "INSTITUTION_NOT_FOUND": 404,
    "LOCATION_REQUIRED": 422,
    "GPS_NOT_CONFIGURED": 409,
    "CHECKIN_REQUIRED": 409,
    "CHECKOUT_BEFORE_CHECKIN": 409,
    "ALREADY_CHECKED_OUT": 409,
    "STORE_ERROR": 503,
}


def api_error_from_failure(code: str | None, message: str | None) -> ApiError:
    normalized_code = code or "ATTENDANCE_FAILED"
    return ApiError(
        status_code=ATTENDANCE_ERROR_STATUS.get(normalized_code, 400),
        code=normalized_code,
        message=message or "Attendance operation failed.",
    )


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    payload = {
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
        }
    }
    return JSONResponse(status_code=status_code, content=payload)
