"""
core/responses.py -- The uniform JSON response envelope.

Every handler-owned endpoint replies with one of two shapes:

    {"success": true,  "message": ..., "statusCode": 2xx/3xx, "data": ...}
    {"success": false, "message": ..., "statusCode": 4xx/5xx, "data": ...}

"data" is omitted when there is no payload. The model validators keep the
success flag and the status code in agreement, so an envelope that would
claim success with a 4xx (or failure with a 2xx) cannot be built.

ApiError is the application's own exception type. Raise it anywhere below a
route handler (dependencies, the auth engine, stores' callers) and the
central handler in api/main.py turns it into an ErrorResponse.

Layer rule: core/ is the kernel and imports nothing from api/, auth/, mail/,
or cache/.
"""

from __future__ import annotations

from typing import Any, Iterable, Literal, Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, model_validator


class _Envelope(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message: str
    status_code: int = Field(serialization_alias="statusCode")
    data: Optional[Any] = None

    def to_dict(self) -> dict:
        body = self.model_dump(mode="json", by_alias=True)
        if body.get("data") is None:
            body.pop("data", None)
        return body

    def to_response(self, headers: Optional[dict[str, str]] = None) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_dict(), headers=headers)


class SuccessResponse(_Envelope):
    """A successful result. status_code defaults to 200."""

    success: Literal[True] = True
    status_code: int = Field(default=200, serialization_alias="statusCode")

    @model_validator(mode="after")
    def check_status(self) -> "SuccessResponse":
        if not 100 <= self.status_code < 400:
            raise ValueError(f"SuccessResponse status_code must be below 400, got {self.status_code}")
        return self


class ErrorResponse(_Envelope):
    """A failed result. status_code is required -- pick one from the error taxonomy."""

    success: Literal[False] = False

    @model_validator(mode="after")
    def check_status(self) -> "ErrorResponse":
        if not 400 <= self.status_code < 600:
            raise ValueError(f"ErrorResponse status_code must be 4xx or 5xx, got {self.status_code}")
        return self


class ApiError(Exception):
    """Application error carrying an HTTP status and an optional structured payload."""

    def __init__(self, message: str, status_code: int, data: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.data = data

    def envelope(self) -> ErrorResponse:
        return ErrorResponse(message=self.message, status_code=self.status_code, data=self.data)

    def __repr__(self) -> str:
        return f"ApiError({self.message!r}, {self.status_code})"


def field_errors(errors: Iterable[dict]) -> list[dict]:
    """Flatten pydantic error dicts to [{"field": "a.b", "message": ...}].

    The raw error dicts can carry exception objects in "ctx", which are not
    JSON serializable, so only location and message are kept.
    """
    details: list[dict] = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        details.append({"field": ".".join(loc) or "body", "message": error.get("msg", "Invalid value")})
    return details


# ---------------------------------------------------------------------------
# Fixed user-facing messages
# ---------------------------------------------------------------------------

UNAUTHORIZED = "Unauthorized access"
INVALID_CREDENTIALS = "Invalid email or password"
EMAIL_NOT_VERIFIED = "Email not verified"
INVALID_TOKEN = "Invalid or expired token"
INVALID_OTP = "Invalid or expired code"
TOO_MANY_ATTEMPTS = "Too many attempts, please request a new code"
RATE_LIMITED = "Too many requests from this IP, please try again later."
INTERNAL_ERROR = "Internal server error"
