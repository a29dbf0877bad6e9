"""Schemas shared by several routers: request base, cookies, errors."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """Base for request bodies: accepts field names or aliases, trims strings."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class CookieBody(BaseSchema):
    """Session cookies forwarded to the comic API."""

    cookies: dict[str, str] = Field(
        default_factory=dict,
        description="Cookie map sent as the Cookie header; empty uses the stored session",
    )


# =============================================================================
# Errors
# =============================================================================


class ErrorDetail(BaseModel):
    code: str = Field(..., description="Machine-readable error code, e.g. API_ERROR")
    message: str = Field(..., description="Server or service message, verbatim")
    request_id: str | None = Field(None, description="Value of the X-Request-ID header")
    details: dict[str, Any] | None = Field(
        None, description="http_status, api_code, base, stage or field, when known"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "code": "API_ERROR",
                "message": "Login required",
                "request_id": "9f1c2e4b7a3d4e0f",
                "details": {"http_status": 401, "api_code": 401},
            }
        }
    )


class ErrorResponse(BaseModel):
    """Body of every non-2xx response raised by the service."""

    error: ErrorDetail


class MessageResponse(BaseModel):
    message: str
