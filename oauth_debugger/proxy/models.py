"""Pydantic models for the relay server API."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ProxyRequest(BaseModel):
    """Request body for relaying a call to a target server."""

    url: str | None = Field(default=None, description="Absolute http(s) URL of the target")
    method: str = Field(default="GET", description="HTTP method")
    headers: dict[str, str] | None = Field(default=None, description="Request headers")
    body: Any = Field(default=None, description="JSON value, form fields or raw text")


class ProxyResult(BaseModel):
    """Target server response as returned by the relay."""

    model_config = ConfigDict(populate_by_name=True)

    status: int
    status_text: str = Field(alias="statusText")
    headers: dict[str, str]
    body: Any = None


class ErrorResponse(BaseModel):
    """Error returned by the relay itself."""

    error: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
