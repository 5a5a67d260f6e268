"""Common schemas for the admin API."""
from typing import Any, Dict, Optional
from pydantic import BaseModel


class ErrorDetail(BaseModel):
    """Structured error payload produced by ``api_error``."""

    detail: str
    code: Optional[str] = None
    # Partial batch results when a store outage aborted the request
    data: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Error response."""

    detail: ErrorDetail


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str
    database: str
