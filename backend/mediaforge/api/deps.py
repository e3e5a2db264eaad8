"""Shared FastAPI dependencies and error mapping."""

from __future__ import annotations

from fastapi import HTTPException, Request

from mediaforge.errors import (
    GenerationError,
    JobTimeoutError,
    ValidationError,
)
from mediaforge.services.generation import GenerationService


def get_generation_service(request: Request) -> GenerationService:
    service = getattr(request.app.state, "generation_service", None)
    if service is None:
        service = GenerationService()
        request.app.state.generation_service = service
    return service


def to_http_error(e: GenerationError) -> HTTPException:
    """400 for bad requests, 504 for timeouts, 502 for every upstream failure."""
    if isinstance(e, ValidationError):
        status_code = 400
    elif isinstance(e, JobTimeoutError):
        status_code = 504
    else:
        status_code = 502
    return HTTPException(status_code=status_code, detail=e.message)
