"""Typed failures raised by the generation core.

Every generation resolves to exactly one result or exactly one of these.
"""

from __future__ import annotations


class GenerationError(Exception):
    """Base class for all generation failures."""

    def __init__(self, message: str, *, provider: str | None = None):
        super().__init__(message)
        self.message = message
        self.provider = provider


class ValidationError(GenerationError):
    """Malformed or unsupported request. Never retried."""


class TransportError(GenerationError):
    """Network or provider-call failure. Retried by the transport."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int = 0,
    ):
        super().__init__(message, provider=provider)
        self.status_code = status_code


class ProviderError(GenerationError):
    """Provider explicitly reported failure (e.g. job state ``failed``)."""


class UnrecognizedResponseError(GenerationError):
    """A successful response carried no media in any known shape."""


class JobTimeoutError(GenerationError):
    """An asynchronous job exhausted its poll budget without finishing."""
