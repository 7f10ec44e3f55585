"""Domain errors raised by pipeline services; main.py maps them to HTTP responses."""

from __future__ import annotations


class PipelineError(Exception):
    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(PipelineError):
    status_code = 400


class AdminAuthError(PipelineError):
    status_code = 403


class NotFoundError(PipelineError):
    status_code = 404


class InvalidStateError(PipelineError):
    """The record is not in the state the operation requires. Refresh and retry."""

    status_code = 409
