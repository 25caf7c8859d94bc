"""
Error taxonomy for the API.

Each error knows the HTTP status it maps to and which key the JSON envelope
uses for the message (``message`` for the auth and upload flows, ``error``
everywhere else, matching what the frontend reads).
"""

from __future__ import annotations


class MuzacError(Exception):
    status_code: int = 500
    envelope_key: str = "error"

    def __init__(
        self,
        message: str,
        *,
        envelope_key: str | None = None,
        extra: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}
        if envelope_key:
            self.envelope_key = envelope_key

    def as_body(self) -> dict:
        return {self.envelope_key: self.message, **self.extra}


class ValidationFailure(MuzacError):
    status_code = 400


class AuthenticationFailure(MuzacError):
    status_code = 401


class AccessDenied(MuzacError):
    status_code = 403


class NotFound(MuzacError):
    status_code = 404


class UpstreamFailure(MuzacError):
    status_code = 500
