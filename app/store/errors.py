"""
Domain exceptions raised by the service layer.
Route handlers translate them into JSON error responses (see utils.error_from_exception).
"""
from __future__ import annotations


class StoreError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StoreError):
    status_code = 400


class Conflict(StoreError):
    # Duplicate names/emails etc. The public API reports these as 400.
    status_code = 400


class NotFound(StoreError):
    status_code = 404


class Forbidden(StoreError):
    status_code = 403


class InvalidTransition(StoreError):
    status_code = 400
