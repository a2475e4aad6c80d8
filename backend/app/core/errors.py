# backend/app/core/errors.py
"""
Domain error taxonomy.

Services raise these instead of HTTPException so they stay usable outside
a request. The API layer maps them to responses in main.py.
"""
from typing import Any, Dict, Optional, Union


class DomainError(Exception):
    code: str = "DOMAIN_ERROR"
    status_code: int = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(DomainError):
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(DomainError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, id: Optional[Union[int, str]] = None):
        if id is not None:
            message = f"{resource} with id {id} not found"
        else:
            message = f"{resource} not found"
        super().__init__(message)
        self.resource = resource


class UnauthorizedError(DomainError):
    code = "UNAUTHORIZED"
    status_code = 401


class ConflictError(DomainError):
    code = "CONFLICT"
    status_code = 409


class InvalidDataError(DomainError):
    code = "INVALID_DATA"
    status_code = 422
