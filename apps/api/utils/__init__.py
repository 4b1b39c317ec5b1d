"""Utility functions for the API."""

from .errors import (
    APIError,
    ValidationError,
    AuthorizationError,
    NotFoundError,
    ConflictError,
    BusinessLogicError,
    DatabaseError,
)
from .time import utc_now, utc_today

__all__ = [
    'APIError',
    'ValidationError',
    'AuthorizationError',
    'NotFoundError',
    'ConflictError',
    'BusinessLogicError',
    'DatabaseError',
    'utc_now',
    'utc_today',
]
