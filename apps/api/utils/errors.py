"""Error taxonomy and safe error responses for the Wilayah API.

Every error raised by the authorization, review and spatial layers is an
``APIError`` subclass with a stable machine-readable ``code``. The app
registers one handler for ``APIError`` so routes can simply raise.
"""
import logging
from typing import Optional, Dict, Any
from flask import jsonify, current_app, has_app_context


class APIError(Exception):
    """Base exception for API errors with safe error messages."""

    default_code = 'ERROR'
    default_status = 500
    default_message = 'Internal server error'

    def __init__(self, message: str = None, code: str = None, status_code: int = None, details: Any = None):
        message = message or self.default_message
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.status_code = status_code or self.default_status
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload = {'error': self.message, 'code': self.code}
        if self.details is not None:
            payload['details'] = self.details
        return payload


class ValidationError(APIError):
    """Malformed input (bad layer selector, missing review notes, ...)."""
    default_code = 'VALIDATION_ERROR'
    default_status = 400
    default_message = 'Validation failed'

    def __init__(self, message: str = None, field: str = None, details: Any = None, code: str = None):
        super().__init__(message, code=code, details=details)
        self.field = field

    def to_dict(self):
        payload = super().to_dict()
        if self.field:
            payload['field'] = self.field
        return payload


class AuthorizationError(APIError):
    # Message stays generic; callers never learn which rule denied them.
    default_code = 'AUTHORIZATION_ERROR'
    default_status = 403
    default_message = 'Access denied'


class NotFoundError(APIError):
    default_code = 'NOT_FOUND'
    default_status = 404
    default_message = 'Resource not found'


class ConflictError(APIError):
    """Concurrent-reviewer lock or an already finalized record.

    Callers should reload and retry; conflicts are never retried internally.
    """
    default_code = 'CONFLICT'
    default_status = 409
    default_message = 'Conflict'


class BusinessLogicError(APIError):
    """Input is valid but the request cannot be served (e.g. outside boundary)."""
    default_code = 'BUSINESS_LOGIC_ERROR'
    default_status = 422
    default_message = 'Request cannot be processed'


class DatabaseError(APIError):
    default_code = 'DATABASE_ERROR'
    default_status = 500
    default_message = 'Database operation failed'


def safe_error_response(
    message: str,
    exception: Optional[Exception] = None,
    status_code: int = 500,
    code: str = None,
    log_level: str = 'error'
) -> tuple:
    """
    Create a standardized, safe error response.

    The full exception is logged server-side; clients only see ``message``
    unless the app runs in debug mode.

    Returns:
        Tuple of (response, status_code)
    """
    response = {'error': message}

    if code:
        response['code'] = code

    logger = current_app.logger if has_app_context() else logging.getLogger(__name__)
    log_message = f"{message}"
    if exception:
        log_message += f": {type(exception).__name__}: {exception}"

    log_func = getattr(logger, log_level, logger.error)
    log_func(log_message)

    if has_app_context() and current_app.config.get('DEBUG') and exception:
        response['details'] = str(exception)
        response['exception_type'] = type(exception).__name__

    return jsonify(response), status_code


def api_error_response(error: APIError) -> tuple:
    """Serialize a raised APIError; server errors are logged, client errors are not."""
    if error.status_code >= 500:
        current_app.logger.error(f"{error.code}: {error.message}")
    return jsonify(error.to_dict()), error.status_code


def error_400(message: str = "Bad request", exception: Exception = None, code: str = None):
    """Bad request error."""
    return safe_error_response(message, exception, 400, code, 'warning')


def error_401(message: str = "Unauthorized", exception: Exception = None, code: str = None):
    """Unauthorized error."""
    return safe_error_response(message, exception, 401, code, 'warning')


def error_403(message: str = "Forbidden", exception: Exception = None, code: str = None):
    """Forbidden error."""
    return safe_error_response(message, exception, 403, code, 'warning')


def error_404(message: str = "Not found", exception: Exception = None, code: str = None):
    """Not found error."""
    return safe_error_response(message, exception, 404, code, 'info')


def error_429(message: str = "Too many requests", exception: Exception = None, code: str = None):
    """Rate limit exceeded."""
    return safe_error_response(message, exception, 429, code or 'RATE_LIMITED', 'warning')


def error_500(message: str = "Internal server error", exception: Exception = None, code: str = None):
    """Internal server error."""
    return safe_error_response(message, exception, 500, code, 'error')


__all__ = [
    'APIError',
    'ValidationError',
    'AuthorizationError',
    'NotFoundError',
    'ConflictError',
    'BusinessLogicError',
    'DatabaseError',
    'safe_error_response',
    'api_error_response',
    'error_400',
    'error_401',
    'error_403',
    'error_404',
    'error_429',
    'error_500',
]
