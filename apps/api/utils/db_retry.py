"""
Database retry utilities for transient store failures.

Only connection-level errors are retried. Review conflicts and other
taxonomy errors propagate on the first attempt.
"""
import time
import random
import functools
from flask import current_app
from sqlalchemy.exc import OperationalError, InterfaceError, TimeoutError as SQLTimeoutError

from apps.api.utils.errors import DatabaseError


# Exceptions that indicate a connection issue (should retry)
RETRIABLE_EXCEPTIONS = (
    OperationalError,
    InterfaceError,
    SQLTimeoutError,
    ConnectionError,
    TimeoutError,
)


def backoff_delay(attempt, initial_delay=0.5, backoff_factor=2.0, max_delay=10.0):
    """Exponential backoff with full jitter for the given zero-based attempt."""
    ceiling = min(max_delay, initial_delay * (backoff_factor ** attempt))
    return random.uniform(0, ceiling)


def _reset_session(db):
    try:
        db.session.rollback()
        db.session.remove()
    except Exception as exc:
        current_app.logger.debug(f"Session reset after DB failure also failed: {exc}")


def execute_with_retry(db, operation, max_retries=None, initial_delay=None, backoff_factor=2.0):
    """
    Execute a database operation with retry logic.

    Args:
        db: The SQLAlchemy db instance
        operation: A callable that performs the database operation
        max_retries: Retry attempts after the first try (default: DB_RETRY_MAX_ATTEMPTS)
        initial_delay: Base delay in seconds (default: DB_RETRY_INITIAL_DELAY)
        backoff_factor: Multiply the delay ceiling by this factor after each retry

    Returns:
        The result of the operation

    Raises:
        DatabaseError: once all retries are exhausted

    Usage:
        result = execute_with_retry(
            db,
            lambda: Village.query.filter_by(district_id=district_id).all()
        )
    """
    if max_retries is None:
        max_retries = current_app.config.get('DB_RETRY_MAX_ATTEMPTS', 3)
    if initial_delay is None:
        initial_delay = current_app.config.get('DB_RETRY_INITIAL_DELAY', 0.5)

    for attempt in range(max_retries + 1):
        try:
            return operation()
        except RETRIABLE_EXCEPTIONS as e:
            _reset_session(db)
            if attempt < max_retries:
                delay = backoff_delay(attempt, initial_delay, backoff_factor)
                current_app.logger.warning(
                    f"DB operation failed (attempt {attempt + 1}/{max_retries + 1}): {str(e)[:100]}. "
                    f"Retrying in {delay:.2f}s..."
                )
                time.sleep(delay)
            else:
                current_app.logger.error(
                    f"DB operation failed after {max_retries + 1} attempts: {str(e)}"
                )
                raise DatabaseError('Database temporarily unavailable') from e


def with_db_retry(max_retries=None, initial_delay=None, backoff_factor=2.0):
    """
    Decorator that retries a route or service call on connection failures.

    Usage:
        @with_db_retry(max_retries=3)
        def list_provinces():
            ...
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            from apps.api import db
            return execute_with_retry(
                db,
                lambda: func(*args, **kwargs),
                max_retries=max_retries,
                initial_delay=initial_delay,
                backoff_factor=backoff_factor,
            )
        return wrapper
    return decorator
