"""
Transaction helpers shared by the order coordinators
"""
from functools import wraps
import logging

from django.conf import settings
from django.db import OperationalError, connection

from .exceptions import ConcurrencyConflict

logger = logging.getLogger(__name__)

# SQLSTATE codes PostgreSQL uses for serialization_failure and deadlock_detected
CONFLICT_SQLSTATES = {'40001', '40P01'}


def is_serialization_failure(exc):
    """True when a database error is a retryable serialization failure or deadlock"""
    cause = exc.__cause__
    code = getattr(cause, 'sqlstate', None) or getattr(cause, 'pgcode', None)
    return code in CONFLICT_SQLSTATES


def retry_on_conflict(func=None, retries=None):
    """
    Decorator that re-runs a transactional operation after a serialization
    failure or deadlock, then gives up with ConcurrencyConflict.

    The wrapped function must open its own ``transaction.atomic()`` block;
    retrying inside an outer transaction is pointless because the outer
    transaction is already aborted, so in that case the error is raised
    straight away.

    Usage:
        @retry_on_conflict
        def place_order(...):
            with transaction.atomic():
                ...
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            max_retries = retries if retries is not None else getattr(settings, 'ORDER_CONFLICT_RETRIES', 1)
            attempt = 0
            while True:
                try:
                    return fn(*args, **kwargs)
                except OperationalError as e:
                    if not is_serialization_failure(e):
                        raise
                    if connection.in_atomic_block or attempt >= max_retries:
                        logger.warning(f"{fn.__name__}: giving up after {attempt + 1} attempt(s) on concurrent update: {e}")
                        raise ConcurrencyConflict() from e
                    attempt += 1
                    logger.warning(f"{fn.__name__}: concurrent update detected, retrying (attempt {attempt + 1})")
        return wrapper

    if func is not None:
        return decorator(func)
    return decorator
