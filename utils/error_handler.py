"""
Error handling utilities for the Predica backend.
"""
import asyncio
import functools
import inspect
import time
from typing import Any, Callable, Type, Union, Tuple
from .logging import get_logger

logger = get_logger(__name__)

__all__ = [
    "PredicaError",
    "PersistenceError",
    "ProviderError",
    "TranscriptionError",
    "AudioConversionError",
    "CalibrationConfigError",
    "handle_exceptions",
    "retry",
]


class PredicaError(Exception):
    """Base exception for the service."""
    pass


class PersistenceError(PredicaError):
    """Raised when the message store cannot read or write."""
    pass


class ProviderError(PredicaError):
    """Raised when the external model provider call fails."""
    pass


class TranscriptionError(ProviderError):
    """Raised when speech-to-text fails or yields no text."""
    pass


class AudioConversionError(PredicaError):
    """Raised when ffmpeg cannot produce a usable WAV file."""
    pass


class CalibrationConfigError(PredicaError):
    """Raised when the calibration prompts file is missing or malformed."""
    pass


def handle_exceptions(
    error_types: Union[Type[Exception], Tuple[Type[Exception], ...]] = Exception,
    default_value: Any = None
) -> Callable:
    """Decorator to handle exceptions and return a default value."""
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except error_types as e:
                logger.error(f"Error in {func.__name__}: {str(e)}")
                return default_value
        return wrapper
    return decorator


def _next_delay(attempt: int, delay: float, backoff: float, linear: bool) -> float:
    if linear:
        return delay * attempt
    return delay * (backoff ** (attempt - 1))


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: Union[Type[Exception], Tuple[Type[Exception], ...]] = Exception,
    linear: bool = False,
) -> Callable:
    """Decorator to retry a function on failure.

    With ``linear=True`` the wait after attempt ``n`` is ``n * delay``;
    otherwise it grows geometrically by ``backoff``. Coroutine functions are
    awaited and sleep with ``asyncio.sleep``. The last exception is re-raised
    once ``max_attempts`` calls have failed.
    """
    def decorator(func: Callable) -> Callable:
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                attempt = 0
                while True:
                    try:
                        return await func(*args, **kwargs)
                    except exceptions as e:
                        attempt += 1
                        if attempt >= max_attempts:
                            logger.error(f"Final retry attempt failed for {func.__name__}: {str(e)}")
                            raise
                        wait = _next_delay(attempt, delay, backoff, linear)
                        logger.warning(f"Attempt {attempt} failed for {func.__name__}: {str(e)}")
                        logger.info(f"Retrying in {wait} seconds...")
                        await asyncio.sleep(wait)
            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    attempt += 1
                    if attempt >= max_attempts:
                        logger.error(f"Final retry attempt failed for {func.__name__}: {str(e)}")
                        raise
                    wait = _next_delay(attempt, delay, backoff, linear)
                    logger.warning(f"Attempt {attempt} failed for {func.__name__}: {str(e)}")
                    logger.info(f"Retrying in {wait} seconds...")
                    time.sleep(wait)
        return wrapper
    return decorator
