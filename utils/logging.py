"""
Logging utilities for the Predica backend.
"""
import logging
import functools
import inspect
import os
from typing import Any, Callable

__all__ = ["get_logger", "log_function_call"]


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with standard configuration.

    Log level can be controlled via PREDICA_LOG_LEVEL env var. Default INFO.
    """
    logger = logging.getLogger(name)
    if not logger.handlers and not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '[%(asctime)s] [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        level_str = os.getenv("PREDICA_LOG_LEVEL", "INFO").upper()
        logger.setLevel(getattr(logging, level_str, logging.INFO))
    return logger


def log_function_call() -> Callable:
    """Decorator to log function calls (works for sync and async callables)."""
    def decorator(func: Callable) -> Callable:
        logger = get_logger(func.__module__)

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                logger.info(f"Calling {func.__name__}")
                try:
                    result = await func(*args, **kwargs)
                    logger.info(f"Completed {func.__name__}")
                    return result
                except Exception as e:
                    logger.error(f"Error in {func.__name__}: {str(e)}")
                    raise
            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            logger.info(f"Calling {func.__name__}")
            try:
                result = func(*args, **kwargs)
                logger.info(f"Completed {func.__name__}")
                return result
            except Exception as e:
                logger.error(f"Error in {func.__name__}: {str(e)}")
                raise
        return wrapper
    return decorator
