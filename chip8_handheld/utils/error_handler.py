"""
Error handling and logging utilities for the CHIP-8 interpreter.

This module configures the ``Chip8Handheld`` logger hierarchy, maps run
outcomes and exceptions onto the status-line messages shown to the user,
and keeps a bounded history of reported failures.
"""

import datetime
import json
import logging
import os
import sys
import threading
import traceback
from enum import Enum, auto
from functools import wraps
from typing import Any, Dict, List, Optional, Union

from ..common.errors import Chip8Error, ErrorCode, Outcome
from ..constants import ERROR_MESSAGES

# Configure base logger
logger = logging.getLogger("Chip8Handheld")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class ErrorCategory(Enum):
    """Categories of errors."""
    LOAD = auto()
    EXECUTION = auto()
    SAVE = auto()
    CONFIGURATION = auto()
    HOST = auto()
    UNKNOWN = auto()


CODE_CATEGORIES = {
    ErrorCode.INVALID_ARGUMENT: ErrorCategory.HOST,
    ErrorCode.ROM_LOAD_ERROR: ErrorCategory.LOAD,
    ErrorCode.VERSION_ERROR: ErrorCategory.LOAD,
    ErrorCode.STACK_OVERFLOW: ErrorCategory.EXECUTION,
    ErrorCode.STACK_UNDERFLOW: ErrorCategory.EXECUTION,
    ErrorCode.OUT_OF_MEMORY: ErrorCategory.SAVE,
    ErrorCode.INVALID_OPCODE: ErrorCategory.EXECUTION,
    ErrorCode.INVALID_ADDRESS: ErrorCategory.EXECUTION,
    ErrorCode.UNKNOWN_ERROR: ErrorCategory.UNKNOWN,
}


def configure_logging(level: Union[int, str] = logging.INFO,
                      log_file: Optional[str] = None,
                      console: bool = True,
                      file_level: int = logging.DEBUG) -> logging.Logger:
    """
    Configure the ``Chip8Handheld`` logger.

    Args:
        level: Console logging level (name or number)
        log_file: Path to log file (None for no file logging)
        console: Whether to log to stdout
        file_level: Logging level for file output

    Returns:
        The configured base logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    # Reset handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(min(level, file_level) if log_file else level)
    formatter = logging.Formatter(LOG_FORMAT)

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        # Ensure directory exists
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(file_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


def get_error_message(code: ErrorCode) -> str:
    """Status-line text for an error code ("Done", "Error: stack overflow", ...)."""
    return ERROR_MESSAGES[int(code)]


def code_for_exception(exception: BaseException) -> ErrorCode:
    if isinstance(exception, Chip8Error):
        return exception.code
    if isinstance(exception, MemoryError):
        return ErrorCode.OUT_OF_MEMORY
    return ErrorCode.UNKNOWN_ERROR


class ErrorHandler:
    """
    Centralized failure reporting for the interpreter host.

    Failures are logged, translated to their status-line message and kept
    in a bounded, thread-safe history. Clean exits are logged but not
    recorded.
    """

    def __init__(self, max_error_history: int = 100):
        """
        Initialize the error handler.

        Args:
            max_error_history: Maximum number of errors to keep in history
        """
        self.max_error_history = max_error_history

        # Error history
        self.error_history: List[Dict[str, Any]] = []
        self.error_history_lock = threading.Lock()

    def report(self, result: Union[Outcome, BaseException],
               category: Optional[ErrorCategory] = None,
               context: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """
        Report a run outcome or an exception.

        Args:
            result: Terminating outcome, or a raised exception
            category: Error category (derived from the error code when None)
            context: Additional context

        Returns:
            Error information dictionary, or None for non-failures
        """
        if isinstance(result, Outcome):
            if not result.is_failure:
                logger.info(f"Run ended: {result.code.name}")
                return None
            code = result.code
            detail = result.message
            exception = None
        else:
            code = code_for_exception(result)
            detail = str(result)
            exception = result

        category = category or CODE_CATEGORIES.get(code, ErrorCategory.UNKNOWN)
        message = get_error_message(code)

        error_info = {
            "timestamp": datetime.datetime.now().isoformat(),
            "code": code.name,
            "category": category.name,
            "message": message,
            "detail": detail,
            "exception_type": exception.__class__.__name__ if exception else None,
            "traceback": "".join(traceback.format_exception(
                type(exception), exception, exception.__traceback__)) if exception else None,
            "context": context or {},
        }

        # Log error
        logger.error(f"{message} ({category.name}): {detail}" if detail else f"{message} ({category.name})")
        if exception is not None and not isinstance(exception, Chip8Error):
            logger.debug(f"Traceback: {error_info['traceback']}")

        # Add to history
        with self.error_history_lock:
            self.error_history.append(error_info)

            # Trim history if needed
            if len(self.error_history) > self.max_error_history:
                self.error_history = self.error_history[-self.max_error_history:]

        return error_info

    def clear_error_history(self) -> None:
        """Clear the error history."""
        with self.error_history_lock:
            self.error_history = []
        logger.debug("Cleared error history")

    def get_error_history(self,
                          category: Optional[ErrorCategory] = None,
                          max_errors: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Get error history, optionally filtered.

        Args:
            category: Filter by error category
            max_errors: Maximum number of errors to return

        Returns:
            List of error dictionaries
        """
        with self.error_history_lock:
            errors = self.error_history.copy()

        if category:
            errors = [e for e in errors if e["category"] == category.name]

        if max_errors and max_errors < len(errors):
            errors = errors[-max_errors:]

        return errors

    def get_error_summary(self) -> Dict[str, Any]:
        """
        Get a summary of errors by code and category.

        Returns:
            Dictionary with error summary
        """
        with self.error_history_lock:
            errors = self.error_history.copy()

        codes = {}
        categories = {}
        for e in errors:
            codes[e["code"]] = codes.get(e["code"], 0) + 1
            categories[e["category"]] = categories.get(e["category"], 0) + 1

        return {
            "total": len(errors),
            "by_code": codes,
            "by_category": categories,
            "latest": errors[-1] if errors else None
        }

    def export_error_report(self, filename: str) -> None:
        """
        Export error history to a JSON file.

        Args:
            filename: Output filename
        """
        directory = os.path.dirname(filename)
        if directory:
            os.makedirs(directory, exist_ok=True)

        report = {
            "timestamp": datetime.datetime.now().isoformat(),
            "summary": self.get_error_summary(),
            "errors": self.get_error_history()
        }

        with open(filename, 'w') as f:
            json.dump(report, f, indent=2)

        logger.info(f"Exported error report to {filename}")


# Global error handler instance
error_handler = ErrorHandler()


def error_boundary(category: ErrorCategory = ErrorCategory.HOST, reraise: bool = False):
    """
    Decorator turning exceptions raised by a host operation into outcomes.

    The wrapped function returns an Outcome. Any exception it raises is
    reported to the global error handler and converted to a failure
    outcome carrying the matching error code, unless ``reraise`` is set.

    Args:
        category: Error category for exceptions without a specific code
        reraise: Re-raise after reporting

    Returns:
        Decorator function
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                code = code_for_exception(e)
                error_handler.report(
                    e,
                    category=CODE_CATEGORIES.get(code) if code is not ErrorCode.UNKNOWN_ERROR else category,
                    context={"function": func.__name__, "module": func.__module__}
                )
                if reraise:
                    raise
                return Outcome.fail(code, str(e))

        return wrapper
    return decorator
