"""
Logging, error reporting and configuration utilities.
"""
from .error_handler import (ErrorHandler, ErrorCategory, error_handler,
                            error_boundary, configure_logging, get_error_message)
from .config_manager import ConfigManager
