"""
Common functionality shared across the interpreter components.
"""
from .interfaces import CPU, VideoProcessor, KeySource, System
from .errors import (ErrorCode, Outcome, OutcomeKind, Chip8Error,
                     InvalidArgumentError, RomLoadError, VersionError,
                     StackOverflowError, StackUnderflowError, OutOfMemoryError,
                     InvalidOpcodeError, InvalidAddressError)
from .visualizer import ScreenVisualizer
