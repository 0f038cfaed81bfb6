"""
Error taxonomy for the CHIP-8 interpreter.

Control-flow signals (silent exit, exit-and-save) are not failures: they end
a run cleanly and tell the orchestrator whether to save. Structural failures
abort the run immediately. Load failures affect only the load attempt.
"""

from enum import Enum, IntEnum, auto
from typing import Optional


class ErrorCode(IntEnum):
    """Status codes surfaced to the host, in their on-device order."""
    OK = 0
    EXIT_AND_SAVE = auto()
    SILENT_EXIT = auto()
    INVALID_ARGUMENT = auto()
    ROM_LOAD_ERROR = auto()
    VERSION_ERROR = auto()
    STACK_OVERFLOW = auto()
    STACK_UNDERFLOW = auto()
    OUT_OF_MEMORY = auto()
    INVALID_OPCODE = auto()
    INVALID_ADDRESS = auto()
    UNKNOWN_ERROR = auto()


class Chip8Error(Exception):
    """Base class for interpreter and codec failures."""

    code = ErrorCode.UNKNOWN_ERROR

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.code.name.replace("_", " ").lower())


class InvalidArgumentError(Chip8Error):
    code = ErrorCode.INVALID_ARGUMENT


class RomLoadError(Chip8Error):
    code = ErrorCode.ROM_LOAD_ERROR


class VersionError(Chip8Error):
    code = ErrorCode.VERSION_ERROR


class StackOverflowError(Chip8Error):
    code = ErrorCode.STACK_OVERFLOW


class StackUnderflowError(Chip8Error):
    code = ErrorCode.STACK_UNDERFLOW


class OutOfMemoryError(Chip8Error):
    code = ErrorCode.OUT_OF_MEMORY


class InvalidOpcodeError(Chip8Error):
    code = ErrorCode.INVALID_OPCODE


class InvalidAddressError(Chip8Error):
    code = ErrorCode.INVALID_ADDRESS


class OutcomeKind(Enum):
    """Variants of the run-loop result."""
    OK = auto()
    EXIT = auto()
    FAIL = auto()


class Outcome:
    """
    Tagged result of an interpreter step or run.

    ``OK`` carries ``ErrorCode.OK``; ``EXIT`` carries ``SILENT_EXIT`` or
    ``EXIT_AND_SAVE``; ``FAIL`` carries any failure code.
    """

    __slots__ = ("kind", "code", "message")

    def __init__(self, kind: OutcomeKind, code: ErrorCode, message: Optional[str] = None):
        self.kind = kind
        self.code = code
        self.message = message

    @classmethod
    def ok(cls) -> 'Outcome':
        return _OK

    @classmethod
    def exit(cls, code: ErrorCode) -> 'Outcome':
        if code not in (ErrorCode.SILENT_EXIT, ErrorCode.EXIT_AND_SAVE):
            raise ValueError(f"Not an exit code: {code.name}")
        return cls(OutcomeKind.EXIT, code)

    @classmethod
    def fail(cls, code: ErrorCode, message: Optional[str] = None) -> 'Outcome':
        if code in (ErrorCode.OK, ErrorCode.SILENT_EXIT, ErrorCode.EXIT_AND_SAVE):
            raise ValueError(f"Not a failure code: {code.name}")
        return cls(OutcomeKind.FAIL, code, message)

    @classmethod
    def from_error(cls, error: Chip8Error) -> 'Outcome':
        return cls.fail(error.code, str(error))

    @property
    def is_ok(self) -> bool:
        return self.kind is OutcomeKind.OK

    @property
    def is_failure(self) -> bool:
        return self.kind is OutcomeKind.FAIL

    @property
    def wants_save(self) -> bool:
        return self.code is ErrorCode.EXIT_AND_SAVE

    def __eq__(self, other):
        if not isinstance(other, Outcome):
            return NotImplemented
        return self.kind is other.kind and self.code is other.code

    def __hash__(self):
        return hash((self.kind, self.code))

    def __repr__(self):
        return f"Outcome({self.kind.name}, {self.code.name})"


_OK = Outcome(OutcomeKind.OK, ErrorCode.OK)
