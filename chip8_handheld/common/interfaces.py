# common/interfaces.py
from abc import ABC, abstractmethod
import typing as t

from .errors import Outcome


class CPU(ABC):
    @abstractmethod
    def step(self) -> Outcome:
        """Execute one instruction and return its outcome."""
        pass

    @abstractmethod
    def get_state(self) -> dict:
        """Return the current CPU state as a dictionary."""
        pass


class VideoProcessor(ABC):
    @abstractmethod
    def draw(self, planes: int, bits, x: int, y: int) -> bool:
        """XOR a bit matrix onto the canvas. Return True on collision."""
        pass

    @abstractmethod
    def clear(self, planes: int) -> None:
        """Clear the canvas on the selected planes."""
        pass

    @abstractmethod
    def save_window(self, dest: t.Optional[bytearray] = None) -> bytearray:
        """Copy the logical canvas of both planes into a buffer."""
        pass

    @abstractmethod
    def restore_window(self, src: t.Union[bytes, bytearray]) -> None:
        """Copy a buffer produced by save_window back onto the canvas."""
        pass

    @abstractmethod
    def get_frame_buffer(self) -> bytes:
        """Get the packed physical frame buffer of both planes."""
        pass


class KeySource(ABC):
    @abstractmethod
    def read_keys(self) -> t.Sequence[bool]:
        """Return the 18-slot pressed vector (keys 0-F, exit, save-and-exit)."""
        pass


class System(ABC):
    @abstractmethod
    def __init__(self, config: dict):
        """Initialize the system with configuration."""
        pass

    @abstractmethod
    def load_file(self, path: str) -> None:
        """Load a ROM or save-state file."""
        pass

    @abstractmethod
    def run(self) -> Outcome:
        """Run the loaded program until it exits or fails."""
        pass

    @abstractmethod
    def get_system_state(self) -> dict:
        """Get complete system state."""
        pass
