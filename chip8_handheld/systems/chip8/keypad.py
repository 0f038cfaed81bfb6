"""
Host key sources.

The interpreter reads an 18-slot pressed vector: slots 0-15 are the CHIP-8
hex keys, slot 16 asks for a silent exit and slot 17 for save-and-exit.
Mapping physical keys onto the vector is the host's job.
"""

import json
import logging
import os
import threading
import time
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

import yaml

from ...common.interfaces import KeySource
from ...constants import NUM_KEYS, KEY_EXIT, KEY_SAVE_EXIT, KEY_VECTOR_SIZE

logger = logging.getLogger("Chip8Handheld.Keypad")

# Calculator keyboard rows and the CHIP-8 key each maps to. The arrow keys
# alias the 5/7/8/9 directional cluster; ESC and APPS raise the meta slots.
CALCULATOR_KEY_LAYOUT = {
    "rows": (
        ("7", "8", "9", "×"),
        ("4", "5", "6", "-"),
        ("1", "2", "3", "+"),
        ("0", ".", "(-)", "ENTER"),
    ),
    "mapping": {
        "1": 0x1, "2": 0x2, "3": 0x3, "+": 0xC,
        "4": 0x4, "5": 0x5, "6": 0x6, "-": 0xD,
        "7": 0x7, "8": 0x8, "9": 0x9, "×": 0xE,
        "0": 0xA, ".": 0x0, "(-)": 0xB, "ENTER": 0xF,
        "UP": 0x5, "LEFT": 0x7, "DOWN": 0x8, "RIGHT": 0x9,
        "ESC": KEY_EXIT, "APPS": KEY_SAVE_EXIT,
    },
}

KEY_NAMES = {
    "exit": KEY_EXIT,
    "save": KEY_SAVE_EXIT,
}


def parse_key(key: Union[int, str]) -> int:
    """
    Convert a key-script entry to a vector slot.

    Args:
        key: Slot number, hex digit string, or one of ``exit`` / ``save``

    Returns:
        Slot index in the 18-slot vector
    """
    if isinstance(key, bool):
        raise ValueError(f"Invalid key: {key!r}")
    if isinstance(key, int):
        slot = key
    else:
        name = str(key).strip().lower()
        if name in KEY_NAMES:
            return KEY_NAMES[name]
        try:
            slot = int(name, 16)
        except ValueError:
            raise ValueError(f"Invalid key: {key!r}")

    if not 0 <= slot < NUM_KEYS:
        raise ValueError(f"Key out of range: {key!r}")
    return slot


class IdleKeypad(KeySource):
    """A keypad on which nothing is ever pressed."""

    def read_keys(self) -> Sequence[bool]:
        return (False,) * KEY_VECTOR_SIZE


class KeyboardState(KeySource):
    """Thread-safe key vector set by an interactive host."""

    def __init__(self):
        self._lock = threading.Lock()
        self._keys = [False] * KEY_VECTOR_SIZE

    def press(self, slot: int) -> None:
        with self._lock:
            self._keys[slot] = True

    def release(self, slot: int) -> None:
        with self._lock:
            self._keys[slot] = False

    def release_all(self) -> None:
        with self._lock:
            self._keys = [False] * KEY_VECTOR_SIZE

    def read_keys(self) -> Sequence[bool]:
        with self._lock:
            return tuple(self._keys)


class ScriptedKeypad(KeySource):
    """
    Replays a key script against wall-clock time.

    A script is a list of steps, each holding a set of keys for a number of
    frames. The current step is derived from the elapsed time, so polling
    the keypad more or less often never changes what it reports. After the
    last step the keypad either holds the final key vector or, with
    ``exit_when_done``, raises the exit slot.
    """

    def __init__(self, steps: Iterable[Dict], frame_rate: float = 60.0,
                 exit_when_done: bool = True,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the scripted keypad.

        Args:
            steps: Sequence of ``{"keys": [...], "frames": n}`` mappings
            frame_rate: Script frames per second
            exit_when_done: Raise the exit slot once the script is exhausted
            clock: Monotonic time source in seconds
        """
        if frame_rate <= 0:
            raise ValueError(f"Frame rate must be positive, got {frame_rate}")

        self.frame_rate = frame_rate
        self.exit_when_done = exit_when_done
        self.clock = clock

        # (last frame exclusive, vector) for each step
        self._timeline: List[tuple] = []
        end = 0
        for step in steps:
            frames = int(step.get("frames", 1))
            if frames < 0:
                raise ValueError(f"Step frame count must not be negative, got {frames}")
            vector = [False] * KEY_VECTOR_SIZE
            for key in step.get("keys", []) or []:
                vector[parse_key(key)] = True
            end += frames
            self._timeline.append((end, tuple(vector)))

        self.total_frames = end
        self._final = self._timeline[-1][1] if self._timeline else (False,) * KEY_VECTOR_SIZE
        done = [False] * KEY_VECTOR_SIZE
        done[KEY_EXIT] = exit_when_done
        self._done = tuple(done)
        self._start: Optional[float] = None

    @classmethod
    def from_file(cls, path: str, frame_rate: Optional[float] = None,
                  exit_when_done: Optional[bool] = None) -> 'ScriptedKeypad':
        """
        Load a key script from a YAML or JSON file.

        The file holds either a list of steps or a mapping with a ``steps``
        list and optional ``frame_rate`` / ``exit_when_done`` entries.
        Explicit arguments override the file's values.
        """
        _, ext = os.path.splitext(path)
        with open(path, 'r') as f:
            if ext.lower() in ('.yaml', '.yml'):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)

        if isinstance(data, list):
            data = {"steps": data}
        if not isinstance(data, dict) or not isinstance(data.get("steps"), list):
            raise ValueError(f"Key script {path} has no list of steps")

        if frame_rate is None:
            frame_rate = data.get("frame_rate", 60.0)
        if exit_when_done is None:
            exit_when_done = data.get("exit_when_done", True)

        logger.info(f"Loaded key script with {len(data['steps'])} steps from {path}")
        return cls(data["steps"], frame_rate, exit_when_done)

    def start(self) -> None:
        """Restart the script from its first frame."""
        self._start = self.clock()

    def current_frame(self) -> int:
        if self._start is None:
            self.start()
        return int((self.clock() - self._start) * self.frame_rate)

    def read_keys(self) -> Sequence[bool]:
        frame = self.current_frame()
        for end, vector in self._timeline:
            if frame < end:
                return vector
        return self._done if self.exit_when_done else self._final
