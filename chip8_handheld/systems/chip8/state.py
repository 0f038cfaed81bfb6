"""
CHIP-8 machine state.

The machine state is the unit of execution and persistence: memory,
registers, stack, timers, the random generator seed, display mode flags and
a compact snapshot of the canvas. The two timer bytes live behind a small
shared handle so the timer interrupt never sees the rest of the state.
"""

import logging
import random
import threading
from typing import List, Optional, Tuple

from ...common.errors import StackOverflowError, StackUnderflowError
from ...constants import (VERSION, MEMORY_SIZE, PROGRAM_START, NUM_REGISTERS,
                          STACK_CAPACITY, FONT_SPRITES, DISPLAY_SNAPSHOT_SIZE,
                          PLANE_LIGHT)

logger = logging.getLogger("Chip8Handheld.State")


class Stack:
    """
    Fixed-capacity return-address stack.

    Pushing onto a full stack and popping an empty one are distinct errors;
    neither modifies the stack.
    """

    def __init__(self, capacity: int = STACK_CAPACITY):
        self.capacity = capacity
        self.entries = [0] * capacity
        self.count = 0

    def push(self, address: int) -> None:
        if self.count == self.capacity:
            raise StackOverflowError(f"return stack full ({self.capacity} entries)")
        self.entries[self.count] = address & 0xFFFF
        self.count += 1

    def pop(self) -> int:
        if self.count == 0:
            raise StackUnderflowError("return with an empty stack")
        self.count -= 1
        return self.entries[self.count]

    def top(self) -> Optional[int]:
        return self.entries[self.count - 1] if self.count else None

    def __len__(self):
        return self.count

    def copy(self) -> 'Stack':
        other = Stack(self.capacity)
        other.entries = list(self.entries)
        other.count = self.count
        return other


class TimerRegisters:
    """
    Shared handle for the delay and sound timers.

    Both the interpreter and the timer interrupt hold this object. Every
    access is a single-byte read or read-modify-write under the lock, so no
    caller may assume two consecutive reads agree.
    """

    def __init__(self, delay: int = 0, sound: int = 0):
        self._lock = threading.Lock()
        self._delay = delay & 0xFF
        self._sound = sound & 0xFF

    @property
    def delay(self) -> int:
        return self._delay

    @delay.setter
    def delay(self, value: int) -> None:
        with self._lock:
            self._delay = value & 0xFF

    @property
    def sound(self) -> int:
        return self._sound

    @sound.setter
    def sound(self, value: int) -> None:
        with self._lock:
            self._sound = value & 0xFF

    def decrement(self) -> Tuple[int, int]:
        """Count both timers down by one tick and return (delay, sound)."""
        with self._lock:
            if self._delay > 0:
                self._delay -= 1
            if self._sound > 0:
                self._sound -= 1
            return self._delay, self._sound


class RandomGenerator:
    """
    Linear congruential generator with a persistable 32-bit seed.

    Saving the seed lets a save-state replay the same random sequence from
    the point it was taken.
    """

    MULTIPLIER = 1103515245
    INCREMENT = 12345

    def __init__(self, seed: Optional[int] = None):
        if seed is None:
            seed = random.getrandbits(32)
        self.seed = seed & 0xFFFFFFFF

    def next(self) -> int:
        """Advance the generator and return a 15-bit value."""
        self.seed = (self.seed * self.MULTIPLIER + self.INCREMENT) & 0xFFFFFFFF
        return (self.seed >> 16) & 0x7FFF

    def reseed(self, seed: int) -> None:
        self.seed = seed & 0xFFFFFFFF


class MachineState:
    """
    Complete CHIP-8 machine state.

    Memory and the register files are bytearrays; every write site masks to
    the field width itself.
    """

    def __init__(self):
        self.version = VERSION
        self.stack = Stack()
        self.rng = RandomGenerator(0)
        self.active_planes = PLANE_LIGHT
        self.pc = PROGRAM_START
        self.I = 0
        self.registers = bytearray(NUM_REGISTERS)
        self.timers = TimerRegisters()
        self.memory = bytearray(MEMORY_SIZE)
        self.display = bytearray(DISPLAY_SNAPSHOT_SIZE)
        self.hires = False
        self.loaded_from_save = False
        self.rpl_shadow = bytearray(NUM_REGISTERS)

    @classmethod
    def fresh(cls, seed: Optional[int] = None) -> 'MachineState':
        """Create a power-on state: fonts installed, registers zeroed, new seed."""
        state = cls()
        state.memory[:len(FONT_SPRITES)] = FONT_SPRITES
        state.rng = RandomGenerator(seed)
        return state

    # Timer bytes are owned by the shared handle.
    @property
    def delay_timer(self) -> int:
        return self.timers.delay

    @delay_timer.setter
    def delay_timer(self, value: int) -> None:
        self.timers.delay = value

    @property
    def sound_timer(self) -> int:
        return self.timers.sound

    @sound_timer.setter
    def sound_timer(self, value: int) -> None:
        self.timers.sound = value

    @property
    def random_seed(self) -> int:
        return self.rng.seed

    def load_program(self, program: bytes) -> None:
        self.memory[PROGRAM_START:PROGRAM_START + len(program)] = program

    def stack_entries(self) -> List[int]:
        return self.stack.entries[:self.stack.count]

    def get_state(self) -> dict:
        return {
            "version": ".".join(str(v) for v in self.version),
            "pc": self.pc,
            "I": self.I,
            "registers": list(self.registers),
            "stack": self.stack_entries(),
            "delay_timer": self.delay_timer,
            "sound_timer": self.sound_timer,
            "hires": self.hires,
            "active_planes": self.active_planes,
            "random_seed": self.random_seed,
            "loaded_from_save": self.loaded_from_save,
        }
