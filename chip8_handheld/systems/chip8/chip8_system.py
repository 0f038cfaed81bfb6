"""
CHIP-8 session: one loaded program running on one host model.
"""

import logging
from typing import Optional

from ...common.errors import ErrorCode, InvalidArgumentError, Outcome, RomLoadError
from ...common.interfaces import KeySource, System
from ...constants import KEY_EXIT, KEY_SAVE_EXIT, TIMER_FREQUENCY
from ...system_configs import BUFFER_WIDTH, BUFFER_HEIGHT
from . import codec
from .cpu import Chip8Interpreter
from .display import GrayscaleCompositor
from .keypad import IdleKeypad, ScriptedKeypad
from .state import MachineState
from .timers import TimerSubsystem

logger = logging.getLogger("Chip8Handheld.System")


class Chip8System(System):
    """
    Orchestrates loading, running and saving a CHIP-8 program.

    The configuration is a host model entry from ``SYSTEM_CONFIGS``,
    optionally extended with ``timer_frequency``, ``max_steps`` and
    ``save_on_limit``.
    """

    def __init__(self, config: dict, keypad: Optional[KeySource] = None):
        self.config = config
        self.keypad = keypad or IdleKeypad()

        self.compositor = GrayscaleCompositor(
            canvas_origin=config.get("canvas_origin", (16, 16)),
            buffer_width=config.get("buffer_width", BUFFER_WIDTH),
            buffer_height=config.get("buffer_height", BUFFER_HEIGHT),
        )

        self.state: Optional[MachineState] = None
        self.cpu: Optional[Chip8Interpreter] = None
        self.timers: Optional[TimerSubsystem] = None
        self.last_outcome: Optional[Outcome] = None

    def load(self, blob: bytes) -> None:
        """Load a ROM or save package from memory."""
        self.state = codec.load_package(blob)
        self.cpu = Chip8Interpreter(self.state, self.compositor, self.keypad)
        self.last_outcome = None

    def load_file(self, path: str) -> None:
        try:
            with open(path, 'rb') as f:
                blob = f.read()
        except OSError as e:
            raise RomLoadError(f"cannot read {path}: {e.strerror}") from e
        self.load(blob)
        logger.info(f"Loaded {path}")

    def run(self, max_steps: Optional[int] = None, save_on_limit: Optional[bool] = None) -> Outcome:
        """
        Run the loaded program until it exits or fails.

        A second call continues where the previous one stopped. The timer
        interrupt runs for exactly the duration of the call, and is
        stopped even when the run fails.

        Args:
            max_steps: Host-level instruction limit (None for unlimited)
            save_on_limit: When the limit is hit, exit with save instead of silently

        Returns:
            The terminating outcome
        """
        if self.state is None:
            raise InvalidArgumentError("no program loaded")

        if max_steps is None:
            max_steps = self.config.get("max_steps")
        if save_on_limit is None:
            save_on_limit = self.config.get("save_on_limit", False)

        state = self.state
        cpu = self.cpu
        keypad = self.keypad
        start_steps = cpu.steps

        def limit_reached() -> bool:
            return max_steps is not None and cpu.steps - start_steps >= max_steps

        def should_exit() -> bool:
            return keypad.read_keys()[KEY_EXIT] or (limit_reached() and not save_on_limit)

        def should_save_and_exit() -> bool:
            return keypad.read_keys()[KEY_SAVE_EXIT] or (limit_reached() and save_on_limit)

        # A fresh load starts from a blank screen; later runs resume on it
        if self.last_outcome is None:
            self.compositor.clear_buffer()
            if state.loaded_from_save:
                self.compositor.restore_window(state.display)

        if isinstance(keypad, ScriptedKeypad):
            keypad.start()

        self.timers = TimerSubsystem(state.timers, self.compositor,
                                     self.config.get("timer_frequency", TIMER_FREQUENCY))

        logger.info(f"Starting at pc={state.pc:03X} on {self.config.get('name', 'unknown model')}")
        self.timers.start()
        try:
            outcome = cpu.run(should_exit, should_save_and_exit)
        finally:
            self.timers.stop()

        if outcome.code is ErrorCode.EXIT_AND_SAVE:
            self.compositor.save_window(state.display)

        logger.info(f"Run ended with {outcome.code.name} after {cpu.steps - start_steps} instructions")
        self.last_outcome = outcome
        return outcome

    def save(self) -> bytes:
        """Serialize the current machine state into a save package."""
        if self.state is None:
            raise InvalidArgumentError("no program loaded")
        # Before the first run the canvas still lives only in the loaded snapshot
        if self.last_outcome is not None:
            self.compositor.save_window(self.state.display)
        return codec.save(self.state)

    def save_to_file(self, path: str) -> None:
        data = self.save()
        with open(path, 'wb') as f:
            f.write(data)
        logger.info(f"Saved state to {path} ({len(data)} bytes)")

    def get_system_state(self) -> dict:
        """Get the current state of the session."""
        if self.state is None:
            return {"loaded": False, "display_state": self.compositor.get_state()}

        state = self.state
        return {
            "loaded": True,
            "pc": state.pc,
            "I": state.I,
            "registers": list(state.registers),
            "delay_timer": state.delay_timer,
            "sound_timer": state.sound_timer,
            "stack_depth": len(state.stack),
            "hires": state.hires,
            "active_planes": state.active_planes,
            "steps": self.cpu.steps,
            "timer_ticks": self.timers.tick_count if self.timers else 0,
            "last_outcome": self.last_outcome.code.name if self.last_outcome else None,
            "display_state": self.compositor.get_state(),
        }
