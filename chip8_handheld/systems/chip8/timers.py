"""
Fixed-rate timer subsystem.

A periodic callback, independent of how fast the interpreter executes,
counts the delay and sound timers down at ~60 Hz. Audio is not synthesized:
while the sound timer runs, the physical screen is inverted around the
CHIP-8 canvas, whose content is saved and restored on top so it is never
lost.
"""

import logging
import threading
import time
from typing import Optional

from ...constants import TIMER_FREQUENCY, DISPLAY_SNAPSHOT_SIZE
from .display import GrayscaleCompositor
from .state import TimerRegisters

logger = logging.getLogger("Chip8Handheld.Timers")


class TimerSubsystem:
    """
    Emulates the calculator's programmable-rate timer interrupt.

    The subsystem only sees the shared timer handle and the compositor, never
    the rest of the machine state. ``tick`` is the interrupt body and can be
    driven directly; ``start``/``stop`` run it on a background thread.
    """

    def __init__(self, timers: TimerRegisters, compositor: GrayscaleCompositor,
                 frequency: float = TIMER_FREQUENCY):
        """
        Initialize the timer subsystem.

        Args:
            timers: Shared delay/sound timer handle
            compositor: Display compositor used for the sound flash
            frequency: Tick rate in Hz
        """
        if frequency <= 0:
            raise ValueError(f"Timer frequency must be positive, got {frequency}")

        self.timers = timers
        self.compositor = compositor
        self.period = 1.0 / frequency

        # Interrupt-local state
        self._flashing = False
        self._scratch = bytearray(DISPLAY_SNAPSHOT_SIZE)
        self.tick_count = 0

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def is_flashing(self) -> bool:
        return self._flashing

    def tick(self) -> None:
        """Decrement both timers and update the sound flash."""
        _, sound = self.timers.decrement()
        self.tick_count += 1

        if sound and not self._flashing:
            self._flash()
            self._flashing = True
        elif not sound and self._flashing:
            self._flash()
            self._flashing = False

    def _flash(self) -> None:
        # Invert everything, then put the canvas back on top.
        with self.compositor.lock:
            self.compositor.save_window(self._scratch)
            self.compositor.invert_buffer()
            self.compositor.restore_window(self._scratch)

    def start(self) -> None:
        """Start ticking on a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="chip8-timer", daemon=True)
        self._thread.start()
        logger.info(f"Timer interrupt started at {1.0 / self.period:.1f} Hz")

    def stop(self) -> None:
        """Stop the background thread and undo a pending flash."""
        if self._thread is not None:
            self._stop_event.set()
            self._thread.join()
            self._thread = None
            logger.info(f"Timer interrupt stopped after {self.tick_count} ticks")

        if self._flashing:
            self._flash()
            self._flashing = False

    def _run(self) -> None:
        deadline = time.monotonic() + self.period
        while not self._stop_event.wait(max(0.0, deadline - time.monotonic())):
            self.tick()
            deadline += self.period
            # Skip missed ticks rather than bursting to catch up
            now = time.monotonic()
            if deadline < now:
                deadline = now + self.period

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False
