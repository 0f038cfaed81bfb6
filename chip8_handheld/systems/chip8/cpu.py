"""
CHIP-8 interpreter core.

Executes CHIP-8, SCHIP and a subset of XO-CHIP instructions over a
MachineState. Instructions are big-endian 16-bit words; the program counter
is advanced before dispatch so jumps and calls are not disturbed by the
post-fetch increment. Dispatch is two-level: the top nibble selects a
family, and families 0, 5, 8, E and F decode the remaining bits again.

Notable behaviours:

- 8xy6/8xyE shift Vy into Vx (original COSMAC/Octo semantics).
- Fx55/Fx65 advance I by x + 1; 5xy2/5xy3 leave I alone.
- Key tests treat key values of 16 or more as never pressed.
- Fx0A blocks until a key is released, or until a meta-exit key ends the run.
"""

import logging
from typing import Callable, Optional

from ...common.errors import (ErrorCode, Outcome, Chip8Error, InvalidOpcodeError,
                              InvalidAddressError)
from ...common.interfaces import CPU, KeySource
from ...constants import (MAX_FETCH_ADDRESS, ADDRESS_MASK, MEMORY_SIZE,
                          FLAG_REGISTER, NUM_KEYS, KEY_EXIT, KEY_SAVE_EXIT,
                          LORES_FONT_OFFSET, HIRES_FONT_OFFSET, PLANE_BOTH)
from .display import GrayscaleCompositor
from .state import MachineState

logger = logging.getLogger("Chip8Handheld.CPU")

SILENT_EXIT = Outcome.exit(ErrorCode.SILENT_EXIT)
EXIT_AND_SAVE = Outcome.exit(ErrorCode.EXIT_AND_SAVE)


def _x(op: int) -> int:
    return (op >> 8) & 0xF


def _y(op: int) -> int:
    return (op >> 4) & 0xF


def _n(op: int) -> int:
    return op & 0xF


class Chip8Interpreter(CPU):
    """
    Instruction decoder and executor.

    The interpreter owns no display or input of its own: it draws through a
    compositor and reads the host key vector through a KeySource. Timer
    bytes are read through the state's shared timer handle, which the timer
    interrupt may change between any two instructions.
    """

    def __init__(self, state: MachineState, compositor: GrayscaleCompositor, keypad: KeySource):
        self.state = state
        self.compositor = compositor
        self.keypad = keypad
        self.steps = 0

        self._trace = logger.isEnabledFor(logging.DEBUG)
        self._build_instruction_table()

    def _build_instruction_table(self):
        """Build the two-level dispatch tables."""
        # Top nibble -> family handler
        self.families = {
            0x0: self._dispatch_0,
            0x1: self._jump,
            0x2: self._call,
            0x3: self._skip_eq_imm,
            0x4: self._skip_ne_imm,
            0x5: self._dispatch_5,
            0x6: self._set_imm,
            0x7: self._add_imm,
            0x8: self._dispatch_8,
            0x9: self._skip_ne_reg,
            0xA: self._set_index,
            0xB: self._jump_v0,
            0xC: self._random,
            0xD: self._draw,
            0xE: self._dispatch_e,
            0xF: self._dispatch_f,
        }

        # 00xx, keyed by the low byte (00Cn/00Dn handled by nibble)
        self.system_ops = {
            0xE0: self._clear,
            0xEE: self._return,
            0xFB: self._scroll_right,
            0xFC: self._scroll_left,
            0xFD: self._exit,
            0xFE: self._lores,
            0xFF: self._hires,
        }

        # 5xyN, keyed by N
        self.register_ops = {
            0x0: self._skip_eq_reg,
            0x2: self._save_range,
            0x3: self._load_range,
        }

        # 8xyN, keyed by N
        self.alu_ops = {
            0x0: self._mov,
            0x1: self._or,
            0x2: self._and,
            0x3: self._xor,
            0x4: self._add,
            0x5: self._sub,
            0x6: self._shr,
            0x7: self._subn,
            0xE: self._shl,
        }

        # ExNN, keyed by NN
        self.key_ops = {
            0x9E: self._skip_key_pressed,
            0xA1: self._skip_key_released,
        }

        # FxNN, keyed by NN
        self.misc_ops = {
            0x01: self._select_planes,
            0x02: self._audio_pattern,
            0x07: self._read_delay,
            0x0A: self._wait_key,
            0x15: self._set_delay,
            0x18: self._set_sound,
            0x1E: self._add_index,
            0x29: self._font_lores,
            0x30: self._font_hires,
            0x33: self._bcd,
            0x3A: self._pitch,
            0x55: self._store_registers,
            0x65: self._load_registers,
            0x75: self._rpl_store,
            0x85: self._rpl_load,
        }

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def step(self) -> Outcome:
        """
        Fetch, decode and execute one instruction.

        Returns:
            Outcome.ok() to continue, an exit outcome for control-flow exits,
            or a failure outcome
        """
        state = self.state
        pc = state.pc
        try:
            op = self._fetch(pc)
        except InvalidAddressError as e:
            logger.debug(f"Fetch failed: {e}")
            return Outcome.from_error(e)
        state.pc = pc + 2
        self.steps += 1

        if self._trace:
            logger.debug(f"{pc:03X}: {op:04X}")

        try:
            result = self.families[op >> 12](op)
        except Chip8Error as e:
            logger.debug(f"{pc:03X}: {op:04X} failed: {e}")
            return Outcome.from_error(e)
        except Exception as e:
            logger.exception(f"Unexpected error executing {op:04X} at {pc:03X}")
            return Outcome.fail(ErrorCode.UNKNOWN_ERROR, str(e))

        return result or Outcome.ok()

    def run(self, should_exit: Optional[Callable[[], bool]] = None,
            should_save_and_exit: Optional[Callable[[], bool]] = None) -> Outcome:
        """
        Step until an instruction ends the run or a meta-exit is requested.

        Args:
            should_exit: Polled after every instruction; True ends the run silently
            should_save_and_exit: Polled after every instruction; True ends the
                run asking the caller to save

        Returns:
            The terminating outcome (never OK)
        """
        while True:
            outcome = self.step()
            if not outcome.is_ok:
                return outcome
            if should_exit is not None and should_exit():
                return SILENT_EXIT
            if should_save_and_exit is not None and should_save_and_exit():
                return EXIT_AND_SAVE

    def get_state(self) -> dict:
        state = self.state.get_state()
        state["steps"] = self.steps
        return state

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fetch(self, pc: int) -> int:
        if pc > MAX_FETCH_ADDRESS:
            raise InvalidAddressError(f"fetch from {pc:04X}")
        memory = self.state.memory
        return memory[pc] << 8 | memory[pc + 1]

    def _read_memory(self, address: int, length: int) -> bytes:
        memory = self.state.memory
        address &= ADDRESS_MASK
        end = address + length
        if end <= MEMORY_SIZE:
            return bytes(memory[address:end])
        return bytes(memory[address:]) + bytes(memory[:end - MEMORY_SIZE])

    def _skip(self) -> None:
        self.state.pc += 2

    def _read_keys(self):
        return self.keypad.read_keys()

    # ------------------------------------------------------------------
    # Second-level dispatch
    # ------------------------------------------------------------------

    def _dispatch_0(self, op: int):
        if _x(op) != 0:
            raise InvalidOpcodeError(f"machine code call {op:04X}")

        family = _y(op)
        if family == 0xC:
            return self._scroll_down(op)
        if family == 0xD:
            return self._scroll_up(op)

        handler = self.system_ops.get(op & 0xFF)
        if handler is None:
            raise InvalidOpcodeError(f"unknown opcode {op:04X}")
        return handler(op)

    def _dispatch_5(self, op: int):
        handler = self.register_ops.get(_n(op))
        if handler is None:
            raise InvalidOpcodeError(f"unknown opcode {op:04X}")
        return handler(op)

    def _dispatch_8(self, op: int):
        handler = self.alu_ops.get(_n(op))
        if handler is None:
            raise InvalidOpcodeError(f"unknown opcode {op:04X}")
        return handler(op)

    def _dispatch_e(self, op: int):
        handler = self.key_ops.get(op & 0xFF)
        if handler is None:
            raise InvalidOpcodeError(f"unknown opcode {op:04X}")
        return handler(op)

    def _dispatch_f(self, op: int):
        handler = self.misc_ops.get(op & 0xFF)
        if handler is None:
            raise InvalidOpcodeError(f"unknown opcode {op:04X}")
        return handler(op)

    # ------------------------------------------------------------------
    # 0 family: display and flow
    # ------------------------------------------------------------------

    # 00Cn - Scroll down n pixels
    def _scroll_down(self, op: int):
        self.compositor.scroll_down(self.state.active_planes, _n(op))

    # 00Dn - Scroll up n pixels (XO-CHIP)
    def _scroll_up(self, op: int):
        self.compositor.scroll_up(self.state.active_planes, _n(op))

    # 00E0
    def _clear(self, op: int):
        self.compositor.clear(self.state.active_planes)

    # 00EE
    def _return(self, op: int):
        self.state.pc = self.state.stack.pop()

    # 00FB - Scroll right 4 pixels
    def _scroll_right(self, op: int):
        self.compositor.scroll_right(self.state.active_planes)

    # 00FC - Scroll left 4 pixels
    def _scroll_left(self, op: int):
        self.compositor.scroll_left(self.state.active_planes)

    # 00FD - Exit interpreter
    def _exit(self, op: int):
        return SILENT_EXIT

    # 00FE
    def _lores(self, op: int):
        self.state.hires = False

    # 00FF
    def _hires(self, op: int):
        self.state.hires = True

    # ------------------------------------------------------------------
    # Jumps, skips and immediates
    # ------------------------------------------------------------------

    # 1nnn
    def _jump(self, op: int):
        self.state.pc = op & 0xFFF

    # 2nnn
    def _call(self, op: int):
        self.state.stack.push(self.state.pc)
        self.state.pc = op & 0xFFF

    # 3xnn
    def _skip_eq_imm(self, op: int):
        if self.state.registers[_x(op)] == op & 0xFF:
            self._skip()

    # 4xnn
    def _skip_ne_imm(self, op: int):
        if self.state.registers[_x(op)] != op & 0xFF:
            self._skip()

    # 5xy0
    def _skip_eq_reg(self, op: int):
        registers = self.state.registers
        if registers[_x(op)] == registers[_y(op)]:
            self._skip()

    # 9xy0
    def _skip_ne_reg(self, op: int):
        if _n(op) != 0:
            raise InvalidOpcodeError(f"unknown opcode {op:04X}")
        registers = self.state.registers
        if registers[_x(op)] != registers[_y(op)]:
            self._skip()

    # 6xnn
    def _set_imm(self, op: int):
        self.state.registers[_x(op)] = op & 0xFF

    # 7xnn - no carry flag
    def _add_imm(self, op: int):
        registers = self.state.registers
        x = _x(op)
        registers[x] = (registers[x] + (op & 0xFF)) & 0xFF

    # Annn
    def _set_index(self, op: int):
        self.state.I = op & 0xFFF

    # Bnnn
    def _jump_v0(self, op: int):
        self.state.pc = ((op & 0xFFF) + self.state.registers[0]) & ADDRESS_MASK

    # Cxnn
    def _random(self, op: int):
        self.state.registers[_x(op)] = self.state.rng.next() & op & 0xFF

    # ------------------------------------------------------------------
    # 5xy2 / 5xy3: XO-CHIP register ranges
    # ------------------------------------------------------------------

    def _range(self, op: int):
        x, y = _x(op), _y(op)
        step = 1 if x <= y else -1
        return enumerate(range(x, y + step, step))

    # 5xy2 - Store Vx..Vy at I..I+|y-x|
    def _save_range(self, op: int):
        state = self.state
        for offset, register in self._range(op):
            state.memory[(state.I + offset) & ADDRESS_MASK] = state.registers[register]

    # 5xy3 - Load Vx..Vy from I..I+|y-x|
    def _load_range(self, op: int):
        state = self.state
        for offset, register in self._range(op):
            state.registers[register] = state.memory[(state.I + offset) & ADDRESS_MASK]

    # ------------------------------------------------------------------
    # 8xyN: arithmetic and logic
    # ------------------------------------------------------------------

    def _mov(self, op: int):
        registers = self.state.registers
        registers[_x(op)] = registers[_y(op)]

    def _or(self, op: int):
        registers = self.state.registers
        registers[_x(op)] |= registers[_y(op)]

    def _and(self, op: int):
        registers = self.state.registers
        registers[_x(op)] &= registers[_y(op)]

    def _xor(self, op: int):
        registers = self.state.registers
        registers[_x(op)] ^= registers[_y(op)]

    # 8xy4 - VF = carry
    def _add(self, op: int):
        registers = self.state.registers
        total = registers[_x(op)] + registers[_y(op)]
        registers[_x(op)] = total & 0xFF
        registers[FLAG_REGISTER] = 1 if total > 0xFF else 0

    # 8xy5 - VF = not borrow
    def _sub(self, op: int):
        registers = self.state.registers
        vx, vy = registers[_x(op)], registers[_y(op)]
        registers[_x(op)] = (vx - vy) & 0xFF
        registers[FLAG_REGISTER] = 0 if vy > vx else 1

    # 8xy7 - Vx = Vy - Vx, VF = not borrow
    def _subn(self, op: int):
        registers = self.state.registers
        vx, vy = registers[_x(op)], registers[_y(op)]
        registers[_x(op)] = (vy - vx) & 0xFF
        registers[FLAG_REGISTER] = 0 if vx > vy else 1

    # 8xy6 - Vx = Vy >> 1, VF = shifted-out bit
    def _shr(self, op: int):
        registers = self.state.registers
        vy = registers[_y(op)]
        registers[_x(op)] = vy >> 1
        registers[FLAG_REGISTER] = vy & 1

    # 8xyE - Vx = Vy << 1, VF = shifted-out bit
    def _shl(self, op: int):
        registers = self.state.registers
        vy = registers[_y(op)]
        registers[_x(op)] = (vy << 1) & 0xFF
        registers[FLAG_REGISTER] = vy >> 7

    # ------------------------------------------------------------------
    # Dxyn: sprites
    # ------------------------------------------------------------------

    def _draw(self, op: int):
        state = self.state
        x = state.registers[_x(op)]
        y = state.registers[_y(op)]
        n = _n(op)
        planes = state.active_planes
        compositor = self.compositor

        if n == 0:
            sprite = self._read_memory(state.I, 32)
            if state.hires:
                collided = compositor.draw_sprite_16_hi(planes, sprite, x, y, 16)
            else:
                collided = compositor.draw_sprite_16_lo(planes, sprite, x, y, 16)
        else:
            sprite = self._read_memory(state.I, n)
            if state.hires:
                collided = compositor.draw_sprite_8_hi(planes, sprite, x, y, n)
            else:
                collided = compositor.draw_sprite_8_lo(planes, sprite, x, y, n)

        state.registers[FLAG_REGISTER] = 1 if collided else 0

    # ------------------------------------------------------------------
    # Ex9E / ExA1: key tests
    # ------------------------------------------------------------------

    def _skip_key_pressed(self, op: int):
        key = self.state.registers[_x(op)]
        if key >= NUM_KEYS:
            return
        if self._read_keys()[key]:
            self._skip()

    def _skip_key_released(self, op: int):
        key = self.state.registers[_x(op)]
        if key >= NUM_KEYS or not self._read_keys()[key]:
            self._skip()

    # ------------------------------------------------------------------
    # FxNN: timers, input, memory and XO-CHIP extras
    # ------------------------------------------------------------------

    # Fn01 - Select drawing planes
    def _select_planes(self, op: int):
        mask = _x(op)
        if mask > PLANE_BOTH:
            raise InvalidOpcodeError(f"plane mask {mask} out of range in {op:04X}")
        self.state.active_planes = mask

    # F002 - Load audio pattern; accepted and ignored
    def _audio_pattern(self, op: int):
        if _x(op) != 0:
            raise InvalidOpcodeError(f"unknown opcode {op:04X}")

    # Fx3A - Set pitch; accepted and ignored
    def _pitch(self, op: int):
        pass

    # Fx07
    def _read_delay(self, op: int):
        self.state.registers[_x(op)] = self.state.delay_timer

    # Fx0A - Block until a key is released
    def _wait_key(self, op: int):
        previous = self._read_keys()

        while True:
            current = self._read_keys()

            if current[KEY_EXIT]:
                return SILENT_EXIT
            if current[KEY_SAVE_EXIT]:
                return EXIT_AND_SAVE

            for key in range(NUM_KEYS):
                # falling edge only
                if previous[key] and not current[key]:
                    self.state.registers[_x(op)] = key
                    return None

            previous = current

    # Fx15
    def _set_delay(self, op: int):
        self.state.delay_timer = self.state.registers[_x(op)]

    # Fx18
    def _set_sound(self, op: int):
        self.state.sound_timer = self.state.registers[_x(op)]

    # Fx1E - VF set when I leaves the 12-bit range
    def _add_index(self, op: int):
        state = self.state
        index = state.I + state.registers[_x(op)]
        state.registers[FLAG_REGISTER] = 1 if index & ~ADDRESS_MASK else 0
        state.I = index & ADDRESS_MASK

    # Fx29
    def _font_lores(self, op: int):
        digit = self.state.registers[_x(op)]
        if digit > 0xF:
            raise InvalidOpcodeError(f"no font glyph for {digit:#04x}")
        self.state.I = LORES_FONT_OFFSET + digit * 5

    # Fx30
    def _font_hires(self, op: int):
        digit = self.state.registers[_x(op)]
        if digit > 0xF:
            raise InvalidOpcodeError(f"no font glyph for {digit:#04x}")
        self.state.I = HIRES_FONT_OFFSET + digit * 10

    # Fx33
    def _bcd(self, op: int):
        state = self.state
        value = state.registers[_x(op)]
        for offset in (2, 1, 0):
            state.memory[(state.I + offset) & ADDRESS_MASK] = value % 10
            value //= 10

    # Fx55
    def _store_registers(self, op: int):
        state = self.state
        x = _x(op)
        for offset in range(x + 1):
            state.memory[(state.I + offset) & ADDRESS_MASK] = state.registers[offset]
        state.I = (state.I + x + 1) & ADDRESS_MASK

    # Fx65
    def _load_registers(self, op: int):
        state = self.state
        x = _x(op)
        for offset in range(x + 1):
            state.registers[offset] = state.memory[(state.I + offset) & ADDRESS_MASK]
        state.I = (state.I + x + 1) & ADDRESS_MASK

    # Fx75 - Store V0..Vx in the (emulated) RPL user flags
    def _rpl_store(self, op: int):
        x = _x(op)
        self.state.rpl_shadow[:x + 1] = self.state.registers[:x + 1]

    # Fx85
    def _rpl_load(self, op: int):
        x = _x(op)
        self.state.registers[:x + 1] = self.state.rpl_shadow[:x + 1]
