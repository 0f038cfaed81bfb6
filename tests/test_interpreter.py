"""
Tests for the Chip8Interpreter module.

This module contains unit tests for instruction decoding and execution:
arithmetic flags, the return stack, memory opcodes, key input, sprites and
the run loop.
"""
import unittest

from chip8_handheld.common.errors import ErrorCode, Outcome
from chip8_handheld.common.interfaces import KeySource
from chip8_handheld.constants import KEY_VECTOR_SIZE, KEY_EXIT, KEY_SAVE_EXIT
from chip8_handheld.systems.chip8.cpu import Chip8Interpreter
from chip8_handheld.systems.chip8.display import GrayscaleCompositor
from chip8_handheld.systems.chip8.keypad import IdleKeypad, KeyboardState
from chip8_handheld.systems.chip8.state import MachineState


def program(*words):
    """Assemble 16-bit opcodes into big-endian program bytes."""
    return b"".join(word.to_bytes(2, "big") for word in words)


def key_vector(*slots):
    vector = [False] * KEY_VECTOR_SIZE
    for slot in slots:
        vector[slot] = True
    return tuple(vector)


class SequenceKeySource(KeySource):
    """Returns a fixed sequence of key vectors, then repeats the last one."""

    def __init__(self, *vectors):
        self.vectors = list(vectors)
        self.reads = 0

    def read_keys(self):
        index = min(self.reads, len(self.vectors) - 1)
        self.reads += 1
        return self.vectors[index]


class BrokenKeySource(KeySource):
    def read_keys(self):
        raise RuntimeError("keyboard unplugged")


class InterpreterTestCase(unittest.TestCase):
    """Base fixture: a fresh machine with a program at 0x200."""

    def load(self, *words, keypad=None):
        self.state = MachineState.fresh(seed=1234)
        self.state.load_program(program(*words))
        self.compositor = GrayscaleCompositor()
        self.cpu = Chip8Interpreter(self.state, self.compositor, keypad or IdleKeypad())
        return self.cpu

    def step_ok(self, count=1):
        for _ in range(count):
            self.assertEqual(self.cpu.step(), Outcome.ok())


class TestArithmetic(InterpreterTestCase):
    """
    Test cases for the 8xyN instruction group.
    """

    def setUp(self):
        """Set up test fixtures."""
        self.load(0x8014)
        self.registers = self.state.registers

    def test_add_overflow_sets_carry(self):
        """Test 8xy4 wraps and raises VF on overflow."""
        self.registers[0], self.registers[1] = 0xFF, 0x01
        self.step_ok()
        self.assertEqual(self.registers[0], 0x00)
        self.assertEqual(self.registers[0xF], 1)

    def test_add_without_overflow_clears_carry(self):
        self.registers[0], self.registers[1] = 0x01, 0x01
        self.registers[0xF] = 1
        self.step_ok()
        self.assertEqual(self.registers[0], 0x02)
        self.assertEqual(self.registers[0xF], 0)

    def test_add_carry_for_all_sums(self):
        """Test 8xy4 carry across a sweep of operand pairs."""
        for vx in range(0, 256, 17):
            for vy in range(0, 256, 13):
                self.load(0x8014)
                self.state.registers[0], self.state.registers[1] = vx, vy
                self.step_ok()
                self.assertEqual(self.state.registers[0], (vx + vy) & 0xFF)
                self.assertEqual(self.state.registers[0xF], 1 if vx + vy > 0xFF else 0)

    def test_sub_borrow(self):
        """Test 8xy5 sets VF to 0 only on borrow."""
        self.load(0x8015, 0x8015)
        self.state.registers[0], self.state.registers[1] = 0x01, 0x02
        self.step_ok()
        self.assertEqual(self.state.registers[0], 0xFF)
        self.assertEqual(self.state.registers[0xF], 0)

        self.state.registers[0], self.state.registers[1] = 0x05, 0x05
        self.step_ok()
        self.assertEqual(self.state.registers[0], 0x00)
        self.assertEqual(self.state.registers[0xF], 1)

    def test_subn(self):
        """Test 8xy7 computes Vy - Vx."""
        self.load(0x8017)
        self.state.registers[0], self.state.registers[1] = 0x03, 0x10
        self.step_ok()
        self.assertEqual(self.state.registers[0], 0x0D)
        self.assertEqual(self.state.registers[0xF], 1)

    def test_shifts_use_vy(self):
        """Test 8xy6 / 8xyE shift Vy into Vx and keep the shifted-out bit."""
        self.load(0x8016, 0x821E)
        self.state.registers[1] = 0x03
        self.step_ok()
        self.assertEqual(self.state.registers[0], 0x01)
        self.assertEqual(self.state.registers[0xF], 1)

        self.state.registers[1] = 0x81
        self.step_ok()
        self.assertEqual(self.state.registers[2], 0x02)
        self.assertEqual(self.state.registers[0xF], 1)

    def test_logic_ops(self):
        self.load(0x8011, 0x8012, 0x8013, 0x8010)
        self.state.registers[0], self.state.registers[1] = 0x0C, 0x0A
        self.step_ok()
        self.assertEqual(self.state.registers[0], 0x0E)
        self.step_ok()
        self.assertEqual(self.state.registers[0], 0x0A)
        self.step_ok()
        self.assertEqual(self.state.registers[0], 0x00)
        self.step_ok()
        self.assertEqual(self.state.registers[0], 0x0A)

    def test_add_immediate_has_no_carry(self):
        self.load(0x70FF)
        self.state.registers[0] = 0x02
        self.step_ok()
        self.assertEqual(self.state.registers[0], 0x01)
        self.assertEqual(self.state.registers[0xF], 0)


class TestFlowControl(InterpreterTestCase):
    """
    Test cases for jumps, calls, skips and the return stack.
    """

    def test_call_and_return(self):
        """Test 2nnn pushes the return address and 00EE pops it."""
        self.load(0x2206, 0x0000, 0x0000, 0x00EE)
        self.step_ok()
        self.assertEqual(self.state.pc, 0x206)
        self.assertEqual(self.state.stack_entries(), [0x202])
        self.step_ok()
        self.assertEqual(self.state.pc, 0x202)
        self.assertEqual(len(self.state.stack), 0)

    def test_return_on_empty_stack(self):
        self.load(0x00EE)
        self.assertEqual(self.cpu.step().code, ErrorCode.STACK_UNDERFLOW)

    def test_stack_overflow_leaves_stack_unchanged(self):
        """Test the 17th nested call fails without touching the stack."""
        self.load(0x2200)
        self.step_ok(16)
        self.assertEqual(len(self.state.stack), 16)

        outcome = self.cpu.step()
        self.assertTrue(outcome.is_failure)
        self.assertEqual(outcome.code, ErrorCode.STACK_OVERFLOW)
        self.assertEqual(len(self.state.stack), 16)
        self.assertEqual(self.state.stack.top(), 0x202)

    def test_jump_and_jump_with_offset(self):
        self.load(0x1300)
        self.step_ok()
        self.assertEqual(self.state.pc, 0x300)

        self.load(0xB300)
        self.state.registers[0] = 0x10
        self.step_ok()
        self.assertEqual(self.state.pc, 0x310)

    def test_jump_with_offset_wraps(self):
        self.load(0xBFFF)
        self.state.registers[0] = 0x02
        self.step_ok()
        self.assertEqual(self.state.pc, 0x001)

    def test_skips(self):
        """Test 3xnn, 4xnn, 5xy0 and 9xy0 skip the next instruction."""
        cases = [
            ((0x3042,), 0x42, 0x00, 0x204),
            ((0x3042,), 0x41, 0x00, 0x202),
            ((0x4042,), 0x41, 0x00, 0x204),
            ((0x5010,), 0x07, 0x07, 0x204),
            ((0x9010,), 0x07, 0x08, 0x204),
            ((0x9010,), 0x07, 0x07, 0x202),
        ]
        for words, v0, v1, expected_pc in cases:
            with self.subTest(opcode=hex(words[0]), v0=v0, v1=v1):
                self.load(*words)
                self.state.registers[0], self.state.registers[1] = v0, v1
                self.step_ok()
                self.assertEqual(self.state.pc, expected_pc)

    def test_fetch_out_of_range(self):
        """Test fetching past 0xFFE fails with an address error."""
        self.load(0x0000)
        self.state.pc = 0xFFF
        outcome = self.cpu.step()
        self.assertTrue(outcome.is_failure)
        self.assertEqual(outcome.code, ErrorCode.INVALID_ADDRESS)
        self.assertEqual(outcome.message, "fetch from 0FFF")
        self.assertEqual(self.state.pc, 0xFFF)
        self.assertEqual(self.cpu.steps, 0)

    def test_exit_opcode(self):
        self.load(0x00FD)
        self.assertEqual(self.cpu.step(), Outcome.exit(ErrorCode.SILENT_EXIT))

    def test_invalid_opcodes(self):
        """Test undefined encodings are rejected."""
        for opcode in (0x0000, 0x0123, 0x00E1, 0x5011, 0x8018, 0x9011,
                       0xE000, 0xF0FF, 0xF102, 0xF401):
            with self.subTest(opcode=hex(opcode)):
                self.load(opcode)
                self.assertEqual(self.cpu.step().code, ErrorCode.INVALID_OPCODE)

    def test_unexpected_exception_becomes_unknown_error(self):
        self.load(0xE09E, keypad=BrokenKeySource())
        with self.assertLogs("Chip8Handheld.CPU", level="ERROR"):
            outcome = self.cpu.step()
        self.assertEqual(outcome.code, ErrorCode.UNKNOWN_ERROR)


class TestMemoryOps(InterpreterTestCase):
    """
    Test cases for index register and memory transfer opcodes.
    """

    def test_bcd(self):
        self.load(0xA300, 0xF033)
        self.state.registers[0] = 234
        self.step_ok(2)
        self.assertEqual(list(self.state.memory[0x300:0x303]), [2, 3, 4])

    def test_store_and_load_advance_index(self):
        """Test Fx55 / Fx65 copy V0..Vx and advance I by x + 1."""
        self.load(0xA300, 0xF255, 0xA300, 0xF565)
        self.state.registers[0:3] = bytes([1, 2, 3])
        self.step_ok(2)
        self.assertEqual(list(self.state.memory[0x300:0x303]), [1, 2, 3])
        self.assertEqual(self.state.I, 0x303)

        self.state.memory[0x303:0x306] = bytes([4, 5, 6])
        self.state.registers[:] = bytes(16)
        self.step_ok(2)
        self.assertEqual(list(self.state.registers[0:6]), [1, 2, 3, 4, 5, 6])
        self.assertEqual(self.state.I, 0x306)

    def test_store_wraps_memory(self):
        self.load(0xAFFF, 0xF155)
        self.state.registers[0:2] = bytes([0xAA, 0xBB])
        self.step_ok(2)
        self.assertEqual(self.state.memory[0xFFF], 0xAA)
        self.assertEqual(self.state.memory[0x000], 0xBB)
        self.assertEqual(self.state.I, 0x001)

    def test_register_range_store_and_load(self):
        """Test 5xy2 / 5xy3 transfer Vx..Vy relative to I without moving I."""
        self.load(0xA300, 0x5132, 0x5313)
        self.state.registers[1:4] = bytes([0x11, 0x22, 0x33])
        self.step_ok(2)
        self.assertEqual(list(self.state.memory[0x300:0x303]), [0x11, 0x22, 0x33])
        self.assertEqual(self.state.I, 0x300)

        # Descending: V3 <- [I], V2 <- [I+1], V1 <- [I+2]
        self.state.memory[0x300:0x303] = bytes([0xA1, 0xA2, 0xA3])
        self.step_ok()
        self.assertEqual(list(self.state.registers[1:4]), [0xA3, 0xA2, 0xA1])
        self.assertEqual(self.state.I, 0x300)

    def test_add_index_overflow(self):
        self.load(0xAFFF, 0xF01E)
        self.state.registers[0] = 0x01
        self.step_ok(2)
        self.assertEqual(self.state.I, 0x000)
        self.assertEqual(self.state.registers[0xF], 1)

    def test_font_addresses(self):
        self.load(0xF029, 0xF030)
        self.state.registers[0] = 0x0A
        self.step_ok()
        self.assertEqual(self.state.I, 50)
        self.step_ok()
        self.assertEqual(self.state.I, 80 + 100)

    def test_font_digit_out_of_range(self):
        for opcode in (0xF029, 0xF030):
            with self.subTest(opcode=hex(opcode)):
                self.load(opcode)
                self.state.registers[0] = 0x10
                self.assertEqual(self.cpu.step().code, ErrorCode.INVALID_OPCODE)

    def test_rpl_flags(self):
        self.load(0xF275, 0xF285)
        self.state.registers[0:3] = bytes([7, 8, 9])
        self.step_ok()
        self.assertEqual(list(self.state.rpl_shadow[0:3]), [7, 8, 9])
        self.state.registers[0:3] = bytes(3)
        self.step_ok()
        self.assertEqual(list(self.state.registers[0:3]), [7, 8, 9])

    def test_random_respects_mask(self):
        self.load(*([0xC00F] * 20 + [0xC100]))
        for _ in range(20):
            self.step_ok()
            self.assertLessEqual(self.state.registers[0], 0x0F)
        self.state.registers[1] = 0xFF
        self.step_ok()
        self.assertEqual(self.state.registers[1], 0)

    def test_timers(self):
        self.load(0xF015, 0xF118, 0xF207)
        self.state.registers[0] = 30
        self.state.registers[1] = 5
        self.step_ok(3)
        self.assertEqual(self.state.delay_timer, 30)
        self.assertEqual(self.state.sound_timer, 5)
        self.assertEqual(self.state.registers[2], 30)

    def test_xo_chip_no_ops(self):
        self.load(0xF002, 0xF03A)
        before = bytes(self.state.memory)
        self.step_ok(2)
        self.assertEqual(bytes(self.state.memory), before)


class TestDisplayOps(InterpreterTestCase):
    """
    Test cases for the display opcodes.
    """

    def test_draw_twice_collides(self):
        """Test redrawing a sprite erases it and sets VF."""
        self.load(0xA000, 0xD015, 0xD015)
        self.step_ok(2)
        self.assertEqual(self.state.registers[0xF], 0)
        self.assertTrue(self.compositor.window(0).any())

        self.step_ok()
        self.assertEqual(self.state.registers[0xF], 1)
        self.assertFalse(self.compositor.window(0).any())

    def test_lores_draw_is_doubled(self):
        self.load(0xA000, 0xD011)
        self.state.registers[0], self.state.registers[1] = 1, 1
        self.step_ok(2)
        # Font "0" top row is 0xF0: four lit lores pixels from x=1
        window = self.compositor.window(0)
        self.assertEqual(window[2:4, 2:10].sum(), 16)
        self.assertEqual(window.sum(), 16)

    def test_hires_draw(self):
        self.load(0x00FF, 0xA000, 0xD011)
        self.state.registers[0], self.state.registers[1] = 1, 1
        self.step_ok(3)
        self.assertTrue(self.state.hires)
        window = self.compositor.window(0)
        self.assertEqual(window[1, 1:5].sum(), 4)
        self.assertEqual(window.sum(), 4)

    def test_plane_select_and_clear(self):
        """Test Fn01 routes drawing and 00E0 clears only selected planes."""
        self.load(0xF301, 0xA000, 0xD011, 0xF201, 0x00E0)
        self.step_ok(3)
        self.assertEqual(self.state.active_planes, 3)
        self.assertTrue(self.compositor.window(0).any())
        self.assertTrue(self.compositor.window(1).any())

        self.step_ok(2)
        self.assertTrue(self.compositor.window(0).any())
        self.assertFalse(self.compositor.window(1).any())

    def test_sprite_reads_wrap_memory(self):
        self.load(0xAFFF, 0xD012)
        self.state.memory[0xFFF] = 0x80
        self.state.memory[0x000] = 0x80
        self.step_ok(2)
        self.assertEqual(self.compositor.window(0).sum(), 8)

    def test_scroll_opcodes(self):
        self.load(0x00FF, 0xA000, 0xD011, 0x00C2, 0x00D2, 0x00FB, 0x00FC)
        self.step_ok(3)
        before = self.compositor.window(0).copy()
        self.step_ok()
        self.assertTrue((self.compositor.window(0)[2:] == before[:-2]).all())
        self.step_ok()
        self.assertTrue((self.compositor.window(0) == before).all())
        self.step_ok(2)
        self.assertEqual(self.compositor.window(0).sum(), before.sum())

    def test_resolution_switch(self):
        self.load(0x00FF, 0x00FE)
        self.step_ok()
        self.assertTrue(self.state.hires)
        self.step_ok()
        self.assertFalse(self.state.hires)


class TestKeyInput(InterpreterTestCase):
    """
    Test cases for key test and key wait opcodes.
    """

    def test_key_pressed_skips(self):
        keyboard = KeyboardState()
        self.load(0xE59E, 0x0000, 0xE5A1, keypad=keyboard)
        self.state.registers[5] = 0x5
        keyboard.press(5)
        self.step_ok()
        self.assertEqual(self.state.pc, 0x204)
        self.step_ok()
        self.assertEqual(self.state.pc, 0x206)

        self.load(0xE5A1, keypad=keyboard)
        self.state.registers[5] = 0x5
        keyboard.release(5)
        self.step_ok()
        self.assertEqual(self.state.pc, 0x204)

    def test_out_of_range_key_is_never_pressed(self):
        keyboard = KeyboardState()
        keyboard.press(KEY_EXIT)
        self.load(0xE09E, keypad=keyboard)
        self.state.registers[0] = KEY_EXIT
        self.step_ok()
        self.assertEqual(self.state.pc, 0x202)

        self.load(0xE0A1, keypad=keyboard)
        self.state.registers[0] = 0x20
        self.step_ok()
        self.assertEqual(self.state.pc, 0x204)

    def test_wait_key_commits_on_release(self):
        keypad = SequenceKeySource(key_vector(), key_vector(7), key_vector(7), key_vector())
        self.load(0xF30A, keypad=keypad)
        self.step_ok()
        self.assertEqual(self.state.registers[3], 7)
        self.assertEqual(keypad.reads, 4)

    def test_wait_key_ignores_key_held_then_pressed(self):
        keypad = SequenceKeySource(key_vector(2), key_vector(2, 9), key_vector(9))
        self.load(0xF30A, keypad=keypad)
        self.step_ok()
        self.assertEqual(self.state.registers[3], 2)

    def test_wait_key_meta_exits(self):
        self.load(0xF30A, keypad=SequenceKeySource(key_vector(), key_vector(KEY_EXIT)))
        self.assertEqual(self.cpu.step(), Outcome.exit(ErrorCode.SILENT_EXIT))

        self.load(0xF30A, keypad=SequenceKeySource(key_vector(), key_vector(KEY_SAVE_EXIT)))
        self.assertEqual(self.cpu.step(), Outcome.exit(ErrorCode.EXIT_AND_SAVE))


class TestRunLoop(InterpreterTestCase):
    """
    Test cases for the run loop.
    """

    def test_run_until_exit_opcode(self):
        self.load(0x6001, 0x7001, 0x00FD)
        outcome = self.cpu.run()
        self.assertEqual(outcome, Outcome.exit(ErrorCode.SILENT_EXIT))
        self.assertEqual(self.state.registers[0], 2)
        self.assertEqual(self.cpu.steps, 3)

    def test_run_stops_on_failure(self):
        self.load(0x00EE)
        outcome = self.cpu.run()
        self.assertTrue(outcome.is_failure)
        self.assertEqual(outcome.code, ErrorCode.STACK_UNDERFLOW)

    def test_run_polls_meta_exit(self):
        self.load(0x1200)
        outcome = self.cpu.run(should_exit=lambda: self.cpu.steps >= 50)
        self.assertEqual(outcome, Outcome.exit(ErrorCode.SILENT_EXIT))
        self.assertEqual(self.cpu.steps, 50)

        outcome = self.cpu.run(should_save_and_exit=lambda: self.cpu.steps >= 60)
        self.assertEqual(outcome, Outcome.exit(ErrorCode.EXIT_AND_SAVE))
        self.assertEqual(self.cpu.steps, 60)


if __name__ == '__main__':
    unittest.main()
