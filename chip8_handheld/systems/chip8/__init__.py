"""
CHIP-8 / SCHIP / XO-CHIP interpretation components.
"""
# Import main classes for external use
from .state import MachineState, Stack, TimerRegisters, RandomGenerator
from .cpu import Chip8Interpreter
from .display import GrayscaleCompositor
from .timers import TimerSubsystem
from .keypad import IdleKeypad, KeyboardState, ScriptedKeypad, CALCULATOR_KEY_LAYOUT
from .chip8_system import Chip8System
