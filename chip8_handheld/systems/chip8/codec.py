"""
ROM and save-state codec.

A ROM package is a three-byte version header, an LZSS-compressed program and
a trailing ROM type tag. A save package is a byte-exact image of the machine
state (which itself starts with the version header) followed by the save
type tag. The save layout is a durable format: changing a field's order or
size requires a new major version.

Compressed streams are a sequence of tokens:

- any byte other than 0xFF is a literal;
- ``FF 00`` is a literal 0xFF;
- ``FF LL OO`` with ``LL & 0x3F`` nonzero is a back-reference of length
  ``LL & 0x3F`` at offset ``(LL & 0xC0) << 2 | OO``, copying from
  ``offset + 1`` bytes behind the write position one byte at a time, so the
  source may overlap the bytes being produced.
"""

import logging
import struct
from enum import Enum
from typing import Optional, Tuple, Union

from ...common.errors import RomLoadError, VersionError, OutOfMemoryError
from ...constants import (VERSION, MAJOR_VERSION, MINOR_VERSION, HEADER_SIZE,
                          PROGRAM_START, MAX_PROGRAM_SIZE, MEMORY_SIZE,
                          STACK_CAPACITY, NUM_REGISTERS, DISPLAY_SNAPSHOT_SIZE,
                          ROM_TAG, SAVE_TAG, COMPRESS_FLAG, COMPRESS_WINDOW,
                          COMPRESS_MAX_LENGTH)
from .state import MachineState, Stack, TimerRegisters, RandomGenerator

logger = logging.getLogger("Chip8Handheld.Codec")

Buffer = Union[bytes, bytearray, memoryview]

# Big-endian, no implicit padding
STATE_FORMAT = (
    ">"
    "3B"                                  # version major, minor, patch
    f"{STACK_CAPACITY}H"                  # stack entries
    "B"                                   # stack count
    "x"                                   # pad
    "I"                                   # random seed
    "H"                                   # pc
    "H"                                   # I
    "B"                                   # loaded_from_save
    "B"                                   # hires
    "B"                                   # active planes
    f"{NUM_REGISTERS}s"                   # registers
    "B"                                   # delay timer
    "B"                                   # sound timer
    f"{MEMORY_SIZE}s"                     # memory
    f"{DISPLAY_SNAPSHOT_SIZE}s"           # display snapshot
    f"{NUM_REGISTERS}s"                   # rpl shadow registers
)
STATE_STRUCT = struct.Struct(STATE_FORMAT)
STATE_SIZE = STATE_STRUCT.size


class PackageKind(Enum):
    """Kinds of packaged input files."""
    ROM = "rom"
    SAVE = "save"


# ----------------------------------------------------------------------
# Compression
# ----------------------------------------------------------------------

def decompress(dest: bytearray, src: Buffer, base: int = 0) -> int:
    """
    Decompress an LZSS stream into ``dest`` starting at ``base``.

    The input is trusted and the destination is not bounds-checked beyond
    Python's own indexing; callers validate the uncompressed size first
    (see ``uncompressed_size``).

    Args:
        dest: Destination buffer
        src: Compressed stream
        base: Offset in dest of the first output byte

    Returns:
        Number of bytes written
    """
    count = 0
    i = 0
    srclen = len(src)

    while i < srclen:
        byte = src[i]
        if byte != COMPRESS_FLAG:
            dest[base + count] = byte
            count += 1
            i += 1
            continue

        control = src[i + 1]
        length = control & 0x3F
        if length:
            offset = (control & 0xC0) << 2 | src[i + 2]
            for j in range(length):
                dest[base + count + j] = dest[base + count + j - offset - 1]
            count += length
            i += 3
        else:
            dest[base + count] = COMPRESS_FLAG
            count += 1
            i += 2

    return count


def uncompressed_size(src: Buffer) -> int:
    """Total output length of a compressed stream, without decoding it."""
    count = 0
    i = 0
    srclen = len(src)

    while i < srclen:
        if src[i] != COMPRESS_FLAG:
            count += 1
            i += 1
        elif i + 1 >= srclen:
            raise RomLoadError("truncated token at end of compressed stream")
        elif src[i + 1] & 0x3F:
            if i + 2 >= srclen:
                raise RomLoadError("truncated back-reference at end of compressed stream")
            count += src[i + 1] & 0x3F
            i += 3
        else:
            count += 1
            i += 2

    return count


def compress(data: Buffer) -> bytes:
    """
    Greedy LZSS encoder producing streams accepted by ``decompress``.

    For each position the longest match in the preceding 1024 bytes is
    found (at most 63 bytes, overlapping the current position allowed). A
    back-reference is emitted only when it is shorter than spelling the
    matched bytes out as literals.
    """
    src = bytes(data)
    out = bytearray()
    i = 0

    while i < len(src):
        window_start = max(0, i - COMPRESS_WINDOW)
        best_start, best_len = 0, 0

        for start in range(window_start, i):
            if src[start] != src[i]:
                continue
            length = 0
            limit = min(COMPRESS_MAX_LENGTH, len(src) - i)
            while length < limit and src[start + length] == src[i + length]:
                length += 1
            if length >= best_len:
                best_start, best_len = start, length

        literal_cost = sum(2 if b == COMPRESS_FLAG else 1
                           for b in src[best_start:best_start + best_len])

        if best_len and literal_cost > 3:
            offset = i - best_start - 1
            out.append(COMPRESS_FLAG)
            out.append(((offset & 0x300) >> 2) | best_len)
            out.append(offset & 0xFF)
            i += best_len
        else:
            if src[i] == COMPRESS_FLAG:
                out += bytes([COMPRESS_FLAG, 0x00])
            else:
                out.append(src[i])
            i += 1

    return bytes(out)


# ----------------------------------------------------------------------
# Packages
# ----------------------------------------------------------------------

def _check_version(major: int, minor: int, patch: int) -> None:
    if major != MAJOR_VERSION or minor > MINOR_VERSION:
        raise VersionError(f"file version {major}.{minor}.{patch} is not compatible "
                           f"with interpreter version {'.'.join(map(str, VERSION))}")


def sniff(blob: Buffer) -> PackageKind:
    """
    Identify a packaged file by its trailing type tag.

    Raises:
        RomLoadError: If neither tag is present
    """
    data = bytes(blob)
    if data.endswith(SAVE_TAG):
        return PackageKind.SAVE
    if data.endswith(ROM_TAG):
        return PackageKind.ROM
    raise RomLoadError("unrecognized file type tag")


def build_rom_package(program: Buffer, version: Optional[Tuple[int, int, int]] = None) -> bytes:
    """
    Package a raw CHIP-8 program: version header, compressed body, ROM tag.

    Args:
        program: Raw program bytes (loaded at 0x200)
        version: Header version (the interpreter's own by default)

    Returns:
        Packaged ROM bytes
    """
    if len(program) > MAX_PROGRAM_SIZE:
        raise RomLoadError(f"program is {len(program)} bytes, limit is {MAX_PROGRAM_SIZE}")
    major, minor, patch = version or VERSION
    return bytes([major, minor, patch]) + compress(program) + ROM_TAG


def load_rom(blob: Buffer, seed: Optional[int] = None) -> MachineState:
    """
    Build a fresh machine state from a ROM package.

    Args:
        blob: Complete ROM package, tag included
        seed: Random seed (a fresh one when None)

    Returns:
        New machine state with the program at 0x200

    Raises:
        RomLoadError: Malformed package, empty program or oversize program
        VersionError: Incompatible header version
    """
    data = bytes(blob)
    if data.endswith(ROM_TAG):
        data = data[:-len(ROM_TAG)]

    if len(data) < HEADER_SIZE:
        raise RomLoadError("ROM package is shorter than its header")

    _check_version(data[0], data[1], data[2])

    payload = data[HEADER_SIZE:]
    size = uncompressed_size(payload)
    if size > MAX_PROGRAM_SIZE:
        raise RomLoadError(f"program is {size} bytes, limit is {MAX_PROGRAM_SIZE}")
    if size == 0:
        raise RomLoadError("ROM contains no program")

    state = MachineState.fresh(seed)
    written = decompress(state.memory, payload, PROGRAM_START)

    logger.info(f"Loaded ROM v{data[0]}.{data[1]}.{data[2]}: "
                f"{len(payload)} bytes compressed, {written} bytes program")
    return state


def load_save(blob: Buffer) -> MachineState:
    """
    Restore a machine state from a save package.

    Raises:
        VersionError: Wrong length for the state layout, or incompatible version
    """
    data = bytes(blob)
    if len(data) - len(SAVE_TAG) != STATE_SIZE:
        raise VersionError(f"save is {len(data)} bytes, expected {STATE_SIZE + len(SAVE_TAG)}")

    fields = STATE_STRUCT.unpack_from(data)
    _check_version(*fields[0:3])

    stack_entries = fields[3:3 + STACK_CAPACITY]
    (sp, seed, pc, index, from_save, hires, planes, registers,
     delay, sound, memory, display, rpl) = fields[3 + STACK_CAPACITY:]

    if sp > STACK_CAPACITY:
        raise VersionError(f"save has stack count {sp}, capacity is {STACK_CAPACITY}")

    state = MachineState()
    state.version = tuple(fields[0:3])
    state.stack = Stack()
    state.stack.entries = list(stack_entries)
    state.stack.count = sp
    state.rng = RandomGenerator(seed)
    state.pc = pc
    state.I = index
    state.hires = bool(hires)
    state.active_planes = planes
    state.registers = bytearray(registers)
    state.timers = TimerRegisters(delay, sound)
    state.memory = bytearray(memory)
    state.display = bytearray(display)
    state.rpl_shadow = bytearray(rpl)
    state.loaded_from_save = True

    logger.info(f"Restored save v{'.'.join(map(str, state.version))} at pc={pc:03X}")
    return state


def _allocate(size: int) -> bytearray:
    return bytearray(size)


def save(state: MachineState) -> bytes:
    """
    Serialize a machine state into a save package.

    The current random seed is written so the restored game continues the
    same random sequence.

    Raises:
        OutOfMemoryError: If the output buffer cannot be allocated; the
            machine state is left untouched
    """
    try:
        out = _allocate(STATE_SIZE + len(SAVE_TAG))
    except MemoryError as e:
        raise OutOfMemoryError("cannot allocate save buffer") from e

    STATE_STRUCT.pack_into(
        out, 0,
        *state.version,
        *state.stack.entries,
        state.stack.count,
        state.random_seed,
        state.pc & 0xFFFF,
        state.I & 0xFFFF,
        int(state.loaded_from_save),
        int(state.hires),
        state.active_planes,
        bytes(state.registers),
        state.delay_timer,
        state.sound_timer,
        bytes(state.memory),
        bytes(state.display),
        bytes(state.rpl_shadow),
    )
    out[STATE_SIZE:] = SAVE_TAG

    logger.info(f"Serialized state at pc={state.pc:03X} ({len(out)} bytes)")
    return bytes(out)


def load_package(blob: Buffer) -> MachineState:
    """Sniff a packaged file and dispatch it to the matching loader."""
    kind = sniff(blob)
    if kind is PackageKind.SAVE:
        return load_save(blob)
    return load_rom(blob)
