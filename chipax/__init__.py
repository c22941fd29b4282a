"""CHIP-8 emulator package."""

from chipax.state import EmulatorState, StackState, Quirks, create_state
from chipax.emulator import (
    execute, fetch, step, run_batch, load_rom, load_program, tick_timers,
    press_key, release_key, is_waiting_for_key, sound_active, display_pixels,
)
from chipax.decode import DecodedInstruction, decode
from chipax.errors import RomLoadError, AssemblerError
from chipax.constants import *

__all__ = [
    "EmulatorState",
    "StackState",
    "Quirks",
    "create_state",
    "fetch",
    "execute",
    "step",
    "run_batch",
    "load_rom",
    "load_program",
    "tick_timers",
    "press_key",
    "release_key",
    "is_waiting_for_key",
    "sound_active",
    "display_pixels",
    "DecodedInstruction",
    "decode",
    "RomLoadError",
    "AssemblerError",
    "PROGRAM_START",
    "FONT_START",
    "SCREEN_WIDTH",
    "SCREEN_HEIGHT",
]
