"""Main CHIP-8 emulator execution engine."""

import jax
import jax.lax
import jax.numpy as jnp
from chipax.state import EmulatorState
from chipax.decode import decode
from chipax.errors import RomLoadError
from chipax.constants import (
    PROGRAM_START, ADDRESS_MASK, MEMORY_SIZE, NO_KEY_WAIT, SCREEN_WIDTH, SCREEN_HEIGHT,
)
from chipax.instructions.system import execute_system_instruction
from chipax.instructions.control_flow import (
    execute_jump, execute_call, execute_skip_if_equal_immediate,
    execute_skip_if_not_equal_immediate, execute_skip_if_equal_register,
    execute_skip_if_not_equal_register, execute_jump_with_offset_modern,
    execute_jump_with_offset_legacy, execute_skip_if_key
)
from chipax.instructions.alu import execute_alu_operation
from chipax.instructions.memory import execute_set, execute_add, execute_set_index, execute_random
from chipax.instructions.display import execute_display
from chipax.instructions.misc import execute_misc_instruction


def execute(state: EmulatorState, instruction: int) -> EmulatorState:
    """Execute single CHIP-8 instruction."""
    decoded_instruction = decode(instruction)

    return jax.lax.switch(
        decoded_instruction.group,
        [
            execute_system_instruction,
            execute_jump,
            execute_call,
            execute_skip_if_equal_immediate,
            execute_skip_if_not_equal_immediate,
            execute_skip_if_equal_register,
            execute_set,
            execute_add,
            execute_alu_operation,
            execute_skip_if_not_equal_register,
            execute_set_index,
            execute_jump_with_offset_modern if state.quirks.jump_uses_vx else execute_jump_with_offset_legacy,
            execute_random,
            execute_display,
            execute_skip_if_key,
            execute_misc_instruction,
        ],
        state, decoded_instruction
    )


def _pack_u16(high: jnp.uint8, low: jnp.uint8) -> jnp.uint16:
    """Pack two bytes into uint16."""
    return (high.astype(jnp.uint16) << 8) | low.astype(jnp.uint16)


def fetch(state: EmulatorState) -> tuple[EmulatorState, jnp.uint16]:
    """Fetch next instruction from memory and advance PC past it."""
    instruction = _pack_u16(state.memory[state.pc & ADDRESS_MASK], state.memory[(state.pc + 1) & ADDRESS_MASK])
    return state.replace(pc=(state.pc + 2) & ADDRESS_MASK), instruction


def is_waiting_for_key(state: EmulatorState) -> jnp.ndarray:
    """True while an FX0A instruction is blocked on a key press."""
    return state.waiting_key != NO_KEY_WAIT


def step(state: EmulatorState) -> EmulatorState:
    """Fetch and execute one instruction, unless blocked on FX0A."""
    def fetch_and_execute(state):
        state, instruction = fetch(state)
        return execute(state, instruction)

    return jax.lax.cond(is_waiting_for_key(state), lambda s: s, fetch_and_execute, state)


@jax.jit
def run_batch(state: EmulatorState, max_instructions: int) -> EmulatorState:
    """Run up to max_instructions steps, stopping early on a key wait."""
    def keep_running(carry):
        state, executed = carry
        return (executed < max_instructions) & ~is_waiting_for_key(state)

    def run_one(carry):
        state, executed = carry
        return step(state), executed + 1

    state, _ = jax.lax.while_loop(keep_running, run_one, (state, jnp.zeros((), dtype=jnp.int32)))
    return state


def load_program(state: EmulatorState, program: bytes, address: int = PROGRAM_START) -> EmulatorState:
    """Copy program bytes into memory at address and point PC at it."""
    if not program:
        return state.replace(pc=jnp.asarray(address & ADDRESS_MASK, dtype=jnp.uint16))
    # Bytes are written in order, so when a long program wraps only its last
    # MEMORY_SIZE bytes survive
    skipped = max(len(program) - MEMORY_SIZE, 0)
    addresses = (address + skipped + jnp.arange(len(program) - skipped)) & ADDRESS_MASK
    data = jnp.array(list(program[skipped:]), dtype=jnp.uint8)
    return state.replace(
        memory=state.memory.at[addresses].set(data),
        pc=jnp.asarray(address & ADDRESS_MASK, dtype=jnp.uint16),
    )


def load_rom(state: EmulatorState, filename: str, address: int = PROGRAM_START) -> EmulatorState:
    """Load ROM data into CHIP-8 memory starting at address (0x200 by default)."""
    try:
        with open(filename, 'rb') as f:
            rom_data = f.read()
    except OSError as e:
        raise RomLoadError(str(filename), e.strerror or str(e)) from e
    return load_program(state, rom_data, address)


def tick_timers(state: EmulatorState, frames: int = 1) -> EmulatorState:
    """Count both timers down by the number of 60 Hz frames elapsed, stopping at zero."""
    # Timers are 8-bit, so any count above 0xFF empties them
    frames = min(int(frames), 0xFF)

    def countdown(timer):
        return jnp.astype(timer - jnp.minimum(timer, frames), jnp.uint8)

    return state.replace(
        delay_timer=countdown(state.delay_timer),
        sound_timer=countdown(state.sound_timer),
    )


def press_key(state: EmulatorState, key: int) -> EmulatorState:
    """Mark a key as held and release a pending FX0A wait with its value."""
    state = state.replace(keypad=state.keypad.at[key].set(True))

    def resolve_wait(state):
        return state.replace(
            V=state.V.at[state.waiting_key].set(jnp.astype(key, jnp.uint8)),
            waiting_key=jnp.asarray(NO_KEY_WAIT, dtype=jnp.int8),
        )

    return jax.lax.cond(is_waiting_for_key(state), resolve_wait, lambda s: s, state)


def release_key(state: EmulatorState, key: int) -> EmulatorState:
    """Mark a key as released."""
    return state.replace(keypad=state.keypad.at[key].set(False))


def sound_active(state: EmulatorState) -> bool:
    """True while the sound timer is running."""
    return bool(state.sound_timer > 0)


def display_pixels(display: jnp.ndarray) -> jnp.ndarray:
    """Unpack the display buffer into a row-major (32, 64) boolean matrix."""
    return jnp.unpackbits(display).reshape(SCREEN_HEIGHT, SCREEN_WIDTH).astype(jnp.bool_)
