"""CHIP-8 miscellaneous instructions (Fxxx)."""

import jax
import jax.lax
import jax.numpy as jnp
from chipax.state import EmulatorState
from chipax.decode import DecodedInstruction
from chipax.constants import FONT_START, FONT_SPRITE_SIZE, ADDRESS_MASK, FLAG_REGISTER, NUM_REGISTERS
from chipax.instructions.system import no_op


def execute_get_delay_timer(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX07 - Set VX to delay timer value."""
    return state.replace(V=state.V.at[instruction.x].set(state.delay_timer))


def execute_wait_for_key(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX0A - Block until a key press stores its value in VX."""
    return state.replace(waiting_key=jnp.astype(instruction.x, jnp.int8))


def execute_set_delay_timer(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX15 - Set delay timer to VX."""
    return state.replace(delay_timer=state.V[instruction.x])


def execute_set_sound_timer(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX18 - Set sound timer to VX."""
    return state.replace(sound_timer=state.V[instruction.x])


def execute_add_to_index(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX1E - Add VX to I register, VF = 1 when the sum leaves the address space."""
    total = jnp.astype(state.I, jnp.int32) + state.V[instruction.x]
    overflow = jnp.astype(total > ADDRESS_MASK, jnp.uint8)
    return state.replace(
        I=jnp.astype(total & ADDRESS_MASK, jnp.uint16),
        V=state.V.at[FLAG_REGISTER].set(overflow)
    )


def execute_font_character(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX29 - Set I to location of sprite for digit VX."""
    digit = jnp.astype(state.V[instruction.x] & 0xF, jnp.uint16)
    return state.replace(I=jnp.astype(FONT_START + digit * FONT_SPRITE_SIZE, jnp.uint16))


def execute_bcd_conversion(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX33 - Store BCD representation of VX at I, I+1, I+2."""
    value = state.V[instruction.x]

    digits = jnp.array([
        value // 100,
        (value // 10) % 10,
        value % 10
    ], dtype=jnp.uint8)

    indices = (jnp.astype(state.I, jnp.int32) + jnp.arange(3)) & ADDRESS_MASK
    return state.replace(memory=state.memory.at[indices].set(digits))


def _register_block(state: EmulatorState, instruction: DecodedInstruction):
    register_mask = jnp.arange(NUM_REGISTERS) <= instruction.x
    addresses = (jnp.astype(state.I, jnp.int32) + jnp.arange(NUM_REGISTERS)) & ADDRESS_MASK
    return register_mask, addresses


def _index_after_block(state: EmulatorState, instruction: DecodedInstruction) -> jnp.ndarray:
    if not state.quirks.increment_index_on_load_store:
        return state.I
    return jnp.astype((jnp.astype(state.I, jnp.int32) + instruction.x + 1) & ADDRESS_MASK, jnp.uint16)


def execute_store_registers(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX55 - Store V0 through VX in memory starting at I."""
    register_mask, addresses = _register_block(state, instruction)
    new_values = jnp.where(register_mask, state.V, state.memory[addresses])
    return state.replace(
        memory=state.memory.at[addresses].set(new_values),
        I=_index_after_block(state, instruction)
    )


def execute_load_registers(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX65 - Load V0 through VX from memory starting at I."""
    register_mask, addresses = _register_block(state, instruction)
    return state.replace(
        V=jnp.where(register_mask, state.memory[addresses], state.V),
        I=_index_after_block(state, instruction)
    )


MISC_HANDLERS = {
    0x07: execute_get_delay_timer,
    0x0A: execute_wait_for_key,
    0x15: execute_set_delay_timer,
    0x18: execute_set_sound_timer,
    0x1E: execute_add_to_index,
    0x29: execute_font_character,
    0x33: execute_bcd_conversion,
    0x55: execute_store_registers,
    0x65: execute_load_registers,
}

# NN byte -> branch index; unlisted bytes fall through to no_op at index 0
MISC_DISPATCH = jnp.zeros(256, dtype=jnp.int32).at[jnp.array(list(MISC_HANDLERS))].set(
    jnp.arange(1, len(MISC_HANDLERS) + 1, dtype=jnp.int32)
)


def execute_misc_instruction(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """Dispatch FXNN instructions through the NN lookup table."""
    return jax.lax.switch(
        MISC_DISPATCH[instruction.nn],
        [no_op, *MISC_HANDLERS.values()],
        state, instruction
    )
