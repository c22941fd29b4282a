"""CHIP-8 control flow instructions."""

import jax
import jax.lax
import jax.numpy as jnp
from chipax.state import EmulatorState
from chipax.decode import DecodedInstruction
from chipax.constants import ADDRESS_MASK
from chipax.stack import push


def execute_jump(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """1NNN - Jump to address NNN."""
    return state.replace(pc=jnp.astype(instruction.nnn, jnp.uint16))


def execute_call(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """2NNN - Call subroutine at NNN."""
    state = state.replace(stack=push(state.stack, state.pc))
    return execute_jump(state, instruction)


def skip_next(state: EmulatorState) -> EmulatorState:
    return state.replace(pc=(state.pc + 2) & ADDRESS_MASK)


def make_skip_instruction(condition_fn):
    """Factory for skip instructions."""
    def skip_instruction(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
        condition = condition_fn(state, instruction)
        return jax.lax.cond(
            condition,
            skip_next,
            lambda s: s,
            state
        )
    return skip_instruction


execute_skip_if_equal_immediate = make_skip_instruction(
    lambda state, inst: state.V[inst.x] == inst.nn
)

execute_skip_if_not_equal_immediate = make_skip_instruction(
    lambda state, inst: state.V[inst.x] != inst.nn
)

# 5XY0 / 9XY0 with a non-zero last nibble are not instructions
execute_skip_if_equal_register = make_skip_instruction(
    lambda state, inst: (state.V[inst.x] == state.V[inst.y]) & (inst.n == 0)
)

execute_skip_if_not_equal_register = make_skip_instruction(
    lambda state, inst: (state.V[inst.x] != state.V[inst.y]) & (inst.n == 0)
)


def execute_jump_with_offset_modern(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """BXNN - Jump to address XNN + VX (modern behavior)."""
    register_value = jnp.astype(state.V[instruction.x], jnp.uint16)
    jump_address = (instruction.nnn + register_value) & ADDRESS_MASK
    return state.replace(pc=jnp.astype(jump_address, jnp.uint16))


def execute_jump_with_offset_legacy(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """BNNN - Jump to address NNN + V0 (legacy behavior)."""
    jump_address = (instruction.nnn + jnp.astype(state.V[0], jnp.uint16)) & ADDRESS_MASK
    return state.replace(pc=jnp.astype(jump_address, jnp.uint16))


def execute_skip_if_key(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """EX9E/EXA1 - Skip if key pressed/not pressed."""
    key_index = state.V[instruction.x] & 0xF
    key_pressed = state.keypad[key_index]
    condition = ((instruction.nn == 0x9E) & key_pressed) | ((instruction.nn == 0xA1) & ~key_pressed)

    return jax.lax.cond(
        condition,
        skip_next,
        lambda state: state,
        state
    )
