"""CHIP-8 ALU operations (8xxx).

Each operation maps the operand values (VX, VY) to ``(result, flag)``. The
flag is ``None`` for operations that leave VF alone. Flags are computed from
the operands before anything is written back; VX is written first and VF
last, so VF holds the flag even when X is F.
"""

import jax
import jax.lax
import jax.numpy as jnp
from chipax.state import EmulatorState
from chipax.decode import DecodedInstruction
from chipax.constants import FLAG_REGISTER


def alu_set(vx, vy):
    """8XY0 - Set: VX = VY."""
    return vy, None


def alu_or(vx, vy):
    """8XY1 - Binary OR: VX |= VY."""
    return vx | vy, None


def alu_and(vx, vy):
    """8XY2 - Binary AND: VX &= VY."""
    return vx & vy, None


def alu_xor(vx, vy):
    """8XY3 - Logical XOR: VX ^= VY."""
    return vx ^ vy, None


def alu_add(vx, vy):
    """8XY4 - Add: VX += VY, set carry flag."""
    result = jnp.astype(vx, jnp.int32) + vy
    carry = jnp.astype(result > 0xFF, jnp.uint8)
    return jnp.astype(result & 0xFF, jnp.uint8), carry


def alu_sub_xy(vx, vy):
    """8XY5 - Subtract: VX -= VY, VF = NOT borrow."""
    no_borrow = jnp.astype(vx >= vy, jnp.uint8)
    result = (jnp.astype(vx, jnp.int32) - vy) & 0xFF
    return jnp.astype(result, jnp.uint8), no_borrow


def alu_shift_right(source, _):
    """8XY6 - Shift right, VF = bit shifted out."""
    shifted_bit = jnp.astype(source & 1, jnp.uint8)
    return jnp.astype(source >> 1, jnp.uint8), shifted_bit


def alu_sub_yx(vx, vy):
    """8XY7 - Subtract: VX = VY - VX, VF = NOT borrow."""
    no_borrow = jnp.astype(vy >= vx, jnp.uint8)
    result = (jnp.astype(vy, jnp.int32) - vx) & 0xFF
    return jnp.astype(result, jnp.uint8), no_borrow


def alu_shift_left(source, _):
    """8XYE - Shift left, VF = bit shifted out."""
    shifted_bit = jnp.astype((source >> 7) & 1, jnp.uint8)
    return jnp.astype((jnp.astype(source, jnp.int32) << 1) & 0xFF, jnp.uint8), shifted_bit


# N nibble -> branch index in execute_alu_operation; 9 is the undefined no-op
ALU_DISPATCH = jnp.array([0, 1, 2, 3, 4, 5, 6, 7, 9, 9, 9, 9, 9, 9, 8, 9], dtype=jnp.int32)


def execute_alu_operation(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """8XYN - ALU operations dispatcher."""
    vx = state.V[instruction.x]
    vy = state.V[instruction.y]
    shift_source = vy if state.quirks.shift_uses_vy else vx

    def write_back(operation, *operands):
        def branch(V):
            result, flag = operation(*operands)
            V = V.at[instruction.x].set(result)
            if flag is not None:
                V = V.at[FLAG_REGISTER].set(flag)
            return V
        return branch

    branches = [
        write_back(alu_set, vx, vy),
        write_back(alu_or, vx, vy),
        write_back(alu_and, vx, vy),
        write_back(alu_xor, vx, vy),
        write_back(alu_add, vx, vy),
        write_back(alu_sub_xy, vx, vy),
        write_back(alu_shift_right, shift_source, vy),
        write_back(alu_sub_yx, vx, vy),
        write_back(alu_shift_left, shift_source, vy),
        lambda V: V,
    ]

    new_V = jax.lax.switch(ALU_DISPATCH[instruction.n], branches, state.V)
    return state.replace(V=new_V)
