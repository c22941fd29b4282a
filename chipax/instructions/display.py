"""CHIP-8 display operations.

The framebuffer is packed 8 pixels per byte, row-major, with the most
significant bit as the leftmost pixel. A sprite row that does not start on a
byte boundary straddles two bytes, so each row is XORed in two halves.
"""

import jax
import jax.numpy as jnp
from chipax.state import EmulatorState
from chipax.decode import DecodedInstruction
from chipax.constants import SCREEN_WIDTH, SCREEN_HEIGHT, ADDRESS_MASK, FLAG_REGISTER


def xor_byte(display: jnp.ndarray, index: jnp.ndarray, bits: jnp.ndarray) -> tuple[jnp.ndarray, jnp.ndarray]:
    """XOR bits into one display byte, returning the bits that were switched off."""
    current = jnp.astype(display[index], jnp.int32)
    updated = jnp.astype(current ^ bits, jnp.uint8)
    return display.at[index].set(updated), current & bits


def execute_display(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """DXYN - Draw sprite at (VX, VY) with height N, wrapping on both axes."""
    sprite_x = jnp.astype(state.V[instruction.x], jnp.int32)
    sprite_y = jnp.astype(state.V[instruction.y], jnp.int32)
    bit_offset = sprite_x % 8
    index = jnp.astype(state.I, jnp.int32)

    def draw_row(row, carry):
        display, collision = carry
        sprite = jnp.astype(state.memory[(index + row) & ADDRESS_MASK], jnp.int32)
        line_start = ((sprite_y + row) % SCREEN_HEIGHT) * SCREEN_WIDTH

        left = (line_start + sprite_x % SCREEN_WIDTH) // 8
        right = (line_start + (sprite_x + 7) % SCREEN_WIDTH) // 8
        display, hit_left = xor_byte(display, left, sprite >> bit_offset)
        display, hit_right = xor_byte(display, right, (sprite << (8 - bit_offset)) & 0xFF)

        return display, collision | hit_left | hit_right

    display, collision = jax.lax.fori_loop(
        0, jnp.astype(instruction.n, jnp.int32), draw_row,
        (state.display, jnp.zeros((), dtype=jnp.int32))
    )

    return state.replace(
        display=display,
        V=state.V.at[FLAG_REGISTER].set(jnp.astype(collision != 0, jnp.uint8))
    )
