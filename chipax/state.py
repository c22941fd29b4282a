"""CHIP-8 emulator state structures."""

import dataclasses

import jax
import jax.numpy as jnp
from flax.struct import PyTreeNode, field

from chipax.constants import (
    PROGRAM_START, FONT_START, FONT_DATA, MEMORY_SIZE, DISPLAY_BYTES,
    STACK_SIZE, NUM_REGISTERS, NUM_KEYS, NO_KEY_WAIT, ADDRESS_MASK,
)


@dataclasses.dataclass(frozen=True)
class Quirks:
    """Behaviours that differ between historical CHIP-8 interpreters.

    Attributes:
        shift_uses_vy: 8XY6/8XYE shift VY into VX (original) instead of shifting VX in place
        increment_index_on_load_store: FX55/FX65 leave I pointing past the last register touched
        jump_uses_vx: BNNN jumps to NNN + VX (BXNN) instead of NNN + V0
    """
    shift_uses_vy: bool = True
    increment_index_on_load_store: bool = True
    jump_uses_vx: bool = False

    @classmethod
    def original(cls) -> "Quirks":
        return cls()

    @classmethod
    def modern(cls) -> "Quirks":
        return cls(shift_uses_vy=False, increment_index_on_load_store=False, jump_uses_vx=False)


class StackState(PyTreeNode):
    """Return-address stack. The pointer wraps modulo the stack capacity."""
    data: jnp.ndarray
    pointer: jnp.ndarray

    @property
    def capacity(self) -> int:
        return self.data.shape[0]


class EmulatorState(PyTreeNode):
    """Main CHIP-8 emulator state."""
    rng: jax.random.PRNGKey
    memory: jnp.ndarray
    pc: jnp.ndarray
    display: jnp.ndarray
    stack: StackState
    delay_timer: jnp.ndarray
    sound_timer: jnp.ndarray
    keypad: jnp.ndarray
    waiting_key: jnp.ndarray
    V: jnp.ndarray
    I: jnp.ndarray
    quirks: Quirks = field(pytree_node=False, default=Quirks())


def create_state(
    rng: jax.random.PRNGKey = jax.random.PRNGKey(0),
    quirks: Quirks = Quirks(),
    stack_size: int = STACK_SIZE,
    pc: int = PROGRAM_START,
) -> EmulatorState:
    """Create initial emulator state with font data loaded."""
    if not 12 <= stack_size <= 16:
        raise ValueError(f"stack_size must be between 12 and 16, got {stack_size}")

    memory = jnp.zeros(MEMORY_SIZE, dtype=jnp.uint8)
    memory = memory.at[FONT_START:FONT_START + len(FONT_DATA)].set(FONT_DATA)

    return EmulatorState(
        rng=rng,
        memory=memory,
        pc=jnp.asarray(pc & ADDRESS_MASK, dtype=jnp.uint16),
        display=jnp.zeros(DISPLAY_BYTES, dtype=jnp.uint8),
        stack=StackState(
            data=jnp.zeros(stack_size, dtype=jnp.uint16),
            pointer=jnp.zeros((), dtype=jnp.int32),
        ),
        delay_timer=jnp.zeros((), dtype=jnp.uint8),
        sound_timer=jnp.zeros((), dtype=jnp.uint8),
        keypad=jnp.zeros(NUM_KEYS, dtype=jnp.bool_),
        waiting_key=jnp.asarray(NO_KEY_WAIT, dtype=jnp.int8),
        V=jnp.zeros(NUM_REGISTERS, dtype=jnp.uint8),
        I=jnp.zeros((), dtype=jnp.uint16),
        quirks=quirks,
    )
