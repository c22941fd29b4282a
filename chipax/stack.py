"""CHIP-8 stack operations."""

import jax.numpy as jnp
from chipax.constants import ADDRESS_MASK
from chipax.state import StackState


def push(stack: StackState, address: jnp.ndarray) -> StackState:
    """Advance the pointer, then store address in the new slot."""
    pointer = (stack.pointer + 1) % stack.capacity
    masked_address = jnp.astype(address & ADDRESS_MASK, jnp.uint16)
    return stack.replace(data=stack.data.at[pointer].set(masked_address), pointer=pointer)


def pop(stack: StackState) -> tuple[StackState, jnp.ndarray]:
    """Read the address in the current slot, then retreat the pointer."""
    address = stack.data[stack.pointer]
    pointer = (stack.pointer - 1) % stack.capacity
    return stack.replace(pointer=pointer), address
