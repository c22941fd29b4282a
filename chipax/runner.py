"""Headless frame-by-frame execution for recording and batch evaluation."""

from functools import partial

import jax
import jax.numpy as jnp

from chipax.state import EmulatorState
from chipax.emulator import run_batch, tick_timers
from chipax.logging import scan_with_progress


def run_frame(state: EmulatorState, instructions_per_frame: int) -> EmulatorState:
    """Run one 60 Hz frame: an instruction batch followed by one timer tick."""
    state = run_batch(state, instructions_per_frame)
    return tick_timers(state, 1)


@partial(jax.jit, static_argnums=(1, 2, 3))
def run_frames(
    state: EmulatorState,
    num_frames: int,
    instructions_per_frame: int = 10,
    progress: bool = False,
) -> tuple[EmulatorState, jnp.ndarray]:
    """Run num_frames frames and collect the display after each one.

    Returns:
        Tuple of the final state and the packed displays, shape (num_frames, 256)
    """
    def frame_step(state, _):
        state = run_frame(state, instructions_per_frame)
        return state, state.display

    if progress:
        frame_step = scan_with_progress(num_frames)(frame_step)

    return jax.lax.scan(frame_step, state, jnp.arange(num_frames))
