"""CHIP-8 rendering utilities for visualization.

The emulator keeps its framebuffer packed (256 bytes, 1 bit per pixel). Every
function here reads that buffer and never writes it back.
"""
import jax.numpy as jnp
import numpy as np
from typing import Tuple
import cv2

from chipax.constants import SCREEN_WIDTH, SCREEN_HEIGHT, DISPLAY_BYTES


def unpack_display(display) -> np.ndarray:
    """Unpack one packed display (256,) or a batch (N, 256) into row-major booleans."""
    packed = np.asarray(display, dtype=np.uint8)
    pixels = np.unpackbits(packed, axis=-1).astype(np.bool_)
    return pixels.reshape(*packed.shape[:-1], SCREEN_HEIGHT, SCREEN_WIDTH)


def chip8_display_to_rgb(
    display: jnp.ndarray,
    scale: int = 8,
    on_color: Tuple[int, int, int] = (255, 255, 255),
    off_color: Tuple[int, int, int] = (0, 0, 0),
) -> np.ndarray:
    """Convert a packed CHIP-8 display to an RGB array with optional upscaling.

    Args:
        display: Packed uint8 array of shape (256,)
        scale: Upscaling factor for better visibility (default: 8x)
        on_color: RGB color for "on" pixels (default: white)
        off_color: RGB color for "off" pixels (default: black)

    Returns:
        RGB array of shape (32*scale, 64*scale, 3) with uint8 values
    """
    pixels = unpack_display(display)

    rgb_frame = np.zeros((SCREEN_HEIGHT, SCREEN_WIDTH, 3), dtype=np.uint8)
    rgb_frame[pixels] = on_color
    rgb_frame[~pixels] = off_color

    # Nearest neighbour upscaling
    if scale > 1:
        rgb_frame = np.repeat(np.repeat(rgb_frame, scale, axis=0), scale, axis=1)

    return rgb_frame


def display_to_rgba32(display: jnp.ndarray) -> np.ndarray:
    """Convert a packed display to 32-bit RGBA words, white when on and black when off."""
    return np.where(unpack_display(display), np.uint32(0xFFFFFFFF), np.uint32(0)).astype(np.uint32)


def create_color_scheme(
    scheme: str = "white",
) -> Tuple[Tuple[int, int, int], Tuple[int, int, int]]:
    """Get predefined color schemes for CHIP-8 rendering.

    Args:
        scheme: Color scheme name ("white", "classic", "amber", "blue", "retro")

    Returns:
        Tuple of (on_color, off_color) as RGB tuples
    """
    schemes = {
        "white": ((255, 255, 255), (0, 0, 0)),  # White on black
        "classic": ((0, 255, 0), (0, 0, 0)),  # Green on black
        "amber": ((255, 176, 0), (0, 0, 0)),  # Amber on black
        "blue": ((0, 255, 255), (0, 0, 64)),  # Cyan on dark blue
        "retro": ((255, 255, 0), (64, 0, 64)),  # Yellow on purple
    }

    if scheme not in schemes:
        raise ValueError(
            f"Unknown color scheme '{scheme}'. Available: {list(schemes.keys())}"
        )

    return schemes[scheme]


def batch_render(
    displays: jnp.ndarray, scale: int = 4, color_scheme: str = "white"
) -> np.ndarray:
    """Render multiple packed displays in a grid layout with transparent spacing.

    Args:
        displays: Array of shape (batch_size, 256) with packed displays
        scale: Upscaling factor (smaller for batch rendering)
        color_scheme: Color scheme name

    Returns:
        RGBA array showing all displays in a grid layout with transparent padding
    """
    batch_size = displays.shape[0]
    on_color, off_color = create_color_scheme(color_scheme)

    padding = 5  # space between displays in pixels

    grid_cols = int(np.ceil(np.sqrt(batch_size)))
    grid_rows = int(np.ceil(batch_size / grid_cols))

    rendered_displays = []
    for i in range(batch_size):
        rgb = chip8_display_to_rgb(displays[i], scale, on_color, off_color)
        rgba = np.concatenate([rgb, 255 * np.ones((*rgb.shape[:2], 1), dtype=np.uint8)], axis=-1)
        rendered_displays.append(rgba)

    while len(rendered_displays) < grid_rows * grid_cols:
        rendered_displays.append(np.zeros_like(rendered_displays[0]))

    display_height, display_width = rendered_displays[0].shape[:2]
    grid_height = grid_rows * display_height + (grid_rows - 1) * padding
    grid_width = grid_cols * display_width + (grid_cols - 1) * padding
    grid_image = np.zeros((grid_height, grid_width, 4), dtype=np.uint8)

    for i, rendered in enumerate(rendered_displays):
        row = i // grid_cols
        col = i % grid_cols
        y_start = row * (display_height + padding)
        x_start = col * (display_width + padding)
        grid_image[y_start:y_start + display_height, x_start:x_start + display_width] = rendered

    return grid_image


def create_video(
        displays: jnp.ndarray,
        filename: str,
        fps: float = 60.0,
        scale: int = 8,
        color_scheme: str = "white",
        persistence: bool = False,
) -> int:
    """Save a sequence of packed displays as an MP4 file.

    Args:
        displays: Packed displays of shape (N, 256), one per frame
        filename: Output MP4 path
        fps: Video frame rate
        scale: Upscaling factor
        color_scheme: Color scheme for rendering
        persistence: Enable phosphor screen simulation (smooth fading)

    Returns:
        Number of frames written
    """
    displays = np.asarray(displays)
    if displays.ndim != 2 or displays.shape[1] != DISPLAY_BYTES:
        raise ValueError(f"Expected display shape (N, {DISPLAY_BYTES}), got {displays.shape}")

    height, width = SCREEN_HEIGHT * scale, SCREEN_WIDTH * scale
    on_color, off_color = np.array(create_color_scheme(color_scheme))

    fourcc = cv2.VideoWriter_fourcc(*'mp4v')
    writer = cv2.VideoWriter(filename, fourcc, fps, (width, height))

    # Phosphor glow buffer
    glow = np.zeros((SCREEN_HEIGHT, SCREEN_WIDTH), dtype=np.float32)
    decay = 0.8

    try:
        for frame_display in unpack_display(displays):
            if persistence:
                glow = np.clip(glow * decay + frame_display.astype(np.float32), 0.0, 1.0)
                pixel_values = glow
            else:
                pixel_values = frame_display.astype(np.float32)

            frame = np.zeros((SCREEN_HEIGHT, SCREEN_WIDTH, 3), dtype=np.uint8)
            for c in range(3):
                frame[:, :, c] = off_color[c] + pixel_values * (on_color[c] - off_color[c])

            if scale > 1:
                frame = np.repeat(np.repeat(frame, scale, axis=0), scale, axis=1)
            writer.write(cv2.cvtColor(frame, cv2.COLOR_RGB2BGR))
    finally:
        writer.release()

    return len(displays)
