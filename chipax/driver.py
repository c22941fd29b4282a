"""Interactive pygame front end: wall-clock pacing, keypad input, video and sound."""

import time
from typing import Callable, Optional

import pygame

from chipax.state import Quirks, create_state
from chipax.emulator import (
    load_rom, run_batch, tick_timers, press_key, release_key, is_waiting_for_key,
)
from chipax.errors import RomLoadError
from chipax.audio import AudioQueue, PygameAudioSink
from chipax.rendering import chip8_display_to_rgb, create_color_scheme
from chipax.logging import ConsoleLogger
from chipax.constants import PROGRAM_START, SCREEN_WIDTH, SCREEN_HEIGHT, TIMER_FREQUENCY

# Hex keypad laid out on the left block of a QWERTY keyboard
KEY_MAP = {
    pygame.K_1: 0x1, pygame.K_2: 0x2, pygame.K_3: 0x3, pygame.K_4: 0xC,
    pygame.K_q: 0x4, pygame.K_w: 0x5, pygame.K_e: 0x6, pygame.K_r: 0xD,
    pygame.K_a: 0x7, pygame.K_s: 0x8, pygame.K_d: 0x9, pygame.K_f: 0xE,
    pygame.K_z: 0xA, pygame.K_x: 0x0, pygame.K_c: 0xB, pygame.K_v: 0xF,
}
QUIT_KEY = pygame.K_ESCAPE


class FramePacer:
    """Converts wall-clock time into 60 Hz frames and instruction budgets."""

    def __init__(
        self,
        instructions_per_frame: int = 10,
        fps: int = TIMER_FREQUENCY,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.instructions_per_frame = instructions_per_frame
        self.fps = fps
        self.clock = clock
        self.start_time = clock()
        self.frames_done = 0

    def start(self):
        """Restart the frame count from now."""
        self.start_time = self.clock()
        self.frames_done = 0

    def frames_due(self) -> int:
        """Frames elapsed since the last call. They are recorded as done."""
        elapsed = self.clock() - self.start_time
        frames = max(int(elapsed * self.fps) - self.frames_done, 0)
        self.frames_done += frames
        return frames

    def batch_size(self, frames: int) -> int:
        # Catch up on missed frames, and never stall completely
        return max(frames, 1) * self.instructions_per_frame


def run_emulator(
    rom_filename: str,
    quirks: Quirks = Quirks(),
    instructions_per_frame: int = 10,
    scale: int = 10,
    color_scheme: str = "white",
    load_address: int = PROGRAM_START,
    audio: bool = True,
    logger: Optional[ConsoleLogger] = None,
) -> int:
    """Run a ROM in a pygame window until the window closes or ESC is pressed.

    Returns:
        Process exit status: 0 after a normal quit, 1 if the ROM could not be loaded
    """
    logger = logger or ConsoleLogger("Driver")
    on_color, off_color = create_color_scheme(color_scheme)

    try:
        state = load_rom(create_state(quirks=quirks), rom_filename, load_address)
    except RomLoadError as e:
        logger.error(str(e))
        return 1
    logger.info(f"Loaded {rom_filename} at 0x{load_address & 0xFFF:03X}")

    pygame.init()
    screen = pygame.display.set_mode((SCREEN_WIDTH * scale, SCREEN_HEIGHT * scale))
    pygame.display.set_caption("Chipax")

    sink = None
    audio_queue = AudioQueue()
    if audio:
        sink = PygameAudioSink(audio_queue, logger=logger)

    pacer = FramePacer(instructions_per_frame)
    budget = 0
    running = True

    try:
        while running:
            waiting = bool(is_waiting_for_key(state))
            if not waiting and budget > 0:
                state = run_batch(state, budget)

            for event in pygame.event.get():
                if event.type == pygame.QUIT:
                    running = False
                elif event.type == pygame.KEYDOWN:
                    if event.key == QUIT_KEY:
                        running = False
                    elif event.key in KEY_MAP:
                        state = press_key(state, KEY_MAP[event.key])
                elif event.type == pygame.KEYUP and event.key in KEY_MAP:
                    state = release_key(state, KEY_MAP[event.key])
            if not running:
                logger.info("Quit")
                break

            frames = pacer.frames_due()
            if frames > 1:
                logger.debug(f"Catching up {frames} frames")
            if frames > 0:
                tone_frames = min(frames, int(state.sound_timer))
                state = tick_timers(state, frames)
                audio_queue.push_frames(tone_frames, frames)

                rgb = chip8_display_to_rgb(state.display, scale, on_color, off_color)
                pygame.surfarray.blit_array(screen, rgb.swapaxes(0, 1))
                pygame.display.flip()
            if sink is not None:
                sink.pump()

            budget = pacer.batch_size(frames)
            if waiting or frames == 0:
                pygame.time.wait(1000 // TIMER_FREQUENCY)
    finally:
        if sink is not None:
            sink.close()
        pygame.quit()

    return 0
