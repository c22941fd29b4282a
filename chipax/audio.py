"""Sound output for the interactive driver.

The driver pushes one tone segment and one silence segment per batch of
elapsed frames; the audio consumer drains them into a square wave. Both
sides go through ``AudioQueue``, which owns its lock.
"""

import threading
from collections import deque
from typing import Optional

import numpy as np
import pygame

from chipax.constants import TIMER_FREQUENCY
from chipax.logging import ConsoleLogger


class AudioQueue:
    """Bounded producer/consumer queue of (samples, tone_on) segments."""

    def __init__(
        self,
        sample_rate: int = 44100,
        max_segments: int = 64,
        amplitude: int = 3000,
        period: int = 256,
    ):
        self.sample_rate = sample_rate
        self.amplitude = amplitude
        self.period = period
        self._segments = deque(maxlen=max_segments)
        self._lock = threading.Lock()
        self._phase = 0

    def push_frames(self, tone_frames: int, total_frames: int, fps: int = TIMER_FREQUENCY):
        """Queue tone_frames frames of tone followed by the rest of total_frames as silence."""
        tone_frames = min(max(tone_frames, 0), total_frames)
        with self._lock:
            for frames, tone_on in ((tone_frames, True), (total_frames - tone_frames, False)):
                samples = self.sample_rate * frames // fps
                if samples > 0:
                    self._segments.append([samples, tone_on])

    @property
    def pending(self) -> int:
        """Number of samples waiting to be played."""
        with self._lock:
            return sum(samples for samples, _ in self._segments)

    def fill(self, num_samples: int) -> np.ndarray:
        """Drain up to num_samples samples as signed 16-bit audio, padding with silence."""
        out = np.zeros(num_samples, dtype=np.int16)
        position = 0
        with self._lock:
            while position < num_samples and self._segments:
                segment = self._segments[0]
                count = min(segment[0], num_samples - position)
                if segment[1]:
                    phase = (self._phase + np.arange(count)) % self.period
                    out[position:position + count] = np.where(
                        phase < self.period // 2, self.amplitude, -self.amplitude
                    )
                self._phase = (self._phase + count) % self.period
                segment[0] -= count
                position += count
                if segment[0] == 0:
                    self._segments.popleft()
        return out


class PygameAudioSink:
    """Feeds an AudioQueue into a pygame mixer channel."""

    def __init__(self, queue: AudioQueue, chunk_size: int = 2048, logger: Optional[ConsoleLogger] = None):
        self.queue = queue
        self.chunk_size = chunk_size
        self.logger = logger or ConsoleLogger("Audio")
        self.channel = None

        try:
            pygame.mixer.init(queue.sample_rate, -16, 1, chunk_size)
            self.channel = pygame.mixer.Channel(0)
        except pygame.error as e:
            self.logger.warning(f"Audio disabled: {e}")

    @property
    def enabled(self) -> bool:
        return self.channel is not None

    def pump(self):
        """Hand the next chunk to the mixer whenever its queue slot is free."""
        if not self.enabled:
            return
        if self.channel.get_queue() is None and self.queue.pending:
            chunk = self.queue.fill(self.chunk_size)
            sound = pygame.mixer.Sound(buffer=chunk.tobytes())
            if self.channel.get_busy():
                self.channel.queue(sound)
            else:
                self.channel.play(sound)

    def close(self):
        if self.enabled:
            pygame.mixer.quit()
            self.channel = None
