"""Tests for frame pacing and the keypad map."""

import pygame
import pytest

from chipax.driver import KEY_MAP, QUIT_KEY, FramePacer, run_emulator
from chipax.logging import ConsoleLogger


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestFramePacer:

    def test_no_frames_before_first_tick(self):
        clock = FakeClock()
        pacer = FramePacer(clock=clock)

        assert pacer.frames_due() == 0

    def test_frames_follow_wall_clock(self):
        clock = FakeClock()
        pacer = FramePacer(clock=clock)

        clock.now += 1 / 60 + 1e-6
        assert pacer.frames_due() == 1

        clock.now += 0.5
        assert pacer.frames_due() == 30
        assert pacer.frames_due() == 0

    def test_start_resets(self):
        clock = FakeClock()
        pacer = FramePacer(clock=clock)
        clock.now += 1.0
        pacer.start()

        assert pacer.frames_due() == 0

    def test_batch_size_catches_up(self):
        pacer = FramePacer(instructions_per_frame=10, clock=FakeClock())

        assert pacer.batch_size(0) == 10
        assert pacer.batch_size(1) == 10
        assert pacer.batch_size(4) == 40


class TestKeyMap:

    def test_is_bijection_onto_keypad(self):
        assert len(KEY_MAP) == 16
        assert sorted(KEY_MAP.values()) == list(range(16))

    def test_layout(self):
        assert KEY_MAP[pygame.K_1] == 0x1
        assert KEY_MAP[pygame.K_4] == 0xC
        assert KEY_MAP[pygame.K_x] == 0x0
        assert KEY_MAP[pygame.K_v] == 0xF

    def test_quit_key_not_mapped(self):
        assert QUIT_KEY not in KEY_MAP


def test_missing_rom_returns_error(tmp_path, capsys):
    logger = ConsoleLogger("Driver", use_colors=False)

    status = run_emulator(str(tmp_path / "nope.ch8"), audio=False, logger=logger)

    assert status == 1
    assert "nope.ch8" in capsys.readouterr().out
