"""Tests for fetch/step/run_batch and the peripheral state operations."""

import pytest
import jax.numpy as jnp
from chipax import (
    FONT_START, NO_KEY_WAIT, PROGRAM_START, RomLoadError, Quirks, create_state,
    display_pixels, execute, fetch, is_waiting_for_key, load_program, load_rom,
    press_key, release_key, run_batch, sound_active, step, tick_timers,
)
from conftest import set_registers, setup_sprite_in_memory


BYTE_SAMPLES = [0x00, 0x01, 0x0F, 0x7F, 0x80, 0xAB, 0xFE, 0xFF]


class TestArithmeticProperties:
    """Carry and borrow hold for every operand pair."""

    def test_add_carry_property(self, fresh_state):
        for a in BYTE_SAMPLES:
            for b in BYTE_SAMPLES:
                state = execute(set_registers(fresh_state, V2=a, V7=b), 0x8274)
                assert state.V[2] == (a + b) % 256
                assert state.V[15] == int(a + b > 255)

    def test_sub_borrow_property(self, fresh_state):
        for a in BYTE_SAMPLES:
            for b in BYTE_SAMPLES:
                state = execute(set_registers(fresh_state, V2=a, V7=b), 0x8275)
                assert state.V[2] == (a - b) % 256
                assert state.V[15] == int(a >= b)


class TestDisplayProperties:

    def test_clear_yields_blank_matrix(self, fresh_state):
        state = fresh_state.replace(display=jnp.full_like(fresh_state.display, 0xAA))
        state = execute(state, 0x00E0)

        pixels = display_pixels(state.display)
        assert pixels.shape == (32, 64)
        assert not pixels.any()

    def test_double_draw_restores_display(self, fresh_state):
        state = setup_sprite_in_memory(fresh_state, 0x300, [0x3C, 0x42, 0x81, 0xFF])
        state = set_registers(state, V0=61, V1=30)
        state = execute(state, 0xA300)
        before = state.display

        state = execute(state, 0xD014)
        state = execute(state, 0xD014)

        assert (state.display == before).all()
        assert state.V[15] == 1


class TestStoreLoadRoundTrip:

    @pytest.mark.parametrize("index", [0x300, 0x000, 0xFF0])
    def test_round_trip(self, modern_state, index):
        values = jnp.array([3, 1, 4, 1, 5, 9, 2, 6], dtype=jnp.uint8)
        state = modern_state.replace(V=modern_state.V.at[:8].set(values))
        state = execute(state, 0xA000 | index)

        state = execute(state, 0xF755)
        state = state.replace(V=jnp.zeros_like(state.V))
        state = execute(state, 0xF765)

        assert (state.V[:8] == values).all()

    def test_store_wraps_around_memory(self, modern_state):
        """I = 4094 with x = 3 continues at address 0."""
        state = set_registers(modern_state, V0=0x11, V1=0x22, V2=0x33, V3=0x44)
        state = execute(state, 0xAFFE)

        state = execute(state, 0xF355)

        assert state.memory[0xFFE] == 0x11
        assert state.memory[0xFFF] == 0x22
        assert state.memory[0x000] == 0x33
        assert state.memory[0x001] == 0x44

        state = state.replace(V=jnp.zeros_like(state.V))
        state = execute(state, 0xF365)
        assert [int(v) for v in state.V[:4]] == [0x11, 0x22, 0x33, 0x44]


class TestStep:
    """Fetch/execute cycle scenarios."""

    def test_fetch_reads_big_endian(self, fresh_state):
        state = load_program(fresh_state, bytes([0x12, 0x34]))
        state, instruction = fetch(state)

        assert instruction == 0x1234
        assert state.pc == PROGRAM_START + 2

    def test_fetch_wraps_at_top_of_memory(self, fresh_state):
        state = load_program(fresh_state, bytes([0xAB, 0xCD]), 0xFFF)
        state, instruction = fetch(state)

        assert instruction == 0xABCD
        assert state.pc == 0x001

    def test_load_and_add_scenario(self, fresh_state):
        state = load_program(fresh_state, bytes([0x60, 0x0A, 0x70, 0x05, 0x00, 0x00]))

        state = step(step(state))

        assert state.V[0] == 15
        assert state.pc == 0x204

    def test_font_lookup_scenario(self, fresh_state):
        state = load_program(fresh_state, bytes([0xA2, 0x0A, 0xF0, 0x29]))

        state = step(state)
        assert state.I == 0x20A
        state = step(state)

        assert state.I == FONT_START

    def test_jump_offset_wraps(self, original_state):
        state = set_registers(original_state, V0=5)
        state = execute(state, 0xBFFE)
        assert state.pc == 0x003

    def test_call_return_resumes_after_call(self, fresh_state):
        state = load_program(fresh_state, bytes([0x22, 0x06, 0x00, 0x00, 0x00, 0x00, 0x00, 0xEE]))

        state = step(state)
        assert state.pc == 0x206
        state = step(state)

        assert state.pc == 0x202

    def test_unknown_opcode_only_advances_pc(self, fresh_state):
        state = load_program(fresh_state, bytes([0xF0, 0xFF]))
        after = step(state)

        assert after.pc == 0x202
        assert (after.V == state.V).all()
        assert (after.memory == state.memory).all()


class TestKeyWait:
    """FX0A blocks step and run_batch until press_key."""

    def test_step_is_noop_while_waiting(self, fresh_state):
        state = load_program(fresh_state, bytes([0xF5, 0x0A, 0x61, 0x01]))
        state = step(state)
        assert is_waiting_for_key(state)

        blocked = step(state)
        assert blocked.pc == state.pc
        assert blocked.V[1] == 0

    def test_run_batch_stops_on_wait(self, fresh_state):
        state = load_program(fresh_state, bytes([0x61, 0x01, 0xF5, 0x0A, 0x62, 0x02]))

        state = run_batch(state, 100)

        assert state.V[1] == 1
        assert state.V[2] == 0
        assert state.pc == 0x204
        assert state.waiting_key == 5

    def test_press_resumes_execution(self, fresh_state):
        state = load_program(fresh_state, bytes([0xF5, 0x0A, 0x62, 0x02]))
        state = run_batch(state, 10)

        state = press_key(state, 0xC)
        assert not is_waiting_for_key(state)
        assert state.V[5] == 0xC

        state = step(state)
        assert state.V[2] == 2

    def test_press_without_wait_only_sets_key(self, fresh_state):
        state = press_key(fresh_state, 3)

        assert state.keypad[3]
        assert (state.V == fresh_state.V).all()
        assert state.waiting_key == NO_KEY_WAIT

    def test_release_key(self, fresh_state):
        state = release_key(press_key(fresh_state, 3), 3)
        assert not state.keypad[3]


class TestRunBatch:

    def test_runs_exact_instruction_count(self, fresh_state):
        # Infinite loop of increments: 7001, 1200
        state = load_program(fresh_state, bytes([0x70, 0x01, 0x12, 0x00]))

        state = run_batch(state, 10)

        assert state.V[0] == 5

    def test_zero_budget_does_nothing(self, fresh_state):
        state = load_program(fresh_state, bytes([0x70, 0x01]))
        after = run_batch(state, 0)

        assert after.pc == state.pc
        assert after.V[0] == 0


class TestTimers:

    def test_tick_counts_down(self, fresh_state):
        state = fresh_state.replace(
            delay_timer=jnp.asarray(10, dtype=jnp.uint8),
            sound_timer=jnp.asarray(2, dtype=jnp.uint8),
        )
        state = tick_timers(state)

        assert state.delay_timer == 9
        assert state.sound_timer == 1
        assert sound_active(state)

    def test_tick_saturates_at_zero(self, fresh_state):
        state = fresh_state.replace(
            delay_timer=jnp.asarray(3, dtype=jnp.uint8),
            sound_timer=jnp.asarray(1, dtype=jnp.uint8),
        )
        state = tick_timers(state, 5)

        assert state.delay_timer == 0
        assert state.sound_timer == 0
        assert not sound_active(state)

    @pytest.mark.parametrize("frames", [255, 256, 300, 10_000])
    def test_long_stall_empties_timers(self, fresh_state, frames):
        state = fresh_state.replace(
            delay_timer=jnp.asarray(200, dtype=jnp.uint8),
            sound_timer=jnp.asarray(5, dtype=jnp.uint8),
        )
        state = tick_timers(state, frames)

        assert state.delay_timer == 0
        assert state.sound_timer == 0

    def test_full_timer_survives_partial_stall(self, fresh_state):
        state = fresh_state.replace(delay_timer=jnp.asarray(255, dtype=jnp.uint8))
        state = tick_timers(state, 254)
        assert state.delay_timer == 1

    def test_timers_do_not_tick_on_step(self, fresh_state):
        state = load_program(fresh_state, bytes([0x60, 0x30, 0xF0, 0x15, 0x00, 0x00]))
        state = run_batch(state, 3)
        assert state.delay_timer == 0x30


class TestLoading:

    def test_load_rom_from_file(self, fresh_state, tmp_path):
        rom = tmp_path / "test.ch8"
        rom.write_bytes(bytes([0x00, 0xE0, 0x12, 0x00, 0xAB]))

        state = load_rom(fresh_state, str(rom))

        assert [int(b) for b in state.memory[0x200:0x205]] == [0x00, 0xE0, 0x12, 0x00, 0xAB]
        assert state.pc == PROGRAM_START

    def test_load_rom_at_custom_address(self, fresh_state, tmp_path):
        rom = tmp_path / "eti.ch8"
        rom.write_bytes(bytes([0x60, 0x01]))

        state = load_rom(fresh_state, str(rom), 0x600)

        assert state.memory[0x600] == 0x60
        assert state.pc == 0x600

    def test_missing_rom_raises(self, fresh_state, tmp_path):
        missing = tmp_path / "missing.ch8"
        with pytest.raises(RomLoadError) as excinfo:
            load_rom(fresh_state, str(missing))
        assert excinfo.value.path == str(missing)
        assert "missing.ch8" in str(excinfo.value)

    def test_load_program_wraps(self, fresh_state):
        state = load_program(fresh_state, bytes([1, 2, 3]), 0xFFE)
        assert state.memory[0xFFE] == 1
        assert state.memory[0xFFF] == 2
        assert state.memory[0x000] == 3

    def test_oversized_program_later_bytes_win(self, fresh_state):
        program = bytes([0x01] * 4096 + [0x02] * 10)

        state = load_program(fresh_state, program)

        assert [int(b) for b in state.memory[0x200:0x20A]] == [0x02] * 10
        assert state.memory[0x20A] == 0x01
        assert state.memory[0x1FF] == 0x01
        assert state.pc == PROGRAM_START

    def test_quirks_stay_on_state(self):
        state = create_state(quirks=Quirks.modern())
        state = load_program(state, bytes([0x00, 0xE0]))
        assert state.quirks == Quirks.modern()
