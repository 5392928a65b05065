import numpy as np
import pytest

from visualizer import build_sine_wave, has_signal


def test_has_signal_ignores_silence_band():
    assert not has_signal(np.full(2048, 128, dtype=np.uint8))
    quiet = np.full(2048, 128, dtype=np.uint8)
    quiet[100] = 146
    quiet[200] = 110
    assert not has_signal(quiet)
    quiet[300] = 147
    assert has_signal(quiet)


def test_has_signal_band_is_configurable():
    data = np.full(16, 128, dtype=np.uint8)
    data[0] = 135
    assert not has_signal(data)
    assert has_signal(data, band=(125, 131))


def test_build_sine_wave_encoding():
    wave = build_sine_wave(440, 2048, 44100)
    assert wave.dtype == np.uint8
    assert len(wave) == 2048
    i = np.arange(2048)
    expected = 128 + np.floor(127 * np.sin(2 * np.pi * 440 * i / 44100) + 0.5)
    assert np.array_equal(wave, expected.astype(np.uint8))


@pytest.mark.parametrize("freq", [None, 0, -5, float("nan"), float("inf"), "abc"])
def test_build_sine_wave_rejects_bad_frequency(freq):
    assert build_sine_wave(freq) is None


def test_live_sampling_captures_good_buffer(engine, renderer, simulate):
    engine.play(262)
    renderer.start()
    simulate(0.6)

    assert renderer.state == "running"
    assert renderer.last_good is not None
    assert has_signal(renderer.last_good)
    assert renderer.elapsed_ms == pytest.approx(37 * 1000 / 60)
    assert renderer.times[-1] == "0.62"


def test_sampled_buffer_is_copied(engine, renderer, simulate):
    engine.play(440)
    renderer.start()
    simulate(0.2)
    assert not np.shares_memory(renderer.data, engine.get_waveform_sample())
    assert not np.shares_memory(renderer.last_good, engine.get_waveform_sample())


def test_freeze_right_after_play_shows_ideal_wave(engine, renderer, surface, simulate):
    engine.play(440)
    renderer.start()
    renderer.freeze(440)

    ideal = build_sine_wave(440, engine.fft_size, engine.sample_rate)
    assert np.array_equal(renderer.data, ideal)
    (_, points, _, _), = surface.of_kind("polyline")
    assert np.allclose(points[:, 1], ideal / 128.0 * surface.height / 2)

    simulate(0.2)
    assert np.array_equal(renderer.data, ideal)


def test_freeze_cancels_pending_frame(engine, renderer, scheduler):
    engine.play(440)
    renderer.start()
    handle = renderer.animation_handle
    assert scheduler.is_pending(handle)

    renderer.freeze(440)

    assert renderer.state == "frozen"
    assert renderer.animation_handle is None
    assert not scheduler.is_pending(handle)


def test_frozen_banner_names_frequency(engine, renderer, surface):
    engine.play(440)
    renderer.start()
    renderer.freeze(440)
    assert [op[1] for op in surface.of_kind("text")] == ["Paused - 440 Hz"]


def test_freeze_without_frequency_uses_last_good(engine, renderer, simulate):
    engine.play(262)
    renderer.start()
    simulate(0.3)
    good = renderer.last_good

    renderer.freeze()

    assert np.array_equal(renderer.data, good)
    assert renderer.is_frozen


def test_freeze_falls_back_to_last_drawn_buffer(engine, renderer, surface):
    engine.initialize()
    renderer.start()
    # silent chain: drawn but never good
    assert renderer.last_good is None
    drawn = renderer.data

    renderer.freeze(float("nan"))

    assert np.array_equal(renderer.data, drawn)
    assert renderer.frozen_frequency is None
    assert [op[1] for op in surface.of_kind("text")] == ["Paused"]


def test_clear_resets_everything(engine, renderer, surface, simulate):
    engine.play(262)
    renderer.start()
    simulate(0.3)
    renderer.freeze(262)

    renderer.clear()

    assert renderer.state == "idle"
    assert renderer.times[-1] == "0.00"
    assert renderer.elapsed_ms == 0
    assert renderer.last_good is None
    assert renderer.data is None
    assert renderer.frozen_frequency is None
    assert surface.of_kind("line")
    assert not surface.of_kind("polyline")


def test_freeze_after_clear_shows_blank_grid(engine, renderer, surface):
    renderer.clear()
    renderer.freeze()

    assert not surface.of_kind("polyline")
    assert surface.of_kind("line")
    assert [op[1] for op in surface.of_kind("text")] == ["Paused"]


def test_start_never_runs_two_loops(engine, renderer, scheduler):
    engine.play(440)
    renderer.start()
    first = renderer.animation_handle
    renderer.start()
    assert not scheduler.is_pending(first)
    assert scheduler.is_pending(renderer.animation_handle)


def test_resume_keeps_cached_buffer(engine, renderer, simulate):
    engine.play(262)
    renderer.start()
    simulate(0.3)
    renderer.freeze(262)
    elapsed = renderer.elapsed_ms

    renderer.start(fresh=False)

    assert renderer.last_good is not None
    assert renderer.elapsed_ms > elapsed


def test_ticks_before_initialize_draw_nothing(renderer, surface, simulate):
    renderer.start()
    simulate(0.1)
    assert renderer.state == "running"
    assert renderer.data is None
    assert surface.ops == []


def test_zero_sized_surface_is_skipped(engine, renderer, surface, simulate):
    engine.play(440)
    renderer.resize(0, 0)
    renderer.start()
    simulate(0.1)
    assert surface.ops == []

    renderer.resize(640, 200)
    simulate(1 / 60)
    (_, points, _, _), = surface.of_kind("polyline")
    assert points[-1, 0] < 640


def test_state_follows_the_scheduler(engine, renderer, scheduler):
    engine.play(440)
    renderer.start()
    assert renderer.state == "running"

    # a frame dropped outside the renderer leaves no loop running
    scheduler.cancel_frame(renderer.animation_handle)
    assert renderer.state == "idle"
