from pathlib import Path

import pytest

from state import AppState


def test_defaults():
    s = AppState()
    assert s.sample_rate == 44100
    assert s.fft_size == 2048
    assert s.default_volume == 0.3
    assert s.catalog_path == Path("data") / "frequencies.json"
    assert s.frame_ms == pytest.approx(1000 / 60)


def test_from_args_without_flags_keeps_defaults():
    s = AppState.from_args([])
    assert s.manager_password == "admin123"
    assert s.start_in_manager is False
    assert s.log_level == "INFO"


def test_from_args_overrides(tmp_path):
    s = AppState.from_args([
        "--catalog", str(tmp_path / "f.json"),
        "--password", "s3cret",
        "--manager",
        "--log-level", "DEBUG",
        "--sample-rate", "48000",
        "--buffer-size", "512",
    ])
    assert s.catalog_path == tmp_path / "f.json"
    assert s.manager_password == "s3cret"
    assert s.start_in_manager is True
    assert s.log_level == "DEBUG"
    assert s.sample_rate == 48000
    assert s.buffer_size == 512


def test_from_args_rejects_unknown_log_level():
    with pytest.raises(SystemExit):
        AppState.from_args(["--log-level", "LOUD"])
