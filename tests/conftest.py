import numpy as np
import pytest

from audio_engine import ToneGenerator
from audio_graph import AudioClock
from scheduler import FrameScheduler
from state import AppState
from visualizer import WaveformRenderer


class FakeOutput:
    """Output device that never touches hardware; tests pull blocks by hand."""

    def __init__(self, clock):
        self.clock = clock
        self.active = False
        self.starts = 0
        self.stops = 0
        self.closed = False

    def start(self):
        self.active = True
        self.starts += 1

    def stop(self):
        self.active = False
        self.stops += 1

    def close(self):
        self.active = False
        self.closed = True


class ManualTime:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class RecordingSurface:
    def __init__(self, width=800, height=300):
        self.width = width
        self.height = height
        self.ops = []

    def resize(self, width, height):
        self.width = width
        self.height = height

    def clear(self):
        self.ops = []

    def fill_rect(self, pmin, pmax, color):
        self.ops.append(("rect", pmin, pmax, color))

    def line(self, p1, p2, color, thickness=1):
        self.ops.append(("line", p1, p2, color, thickness))

    def polyline(self, points, color, thickness=1):
        self.ops.append(("polyline", np.asarray(points), color, thickness))

    def text(self, pos, text, color, size=24, centered=False):
        self.ops.append(("text", text))

    def of_kind(self, kind):
        return [op for op in self.ops if op[0] == kind]


def make_clock(settings):
    return AudioClock(settings.sample_rate, settings.buffer_size, settings.channels,
                      output_factory=FakeOutput)


@pytest.fixture
def settings(tmp_path):
    s = AppState()
    s.catalog_path = tmp_path / "frequencies.json"
    return s


@pytest.fixture
def time_source():
    return ManualTime()


@pytest.fixture
def scheduler(time_source):
    return FrameScheduler(time_source)


@pytest.fixture
def engine(settings, scheduler):
    return ToneGenerator(settings, scheduler, clock_factory=make_clock)


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def renderer(surface, engine, scheduler, settings):
    r = WaveformRenderer(surface, engine, scheduler, settings)
    r.times = []
    r.on_time = r.times.append
    return r


@pytest.fixture
def run_audio(engine, settings):
    """Render `seconds` of audio through the engine's clock."""
    def run(seconds):
        blocks = int(round(seconds * settings.sample_rate / settings.buffer_size))
        for _ in range(blocks):
            engine.clock.render(settings.buffer_size)
    return run


@pytest.fixture
def simulate(engine, scheduler, time_source, settings):
    """Advance both clocks: one GUI frame of audio, then one scheduler tick."""
    def run(seconds):
        frame = 1.0 / settings.frame_rate
        for _ in range(int(round(seconds / frame))):
            if engine.clock is not None:
                engine.clock.render(settings.sample_rate // settings.frame_rate)
            time_source.now += frame
            scheduler.tick()
    return run
