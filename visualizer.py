# visualizer.py
"""
Waveform renderer: Idle -> Running -> Frozen -> Running / Idle.

While running, every frame pulls one sample buffer from the tone
generator and draws it. Freezing stops sampling and paints an ideal sine
for the paused frequency, so the frozen picture never shows the mute ramp.
"""

import logging
import math

import dearpygui.dearpygui as dpg
import numpy as np

from audio_graph import encode_bytes

logger = logging.getLogger(__name__)

BACKGROUND = (255, 255, 255, 255)
GRID = (224, 224, 224, 255)
CENTER_LINE = (118, 75, 162, 255)
WAVE = (102, 126, 234, 255)
VEIL = (0, 0, 0, 13)
BANNER = (118, 75, 162, 179)
SPECTRUM_BAR = (118, 75, 162, 255)


def has_signal(data, band=(110, 146)):
    """True if any byte leaves the silence band around the 128 midpoint."""
    low, high = band
    data = np.asarray(data)
    return bool(np.any((data < low) | (data > high)))


def build_sine_wave(frequency, length=2048, sample_rate=44100):
    """Ideal byte-encoded sine for `frequency`, or None if it can't be drawn."""
    if frequency is None:
        return None
    try:
        freq = float(frequency)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(freq) or freq <= 0:
        return None
    t = np.arange(length) / sample_rate
    return encode_bytes(np.sin(2 * np.pi * freq * t))


def format_seconds(ms):
    return f"{ms / 1000:.2f}"


class DrawlistSurface:
    """Drawing sink on a Dear PyGui drawlist; coordinates in pixels."""

    def __init__(self, tag, width, height):
        self.tag = tag
        self.width = width
        self.height = height

    def resize(self, width, height):
        self.width = max(0, int(width))
        self.height = max(0, int(height))
        if dpg.does_item_exist(self.tag):
            dpg.configure_item(self.tag, width=self.width, height=self.height)

    def clear(self):
        dpg.delete_item(self.tag, children_only=True)

    def fill_rect(self, pmin, pmax, color):
        dpg.draw_rectangle(pmin, pmax, color=color, fill=color, parent=self.tag)

    def line(self, p1, p2, color, thickness=1):
        dpg.draw_line(p1, p2, color=color, thickness=thickness, parent=self.tag)

    def polyline(self, points, color, thickness=1):
        dpg.draw_polyline(np.asarray(points).tolist(), color=color,
                          thickness=thickness, parent=self.tag)

    def text(self, pos, text, color, size=24, centered=False):
        x, y = pos
        if centered:
            # rough glyph metrics of the default font
            x -= len(text) * size * 0.25
            y -= size / 2
        dpg.draw_text((x, y), text, color=color, size=size, parent=self.tag)


class SpectrumView:
    """Bar read-out of the analyser's frequency bins."""

    def __init__(self, surface, bar_width=4):
        self.surface = surface
        self.bar_width = bar_width

    def draw(self, bins):
        w, h = self.surface.width, self.surface.height
        self.surface.clear()
        if w <= 0 or h <= 0:
            return
        self.surface.fill_rect((0, 0), (w, h), BACKGROUND)
        if bins is None or len(bins) == 0:
            return
        count = max(1, w // self.bar_width)
        # resample the bins to one value per bar
        levels = np.interp(
            np.linspace(0, len(bins) - 1, count),
            np.arange(len(bins)),
            np.asarray(bins, dtype=np.float64),
        )
        for i, level in enumerate(levels):
            top = h - level / 255.0 * h
            if top >= h:
                continue
            x = i * self.bar_width
            self.surface.fill_rect((x, top), (x + self.bar_width - 1, h), SPECTRUM_BAR)

    def clear(self):
        self.draw(None)


class WaveformRenderer:
    def __init__(self, surface, engine, scheduler, settings, on_time=None, spectrum=None):
        self.surface = surface
        self.engine = engine        # read-only: only ever sampled
        self.scheduler = scheduler
        self.settings = settings
        self.on_time = on_time or (lambda text: None)
        self.spectrum = spectrum

        self.data = None            # most recently drawn buffer
        self.last_good = None       # most recent buffer with real signal
        self.animation_handle = None
        self.elapsed_ms = 0.0
        self.is_frozen = False
        self.frozen_frequency = None

    @property
    def state(self):
        if self.is_frozen:
            return "frozen"
        if self.animation_handle is not None and self.scheduler.is_pending(self.animation_handle):
            return "running"
        return "idle"

    def resize(self, width, height):
        self.surface.resize(width, height)

    def reset_time(self):
        self.elapsed_ms = 0.0

    def start(self, fresh=True):
        self._cancel_frame()
        self.is_frozen = False
        self.frozen_frequency = None
        if fresh:
            self.reset_time()
            self.last_good = None
        self._tick()

    def freeze(self, frequency=None):
        self._cancel_frame()
        self.is_frozen = True

        wave = build_sine_wave(frequency, self.engine.fft_size, self.engine.sample_rate)
        if wave is None:
            self.frozen_frequency = None
            wave = self.last_good if self.last_good is not None else self.data
        else:
            self.frozen_frequency = float(frequency)
        self.draw(wave)

    def clear(self):
        self._cancel_frame()
        self.is_frozen = False
        self.frozen_frequency = None
        self.elapsed_ms = 0.0
        self.data = None
        self.last_good = None
        self._paint_background()
        self.on_time(format_seconds(0))
        if self.spectrum is not None:
            self.spectrum.clear()

    def draw(self, data):
        w, h = self.surface.width, self.surface.height
        if w <= 0 or h <= 0:
            return
        self._paint_background()

        if data is not None and len(data) > 0:
            data = np.asarray(data)
            xs = np.arange(len(data)) * (w / len(data))
            ys = data.astype(np.float64) / 128.0 * h / 2
            self.surface.polyline(np.column_stack((xs, ys)), WAVE, 2)
            self.data = data

        if self.is_frozen:
            self._draw_paused_banner()

    def _tick(self):
        self.animation_handle = None
        if self.is_frozen:
            return

        sample = self.engine.get_waveform_sample()
        if sample is not None:
            # the engine refills its buffer on every call
            frame = np.array(sample, dtype=np.uint8)
            if has_signal(frame, self.settings.silence_band):
                self.last_good = frame
            self.draw(frame)
            self.elapsed_ms += self.settings.frame_ms
            self.on_time(format_seconds(self.elapsed_ms))
            if self.spectrum is not None:
                self.spectrum.draw(self.engine.get_spectrum_sample())

        self.animation_handle = self.scheduler.request_frame(self._tick)

    def _cancel_frame(self):
        if self.animation_handle is not None:
            self.scheduler.cancel_frame(self.animation_handle)
            self.animation_handle = None

    def _paint_background(self):
        w, h = self.surface.width, self.surface.height
        self.surface.clear()
        if w <= 0 or h <= 0:
            return
        self.surface.fill_rect((0, 0), (w, h), BACKGROUND)

        gx, gy = self.settings.grid_spacing
        for x in range(0, int(w), gx):
            self.surface.line((x, 0), (x, h), GRID, 1)
        for y in range(0, int(h), gy):
            self.surface.line((0, y), (w, y), GRID, 1)
        # zero crossing
        self.surface.line((0, h / 2), (w, h / 2), CENTER_LINE, 2)

    def _draw_paused_banner(self):
        w, h = self.surface.width, self.surface.height
        self.surface.fill_rect((0, 0), (w, h), VEIL)
        if self.frozen_frequency:
            text = f"Paused - {self.frozen_frequency:g} Hz"
        else:
            text = "Paused"
        self.surface.text((w / 2, h / 2), text, BANNER, size=24, centered=True)
