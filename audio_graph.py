# audio_graph.py
"""
Signal-processing primitives for the tone generator:

    Oscillator -> GainStage -> Analyser -> AudioClock.destination

Everything is pulled block by block from the output device's callback
through AudioClock.render(). Parameters (frequency, gain) carry an
automation timeline evaluated per sample against the clock's time, so
ramps stay sample-accurate no matter how often the GUI thread schedules
them.
"""

import logging
import threading

import numpy as np

logger = logging.getLogger(__name__)

RUNNING = "running"
SUSPENDED = "suspended"
CLOSED = "closed"

_SET, _LINEAR, _TARGET = "set", "linear", "target"


class AudioUnavailableError(RuntimeError):
    """No usable audio output (no device, PortAudio failure, closed clock)."""


class InvalidStateError(RuntimeError):
    pass


def encode_bytes(samples):
    """Float samples in [-1, 1] -> uint8 bytes, 128 + round(127 * v)."""
    v = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    # floor(x + 0.5) rounds halves up
    return (128 + np.floor(127.0 * v + 0.5)).astype(np.uint8)


class AudioParam:
    def __init__(self, clock, value):
        self._clock = clock
        self._base = float(value)
        self._base_time = None
        # (time, kind, value, time_constant), kept sorted by time
        self._events = []

    @property
    def value(self):
        return self.value_at(self._clock.current_time)

    def value_at(self, t):
        return float(self.values(np.array([t], dtype=np.float64))[0])

    def values(self, times):
        with self._clock.lock:
            base, base_time = self._base, self._base_time
            events = list(self._events)

        out = np.full(len(times), base, dtype=np.float64)
        prev_t, prev_v = base_time, base
        for t0, kind, v, tau in events:
            if kind == _SET:
                out[times >= t0] = v
            elif kind == _LINEAR:
                if prev_t is not None and t0 > prev_t:
                    mask = (times >= prev_t) & (times < t0)
                    frac = (times[mask] - prev_t) / (t0 - prev_t)
                    out[mask] = prev_v + (v - prev_v) * frac
                out[times >= t0] = v
            else:
                mask = times >= t0
                out[mask] = v + (prev_v - v) * np.exp(-(times[mask] - t0) / tau)
            prev_t, prev_v = t0, v
        return out

    def _insert(self, event):
        with self._clock.lock:
            i = len(self._events)
            while i > 0 and self._events[i - 1][0] > event[0]:
                i -= 1
            self._events.insert(i, event)

    def set_value_at_time(self, value, t):
        self._insert((float(t), _SET, float(value), 0.0))

    def linear_ramp_to_value_at_time(self, value, t):
        self._insert((float(t), _LINEAR, float(value), 0.0))

    def set_target_at_time(self, value, t, time_constant):
        if time_constant <= 0:
            raise ValueError("time_constant must be positive")
        self._insert((float(t), _TARGET, float(value), float(time_constant)))

    def cancel_scheduled_values(self, t):
        with self._clock.lock:
            self._events = [e for e in self._events if e[0] < t]

    def cancel_and_hold_at_time(self, t):
        # hold whatever the timeline produced at t, then drop the rest
        with self._clock.lock:
            held = self.value_at(t)
            self.cancel_scheduled_values(t)
            self.set_value_at_time(held, t)
        return held

    def fold(self, t):
        """Collapse events that finished before t into the base value."""
        with self._clock.lock:
            last = None
            for i, (t0, kind, v, _) in enumerate(self._events):
                if t0 > t:
                    break
                if kind != _TARGET:
                    last = i
            if last is not None:
                self._base_time, _, self._base, _ = self._events[last]
                del self._events[:last + 1]

    @property
    def pending_events(self):
        with self._clock.lock:
            return len(self._events)


class AudioNode:
    def __init__(self, clock):
        self.clock = clock
        self.inputs = []
        self.output = None
        self._cache_key = None
        self._cache = None

    def connect(self, node):
        self.disconnect()
        with self.clock.lock:
            node.inputs.append(self)
            self.output = node
        return node

    def disconnect(self):
        with self.clock.lock:
            if self.output is not None:
                self.output.inputs.remove(self)
                self.output = None

    def pull(self, times):
        key = float(times[0])
        if key == self._cache_key and self._cache is not None:
            return self._cache
        mixed = np.zeros(len(times), dtype=np.float64)
        for node in self.inputs:
            mixed += node.pull(times)
        self._cache_key, self._cache = key, self.process(mixed, times)
        return self._cache

    def process(self, inp, times):
        return inp


class Oscillator(AudioNode):
    """Sine source; phase carries across blocks so retuning never jumps."""

    def __init__(self, clock, frequency=440.0):
        super().__init__(clock)
        self.frequency = AudioParam(clock, frequency)
        self.phase = 0.0
        self._state = "idle"

    @property
    def running(self):
        return self._state == "running"

    @property
    def stopped(self):
        return self._state == "stopped"

    def start(self):
        if self._state != "idle":
            raise InvalidStateError("an oscillator can only be started once")
        self._state = "running"

    def stop(self):
        self._state = "stopped"

    def process(self, inp, times):
        if not self.running:
            return np.zeros(len(times), dtype=np.float64)
        self.frequency.fold(times[0])
        inc = 2 * np.pi * self.frequency.values(times) / self.clock.sample_rate
        phases = self.phase + np.concatenate(([0.0], np.cumsum(inc[:-1])))
        self.phase = float((phases[-1] + inc[-1]) % (2 * np.pi))
        return np.sin(phases)


class GainStage(AudioNode):
    def __init__(self, clock, gain=1.0):
        super().__init__(clock)
        self.gain = AudioParam(clock, gain)

    def process(self, inp, times):
        self.gain.fold(times[0])
        return inp * self.gain.values(times)


class Analyser(AudioNode):
    """Pass-through tap keeping the last fft_size samples."""

    min_decibels = -100.0
    max_decibels = -30.0
    smoothing_time_constant = 0.8

    def __init__(self, clock, fft_size=2048):
        super().__init__(clock)
        self.fft_size = fft_size
        self._ring = np.zeros(fft_size, dtype=np.float64)
        self._smoothed = np.zeros(fft_size // 2, dtype=np.float64)
        self._window = np.blackman(fft_size)

    @property
    def frequency_bin_count(self):
        return self.fft_size // 2

    def process(self, inp, times):
        n = len(inp)
        if n >= self.fft_size:
            self._ring = inp[-self.fft_size:].copy()
        else:
            self._ring = np.concatenate((self._ring[n:], inp))
        return inp

    def _snapshot(self):
        with self.clock.lock:
            return self._ring.copy()

    def get_byte_time_domain_data(self, out=None):
        data = encode_bytes(self._snapshot())
        if out is None:
            return data
        out[:] = data
        return out

    def get_byte_frequency_data(self, out=None):
        frame = self._snapshot() * self._window
        mags = np.abs(np.fft.rfft(frame))[:self.frequency_bin_count] / self.fft_size
        tau = self.smoothing_time_constant
        self._smoothed = tau * self._smoothed + (1 - tau) * mags
        db = 20 * np.log10(np.maximum(self._smoothed, 1e-12))
        span = self.max_decibels - self.min_decibels
        data = np.clip((db - self.min_decibels) * 255.0 / span, 0, 255).astype(np.uint8)
        if out is None:
            return data
        out[:] = data
        return out


class AudioClock:
    """
    Sample-accurate time base owning the output device.

    current_time only advances while rendering, so a suspended clock
    freezes every scheduled ramp exactly where it was.
    """

    def __init__(self, sample_rate, buffer_size, channels, output_factory):
        self.sample_rate = sample_rate
        self.buffer_size = buffer_size
        self.channels = channels
        self.lock = threading.RLock()
        self.frames = 0
        self.state = SUSPENDED
        self.destination = AudioNode(self)
        self._output = output_factory(self)
        try:
            self.resume()
        except AudioUnavailableError:
            self.state = CLOSED
            self._output.close()
            raise

    @property
    def current_time(self):
        return self.frames / self.sample_rate

    def render(self, frame_count):
        with self.lock:
            if self.state != RUNNING:
                return np.zeros(frame_count, dtype=np.float32)
            times = (self.frames + np.arange(frame_count)) / self.sample_rate
            block = self.destination.pull(times)
            self.frames += frame_count
        return block.astype(np.float32)

    def suspend(self):
        with self.lock:
            if self.state != RUNNING:
                return
            self.state = SUSPENDED
        # outside the lock: stopping waits for the callback, which takes it
        self._output.stop()
        logger.debug("Audio clock suspended")

    def resume(self):
        with self.lock:
            if self.state == CLOSED:
                raise AudioUnavailableError("audio clock is closed")
            if self.state == RUNNING:
                return
            self.state = RUNNING
        try:
            self._output.start()
        except AudioUnavailableError:
            with self.lock:
                self.state = SUSPENDED
            raise
        logger.debug("Audio clock running")

    def close(self):
        with self.lock:
            if self.state == CLOSED:
                return
            self.state = CLOSED
        self._output.close()
