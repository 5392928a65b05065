import logging
import math

import numpy as np
import pyaudio

from audio_graph import (
    SUSPENDED,
    RUNNING,
    Analyser,
    AudioClock,
    AudioUnavailableError,
    GainStage,
    Oscillator,
)

logger = logging.getLogger(__name__)


class PyAudioOutput:
    """PortAudio output stream pulling blocks from an AudioClock."""

    def __init__(self, clock):
        self.clock = clock
        try:
            self.p = pyaudio.PyAudio()
        except OSError as e:
            raise AudioUnavailableError(f"PortAudio init failed: {e}") from e
        try:
            self.stream = self.p.open(
                format=pyaudio.paFloat32,
                channels=clock.channels,
                rate=clock.sample_rate,
                output=True,
                frames_per_buffer=clock.buffer_size,
                stream_callback=self.callback,
                start=False,
            )
        except OSError as e:
            self.p.terminate()
            raise AudioUnavailableError(f"No audio output device: {e}") from e

    def callback(self, in_data, frame_count, time_info, status):
        mono = self.clock.render(frame_count)
        # [a, b] -> [a, a, b, b]: same signal on every channel, interleaved
        frames = np.repeat(mono, self.clock.channels).astype(np.float32)
        return (frames.tobytes(), pyaudio.paContinue)

    def start(self):
        try:
            if not self.stream.is_active():
                self.stream.start_stream()
        except OSError as e:
            raise AudioUnavailableError(f"Audio output failed to start: {e}") from e

    def stop(self):
        if self.stream.is_active():
            self.stream.stop_stream()

    def close(self):
        self.stop()
        self.stream.close()
        self.p.terminate()


def open_clock(settings):
    return AudioClock(
        settings.sample_rate,
        settings.buffer_size,
        settings.channels,
        output_factory=PyAudioOutput,
    )


class ToneGenerator:
    """
    Continuous sine tone with click-free transitions.

    Pausing mutes the gain instead of stopping the oscillator, so resume
    picks up the same running oscillator. Every transition cancels the
    automation already scheduled on its parameter before adding its own.
    """

    def __init__(self, settings, scheduler, clock_factory=open_clock):
        self.settings = settings
        self.scheduler = scheduler
        self._clock_factory = clock_factory

        self.clock = None
        self.oscillator = None
        self.gain = None
        self.analyser = None

        # --- STATE ---
        self.current_freq = 440.0
        self.volume = settings.default_volume
        self.is_playing = False
        self.pending_mute = None

        self._waveform = None
        self._spectrum = None

    @property
    def fft_size(self):
        return self.analyser.fft_size if self.analyser else self.settings.fft_size

    @property
    def sample_rate(self):
        return self.clock.sample_rate if self.clock else self.settings.sample_rate

    def initialize(self):
        if self.clock is None:
            try:
                self.clock = self._clock_factory(self.settings)
            except AudioUnavailableError as e:
                logger.warning(f"Audio output unavailable: {e}")
                self.is_playing = False
                return False

        now = self.clock.current_time
        if self.gain is None:
            self.gain = GainStage(self.clock, 0.0)
            self.analyser = Analyser(self.clock, self.settings.fft_size)
            self.gain.connect(self.analyser)
            self.analyser.connect(self.clock.destination)
            self._waveform = np.zeros(self.analyser.fft_size, dtype=np.uint8)
            self._spectrum = np.zeros(self.analyser.frequency_bin_count, dtype=np.uint8)

        if self.oscillator is None:
            # a new oscillator starts silent unless a tone is meant to be audible
            self.gain.gain.cancel_scheduled_values(now)
            self.gain.gain.set_value_at_time(self.volume if self.is_playing else 0.0, now)

            osc = Oscillator(self.clock, self.current_freq)
            osc.connect(self.gain)
            osc.start()
            self.oscillator = osc
            logger.debug(f"Oscillator started at {self.current_freq:.2f} Hz")
        return True

    def play(self, frequency):
        freq = self._clamp_frequency(frequency)
        if freq is None:
            return
        self.current_freq = freq
        if not self.initialize():
            return

        self._cancel_pending_mute()
        if not self._wake_clock():
            return

        self._retune(freq)
        self._ramp_gain(self.volume)
        self.is_playing = True
        logger.info(f"Playing {freq:.2f} Hz")

    def stop(self):
        self._cancel_pending_mute()
        # flips before the ramp ends so the UI shows paused right away
        self.is_playing = False
        if self.gain is None:
            return
        self._ramp_gain(0.0)
        self.pending_mute = self.scheduler.set_timeout(
            self.settings.suspend_delay, self._finish_mute
        )
        logger.info("Tone paused")

    def resume(self):
        if self.clock is not None and not self._wake_clock():
            return
        self._cancel_pending_mute()

        if self.gain is None or self.oscillator is None:
            return
        self._ramp_gain(self.volume)
        self.is_playing = True
        logger.info(f"Resumed {self.current_freq:.2f} Hz")

    def set_frequency(self, frequency):
        freq = self._clamp_frequency(frequency)
        if freq is None:
            return
        self.current_freq = freq
        if self.oscillator is None:
            # torn down after an earlier start: rebuild at the new pitch
            if self.clock is not None:
                self.initialize()
            return
        self._retune(freq)

    def set_volume(self, level):
        level = float(level)
        if math.isnan(level):
            logger.warning("Ignoring NaN volume")
            return
        self.volume = min(max(level, 0.0), 1.0)
        if self.is_playing and self.gain is not None:
            self._ramp_gain(self.volume)

    def get_waveform_sample(self):
        if self.analyser is None:
            return None
        return self.analyser.get_byte_time_domain_data(self._waveform)

    def get_spectrum_sample(self):
        if self.analyser is None:
            return None
        return self.analyser.get_byte_frequency_data(self._spectrum)

    def clear(self):
        """Tear down the oscillator; the next play builds a fresh one."""
        self._cancel_pending_mute()
        if self.oscillator is not None:
            self.oscillator.stop()
            self.oscillator.disconnect()
            self.oscillator = None
        self.is_playing = False

    def shutdown(self):
        self.clear()
        if self.clock is not None:
            self.clock.close()
        self.clock = None
        self.gain = None
        self.analyser = None

    # --- internals ---

    def _clamp_frequency(self, frequency):
        freq = float(frequency)
        if not math.isfinite(freq):
            logger.warning(f"Ignoring non-finite frequency {frequency!r}")
            return None
        return min(max(freq, self.settings.min_freq), self.settings.max_freq)

    def _retune(self, freq):
        now = self.clock.current_time
        param = self.oscillator.frequency
        param.cancel_and_hold_at_time(now)
        param.set_target_at_time(freq, now, self.settings.retune_time_constant)

    def _ramp_gain(self, target):
        now = self.clock.current_time
        param = self.gain.gain
        param.cancel_and_hold_at_time(now)
        param.linear_ramp_to_value_at_time(target, now + self.settings.ramp_time)

    def _wake_clock(self):
        if self.clock.state != SUSPENDED:
            return True
        try:
            self.clock.resume()
        except AudioUnavailableError as e:
            logger.warning(f"Audio output unavailable: {e}")
            self.is_playing = False
            return False
        return True

    def _cancel_pending_mute(self):
        if self.pending_mute is not None:
            self.scheduler.clear_timeout(self.pending_mute)
            self.pending_mute = None

    def _finish_mute(self):
        self.pending_mute = None
        if not self.is_playing and self.clock is not None and self.clock.state == RUNNING:
            logger.debug("Mute ramp done, suspending audio clock")
            self.clock.suspend()
