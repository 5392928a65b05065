# controller.py
"""
UI coordination: what the buttons and sliders do to the tone generator
and the waveform renderer. Framework-free; the GUI binds widgets to
these methods and receives display text through `view(field, text)`.
"""

import logging
import math

from catalog import CatalogError

logger = logging.getLogger(__name__)

CATEGORY_ORDER = ("note", "freq")


class FrequencyApp:
    def __init__(self, engine, renderer, catalog, settings, view=None):
        self.engine = engine
        self.renderer = renderer
        self.catalog = catalog
        self.settings = settings
        self.view = view or (lambda field, text: None)

        self.samples = []
        self.category_names = {}
        self.selected_category = "note"
        self.current_frequency = 440.0
        self.volume_percent = settings.default_volume * 100
        # only a pause makes resume possible; picking a sample clears it
        self.resume_available = False
        self.active_sample = None

    # --- catalog ---

    def load_samples(self):
        try:
            data = self.catalog.list_frequencies()
        except CatalogError as e:
            logger.error(f"Failed to load samples: {e}")
            self.view("status", "Could not load the frequency list")
            return []
        self.samples = data.get("samples", [])
        self.category_names = data.get("categoryNames", {})
        return self.samples

    def samples_by_category(self):
        groups = {}
        for sample in self.samples:
            groups.setdefault(sample.get("category"), []).append(sample)
        ordered = {key: groups.pop(key) for key in CATEGORY_ORDER if key in groups}
        ordered.update(groups)
        return ordered

    def category_label(self, key):
        return self.category_names.get(key, key)

    def select_category(self, key):
        self.selected_category = key

    def edited_samples(self, sample_id, name, frequency):
        """Copy of the loaded samples with one renamed and retuned."""
        name = (name or "").strip()
        if not name:
            raise CatalogError("Name is required")
        try:
            frequency = float(frequency)
        except (TypeError, ValueError) as e:
            raise CatalogError(f"Invalid frequency {frequency!r}") from e
        if not math.isfinite(frequency) or frequency <= 0:
            raise CatalogError(f"Invalid frequency {frequency!r}")

        edited = [dict(s) for s in self.samples]
        for sample in edited:
            if sample["id"] == sample_id:
                sample["name"] = name
                sample["frequency"] = frequency
                return edited
        raise CatalogError(f"No sample with id {sample_id}")

    # --- transport ---

    def play_sample(self, frequency, name=None):
        self.current_frequency = self._clamp(frequency)
        self.resume_available = False
        self.active_sample = name

        # drop a paused oscillator and start clean
        self.engine.clear()
        self.engine.set_volume(self.volume_percent / 100)
        self.engine.play(self.current_frequency)
        self._report_playback()
        self._show_frequency(self.current_frequency)

        self.renderer.start(fresh=True)
        logger.info(f"Playing: {name} - {self.current_frequency:g} Hz")

    def play_custom(self):
        if self.resume_available and not self.engine.is_playing:
            self.engine.set_volume(self.volume_percent / 100)
            self.engine.resume()
            self.renderer.start(fresh=False)
            self.resume_available = False
            self._report_playback()
            logger.info(f"Resumed playing: {self.current_frequency:g} Hz")
            return

        if not self.engine.is_playing:
            self.engine.set_volume(self.volume_percent / 100)
            self.engine.play(self.current_frequency)
            self.active_sample = None
            self._report_playback()
            self.renderer.start(fresh=True)
            logger.info(f"Playing custom frequency: {self.current_frequency:g} Hz")

    def pause(self):
        if not self.engine.is_playing:
            logger.info("Audio is not playing")
            return
        self.engine.stop()
        self.resume_available = True
        self.renderer.freeze(self.current_frequency)
        self.view("status", f"Paused at {self.current_frequency:g} Hz - press Play to resume")

    def clear(self):
        self.engine.clear()
        self.resume_available = False
        self.active_sample = None
        self.renderer.clear()
        self.view("status", "Ready")
        logger.info("Waveform cleared")

    # --- sliders ---

    def update_frequency(self, value):
        try:
            value = float(value)
        except (TypeError, ValueError):
            return
        if math.isnan(value):
            return
        value = self._clamp(value)
        self.current_frequency = value
        self._show_frequency(value)
        if self.engine.is_playing:
            self.engine.set_frequency(value)

    def update_volume(self, percent):
        try:
            percent = float(percent)
        except (TypeError, ValueError):
            return
        if math.isnan(percent):
            return
        percent = min(max(percent, 0.0), 100.0)
        self.volume_percent = percent
        self.view("volume", f"{percent:.0f}%")
        self.engine.set_volume(percent / 100)

    # --- helpers ---

    def _clamp(self, value):
        return min(max(float(value), self.settings.min_freq), self.settings.max_freq)

    def _show_frequency(self, value):
        self.view("frequency", f"{value:.0f} Hz")
        self.view("viz_frequency", f"{value:.0f}")

    def _report_playback(self):
        if self.engine.is_playing:
            self.view("status", f"Playing {self.current_frequency:g} Hz")
        else:
            self.view("status", "Audio output unavailable")
