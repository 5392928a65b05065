# state.py
import argparse
from pathlib import Path


class AppState:
    def __init__(self):
        # --- Audio Synthesis ---
        self.sample_rate = 44100
        self.buffer_size = 256
        self.channels = 2
        self.default_volume = 0.3       # Gain a fresh tone ramps to
        self.ramp_time = 0.05           # Gain ramps (seconds)
        self.retune_time_constant = 0.01
        self.suspend_delay = 0.08       # Mute ramp + margin before suspending the clock
        self.min_freq = 20.0
        self.max_freq = 20000.0

        # --- Visuals ---
        self.fft_size = 2048            # Analysis window = SampleBuffer length
        self.frame_rate = 60
        self.silence_band = (110, 146)  # Bytes inside this band count as silence
        self.grid_spacing = (40, 30)
        self.canvas_size = (800, 300)
        self.spectrum_size = (800, 120)

        # --- Catalog ---
        self.catalog_path = Path("data") / "frequencies.json"
        self.manager_password = "admin123"

        # --- Global Flags ---
        self.log_level = "INFO"
        self.start_in_manager = False
        self.running = True

    @property
    def frame_ms(self):
        return 1000.0 / self.frame_rate

    @classmethod
    def from_args(cls, argv=None):
        s = cls()
        parser = argparse.ArgumentParser(
            prog="see-sound",
            description="Play tones and watch their waveform.",
        )
        parser.add_argument("--catalog", type=Path, default=s.catalog_path,
                            help="Frequency catalog JSON file")
        parser.add_argument("--password", default=s.manager_password,
                            help="Manager password for catalog edits")
        parser.add_argument("--manager", action="store_true",
                            help="Open the manager view on start-up")
        parser.add_argument("--log-level", default=s.log_level,
                            choices=["DEBUG", "INFO", "WARNING", "ERROR"])
        parser.add_argument("--sample-rate", type=int, default=s.sample_rate)
        parser.add_argument("--buffer-size", type=int, default=s.buffer_size)
        args = parser.parse_args(argv)

        s.catalog_path = args.catalog
        s.manager_password = args.password
        s.start_in_manager = args.manager
        s.log_level = args.log_level
        s.sample_rate = args.sample_rate
        s.buffer_size = args.buffer_size
        return s
