import logging
import sys

import dearpygui.dearpygui as dpg

from audio_engine import ToneGenerator
from bluetooth import DeviceManager
from catalog import CatalogError, FrequencyCatalog
from controller import FrequencyApp
from scheduler import FrameScheduler
from state import AppState
from visualizer import DrawlistSurface, SpectrumView, WaveformRenderer

logger = logging.getLogger(__name__)

# --- SETTINGS ---
W_WIDTH = 1200
W_HEIGHT = 900
LEFT_PANEL_WIDTH = 320
BUTTONS_PER_ROW = 3
ACCENT = (0, 255, 204)

# view field -> text item
DISPLAY_TAGS = {
    "frequency": "freq_display",
    "viz_frequency": "viz_freq_display",
    "volume": "volume_display",
    "time": "time_display",
    "status": "status_text",
}


class SeeSoundUI:
    def __init__(self, settings, app, renderer, catalog, devices):
        self.settings = settings
        self.app = app
        self.renderer = renderer
        self.catalog = catalog
        self.devices = devices
        app.view = self.show

    def show(self, field, text):
        tag = DISPLAY_TAGS.get(field)
        if tag is not None and dpg.does_item_exist(tag):
            dpg.set_value(tag, text)

    # --- STUDENT VIEW ---

    def build(self):
        s = self.settings
        with dpg.window(tag="Primary Window"):
            with dpg.group(horizontal=True):

                # --- LEFT PANEL: CONTROLS ---
                with dpg.child_window(width=LEFT_PANEL_WIDTH):
                    dpg.add_text("TONES", color=ACCENT)
                    dpg.add_separator()
                    dpg.add_group(tag="samples_group")

                    dpg.add_spacer(height=10)
                    dpg.add_text("CUSTOM FREQUENCY", color=ACCENT)
                    dpg.add_separator()
                    dpg.add_text("440 Hz", tag="freq_display")
                    dpg.add_slider_float(label="Hz", tag="freq_slider", default_value=440.0,
                                         min_value=s.min_freq, max_value=s.max_freq,
                                         callback=self._on_frequency)
                    dpg.add_input_float(label="Exact", tag="freq_input", default_value=440.0,
                                        step=1.0, on_enter=True, callback=self._on_frequency)
                    dpg.add_slider_float(label="Volume", tag="volume_slider",
                                         default_value=self.app.volume_percent,
                                         min_value=0.0, max_value=100.0,
                                         callback=lambda sender, value: self.app.update_volume(value))
                    dpg.add_text(f"{self.app.volume_percent:.0f}%", tag="volume_display")

                    with dpg.group(horizontal=True):
                        dpg.add_button(label="Play", width=90, callback=lambda: self.app.play_custom())
                        dpg.add_button(label="Stop", width=90, callback=lambda: self.app.pause())
                        dpg.add_button(label="Clear", width=90, callback=lambda: self.app.clear())
                    dpg.add_text("Ready", tag="status_text", wrap=LEFT_PANEL_WIDTH - 20)

                    dpg.add_spacer(height=10)
                    dpg.add_text("WIRELESS OUTPUT", color=ACCENT)
                    dpg.add_separator()
                    dpg.add_button(label="Scan", tag="bt_scan", callback=self._on_scan)
                    dpg.add_text("Not connected", tag="bt_status", wrap=LEFT_PANEL_WIDTH - 20)
                    dpg.add_group(tag="bt_devices")
                    dpg.add_button(label="Disconnect", tag="bt_disconnect", show=False,
                                   callback=lambda: self.devices.disconnect())

                    dpg.add_spacer(height=10)
                    dpg.add_button(label="Manager view", callback=lambda: dpg.configure_item(
                        "manager_window", show=True))

                # --- RIGHT PANEL: VISUALS ---
                with dpg.child_window(width=-1, tag="visuals_panel"):
                    with dpg.group(horizontal=True):
                        dpg.add_text("Time (s):")
                        dpg.add_text("0.00", tag="time_display")
                        dpg.add_spacer(width=30)
                        dpg.add_text("Frequency (Hz):")
                        dpg.add_text("440", tag="viz_freq_display")
                    dpg.add_text("Waveform (Time Domain)")
                    dpg.add_drawlist(width=s.canvas_size[0], height=s.canvas_size[1], tag="wave_canvas")
                    dpg.add_spacer(height=10)
                    dpg.add_text("Spectrum (Frequency Domain)")
                    dpg.add_drawlist(width=s.spectrum_size[0], height=s.spectrum_size[1],
                                     tag="spectrum_canvas")

        self._build_manager_window()

        if not self.devices.is_available():
            dpg.configure_item("bt_scan", enabled=False, label="Bluetooth unavailable")

    def render_samples(self):
        dpg.delete_item("samples_group", children_only=True)
        groups = self.app.samples_by_category()
        if not groups:
            dpg.add_text("No frequencies available", parent="samples_group")
            return

        keys = list(groups)
        if self.app.selected_category not in groups:
            self.app.select_category(keys[0])
        labels = [self.app.category_label(k) for k in keys]

        def on_category(sender, label):
            self.app.select_category(keys[labels.index(label)])
            self.render_samples()

        dpg.add_radio_button(labels, horizontal=True, parent="samples_group",
                             default_value=self.app.category_label(self.app.selected_category),
                             callback=on_category)

        samples = groups[self.app.selected_category]
        for start in range(0, len(samples), BUTTONS_PER_ROW):
            with dpg.group(horizontal=True, parent="samples_group"):
                for sample in samples[start:start + BUTTONS_PER_ROW]:
                    dpg.add_button(label=f"{sample['name']}\n{sample['frequency']:g} Hz",
                                   width=95, height=40, user_data=sample,
                                   callback=self._on_sample)

    def _on_sample(self, sender, app_data, sample):
        self.app.play_sample(float(sample["frequency"]), sample["name"])
        self._sync_frequency_widgets()

    def _on_frequency(self, sender, value):
        self.app.update_frequency(value)
        self._sync_frequency_widgets()

    def _sync_frequency_widgets(self):
        dpg.set_value("freq_slider", self.app.current_frequency)
        dpg.set_value("freq_input", self.app.current_frequency)

    def on_resize(self):
        width = dpg.get_viewport_client_width() - LEFT_PANEL_WIDTH - 40
        self.renderer.resize(width, self.settings.canvas_size[1])
        if self.renderer.spectrum is not None:
            self.renderer.spectrum.surface.resize(width, self.settings.spectrum_size[1])

    # --- WIRELESS OUTPUT ---

    def _on_scan(self):
        if self.devices.scan():
            dpg.configure_item("bt_scan", enabled=False, label="Scanning...")

    def _on_connect(self, sender, app_data, device_id):
        if self.devices.connect(device_id):
            dpg.configure_item(sender, enabled=False, label="Connecting...")

    def handle_device_events(self):
        for kind, payload in self.devices.poll():
            if kind == "device":
                tag = f"bt_{payload['id']}"
                if not dpg.does_item_exist(tag):
                    dpg.add_button(label=f"Connect {payload['name']}", tag=tag, parent="bt_devices",
                                   user_data=payload["id"], callback=self._on_connect)
            elif kind == "scan_done":
                dpg.configure_item("bt_scan", enabled=True, label="Scan")
                if not payload:
                    dpg.set_value("bt_status", "Scan cancelled or failed")
            elif kind == "connected":
                at = payload["connected_at"].strftime("%H:%M:%S")
                dpg.set_value("bt_status", f"Connected to {payload['name']} at {at}")
                dpg.configure_item("bt_devices", show=False)
                dpg.configure_item("bt_disconnect", show=True)
            elif kind == "connect_failed":
                dpg.set_value("bt_status", "Connection failed")
                tag = f"bt_{payload}"
                if dpg.does_item_exist(tag):
                    dpg.configure_item(tag, enabled=True, label="Retry connect")
            elif kind == "disconnected":
                dpg.set_value("bt_status", "Not connected")
                dpg.configure_item("bt_devices", show=True)
                dpg.configure_item("bt_disconnect", show=False)

    # --- MANAGER VIEW ---

    def _build_manager_window(self):
        with dpg.window(label="Frequency Manager", tag="manager_window", width=560, height=640,
                        pos=(W_WIDTH - 600, 40), show=self.settings.start_in_manager):
            dpg.add_input_text(label="Password", tag="mgr_password", password=True)
            dpg.add_text("", tag="mgr_status")
            dpg.add_separator()

            with dpg.table(tag="mgr_table", header_row=True, scrollY=True, height=260,
                           policy=dpg.mvTable_SizingStretchProp):
                dpg.add_table_column(label="ID")
                dpg.add_table_column(label="Name")
                dpg.add_table_column(label="Hz")
                dpg.add_table_column(label="Category")
                dpg.add_table_column(label="")
                dpg.add_table_column(label="")

            dpg.add_separator()
            dpg.add_text("ADD FREQUENCY", color=ACCENT)
            dpg.add_input_text(label="Name", tag="mgr_name")
            dpg.add_input_float(label="Frequency (Hz)", tag="mgr_freq", default_value=440.0)
            dpg.add_combo(label="Category", tag="mgr_category", items=[])
            dpg.add_button(label="Add", callback=self._on_add)

            dpg.add_separator()
            dpg.add_text("CATEGORY NAMES", color=ACCENT)
            dpg.add_group(tag="mgr_categories")
            dpg.add_button(label="Save categories", callback=self._on_save_categories)

    def refresh_manager(self):
        dpg.delete_item("mgr_table", children_only=True, slot=1)
        for sample in self.app.samples:
            with dpg.table_row(parent="mgr_table"):
                dpg.add_text(str(sample["id"]))
                dpg.add_input_text(tag=f"mgr_edit_name_{sample['id']}", default_value=sample["name"],
                                   width=-1)
                dpg.add_input_float(tag=f"mgr_edit_freq_{sample['id']}", step=0, width=-1,
                                    default_value=float(sample["frequency"]))
                dpg.add_text(self.app.category_label(sample["category"]))
                dpg.add_button(label="Save", user_data=sample["id"], callback=self._on_save_edit)
                dpg.add_button(label="Delete", user_data=sample["id"], callback=self._on_delete)

        keys = list(self.app.category_names)
        dpg.configure_item("mgr_category", items=keys)
        if keys and not dpg.get_value("mgr_category"):
            dpg.set_value("mgr_category", keys[0])

        dpg.delete_item("mgr_categories", children_only=True)
        for key, label in self.app.category_names.items():
            dpg.add_input_text(label=key, tag=f"mgr_cat_{key}", default_value=label,
                               parent="mgr_categories")

    def _mutate(self, action, *args):
        try:
            action(dpg.get_value("mgr_password"), *args)
        except CatalogError as e:
            logger.warning(f"Catalog update rejected: {e}")
            dpg.set_value("mgr_status", str(e))
            return
        dpg.set_value("mgr_status", "Saved")
        self.app.load_samples()
        self.render_samples()
        self.refresh_manager()

    def _on_add(self):
        name = dpg.get_value("mgr_name").strip()
        if not name:
            dpg.set_value("mgr_status", "Name is required")
            return
        self._mutate(self.catalog.add_frequency, name, dpg.get_value("mgr_freq"),
                     dpg.get_value("mgr_category"))

    def _on_save_edit(self, sender, app_data, sample_id):
        try:
            samples = self.app.edited_samples(
                sample_id,
                dpg.get_value(f"mgr_edit_name_{sample_id}"),
                dpg.get_value(f"mgr_edit_freq_{sample_id}"),
            )
        except CatalogError as e:
            dpg.set_value("mgr_status", str(e))
            return
        self._mutate(self.catalog.update_frequencies, samples)

    def _on_delete(self, sender, app_data, sample_id):
        self._mutate(self.catalog.delete_frequency, sample_id)

    def _on_save_categories(self):
        names = {key: dpg.get_value(f"mgr_cat_{key}") for key in self.app.category_names}
        self._mutate(self.catalog.update_categories, names)


def run(settings):
    scheduler = FrameScheduler()
    engine = ToneGenerator(settings, scheduler)
    catalog = FrequencyCatalog(settings.catalog_path, settings.manager_password)
    devices = DeviceManager()

    dpg.create_context()
    # callbacks run on this thread, between frames, like the scheduler
    dpg.configure_app(manual_callback_management=True)

    wave_surface = DrawlistSurface("wave_canvas", *settings.canvas_size)
    spectrum = SpectrumView(DrawlistSurface("spectrum_canvas", *settings.spectrum_size))
    renderer = WaveformRenderer(wave_surface, engine, scheduler, settings, spectrum=spectrum)
    app = FrequencyApp(engine, renderer, catalog, settings)
    ui = SeeSoundUI(settings, app, renderer, catalog, devices)
    renderer.on_time = lambda text: ui.show("time", text)

    ui.build()
    app.load_samples()
    ui.render_samples()
    ui.refresh_manager()

    dpg.create_viewport(title="See-Sound", width=W_WIDTH, height=W_HEIGHT)
    dpg.set_viewport_resize_callback(lambda: ui.on_resize())
    dpg.setup_dearpygui()
    dpg.set_primary_window("Primary Window", True)
    dpg.show_viewport()
    renderer.clear()

    try:
        while settings.running and dpg.is_dearpygui_running():
            dpg.run_callbacks(dpg.get_callback_queue())
            scheduler.tick()
            ui.handle_device_events()
            dpg.render_dearpygui_frame()
    finally:
        # --- CLEANUP ---
        settings.running = False
        engine.shutdown()
        dpg.destroy_context()


def main(argv=None):
    settings = AppState.from_args(argv)
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    try:
        run(settings)
    except CatalogError as e:
        logger.error(f"Cannot open the frequency catalog: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
