# bluetooth.py
import datetime
import logging
import queue
import re
import shutil
import subprocess
import threading

logger = logging.getLogger(__name__)

DEVICE_LINE = re.compile(r"Device\s+((?:[0-9A-Fa-f]{2}:){5}[0-9A-Fa-f]{2})\s*(.*)")


def parse_device_line(line):
    """'Device AA:BB:CC:DD:EE:FF Speaker' -> device record, or None."""
    m = DEVICE_LINE.search(line)
    if m is None:
        return None
    name = m.group(2).strip()
    return {"id": m.group(1).upper(), "name": name or "Unnamed Device", "connected": False}


class DeviceManager:
    """
    Scan/connect/disconnect through the host's bluetoothctl.

    Work happens on daemon threads; results come back as (kind, payload)
    events on a queue that the GUI drains once per frame with poll().
    Pairing and audio routing are left to the host's wireless stack.
    """

    def __init__(self, events=None, tool="bluetoothctl"):
        self.events = events if events is not None else queue.Queue()
        self.tool = tool
        self.devices = {}
        self.connected = None
        self.is_scanning = False

    def is_available(self):
        return shutil.which(self.tool) is not None

    def scan(self, timeout=5):
        if self.is_scanning:
            return False
        self.is_scanning = True
        self._start(self._scan, timeout)
        return True

    def connect(self, device_id):
        if device_id not in self.devices:
            logger.error(f"Unknown device {device_id}")
            return False
        self._start(self._connect, device_id)
        return True

    def disconnect(self):
        if self.connected is None:
            return False
        self._start(self._disconnect, self.connected)
        return True

    def get_connected_device(self):
        return self.connected

    def poll(self):
        """Drain pending events and apply them to the manager's state."""
        drained = []
        while True:
            try:
                kind, payload = self.events.get_nowait()
            except queue.Empty:
                break
            if kind == "device":
                self.devices[payload["id"]] = payload
            elif kind == "scan_done":
                self.is_scanning = False
            elif kind == "connected":
                self.connected = payload
                self.devices[payload["id"]] = payload
            elif kind == "disconnected":
                self.connected = None
                if payload["id"] in self.devices:
                    self.devices[payload["id"]]["connected"] = False
            drained.append((kind, payload))
        return drained

    # --- worker threads ---

    def _start(self, target, *args):
        t = threading.Thread(target=target, args=args)
        t.daemon = True
        t.start()
        return t

    def _run(self, *args, timeout=10):
        return subprocess.run(
            [self.tool, *args], capture_output=True, text=True, timeout=timeout
        )

    def _scan(self, timeout):
        ok = True
        try:
            self._run("--timeout", str(timeout), "scan", "on", timeout=timeout + 5)
            result = self._run("devices")
            for line in result.stdout.splitlines():
                record = parse_device_line(line)
                if record is not None:
                    self.events.put(("device", record))
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Bluetooth scan failed: {e}")
            ok = False
        self.events.put(("scan_done", ok))

    def _connect(self, device_id):
        try:
            result = self._run("connect", device_id, timeout=20)
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Bluetooth connect failed: {e}")
            self.events.put(("connect_failed", device_id))
            return

        if result.returncode != 0 or "Connection successful" not in result.stdout:
            logger.warning(f"Could not connect to {device_id}")
            self.events.put(("connect_failed", device_id))
            return

        known = self.devices.get(device_id, {})
        self.events.put(("connected", {
            "id": device_id,
            "name": known.get("name", "Unnamed Device"),
            "connected": True,
            "connected_at": datetime.datetime.now(),
        }))
        logger.info(f"Connected to {known.get('name', device_id)}")

    def _disconnect(self, device):
        try:
            self._run("disconnect", device["id"])
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Bluetooth disconnect failed: {e}")
            return
        self.events.put(("disconnected", device))
        logger.info(f"Disconnected from {device['name']}")
