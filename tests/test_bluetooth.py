import subprocess
from types import SimpleNamespace

import pytest

import bluetooth
from bluetooth import DeviceManager, parse_device_line

DEVICES_OUTPUT = """\
Device AA:BB:CC:DD:EE:01 Kitchen Speaker
Device aa:bb:cc:dd:ee:02
[CHG] Controller 11:22:33:44:55:66 Discovering: no
"""


@pytest.fixture
def manager():
    return DeviceManager()


def test_parse_device_line():
    assert parse_device_line("Device aa:bb:cc:dd:ee:ff JBL Go") == {
        "id": "AA:BB:CC:DD:EE:FF", "name": "JBL Go", "connected": False}
    assert parse_device_line("Device AA:BB:CC:DD:EE:FF")["name"] == "Unnamed Device"
    assert parse_device_line("Controller ready") is None


def test_is_available_follows_path(monkeypatch, manager):
    monkeypatch.setattr(bluetooth.shutil, "which", lambda tool: None)
    assert not manager.is_available()
    monkeypatch.setattr(bluetooth.shutil, "which", lambda tool: "/usr/bin/" + tool)
    assert manager.is_available()


def test_scan_collects_devices(monkeypatch, manager):
    commands = []

    def fake_run(cmd, capture_output, text, timeout):
        commands.append(cmd[1:])
        out = DEVICES_OUTPUT if cmd[1] == "devices" else ""
        return SimpleNamespace(returncode=0, stdout=out)

    monkeypatch.setattr(bluetooth.subprocess, "run", fake_run)
    manager.is_scanning = True
    manager._scan(3)
    events = manager.poll()

    assert commands[0] == ["--timeout", "3", "scan", "on"]
    assert commands[1] == ["devices"]
    assert set(manager.devices) == {"AA:BB:CC:DD:EE:01", "AA:BB:CC:DD:EE:02"}
    assert manager.devices["AA:BB:CC:DD:EE:02"]["name"] == "Unnamed Device"
    assert events[-1] == ("scan_done", True)
    assert manager.is_scanning is False


def test_scan_failure_still_finishes(monkeypatch, manager):
    def fake_run(cmd, capture_output, text, timeout):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(bluetooth.subprocess, "run", fake_run)
    manager.is_scanning = True
    manager._scan(3)

    assert manager.poll() == [("scan_done", False)]
    assert manager.is_scanning is False


def test_second_scan_is_refused(monkeypatch, manager):
    started = []
    monkeypatch.setattr(manager, "_start", lambda target, *args: started.append(args))
    assert manager.scan() is True
    assert manager.scan() is False
    assert started == [(5,)]


def test_connect_unknown_device_is_refused(manager):
    assert manager.connect("00:00:00:00:00:00") is False


@pytest.mark.parametrize("returncode, stdout, connected", [
    (0, "Attempting to connect\nConnection successful\n", True),
    (0, "Failed to connect: org.bluez.Error.Failed\n", False),
    (1, "Connection successful\n", False),
])
def test_connect_result(monkeypatch, manager, returncode, stdout, connected):
    monkeypatch.setattr(bluetooth.subprocess, "run",
                        lambda cmd, capture_output, text, timeout:
                        SimpleNamespace(returncode=returncode, stdout=stdout))
    manager.devices["AA:BB:CC:DD:EE:01"] = {
        "id": "AA:BB:CC:DD:EE:01", "name": "Kitchen Speaker", "connected": False}

    manager._connect("AA:BB:CC:DD:EE:01")
    manager.poll()

    device = manager.get_connected_device()
    if connected:
        assert device["name"] == "Kitchen Speaker"
        assert device["connected"] is True
        assert "connected_at" in device
    else:
        assert device is None


def test_disconnect(monkeypatch, manager):
    monkeypatch.setattr(bluetooth.subprocess, "run",
                        lambda cmd, capture_output, text, timeout:
                        SimpleNamespace(returncode=0, stdout=""))
    device = {"id": "AA:BB:CC:DD:EE:01", "name": "Kitchen Speaker", "connected": True}
    manager.devices[device["id"]] = dict(device)
    manager.connected = device
    started = []
    monkeypatch.setattr(manager, "_start", lambda target, *args: started.append(args))
    assert manager.disconnect() is True
    assert started == [(device,)]

    manager._disconnect(device)
    manager.poll()

    assert manager.get_connected_device() is None
    assert manager.devices[device["id"]]["connected"] is False


def test_disconnect_without_device(manager):
    assert manager.disconnect() is False


def test_subprocess_timeout_counts_as_failure(monkeypatch, manager):
    def fake_run(cmd, capture_output, text, timeout):
        raise subprocess.TimeoutExpired(cmd, timeout)

    monkeypatch.setattr(bluetooth.subprocess, "run", fake_run)
    manager.devices["AA:BB:CC:DD:EE:01"] = {"id": "AA:BB:CC:DD:EE:01", "name": "X"}
    manager._connect("AA:BB:CC:DD:EE:01")
    assert manager.poll() == [("connect_failed", "AA:BB:CC:DD:EE:01")]
