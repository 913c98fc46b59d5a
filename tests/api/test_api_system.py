from unittest.mock import patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from arcellite.api.routers import system
from arcellite.storage.errors import DeviceBusyError, IncorrectPasswordError, NoPartitionError
from arcellite.storage.models import Device, DeviceType, RootStorage, StorageOverview

app = FastAPI()
app.include_router(system.router)
client = TestClient(app)


def _overview():
    return StorageOverview(
        root_storage=RootStorage(
            total_bytes=100, used_bytes=40, available_bytes=60, used_percent=40,
            total_human="100B", used_human="40B", available_human="60B",
        ),
        removable=[Device(
            name="sdb",
            model="Cruzer Blade",
            label="KINGSTON",
            size_human="29.3GB",
            device_type=DeviceType.REMOVABLE,
            size_bytes=31457280000,
            mountpoint="/media/arcellite/KINGSTON",
        )],
    )


def test_mount_without_password_is_rejected():
    with patch("arcellite.storage.privileged.subprocess.run") as mock_run:
        response = client.post("/api/system/mount", json={"device": "sdb", "password": ""})

    assert response.status_code == 401
    assert response.json() == {"error": "Password required", "requiresAuth": True}
    mock_run.assert_not_called()


def test_mount_invalid_device_name():
    with patch("arcellite.storage.privileged.subprocess.run") as mock_run:
        response = client.post("/api/system/mount", json={"device": "sdb1; reboot", "password": "pw"})

    assert response.status_code == 400
    assert "requiresAuth" not in response.json()
    mock_run.assert_not_called()


def test_unmount_missing_device():
    response = client.post("/api/system/unmount", json={"password": "pw"})

    assert response.status_code == 400


@patch.object(system, "manager")
def test_mount_success(mock_manager):
    mock_manager.mount.return_value = "/media/arcellite/KINGSTON"

    response = client.post("/api/system/mount", json={"device": "sdb", "password": "pw"})

    assert response.status_code == 200
    assert response.json() == {"ok": True, "mountpoint": "/media/arcellite/KINGSTON"}
    mock_manager.mount.assert_called_once_with("sdb", "pw")


@patch.object(system, "manager")
def test_mount_incorrect_password(mock_manager):
    mock_manager.mount.side_effect = IncorrectPasswordError()

    response = client.post("/api/system/mount", json={"device": "sdb", "password": "wrong"})

    assert response.status_code == 401
    assert response.json() == {"error": "Incorrect password", "requiresAuth": True}


@patch.object(system, "manager")
def test_mount_no_partition(mock_manager):
    mock_manager.mount.side_effect = NoPartitionError("No partition found to mount")

    response = client.post("/api/system/mount", json={"device": "sdb", "password": "pw"})

    assert response.status_code == 400
    assert response.json() == {"error": "No partition found to mount"}


@patch.object(system, "manager")
def test_unmount_busy_device(mock_manager):
    mock_manager.unmount.side_effect = DeviceBusyError("sdb is busy")

    response = client.post("/api/system/unmount", json={"device": "sdb", "password": "pw"})

    assert response.status_code == 409
    assert response.json() == {"error": "sdb is busy"}


@patch.object(system, "manager")
def test_unexpected_error_is_500(mock_manager):
    mock_manager.unmount.side_effect = RuntimeError("boom")

    response = client.post("/api/system/unmount", json={"device": "sdb", "password": "pw"})

    assert response.status_code == 500
    assert response.json() == {"error": "boom"}


@patch.object(system, "manager")
def test_unmount_success(mock_manager):
    response = client.post("/api/system/unmount", json={"device": "sdb", "password": "pw"})

    assert response.status_code == 200
    assert response.json() == {"ok": True}


@patch.object(system, "manager")
def test_storage_overview_uses_camel_case(mock_manager):
    mock_manager.get_overview.return_value = _overview()

    response = client.get("/api/system/storage")

    assert response.status_code == 200
    data = response.json()
    assert data["rootStorage"]["usedPercent"] == 40
    device = data["removable"][0]
    assert device["sizeHuman"] == "29.3GB"
    assert device["deviceType"] == "removable"
    assert device["mountpoint"] == "/media/arcellite/KINGSTON"


@patch("arcellite.hwosinfo.hw.subprocess.check_output", side_effect=FileNotFoundError("lsblk"))
def test_storage_without_lsblk(mock_check_output):
    response = client.get("/api/system/storage")

    assert response.status_code == 500
    assert "error" in response.json()


def test_storage_with_real_manager_and_fake_lsblk():
    lsblk = (
        b'{"blockdevices": [{"name": "sdb", "size": 31457280000, "model": "Cruzer",'
        b' "mountpoint": null, "rm": true, "label": null, "uuid": null, "fstype": null,'
        b' "fsused": null, "fsavail": null, "fssize": null,'
        b' "children": [{"name": "sdb1", "size": 31457280000, "model": null, "mountpoint": null,'
        b' "rm": true, "label": "KINGSTON", "uuid": "1234-ABCD", "fstype": "vfat",'
        b' "fsused": null, "fsavail": null, "fssize": null}]}]}'
    )

    with patch("arcellite.hwosinfo.hw.subprocess.check_output", return_value=lsblk):
        response = client.get("/api/system/storage")

    assert response.status_code == 200
    assert [d["name"] for d in response.json()["removable"]] == ["sdb"]


class FakeNotifier:
    def __init__(self):
        self.closed = False

    async def stream(self):
        try:
            yield ":\n\n"
            yield 'data: {"type": "init", "devices": []}\n\n'
        finally:
            self.closed = True


def test_usb_events_stream():
    fake = FakeNotifier()

    with patch.object(system, "notifier", fake):
        with client.stream("GET", "/api/system/usb-events") as response:
            body = "".join(response.iter_text())

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert response.headers["x-accel-buffering"] == "no"
    assert body == ':\n\ndata: {"type": "init", "devices": []}\n\n'
    assert fake.closed


@patch("arcellite.version.get_version", return_value="1.2.3")
def test_version_endpoint(mock_version):
    response = client.get("/api/system/version")

    assert response.status_code == 200
    assert response.json() == {"version": "1.2.3"}
