import asyncio
import os
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from arcellite.api.routers import files
from arcellite.config.settings import config
from arcellite.storage.privileged import CommandResult

app = FastAPI()
app.include_router(files.router)
client = TestClient(app)


def _sudo_denied(*args, **kwargs):
    return CommandResult(args=[], returncode=1, stdout="", stderr="sudo: a password is required")


def _realpath_as_root(args, **kwargs):
    return CommandResult(args=args, returncode=0, stdout=os.path.realpath(args[-1]) + "\n", stderr="")


@pytest.fixture
def media_root(tmp_path):
    root = tmp_path / "media"
    (root / "usb1").mkdir(parents=True)
    with patch.object(config, "allowed_roots", [str(root) + "/"]), \
            patch("arcellite.explorer.lister.run_sudo_noninteractive", side_effect=_sudo_denied), \
            patch("arcellite.explorer.paths.run_sudo_noninteractive", side_effect=_realpath_as_root):
        yield root


def test_list_outside_allowed_roots():
    response = client.get("/api/files/list-external", params={"path": "/etc"})

    assert response.status_code == 403
    assert response.json() == {"error": "Path not allowed"}


def test_list_empty_directory(media_root):
    (media_root / "usb1" / "empty_dir").mkdir()

    response = client.get("/api/files/list-external", params={"path": str(media_root / "usb1" / "empty_dir")})

    assert response.status_code == 200
    assert response.json() == {"folders": [], "files": []}


def test_list_directory_uses_camel_case(media_root):
    (media_root / "usb1" / "DCIM").mkdir()
    (media_root / "usb1" / "photo.jpg").write_bytes(b"x" * 10)

    response = client.get("/api/files/list-external", params={"path": str(media_root / "usb1")})

    data = response.json()
    assert data["folders"][0]["name"] == "DCIM"
    assert data["folders"][0]["isFolder"] is True
    assert data["folders"][0]["hasSubfolders"] is False
    assert data["files"][0]["sizeBytes"] == 10
    assert "mtimeMs" in data["files"][0]


def test_serve_image(media_root):
    photo = media_root / "usb1" / "photo.jpg"
    photo.write_bytes(b"\xff\xd8" + b"\x00" * 204798)

    response = client.get("/api/files/serve-external", params={"path": str(photo)})

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/jpeg"
    assert response.headers["content-length"] == "204800"
    assert response.headers["cache-control"] == "public, max-age=31536000"
    assert response.content == photo.read_bytes()


def test_serve_directory_is_rejected(media_root):
    response = client.get("/api/files/serve-external", params={"path": str(media_root / "usb1")})

    assert response.status_code == 400


def test_serve_missing_file(media_root):
    with patch("arcellite.explorer.streamer.run_sudo_noninteractive", side_effect=_sudo_denied):
        response = client.get("/api/files/serve-external", params={"path": str(media_root / "usb1" / "gone.mp4")})

    assert response.status_code == 404


@pytest.mark.parametrize("path", ["relative.txt", "/media/usb1/../../etc/passwd", "/etc/shadow"])
def test_serve_forbidden_paths(path):
    response = client.get("/api/files/serve-external", params={"path": path})

    assert response.status_code == 403
    assert response.json() == {"error": "Forbidden"}


def test_mkdir_rename_delete(media_root):
    folder = media_root / "usb1" / "Backups"

    response = client.post("/api/files/mkdir-external", json={"path": str(folder)})
    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert folder.is_dir()

    response = client.post("/api/files/rename-external", json={"path": str(folder), "newName": "Archive"})
    assert response.status_code == 200
    assert response.json() == {"ok": True, "newPath": str(media_root / "usb1" / "Archive")}

    response = client.post("/api/files/delete-external", json={"path": str(media_root / "usb1" / "Archive")})
    assert response.status_code == 200
    assert not (media_root / "usb1" / "Archive").exists()


def test_delete_outside_allowed_roots():
    response = client.post("/api/files/delete-external", json={"path": "/home/pi/important"})

    assert response.status_code == 403


def test_delete_missing(media_root):
    response = client.post("/api/files/delete-external", json={"path": str(media_root / "usb1" / "ghost")})

    assert response.status_code == 404
    assert response.json() == {"error": "File not found"}


def test_serve_through_symlink_out_of_root(media_root, tmp_path):
    outside = tmp_path / "etc"
    outside.mkdir()
    (outside / "shadow").write_text("root:*:")
    (media_root / "usb1" / "link").symlink_to(outside)

    response = client.get("/api/files/serve-external", params={"path": f"{media_root}/usb1/link/shadow"})

    assert response.status_code == 403
    assert response.json() == {"error": "Forbidden"}


def test_list_through_symlink_out_of_root(media_root, tmp_path):
    (tmp_path / "etc").mkdir()
    (media_root / "usb1" / "link").symlink_to(tmp_path / "etc")

    response = client.get("/api/files/list-external", params={"path": f"{media_root}/usb1/link"})

    assert response.status_code == 403
    assert response.json() == {"error": "Path not allowed"}


class RecordingSource:
    def __init__(self):
        self.closed = False

    def __aiter__(self):
        return self._chunks()

    async def _chunks(self):
        yield b"never sent"

    async def aclose(self):
        self.closed = True


@pytest.mark.asyncio
async def test_file_response_releases_source_when_client_is_gone():
    source = RecordingSource()
    response = files.ExternalFileResponse(source, media_type="video/mp4", headers={"Content-Length": "10"})

    async def receive():
        await asyncio.Event().wait()

    async def send(message):
        raise OSError("client went away")

    with pytest.raises(Exception):
        await response({"type": "http", "asgi": {"spec_version": "2.4"}}, receive, send)

    assert source.closed
