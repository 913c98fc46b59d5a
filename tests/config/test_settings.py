from unittest.mock import patch

import pytest

from arcellite.config import settings
from arcellite.config.settings import Config, load_config_file


def test_defaults():
    cfg = Config()
    assert cfg.mount_root == "/media/arcellite"
    assert cfg.allowed_roots == ["/media/", "/run/media/", "/mnt/"]
    assert cfg.poll_interval == 3


def test_apply_overrides_ignores_unknown_keys():
    cfg = Config()

    applied = cfg.apply_overrides({"mount_root": "/srv/usb", "nonsense": 1, "apply_overrides": None})

    assert applied == ["mount_root"]
    assert cfg.mount_root == "/srv/usb"
    assert callable(cfg.apply_overrides)


def test_load_config_file_storage_section(tmp_path):
    path = tmp_path / "arcellite.yaml"
    path.write_text("storage:\n  mount_root: /srv/usb\n  poll_interval: 1\nother:\n  x: 1\n")
    cfg = Config()

    with patch.object(settings, "config", cfg):
        applied = load_config_file(str(path))

    assert sorted(applied) == ["mount_root", "poll_interval"]
    assert cfg.mount_root == "/srv/usb"
    assert cfg.poll_interval == 1


def test_load_config_file_rejects_non_mapping(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ValueError):
        load_config_file(str(path))


def test_list_setting_from_a_plain_string(tmp_path):
    path = tmp_path / "arcellite.yaml"
    path.write_text("storage:\n  allowed_roots: /mnt/\n  cors_origins: http://a, http://b\n")
    cfg = Config()

    with patch.object(settings, "config", cfg):
        load_config_file(str(path))

    assert cfg.allowed_roots == ["/mnt/"]
    assert cfg.cors_origins == ["http://a", "http://b"]


def test_allowed_roots_from_string_still_block_other_paths(tmp_path):
    from arcellite.explorer.paths import resolve_listing_path
    from arcellite.storage.errors import PathNotAllowedError

    path = tmp_path / "arcellite.yaml"
    path.write_text("storage:\n  allowed_roots: /mnt/\n")
    cfg = Config()

    with patch.object(settings, "config", cfg):
        load_config_file(str(path))

    with patch.object(settings.config, "allowed_roots", cfg.allowed_roots):
        with pytest.raises(PathNotAllowedError):
            resolve_listing_path("/etc")


def test_numbers_are_converted():
    cfg = Config()

    cfg.apply_overrides({"poll_interval": "1.5", "service_uid": "1001", "lock_timeout": 30})

    assert cfg.poll_interval == 1.5
    assert cfg.service_uid == 1001
    assert isinstance(cfg.lock_timeout, float)


@pytest.mark.parametrize("key,value", [
    ("allowed_roots", {"a": 1}),
    ("allowed_roots", ["/mnt/", 3]),
    ("poll_interval", "soon"),
    ("service_uid", None),
    ("mount_root", ["/a", "/b"]),
])
def test_mismatched_types_are_rejected(key, value):
    cfg = Config()
    before = getattr(cfg, key)

    with pytest.raises(ValueError):
        cfg.apply_overrides({key: value})
    assert getattr(cfg, key) == before
