"""Tests for configuration loading and the derived scan settings."""

import json
from pathlib import Path

import pytest

from struct_fingerprinter.config import (
    TIMESTAMP_HORIZON_SECONDS,
    UNIX_EPOCH_2000,
    FingerprinterConfig,
    ScanSettings,
    load_config,
    save_config,
)


def test_save_and_load(tmp_path):
    path = tmp_path / "config.json"
    config = FingerprinterConfig(
        pointer_size=4,
        default_scan_length=512,
        show_padding=True,
        export_dir=tmp_path / "exports",
    )
    assert save_config(config, path)

    loaded = load_config(path)
    assert loaded.pointer_size == 4
    assert loaded.default_scan_length == 512
    assert loaded.show_padding is True
    assert loaded.export_dir == tmp_path / "exports"
    assert loaded.structures_path == tmp_path / "exports" / "structures.json"


def test_unknown_keys_ignored(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({'progress_stride': 256, 'theme': 'dark'}), encoding='utf-8')

    loaded = load_config(path)
    assert loaded.progress_stride == 256
    assert not hasattr(loaded, 'theme')


def test_scan_settings_from_config():
    config = FingerprinterConfig(pointer_size=4, max_string_length=64)
    settings = config.scan_settings(scan_time=1750000000.0)

    assert settings.pointer_size == 4
    assert settings.max_string_length == 64
    assert settings.timestamp_min == UNIX_EPOCH_2000
    assert settings.timestamp_max() == 1750000000.0 + TIMESTAMP_HORIZON_SECONDS


@pytest.mark.parametrize("kwargs", [
    {'pointer_size': 6},
    {'progress_stride': 0},
    {'max_string_length': 3},
])
def test_invalid_scan_settings(kwargs):
    with pytest.raises(ValueError):
        ScanSettings(**kwargs)


def test_save_failure_returns_false(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("", encoding='utf-8')
    assert not save_config(FingerprinterConfig(), blocker / "config.json")


def test_default_export_dir_is_a_path():
    assert isinstance(FingerprinterConfig().export_dir, Path)
