from datetime import datetime, timezone
from pathlib import Path

import pytest

from shieldgrid.setup_directories import (
    get_export_path,
    get_frame_path,
    get_log_path,
    get_section_path,
    setup_output_directories,
)

pytestmark = pytest.mark.unit


def test_setup_output_directories_creates_all(tmp_path):
    dirs = setup_output_directories(tmp_path)

    expected = {"base", "snapshots", "frames", "sections", "logs"}

    assert set(dirs.keys()) == expected

    for path in dirs.values():
        assert isinstance(path, Path)
        assert path.exists()
        assert path.is_dir()


def test_setup_output_directories_is_idempotent(tmp_path):
    dirs1 = setup_output_directories(tmp_path)
    dirs2 = setup_output_directories(tmp_path)

    assert dirs1 == dirs2


def test_default_base_is_under_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    dirs = setup_output_directories()

    assert dirs["base"] == (tmp_path / "shieldgrid_output").resolve()


def test_frame_path(tmp_path):
    dirs = setup_output_directories(tmp_path)
    ts = datetime(2025, 1, 1, 22, 17, 6, tzinfo=timezone.utc)

    path = get_frame_path(dirs, "default", 12, ts)

    assert path == dirs["frames"] / "default" / "default_221706_000012"
    assert path.parent.is_dir()


def test_export_path_uses_epoch_ms(tmp_path):
    dirs = setup_output_directories(tmp_path)

    path = get_export_path(dirs, datetime(2025, 1, 1, tzinfo=timezone.utc))

    assert path == dirs["snapshots"] / "shieldgrid-1735689600000.json"


def test_section_path(tmp_path):
    dirs = setup_output_directories(tmp_path)
    assert get_section_path(dirs, "TXN-1") == dirs["sections"] / "section_TXN-1"


def test_log_path(tmp_path):
    dirs = setup_output_directories(tmp_path)

    assert get_log_path(dirs, "gallery") == dirs["logs"] / "session_gallery.log"
    assert get_log_path(dirs) == dirs["logs"] / "session_latest.log"
