import importlib.util
from pathlib import Path

import pytest
import yaml

from backend import database as db

from .conftest import SAMPLE_CATALOG

SCRIPT = Path(__file__).parent.parent / "scripts" / "setup.py"


@pytest.fixture
def setup_script(tmp_path, monkeypatch):
    spec = importlib.util.spec_from_file_location("watchparty_setup", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    monkeypatch.setattr(module, "MEDIA_DIR", tmp_path / "media")
    return module


@pytest.fixture
def catalog_file(tmp_path):
    path = tmp_path / "shows.yaml"
    path.write_text(yaml.safe_dump({"shows": SAMPLE_CATALOG}))
    return path


def run(module, monkeypatch, *args):
    monkeypatch.setattr("sys.argv", ["setup.py", *args])
    module.main()


def test_count_videos(setup_script):
    assert setup_script.count_videos(SAMPLE_CATALOG) == 7


def test_create_media_directories(setup_script):
    assert setup_script.create_media_directories(SAMPLE_CATALOG) == 4
    assert (setup_script.MEDIA_DIR / "series" / "golden-kamuy").is_dir()

    # Second run finds them all
    assert setup_script.create_media_directories(SAMPLE_CATALOG) == 0


def test_full_setup(setup_script, catalog_file, monkeypatch):
    run(setup_script, monkeypatch, "--catalog", str(catalog_file))

    assert (setup_script.MEDIA_DIR / "movies").is_dir()
    counts = db.get_catalog_counts()
    assert counts["shows"] == 3
    assert counts["videos"] == 7


def test_dry_run_changes_nothing(setup_script, catalog_file, monkeypatch, capsys):
    run(setup_script, monkeypatch, "--dry-run", "--catalog", str(catalog_file))

    assert not setup_script.MEDIA_DIR.exists()
    assert db.get_catalog_counts()["shows"] == 0
    assert "Would seed 3 shows, 7 videos" in capsys.readouterr().out


def test_dirs_only_skips_seeding(setup_script, catalog_file, monkeypatch):
    run(setup_script, monkeypatch, "--dirs-only", "--catalog", str(catalog_file))

    assert (setup_script.MEDIA_DIR / "series" / "golden-kamuy").is_dir()
    assert db.get_catalog_counts()["shows"] == 0


def test_seed_only_skips_directories(setup_script, catalog_file, monkeypatch):
    run(setup_script, monkeypatch, "--seed-only", "--catalog", str(catalog_file))

    assert not setup_script.MEDIA_DIR.exists()
    assert db.get_catalog_counts()["videos"] == 7


def test_empty_catalog_exits(setup_script, tmp_path, monkeypatch):
    empty = tmp_path / "empty.yaml"
    empty.write_text("shows: []\n")

    with pytest.raises(SystemExit) as exc:
        run(setup_script, monkeypatch, "--catalog", str(empty))

    assert exc.value.code == 1
