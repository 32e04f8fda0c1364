"""Tests for CLI interface."""

import json

import pytest
from click.testing import CliRunner
from PIL import Image

from conftest import jpeg_bytes

from photo_gallery import __version__
from photo_gallery.cli import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def gallery_args(tmp_path):
    return ["--db-path", str(tmp_path / "gallery.db"), "--upload-dir", str(tmp_path / "uploads")]


def test_cli_help(runner):
    """Test CLI help command."""
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "Usage:" in result.output
    assert "ingest" in result.output


def test_cli_version(runner):
    """Test CLI version command."""
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_classify(runner):
    result = runner.invoke(cli, ["classify", "a.JPG", "b.cr2", "c.txt"])
    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert lines == ["a.JPG: standard", "b.cr2: raw (.cr2)", "c.txt: unsupported"]


def test_presets(runner):
    result = runner.invoke(cli, ["presets"])
    assert result.exit_code == 0
    assert result.output.startswith("dramatic:")
    assert "noiseReduction=20" in result.output


def test_metadata_json(runner, tmp_path):
    image = tmp_path / "photo.jpg"
    image.write_bytes(jpeg_bytes(320, 200))
    result = runner.invoke(cli, ["metadata", str(image), "--json"])
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["width"] == 320
    assert data["format"] == "JPEG"


def test_metadata_unsupported(runner, tmp_path):
    notes = tmp_path / "notes.txt"
    notes.write_text("hello")
    result = runner.invoke(cli, ["metadata", str(notes)])
    assert result.exit_code == 1


def test_derive(runner, tmp_path):
    image = tmp_path / "beach.jpg"
    image.write_bytes(jpeg_bytes(1000, 800))
    out = tmp_path / "out"
    result = runner.invoke(cli, ["derive", str(image), "--out-dir", str(out)])
    assert result.exit_code == 0
    with Image.open(out / "thumbnail_beach.jpg") as thumb:
        assert thumb.size == (400, 320)
    assert (out / "web_beach.jpg").exists()
    assert (out / "highRes_beach.jpg").exists()


class TestAdjust:
    """Test the batch adjustment command."""

    def test_out_of_range(self, runner, tmp_path):
        raw = tmp_path / "IMG_1.CR2"
        raw.write_bytes(b"\x00RAW" * 64)
        result = runner.invoke(cli, ["adjust", str(raw), "--out-dir", str(tmp_path), "--set", "exposure=5"])
        assert result.exit_code == 1
        assert "exposure=5.0 outside [-2, 2]" in result.output

    def test_bad_assignment(self, runner, tmp_path):
        raw = tmp_path / "IMG_1.CR2"
        raw.write_bytes(b"\x00RAW" * 64)
        result = runner.invoke(cli, ["adjust", str(raw), "--out-dir", str(tmp_path), "--set", "exposure"])
        assert result.exit_code == 2

    def test_preset_batch(self, runner, tmp_path):
        sources = []
        for name in ("IMG_1.CR2", "IMG_2.NEF"):
            path = tmp_path / name
            path.write_bytes(b"\x00RAW" * 64)
            sources.append(str(path))
        out = tmp_path / "processed"
        result = runner.invoke(cli, ["adjust", *sources, "--out-dir", str(out), "--preset", "vivid", "--set", "clarity=0"])
        assert result.exit_code == 0
        assert "Processed 2/2 files" in result.output
        assert (out / "IMG_1_processed.jpg").exists()
        assert (out / "IMG_2_processed.jpg").exists()


class TestGallery:
    """Test collection management and ingestion."""

    def test_create_ingest_stats(self, runner, tmp_path, gallery_args):
        result = runner.invoke(cli, gallery_args + ["collection", "create", "--owner", "alice", "--title", "Trip"])
        assert result.exit_code == 0
        collection_id = result.output.strip()

        image = tmp_path / "photo.jpg"
        image.write_bytes(jpeg_bytes())
        result = runner.invoke(cli, gallery_args + [
            "ingest", str(image), "--collection", collection_id, "--owner", "alice",
        ])
        assert result.exit_code == 0
        photo = json.loads(result.output)
        assert photo["collectionId"] == collection_id
        assert photo["processingStatus"] == "completed"

        result = runner.invoke(cli, gallery_args + ["stats"])
        assert result.exit_code == 0
        assert "Collections: 1" in result.output
        assert "Photos: 1" in result.output

    def test_ingest_denied(self, runner, tmp_path, gallery_args):
        result = runner.invoke(cli, gallery_args + ["collection", "create", "--owner", "alice", "--title", "Trip"])
        collection_id = result.output.strip()

        image = tmp_path / "photo.jpg"
        image.write_bytes(jpeg_bytes())
        result = runner.invoke(cli, gallery_args + [
            "ingest", str(image), "--collection", collection_id, "--owner", "mallory",
        ])
        assert result.exit_code == 1
        assert "Error [ACCESS_DENIED]" in result.output
