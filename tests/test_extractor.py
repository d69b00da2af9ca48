"""Tests for two-stage archive extraction."""

import io
import zipfile

import py7zr
import pytest

from faqvault.acquisition.extractor import ArchiveExtractor
from faqvault.exceptions import ExtractionError


def _zip_bytes(files):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buffer.getvalue()


def _seven_zip(path, files, staging):
    staging.mkdir(parents=True, exist_ok=True)
    with py7zr.SevenZipFile(path, "w") as archive:
        for name, data in files.items():
            source = staging / name.replace("/", "_")
            source.write_text(data)
            archive.write(source, arcname=name)


@pytest.fixture
def outer_archive(tmp_path):
    """Build an outer zip holding one valid inner 7z, one corrupt 7z and a readme."""
    work = tmp_path / "build"
    work.mkdir()
    good = work / "snes.7z"
    _seven_zip(
        good,
        {"snes/1234-zelda/faqs/walkthrough.txt": "Zelda Walkthrough\n"},
        work / "staging",
    )

    outer = tmp_path / "archive.zip"
    with zipfile.ZipFile(outer, "w") as zf:
        zf.write(good, "snes.7z")
        zf.writestr("broken.7z", b"this is not a 7z archive")
        zf.writestr("README.txt", "ignore me")
    return outer


def test_extract_two_stage(tmp_path, outer_archive):
    """Test inner archives are unpacked and then deleted."""
    out = tmp_path / "extracted"
    updates = []

    extractor = ArchiveExtractor()
    result = extractor.extract(str(outer_archive), str(out), updates.append)

    assert result == str(out)
    guide = out / "snes" / "1234-zelda" / "faqs" / "walkthrough.txt"
    assert guide.read_text() == "Zelda Walkthrough\n"
    assert not (out / "snes.7z").exists()
    assert not (out / "broken.7z").exists()
    assert not (out / "README.txt").exists()

    progress = extractor.get_progress()
    assert progress.status == "complete"
    assert progress.total_archives == 2
    assert progress.extracted_archives == 1
    assert len(progress.errors) == 1
    assert "broken.7z" in progress.errors[0]

    assert updates[0].status == "extracting"
    assert updates[-1].status == "complete"


def test_nested_zip_archives(tmp_path):
    """Test inner archives in zip format when configured with a .zip suffix."""
    outer = tmp_path / "archive.zip"
    with zipfile.ZipFile(outer, "w") as zf:
        zf.writestr("nes.zip", _zip_bytes({"nes/1-mario/faqs/mario.txt": "Mario"}))
        zf.writestr("pc.zip", _zip_bytes({"pc/2-doom/faqs/doom.txt": "Doom"}))

    out = tmp_path / "extracted"
    extractor = ArchiveExtractor(inner_suffix=".zip")
    extractor.extract(str(outer), str(out))

    assert (out / "nes" / "1-mario" / "faqs" / "mario.txt").read_text() == "Mario"
    assert (out / "pc" / "2-doom" / "faqs" / "doom.txt").read_text() == "Doom"
    assert not list(out.glob("*.zip"))
    assert extractor.get_progress().extracted_archives == 2
    assert extractor.get_progress().errors == []


def test_corrupt_outer_archive(tmp_path):
    """Test an unreadable outer archive raises and records the error."""
    outer = tmp_path / "archive.zip"
    outer.write_bytes(b"definitely not a zip")

    extractor = ArchiveExtractor()
    with pytest.raises(ExtractionError):
        extractor.extract(str(outer), str(tmp_path / "extracted"))

    progress = extractor.get_progress()
    assert progress.status == "error"
    assert progress.error


def test_missing_outer_archive(tmp_path):
    """Test a missing outer archive raises ExtractionError."""
    with pytest.raises(ExtractionError):
        ArchiveExtractor().extract(str(tmp_path / "nope.zip"), str(tmp_path / "out"))


def test_entries_outside_output_are_skipped(tmp_path):
    """Test path traversal entries are not written."""
    outer = tmp_path / "archive.zip"
    with zipfile.ZipFile(outer, "w") as zf:
        zf.writestr("../escape.zip", _zip_bytes({"x.txt": "x"}))

    out = tmp_path / "nested" / "extracted"
    extractor = ArchiveExtractor(inner_suffix=".zip")
    extractor.extract(str(outer), str(out))

    assert not (tmp_path / "nested" / "escape.zip").exists()
    assert extractor.get_progress().total_archives == 0


def test_progress_snapshot_is_a_copy(tmp_path, outer_archive):
    """Test callers cannot mutate extractor state through a snapshot."""
    extractor = ArchiveExtractor()
    extractor.extract(str(outer_archive), str(tmp_path / "extracted"))

    snapshot = extractor.get_progress()
    snapshot.errors.append("tampered")
    assert "tampered" not in extractor.get_progress().errors
