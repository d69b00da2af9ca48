"""Tests for batched guide import."""

import os
from unittest.mock import MagicMock

import pytest

from faqvault.ingestion.importer import GuideImporter, scan_directory
from faqvault.models import GuideFormat, ParsedGuide
from faqvault.parsing.guide_parser import GuideParser


class TitlelessParser(GuideParser):
    """Parser that yields a guide the store will reject for one filename."""

    def __init__(self, bad_name):
        super().__init__()
        self.bad_name = bad_name

    def parse_guide(self, file_path):
        parsed = super().parse_guide(file_path)
        if file_path.name == self.bad_name:
            return ParsedGuide.model_construct(
                title=None,
                content=parsed.content,
                format=GuideFormat.TXT,
                metadata={},
            )
        return parsed


def test_scan_directory(guide_tree, tmp_path):
    """Test scanning finds supported files in a stable order."""
    (guide_tree / "snes" / "notes.bin").write_bytes(b"\x00\x01")

    found = scan_directory(str(guide_tree))

    assert [p.name for p in found] == ["mario.txt", "zelda-faq.txt", "zelda-walkthrough.txt"]


def test_import_directory_links_games(guide_tree, tmp_db):
    """Test guides from one game folder share a single game row."""
    importer = GuideImporter(tmp_db)

    stats = importer.import_directory(str(guide_tree))

    assert stats.imported == 3
    assert stats.errors == 0
    assert stats.skipped == 0
    assert tmp_db.count_guides() == 3
    assert tmp_db.count_games() == 2

    zelda = tmp_db.find_game_by_external_id("1234")
    assert zelda is not None
    assert zelda.platform == "SNES"
    assert zelda.external_id == "1234"
    guides = tmp_db.guides_for_game(zelda.id)
    assert len(guides) == 2
    assert all(g.game_id == zelda.id for g in guides)

    mario = tmp_db.find_game_by_external_id("5678")
    assert mario.platform == "NES"


def test_import_stores_metadata(guide_tree, tmp_db):
    """Test extracted metadata and tags are stored with the guide."""
    GuideImporter(tmp_db, delete_source_files=False).import_directory(str(guide_tree))

    zelda = tmp_db.find_game_by_external_id("1234")
    walkthrough = next(
        g for g in tmp_db.guides_for_game(zelda.id) if g.file_path.endswith("zelda-walkthrough.txt")
    )

    assert walkthrough.title == "The Legend of Zelda Walkthrough"
    assert walkthrough.format == "txt"
    assert walkthrough.meta["author"] == "Link Hero"
    assert walkthrough.meta["version"] == "1.2"
    assert walkthrough.meta["platform"] == "SNES"
    assert isinstance(walkthrough.meta["tags"], list)


def test_imported_files_are_deleted(guide_tree, tmp_db):
    """Test source files are removed once their batch commits."""
    GuideImporter(tmp_db).import_directory(str(guide_tree))

    assert scan_directory(str(guide_tree)) == []


def test_keep_source_files(guide_tree, tmp_db):
    """Test files survive when deletion is disabled."""
    GuideImporter(tmp_db, delete_source_files=False).import_directory(str(guide_tree))

    assert len(scan_directory(str(guide_tree))) == 3


def test_reimport_skips_existing(guide_tree, tmp_db):
    """Test files already in the store are skipped on a second run."""
    importer = GuideImporter(tmp_db, delete_source_files=False)
    importer.import_directory(str(guide_tree))

    stats = importer.import_directory(str(guide_tree))

    assert stats.imported == 0
    assert stats.skipped == 3
    assert tmp_db.count_guides() == 3
    assert tmp_db.count_games() == 2


def test_unreadable_file_does_not_abort_batch(tmp_path, tmp_db, write_guides):
    """Test a binary file is counted as an error while its batch still commits."""
    root = tmp_path / "guides"
    paths = write_guides(root, 5)
    paths[2].write_bytes(b"binary\x00data")

    stats = GuideImporter(tmp_db, batch_size=10).import_directory(str(root))

    assert stats.imported == 4
    assert stats.errors == 1
    assert tmp_db.count_guides() == 4
    assert paths[2].exists()
    assert not any(p.exists() for i, p in enumerate(paths) if i != 2)


def test_rejected_guide_falls_back_to_single_files(tmp_path, tmp_db, write_guides):
    """Test a store rejection retries the batch one file per transaction."""
    root = tmp_path / "guides"
    paths = write_guides(root, 5)
    parser = TitlelessParser(bad_name=paths[3].name)

    stats = GuideImporter(tmp_db, parser=parser, batch_size=5).import_directory(str(root))

    assert stats.imported == 4
    assert stats.errors == 1
    assert tmp_db.count_guides() == 4
    assert paths[3].exists()
    assert not paths[0].exists()


def test_batches_yield_control(tmp_path, tmp_db, write_guides):
    """Test control is yielded once per batch."""
    root = tmp_path / "guides"
    write_guides(root, 5)
    yield_control = MagicMock()

    stats = GuideImporter(tmp_db, batch_size=2, yield_control=yield_control).import_directory(
        str(root)
    )

    assert stats.imported == 5
    assert yield_control.call_count == 3


def test_progress_reports(tmp_path, tmp_db, write_guides):
    """Test progress moves from scanning through importing to complete."""
    root = tmp_path / "guides"
    write_guides(root, 4)
    updates = []

    GuideImporter(tmp_db, batch_size=2).import_directory(str(root), updates.append)

    assert updates[0].stage == "scanning"
    assert updates[-1].stage == "complete"
    assert updates[-1].current == 4
    assert updates[-1].total == 4
    assert updates[-1].imported == 4
    assert {u.stage for u in updates[1:-1]} == {"importing"}
    assert [u.current for u in updates] == sorted(u.current for u in updates)


def test_import_in_progress_flag(tmp_path, tmp_db, write_guides):
    """Test the importer reports a running import and rejects a second one."""
    root = tmp_path / "guides"
    write_guides(root, 1)
    importer = GuideImporter(tmp_db)
    seen = []

    def on_progress(progress):
        seen.append(importer.is_import_in_progress())
        if progress.stage == "importing" and len(seen) == 2:
            with pytest.raises(RuntimeError):
                importer.import_directory(str(root))

    importer.import_directory(str(root), on_progress)

    assert all(seen)
    assert not importer.is_import_in_progress()


def test_empty_directory(tmp_path, tmp_db):
    """Test importing an empty directory does nothing."""
    root = tmp_path / "empty"
    root.mkdir()

    stats = GuideImporter(tmp_db).import_directory(str(root))

    assert (stats.imported, stats.skipped, stats.errors) == (0, 0, 0)


def test_import_file(guide_tree, tmp_db):
    """Test importing a single file."""
    path = guide_tree / "nes" / "5678-super-mario-bros" / "faqs" / "mario.txt"

    guide = GuideImporter(tmp_db).import_file(str(path))

    assert guide.title == "Super Mario Bros. FAQ/Walkthrough"
    assert tmp_db.get_guide(guide.id).game_id is not None
    assert path.exists()


def test_invalid_batch_size(tmp_db):
    """Test a batch size below one is rejected."""
    with pytest.raises(ValueError):
        GuideImporter(tmp_db, batch_size=0)


def test_get_import_stats(guide_tree, tmp_db):
    """Test aggregate statistics after an import."""
    importer = GuideImporter(tmp_db)
    importer.import_directory(str(guide_tree))

    stats = importer.get_import_stats()

    assert stats["total_guides"] == 3
    assert stats["total_games"] == 2
    assert stats["guides_with_games"] == 3
    assert stats["guides_without_games"] == 0


def test_undecodable_filename_does_not_abort_run(tmp_path, tmp_db, write_guides):
    """Test a filename that is not valid UTF-8 counts as one error and the rest import."""
    root = tmp_path / "guides"
    good = write_guides(root, 3)
    bad = os.path.join(os.fsencode(root), b"bad-\xff-guide.txt")
    with open(bad, "wb") as f:
        f.write(b"Bad Name Guide\n\nStill readable text.\n")

    stats = GuideImporter(tmp_db, batch_size=10).import_directory(str(root))

    assert stats.imported == 3
    assert stats.errors == 1
    assert tmp_db.count_guides() == 3
    assert os.path.exists(bad)
    assert not any(p.exists() for p in good)


def test_progress_counts_games(guide_tree, tmp_db):
    """Test progress reports the number of games resolved so far."""
    updates = []

    GuideImporter(tmp_db, batch_size=1).import_directory(str(guide_tree), updates.append)

    assert updates[0].games == 0
    assert updates[-1].games == 2
    assert [u.games for u in updates] == sorted(u.games for u in updates)
