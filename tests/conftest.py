"""Pytest configuration and fixtures for FAQ Vault tests."""

from pathlib import Path
from typing import Generator

import pytest

from faqvault.storage.database import GuideDatabase


@pytest.fixture
def tmp_db(tmp_path) -> Generator[GuideDatabase, None, None]:
    """Create a migrated temporary guide database."""
    db = GuideDatabase(str(tmp_path / "test_guides.db"))
    db.run_migrations()
    yield db
    db.close()


@pytest.fixture
def guide_tree(tmp_path) -> Path:
    """Provide an archive-style directory of guides.

    Layout: <root>/<platform>/<id>-<slug>/faqs/<file>
    """
    root = tmp_path / "extracted"

    zelda = root / "snes" / "1234-legend-of-zelda" / "faqs"
    zelda.mkdir(parents=True)
    (zelda / "zelda-walkthrough.txt").write_text(
        "The Legend of Zelda Walkthrough\n"
        "Version: 1.2\n"
        "Written by: Link Hero\n\n"
        "Defeat every boss and collect each secret item.\n"
    )
    (zelda / "zelda-faq.txt").write_text(
        "Zelda FAQ\n\nQ: Where is the master sword?\nA: In the lost woods.\n"
    )

    mario = root / "nes" / "5678-super-mario-bros" / "faqs"
    mario.mkdir(parents=True)
    (mario / "mario.txt").write_text("Super Mario Bros. FAQ/Walkthrough\nv1.0\n\nWorld 1-1.\n")

    return root


@pytest.fixture
def write_guides():
    """Provide a helper that writes small text guides and returns their paths."""

    def _write(directory: Path, count: int, prefix: str = "guide") -> list:
        directory.mkdir(parents=True, exist_ok=True)
        paths = []
        for i in range(count):
            path = directory / f"{prefix}-{i:03d}.txt"
            path.write_text(f"{prefix.title()} Number {i} Guide\n\nSome content for guide {i}.\n")
            paths.append(path)
        return paths

    return _write
