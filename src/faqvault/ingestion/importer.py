"""Bulk import of guide files into the guide store."""

import logging
import os
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from faqvault.exceptions import FaqVaultError
from faqvault.models import GameInfo, ImportProgress, ImportStats, ParsedGuide
from faqvault.parsing.guide_parser import SUPPORTED_EXTENSIONS, GuideParser
from faqvault.storage.database import GuideDatabase
from faqvault.storage.models import Guide
from faqvault.validation.metadata import normalize_guide_metadata

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ImportProgress], None]

# Per-file failures that count as an error without stopping the run
PARSE_ERRORS = (FaqVaultError, OSError, ValueError)
FILE_ERRORS = PARSE_ERRORS + (SQLAlchemyError,)


def _yield_to_other_threads() -> None:
    time.sleep(0)


def scan_directory(root: str) -> List[Path]:
    """Recursively list guide files under ``root`` in a stable order."""
    found: List[Path] = []

    def _on_error(error: OSError) -> None:
        logger.error(f"Failed to scan directory {error.filename}: {error}")

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        dirnames.sort()
        for name in sorted(filenames):
            if Path(name).suffix.lower() in SUPPORTED_EXTENSIONS:
                found.append(Path(dirpath) / name)

    return found


class ImportRun:
    """Run-scoped state for one directory import.

    Holds the running totals and the external-id to game-id cache. The cache
    lives only as long as the run, so separate imports never share it.
    """

    def __init__(self, importer: "GuideImporter", root: str) -> None:
        """Initialize an import run.

        Args:
            importer: The GuideImporter performing the run
            root: Directory being imported
        """
        self.importer = importer
        self.root = root
        self.stats = ImportStats()
        self.game_ids: Dict[str, str] = {}
        self.total = 0

    def __enter__(self) -> "ImportRun":
        if self.importer._importing:
            raise RuntimeError("Import already in progress")
        self.importer._importing = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.importer._importing = False
        return False


class GuideImporter:
    """Imports guide files in batched transactions, deleting each file once stored."""

    def __init__(
        self,
        db: GuideDatabase,
        parser: Optional[GuideParser] = None,
        batch_size: int = 100,
        delete_source_files: bool = True,
        yield_control: Callable[[], None] = _yield_to_other_threads,
    ):
        """Initialize the importer.

        Args:
            db: Destination guide database
            parser: Guide parser (a default GuideParser when omitted)
            batch_size: Files per transaction
            delete_source_files: Remove each file after its guide is committed
            yield_control: Called between batches so other threads get to run
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.db = db
        self.parser = parser or GuideParser()
        self.batch_size = batch_size
        self.delete_source_files = delete_source_files
        self.yield_control = yield_control
        self._importing = False

    def is_import_in_progress(self) -> bool:
        return self._importing

    def import_directory(
        self, root: str, on_progress: Optional[ProgressCallback] = None
    ) -> ImportStats:
        """Import every supported guide file under ``root``.

        Args:
            root: Directory to scan recursively
            on_progress: Called with an ImportProgress snapshot per stage and batch

        Returns:
            ImportStats with imported, skipped and errors totals

        Raises:
            RuntimeError: If an import is already running on this importer
        """
        with ImportRun(self, root) as run:
            self._report(on_progress, run, 0, "Scanning directory...", "scanning")

            logger.info(f"Scanning directory: {root}")
            files = scan_directory(root)
            run.total = len(files)
            logger.info(f"Found {run.total} guide files")

            self._report(on_progress, run, 0, "", "importing")

            for start in range(0, run.total, self.batch_size):
                batch = files[start : start + self.batch_size]
                self._report(on_progress, run, start, batch[0].name, "importing")

                self._import_batch(run, batch)

                done = start + len(batch)
                if done == run.total or (start // self.batch_size) % 5 == 4:
                    logger.info(
                        f"Progress: {run.stats.imported}/{run.total} guides imported "
                        f"({run.stats.errors} errors)"
                    )

                self.yield_control()

            self._report(on_progress, run, run.total, "", "complete")
            logger.info(
                f"Import complete: {run.stats.imported} imported, "
                f"{run.stats.skipped} skipped, {run.stats.errors} errors"
            )
            return run.stats

    def import_file(self, file_path: str) -> Guide:
        """Parse and store a single guide file in its own transaction.

        Raises:
            FaqVaultError: If the file cannot be parsed
            sqlalchemy.exc.SQLAlchemyError: If the store rejects the guide
        """
        path = Path(file_path)
        parsed = self.parser.parse_guide(path)
        with self.db.transaction() as session:
            return self._store_guide(path, parsed, session, {}, {})

    def get_import_stats(self) -> Dict[str, int]:
        return self.db.get_aggregate_stats()

    def _report(
        self,
        on_progress: Optional[ProgressCallback],
        run: ImportRun,
        current: int,
        current_file: str,
        stage: str,
    ) -> None:
        if on_progress is None:
            return
        on_progress(
            ImportProgress(
                total=run.total,
                current=current,
                current_file=current_file,
                stage=stage,
                imported=run.stats.imported,
                errors=run.stats.errors,
                games=len(run.game_ids),
            )
        )

    def _import_batch(self, run: ImportRun, batch: Sequence[Path]) -> None:
        """Import one batch in a single transaction, falling back to per-file transactions."""
        new_games: Dict[str, str] = {}
        imported: List[Path] = []
        skipped = 0
        errors = 0

        try:
            with self.db.transaction() as session:
                existing = self._existing_paths(batch, session)

                for path in batch:
                    if str(path) in existing:
                        skipped += 1
                        continue

                    try:
                        parsed = self.parser.parse_guide(path)
                    except PARSE_ERRORS as e:
                        logger.error(f"Failed to import {path.name}: {e}")
                        errors += 1
                        continue

                    self._store_guide(path, parsed, session, run.game_ids, new_games)
                    imported.append(path)

        except FILE_ERRORS as e:
            logger.warning(
                f"Batch of {len(batch)} files failed ({e.__class__.__name__}: {e}), "
                f"retrying one by one"
            )
            self._import_one_by_one(run, batch)
            return

        run.game_ids.update(new_games)
        run.stats.imported += len(imported)
        run.stats.skipped += skipped
        run.stats.errors += errors

        for path in imported:
            self._delete_source(path)

    def _import_one_by_one(self, run: ImportRun, batch: Sequence[Path]) -> None:
        for path in batch:
            new_games: Dict[str, str] = {}
            try:
                with self.db.transaction() as session:
                    if self._existing_paths([path], session):
                        run.stats.skipped += 1
                        continue

                    parsed = self.parser.parse_guide(path)
                    self._store_guide(path, parsed, session, run.game_ids, new_games)
            except FILE_ERRORS as e:
                logger.error(f"Failed to import {path.name}: {e}")
                run.stats.errors += 1
                continue

            run.game_ids.update(new_games)
            run.stats.imported += 1
            self._delete_source(path)

    def _existing_paths(self, paths: Sequence[Path], session: Session) -> Set[str]:
        return self.db.existing_file_paths([str(p) for p in paths], session=session)

    def _store_guide(
        self,
        path: Path,
        parsed: ParsedGuide,
        session: Session,
        known_games: Dict[str, str],
        new_games: Dict[str, str],
    ) -> Guide:
        """Insert one parsed guide, creating its game on first sight."""
        info = self.parser.extract_game_info_from_path(path)
        game_id = self._resolve_game(info, session, known_games, new_games)

        metadata = dict(parsed.metadata)
        metadata["tags"] = self.parser.generate_tags(parsed.content, path.name)
        metadata["platform"] = info.platform or parsed.metadata.get("platform")

        return self.db.create_guide(
            title=parsed.title,
            content=parsed.content,
            format=parsed.format,
            file_path=str(path),
            game_id=game_id,
            metadata=normalize_guide_metadata(metadata),
            session=session,
        )

    def _resolve_game(
        self,
        info: GameInfo,
        session: Session,
        known_games: Dict[str, str],
        new_games: Dict[str, str],
    ) -> Optional[str]:
        """Look up or create the game for an external id.

        ``new_games`` collects ids resolved inside the open transaction; the
        caller merges them into the run cache only after the commit succeeds.
        """
        external_id = info.external_id
        if not external_id:
            return None

        cached = known_games.get(external_id) or new_games.get(external_id)
        if cached:
            return cached

        game = self.db.find_game_by_external_id(external_id, session=session)
        if game is None:
            game = self.db.create_game(
                title=info.name,
                platform=info.platform,
                metadata={"external_id": external_id},
                session=session,
            )
            logger.debug(f"Created game {info.name} ({external_id})")

        new_games[external_id] = game.id
        return game.id

    def _delete_source(self, path: Path) -> None:
        if not self.delete_source_files:
            return
        try:
            path.unlink()
        except OSError as e:
            logger.warning(f"Could not delete imported file {path}: {e}")
