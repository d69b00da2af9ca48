"""One-time bootstrap of an empty guide store: download, extract, import."""

import logging
import shutil
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from faqvault.acquisition.downloader import ArchiveDownloader
from faqvault.acquisition.extractor import ArchiveExtractor
from faqvault.ingestion.importer import GuideImporter
from faqvault.ingestion.status import StatusCallback, StatusPublisher, Subscription
from faqvault.models import (
    DownloadProgress,
    ExtractionProgress,
    ImportProgress,
    InitStage,
    InitStatus,
)
from faqvault.storage.database import GuideDatabase

logger = logging.getLogger(__name__)

ARCHIVE_FILENAME = "gamefaqs_archive.zip"
EXTRACTED_DIRNAME = "extracted"

# Share of overall progress reserved for each stage: (start, width)
DOWNLOAD_SLICE = (0, 30)
EXTRACT_SLICE = (30, 30)
IMPORT_SLICE = (60, 40)

PROCESSING_STAGES = {InitStage.DOWNLOADING, InitStage.EXTRACTING, InitStage.IMPORTING}


def _scale(stage_slice, fraction: float) -> int:
    start, width = stage_slice
    fraction = max(0.0, min(1.0, fraction))
    return start + int(fraction * width)


def extraction_fraction(progress: ExtractionProgress) -> float:
    """Fraction of stage 2 done: finished archives plus the share of the current one."""
    if progress.total_archives <= 0:
        return 0.0
    finished = max(progress.current_archive - 1, 0)
    current = progress.current_archive_progress / 100
    return (finished + current) / progress.total_archives


def _remove_tree(path: Path) -> None:
    if not path.exists():
        return
    try:
        shutil.rmtree(path)
        logger.info(f"Removed {path}")
    except OSError as e:
        logger.warning(f"Could not clean up {path}: {e}")


class InitService:
    """Runs the acquisition pipeline once and publishes its status.

    The pipeline only runs against an empty store. Progress is mapped into
    the overall 0-100 range and never decreases within a run.
    """

    def __init__(
        self,
        db: GuideDatabase,
        archive_url: str,
        temp_dir: str,
        downloader: Optional[ArchiveDownloader] = None,
        extractor: Optional[ArchiveExtractor] = None,
        importer: Optional[GuideImporter] = None,
        publisher: Optional[StatusPublisher] = None,
    ):
        """Initialize the init service.

        Args:
            db: Guide database to populate
            archive_url: URL of the outer guide archive
            temp_dir: Working directory for the download and extraction
            downloader: Archive downloader (default ArchiveDownloader)
            extractor: Archive extractor (default ArchiveExtractor)
            importer: Guide importer (default GuideImporter over ``db``)
            publisher: Status publisher shared with observers
        """
        self.db = db
        self.archive_url = archive_url
        self.temp_dir = Path(temp_dir)
        self.downloader = downloader or ArchiveDownloader()
        self.extractor = extractor or ArchiveExtractor()
        self.importer = importer or GuideImporter(db)
        self.publisher = publisher or StatusPublisher()

        self._lock = threading.Lock()
        self._status = InitStatus()

    @property
    def archive_path(self) -> Path:
        return self.temp_dir / ARCHIVE_FILENAME

    @property
    def extracted_dir(self) -> Path:
        return self.temp_dir / EXTRACTED_DIRNAME

    def get_status(self) -> InitStatus:
        with self._lock:
            return self._status.model_copy()

    def is_complete(self) -> bool:
        return self.get_status().stage == InitStage.COMPLETE

    def is_processing(self) -> bool:
        return self.get_status().stage in PROCESSING_STAGES

    def has_error(self) -> bool:
        return self.get_status().stage == InitStage.ERROR

    def subscribe(self, callback: StatusCallback) -> Subscription:
        return self.publisher.subscribe(callback)

    def _set_status(self, **changes) -> InitStatus:
        with self._lock:
            self._status = self._status.model_copy(update=changes)
            snapshot = self._status.model_copy()
        self.publisher.publish(snapshot)
        return snapshot

    def _advance(self, stage: InitStage, progress: int, message: str, **counts) -> None:
        """Move forward in the pipeline; stage and progress never go backwards.

        Args:
            stage: Pipeline stage being reported
            progress: Overall progress, 0-100
            message: Human readable status line
            **counts: Optional running guide_count / game_count
        """
        with self._lock:
            current = self._status
        if stage.order < current.stage.order:
            stage = current.stage
        progress = max(current.progress, min(100, progress))

        self._set_status(stage=stage, progress=progress, message=message, **counts)
        logger.info(f"{message} ({progress}%)")

    def initialize(self) -> InitStatus:
        """Populate the store from the archive unless it already holds guides.

        Failures never propagate: the status moves to ``error`` with the
        failure message, the working extraction directory is removed, and any
        batches already committed stay in the store.

        Returns:
            Final status snapshot
        """
        try:
            logger.info("Starting initialization...")
            guide_count = self.db.count_guides()
            game_count = self.db.count_games()

            if guide_count > 0:
                logger.info(
                    f"Database already initialized: {guide_count:,} guides, {game_count:,} games"
                )
                return self._set_status(
                    stage=InitStage.COMPLETE,
                    progress=100,
                    message="Database ready",
                    guide_count=guide_count,
                    game_count=game_count,
                )

            logger.info("Empty database detected, running the acquisition pipeline")
            self._set_status(start_time=datetime.now(timezone.utc))
            self.temp_dir.mkdir(parents=True, exist_ok=True)

            self._download()
            self._extract()
            self._import()

            _remove_tree(self.extracted_dir)
            return self._finish()

        except Exception as e:
            logger.exception("Initialization failed")
            _remove_tree(self.extracted_dir)
            return self._set_status(
                stage=InitStage.ERROR,
                message="Initialization failed",
                error=str(e) or e.__class__.__name__,
            )

    def _download(self) -> None:
        self._advance(InitStage.DOWNLOADING, DOWNLOAD_SLICE[0], "Downloading archive...")

        def on_progress(progress: DownloadProgress) -> None:
            downloaded = f"{progress.downloaded / 1024 / 1024:.1f}"
            total = f"{progress.total / 1024 / 1024:.1f}" if progress.total > 0 else "?"
            self._advance(
                InitStage.DOWNLOADING,
                _scale(DOWNLOAD_SLICE, progress.percentage / 100),
                f"Downloading: {downloaded}MB / {total}MB",
            )

        self.downloader.download(self.archive_url, str(self.archive_path), on_progress)
        logger.info("Download complete")

    def _extract(self) -> None:
        self._advance(InitStage.EXTRACTING, EXTRACT_SLICE[0], "Extracting archives...")

        def on_progress(progress: ExtractionProgress) -> None:
            self._advance(
                InitStage.EXTRACTING,
                _scale(EXTRACT_SLICE, extraction_fraction(progress)),
                f"Extracting: {progress.current_archive_name} "
                f"({progress.current_archive}/{progress.total_archives})",
            )

        self.extractor.extract(str(self.archive_path), str(self.extracted_dir), on_progress)
        logger.info("Extraction complete")

        try:
            self.archive_path.unlink()
            logger.info("Deleted archive to free space")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not delete archive {self.archive_path}: {e}")

    def _import(self) -> None:
        self._advance(InitStage.IMPORTING, IMPORT_SLICE[0], "Importing guides to database...")

        def on_progress(progress: ImportProgress) -> None:
            self._advance(
                InitStage.IMPORTING,
                _scale(IMPORT_SLICE, progress.current / max(progress.total, 1)),
                f"Importing: {progress.current:,}/{progress.total:,} guides",
                guide_count=progress.imported,
                game_count=progress.games,
            )

        stats = self.importer.import_directory(str(self.extracted_dir), on_progress)
        logger.info(
            f"Import complete: {stats.imported:,} imported, "
            f"{stats.errors} errors, {stats.skipped} skipped"
        )

    def _finish(self) -> InitStatus:
        guide_count = self.db.count_guides()
        game_count = self.db.count_games()

        start_time = self.get_status().start_time
        elapsed = ""
        if start_time:
            minutes = (datetime.now(timezone.utc) - start_time).total_seconds() / 60
            elapsed = f" (took {minutes:.0f} minutes)"

        status = self._set_status(
            stage=InitStage.COMPLETE,
            progress=100,
            message="Initialization complete!",
            guide_count=guide_count,
            game_count=game_count,
        )
        logger.info(f"Ready to serve requests!{elapsed}")
        return status
