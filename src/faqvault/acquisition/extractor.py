"""Two-stage extraction of the guide archive: outer zip, then inner archives."""

import logging
import shutil
import zipfile
from pathlib import Path
from typing import Callable, List, Optional

import py7zr
from py7zr.callbacks import ExtractCallback

from faqvault.exceptions import ExtractionError
from faqvault.models import ExtractionProgress

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ExtractionProgress], None]


class _InnerArchiveProgress(ExtractCallback):
    """Turns py7zr per-file callbacks into a percentage of one archive."""

    def __init__(self, total_bytes: int, report: Callable[[float], None]):
        self.total_bytes = total_bytes
        self.done_bytes = 0
        self.files = 0
        self.report = report

    def report_start_preparation(self):
        pass

    def report_start(self, processing_file_path, processing_bytes):
        pass

    def report_update(self, decompressed_bytes):
        pass

    def report_end(self, processing_file_path, wrote_bytes):
        self.files += 1
        self.done_bytes += int(wrote_bytes or 0)
        if self.files % 100 == 0:
            logger.debug(f"Extracted {self.files} files...")
        if self.total_bytes > 0:
            self.report(min(100.0, self.done_bytes / self.total_bytes * 100))

    def report_warning(self, message):
        logger.warning(f"7z: {message}")

    def report_postprocess(self):
        pass


class ArchiveExtractor:
    """Extracts the outer container, then each inner archive it contains.

    Inner archives are deleted as soon as they have been attempted, so peak
    disk usage stays near one inner archive plus the extracted guides.
    """

    def __init__(self, inner_suffix: str = ".7z"):
        """Initialize the extractor.

        Args:
            inner_suffix: Suffix of the inner archives to pull from the outer zip
        """
        self.inner_suffix = inner_suffix.lower()
        self.progress = ExtractionProgress()
        self._on_progress: Optional[ProgressCallback] = None

    def get_progress(self) -> ExtractionProgress:
        return self.progress.model_copy(deep=True)

    def _update(self, **changes) -> None:
        self.progress = self.progress.model_copy(update=changes)
        if self._on_progress:
            self._on_progress(self.get_progress())

    def extract(
        self,
        archive_path: str,
        output_dir: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        """Extract the outer archive and every inner archive into ``output_dir``.

        Args:
            archive_path: Path to the downloaded outer zip
            output_dir: Directory receiving the guide files
            on_progress: Called with an ExtractionProgress snapshot on every change

        Returns:
            output_dir

        Raises:
            ExtractionError: If the outer archive cannot be opened or read
        """
        self.progress = ExtractionProgress()
        self._on_progress = on_progress
        self._update(status="extracting")

        logger.info(f"Starting extraction from {archive_path}")
        logger.info(f"Output directory: {output_dir}")
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)

        try:
            inner_archives = self._extract_outer(Path(archive_path), out)
        except (zipfile.BadZipFile, OSError) as e:
            logger.error(f"Cannot read outer archive {archive_path}: {e}")
            self._update(status="error", error=str(e))
            raise ExtractionError(f"Cannot read outer archive {archive_path}: {e}") from e

        logger.info(f"Found {len(inner_archives)} inner archives")
        self._update(total_archives=len(inner_archives), current_archive=0)

        for index, inner in enumerate(inner_archives, start=1):
            self._update(
                current_archive=index,
                current_archive_name=inner.name,
                current_archive_progress=0.0,
            )
            logger.info(f"Extracting archive {index}/{len(inner_archives)}: {inner.name}")

            try:
                self._extract_inner(inner, out)
                self._update(
                    extracted_archives=self.progress.extracted_archives + 1,
                    current_archive_progress=100.0,
                )
            except Exception as e:
                logger.warning(f"Failed to extract {inner.name}: {e}")
                self._update(errors=self.progress.errors + [f"Failed to extract {inner.name}: {e}"])
            finally:
                self._remove_archive(inner)

        self._update(status="complete")
        logger.info(f"Extraction complete. Output: {out}")
        return str(out)

    def _extract_outer(self, archive_path: Path, out: Path) -> List[Path]:
        """Stream every inner-archive entry of the outer zip to disk."""
        extracted: List[Path] = []
        root = out.resolve()

        with zipfile.ZipFile(archive_path) as outer:
            entries = outer.infolist()
            logger.debug(f"Outer archive has {len(entries)} entries")

            for entry in entries:
                if entry.is_dir() or not entry.filename.lower().endswith(self.inner_suffix):
                    continue

                target = (out / entry.filename).resolve()
                if root not in target.parents:
                    logger.warning(f"Skipping entry outside output directory: {entry.filename}")
                    continue

                target.parent.mkdir(parents=True, exist_ok=True)
                with outer.open(entry) as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst, length=1024 * 1024)

                extracted.append(target)
                logger.debug(f"Extracted {entry.filename}")

        return extracted

    def _extract_inner(self, inner: Path, out: Path) -> None:
        if inner.suffix.lower() == ".zip":
            with zipfile.ZipFile(inner) as archive:
                archive.extractall(out)
            return

        with py7zr.SevenZipFile(inner, mode="r") as archive:
            total_bytes = sum(info.uncompressed or 0 for info in archive.list())

        callback = _InnerArchiveProgress(
            total_bytes,
            lambda pct: self._update(current_archive_progress=pct),
        )
        with py7zr.SevenZipFile(inner, mode="r") as archive:
            archive.extractall(path=out, callback=callback)

        logger.debug(f"Extracted {callback.files} files from {inner.name}")

    def _remove_archive(self, inner: Path) -> None:
        try:
            inner.unlink()
            logger.debug(f"Deleted inner archive {inner.name}")
        except OSError as e:
            logger.warning(f"Could not delete inner archive {inner}: {e}")
