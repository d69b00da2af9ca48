"""Public API facade tying storage, search and the bootstrap pipeline together."""

import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from faqvault.acquisition.downloader import ArchiveDownloader
from faqvault.acquisition.extractor import ArchiveExtractor
from faqvault.ingestion.importer import GuideImporter
from faqvault.ingestion.init_service import InitService
from faqvault.ingestion.status import StatusCallback, Subscription
from faqvault.models import ImportStats, InitStatus, ParsedGuide
from faqvault.parsing.guide_parser import GuideParser
from faqvault.retrieval.search import GuideSearch, SearchResults
from faqvault.storage.database import GuideDatabase

logger = logging.getLogger(__name__)

DEFAULT_ARCHIVE_URL = (
    "https://archive.org/compress/Gamespot_Gamefaqs_TXTs/"
    "formats=7Z&file=/Gamespot_Gamefaqs_TXTs.zip"
)


@dataclass
class FaqVaultConfig:
    """Configuration for FAQ Vault storage and the bootstrap pipeline."""

    db_path: str = field(default_factory=lambda: os.getenv("DB_PATH", "./data/gamefaqs.db"))
    archive_url: str = field(
        default_factory=lambda: os.getenv("ARCHIVE_URL", DEFAULT_ARCHIVE_URL)
    )
    temp_dir: str = field(default_factory=lambda: os.getenv("TEMP_DIR", "/tmp/gamefaqs"))
    import_batch_size: int = field(
        default_factory=lambda: int(os.getenv("IMPORT_BATCH_SIZE", "100"))
    )
    download_progress_interval: float = field(
        default_factory=lambda: float(os.getenv("DOWNLOAD_PROGRESS_INTERVAL", "0.5"))
    )
    download_timeout: float = field(
        default_factory=lambda: float(os.getenv("DOWNLOAD_TIMEOUT", "300"))
    )
    inner_archive_suffix: str = field(
        default_factory=lambda: os.getenv("INNER_ARCHIVE_SUFFIX", ".7z")
    )

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "FaqVaultConfig":
        """Create config from dictionary."""
        return cls(**{k: v for k, v in config.items() if k in cls.__dataclass_fields__})


class FaqVaultAPI:
    """Unified API facade for FAQ Vault operations.

    Example:
        >>> api = FaqVaultAPI({"db_path": "guides.db"})
        >>> api.start_initialization()
        >>> results = api.search("chrono trigger", limit=10)
    """

    def __init__(
        self,
        config: Optional[Union[FaqVaultConfig, Dict[str, Any]]] = None,
        lazy_init: bool = False,
    ):
        """Initialize the FAQ Vault API.

        Args:
            config: Configuration object or dictionary. Uses environment variables if None.
            lazy_init: If True, defer opening the database until first use.
        """
        if config is None:
            self.config = FaqVaultConfig()
        elif isinstance(config, dict):
            self.config = FaqVaultConfig.from_dict(config)
        else:
            self.config = config

        self._db: Optional[GuideDatabase] = None
        self._search: Optional[GuideSearch] = None
        self._parser: Optional[GuideParser] = None
        self._init_service: Optional[InitService] = None
        self._init_thread: Optional[threading.Thread] = None
        self._initialized = False
        self._init_lock = threading.Lock()

        if not lazy_init:
            self._initialize_components()

    def _initialize_components(self) -> None:
        """Open the database, apply migrations and wire up the services."""
        with self._init_lock:
            if self._initialized:
                return

            logger.info("Initializing FAQ Vault...")

            self._db = GuideDatabase(database_path=self.config.db_path)
            self._db.run_migrations()

            self._parser = GuideParser()
            self._search = GuideSearch(self._db)
            self._init_service = InitService(
                db=self._db,
                archive_url=self.config.archive_url,
                temp_dir=self.config.temp_dir,
                downloader=ArchiveDownloader(
                    progress_interval=self.config.download_progress_interval,
                    timeout=self.config.download_timeout,
                ),
                extractor=ArchiveExtractor(inner_suffix=self.config.inner_archive_suffix),
                importer=GuideImporter(
                    self._db, parser=self._parser, batch_size=self.config.import_batch_size
                ),
            )

            self._initialized = True
            logger.info("FAQ Vault initialized successfully")

    @property
    def db(self) -> GuideDatabase:
        """Get the guide database."""
        if not self._initialized:
            self._initialize_components()
        return self._db

    @property
    def parser(self) -> GuideParser:
        if not self._initialized:
            self._initialize_components()
        return self._parser

    @property
    def init_service(self) -> InitService:
        """Get the bootstrap pipeline service."""
        if not self._initialized:
            self._initialize_components()
        return self._init_service

    @property
    def searcher(self) -> GuideSearch:
        if not self._initialized:
            self._initialize_components()
        return self._search

    # === Bootstrap ===

    def initialize(self) -> InitStatus:
        """Run the bootstrap pipeline on the calling thread."""
        return self.init_service.initialize()

    def start_initialization(self) -> threading.Thread:
        """Run the bootstrap pipeline on a daemon thread.

        Returns:
            The running (or already started) thread
        """
        if self._init_thread is not None:
            return self._init_thread

        self._init_thread = threading.Thread(
            target=self.init_service.initialize, name="faqvault-init", daemon=True
        )
        self._init_thread.start()
        return self._init_thread

    def wait_for_initialization(self, timeout: Optional[float] = None) -> InitStatus:
        if self._init_thread is not None:
            self._init_thread.join(timeout)
        return self.get_status()

    def get_status(self) -> InitStatus:
        return self.init_service.get_status()

    def subscribe(self, callback: StatusCallback) -> Subscription:
        return self.init_service.subscribe(callback)

    # === Guides ===

    def parse_file(self, file_path: str) -> ParsedGuide:
        return self.parser.parse_guide(file_path)

    def import_directory(
        self, root: str, delete_source_files: bool = True, batch_size: Optional[int] = None
    ) -> ImportStats:
        """Import a directory of guides outside the bootstrap pipeline.

        Args:
            root: Directory to scan recursively
            delete_source_files: Remove files once their guides are committed
            batch_size: Files per transaction (config default when None)

        Returns:
            ImportStats totals
        """
        importer = GuideImporter(
            self.db,
            parser=self.parser,
            batch_size=batch_size or self.config.import_batch_size,
            delete_source_files=delete_source_files,
        )
        return importer.import_directory(root)

    def search(self, query: str, limit: int = 20) -> SearchResults:
        return self.searcher.search(query, limit)

    # === Statistics ===

    def get_stats(self) -> Dict:
        """Get store statistics and the bootstrap status.

        Returns:
            Dictionary with aggregate counts, init status and a timestamp
        """
        status = self.get_status()
        return {
            "guides": self.db.get_aggregate_stats(),
            "init": status.model_dump(mode="json"),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def close(self) -> None:
        """Close the database connection pool."""
        if self._db:
            self._db.close()
        self._initialized = False
        logger.info("FAQ Vault closed")

    def __enter__(self) -> "FaqVaultAPI":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
