"""Pydantic models for FAQ Vault data structures."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class GuideFormat(str, Enum):
    """Enumeration of supported guide formats."""

    TXT = "txt"
    HTML = "html"
    MARKDOWN = "md"
    PDF = "pdf"


class GameStatus(str, Enum):
    """Play status of a game, derived from its completion percentage."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class InitStage(str, Enum):
    """Stages of the one-time initialization pipeline, in pipeline order."""

    IDLE = "idle"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    IMPORTING = "importing"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def order(self) -> int:
        """Position of the stage in the pipeline; error sorts after everything."""
        return _STAGE_ORDER[self]


_STAGE_ORDER = {
    InitStage.IDLE: 0,
    InitStage.DOWNLOADING: 1,
    InitStage.EXTRACTING: 2,
    InitStage.IMPORTING: 3,
    InitStage.COMPLETE: 4,
    InitStage.ERROR: 5,
}


class ParsedGuide(BaseModel):
    """Result of parsing a single guide file."""

    title: str = Field(..., description="Inferred guide title")
    content: str = Field(..., description="Full text content")
    format: GuideFormat = Field(..., description="Format detected from the file extension")
    metadata: Dict[str, Any] = Field(
        default_factory=dict, description="Author, version and platform heuristics"
    )


class GameInfo(BaseModel):
    """Game identity derived from a guide's location in the archive."""

    external_id: Optional[str] = Field(None, description="Numeric id from the folder name")
    name: str = Field(..., description="Human readable game name")
    platform: Optional[str] = Field(None, description="Normalized platform name")


class DownloadProgress(BaseModel):
    """Progress snapshot reported while streaming the archive."""

    downloaded: int = Field(..., description="Bytes written so far")
    total: int = Field(0, description="Total bytes, 0 when the server did not report a size")
    percentage: float = Field(0.0, description="0-100, or 0 when the total is unknown")


class ExtractionProgress(BaseModel):
    """Progress snapshot of the two-stage archive extraction."""

    status: str = "idle"
    total_archives: int = 0
    current_archive: int = 0
    current_archive_name: str = ""
    current_archive_progress: float = 0.0
    extracted_archives: int = 0
    errors: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class ImportProgress(BaseModel):
    """Progress snapshot of a directory import."""

    total: int
    current: int
    current_file: str = ""
    stage: str = "scanning"
    imported: int = 0
    errors: int = 0
    games: int = 0


class ImportStats(BaseModel):
    """Running totals returned at the end of an import."""

    imported: int = 0
    skipped: int = 0
    errors: int = 0


class InitStatus(BaseModel):
    """Snapshot of the initialization pipeline published to observers."""

    stage: InitStage = InitStage.IDLE
    progress: int = Field(0, ge=0, le=100)
    message: str = "Checking database..."
    guide_count: int = 0
    game_count: int = 0
    start_time: Optional[datetime] = None
    error: Optional[str] = None
