"""Guide store management: guides, games and their child records."""

import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set

from sqlalchemy import create_engine, event, func
from sqlalchemy.orm import Session, sessionmaker

from faqvault.models import GameStatus, GuideFormat
from faqvault.storage.migrations import run_migrations
from faqvault.storage.models import Bookmark, Game, Guide, Note, utc_now
from faqvault.validation.metadata import normalize_guide_metadata

logger = logging.getLogger(__name__)

GUIDE_UPDATE_FIELDS = {
    "title",
    "content",
    "format",
    "file_path",
    "game_id",
    "last_read_position",
    "metadata",
    "ai_analyzed_at",
}

GAME_UPDATE_FIELDS = {
    "title",
    "ra_game_id",
    "platform",
    "completion_percentage",
    "artwork_url",
    "metadata",
}


def clamp_percentage(percentage: float) -> float:
    """Clamp a completion percentage into [0, 100]."""
    return max(0.0, min(100.0, float(percentage)))


def status_for_percentage(percentage: float) -> GameStatus:
    """Derive a game's status from its completion percentage.

    Args:
        percentage: Completion percentage (clamped to [0, 100] first)

    Returns:
        not_started at 0, completed at 100, in_progress otherwise
    """
    clamped = clamp_percentage(percentage)
    if clamped == 0:
        return GameStatus.NOT_STARTED
    if clamped == 100:
        return GameStatus.COMPLETED
    return GameStatus.IN_PROGRESS


def _dump_json(value: Optional[Any]) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value)


class GuideDatabase:
    """Manages the SQLite guide store and its derived full-text indexes."""

    def __init__(self, database_path: str):
        """Initialize the guide database.

        Args:
            database_path: Path to SQLite database file
        """
        self.database_path = str(database_path)
        Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(f"sqlite:///{self.database_path}")
        self._install_sqlite_hooks()
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def _install_sqlite_hooks(self) -> None:
        """Configure every connection and let SQLAlchemy own transaction boundaries.

        pysqlite's implicit transaction handling skips DDL and SAVEPOINTs, so the
        driver is put in autocommit mode and BEGIN is emitted explicitly.
        """

        @event.listens_for(self.engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys = ON")
            cursor.execute("PRAGMA journal_mode = WAL")
            cursor.close()

        @event.listens_for(self.engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN")

    def run_migrations(self) -> List[int]:
        """Bring the schema up to date. Must run before any other access.

        Returns:
            Versions applied by this call
        """
        return run_migrations(self.engine)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Open a session whose writes commit together or not at all.

        Yields:
            Session bound to a single transaction
        """
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def _scope(self, session: Optional[Session]) -> Iterator[Session]:
        """Reuse a caller's session, or open a dedicated transaction."""
        if session is not None:
            yield session
        else:
            with self.transaction() as own_session:
                yield own_session

    # -------------------------------------------------------------------------
    # Guides
    # -------------------------------------------------------------------------

    def create_guide(
        self,
        title: str,
        content: str,
        format: str,
        file_path: str,
        game_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        last_read_position: Optional[int] = None,
        session: Optional[Session] = None,
    ) -> Guide:
        """Insert a guide. Both full-text indexes are populated by triggers.

        Args:
            title: Guide title
            content: Full text content
            format: One of txt, html, md, pdf
            file_path: Originating file path
            game_id: Optional owning game
            metadata: Optional metadata blob
            last_read_position: Optional read cursor
            session: Optional session of an enclosing batch transaction

        Returns:
            The persisted Guide

        Raises:
            sqlalchemy.exc.IntegrityError: On NOT NULL / CHECK / FK violations
        """
        if isinstance(format, GuideFormat):
            format = format.value

        with self._scope(session) as s:
            guide = Guide(
                title=title,
                content=content,
                format=format,
                file_path=file_path,
                game_id=game_id,
                last_read_position=last_read_position,
                metadata_json=_dump_json(metadata),
            )
            s.add(guide)
            s.flush()
            return guide

    def get_guide(self, guide_id: str) -> Optional[Guide]:
        session = self.session_factory()
        try:
            guide = session.get(Guide, guide_id)
            if guide:
                session.expunge(guide)
            return guide
        finally:
            session.close()

    def update_guide(self, guide_id: str, session: Optional[Session] = None, **fields) -> bool:
        """Update selected guide columns.

        Only columns that are actually assigned are written, so the full-text
        triggers re-index just the index whose source columns changed.

        Args:
            guide_id: Guide identifier
            session: Optional session of an enclosing transaction
            **fields: Columns to update (unknown keys are ignored)

        Returns:
            True if the guide exists and at least one field was applied
        """
        updates = {k: v for k, v in fields.items() if k in GUIDE_UPDATE_FIELDS}
        if not updates:
            return False

        with self._scope(session) as s:
            guide = s.get(Guide, guide_id)
            if guide is None:
                return False

            for key, value in updates.items():
                if key == "metadata":
                    guide.metadata_json = _dump_json(value)
                elif key == "format" and isinstance(value, GuideFormat):
                    guide.format = value.value
                else:
                    setattr(guide, key, value)
            guide.updated_at = utc_now()
            s.flush()
            return True

    def set_guide_metadata(
        self, guide_id: str, metadata: Dict[str, Any], session: Optional[Session] = None
    ) -> bool:
        """Replace a guide's metadata blob; only the meta index is rewritten.

        Args:
            guide_id: Guide identifier
            metadata: New metadata (normalized before storage)
            session: Optional session of an enclosing transaction

        Returns:
            True if the guide exists
        """
        normalized = normalize_guide_metadata(dict(metadata))
        return self.update_guide(guide_id, session=session, metadata=normalized)

    def update_last_read_position(self, guide_id: str, position: int) -> bool:
        return self.update_guide(guide_id, last_read_position=position)

    def delete_guide(self, guide_id: str) -> bool:
        """Delete a guide; bookmarks and notes cascade, index rows are dropped."""
        with self.transaction() as s:
            deleted = s.query(Guide).filter(Guide.id == guide_id).delete(
                synchronize_session=False
            )
            return deleted > 0

    def count_guides(self) -> int:
        session = self.session_factory()
        try:
            return session.query(func.count(Guide.id)).scalar() or 0
        finally:
            session.close()

    def guides_for_game(self, game_id: str) -> List[Guide]:
        session = self.session_factory()
        try:
            guides = (
                session.query(Guide)
                .filter(Guide.game_id == game_id)
                .order_by(Guide.title.asc())
                .all()
            )
            session.expunge_all()
            return guides
        finally:
            session.close()

    def existing_file_paths(
        self, file_paths: Iterable[str], session: Optional[Session] = None
    ) -> Set[str]:
        """Return the subset of paths already recorded on a guide."""
        paths = list(file_paths)
        if not paths:
            return set()

        with self._scope(session) as s:
            rows = s.query(Guide.file_path).filter(Guide.file_path.in_(paths)).all()
            return {row[0] for row in rows}

    def get_guides_by_ids(self, guide_ids: List[str]) -> List[Guide]:
        """Fetch guides preserving the order of ``guide_ids``."""
        if not guide_ids:
            return []

        session = self.session_factory()
        try:
            guides = session.query(Guide).filter(Guide.id.in_(guide_ids)).all()
            session.expunge_all()
        finally:
            session.close()

        by_id = {guide.id: guide for guide in guides}
        return [by_id[gid] for gid in guide_ids if gid in by_id]

    # -------------------------------------------------------------------------
    # Games
    # -------------------------------------------------------------------------

    def create_game(
        self,
        title: str,
        platform: Optional[str] = None,
        ra_game_id: Optional[str] = None,
        completion_percentage: float = 0,
        artwork_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        session: Optional[Session] = None,
    ) -> Game:
        """Insert a game; status is derived from the (clamped) percentage.

        Raises:
            sqlalchemy.exc.IntegrityError: On a duplicate ra_game_id or external_id
        """
        percentage = clamp_percentage(completion_percentage)

        with self._scope(session) as s:
            game = Game(
                title=title,
                platform=platform,
                ra_game_id=ra_game_id,
                completion_percentage=percentage,
                status=status_for_percentage(percentage).value,
                artwork_url=artwork_url,
                metadata_json=_dump_json(metadata),
            )
            s.add(game)
            s.flush()
            return game

    def get_game(self, game_id: str) -> Optional[Game]:
        session = self.session_factory()
        try:
            game = session.get(Game, game_id)
            if game:
                session.expunge(game)
            return game
        finally:
            session.close()

    def find_game_by_external_id(
        self, external_id: str, session: Optional[Session] = None
    ) -> Optional[Game]:
        """Look up a game by the archive id stored in its metadata."""
        with self._scope(session) as s:
            return (
                s.query(Game)
                .filter(func.json_extract(Game.metadata_json, "$.external_id") == external_id)
                .first()
            )

    def update_game(self, game_id: str, **fields) -> bool:
        """Update selected game columns.

        A ``completion_percentage`` is clamped and drives ``status``; a bare
        ``status`` is accepted as given and validated by the table constraint.
        """
        updates = {k: v for k, v in fields.items() if k in GAME_UPDATE_FIELDS | {"status"}}
        if not updates:
            return False

        with self.transaction() as s:
            game = s.get(Game, game_id)
            if game is None:
                return False

            for key, value in updates.items():
                if key == "metadata":
                    game.metadata_json = _dump_json(value)
                elif key == "completion_percentage":
                    game.completion_percentage = clamp_percentage(value)
                    game.status = status_for_percentage(value).value
                elif key == "status":
                    if "completion_percentage" not in updates:
                        game.status = value.value if isinstance(value, GameStatus) else value
                else:
                    setattr(game, key, value)
            game.updated_at = utc_now()
            return True

    def set_completion_percentage(self, game_id: str, percentage: float) -> bool:
        return self.update_game(game_id, completion_percentage=percentage)

    def delete_game(self, game_id: str) -> bool:
        """Delete a game; dependent guides keep their rows with game_id set to NULL."""
        with self.transaction() as s:
            deleted = s.query(Game).filter(Game.id == game_id).delete(synchronize_session=False)
            return deleted > 0

    def count_games(self) -> int:
        session = self.session_factory()
        try:
            return session.query(func.count(Game.id)).scalar() or 0
        finally:
            session.close()

    # -------------------------------------------------------------------------
    # Bookmarks and notes
    # -------------------------------------------------------------------------

    def add_bookmark(
        self,
        guide_id: str,
        position: int,
        name: Optional[str] = None,
        page_reference: Optional[str] = None,
        is_last_read: bool = False,
    ) -> Bookmark:
        with self.transaction() as s:
            bookmark = Bookmark(
                guide_id=guide_id,
                position=position,
                name=name,
                page_reference=page_reference,
                is_last_read=1 if is_last_read else 0,
            )
            s.add(bookmark)
            s.flush()
            return bookmark

    def list_bookmarks(self, guide_id: str) -> List[Bookmark]:
        session = self.session_factory()
        try:
            bookmarks = (
                session.query(Bookmark)
                .filter(Bookmark.guide_id == guide_id)
                .order_by(Bookmark.position.asc())
                .all()
            )
            session.expunge_all()
            return bookmarks
        finally:
            session.close()

    def add_note(self, guide_id: str, content: str, position: Optional[int] = None) -> Note:
        with self.transaction() as s:
            note = Note(guide_id=guide_id, content=content, position=position)
            s.add(note)
            s.flush()
            return note

    def list_notes(self, guide_id: str) -> List[Note]:
        session = self.session_factory()
        try:
            notes = (
                session.query(Note)
                .filter(Note.guide_id == guide_id)
                .order_by(Note.created_at.asc())
                .all()
            )
            session.expunge_all()
            return notes
        finally:
            session.close()

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    def get_aggregate_stats(self) -> Dict[str, int]:
        """Compute aggregate statistics across guides and games.

        Returns:
            Dictionary containing:
                - total_guides: Number of guides
                - total_games: Number of games
                - guides_with_games: Guides linked to a game
                - guides_without_games: Guides without a game
        """
        session = self.session_factory()
        try:
            total_guides = session.query(func.count(Guide.id)).scalar() or 0
            total_games = session.query(func.count(Game.id)).scalar() or 0
            with_games = (
                session.query(func.count(Guide.id)).filter(Guide.game_id.isnot(None)).scalar()
                or 0
            )
            return {
                "total_guides": total_guides,
                "total_games": total_games,
                "guides_with_games": with_games,
                "guides_without_games": total_guides - with_games,
            }
        finally:
            session.close()

    def close(self) -> None:
        """Dispose of pooled connections."""
        self.engine.dispose()
        logger.debug(f"Closed guide database {self.database_path}")
