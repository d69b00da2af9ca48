"""SQLAlchemy ORM models for the guide store.

Tables are created by the versioned migrations in ``migrations.py``; these
mappings only describe them for the ORM.
"""

import json
import secrets
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def generate_id() -> str:
    """Generate a 21-character URL-safe identifier."""
    return secrets.token_urlsafe(16)[:21]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _load_json(raw: str) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return value if isinstance(value, dict) else {}


class Game(Base):
    """A logical game title spanning one or more guides."""

    __tablename__ = "games"

    id = Column(String, primary_key=True, default=generate_id)
    title = Column(Text, nullable=False)
    ra_game_id = Column(String, unique=True)
    platform = Column(String)
    completion_percentage = Column(Float, nullable=False, default=0)
    status = Column(String, nullable=False, default="not_started")
    artwork_url = Column(Text)
    metadata_json = Column("metadata", Text)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    @property
    def meta(self) -> Dict[str, Any]:
        """Decoded metadata blob (empty dict when missing or invalid)."""
        return _load_json(self.metadata_json)

    @property
    def external_id(self):
        return self.meta.get("external_id")


class Guide(Base):
    """A single imported guide document."""

    __tablename__ = "guides"

    id = Column(String, primary_key=True, default=generate_id)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    format = Column(String, nullable=False)
    file_path = Column(Text, nullable=False)
    game_id = Column(String, ForeignKey("games.id", ondelete="SET NULL"))
    last_read_position = Column(Integer)
    metadata_json = Column("metadata", Text)
    ai_analyzed_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    @property
    def meta(self) -> Dict[str, Any]:
        """Decoded metadata blob (empty dict when missing or invalid)."""
        return _load_json(self.metadata_json)

    @property
    def tags(self):
        return self.meta.get("tags", [])


class Bookmark(Base):
    """Saved reading position inside a guide."""

    __tablename__ = "bookmarks"

    id = Column(String, primary_key=True, default=generate_id)
    guide_id = Column(String, ForeignKey("guides.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)
    name = Column(Text)
    page_reference = Column(Text)
    is_last_read = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utc_now)


class Note(Base):
    """Free-form note attached to a guide."""

    __tablename__ = "notes"

    id = Column(String, primary_key=True, default=generate_id)
    guide_id = Column(String, ForeignKey("guides.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)
