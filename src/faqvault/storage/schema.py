"""SQLite schema definitions for the guide store.

The full-text index is split in two FTS5 tables:

- ``guides_fts_meta`` holds title + flattened tags. It is small and is
  rewritten whenever a guide's title or metadata changes.
- ``guides_fts_content`` holds the body text. It is large and is only
  rewritten on insert or when the content itself changes.

Both are maintained by triggers on ``guides``, so every write path keeps
them in sync without application code.
"""

CREATE_TABLES = {
    "games": """
        CREATE TABLE IF NOT EXISTS games (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            ra_game_id TEXT UNIQUE,
            platform TEXT,
            completion_percentage REAL NOT NULL DEFAULT 0
                CHECK(completion_percentage >= 0 AND completion_percentage <= 100),
            status TEXT NOT NULL DEFAULT 'not_started'
                CHECK(status IN ('not_started', 'in_progress', 'completed')),
            artwork_url TEXT,
            metadata TEXT,
            created_at DATETIME NOT NULL,
            updated_at DATETIME NOT NULL
        )
    """,
    "guides": """
        CREATE TABLE IF NOT EXISTS guides (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            content TEXT NOT NULL,
            format TEXT NOT NULL CHECK(format IN ('txt', 'html', 'md', 'pdf')),
            file_path TEXT NOT NULL,
            game_id TEXT REFERENCES games(id) ON DELETE SET NULL,
            last_read_position INTEGER,
            metadata TEXT,
            created_at DATETIME NOT NULL,
            updated_at DATETIME NOT NULL
        )
    """,
    "bookmarks": """
        CREATE TABLE IF NOT EXISTS bookmarks (
            id TEXT PRIMARY KEY,
            guide_id TEXT NOT NULL REFERENCES guides(id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            name TEXT,
            page_reference TEXT,
            is_last_read INTEGER NOT NULL DEFAULT 0 CHECK(is_last_read IN (0, 1)),
            created_at DATETIME NOT NULL
        )
    """,
    "notes": """
        CREATE TABLE IF NOT EXISTS notes (
            id TEXT PRIMARY KEY,
            guide_id TEXT NOT NULL REFERENCES guides(id) ON DELETE CASCADE,
            position INTEGER,
            content TEXT NOT NULL,
            created_at DATETIME NOT NULL,
            updated_at DATETIME NOT NULL
        )
    """,
}

SCHEMA_VERSION_TABLE = """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at DATETIME NOT NULL
    )
"""

CREATE_INDEXES = {
    "guides_game_id": "CREATE INDEX IF NOT EXISTS idx_guides_game_id ON guides(game_id)",
    "guides_file_path": "CREATE INDEX IF NOT EXISTS idx_guides_file_path ON guides(file_path)",
    "guides_created_at": "CREATE INDEX IF NOT EXISTS idx_guides_created_at ON guides(created_at)",
    "games_status": "CREATE INDEX IF NOT EXISTS idx_games_status ON games(status)",
    # Lookup and de-duplication by archive game id during bulk import
    "games_external_id": (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_games_external_id "
        "ON games(json_extract(metadata, '$.external_id'))"
    ),
    "bookmarks_guide_id": "CREATE INDEX IF NOT EXISTS idx_bookmarks_guide_id ON bookmarks(guide_id)",
    "bookmarks_is_last_read": (
        "CREATE INDEX IF NOT EXISTS idx_bookmarks_is_last_read "
        "ON bookmarks(guide_id, is_last_read)"
    ),
    "notes_guide_id": "CREATE INDEX IF NOT EXISTS idx_notes_guide_id ON notes(guide_id)",
}


def tags_expression(row: str) -> str:
    """SQL expression flattening ``<row>.metadata -> $.tags`` to a space-separated string.

    Args:
        row: Trigger row alias ("new") or a table name

    Returns:
        SQL expression yielding '' when metadata is missing, invalid or untagged
    """
    return (
        f"CASE WHEN json_valid({row}.metadata) THEN COALESCE("
        f"(SELECT group_concat(value, ' ') FROM json_each({row}.metadata, '$.tags')), ''"
        f") ELSE '' END"
    )


FULL_TEXT_SEARCH = {
    "guides_fts_meta": """
        CREATE VIRTUAL TABLE IF NOT EXISTS guides_fts_meta USING fts5(
            guide_id UNINDEXED,
            title,
            tags,
            tokenize = 'porter unicode61'
        )
    """,
    "guides_fts_content": """
        CREATE VIRTUAL TABLE IF NOT EXISTS guides_fts_content USING fts5(
            guide_id UNINDEXED,
            content,
            tokenize = 'porter unicode61'
        )
    """,
}

FTS_BACKFILL = {
    "guides_fts_meta": (
        "INSERT INTO guides_fts_meta(guide_id, title, tags) "
        f"SELECT id, title, {tags_expression('guides')} FROM guides"
    ),
    "guides_fts_content": (
        "INSERT INTO guides_fts_content(guide_id, content) SELECT id, content FROM guides"
    ),
}

FTS_TRIGGERS = {
    "guides_fts_meta_insert": f"""
        CREATE TRIGGER IF NOT EXISTS guides_fts_meta_insert AFTER INSERT ON guides
        BEGIN
            INSERT INTO guides_fts_meta(guide_id, title, tags)
            VALUES (new.id, new.title, {tags_expression('new')});
        END
    """,
    "guides_fts_content_insert": """
        CREATE TRIGGER IF NOT EXISTS guides_fts_content_insert AFTER INSERT ON guides
        BEGIN
            INSERT INTO guides_fts_content(guide_id, content) VALUES (new.id, new.content);
        END
    """,
    "guides_fts_meta_update": f"""
        CREATE TRIGGER IF NOT EXISTS guides_fts_meta_update
        AFTER UPDATE OF title, metadata ON guides
        WHEN old.title IS NOT new.title OR old.metadata IS NOT new.metadata
        BEGIN
            UPDATE guides_fts_meta
            SET title = new.title, tags = {tags_expression('new')}
            WHERE guide_id = new.id;
        END
    """,
    "guides_fts_content_update": """
        CREATE TRIGGER IF NOT EXISTS guides_fts_content_update
        AFTER UPDATE OF content ON guides
        WHEN old.content IS NOT new.content
        BEGIN
            UPDATE guides_fts_content SET content = new.content WHERE guide_id = new.id;
        END
    """,
    "guides_fts_meta_delete": """
        CREATE TRIGGER IF NOT EXISTS guides_fts_meta_delete AFTER DELETE ON guides
        BEGIN
            DELETE FROM guides_fts_meta WHERE guide_id = old.id;
        END
    """,
    "guides_fts_content_delete": """
        CREATE TRIGGER IF NOT EXISTS guides_fts_content_delete AFTER DELETE ON guides
        BEGIN
            DELETE FROM guides_fts_content WHERE guide_id = old.id;
        END
    """,
}

AI_ANALYZED_AT = {
    "column": "ALTER TABLE guides ADD COLUMN ai_analyzed_at DATETIME",
    "index": "CREATE INDEX IF NOT EXISTS idx_guides_ai_analyzed_at ON guides(ai_analyzed_at)",
}
