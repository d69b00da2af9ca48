"""Full-text search across the split meta/content guide indexes."""

import logging
from dataclasses import dataclass, field
from typing import List

from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from faqvault.exceptions import SearchQueryError
from faqvault.storage.database import GuideDatabase
from faqvault.storage.models import Guide

logger = logging.getLogger(__name__)

INDEX_TABLES = ("guides_fts_meta", "guides_fts_content")


@dataclass
class SearchResults:
    """Guides matched on title/tags, and guides matched only on body text."""

    meta_matches: List[Guide] = field(default_factory=list)
    content_only_matches: List[Guide] = field(default_factory=list)

    def combined(self) -> List[Guide]:
        return self.meta_matches + self.content_only_matches


def quote_terms(query: str) -> str:
    """Turn each whitespace-separated term into an FTS5 string literal."""
    terms = []
    for term in query.split():
        escaped = term.replace('"', '""')
        terms.append(f'"{escaped}"')
    return " ".join(terms)


class GuideSearch:
    """Runs ranked queries against both full-text indexes."""

    def __init__(self, db: GuideDatabase):
        """Initialize guide search.

        Args:
            db: GuideDatabase whose indexes are queried
        """
        self.db = db

    def _match_ids(self, table: str, query: str, limit: int) -> List[str]:
        if table not in INDEX_TABLES:
            raise ValueError(f"Unknown index table: {table}")

        sql = text(
            f"SELECT guide_id FROM {table} WHERE {table} MATCH :query "
            f"ORDER BY rank LIMIT :limit"
        )
        with self.db.engine.connect() as conn:
            rows = conn.execute(sql, {"query": query, "limit": limit}).fetchall()
        return [row[0] for row in rows]

    def match_ids(self, table: str, query: str, limit: int) -> List[str]:
        """Return guide ids matching ``query`` in rank order.

        Raw FTS5 syntax is passed through. When FTS5 rejects it, the query is
        retried once with every term quoted.

        Args:
            table: guides_fts_meta or guides_fts_content
            query: User query
            limit: Maximum number of ids

        Returns:
            Matching guide ids, best first

        Raises:
            SearchQueryError: If the quoted retry is also rejected
        """
        try:
            return self._match_ids(table, query, limit)
        except OperationalError as e:
            quoted = quote_terms(query)
            logger.debug(f"FTS rejected query {query!r} ({e.orig}), retrying as {quoted!r}")
            try:
                return self._match_ids(table, quoted, limit)
            except OperationalError as retry_error:
                raise SearchQueryError(
                    f"Invalid search query {query!r}: {retry_error.orig}"
                ) from retry_error

    def search(self, query: str, limit: int = 20) -> SearchResults:
        """Search guides, separating metadata hits from content-only hits.

        Args:
            query: Search query
            limit: Maximum number of results per index

        Returns:
            SearchResults whose content_only_matches exclude every meta match
        """
        if not query or not query.strip():
            return SearchResults()

        meta_ids = self.match_ids("guides_fts_meta", query, limit)
        content_ids = self.match_ids("guides_fts_content", query, limit)

        seen = set(meta_ids)
        content_only_ids = [gid for gid in content_ids if gid not in seen]

        results = SearchResults(
            meta_matches=self.db.get_guides_by_ids(meta_ids),
            content_only_matches=self.db.get_guides_by_ids(content_only_ids),
        )
        logger.info(
            f"Search for {query!r}: {len(results.meta_matches)} meta, "
            f"{len(results.content_only_matches)} content-only"
        )
        return results

    def search_combined(self, query: str, limit: int = 20) -> List[Guide]:
        """Search and return meta matches followed by content-only matches."""
        return self.search(query, limit).combined()
