"""FTS5 full-text search index for notes.

Holds exactly one entry per note, maintained inside the note's write
transaction, and answers ranked queries with graceful degradation to a
LIKE scan when FTS5 rejects a query.
"""
import logging
import re
import sqlite3
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import bindparam, text
from sqlalchemy.exc import DatabaseError as SQLAlchemyDatabaseError
from sqlalchemy.exc import OperationalError as SQLAlchemyOperationalError
from sqlalchemy.orm import Session

from knowledge_layer.exceptions import ErrorCode, SearchError
from knowledge_layer.models.db_models import rebuild_search_index
from knowledge_layer.models.schema import SearchResult, normalize_tags
from knowledge_layer.utils import escape_like_pattern

logger = logging.getLogger(__name__)

_TAG_FILTER = """
    AND EXISTS (
        SELECT 1 FROM note_tags nt JOIN tags t ON t.id = nt.tag_id
        WHERE nt.note_id = n.id AND t.name IN :tags
    )
"""


class FtsIndex:
    """FTS5 full-text search index with graceful degradation.

    Args:
        engine: SQLAlchemy engine used for database access.
        session_factory: Callable returning a context-manager session.
        preview_length: Characters of content shown in result previews.
    """

    def __init__(
        self,
        engine: Any,
        session_factory: Callable,
        preview_length: int = 200,
    ) -> None:
        self.engine = engine
        self._session_factory = session_factory
        self.preview_length = preview_length
        self.available: bool = True
        self._recovering = False

    # ------------------------------------------------------------------
    # Index maintenance (caller owns the transaction)
    # ------------------------------------------------------------------

    def index_note(self, session: Session, note_id: str, title: str, content: str) -> None:
        """Replace the search entry for a note."""
        self.remove_note(session, note_id)
        session.execute(
            text("INSERT INTO notes_fts(id, title, content) VALUES (:id, :title, :content)"),
            {"id": note_id, "title": title, "content": content},
        )

    def remove_note(self, session: Session, note_id: str) -> None:
        """Remove the search entry for a note."""
        session.execute(text("DELETE FROM notes_fts WHERE id = :id"), {"id": note_id})

    # ------------------------------------------------------------------
    # Public query API
    # ------------------------------------------------------------------

    def search(
        self,
        query: str,
        tags: Optional[List[str]] = None,
        limit: int = 50,
        literal: Optional[bool] = None,
    ) -> List[SearchResult]:
        """Ranked full-text search using FTS5 with graceful fallback.

        Args:
            query: Search query (supports FTS5 phrase/prefix syntax).
            tags: Keep notes carrying at least one of these tags.
            limit: Maximum results.
            literal: None = auto-detect, True = escape, False = preserve syntax.

        Returns:
            Results ordered most relevant first.
        """
        if not query or not query.strip():
            return []
        tags = normalize_tags(tags)

        if not self.available:
            logger.debug("FTS5 unavailable, using fallback search")
            return self._fallback_text_search(query, tags, limit)

        if literal is None:
            literal = self._should_escape(query)

        safe_query = self._escape_query(query) if literal else query
        if not safe_query:
            return []

        sql = """
            SELECT
                n.id, n.title, n.content,
                bm25(notes_fts) AS rank,
                snippet(notes_fts, 2, '[', ']', '...', 16) AS snippet
            FROM notes_fts
            JOIN notes n ON n.id = notes_fts.id
            WHERE notes_fts MATCH :query
        """
        params: Dict[str, Any] = {"query": safe_query, "limit": limit}
        if tags:
            sql += _TAG_FILTER
            params["tags"] = tags
        sql += " ORDER BY rank LIMIT :limit"
        stmt = text(sql)
        if tags:
            stmt = stmt.bindparams(bindparam("tags", expanding=True))

        results: List[SearchResult] = []
        with self._session_factory() as session:
            try:
                for row in session.execute(stmt, params).fetchall():
                    results.append(
                        SearchResult(
                            note_id=row[0],
                            title=row[1],
                            preview=self._preview(row[2]),
                            score=-float(row[3]),
                            matches=[row[4]] if row[4] else [],
                        )
                    )

            except (sqlite3.OperationalError, SQLAlchemyOperationalError) as e:
                logger.warning(
                    f"FTS5 query failed for '{query}': {e}. Using fallback search."
                )
                return self._fallback_text_search(query, tags, limit)

            except (sqlite3.DatabaseError, SQLAlchemyDatabaseError) as e:
                error_msg = str(e).lower()
                if "malformed" in error_msg or "corrupt" in error_msg:
                    logger.error(
                        f"FTS5 corruption detected: {e}. Attempting auto-rebuild..."
                    )
                    if not self._recovering and self._attempt_recovery():
                        logger.info("FTS5 rebuilt successfully, retrying search")
                        self._recovering = True
                        try:
                            return self.search(query, tags, limit, literal)
                        finally:
                            self._recovering = False
                    logger.error(
                        "FTS5 recovery failed. Disabling FTS5 for this session."
                    )
                    self.available = False
                    return self._fallback_text_search(query, tags, limit)
                logger.error(f"FTS5 database error: {e}. Using fallback search.")
                return self._fallback_text_search(query, tags, limit)

        return results

    def entry_count(self, note_id: Optional[str] = None) -> int:
        """Count search entries, optionally for a single note."""
        with self._session_factory() as session:
            if note_id is None:
                return session.execute(text("SELECT COUNT(*) FROM notes_fts")).scalar()
            return session.execute(
                text("SELECT COUNT(*) FROM notes_fts WHERE id = :id"), {"id": note_id}
            ).scalar()

    def rebuild(self) -> int:
        """Rebuild the FTS5 table from the notes table."""
        return rebuild_search_index(self.engine)

    def _preview(self, content: str) -> str:
        return (content or "")[: self.preview_length] + "..."

    # ------------------------------------------------------------------
    # Query escaping helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _should_escape(query: str) -> bool:
        """Auto-detect whether a query needs FTS5 escaping.

        Queries using native syntax (boolean keywords, quoted phrases,
        prefix stars, column filters) pass through; anything else has its
        words quoted one by one so punctuation like hyphens cannot
        produce a syntax error.
        """
        FTS5_KEYWORDS = {"AND", "OR", "NOT", "NEAR"}
        words = query.split()
        if any(w in FTS5_KEYWORDS for w in words):
            return False
        if query.count('"') >= 2:
            return False
        if re.search(r"\b\w+\*", query):
            return False
        if re.search(r"\b(title|content):", query):
            return False
        return True

    @staticmethod
    def _escape_query(query: str) -> str:
        """Quote each word so FTS5 reads it as a plain term.

        Quoted terms separated by spaces are an implicit AND, so every
        word must appear somewhere in the note, in any order. Returns an
        empty string when nothing searchable is left.
        """
        terms = []
        for word in re.sub(r"[*^]", "", query).split():
            terms.append('"' + word.replace('"', '""') + '"')
        return " ".join(terms)

    # ------------------------------------------------------------------
    # Fallback & recovery
    # ------------------------------------------------------------------

    def _fallback_text_search(
        self, query: str, tags: List[str], limit: int = 50
    ) -> List[SearchResult]:
        """LIKE-based fallback when FTS5 is unavailable or rejects the query."""
        search_term = f"%{escape_like_pattern(query)}%"
        sql = """
            SELECT n.id, n.title, n.content
            FROM notes n
            WHERE (n.title LIKE :term ESCAPE '\\' OR n.content LIKE :term ESCAPE '\\')
        """
        params: Dict[str, Any] = {"term": search_term, "limit": limit}
        if tags:
            sql += _TAG_FILTER
            params["tags"] = tags
        sql += " ORDER BY n.modified_at DESC LIMIT :limit"
        stmt = text(sql)
        if tags:
            stmt = stmt.bindparams(bindparam("tags", expanding=True))

        results: List[SearchResult] = []
        try:
            with self._session_factory() as session:
                for row in session.execute(stmt, params).fetchall():
                    title_match = query.lower() in (row[1] or "").lower()
                    results.append(
                        SearchResult(
                            note_id=row[0],
                            title=row[1],
                            preview=self._preview(row[2]),
                            score=2.0 if title_match else 1.0,
                        )
                    )
        except (sqlite3.Error, SQLAlchemyDatabaseError) as e:
            raise SearchError(
                f"Fallback text search failed: {e}",
                query=query,
                code=ErrorCode.SEARCH_FAILED,
            ) from e

        # Title hits first, recency order otherwise
        results.sort(key=lambda r: r.score, reverse=True)
        logger.debug(
            f"Fallback search returned {len(results)} results for query '{query}'"
        )
        return results

    def _attempt_recovery(self) -> bool:
        """Attempt to recover FTS5 by rebuilding the index."""
        try:
            count = self.rebuild()
            logger.info(f"FTS5 index rebuilt with {count} notes")
            return True
        except (sqlite3.Error, SQLAlchemyDatabaseError) as e:
            logger.error(f"FTS5 rebuild failed: {e}")
            return False
