"""Full-text search over message cards.

The index lives in its own SQLite file as an FTS5 table with the trigram
tokenizer, so any substring of three or more characters matches. It is
derived data: ``rebuild_from`` regenerates it from the primary store.
"""

import logging
import sqlite3
from dataclasses import asdict, dataclass
from pathlib import Path

from .cards import extract_text
from .config import SEARCH_DEFAULT_LIMIT, SEARCH_MAX_LIMIT, WRITE_BATCH_SIZE
from .database import TransactionMixin, VaultDatabase, connect
from .errors import InvalidSearchQuery

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE VIRTUAL TABLE IF NOT EXISTS search_messages USING fts5(
    content,
    session_id,
    project_id,
    card_type,
    session_title,
    project_name,
    timestamp UNINDEXED,
    tokenize='trigram'
);
"""

# Column weights: content, session_id, project_id, card_type, session_title, project_name
BM25_WEIGHTS = "10.0, 0.0, 0.0, 0.0, 5.0, 2.0"

_SELECT = f"""
    SELECT
        highlight(search_messages, 0, '<mark>', '</mark>') AS content,
        session_id,
        project_id,
        card_type,
        session_title,
        project_name,
        timestamp,
        ROUND(-bm25(search_messages, {BM25_WEIGHTS}), 2) AS score
    FROM search_messages
    WHERE search_messages MATCH ?
"""
_ORDER = f"ORDER BY bm25(search_messages, {BM25_WEIGHTS}), timestamp DESC LIMIT ?"


@dataclass
class SearchEntry:
    """One indexed card. ``session_id`` is the provider's session id, ``project_id`` the project UUID."""

    content: str
    session_id: str
    project_id: str
    card_type: str
    session_title: str
    project_name: str
    timestamp: str


@dataclass
class SearchResult:
    content: str  # highlighted with <mark>
    session_id: str
    project_id: str
    card_type: str
    session_title: str
    project_name: str
    timestamp: str
    score: float

    def to_dict(self) -> dict:
        return asdict(self)


def escape_query(query: str) -> str:
    """Quote the query as one FTS5 phrase so operators match literally."""
    return '"' + query.strip().replace('"', '""') + '"'


class SearchIndex(TransactionMixin):
    def __init__(self, path: Path):
        self.path = Path(path)
        self.conn = connect(self.path)
        self.conn.executescript(SCHEMA)

    def index(self, entry: SearchEntry) -> None:
        self.conn.execute(
            """
            INSERT INTO search_messages (
                content, session_id, project_id, card_type, session_title, project_name, timestamp
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (entry.content, entry.session_id, entry.project_id, entry.card_type,
             entry.session_title, entry.project_name, entry.timestamp),
        )

    def delete_by_session(self, session_id: str) -> None:
        self.conn.execute("DELETE FROM search_messages WHERE session_id = ?", (session_id,))

    def search(self, query: str, limit: int = SEARCH_DEFAULT_LIMIT) -> list[SearchResult]:
        """Best matches first, newer first among equal scores."""
        return self._run(query, limit)

    def search_by_project(
        self, project_name: str, query: str, limit: int = SEARCH_DEFAULT_LIMIT
    ) -> list[SearchResult]:
        return self._run(query, limit, project_name)

    def _run(self, query: str, limit: int, project_name: str | None = None) -> list[SearchResult]:
        if not query or not query.strip():
            return []
        limit = max(0, min(limit, SEARCH_MAX_LIMIT))

        sql = _SELECT
        params: list = [escape_query(query)]
        if project_name is not None:
            sql += " AND project_name = ?"
            params.append(project_name)
        sql += _ORDER
        params.append(limit)

        try:
            rows = self.conn.execute(sql, params).fetchall()
        except sqlite3.OperationalError as e:
            raise InvalidSearchQuery(f"Cannot search for {query!r}: {e}") from e
        return [SearchResult(**dict(row)) for row in rows]

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM search_messages").fetchone()[0]

    def optimize(self) -> None:
        """Merge index segments, reclaiming space left by deletions."""
        self.conn.execute("INSERT INTO search_messages(search_messages) VALUES('optimize')")

    def reset(self) -> None:
        self.conn.execute("DROP TABLE IF EXISTS search_messages")
        self.conn.executescript(SCHEMA)
        logger.info("Reset search index at %s", self.path)

    def rebuild_from(self, database: VaultDatabase) -> int:
        """Drop the index and re-derive it from every card in ``database``."""
        self.reset()
        indexed = 0
        pending = 0
        self.begin()
        try:
            for project in database.projects.list_all():
                for session in database.sessions.list_by_project(project["id"]):
                    for card in database.messages.list_by_session(session.id):
                        text = extract_text(card.content)
                        if not text:
                            continue
                        self.index(SearchEntry(
                            content=text,
                            session_id=session.session_id,
                            project_id=project["project_uuid"],
                            card_type=card.card_type,
                            session_title=session.title,
                            project_name=project["name"],
                            timestamp=card.timestamp,
                        ))
                        indexed += 1
                        pending += 1
                        if pending >= WRITE_BATCH_SIZE:
                            self.commit()
                            self.begin()
                            pending = 0
        except BaseException:
            self.rollback()
            raise
        self.commit()
        logger.info("Rebuilt search index: %d entries", indexed)
        return indexed
