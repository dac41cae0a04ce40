"""Primary SQLite store: projects, sessions and renderable message cards.

Transactions are explicit. The connection runs in autocommit mode and the
importer brackets its writes with begin()/commit(), or the transaction()
context manager.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .core import Project, RenderableMessage, Session, content_from_dict, content_to_dict

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS projects (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project_uuid TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    path TEXT,
    created_at DATETIME NOT NULL,
    updated_at DATETIME NOT NULL
);

CREATE TABLE IF NOT EXISTS sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id INTEGER NOT NULL,
    session_id TEXT NOT NULL,
    title TEXT NOT NULL,
    provider TEXT NOT NULL,
    version TEXT,
    git_branch TEXT,
    cwd TEXT,
    models_json TEXT,
    created TEXT,
    modified TEXT,
    message_count INTEGER DEFAULT 0,
    created_at DATETIME NOT NULL,
    updated_at DATETIME NOT NULL,
    FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE,
    UNIQUE(project_id, session_id)
);

CREATE INDEX IF NOT EXISTS idx_sessions_project ON sessions(project_id);
CREATE INDEX IF NOT EXISTS idx_sessions_provider ON sessions(provider);

CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL,
    sequence INTEGER NOT NULL,
    card_type TEXT NOT NULL,
    title TEXT NOT NULL,
    subtitle TEXT,
    content_json TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    can_expand INTEGER DEFAULT 1,
    is_error INTEGER DEFAULT 0,
    created_at DATETIME NOT NULL,
    FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE,
    UNIQUE(session_id, sequence)
);

CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id);
CREATE INDEX IF NOT EXISTS idx_messages_sequence ON messages(sequence);
"""


def connect(path: Path) -> sqlite3.Connection:
    """Open a WAL-mode connection with explicit transaction control."""
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA cache_size = -64000")
    conn.execute("PRAGMA temp_store = MEMORY")
    return conn


class TransactionMixin:
    """begin/commit/rollback over ``self.conn``."""

    conn: sqlite3.Connection

    def begin(self) -> None:
        self.conn.execute("BEGIN")

    def commit(self) -> None:
        self.conn.execute("COMMIT")

    def rollback(self) -> None:
        if self.conn.in_transaction:
            self.conn.execute("ROLLBACK")

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self.begin()
        try:
            yield
        except BaseException:
            self.rollback()
            raise
        self.commit()

    def vacuum(self) -> None:
        self.conn.execute("VACUUM")

    def close(self) -> None:
        self.conn.close()


class ProjectRepository:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def upsert(self, project: Project) -> int:
        """Insert or update by project_uuid; created_at is kept from the first insert."""
        row = self.conn.execute(
            """
            INSERT INTO projects (project_uuid, name, path, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(project_uuid) DO UPDATE SET
                name = excluded.name,
                path = excluded.path,
                updated_at = excluded.updated_at
            RETURNING id
            """,
            (project.project_uuid, project.name, project.path or None,
             project.created_at, project.updated_at),
        ).fetchone()
        return row["id"]

    def get_by_uuid(self, project_uuid: str) -> Project | None:
        row = self.conn.execute(
            "SELECT * FROM projects WHERE project_uuid = ?", (project_uuid,)
        ).fetchone()
        if row is None:
            return None
        return Project(
            id=row["id"],
            project_uuid=row["project_uuid"],
            name=row["name"],
            path=row["path"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def list_all(self) -> list[dict]:
        """Every project with its session count and provider set, newest first."""
        rows = self.conn.execute(
            """
            SELECT p.id, p.project_uuid, p.name, p.path, p.updated_at,
                   COUNT(s.id) AS session_count,
                   GROUP_CONCAT(DISTINCT s.provider) AS providers
            FROM projects p
            LEFT JOIN sessions s ON p.id = s.project_id
            GROUP BY p.id
            ORDER BY p.updated_at DESC
            """
        ).fetchall()
        return [
            {
                "id": row["id"],
                "project_uuid": row["project_uuid"],
                "name": row["name"],
                "path": row["path"],
                "session_count": row["session_count"],
                "providers": sorted(row["providers"].split(",")) if row["providers"] else [],
                "updated_at": row["updated_at"],
            }
            for row in rows
        ]

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM projects").fetchone()[0]


class SessionRepository:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def upsert(self, session: Session) -> int:
        row = self.conn.execute(
            """
            INSERT INTO sessions (
                project_id, session_id, title, provider, version, git_branch, cwd,
                models_json, created, modified, message_count, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(project_id, session_id) DO UPDATE SET
                title = excluded.title,
                provider = excluded.provider,
                version = excluded.version,
                git_branch = excluded.git_branch,
                cwd = excluded.cwd,
                models_json = excluded.models_json,
                created = excluded.created,
                modified = excluded.modified,
                message_count = excluded.message_count,
                updated_at = excluded.updated_at
            RETURNING id
            """,
            (
                session.project_id, session.session_id, session.title, session.provider,
                session.version or None, session.git_branch or None, session.cwd or None,
                session.models_json, session.created or None, session.modified or None,
                session.message_count, session.created_at, session.updated_at,
            ),
        ).fetchone()
        return row["id"]

    def get_by_session_id(self, session_id: str) -> Session | None:
        row = self.conn.execute(
            "SELECT * FROM sessions WHERE session_id = ? ORDER BY updated_at DESC", (session_id,)
        ).fetchone()
        return _row_to_session(row) if row else None

    def get_by_project_and_session_id(self, project_id: int, session_id: str) -> Session | None:
        row = self.conn.execute(
            "SELECT * FROM sessions WHERE project_id = ? AND session_id = ?",
            (project_id, session_id),
        ).fetchone()
        return _row_to_session(row) if row else None

    def list_by_project(self, project_id: int) -> list[Session]:
        rows = self.conn.execute(
            "SELECT * FROM sessions WHERE project_id = ? ORDER BY updated_at DESC, created_at DESC",
            (project_id,),
        ).fetchall()
        return [_row_to_session(row) for row in rows]

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM sessions").fetchone()[0]


class MessageRepository:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def upsert(self, message: RenderableMessage) -> int:
        """Insert or fully overwrite the card at (session, sequence)."""
        row = self.conn.execute(
            """
            INSERT INTO messages (
                session_id, sequence, card_type, title, subtitle, content_json,
                timestamp, can_expand, is_error, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(session_id, sequence) DO UPDATE SET
                card_type = excluded.card_type,
                title = excluded.title,
                subtitle = excluded.subtitle,
                content_json = excluded.content_json,
                timestamp = excluded.timestamp,
                can_expand = excluded.can_expand,
                is_error = excluded.is_error,
                created_at = excluded.created_at
            RETURNING id
            """,
            (
                message.session_id, message.sequence, message.card_type, message.title,
                message.subtitle or None,
                json.dumps([content_to_dict(b) for b in message.content]),
                message.timestamp, int(message.can_expand), int(message.is_error),
                message.created_at,
            ),
        ).fetchone()
        return row["id"]

    def list_by_session(self, session_id: int) -> list[RenderableMessage]:
        rows = self.conn.execute(
            "SELECT * FROM messages WHERE session_id = ? ORDER BY sequence ASC", (session_id,)
        ).fetchall()
        return [
            RenderableMessage(
                id=row["id"],
                session_id=row["session_id"],
                sequence=row["sequence"],
                card_type=row["card_type"],
                title=row["title"],
                subtitle=row["subtitle"],
                content=[content_from_dict(b) for b in json.loads(row["content_json"])],
                timestamp=row["timestamp"],
                can_expand=bool(row["can_expand"]),
                is_error=bool(row["is_error"]),
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def delete_after_sequence(self, session_id: int, sequence: int) -> int:
        """Delete the session's cards past ``sequence``; returns how many went."""
        cur = self.conn.execute(
            "DELETE FROM messages WHERE session_id = ? AND sequence > ?", (session_id, sequence)
        )
        return cur.rowcount

    def delete_by_session(self, session_id: int) -> int:
        cur = self.conn.execute("DELETE FROM messages WHERE session_id = ?", (session_id,))
        return cur.rowcount

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM messages").fetchone()[0]


class VaultDatabase(TransactionMixin):
    """The primary record store and its repositories."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.conn = connect(self.path)
        self.conn.executescript(SCHEMA)
        self.projects = ProjectRepository(self.conn)
        self.sessions = SessionRepository(self.conn)
        self.messages = MessageRepository(self.conn)

    def reset(self) -> None:
        """Drop and recreate every table."""
        self.conn.executescript(
            "DROP TABLE IF EXISTS messages;"
            "DROP TABLE IF EXISTS sessions;"
            "DROP TABLE IF EXISTS projects;"
        )
        self.conn.executescript(SCHEMA)
        logger.info("Reset primary store at %s", self.path)


def _row_to_session(row: sqlite3.Row) -> Session:
    return Session(
        id=row["id"],
        project_id=row["project_id"],
        session_id=row["session_id"],
        title=row["title"],
        provider=row["provider"],
        version=row["version"],
        git_branch=row["git_branch"],
        cwd=row["cwd"],
        models=[(name, count) for name, count in json.loads(row["models_json"] or "[]")],
        created=row["created"],
        modified=row["modified"],
        message_count=row["message_count"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
