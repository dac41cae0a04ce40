"""Import coordinator: scan every provider, resolve projects and write both stores.

Writes go to the primary store first. The search index is written
afterwards, in its own transaction; a failure there is logged and never
undoes or fails the primary import.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from .backends import get_available_providers
from .cards import extract_text, to_card
from .config import SCAN_WORKERS, WRITE_BATCH_SIZE, get_database_path, get_search_path
from .core import Project, RenderableMessage, Session, SessionInfo, SessionWithProject
from .database import VaultDatabase
from .errors import ImportRequestError, StoreError
from .normalize import file_times, now_iso
from .projects import extract_project_name, group_by_project, is_resolvable, project_uuid
from .provider import ChatProvider
from .search import SearchEntry, SearchIndex

logger = logging.getLogger(__name__)


@dataclass
class ImportStats:
    found: int = 0
    imported: int = 0
    skipped: int = 0
    errored: int = 0

    def to_dict(self) -> dict:
        return {
            "found": self.found,
            "imported": self.imported,
            "skipped": self.skipped,
            "errored": self.errored,
        }


def build_session(provider: ChatProvider, info: SessionInfo) -> SessionWithProject | None:
    """Parse one located session and attach its project, or None to skip it."""
    detail = provider.parse_session(info)
    if detail is None:
        logger.info("Skipping %s session %s: unreadable", provider.label, info.session_id)
        return None

    project_path = provider.resolve_project_path(info, detail)
    project_name = extract_project_name(project_path)
    if project_name is None:
        logger.info("Skipping %s session %s: no usable project path", provider.label, info.session_id)
        return None

    created = info.created or detail.metadata.created
    updated = info.updated or detail.metadata.modified
    if not created or not updated:
        file_created, file_updated = file_times(info.path)
        created = created or file_created
        updated = updated or file_updated

    return SessionWithProject(
        session=detail,
        provider=provider.name,
        project_path=project_path,
        project_name=project_name,
        created=created,
        updated=updated,
        title=info.title,
    )


def scan_provider(provider: ChatProvider) -> tuple[list[SessionWithProject], int, int]:
    """Locate and normalize one provider's sessions.

    Returns (sessions, found, errored). A session that raises while parsing
    is logged and counted, and the rest of the provider proceeds.
    """
    try:
        infos = provider.list_sessions()
    except OSError as e:
        logger.error("Failed to list sessions for %s: %s", provider.label, e)
        return [], 0, 0

    sessions = []
    errored = 0
    for info in infos:
        try:
            swp = build_session(provider, info)
        except Exception:
            logger.exception("Failed to parse %s session %s", provider.label, info.session_id)
            errored += 1
            continue
        if swp is not None:
            sessions.append(swp)
    logger.info("%s: %d sessions located, %d importable", provider.label, len(infos), len(sessions))
    return sessions, len(infos), errored


class SessionImporter:
    """Drives scan -> resolve -> persist for every configured provider."""

    def __init__(
        self,
        providers: list[ChatProvider] | None = None,
        database: VaultDatabase | None = None,
        search_index: SearchIndex | None = None,
    ):
        self.providers = providers if providers is not None else get_available_providers()
        self.db = database or VaultDatabase(get_database_path())
        self.search = search_index or SearchIndex(get_search_path())

    # ── Scan ─────────────────────────────────────────────────────────

    def scan(self, stats: ImportStats | None = None) -> list[SessionWithProject]:
        """Scan all providers in parallel; results keep provider order."""
        stats = stats or ImportStats()
        with ThreadPoolExecutor(max_workers=SCAN_WORKERS) as pool:
            results = list(pool.map(scan_provider, self.providers))

        sessions = []
        for provider_sessions, located, errored in results:
            sessions.extend(provider_sessions)
            stats.found += located
            stats.errored += errored
        return sessions

    # ── Import ───────────────────────────────────────────────────────

    def import_all(self) -> ImportStats:
        stats = ImportStats()
        sessions = self.scan(stats)
        stats.skipped = stats.found - stats.errored - len(sessions)

        for group in group_by_project(sessions).values():
            first = group[0]
            project = Project(
                project_uuid=project_uuid(first.project_path),
                name=first.project_name,
                path=first.project_path,
                created_at=min(s.created for s in group),
                updated_at=max(s.updated for s in group),
            )
            for swp in group:
                try:
                    self._persist(swp, project)
                except StoreError as e:
                    logger.error("%s", e)
                    stats.errored += 1
                    continue
                stats.imported += 1

        logger.info(
            "Import finished: %d found, %d imported, %d skipped, %d errored",
            stats.found, stats.imported, stats.skipped, stats.errored,
        )
        return stats

    def import_single_session(self, swp: SessionWithProject) -> None:
        """Validate and persist one session, creating or updating its project.

        Raises ImportRequestError before anything is written when the project
        name or path is unusable, and StoreError when the primary write fails.
        """
        session_id = swp.session.session_id
        if not is_resolvable(swp.project_name):
            raise ImportRequestError(f"Session {session_id}: no valid project name")
        if not is_resolvable(swp.project_path):
            raise ImportRequestError(f"Session {session_id}: no valid project path")

        created = swp.created or now_iso()
        self._persist(swp, Project(
            project_uuid=project_uuid(swp.project_path),
            name=swp.project_name,
            path=swp.project_path,
            created_at=created,
            updated_at=swp.updated or created,
        ))

    def _persist(self, swp: SessionWithProject, project: Project) -> None:
        cards = self._write_primary(swp, project)
        self._write_search(swp, project.project_uuid, cards)

    def _write_primary(self, swp: SessionWithProject, project: Project) -> list[RenderableMessage]:
        detail = swp.session
        meta = detail.metadata
        title = swp.title or detail.title
        created_at = swp.created or now_iso()

        cards = []
        self.db.begin()
        try:
            project_id = self.db.projects.upsert(project)
            row_id = self.db.sessions.upsert(Session(
                project_id=project_id,
                session_id=detail.session_id,
                title=title,
                provider=swp.provider.value,
                version=meta.version,
                git_branch=meta.git_branch,
                cwd=meta.cwd,
                models=meta.models,
                created=meta.created,
                modified=meta.modified,
                message_count=len(detail.messages),
                created_at=created_at,
                updated_at=swp.updated or created_at,
            ))

            for sequence, message in enumerate(detail.messages):
                card = to_card(message, row_id, sequence, created_at, meta.cwd)
                self.db.messages.upsert(card)
                cards.append(card)
                if (sequence + 1) % WRITE_BATCH_SIZE == 0:
                    self.db.commit()
                    self.db.begin()

            if cards:
                self.db.messages.delete_after_sequence(row_id, cards[-1].sequence)
            else:
                self.db.messages.delete_by_session(row_id)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            raise StoreError(detail.session_id, e) from e

        logger.debug("Stored %s session %s: %d cards", swp.provider.value, detail.session_id, len(cards))
        return cards

    def _write_search(self, swp: SessionWithProject, uuid: str, cards: list[RenderableMessage]) -> None:
        session_id = swp.session.session_id
        title = swp.title or swp.session.title
        try:
            self.search.delete_by_session(session_id)
            self.search.begin()
            for i, card in enumerate(cards):
                text = extract_text(card.content)
                if text:
                    self.search.index(SearchEntry(
                        content=text,
                        session_id=session_id,
                        project_id=uuid,
                        card_type=card.card_type,
                        session_title=title,
                        project_name=swp.project_name,
                        timestamp=card.timestamp,
                    ))
                if (i + 1) % WRITE_BATCH_SIZE == 0:
                    self.search.commit()
                    self.search.begin()
            self.search.commit()
        except Exception:
            logger.exception("Failed to index session %s for search", session_id)
            self.search.rollback()

    # ── Maintenance ──────────────────────────────────────────────────

    def vacuum(self) -> None:
        self.db.vacuum()
        self.search.vacuum()

    def optimize_search(self) -> None:
        self.search.optimize()

    def rebuild_search(self) -> int:
        return self.search.rebuild_from(self.db)

    def stats(self) -> dict:
        return {
            "projects": self.db.projects.count(),
            "sessions": self.db.sessions.count(),
            "messages": self.db.messages.count(),
            "search_entries": self.search.count(),
        }

    def close(self) -> None:
        self.db.close()
        self.search.close()
