"""FastAPI web server for aichat-vault."""

import logging

from fastapi import Body, FastAPI, HTTPException, Query

from .config import SEARCH_DEFAULT_LIMIT
from .core import RenderableMessage, Session, SessionWithProject, content_to_dict
from .errors import ImportRequestError, InvalidSearchQuery, StoreError
from .importer import SessionImporter

logger = logging.getLogger(__name__)

app = FastAPI(title="aichat-vault", version="0.1.0")

# Importer cache (populated on first request)
_importer: SessionImporter | None = None


def _get_importer() -> SessionImporter:
    """Lazily open both stores and cache the importer."""
    global _importer
    if _importer is None:
        _importer = SessionImporter()
        logger.info("Opened stores at %s and %s", _importer.db.path, _importer.search.path)
    return _importer


def _session_to_dict(session: Session) -> dict:
    """Convert a Session row to a JSON-serializable dict."""
    return {
        "id": session.id,
        "session_id": session.session_id,
        "title": session.title,
        "provider": session.provider,
        "version": session.version,
        "git_branch": session.git_branch,
        "cwd": session.cwd,
        "models": [[name, count] for name, count in session.models],
        "created": session.created,
        "modified": session.modified,
        "message_count": session.message_count,
        "created_at": session.created_at,
        "updated_at": session.updated_at,
    }


def _card_to_dict(card: RenderableMessage) -> dict:
    return {
        "sequence": card.sequence,
        "card_type": card.card_type,
        "title": card.title,
        "subtitle": card.subtitle,
        "content": [content_to_dict(b) for b in card.content],
        "timestamp": card.timestamp,
        "can_expand": card.can_expand,
        "is_error": card.is_error,
    }


# ── Routes ───────────────────────────────────────────────────────


@app.get("/api/projects")
async def get_projects():
    """Return every project with its session count and providers."""
    return _get_importer().db.projects.list_all()


@app.get("/api/projects/{project_uuid}/sessions")
async def get_project_sessions(project_uuid: str):
    """Return a project's sessions, most recently updated first."""
    db = _get_importer().db
    project = db.projects.get_by_uuid(project_uuid)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")

    return {
        "project": {
            "project_uuid": project.project_uuid,
            "name": project.name,
            "path": project.path,
            "created_at": project.created_at,
            "updated_at": project.updated_at,
        },
        "sessions": [_session_to_dict(s) for s in db.sessions.list_by_project(project.id)],
    }


@app.get("/api/sessions/{session_id}")
async def get_session(session_id: str):
    """Return a session and its cards in order."""
    db = _get_importer().db
    session = db.sessions.get_by_session_id(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")

    return {
        "session": _session_to_dict(session),
        "messages": [_card_to_dict(c) for c in db.messages.list_by_session(session.id)],
    }


@app.get("/api/search")
async def search(
    q: str = Query("", description="Substring to search for"),
    project: str | None = Query(None, description="Filter by project name"),
    limit: int = Query(SEARCH_DEFAULT_LIMIT, ge=1, description="Capped at the index maximum"),
):
    """Full-text search across every indexed card."""
    index = _get_importer().search
    try:
        if project:
            results = index.search_by_project(project, q, limit)
        else:
            results = index.search(q, limit)
    except InvalidSearchQuery as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"query": q, "results": [r.to_dict() for r in results]}


@app.post("/api/import/session")
async def import_session(body: dict = Body(...)):
    """Import one normalized session sent by a remote client."""
    try:
        swp = SessionWithProject.from_dict(body)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Malformed session: {e}")

    try:
        _get_importer().import_single_session(swp)
    except ImportRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        logger.error("%s", e)
        raise HTTPException(status_code=500, detail="Failed to store session")

    return {"status": "ok", "session_id": swp.session.session_id}


@app.get("/api/stats")
async def get_stats():
    """Row counts of both stores."""
    return _get_importer().stats()
