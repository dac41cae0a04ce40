"""Send locally scanned sessions to a remote aichat-vault server."""

import logging

import httpx

from .importer import ImportStats, scan_provider
from .provider import ChatProvider

logger = logging.getLogger(__name__)

IMPORT_ENDPOINT = "/api/import/session"


def push_sessions(
    base_url: str,
    providers: list[ChatProvider],
    client: httpx.Client | None = None,
    timeout: float = 30.0,
) -> ImportStats:
    """POST every importable session to ``base_url``; one request per session.

    Rejected or failed requests are logged and counted as errored, and the
    remaining sessions are still sent.
    """
    stats = ImportStats()
    owns_client = client is None
    client = client or httpx.Client(base_url=base_url, timeout=timeout)
    try:
        for provider in providers:
            sessions, found, errored = scan_provider(provider)
            stats.found += found
            stats.errored += errored
            stats.skipped += found - errored - len(sessions)

            for swp in sessions:
                session_id = swp.session.session_id
                try:
                    response = client.post(IMPORT_ENDPOINT, json=swp.to_dict())
                    response.raise_for_status()
                except httpx.HTTPStatusError as e:
                    logger.error(
                        "Server rejected session %s: %s %s",
                        session_id, e.response.status_code, e.response.text,
                    )
                    stats.errored += 1
                    continue
                except httpx.HTTPError as e:
                    logger.error("Failed to push session %s: %s", session_id, e)
                    stats.errored += 1
                    continue
                stats.imported += 1
    finally:
        if owns_client:
            client.close()

    logger.info(
        "Push finished: %d found, %d sent, %d skipped, %d errored",
        stats.found, stats.imported, stats.skipped, stats.errored,
    )
    return stats
