"""Platform-aware path resolution for provider data directories and the stores."""

import os
import sys
from pathlib import Path

# Messages per committed write batch, shared by the primary store and search index.
WRITE_BATCH_SIZE = 50

SEARCH_DEFAULT_LIMIT = 50
SEARCH_MAX_LIMIT = 100

TITLE_MAX_CHARS = 100

# Codex stores sessions in dated folders; only this many days back are scanned.
CODEX_MAX_DAYS = 30

SCAN_WORKERS = 4


def get_claude_code_path() -> Path:
    """Return the path to Claude Code's projects directory."""
    env = os.environ.get("AICHAT_CLAUDE_PATH")
    if env:
        return Path(env)

    return Path.home() / ".claude" / "projects"


def get_opencode_path() -> Path:
    """Return the path to OpenCode's storage directory."""
    env = os.environ.get("AICHAT_OPENCODE_PATH")
    if env:
        return Path(env)

    if sys.platform == "win32":
        return Path(os.environ.get("USERPROFILE", "")) / ".local" / "share" / "opencode" / "storage"
    else:  # macOS and Linux
        return Path.home() / ".local" / "share" / "opencode" / "storage"


def get_codex_paths() -> list[Path]:
    """Return every Codex sessions root: the standalone CLI plus JetBrains IDE caches."""
    env = os.environ.get("AICHAT_CODEX_PATHS")
    if env:
        return [Path(p) for p in env.split(os.pathsep) if p]

    roots = []
    jetbrains = Path.home() / ".cache" / "JetBrains"
    if jetbrains.is_dir():
        for ide_dir in sorted(jetbrains.iterdir()):
            sessions = ide_dir / "aia" / "codex" / "sessions"
            if sessions.is_dir():
                roots.append(sessions)
    roots.append(Path.home() / ".codex" / "sessions")
    return roots


def get_amp_path() -> Path:
    """Return the path to Amp's threads directory."""
    env = os.environ.get("AICHAT_AMP_PATH")
    if env:
        return Path(env)

    return Path.home() / ".local" / "share" / "amp" / "threads"


def get_junie_path() -> Path:
    """Return the path to Junie's sessions directory."""
    env = os.environ.get("AICHAT_JUNIE_PATH")
    if env:
        return Path(env)

    return Path.home() / ".junie" / "sessions"


def get_kilo_path() -> Path:
    """Return the path to the Kilo CLI data directory."""
    env = os.environ.get("AICHAT_KILO_PATH")
    if env:
        return Path(env)

    return Path.home() / ".kilocode" / "cli"


def get_gemini_path() -> Path:
    """Return the path to Gemini CLI's per-project temp directory."""
    env = os.environ.get("AICHAT_GEMINI_PATH")
    if env:
        return Path(env)

    return Path.home() / ".gemini" / "tmp"


def get_data_dir() -> Path:
    """Return the directory holding sessions.db and search.db."""
    env = os.environ.get("AICHAT_VAULT_DATA_DIR")
    if env:
        return Path(env)

    return Path("var")


def get_database_path() -> Path:
    return get_data_dir() / "sessions.db"


def get_search_path() -> Path:
    return get_data_dir() / "search.db"


def get_log_level() -> str:
    return os.environ.get("AICHAT_VAULT_LOG_LEVEL", "INFO").upper()
