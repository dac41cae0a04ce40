"""Abstract base class for chat history providers."""

from abc import ABC, abstractmethod
from pathlib import Path

from .core import Provider, SessionDetail, SessionInfo


class ChatProvider(ABC):
    """Interface every assistant backend implements.

    A provider pairs a locator (``list_sessions``) that finds raw session
    files under its root with a normalizer (``parse_session``) that turns one
    of them into the canonical model. Providers only read the filesystem and
    share no behaviour beyond this contract.
    """

    name: Provider
    label: str  # human-readable, used in placeholder titles

    @abstractmethod
    def get_base_path(self) -> Path:
        """Return the root directory where this assistant stores sessions."""
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if this assistant's data exists on this machine."""
        ...

    @abstractmethod
    def list_sessions(self) -> list[SessionInfo]:
        """Locate every raw session under the base path."""
        ...

    @abstractmethod
    def parse_session(self, info: SessionInfo) -> SessionDetail | None:
        """Normalize one located session.

        Returns None when the session cannot be read at all. Malformed lines
        or messages inside a readable session become error-styled info
        messages instead of raising.
        """
        ...

    @abstractmethod
    def resolve_project_path(self, info: SessionInfo, detail: SessionDetail) -> str | None:
        """Return the filesystem path the session belongs to, if known."""
        ...
