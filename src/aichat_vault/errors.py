"""aichat-vault error hierarchy.

    VaultError
    ├── ImportRequestError   malformed single-session import request
    ├── InvalidSearchQuery   rejected by the search engine's query syntax
    └── StoreError           primary store write failed for one session
"""


class VaultError(Exception):
    """Base class for all aichat-vault errors."""


class ImportRequestError(VaultError, ValueError):
    """A single-session import request is malformed or incomplete."""


class InvalidSearchQuery(VaultError, ValueError):
    """The full-text engine could not parse the query."""


class StoreError(VaultError):
    """Writing a session to the primary store failed and was rolled back."""

    def __init__(self, session_id: str, cause: Exception):
        super().__init__(f"Failed to store session {session_id}: {cause}")
        self.session_id = session_id
        self.cause = cause
