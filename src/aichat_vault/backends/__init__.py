"""Auto-detect installed assistant backends and provide a unified registry."""

import logging

from ..provider import ChatProvider
from .amp import AmpProvider
from .claude_code import ClaudeCodeProvider
from .codex import CodexProvider
from .gemini import GeminiProvider
from .junie import JunieProvider
from .kilocode import KiloCodeProvider
from .opencode import OpenCodeProvider

logger = logging.getLogger(__name__)

# Import order
ALL_PROVIDERS: list[type[ChatProvider]] = [
    ClaudeCodeProvider,
    OpenCodeProvider,
    CodexProvider,
    AmpProvider,
    JunieProvider,
    KiloCodeProvider,
    GeminiProvider,
]


def get_all_providers() -> list[ChatProvider]:
    return [provider_class() for provider_class in ALL_PROVIDERS]


def get_available_providers() -> list[ChatProvider]:
    """Auto-detect which assistants have data here and return their providers."""
    providers = []
    for provider in get_all_providers():
        try:
            if provider.is_available():
                providers.append(provider)
        except OSError as e:
            logger.warning("Cannot probe %s: %s", provider.label, e)
    return providers
