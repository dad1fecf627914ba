"""Provider error types."""

from __future__ import annotations


class ProviderError(Exception):
    """Raised when an LLM provider is unknown, unavailable or misconfigured."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}")
