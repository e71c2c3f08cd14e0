"""Access-token store.

Secure on-device storage is a platform concern; this module only defines the
interface the client reads tokens through and an in-memory implementation
seeded from settings.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class TokenStore(ABC):
    """Where the client reads credentials from."""

    @property
    @abstractmethod
    def access_token(self) -> str | None:
        ...

    @property
    @abstractmethod
    def refresh_token(self) -> str | None:
        ...

    @abstractmethod
    def set_tokens(self, access_token: str | None, refresh_token: str | None = None) -> None:
        ...

    def clear(self) -> None:
        self.set_tokens(None, None)

    def auth_headers(self) -> dict[str, str]:
        token = self.access_token
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}


class InMemoryTokenStore(TokenStore):
    def __init__(self, access_token: str | None = None, refresh_token: str | None = None) -> None:
        self._access_token = access_token or None
        self._refresh_token = refresh_token or None

    @property
    def access_token(self) -> str | None:
        return self._access_token

    @property
    def refresh_token(self) -> str | None:
        return self._refresh_token

    def set_tokens(self, access_token: str | None, refresh_token: str | None = None) -> None:
        self._access_token = access_token or None
        self._refresh_token = refresh_token or None
        logger.info("Tokens %s", "updated" if access_token else "cleared")


_store: TokenStore | None = None


def get_token_store() -> TokenStore:
    """Return the module-level token store (seeded from settings)."""
    global _store
    if _store is None:
        from config.settings import get_settings

        settings = get_settings()
        _store = InMemoryTokenStore(settings.access_token, settings.refresh_token)
    return _store
