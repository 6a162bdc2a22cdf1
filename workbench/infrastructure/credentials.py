"""Bearer credential sources for backend calls.

Minting a token belongs to an external auth collaborator. The client only
needs something that returns the current bearer value.
"""
from __future__ import annotations

from typing import Awaitable, Callable, Protocol

from workbench.core.cache import TtlCache

TOKEN_TTL_SECONDS = 5 * 60
TOKEN_REFRESH_MARGIN_SECONDS = 30


class CredentialProvider(Protocol):
    """Contract for anything able to supply a bearer token."""

    async def get_token(self) -> str:
        """Return the bearer token for the next request."""


class StaticCredentialProvider:
    """Returns a fixed token, typically read from the environment."""

    def __init__(self, token: str) -> None:
        self._token = token

    async def get_token(self) -> str:
        return self._token


class CachedCredentialProvider:
    """Reuses a minted token until shortly before it expires."""

    def __init__(
        self,
        mint: Callable[[], Awaitable[str]],
        *,
        ttl_seconds: float = TOKEN_TTL_SECONDS,
        refresh_margin_seconds: float = TOKEN_REFRESH_MARGIN_SECONDS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        kwargs = {"clock": clock} if clock is not None else {}
        self._cache: TtlCache[str] = TtlCache(
            mint,
            ttl_seconds=max(0.0, ttl_seconds - refresh_margin_seconds),
            name="bearer token",
            **kwargs,
        )

    async def get_token(self) -> str:
        return await self._cache.get_or_refresh()

    def invalidate(self) -> None:
        self._cache.invalidate()
