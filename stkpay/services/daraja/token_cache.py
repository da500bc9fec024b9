"""Process-wide cache for the Daraja OAuth bearer credential.

Refreshes are single-flight: while one fetch is in progress every other
caller awaits that same task instead of starting its own, so a slow response
can never overwrite a fresher credential.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from stkpay.common.errors import AuthenticationFailure
from stkpay.common.logging import logger


@dataclass(frozen=True)
class CachedCredential:
    value: str
    expires_at: float
    # Early-refresh point; the margin never exceeds half the TTL.
    refresh_at: float


# Returns (access_token, ttl_seconds).
TokenFetcher = Callable[[], Awaitable[tuple[str, float]]]


class CredentialTokenCache:
    """Owns the cached credential and the one in-flight refresh task."""

    def __init__(
        self,
        fetcher: TokenFetcher,
        refresh_margin_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetcher = fetcher
        self._refresh_margin = refresh_margin_seconds
        self._clock = clock
        self._credential: CachedCredential | None = None
        self._refresh: asyncio.Task | None = None

    @property
    def credential(self) -> CachedCredential | None:
        return self._credential

    def invalidate(self) -> None:
        """Forget the cached credential, e.g. after the gateway answered 401."""

        self._credential = None

    async def get_token(self) -> str:
        credential = self._credential
        now = self._clock()
        if credential is not None and now < credential.refresh_at:
            return credential.value

        if self._refresh is None:
            self._refresh = asyncio.create_task(self._run_refresh())
        try:
            # Shielded so a cancelled caller does not cancel the shared refresh.
            return await asyncio.shield(self._refresh)
        except AuthenticationFailure:
            if credential is not None and self._clock() < credential.expires_at:
                logger.warning("token_refresh_failed serving_cached_credential=true")
                return credential.value
            raise

    async def _run_refresh(self) -> str:
        try:
            value, ttl_seconds = await self._fetcher()
            if not value or ttl_seconds <= 0:
                raise AuthenticationFailure("gateway returned an unusable credential")
            now = self._clock()
            margin = min(self._refresh_margin, ttl_seconds / 2)
            self._credential = CachedCredential(
                value=value,
                expires_at=now + ttl_seconds,
                refresh_at=now + ttl_seconds - margin,
            )
            logger.info("token_refreshed ttl_s=%s", ttl_seconds)
            return value
        finally:
            self._refresh = None
