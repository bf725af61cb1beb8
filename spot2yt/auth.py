"""Two-provider authorization handshake.

A migration needs tokens for both Spotify and YouTube. Each provider's
consent screen redirects back on its own, so the coordinator parks the
already-known provider's tokens in the correlation store before the
redirect and restores them when the second callback arrives.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Protocol
from urllib.parse import parse_qs, urlparse

from spot2yt.correlation import CorrelationStore
from spot2yt.logging import logger
from spot2yt.models import OAuthTokens


class Provider(str, Enum):
    SPOTIFY = "spotify"
    YOUTUBE = "youtube"

    @property
    def other(self) -> "Provider":
        return Provider.YOUTUBE if self is Provider.SPOTIFY else Provider.SPOTIFY


class AuthorizationError(Exception):
    """Raised when an authorization callback cannot be completed."""

    pass


class ProviderAuth(Protocol):
    """What the coordinator needs from a provider's OAuth endpoints."""

    def authorize_url(self, state: str) -> str: ...

    def exchange_code(self, code: str) -> OAuthTokens: ...


@dataclass(frozen=True)
class AuthSession:
    """Credential set held by the caller between requests."""

    spotify: OAuthTokens | None = None
    youtube: OAuthTokens | None = None

    @property
    def is_complete(self) -> bool:
        return self.spotify is not None and self.youtube is not None

    def get(self, provider: Provider) -> OAuthTokens | None:
        return self.spotify if provider is Provider.SPOTIFY else self.youtube

    def with_tokens(self, provider: Provider, tokens: OAuthTokens | None) -> "AuthSession":
        if provider is Provider.SPOTIFY:
            return replace(self, spotify=tokens)
        return replace(self, youtube=tokens)


def parse_callback_url(url: str) -> tuple[str, str | None]:
    """Pull (code, state) out of a provider redirect URL.

    Raises:
        AuthorizationError: If the provider reported an error or sent no code.
    """
    query = parse_qs(urlparse(url.strip()).query)
    if "error" in query:
        raise AuthorizationError(f"Authorization denied: {query['error'][0]}")
    codes = query.get("code")
    if not codes or not codes[0]:
        raise AuthorizationError("No authorization code in redirect URL")
    states = query.get("state")
    return codes[0], states[0] if states else None


class AuthCoordinator:
    """Begins and completes authorization legs for both providers."""

    def __init__(
        self, store: CorrelationStore, spotify_auth: ProviderAuth, youtube_auth: ProviderAuth
    ) -> None:
        self._store = store
        self._auth = {Provider.SPOTIFY: spotify_auth, Provider.YOUTUBE: youtube_auth}

    def begin(self, provider: Provider, session: AuthSession) -> tuple[str, str]:
        """Start a leg for provider. Returns (authorize_url, state)."""
        state = self._store.issue_token()
        other_tokens = session.get(provider.other)
        if other_tokens is not None:
            if provider.other is Provider.SPOTIFY:
                self._store.upsert(state, spotify_tokens=other_tokens)
            else:
                self._store.upsert(state, youtube_tokens=other_tokens)
            logger.debug(
                "Parked {} tokens before redirecting to {}", provider.other.value, provider.value
            )
        return self._auth[provider].authorize_url(state), state

    def complete(
        self, provider: Provider, code: str, state: str | None, session: AuthSession
    ) -> AuthSession:
        """Finish a leg: exchange code and restore the other provider's parked tokens."""
        if not code:
            raise AuthorizationError(f"No authorization code received from {provider.value}")

        tokens = self._auth[provider].exchange_code(code)
        logger.info("{} authorized", provider.value.capitalize())

        result = session.with_tokens(provider, tokens)
        if state:
            entry = self._store.read(state)
            if entry is None:
                logger.debug("No parked tokens for this {} callback", provider.value)
            else:
                parked = (
                    entry.spotify_tokens
                    if provider.other is Provider.SPOTIFY
                    else entry.youtube_tokens
                )
                if parked is not None:
                    result = result.with_tokens(provider.other, parked)
                    logger.debug("Restored parked {} tokens", provider.other.value)
            self._store.clear(state)
        return result
