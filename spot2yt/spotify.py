"""Spotify Web API client (source side) and the Spotify authorization leg."""

from collections.abc import Callable, Iterator
from typing import Any

import requests
import spotipy  # type: ignore[import-untyped]
from spotipy.cache_handler import MemoryCacheHandler  # type: ignore[import-untyped]
from spotipy.exceptions import SpotifyException  # type: ignore[import-untyped]
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError  # type: ignore[import-untyped]

from spot2yt.config import SpotifyConfig
from spot2yt.logging import logger
from spot2yt.models import OAuthTokens, PlaylistInfo, Track

SCOPES = [
    "user-read-private",
    "user-read-email",
    "playlist-read-private",
    "playlist-read-collaborative",
]

PLAYLISTS_PAGE_SIZE = 50
TRACKS_PAGE_SIZE = 100
UNKNOWN_ARTIST = "Unknown Artist"
REQUEST_TIMEOUT = 30

PLAYLIST_INFO_FIELDS = "id,name,description,tracks(total)"
TRACK_FIELDS = "items(track(name,artists(name),album(name))),next"


class SpotifyAPIError(Exception):
    """Spotify request failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SpotifyClient:
    """Read-only access to the current user's playlists.

    spotipy retries 429 and 5xx responses itself; whatever still fails is
    raised as SpotifyAPIError.

    Args:
        access_token: User OAuth access token.
        client: Optional spotipy client (one is built from the token if omitted).
    """

    def __init__(self, access_token: str, client: spotipy.Spotify | None = None) -> None:
        self._sp = client or spotipy.Spotify(auth=access_token, requests_timeout=REQUEST_TIMEOUT)

    def _call(self, what: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except SpotifyException as e:
            logger.debug("Spotify {} -> {}: {}", what, e.http_status, e.msg)
            raise SpotifyAPIError(
                f"Spotify API error {e.http_status} on {what}: {e.msg}", status_code=e.http_status
            ) from e
        except requests.RequestException as e:
            raise SpotifyAPIError(f"Network error calling Spotify ({what}): {e}") from e

    def _drain(self, what: str, page: dict[str, Any] | None) -> Iterator[dict[str, Any]]:
        """Yield items from page and every page after it, following next links."""
        while page:
            yield from page.get("items") or []
            page = self._call(what, self._sp.next, page) if page.get("next") else None

    def get_user_playlists(self) -> list[PlaylistInfo]:
        """List every playlist of the current user."""
        first = self._call(
            "me/playlists", self._sp.current_user_playlists, limit=PLAYLISTS_PAGE_SIZE
        )
        playlists = [
            PlaylistInfo(
                id=item["id"],
                name=item.get("name", ""),
                description=item.get("description") or "",
                track_count=(item.get("tracks") or {}).get("total", 0),
            )
            for item in self._drain("me/playlists", first)
            if item
        ]
        logger.debug("Fetched {} Spotify playlists", len(playlists))
        return playlists

    def get_playlist_info(self, playlist_id: str) -> PlaylistInfo:
        """Get a playlist's name, description and advisory track count."""
        data = self._call(
            f"playlists/{playlist_id}",
            self._sp.playlist,
            playlist_id,
            fields=PLAYLIST_INFO_FIELDS,
        )
        return PlaylistInfo(
            id=data.get("id", playlist_id),
            name=data.get("name", ""),
            description=data.get("description") or "",
            track_count=(data.get("tracks") or {}).get("total", 0),
        )

    def get_playlist_tracks(self, playlist_id: str) -> list[Track]:
        """Get every track of a playlist in playlist order.

        Pages of 100 are fetched until Spotify stops returning a next link.
        Entries without track data (removed tracks, some local files) are skipped.
        """
        what = f"playlists/{playlist_id}/tracks"
        first = self._call(
            what,
            self._sp.playlist_items,
            playlist_id,
            fields=TRACK_FIELDS,
            limit=TRACKS_PAGE_SIZE,
            additional_types=("track",),
        )
        tracks = [t for t in map(_parse_track, self._drain(what, first)) if t]
        logger.debug("Fetched {} tracks from Spotify playlist {}", len(tracks), playlist_id)
        return tracks


def _parse_track(item: dict[str, Any]) -> Track | None:
    data = item.get("track") if item else None
    if not data or not data.get("name"):
        return None
    artists = data.get("artists") or []
    artist = (artists[0].get("name") if artists else None) or UNKNOWN_ARTIST
    album = (data.get("album") or {}).get("name") or None
    return Track(name=data["name"], artist=artist, album=album)


class SpotifyAuth:
    """Spotify side of the authorization handshake (authorization code flow).

    Tokens are kept in memory only; the caller decides where they are stored.
    """

    def __init__(self, spotify: SpotifyConfig, oauth: SpotifyOAuth | None = None) -> None:
        self._oauth = oauth or SpotifyOAuth(
            client_id=spotify.client_id,
            client_secret=spotify.client_secret,
            redirect_uri=spotify.redirect_uri,
            scope=" ".join(SCOPES),
            show_dialog=True,
            open_browser=False,
            requests_timeout=REQUEST_TIMEOUT,
            cache_handler=MemoryCacheHandler(),
        )

    def authorize_url(self, state: str) -> str:
        url: str = self._oauth.get_authorize_url(state=state)
        return url

    def _token_request(
        self, what: str, func: Callable[..., Any], *args: Any, **kwargs: Any
    ) -> Any:
        try:
            return func(*args, **kwargs)
        except SpotifyOauthError as e:
            raise SpotifyAPIError(
                f"Spotify {what} failed: {e.error_description or e.error or e}"
            ) from e
        except requests.RequestException as e:
            raise SpotifyAPIError(f"Network error calling Spotify accounts: {e}") from e

    def exchange_code(self, code: str) -> OAuthTokens:
        """Exchange an authorization code for tokens."""
        # as_dict=False returns only the access token; the full token sits in the cache
        self._token_request(
            "token request",
            self._oauth.get_access_token,
            code,
            as_dict=False,
            check_cache=False,
        )
        payload = self._oauth.get_cached_token()
        if not payload:
            raise SpotifyAPIError("Spotify token request returned no token")
        tokens: OAuthTokens = OAuthTokens.model_validate(payload)
        return tokens

    def refresh(self, tokens: OAuthTokens) -> OAuthTokens:
        """Return fresh tokens; Spotify may omit the refresh token, so keep the old one."""
        if not tokens.refresh_token:
            raise ValueError("Spotify tokens have no refresh token; run 'spot2yt login' again")
        payload = dict(
            self._token_request(
                "token refresh", self._oauth.refresh_access_token, tokens.refresh_token
            )
        )
        payload.setdefault("refresh_token", tokens.refresh_token)
        refreshed: OAuthTokens = OAuthTokens.model_validate(payload)
        return refreshed
