"""YouTube Data API client: playlist creation, search and item insertion.

Two credential contexts are kept side by side. The user's OAuth token is
required for anything that mutates their account (creating playlists,
inserting items). An optional app-level API key is preferred for searches
because search.list costs 100 units and the key has its own quota.
"""

import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import Resource, build
from googleapiclient.errors import HttpError
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from spot2yt.config import GoogleConfig
from spot2yt.logging import logger
from spot2yt.models import AddResult, DestinationPlaylist, OAuthTokens, validate_privacy
from spot2yt.quota import get_time_until_reset, record_quota

SCOPES = ["https://www.googleapis.com/auth/youtube.force-ssl"]
AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"
MUSIC_CATEGORY_ID = "10"
DEFAULT_SEARCH_SUFFIX = "official audio"
NO_MATCH_REASON = "no match found"


class CredentialRole(str, Enum):
    """Which credential a request is made with."""

    APP = "app"  # API key, read-only, own quota
    USER = "user"  # user's OAuth token, required for mutations


DEFAULT_SEARCH_FALLBACK: tuple[CredentialRole, ...] = (CredentialRole.APP, CredentialRole.USER)


class ErrorCategory(Enum):
    """How a failed YouTube call is handled and reported."""

    RATE_LIMITED = auto()
    QUOTA_EXCEEDED = auto()
    NOT_FOUND = auto()
    PERMISSION_DENIED = auto()
    INVALID_REQUEST = auto()
    SERVER_ERROR = auto()
    NETWORK_ERROR = auto()
    UNKNOWN = auto()


@dataclass
class APIError:
    """A classified failure with a hint for the user."""

    category: ErrorCategory
    message: str
    retryable: bool
    user_action: str
    status_code: int | None = None
    reason: str | None = None

    def __str__(self) -> str:
        return f"{self.category.name}: {self.message}"


QUOTA_REASONS = ("quotaExceeded", "dailyLimitExceeded")
QUOTA_ACTION = "Wait for the reset at midnight PT or authorize another Google account."
UNKNOWN_ACTION = "Run with --verbose and check the log."

# status -> (category, retryable, label, user action); any 5xx uses SERVER_ERROR
_HTTP_STATUS: dict[int, tuple[ErrorCategory, bool, str, str]] = {
    400: (
        ErrorCategory.INVALID_REQUEST,
        False,
        "Invalid request",
        "The matched video may be unavailable or age-restricted.",
    ),
    403: (
        ErrorCategory.PERMISSION_DENIED,
        False,
        "Permission denied",
        "The video is blocked in your region or cannot be added by its owner's choice.",
    ),
    404: (
        ErrorCategory.NOT_FOUND,
        False,
        "Not found",
        "The video or the destination playlist no longer exists.",
    ),
    429: (
        ErrorCategory.RATE_LIMITED,
        True,
        "Rate limited by YouTube",
        "Writes are slowed down and the call is retried.",
    ),
}
_SERVER_ERROR = (
    ErrorCategory.SERVER_ERROR,
    True,
    "YouTube server error",
    "Temporary YouTube outage; the call is retried.",
)


class QuotaExceededError(Exception):
    """The user's daily YouTube quota is spent (403 quotaExceeded).

    Retrying is pointless until the quota resets at midnight PT.
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(
            f"YouTube daily quota exceeded during {operation}. "
            f"Quota resets at midnight Pacific Time (in {get_time_until_reset()}); "
            "wait for the reset or authorize a different Google account."
        )


def _error_reason(exc: HttpError) -> str | None:
    """First ``reason`` from the error body, e.g. "quotaExceeded"."""
    try:
        body = json.loads(exc.content.decode("utf-8"))
    except (json.JSONDecodeError, AttributeError, UnicodeDecodeError):
        return None
    errors = body.get("error", {}).get("errors", []) if isinstance(body, dict) else []
    if not errors:
        return None
    reason: str | None = errors[0].get("reason")
    return reason


def _is_quota_exceeded(exc: HttpError) -> bool:
    return exc.resp.status == 403 and _error_reason(exc) in QUOTA_REASONS


def classify_error(exc: BaseException) -> APIError:
    """Map any exception raised around a YouTube call onto an APIError."""
    if isinstance(exc, QuotaExceededError):
        return APIError(
            ErrorCategory.QUOTA_EXCEEDED,
            str(exc),
            retryable=False,
            user_action=QUOTA_ACTION,
            status_code=403,
            reason="quotaExceeded",
        )

    if isinstance(exc, HttpError):
        status = exc.resp.status
        detail = exc.reason or ""
        error_reason = _error_reason(exc)
        if status == 403 and error_reason in QUOTA_REASONS:
            return APIError(
                ErrorCategory.QUOTA_EXCEEDED,
                f"Daily quota exceeded. Resets in {get_time_until_reset()} (midnight PT).",
                retryable=False,
                user_action=QUOTA_ACTION,
                status_code=status,
                reason=error_reason,
            )
        if status >= 500:
            category, retryable, label, action = _SERVER_ERROR
        elif status in _HTTP_STATUS:
            category, retryable, label, action = _HTTP_STATUS[status]
        else:
            category, retryable, label, action = (
                ErrorCategory.UNKNOWN,
                False,
                "HTTP error",
                UNKNOWN_ACTION,
            )
        return APIError(
            category,
            f"{label} ({status}): {detail}",
            retryable=retryable,
            user_action=action,
            status_code=status,
            reason=error_reason,
        )

    if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        return APIError(
            ErrorCategory.NETWORK_ERROR,
            f"Network error: {exc}",
            retryable=True,
            user_action="Check the connection; the call is retried.",
        )

    return APIError(ErrorCategory.UNKNOWN, str(exc), retryable=False, user_action=UNKNOWN_ACTION)


class Throttler:
    """Spaces out playlist writes so bursts do not trip YouTube's rate limit.

    The delay doubles (up to a cap) each time a 429 comes back.
    """

    def __init__(self, delay_ms: int = 200) -> None:
        self._delay_ms = delay_ms
        self._last_write = 0.0

    @property
    def delay_ms(self) -> int:
        return self._delay_ms

    @delay_ms.setter
    def delay_ms(self, value: int) -> None:
        self._delay_ms = max(value, 0)

    def wait(self) -> None:
        """Block until delay_ms has passed since the previous write."""
        if self._delay_ms > 0:
            remaining = self._delay_ms / 1000 - (time.monotonic() - self._last_write)
            if remaining > 0:
                time.sleep(remaining)
        self._last_write = time.monotonic()

    def increase_delay(self, factor: float = 2.0, max_ms: int = 5000) -> None:
        """Back off after a rate limit response."""
        self._delay_ms = min(int(max(self._delay_ms, 100) * factor), max_ms)
        logger.warning("Write throttle raised to {}ms after rate limiting", self._delay_ms)


_throttler = Throttler()


def set_throttle_delay(delay_ms: int) -> None:
    """Set the pause between YouTube writes, in milliseconds (0 disables)."""
    _throttler.delay_ms = delay_ms
    logger.debug("YouTube write throttle: {}ms", delay_ms)


def get_throttle_delay() -> int:
    return _throttler.delay_ms


def _is_retryable_error(exc: BaseException) -> bool:
    """Retry predicate for tenacity: 429, 5xx and network failures only."""
    api_error = classify_error(exc)
    category = api_error.category
    if category is ErrorCategory.QUOTA_EXCEEDED:
        logger.error("{} {}", api_error.message, api_error.user_action)
        return False
    if category is ErrorCategory.RATE_LIMITED:
        _throttler.increase_delay()
    if api_error.retryable:
        logger.warning("{}; retrying", api_error.message)
    return api_error.retryable


# Up to 5 attempts; waits grow from 2s to 60s with jitter
api_retry = retry(
    retry=retry_if_exception(_is_retryable_error),
    stop=stop_after_attempt(5),
    wait=wait_exponential_jitter(initial=2, max=60, jitter=2),
    reraise=True,
)


def _is_retryable_insert(exc: BaseException) -> bool:
    """Retry predicate for inserts: only 429, which YouTube rejects before writing.

    A timeout or 5xx may arrive after the row was written, so retrying could
    create a second playlist or append the same video twice.
    """
    api_error = classify_error(exc)
    if api_error.category is not ErrorCategory.RATE_LIMITED:
        return False
    _throttler.increase_delay()
    logger.warning("{}; retrying", api_error.message)
    return True


insert_retry = retry(
    retry=retry_if_exception(_is_retryable_insert),
    stop=stop_after_attempt(5),
    wait=wait_exponential_jitter(initial=2, max=60, jitter=2),
    reraise=True,
)


def _execute(request: Any, operation: str) -> Any:
    """Run a request, turning 403 quotaExceeded into QuotaExceededError."""
    try:
        return request.execute()
    except HttpError as e:
        if _is_quota_exceeded(e):
            raise QuotaExceededError(operation) from e
        raise


def build_search_query(track: str, artist: str, suffix: str = DEFAULT_SEARCH_SUFFIX) -> str:
    """Build the free-text search query for a track.

    The suffix biases results toward studio recordings over live and cover versions.
    """
    return " ".join(part for part in f"{track} {artist} {suffix}".split() if part)


@insert_retry  # type: ignore[untyped-decorator]
def create_playlist(
    service: Resource, title: str, description: str = "", privacy: str = "private"
) -> str:
    """Insert a playlist on the authorized account and return its ID. Costs 50 units."""
    _throttler.wait()
    body = {
        "snippet": {"title": title, "description": description},
        "status": {"privacyStatus": privacy},
    }
    response = _execute(
        service.playlists().insert(part="snippet,status", body=body), "playlists.insert"
    )
    record_quota("playlists.insert")
    playlist_id: str = response["id"]
    return playlist_id


@insert_retry  # type: ignore[untyped-decorator]
def add_video_to_playlist(service: Resource, playlist_id: str, video_id: str) -> str:
    """Append video_id at the end of the playlist; returns the playlistItem ID. Costs 50 units."""
    _throttler.wait()
    body = {
        "snippet": {
            "playlistId": playlist_id,
            "resourceId": {"kind": "youtube#video", "videoId": video_id},
        }
    }
    response = _execute(
        service.playlistItems().insert(part="snippet", body=body), "playlistItems.insert"
    )
    record_quota("playlistItems.insert")
    item_id: str = response["id"]
    return item_id


@api_retry  # type: ignore[untyped-decorator]
def search_video_id(service: Resource, query: str) -> str | None:
    """Return the first Music-category video for query, or None. (100 quota units)"""
    response = _execute(
        service.search().list(
            part="snippet",
            q=query,
            type="video",
            videoCategoryId=MUSIC_CATEGORY_ID,
            maxResults=1,
        ),
        "search.list",
    )
    items = response.get("items") or []
    if not items:
        return None
    video_id: str | None = items[0].get("id", {}).get("videoId")
    return video_id


class YouTubeClient:
    """Destination side of a migration.

    Args:
        user_service: YouTube Resource bound to the user's OAuth credentials.
        app_service: Optional Resource bound to an API key, used for searches only.
        fallback: Credential roles to try for searches, in order.
        search_suffix: Appended to every search query.
    """

    def __init__(
        self,
        user_service: Resource,
        app_service: Resource | None = None,
        fallback: tuple[CredentialRole, ...] = DEFAULT_SEARCH_FALLBACK,
        search_suffix: str = DEFAULT_SEARCH_SUFFIX,
    ) -> None:
        if not fallback:
            raise ValueError("fallback needs at least one credential role")
        self._services: dict[CredentialRole, Resource | None] = {
            CredentialRole.USER: user_service,
            CredentialRole.APP: app_service,
        }
        self._fallback = tuple(CredentialRole(r) for r in fallback)
        self._search_suffix = search_suffix

    @classmethod
    def from_tokens(
        cls,
        tokens: OAuthTokens,
        google: GoogleConfig,
        fallback: tuple[CredentialRole, ...] = DEFAULT_SEARCH_FALLBACK,
        search_suffix: str = DEFAULT_SEARCH_SUFFIX,
    ) -> "YouTubeClient":
        """Build a client from the user's tokens and the app's Google config."""
        creds = credentials_from_tokens(tokens, google)
        user_service = build("youtube", "v3", credentials=creds)
        app_service = None
        if google.api_key:
            app_service = build("youtube", "v3", developerKey=google.api_key)
        return cls(user_service, app_service, fallback=fallback, search_suffix=search_suffix)

    @property
    def fallback(self) -> tuple[CredentialRole, ...]:
        return self._fallback

    def create_playlist(
        self, title: str, description: str = "", privacy: str = "private"
    ) -> DestinationPlaylist:
        """Create the destination playlist with the user's credentials."""
        validate_privacy(privacy)
        playlist_id = create_playlist(
            self._services[CredentialRole.USER], title, description, privacy
        )
        playlist = DestinationPlaylist.from_id(playlist_id)
        logger.info("Created YouTube playlist '{}': {}", title, playlist.url)
        return playlist

    def search_video(self, query: str) -> str | None:
        """Search with each credential role in fallback order.

        An empty result is final; only a failed request moves on to the next
        role. When every role fails the track counts as unmatched, except that a
        quota failure on the last role is raised so callers can report it.
        """
        last_error: Exception | None = None
        for role in self._fallback:
            service = self._services.get(role)
            if service is None:
                logger.debug("No {} credential bound, skipping for search", role.value)
                continue
            try:
                video_id = search_video_id(service, query)
            except Exception as e:
                last_error = e
                logger.warning(
                    "Search with {} credential failed for '{}': {}", role.value, query, e
                )
                continue
            record_quota("search.list", app_key=role is CredentialRole.APP)
            logger.debug("Search '{}' via {} -> {}", query, role.value, video_id)
            return video_id

        if isinstance(last_error, QuotaExceededError):
            raise last_error
        return None

    def add_video_to_playlist(self, playlist_id: str, video_id: str) -> str:
        """Append a video using the user's credentials. Never uses the API key."""
        return add_video_to_playlist(self._services[CredentialRole.USER], playlist_id, video_id)

    def search_and_add(self, playlist_id: str, track_name: str, artist_name: str) -> AddResult:
        """Find the first match for a track and append it to the playlist."""
        query = build_search_query(track_name, artist_name, self._search_suffix)
        try:
            video_id = self.search_video(query)
        except QuotaExceededError as e:
            return AddResult(
                success=False, error=str(e), category=ErrorCategory.QUOTA_EXCEEDED.name
            )

        if not video_id:
            return AddResult(
                success=False, error=NO_MATCH_REASON, category=ErrorCategory.NOT_FOUND.name
            )

        try:
            self.add_video_to_playlist(playlist_id, video_id)
        except Exception as e:
            api_error = classify_error(e)
            if api_error.category == ErrorCategory.QUOTA_EXCEEDED:
                error = api_error.message
            else:
                error = f"matched {video_id} but could not add to playlist: {api_error.message}"
            logger.warning("Could not add {} to {}: {}", video_id, playlist_id, api_error)
            return AddResult(
                success=False, video_id=video_id, error=error, category=api_error.category.name
            )

        return AddResult(success=True, video_id=video_id)


class YouTubeAuth:
    """Google side of the authorization handshake."""

    def __init__(self, google: GoogleConfig) -> None:
        self._google = google

    def _flow(self) -> Flow:
        client_config = {
            "web": {
                "client_id": self._google.client_id,
                "client_secret": self._google.client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [self._google.redirect_uri],
            }
        }
        # The exchange happens on a fresh Flow, so no PKCE verifier can be carried over
        return Flow.from_client_config(
            client_config,
            scopes=SCOPES,
            redirect_uri=self._google.redirect_uri,
            autogenerate_code_verifier=False,
        )

    def authorize_url(self, state: str) -> str:
        """Build the consent URL. offline + consent guarantees a refresh token."""
        url, _ = self._flow().authorization_url(
            access_type="offline", prompt="consent", state=state
        )
        url_str: str = url
        return url_str

    def exchange_code(self, code: str) -> OAuthTokens:
        """Exchange an authorization code for tokens."""
        flow = self._flow()
        token: dict[str, Any] = flow.fetch_token(code=code)
        scope = token.get("scope", "")
        if isinstance(scope, list):
            scope = " ".join(scope)
        logger.debug(
            "YouTube tokens received (refresh token: {})", bool(token.get("refresh_token"))
        )
        return OAuthTokens(
            access_token=token["access_token"],
            token_type=token.get("token_type", "Bearer"),
            expires_in=int(token.get("expires_in", 3600)),
            refresh_token=token.get("refresh_token"),
            scope=scope,
        )

    def refresh(self, tokens: OAuthTokens) -> OAuthTokens:
        """Return fresh tokens; the refresh token is kept when Google omits it."""
        if not tokens.refresh_token:
            raise ValueError("YouTube tokens have no refresh token; run 'spot2yt login' again")
        creds = credentials_from_tokens(tokens, self._google)
        creds.refresh(Request())
        expires_in = tokens.expires_in
        if creds.expiry is not None:
            expiry = creds.expiry.replace(tzinfo=timezone.utc)
            expires_in = max(0, int((expiry - datetime.now(timezone.utc)).total_seconds()))
        return OAuthTokens(
            access_token=creds.token,
            token_type=tokens.token_type,
            expires_in=expires_in,
            refresh_token=creds.refresh_token or tokens.refresh_token,
            scope=tokens.scope,
        )


def credentials_from_tokens(tokens: OAuthTokens, google: GoogleConfig) -> Credentials:
    """Bind stored tokens to google-auth Credentials."""
    return Credentials(
        token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_uri=TOKEN_URI,
        client_id=google.client_id,
        client_secret=google.client_secret,
        scopes=tokens.scope.split() if tokens.scope else SCOPES,
    )
