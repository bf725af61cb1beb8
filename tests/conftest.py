"""Shared pytest fixtures for spot2yt tests."""

import json
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest
from googleapiclient.errors import HttpError

from spot2yt import youtube
from spot2yt.models import OAuthTokens, PlaylistInfo, Track

# --- HTTP Error Fixtures ---


def make_http_error(status: int, reason: str = "unknown") -> HttpError:
    """Create a mock HttpError with the given status and reason.

    Args:
        status: HTTP status code (e.g., 400, 403, 404, 429, 500)
        reason: Error reason string (e.g., "quotaExceeded", "forbidden")
    """
    resp = MagicMock()
    resp.status = status
    resp.reason = f"Error: {reason}"
    content = json.dumps({"error": {"errors": [{"reason": reason}]}}).encode()
    return HttpError(resp, content, uri="https://www.googleapis.com/youtube/v3/test")


@pytest.fixture(autouse=True)
def no_throttle() -> Any:
    """Disable the write throttle so tests never sleep."""
    previous = youtube.get_throttle_delay()
    youtube.set_throttle_delay(0)
    yield
    youtube.set_throttle_delay(previous)


@pytest.fixture
def quota_exceeded_error() -> HttpError:
    return make_http_error(403, "quotaExceeded")


@pytest.fixture
def forbidden_error() -> HttpError:
    """403 that is not quota, e.g. a region-blocked video."""
    return make_http_error(403, "forbidden")


@pytest.fixture
def not_found_error() -> HttpError:
    return make_http_error(404, "playlistNotFound")


@pytest.fixture
def rate_limit_error() -> HttpError:
    return make_http_error(429, "rateLimitExceeded")


@pytest.fixture
def server_error() -> HttpError:
    return make_http_error(503, "backendError")


# --- Mock YouTube services ---


def search_response(*video_ids: str) -> dict[str, Any]:
    """search.list response body with the given video IDs."""
    return {"items": [{"id": {"kind": "youtube#video", "videoId": v}} for v in video_ids]}


@pytest.fixture
def search_results() -> Callable[..., dict[str, Any]]:
    """Factory for search.list response bodies."""
    return search_response


@pytest.fixture
def user_service() -> MagicMock:
    """YouTube Resource bound to user OAuth credentials."""
    service = MagicMock()
    service.playlists().insert().execute.return_value = {"id": "PLnew123"}
    service.playlistItems().insert().execute.return_value = {"id": "PLI123"}
    service.search().list().execute.return_value = search_response("userVid")
    return service


@pytest.fixture
def app_service() -> MagicMock:
    """YouTube Resource bound to an API key."""
    service = MagicMock()
    service.search().list().execute.return_value = search_response("appVid")
    return service


# --- Sample data ---


@pytest.fixture
def tokens() -> OAuthTokens:
    return OAuthTokens(
        access_token="access-abc",
        token_type="Bearer",
        expires_in=3600,
        refresh_token="refresh-xyz",
        scope="playlist-read-private",
    )


@pytest.fixture
def road_trip() -> PlaylistInfo:
    return PlaylistInfo(
        id="37i9dQZF1DXcBWIGoYBM5M", name="Road Trip", description="", track_count=3
    )


@pytest.fixture
def road_trip_tracks() -> list[Track]:
    return [
        Track("Song A", "Artist X"),
        Track("Song B", "Artist Y"),
        Track("Song C", "Artist Z"),
    ]


def spotify_track_item(name: str, artist: str, album: str = "Album") -> dict[str, Any]:
    """Playlist track item as returned by the Spotify Web API."""
    return {"track": {"name": name, "artists": [{"name": artist}], "album": {"name": album}}}


@pytest.fixture
def spotify_item() -> Callable[..., dict[str, Any]]:
    """Factory for Spotify playlist track items."""
    return spotify_track_item
