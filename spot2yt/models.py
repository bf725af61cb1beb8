"""Data models for spot2yt."""

import re
import time
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel

Visibility = Literal["private", "public", "unlisted"]
VISIBILITIES: tuple[str, ...] = ("private", "public", "unlisted")

YOUTUBE_PLAYLIST_URL = "https://www.youtube.com/playlist?list={}"


def validate_privacy(privacy: str) -> str:
    """Return privacy unchanged if it is a valid YouTube privacy status."""
    if privacy not in VISIBILITIES:
        raise ValueError(f"privacy must be one of {', '.join(VISIBILITIES)}, got '{privacy}'")
    return privacy


@dataclass(frozen=True)
class Track:
    """A track read from the source playlist."""

    name: str
    artist: str
    album: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"name": self.name, "artist": self.artist}
        if self.album:
            d["album"] = self.album
        return d


@dataclass(frozen=True)
class PlaylistInfo:
    """Snapshot of a source playlist.

    track_count comes from the source listing and is only used for display;
    it can disagree with the number of tracks actually returned.
    """

    id: str
    name: str
    description: str = ""
    track_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "track_count": self.track_count,
        }


@dataclass(frozen=True)
class DestinationPlaylist:
    """Playlist created on YouTube for one migration run."""

    id: str
    url: str

    @classmethod
    def from_id(cls, playlist_id: str) -> "DestinationPlaylist":
        return cls(id=playlist_id, url=YOUTUBE_PLAYLIST_URL.format(playlist_id))


@dataclass
class AddResult:
    """Outcome of searching for one track and appending the match."""

    success: bool
    video_id: str | None = None
    error: str | None = None
    category: str | None = None  # ErrorCategory name when classified


@dataclass
class FailedTrack:
    """A track that could not be migrated, with the reason why."""

    track: str
    artist: str
    reason: str
    video_id: str | None = None  # set when a match was found but not added
    category: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"track": self.track, "artist": self.artist, "reason": self.reason}
        if self.video_id:
            d["video_id"] = self.video_id
        if self.category:
            d["category"] = self.category
        return d


@dataclass
class MigrationOutcome:
    """Report for a single migration run.

    Built one track at a time in source order. successfully_added + failed
    always equals the number of tracks processed so far.
    """

    playlist_name: str
    total_tracks: int
    youtube_playlist_id: str
    youtube_playlist_url: str
    successfully_added: int = 0
    failed: int = 0
    failed_tracks: list[FailedTrack] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def processed(self) -> int:
        """Number of tracks handled so far."""
        return self.successfully_added + self.failed

    def record_success(self) -> None:
        self.successfully_added += 1

    def record_failure(self, failure: FailedTrack) -> None:
        self.failed += 1
        self.failed_tracks.append(failure)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON/YAML output."""
        return {
            "playlist_name": self.playlist_name,
            "total_tracks": self.total_tracks,
            "successfully_added": self.successfully_added,
            "failed": self.failed,
            "failed_tracks": [f.to_dict() for f in self.failed_tracks],
            "youtube_playlist_id": self.youtube_playlist_id,
            "youtube_playlist_url": self.youtube_playlist_url,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
        }


class OAuthTokens(BaseModel):  # type: ignore[misc]
    """Token response from a provider's OAuth token endpoint."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int = 3600
    refresh_token: str | None = None
    scope: str = ""


@dataclass
class CorrelationEntry:
    """Tokens parked under a state token while the user authorizes the other provider."""

    spotify_tokens: OAuthTokens | None = None
    youtube_tokens: OAuthTokens | None = None
    timestamp: float = field(default_factory=time.time)


class InvalidPlaylistError(ValueError):
    """Raised when a Spotify playlist URL/ID is invalid."""

    pass


_PLAYLIST_ID_RE = re.compile(r"^[A-Za-z0-9]{10,}$")


def extract_playlist_id(url_or_id: str) -> str:
    """Extract and validate a Spotify playlist ID from a URL, URI or bare ID.

    Args:
        url_or_id: https://open.spotify.com/playlist/<id>, spotify:playlist:<id>, or <id>

    Returns:
        Valid playlist ID

    Raises:
        InvalidPlaylistError: If input is not a valid playlist URL/ID
    """
    url_or_id = url_or_id.strip()
    if not url_or_id:
        raise InvalidPlaylistError("Empty playlist URL/ID")

    playlist_id = url_or_id
    if url_or_id.startswith("spotify:"):
        parts = url_or_id.split(":")
        if len(parts) != 3 or parts[1] != "playlist":
            raise InvalidPlaylistError(f"Not a playlist URI: {url_or_id}")
        playlist_id = parts[2]
    elif "/playlist/" in url_or_id:
        playlist_id = url_or_id.split("/playlist/", 1)[1]
        # Drop ?si=... share suffix and trailing slashes
        playlist_id = playlist_id.split("?")[0].split("#")[0].strip("/")
    elif "/" in url_or_id or ":" in url_or_id:
        raise InvalidPlaylistError(f"No playlist ID found in: {url_or_id}")

    if not _PLAYLIST_ID_RE.match(playlist_id):
        raise InvalidPlaylistError(f"Invalid playlist ID: {playlist_id}")

    return playlist_id
