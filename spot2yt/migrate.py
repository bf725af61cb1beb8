"""Playlist migration: Spotify tracks -> a new YouTube playlist.

A run reads the whole source playlist, creates the destination playlist
once, then walks the tracks strictly in order, one search-and-add at a
time, pausing between tracks. Failures before the loop starts abort the
run with MigrationSetupError. Once the loop starts, every per-track
failure is recorded in the outcome and the loop carries on.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from spot2yt.config import MIN_TRACK_DELAY
from spot2yt.logging import logger
from spot2yt.models import (
    AddResult,
    DestinationPlaylist,
    FailedTrack,
    MigrationOutcome,
    PlaylistInfo,
    Track,
    validate_privacy,
)
from spot2yt.quota import QuotaEstimate, estimate_migration_cost
from spot2yt.youtube import ErrorCategory, classify_error

DEFAULT_DESCRIPTION = "Playlist migrated from Spotify: {}"
UNKNOWN_ERROR = "Unknown error"


class SourceCatalog(Protocol):
    def get_user_playlists(self) -> list[PlaylistInfo]: ...

    def get_playlist_info(self, playlist_id: str) -> PlaylistInfo: ...

    def get_playlist_tracks(self, playlist_id: str) -> list[Track]: ...


class DestinationCatalog(Protocol):
    def create_playlist(
        self, title: str, description: str = "", privacy: str = "private"
    ) -> DestinationPlaylist: ...

    def search_and_add(self, playlist_id: str, track_name: str, artist_name: str) -> AddResult: ...


class MigrationSetupError(Exception):
    """Raised when a run cannot start: source read or playlist creation failed.

    Attributes:
        stage: "source" or "destination".
        category: ErrorCategory of the underlying failure, so a quota failure
            here can be told apart from per-track quota failures in the outcome.
    """

    def __init__(self, message: str, stage: str, category: ErrorCategory) -> None:
        super().__init__(message)
        self.stage = stage
        self.category = category


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted once per processed track."""

    index: int
    total: int
    track: Track
    success: bool
    progress: int
    video_id: str | None = None
    error: str | None = None


ProgressCallback = Callable[[ProgressEvent], None]


def calculate_progress(current: int, total: int) -> int:
    """Percentage of tracks done, rounded to the nearest integer."""
    if total == 0:
        return 0
    return round(current / total * 100)


def format_elapsed(seconds: float) -> str:
    """Format a duration as "2m 5s" or "42s"."""
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_report(outcome: MigrationOutcome) -> str:
    """Human-readable summary listing every failed track and why it failed."""
    rule = "=" * 60
    lines = [
        rule,
        "MIGRATION SUMMARY",
        rule,
        f"Playlist: {outcome.playlist_name}",
        f"Total tracks: {outcome.total_tracks}",
        f"Added: {outcome.successfully_added}",
        f"Failed: {outcome.failed}",
        f"Elapsed: {format_elapsed(outcome.elapsed_seconds)}",
        f"YouTube playlist: {outcome.youtube_playlist_url}",
        rule,
    ]
    if outcome.failed_tracks:
        lines.append("")
        lines.append("Failed tracks:")
        for i, failed in enumerate(outcome.failed_tracks, 1):
            lines.append(f"  {i}. {failed.track} - {failed.artist}")
            lines.append(f"     Reason: {failed.reason}")
    return "\n".join(lines)


class Migrator:
    """Drives one-shot playlist migrations.

    Args:
        source: Spotify-side catalog.
        destination: YouTube-side catalog.
        track_delay: Seconds to wait between tracks; values below one second
            are raised to one second.
        sleep: Sleep function, injectable for tests.
        clock: Monotonic clock used for elapsed time.
    """

    def __init__(
        self,
        source: SourceCatalog,
        destination: DestinationCatalog,
        track_delay: float = MIN_TRACK_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._destination = destination
        if track_delay < MIN_TRACK_DELAY:
            logger.debug("track_delay {}s raised to {}s", track_delay, MIN_TRACK_DELAY)
        self._track_delay = max(track_delay, MIN_TRACK_DELAY)
        self._sleep = sleep
        self._clock = clock

    @property
    def track_delay(self) -> float:
        return self._track_delay

    def list_source_playlists(self) -> list[PlaylistInfo]:
        """List the user's Spotify playlists."""
        return self._source.get_user_playlists()

    def estimate(self, source_playlist_id: str, app_key_searches: bool = False) -> QuotaEstimate:
        """Estimate YouTube quota for migrating a playlist, from its advisory track count."""
        info = self._source.get_playlist_info(source_playlist_id)
        return estimate_migration_cost(info.track_count, app_key_searches=app_key_searches)

    def _read_source(self, playlist_id: str) -> tuple[PlaylistInfo, list[Track]]:
        try:
            info = self._source.get_playlist_info(playlist_id)
            logger.info("Found Spotify playlist '{}' ({} tracks)", info.name, info.track_count)
            tracks = self._source.get_playlist_tracks(playlist_id)
        except Exception as e:
            api_error = classify_error(e)
            raise MigrationSetupError(
                f"Could not read Spotify playlist {playlist_id}: {e}",
                stage="source",
                category=api_error.category,
            ) from e
        logger.info("Loaded {} tracks from Spotify", len(tracks))
        return info, tracks

    def _create_destination(self, info: PlaylistInfo, privacy: str) -> DestinationPlaylist:
        description = info.description or DEFAULT_DESCRIPTION.format(info.name)
        try:
            return self._destination.create_playlist(info.name, description, privacy)
        except Exception as e:
            api_error = classify_error(e)
            raise MigrationSetupError(
                f"Could not create YouTube playlist: {api_error.message}",
                stage="destination",
                category=api_error.category,
            ) from e

    def _process_track(self, playlist_id: str, track: Track) -> AddResult:
        try:
            return self._destination.search_and_add(playlist_id, track.name, track.artist)
        except Exception as e:
            api_error = classify_error(e)
            return AddResult(success=False, error=str(e), category=api_error.category.name)

    def migrate(
        self,
        source_playlist_id: str,
        privacy: str = "private",
        on_progress: ProgressCallback | None = None,
    ) -> MigrationOutcome:
        """Migrate one Spotify playlist into a new YouTube playlist.

        Args:
            source_playlist_id: Spotify playlist ID.
            privacy: private, public or unlisted.
            on_progress: Called after each track with a ProgressEvent.

        Returns:
            MigrationOutcome covering every source track.

        Raises:
            MigrationSetupError: If the source playlist cannot be read or the
                destination playlist cannot be created.
            ValueError: If privacy is not a valid privacy status.
        """
        validate_privacy(privacy)
        started = self._clock()

        info, tracks = self._read_source(source_playlist_id)
        destination = self._create_destination(info, privacy)

        outcome = MigrationOutcome(
            playlist_name=info.name,
            total_tracks=len(tracks),
            youtube_playlist_id=destination.id,
            youtube_playlist_url=destination.url,
        )

        total = len(tracks)
        for index, track in enumerate(tracks):
            progress = calculate_progress(index + 1, total)
            logger.info(
                "[{}/{}] ({}%) {} - {}", index + 1, total, progress, track.name, track.artist
            )

            result = self._process_track(destination.id, track)
            if result.success:
                outcome.record_success()
                logger.debug("  added (video {})", result.video_id)
            else:
                reason = result.error or UNKNOWN_ERROR
                outcome.record_failure(
                    FailedTrack(
                        track=track.name,
                        artist=track.artist,
                        reason=reason,
                        video_id=result.video_id,
                        category=result.category,
                    )
                )
                logger.warning("  failed: {}", reason)

            if on_progress is not None:
                event = ProgressEvent(
                    index=index,
                    total=total,
                    track=track,
                    success=result.success,
                    progress=progress,
                    video_id=result.video_id,
                    error=None if result.success else (result.error or UNKNOWN_ERROR),
                )
                try:
                    on_progress(event)
                except Exception as e:
                    logger.warning("Progress callback failed: {}", e)

            if index < total - 1:
                self._sleep(self._track_delay)

        outcome.elapsed_seconds = self._clock() - started
        logger.info(
            "Migrated '{}': {}/{} added, {} failed in {}",
            outcome.playlist_name,
            outcome.successfully_added,
            outcome.total_tracks,
            outcome.failed,
            format_elapsed(outcome.elapsed_seconds),
        )
        return outcome
