"""Tests for spot2yt.migrate."""

from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest
from googleapiclient.errors import HttpError

from spot2yt.config import MIN_TRACK_DELAY
from spot2yt.migrate import (
    DEFAULT_DESCRIPTION,
    MigrationSetupError,
    Migrator,
    ProgressEvent,
    calculate_progress,
    format_elapsed,
    format_report,
)
from spot2yt.models import (
    AddResult,
    DestinationPlaylist,
    FailedTrack,
    MigrationOutcome,
    PlaylistInfo,
    Track,
)
from spot2yt.youtube import NO_MATCH_REASON, ErrorCategory, QuotaExceededError, YouTubeClient


@pytest.fixture
def source(road_trip: PlaylistInfo, road_trip_tracks: list[Track]) -> MagicMock:
    src = MagicMock()
    src.get_playlist_info.return_value = road_trip
    src.get_playlist_tracks.return_value = road_trip_tracks
    return src


@pytest.fixture
def destination() -> MagicMock:
    dest = MagicMock()
    dest.create_playlist.return_value = DestinationPlaylist.from_id("PLnew123")
    dest.search_and_add.side_effect = lambda pid, name, artist: AddResult(
        success=True, video_id=f"vid-{name[-1]}"
    )
    return dest


@pytest.fixture
def sleep() -> MagicMock:
    return MagicMock()


@pytest.fixture
def migrator(source: MagicMock, destination: MagicMock, sleep: MagicMock) -> Migrator:
    return Migrator(source, destination, track_delay=1.0, sleep=sleep, clock=lambda: 0.0)


class TestHelpers:
    def test_calculate_progress(self) -> None:
        assert calculate_progress(1, 3) == 33
        assert calculate_progress(2, 3) == 67
        assert calculate_progress(3, 3) == 100

    def test_calculate_progress_empty(self) -> None:
        assert calculate_progress(0, 0) == 0

    def test_format_elapsed_seconds(self) -> None:
        assert format_elapsed(42.7) == "42s"

    def test_format_elapsed_minutes(self) -> None:
        assert format_elapsed(125) == "2m 5s"

    def test_format_report_lists_failures(self) -> None:
        outcome = MigrationOutcome(
            playlist_name="Road Trip",
            total_tracks=3,
            youtube_playlist_id="PLnew123",
            youtube_playlist_url="https://www.youtube.com/playlist?list=PLnew123",
            successfully_added=2,
        )
        outcome.record_failure(
            FailedTrack(track="Song B", artist="Artist Y", reason="no match found")
        )

        text = format_report(outcome)

        assert "Playlist: Road Trip" in text
        assert "Added: 2" in text
        assert "Failed: 1" in text
        assert "1. Song B - Artist Y" in text
        assert "Reason: no match found" in text

    def test_format_report_no_failures(self) -> None:
        outcome = MigrationOutcome(
            playlist_name="Empty",
            total_tracks=0,
            youtube_playlist_id="PL1",
            youtube_playlist_url="https://www.youtube.com/playlist?list=PL1",
        )
        assert "Failed tracks:" not in format_report(outcome)


class TestMigratorInit:
    def test_delay_below_minimum_clamped(self, source: MagicMock, destination: MagicMock) -> None:
        m = Migrator(source, destination, track_delay=0.1)
        assert m.track_delay == MIN_TRACK_DELAY

    def test_delay_above_minimum_kept(self, source: MagicMock, destination: MagicMock) -> None:
        m = Migrator(source, destination, track_delay=2.5)
        assert m.track_delay == 2.5


class TestMigrate:
    """Tests for Migrator.migrate()."""

    def test_all_tracks_succeed(self, migrator: Migrator, destination: MagicMock) -> None:
        outcome = migrator.migrate("37i9dQZF1DXcBWIGoYBM5M")

        assert outcome.playlist_name == "Road Trip"
        assert outcome.total_tracks == 3
        assert outcome.successfully_added == 3
        assert outcome.failed == 0
        assert outcome.failed_tracks == []
        assert outcome.youtube_playlist_id == "PLnew123"
        assert outcome.youtube_playlist_url == "https://www.youtube.com/playlist?list=PLnew123"

    def test_tracks_processed_in_order(self, migrator: Migrator, destination: MagicMock) -> None:
        migrator.migrate("37i9dQZF1DXcBWIGoYBM5M")

        calls = [c.args for c in destination.search_and_add.call_args_list]
        assert calls == [
            ("PLnew123", "Song A", "Artist X"),
            ("PLnew123", "Song B", "Artist Y"),
            ("PLnew123", "Song C", "Artist Z"),
        ]

    def test_unmatched_track_recorded(self, migrator: Migrator, destination: MagicMock) -> None:
        def search_and_add(pid: str, name: str, artist: str) -> AddResult:
            if name == "Song B":
                return AddResult(success=False, error="no match found", category="NOT_FOUND")
            return AddResult(success=True, video_id="v")

        destination.search_and_add.side_effect = search_and_add

        outcome = migrator.migrate("37i9dQZF1DXcBWIGoYBM5M")

        assert outcome.successfully_added == 2
        assert outcome.failed == 1
        failed = outcome.failed_tracks[0]
        assert (failed.track, failed.artist) == ("Song B", "Artist Y")
        assert failed.reason == "no match found"
        assert failed.category == "NOT_FOUND"

    def test_append_rejections_recorded(self, migrator: Migrator, destination: MagicMock) -> None:
        destination.search_and_add.side_effect = [
            AddResult(success=True, video_id="v1"),
            AddResult(
                success=False,
                video_id="v2",
                error="matched v2 but could not add to playlist: forbidden",
                category="PERMISSION_DENIED",
            ),
            AddResult(
                success=False,
                video_id="v3",
                error="matched v3 but could not add to playlist: forbidden",
                category="PERMISSION_DENIED",
            ),
        ]

        outcome = migrator.migrate("37i9dQZF1DXcBWIGoYBM5M")

        assert outcome.successfully_added == 1
        assert outcome.failed == 2
        assert [f.video_id for f in outcome.failed_tracks] == ["v2", "v3"]

    def test_exception_isolated_to_track(self, migrator: Migrator, destination: MagicMock) -> None:
        destination.search_and_add.side_effect = [
            RuntimeError("boom"),
            AddResult(success=True, video_id="v2"),
            AddResult(success=True, video_id="v3"),
        ]

        outcome = migrator.migrate("37i9dQZF1DXcBWIGoYBM5M")

        assert outcome.successfully_added == 2
        assert outcome.failed == 1
        assert outcome.failed_tracks[0].reason == "boom"
        assert outcome.failed_tracks[0].category == "UNKNOWN"

    def test_per_track_quota_failure_recorded(
        self, migrator: Migrator, destination: MagicMock
    ) -> None:
        destination.search_and_add.side_effect = QuotaExceededError("search")

        outcome = migrator.migrate("37i9dQZF1DXcBWIGoYBM5M")

        assert outcome.failed == 3
        assert all(f.category == "QUOTA_EXCEEDED" for f in outcome.failed_tracks)

    def test_missing_error_message_becomes_unknown(
        self, migrator: Migrator, destination: MagicMock
    ) -> None:
        destination.search_and_add.side_effect = None
        destination.search_and_add.return_value = AddResult(success=False)

        outcome = migrator.migrate("37i9dQZF1DXcBWIGoYBM5M")

        assert all(f.reason == "Unknown error" for f in outcome.failed_tracks)

    def test_counts_cover_every_track(self, migrator: Migrator, destination: MagicMock) -> None:
        destination.search_and_add.side_effect = [
            AddResult(success=True, video_id="v1"),
            AddResult(success=False, error="no match found"),
            RuntimeError("boom"),
        ]

        outcome = migrator.migrate("37i9dQZF1DXcBWIGoYBM5M")

        assert outcome.processed == outcome.total_tracks
        assert len(outcome.failed_tracks) == outcome.failed

    def test_empty_playlist(
        self, migrator: Migrator, source: MagicMock, destination: MagicMock, sleep: MagicMock
    ) -> None:
        source.get_playlist_tracks.return_value = []

        outcome = migrator.migrate("37i9dQZF1DXcBWIGoYBM5M")

        assert outcome.total_tracks == 0
        assert outcome.processed == 0
        destination.create_playlist.assert_called_once()
        sleep.assert_not_called()

    def test_elapsed_from_clock(self, source: MagicMock, destination: MagicMock) -> None:
        ticks = iter([100.0, 112.5])
        m = Migrator(source, destination, sleep=MagicMock(), clock=lambda: next(ticks))

        outcome = m.migrate("37i9dQZF1DXcBWIGoYBM5M")

        assert outcome.elapsed_seconds == 12.5


class TestPacing:
    """Tests for the delay between tracks."""

    def test_sleeps_between_tracks_not_after_last(
        self, migrator: Migrator, sleep: MagicMock
    ) -> None:
        migrator.migrate("37i9dQZF1DXcBWIGoYBM5M")

        assert sleep.call_count == 2
        for call in sleep.call_args_list:
            assert call.args[0] >= MIN_TRACK_DELAY

    def test_sleeps_after_failed_track(
        self, migrator: Migrator, destination: MagicMock, sleep: MagicMock
    ) -> None:
        destination.search_and_add.side_effect = RuntimeError("boom")
        migrator.migrate("37i9dQZF1DXcBWIGoYBM5M")
        assert sleep.call_count == 2

    def test_clamped_delay_used(
        self, source: MagicMock, destination: MagicMock, sleep: MagicMock
    ) -> None:
        m = Migrator(source, destination, track_delay=0.0, sleep=sleep, clock=lambda: 0.0)
        m.migrate("37i9dQZF1DXcBWIGoYBM5M")
        sleep.assert_called_with(MIN_TRACK_DELAY)


class TestSetup:
    """Tests for failures before the track loop."""

    def test_create_called_once_with_fallback_description(
        self, migrator: Migrator, destination: MagicMock
    ) -> None:
        migrator.migrate("37i9dQZF1DXcBWIGoYBM5M", privacy="unlisted")

        destination.create_playlist.assert_called_once_with(
            "Road Trip", DEFAULT_DESCRIPTION.format("Road Trip"), "unlisted"
        )

    def test_source_description_used(
        self, migrator: Migrator, source: MagicMock, destination: MagicMock
    ) -> None:
        source.get_playlist_info.return_value = PlaylistInfo(
            id="37i9dQZF1DXcBWIGoYBM5M",
            name="Road Trip",
            description="Highway songs",
            track_count=3,
        )
        migrator.migrate("37i9dQZF1DXcBWIGoYBM5M")

        destination.create_playlist.assert_called_once_with("Road Trip", "Highway songs", "private")

    def test_source_failure(
        self, migrator: Migrator, source: MagicMock, destination: MagicMock
    ) -> None:
        source.get_playlist_tracks.side_effect = RuntimeError("spotify down")

        with pytest.raises(MigrationSetupError) as exc_info:
            migrator.migrate("37i9dQZF1DXcBWIGoYBM5M")

        assert exc_info.value.stage == "source"
        assert "spotify down" in str(exc_info.value)
        destination.create_playlist.assert_not_called()

    def test_destination_quota_failure(
        self, migrator: Migrator, destination: MagicMock
    ) -> None:
        destination.create_playlist.side_effect = QuotaExceededError("playlists.insert")

        with pytest.raises(MigrationSetupError) as exc_info:
            migrator.migrate("37i9dQZF1DXcBWIGoYBM5M")

        assert exc_info.value.stage == "destination"
        assert exc_info.value.category == ErrorCategory.QUOTA_EXCEEDED
        destination.search_and_add.assert_not_called()

    def test_destination_permission_failure(
        self, migrator: Migrator, destination: MagicMock, forbidden_error: HttpError
    ) -> None:
        destination.create_playlist.side_effect = forbidden_error

        with pytest.raises(MigrationSetupError) as exc_info:
            migrator.migrate("37i9dQZF1DXcBWIGoYBM5M")

        assert exc_info.value.category == ErrorCategory.PERMISSION_DENIED

    def test_invalid_privacy(self, migrator: Migrator, source: MagicMock) -> None:
        with pytest.raises(ValueError, match="privacy"):
            migrator.migrate("37i9dQZF1DXcBWIGoYBM5M", privacy="friends-only")
        source.get_playlist_info.assert_not_called()


class TestProgress:
    """Tests for the per-track progress callback."""

    def test_one_event_per_track(self, migrator: Migrator) -> None:
        events: list[ProgressEvent] = []

        migrator.migrate("37i9dQZF1DXcBWIGoYBM5M", on_progress=events.append)

        assert [e.index for e in events] == [0, 1, 2]
        assert [e.progress for e in events] == [33, 67, 100]
        assert all(e.total == 3 for e in events)
        assert events[0].track.name == "Song A"
        assert events[0].video_id == "vid-A"

    def test_failure_event_carries_error(self, migrator: Migrator, destination: MagicMock) -> None:
        destination.search_and_add.side_effect = None
        destination.search_and_add.return_value = AddResult(success=False, error="no match found")
        events: list[ProgressEvent] = []

        migrator.migrate("37i9dQZF1DXcBWIGoYBM5M", on_progress=events.append)

        assert not events[0].success
        assert events[0].error == "no match found"

    def test_failing_callback_does_not_stop_run(self, migrator: Migrator) -> None:
        callback = MagicMock(side_effect=RuntimeError("ui gone"))

        outcome = migrator.migrate("37i9dQZF1DXcBWIGoYBM5M", on_progress=callback)

        assert callback.call_count == 3
        assert outcome.successfully_added == 3


class TestEstimateAndList:
    def test_estimate_uses_track_count(self, migrator: Migrator) -> None:
        est = migrator.estimate("37i9dQZF1DXcBWIGoYBM5M")
        assert est.searches == 3
        assert est.video_adds == 3
        assert est.playlist_creates == 1

    def test_list_source_playlists(
        self, migrator: Migrator, source: MagicMock, road_trip: PlaylistInfo
    ) -> None:
        source.get_user_playlists.return_value = [road_trip]
        assert migrator.list_source_playlists() == [road_trip]


class TestMigrateWithYouTubeClient:
    """Migrator driving a real YouTubeClient over mocked API resources."""

    def test_each_failure_stays_with_its_track(
        self,
        source: MagicMock,
        user_service: MagicMock,
        forbidden_error: HttpError,
        search_results: Callable[..., dict[str, Any]],
    ) -> None:
        user_service.search().list().execute.side_effect = [
            search_results("vid1"),
            search_results(),
            search_results("vid3"),
        ]
        user_service.playlistItems().insert().execute.side_effect = [
            forbidden_error,
            {"id": "PLI3"},
        ]
        client = YouTubeClient(user_service)
        migrator = Migrator(source, client, sleep=MagicMock(), clock=lambda: 0.0)

        outcome = migrator.migrate("37i9dQZF1DXcBWIGoYBM5M")

        assert outcome.youtube_playlist_id == "PLnew123"
        assert outcome.total_tracks == 3
        assert outcome.successfully_added == 1
        assert outcome.failed == 2
        first, second = outcome.failed_tracks
        assert first.track == "Song A"
        assert first.video_id == "vid1"
        assert first.category == "PERMISSION_DENIED"
        assert "matched vid1 but could not add" in first.reason
        assert second.track == "Song B"
        assert second.video_id is None
        assert second.reason == NO_MATCH_REASON
        assert user_service.playlistItems().insert().execute.call_count == 2
