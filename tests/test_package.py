"""Tests for spot2yt package exports."""

import sys
from unittest.mock import patch


def test_version_exported() -> None:
    """Package exports __version__."""
    from spot2yt import __version__

    assert __version__
    assert isinstance(__version__, str)


def test_version_fallback_on_import_error() -> None:
    """Falls back to a dev version when the generated _version module is missing."""
    original_modules = {k: v for k, v in sys.modules.items() if k.startswith("spot2yt")}
    for mod in list(original_modules):
        del sys.modules[mod]

    try:
        with patch.dict(sys.modules, {"spot2yt._version": None}):
            import importlib

            import spot2yt

            importlib.reload(spot2yt)
            assert spot2yt.__version__ == "0.0.0.dev0"
    finally:
        for mod in list(sys.modules):
            if mod.startswith("spot2yt"):
                del sys.modules[mod]
        sys.modules.update(original_modules)


def test_models_exported() -> None:
    """Package exports the core models."""
    from spot2yt import InvalidPlaylistError, MigrationOutcome, PlaylistInfo, Track

    track = Track("Song A", "Artist X")
    playlist = PlaylistInfo(id="37i9dQZF1DXcBWIGoYBM5M", name="Road Trip")
    outcome = MigrationOutcome(
        playlist_name=playlist.name,
        total_tracks=1,
        youtube_playlist_id="PL1",
        youtube_playlist_url="https://www.youtube.com/playlist?list=PL1",
    )

    assert track.artist == "Artist X"
    assert outcome.processed == 0
    assert issubclass(InvalidPlaylistError, ValueError)
