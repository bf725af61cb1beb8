"""spot2yt - migrate Spotify playlists to YouTube."""

from spot2yt.models import (
    InvalidPlaylistError,
    MigrationOutcome,
    PlaylistInfo,
    Track,
)

try:
    from spot2yt._version import __version__
except ImportError:
    __version__ = "0.0.0.dev0"

__all__ = ["InvalidPlaylistError", "MigrationOutcome", "PlaylistInfo", "Track", "__version__"]
