"""YouTube API quota tracking and estimation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from spot2yt.logging import logger

# YouTube Data API v3 quota costs
# https://developers.google.com/youtube/v3/determine_quota_cost
QUOTA_COSTS = {
    "search.list": 100,
    "playlists.list": 1,
    "playlists.insert": 50,
    "playlistItems.list": 1,
    "playlistItems.insert": 50,
}

DAILY_QUOTA_LIMIT = 10_000

# Quota resets at midnight Pacific Time
PACIFIC_TZ = ZoneInfo("America/Los_Angeles")


@dataclass
class QuotaTracker:
    """Quota spent by this process, split by who pays for it.

    ``used`` counts units billed to the user's OAuth project and is what the
    daily limit applies to. Searches made with the app-level API key land on
    that key's project instead and are counted in ``app_key_used``.
    """

    used: int = 0
    app_key_used: int = 0
    limit: int = DAILY_QUOTA_LIMIT
    operations: dict[str, int] = field(default_factory=dict)

    def record(self, operation: str, units: int | None = None, app_key: bool = False) -> None:
        """Add one call of operation to the running totals.

        Args:
            operation: Data API method, e.g. "search.list"
            units: Cost override; QUOTA_COSTS is used when omitted
            app_key: The call was billed to the API key project
        """
        cost = QUOTA_COSTS.get(operation, 50) if units is None else units
        if app_key:
            self.app_key_used += cost
        else:
            self.used += cost
        self.operations[operation] = self.operations.get(operation, 0) + 1
        logger.debug(
            "Quota: {} cost {} units ({} billed, user total {})",
            operation,
            cost,
            "app key" if app_key else "user",
            self.used,
        )

    @property
    def remaining(self) -> int:
        return max(self.limit - self.used, 0)

    @property
    def usage_percent(self) -> float:
        if self.limit <= 0:
            return 100.0
        return self.used * 100 / self.limit

    def reset(self) -> None:
        self.used = 0
        self.app_key_used = 0
        self.operations.clear()

    def summary(self) -> dict[str, int | float | dict[str, int]]:
        return {
            "used": self.used,
            "app_key_used": self.app_key_used,
            "remaining": self.remaining,
            "limit": self.limit,
            "usage_percent": round(self.usage_percent, 1),
            "operations": dict(self.operations),
        }


_tracker = QuotaTracker()


def get_tracker() -> QuotaTracker:
    """Process-wide tracker shared by every YouTube call."""
    return _tracker


def record_quota(operation: str, units: int | None = None, app_key: bool = False) -> None:
    _tracker.record(operation, units, app_key=app_key)


def get_time_until_reset(now: datetime | None = None) -> str:
    """Get human-readable time until quota reset (midnight PT).

    Returns:
        String like "5h 23m" or "23m".
    """
    now = now.astimezone(PACIFIC_TZ) if now else datetime.now(PACIFIC_TZ)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)

    total_seconds = int((midnight - now).total_seconds())
    hours, remainder = divmod(total_seconds, 3600)
    minutes = remainder // 60

    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


@dataclass
class QuotaEstimate:
    """Estimated quota usage for a migration."""

    playlist_creates: int = 0
    searches: int = 0
    video_adds: int = 0
    app_key_searches: bool = False  # searches billed to the API key project

    @property
    def user_total(self) -> int:
        """Units billed to the user's OAuth project."""
        total = (
            self.playlist_creates * QUOTA_COSTS["playlists.insert"]
            + self.video_adds * QUOTA_COSTS["playlistItems.insert"]
        )
        if not self.app_key_searches:
            total += self.searches * QUOTA_COSTS["search.list"]
        return total

    @property
    def total(self) -> int:
        """Total estimated quota units across both credentials."""
        return (
            self.playlist_creates * QUOTA_COSTS["playlists.insert"]
            + self.searches * QUOTA_COSTS["search.list"]
            + self.video_adds * QUOTA_COSTS["playlistItems.insert"]
        )

    @property
    def days_required(self) -> int:
        """Minimum days for the user's project to absorb the run at default quota."""
        if self.user_total == 0:
            return 0
        return (self.user_total + DAILY_QUOTA_LIMIT - 1) // DAILY_QUOTA_LIMIT

    def breakdown(self) -> dict[str, int]:
        return {
            "playlist_creates": self.playlist_creates * QUOTA_COSTS["playlists.insert"],
            "searches": self.searches * QUOTA_COSTS["search.list"],
            "video_adds": self.video_adds * QUOTA_COSTS["playlistItems.insert"],
            "user_total": self.user_total,
            "total": self.total,
        }


def estimate_migration_cost(num_tracks: int, app_key_searches: bool = False) -> QuotaEstimate:
    """Estimate quota for migrating one playlist of num_tracks tracks.

    Example:
        >>> estimate_migration_cost(10).total  # 50 + 10*100 + 10*50
        1550
    """
    return QuotaEstimate(
        playlist_creates=1,
        searches=num_tracks,
        video_adds=num_tracks,
        app_key_searches=app_key_searches,
    )


def format_quota_warning(estimate: QuotaEstimate) -> str:
    """Format a user-friendly quota estimate."""
    lines = [
        f"Estimated API quota: {estimate.total:,} units",
        f"  - Playlist creates: {estimate.playlist_creates} x 50 = "
        f"{estimate.playlist_creates * 50:,}",
        f"  - Searches: {estimate.searches} x 100 = {estimate.searches * 100:,}"
        + (" (API key)" if estimate.app_key_searches else ""),
        f"  - Video adds: {estimate.video_adds} x 50 = {estimate.video_adds * 50:,}",
        f"Daily quota limit: {DAILY_QUOTA_LIMIT:,} units",
    ]
    if estimate.user_total > DAILY_QUOTA_LIMIT:
        lines.append(
            f"This playlist needs ~{estimate.days_required} days of quota; "
            "the run will start failing tracks once the daily quota is spent."
        )
    return "\n".join(lines)
