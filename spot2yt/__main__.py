"""spot2yt CLI - migrate Spotify playlists to YouTube."""

import json
from typing import Any

import fire
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from spot2yt import __version__, youtube
from spot2yt.auth import (
    AuthCoordinator,
    AuthorizationError,
    AuthSession,
    Provider,
    parse_callback_url,
)
from spot2yt.config import (
    Config,
    get_config_dir,
    get_token_path,
    load_config,
    load_tokens,
    save_tokens,
)
from spot2yt.correlation import get_store
from spot2yt.logging import configure_logging, logger
from spot2yt.migrate import MigrationSetupError, Migrator, ProgressEvent, format_report
from spot2yt.models import OAuthTokens, extract_playlist_id, validate_privacy
from spot2yt.quota import format_quota_warning, get_tracker
from spot2yt.report import save_report
from spot2yt.spotify import SpotifyAuth, SpotifyClient
from spot2yt.youtube import CredentialRole, YouTubeAuth, YouTubeClient

console = Console()


class Spot2ytCLI:
    """Migrate Spotify playlists to YouTube.

    Examples:
        spot2yt login
        spot2yt playlists
        spot2yt migrate "https://open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M"
        spot2yt --json-output migrate 37i9dQZF1DXcBWIGoYBM5M --privacy unlisted
        spot2yt migrate 37i9dQZF1DXcBWIGoYBM5M --report road_trip.yaml
    """

    def __init__(
        self, verbose: bool = False, json_output: bool = False, throttle: int = 200
    ) -> None:
        """Initialize CLI with options.

        Args:
            verbose: Enable debug logging
            json_output: Output results as JSON instead of human-readable text
            throttle: Milliseconds between YouTube write calls (default 200, 0 to disable)
        """
        configure_logging(verbose)
        self._json = json_output
        youtube.set_throttle_delay(throttle)
        logger.debug(
            "spot2yt initialized with verbose={}, json={}, throttle={}ms",
            verbose,
            json_output,
            throttle,
        )

    def _output(self, data: dict[str, Any]) -> dict[str, Any] | None:
        """Output result as JSON or print nothing (human output already printed)."""
        if self._json:
            print(json.dumps(data, indent=2))
        return data if self._json else None

    def _session_tokens(self, config: Config) -> tuple[OAuthTokens, OAuthTokens]:
        """Load both providers' tokens, refreshing them before use."""
        spotify_tokens = load_tokens(Provider.SPOTIFY.value)
        youtube_tokens = load_tokens(Provider.YOUTUBE.value)
        missing = [
            name
            for name, tokens in (("Spotify", spotify_tokens), ("YouTube", youtube_tokens))
            if tokens is None
        ]
        if missing:
            raise AuthorizationError(f"Not authorized for {', '.join(missing)}. Run: spot2yt login")
        assert spotify_tokens is not None and youtube_tokens is not None

        if spotify_tokens.refresh_token:
            spotify_tokens = SpotifyAuth(config.spotify).refresh(spotify_tokens)
            save_tokens(Provider.SPOTIFY.value, spotify_tokens)
        if youtube_tokens.refresh_token:
            youtube_tokens = YouTubeAuth(config.google).refresh(youtube_tokens)
            save_tokens(Provider.YOUTUBE.value, youtube_tokens)
        return spotify_tokens, youtube_tokens

    def _migrator(self, config: Config) -> Migrator:
        spotify_tokens, youtube_tokens = self._session_tokens(config)
        source = SpotifyClient(spotify_tokens.access_token)
        destination = YouTubeClient.from_tokens(
            youtube_tokens,
            config.google,
            fallback=tuple(CredentialRole(r) for r in config.migration.search_fallback),
            search_suffix=config.migration.search_suffix,
        )
        return Migrator(source, destination, track_delay=config.migration.track_delay)

    def version(self) -> None:
        """Show spot2yt version."""
        if self._json:
            self._output({"version": __version__})
        else:
            console.print(f"spot2yt {__version__}")

    def config(self) -> dict[str, Any] | None:
        """Show configuration and authorization status.

        Example:
            spot2yt config
        """
        config_path = get_config_dir() / "config.toml"
        token_paths = {p.value: get_token_path(p.value) for p in Provider}

        if self._json:
            return self._output(
                {
                    "config_path": str(config_path),
                    "config_exists": config_path.exists(),
                    "tokens": {
                        name: {"path": str(path), "exists": path.exists()}
                        for name, path in token_paths.items()
                    },
                }
            )

        console.print(f"[bold]Config path:[/bold] {config_path}")
        if config_path.exists():
            for line in config_path.read_text().strip().split("\n"):
                if ("secret" in line.lower() or "api_key" in line.lower()) and "=" in line:
                    console.print(f"  {line.split('=')[0]}= [dim]<hidden>[/dim]")
                else:
                    console.print(f"  {line}", markup=False)
        else:
            console.print(
                "[yellow]Config file not found (environment variables still apply)[/yellow]"
            )
        console.print()
        for name, path in token_paths.items():
            if path.exists():
                console.print(f"[green]{name}: authorized[/green] ({path})")
            else:
                console.print(f"[yellow]{name}: not authorized (run 'spot2yt login')[/yellow]")
        return None

    def login(self, provider: str | None = None) -> dict[str, Any] | None:
        """Authorize Spotify and YouTube.

        Opens each provider's consent page in turn; paste back the URL the
        browser was redirected to. Tokens already obtained for one provider
        are carried across the other provider's redirect.

        Args:
            provider: Only authorize this provider ("spotify" or "youtube")

        Example:
            spot2yt login
            spot2yt login --provider youtube
        """
        config = load_config()
        providers = [Provider(provider)] if provider else [Provider.SPOTIFY, Provider.YOUTUBE]
        session = AuthSession(
            spotify=load_tokens(Provider.SPOTIFY.value),
            youtube=load_tokens(Provider.YOUTUBE.value),
        )

        coordinator = AuthCoordinator(
            get_store(), SpotifyAuth(config.spotify), YouTubeAuth(config.google)
        )
        for p in providers:
            url, state = coordinator.begin(p, session)
            console.print(f"\n[bold]Authorize {p.value}:[/bold]\n{url}\n")
            redirect = input("Paste the URL you were redirected to: ")
            code, returned_state = parse_callback_url(redirect)
            if returned_state != state:
                raise AuthorizationError("State mismatch in redirect URL; start login again")
            session = coordinator.complete(p, code, returned_state, session)

        saved = {}
        for p in Provider:
            tokens = session.get(p)
            if tokens is not None:
                saved[p.value] = str(save_tokens(p.value, tokens))

        if self._json:
            return self._output({"authorized": sorted(saved), "complete": session.is_complete})
        for name, path in saved.items():
            console.print(f"[green]{name} tokens saved to {path}[/green]")
        if not session.is_complete:
            console.print("[yellow]Authorize the other provider before migrating.[/yellow]")
        return None

    def playlists(self) -> dict[str, Any] | None:
        """List your Spotify playlists.

        Example:
            spot2yt playlists
            spot2yt --json-output playlists
        """
        items = self._migrator(load_config()).list_source_playlists()

        if self._json:
            return self._output({"playlists": [p.to_dict() for p in items]})

        table = Table(title=f"Spotify playlists ({len(items)})")
        table.add_column("#", justify="right")
        table.add_column("Name")
        table.add_column("ID", style="dim")
        table.add_column("Tracks", justify="right")
        for i, p in enumerate(items, 1):
            table.add_row(str(i), p.name, p.id, str(p.track_count))
        console.print(table)
        return None

    def estimate(self, url_or_id: str) -> dict[str, Any] | None:
        """Estimate the YouTube API quota a migration would use.

        Args:
            url_or_id: Spotify playlist URL, URI or ID

        Example:
            spot2yt estimate 37i9dQZF1DXcBWIGoYBM5M
        """
        playlist_id = extract_playlist_id(url_or_id)
        config = load_config()
        est = self._migrator(config).estimate(
            playlist_id, app_key_searches=bool(config.google.api_key)
        )

        if self._json:
            return self._output({"playlist_id": playlist_id, **est.breakdown()})
        console.print(format_quota_warning(est))
        return None

    def migrate(
        self,
        url_or_id: str,
        privacy: str | None = None,
        report: str | None = None,
    ) -> dict[str, Any] | None:
        """Copy a Spotify playlist into a new YouTube playlist.

        Every track is searched on YouTube and the first Music result is
        added. Tracks that cannot be matched or added are listed at the end.

        Args:
            url_or_id: Spotify playlist URL, URI or ID
            privacy: private, public or unlisted (default from config, else private)
            report: Also write the outcome to this YAML file

        Example:
            spot2yt migrate 37i9dQZF1DXcBWIGoYBM5M
            spot2yt migrate 37i9dQZF1DXcBWIGoYBM5M --privacy unlisted
            spot2yt migrate 37i9dQZF1DXcBWIGoYBM5M --report road_trip.yaml
        """
        playlist_id = extract_playlist_id(url_or_id)
        config = load_config()
        privacy = validate_privacy(privacy or config.migration.privacy)
        migrator = self._migrator(config)

        try:
            if self._json:
                outcome = migrator.migrate(playlist_id, privacy)
            else:
                with Progress(
                    TextColumn("[progress.description]{task.description}"),
                    BarColumn(),
                    TaskProgressColumn(),
                    console=console,
                ) as progress:
                    task = progress.add_task("Migrating...", total=None)

                    def on_progress(event: ProgressEvent) -> None:
                        progress.update(
                            task,
                            total=event.total,
                            completed=event.index + 1,
                            description=f"{event.track.name[:40]}",
                        )
                        if not event.success:
                            progress.console.print(
                                f"[yellow]✗ {event.track.name} - {event.track.artist}: "
                                f"{event.error}[/yellow]"
                            )

                    outcome = migrator.migrate(playlist_id, privacy, on_progress=on_progress)
        except MigrationSetupError as e:
            logger.error("{}", e)
            if self._json:
                self._output({"error": str(e), "stage": e.stage, "category": e.category.name})
            raise

        if report:
            save_report(report, outcome)
            logger.info("Report written to {}", report)

        if self._json:
            data = outcome.to_dict()
            data["quota"] = get_tracker().summary()
            return self._output(data)

        console.print()
        console.print(format_report(outcome), markup=False, highlight=False)
        return None


def main() -> None:
    """CLI entry point."""
    fire.Fire(Spot2ytCLI)


if __name__ == "__main__":
    main()
