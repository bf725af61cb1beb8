"""Configuration loading for spot2yt.

config.toml lives in ~/.spot2yt/:

    [spotify]
    client_id = "..."
    client_secret = "..."
    redirect_uri = "http://localhost:8888/callback"

    [google]
    client_id = "..."
    client_secret = "..."
    redirect_uri = "http://localhost:8888/google-callback"
    api_key = "..."          # optional, used for searches

    [migration]
    track_delay = 1.0
    search_suffix = "official audio"
    privacy = "private"
    search_fallback = ["app", "user"]

Every OAuth value can also come from the environment (or a .env file),
which takes precedence over the file.
"""

import json
import os
import tomllib
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

from spot2yt.models import OAuthTokens, validate_privacy

# Minimum pause between tracks; YouTube soft-bans callers that go faster
MIN_TRACK_DELAY = 1.0

ENV_OVERRIDES = {
    ("spotify", "client_id"): "SPOTIFY_CLIENT_ID",
    ("spotify", "client_secret"): "SPOTIFY_CLIENT_SECRET",
    ("spotify", "redirect_uri"): "SPOTIFY_REDIRECT_URI",
    ("google", "client_id"): "GOOGLE_CLIENT_ID",
    ("google", "client_secret"): "GOOGLE_CLIENT_SECRET",
    ("google", "redirect_uri"): "GOOGLE_REDIRECT_URI",
    ("google", "api_key"): "YOUTUBE_API_KEY",
}


class SpotifyConfig(BaseModel):  # type: ignore[misc]
    """Spotify OAuth application credentials."""

    client_id: str
    client_secret: str
    redirect_uri: str = "http://localhost:8888/callback"


class GoogleConfig(BaseModel):  # type: ignore[misc]
    """Google OAuth application credentials.

    Attributes:
        api_key: Optional YouTube Data API key. Searches use it first because
            it carries its own quota; mutations always use the user's OAuth token.
    """

    client_id: str
    client_secret: str
    redirect_uri: str = "http://localhost:8888/google-callback"
    api_key: str | None = None


class MigrationConfig(BaseModel):  # type: ignore[misc]
    """Tuning knobs for a migration run."""

    track_delay: float = MIN_TRACK_DELAY
    search_suffix: str = "official audio"
    privacy: str = "private"
    search_fallback: list[str] = ["app", "user"]

    @field_validator("track_delay")  # type: ignore[untyped-decorator]
    @classmethod
    def validate_track_delay(cls, v: float) -> float:
        if v < MIN_TRACK_DELAY:
            msg = f"track_delay must be at least {MIN_TRACK_DELAY} seconds"
            raise ValueError(msg)
        return v

    @field_validator("privacy")  # type: ignore[untyped-decorator]
    @classmethod
    def validate_privacy(cls, v: str) -> str:
        return validate_privacy(v)

    @field_validator("search_fallback")  # type: ignore[untyped-decorator]
    @classmethod
    def validate_search_fallback(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("search_fallback needs at least one credential role")
        for role in v:
            if role not in ("app", "user"):
                msg = f"Unknown credential role '{role}' (expected 'app' or 'user')"
                raise ValueError(msg)
        if len(set(v)) != len(v):
            raise ValueError("search_fallback must not repeat a role")
        return v


class Config(BaseModel):  # type: ignore[misc]
    """spot2yt configuration."""

    spotify: SpotifyConfig
    google: GoogleConfig
    migration: MigrationConfig = MigrationConfig()


def get_config_dir() -> Path:
    """Get or create config directory."""
    config_dir = Path.home() / ".spot2yt"
    config_dir.mkdir(exist_ok=True)
    return config_dir


def get_tokens_dir() -> Path:
    """Get or create tokens directory."""
    tokens_dir = get_config_dir() / "tokens"
    tokens_dir.mkdir(exist_ok=True)
    return tokens_dir


def get_token_path(provider: str) -> Path:
    """Get path of the cached OAuth tokens for a provider ("spotify" or "youtube")."""
    return get_tokens_dir() / f"{provider}.json"


def load_tokens(provider: str) -> OAuthTokens | None:
    """Load cached tokens for a provider, or None if never saved."""
    path = get_token_path(provider)
    if not path.exists():
        return None
    with open(path) as f:
        data = json.load(f)
    tokens: OAuthTokens = OAuthTokens.model_validate(data)
    return tokens


def save_tokens(provider: str, tokens: OAuthTokens) -> Path:
    """Write tokens for a provider, readable only by the current user."""
    path = get_token_path(provider)
    with open(path, "w") as f:
        json.dump(tokens.model_dump(), f)
    path.chmod(0o600)
    return path


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    for (section, key), env_name in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            data.setdefault(section, {})[key] = value
    return data


def load_config() -> Config:
    """Load configuration from ~/.spot2yt/config.toml plus environment overrides."""
    load_dotenv()
    config_path = get_config_dir() / "config.toml"
    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path, "rb") as f:
            data = tomllib.load(f)

    data = _apply_env_overrides(data)
    if "spotify" not in data or "google" not in data:
        raise FileNotFoundError(
            f"Config file not found or incomplete: {config_path}\n"
            "Create it with:\n"
            "  [spotify]\n"
            "  client_id = 'your-spotify-client-id'\n"
            "  client_secret = 'your-spotify-client-secret'\n"
            "  [google]\n"
            "  client_id = 'your-google-client-id'\n"
            "  client_secret = 'your-google-client-secret'\n\n"
            "Or set SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET, GOOGLE_CLIENT_ID\n"
            "and GOOGLE_CLIENT_SECRET in the environment."
        )
    config: Config = Config.model_validate(data)
    return config
