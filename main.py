import asyncio
import json
import sys
import webbrowser
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
import questionary

from config import CONFIG_PATH, get_config_value, load_config, validate_config
from spotify_api.auth import OAuthSettings, SpotifyAuthenticator, spotify_app_setup_instructions
from spotify_api.client import ClientConfig, SpotifyClient
from spotify_api.library import SpotifyLibrary, track_uris
from utils.logger import log_error, log_info, log_success, setup_logging


def playlist_name(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    stamp = now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return f"Liked songs ({stamp})"


async def run(
    config: Dict[str, Any],
    *,
    authenticator: Optional[SpotifyAuthenticator] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep=None,
    show_progress: bool = True,
) -> Dict[str, Any]:
    """Copy every liked song of the logged-in user into a new private playlist.

    Returns the created playlist object.
    """
    log_info("Authenticating Spotify...")
    if authenticator is None:
        authenticator = SpotifyAuthenticator(
            OAuthSettings.from_config(config),
            open_browser=webbrowser.open if get_config_value(config, "open_browser") else None,
        )
    token = await authenticator.authenticate()

    client_kwargs: Dict[str, Any] = {
        "backoff_ms": int(get_config_value(config, "retry_delay_ms")),
        "transport": transport,
    }
    if sleep is not None:
        client_kwargs["sleep"] = sleep

    client_config = ClientConfig.from_token(token, base_url=get_config_value(config, "spotify_api_base_url"))
    async with SpotifyClient(client_config, **client_kwargs) as client:
        library = SpotifyLibrary(client, show_progress=show_progress)

        me = await library.me()
        log_info(f"Logged in as {me.get('display_name') or me.get('email')} with ID {me['id']}")

        tracks = await library.liked_tracks()
        log_info(f"Fetched all {len(tracks)} tracks! Creating playlist...")

        playlist = await library.create_playlist(
            me["id"],
            playlist_name(),
            public=bool(get_config_value(config, "playlist_public")),
        )
        log_info(f"Created playlist {playlist['name']} with ID {playlist['id']}")

        uris = track_uris(tracks)
        await library.add_tracks(playlist["id"], uris)
        log_success(f"Added all {len(uris)} songs to playlist")

    return playlist


def main(config_path: str = CONFIG_PATH) -> int:
    setup_logging()

    try:
        config = load_config(config_path)
    except FileNotFoundError as e:
        log_error(f"Config file not found: {e}")
        log_error("Copy config.example.json to config.json and fill in your Spotify app credentials.")
        return 1
    except json.JSONDecodeError as e:
        log_error(f"Config file contains invalid JSON: {e}")
        return 1
    except Exception as e:
        log_error(f"Error loading config: {e}")
        return 1

    setup_logging(config.get("log_level", "INFO"), config.get("log_file") or None)

    is_valid, errors = validate_config(config)
    if not is_valid:
        for error in errors:
            log_error(error)
        log_info(spotify_app_setup_instructions(redirect_uri=OAuthSettings.from_config(config).redirect_uri()))
        return 1

    # Prompt before the event loop starts; questionary runs its own loop.
    if config.get("open_browser") and config.get("confirm_browser"):
        answer = questionary.confirm("Open the Spotify login page in your default browser?", default=True).ask()
        if answer is None:
            log_error("Cancelled.")
            return 1
        config["open_browser"] = bool(answer)

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        log_error("Interrupted.")
        return 1
    except Exception as e:
        log_error(f"{type(e).__name__}: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
