import asyncio
import webbrowser

import questionary

from spotify_session import (
    Created,
    CreatedTracksFailed,
    DashboardSession,
    SpotifySessionError,
)
from spotify_session.auth import (
    check_spotify_credentials,
    extract_code_from_redirect_url,
    spotify_app_setup_instructions,
)
from spotify_session.data_loader import filter_playlists_by_letter, playlist_letters
from utils.logger import log_info, log_success, log_warning, log_error

SOURCE_CHOICES = {
    "Your top tracks": "top_tracks",
    "Top tracks from your top artists": "artist_tracks",
    "Recently played": "recently_played",
}

TIME_RANGE_CHOICES = {
    "Last 4 weeks": "short_term",
    "Last 6 months": "medium_term",
    "All time": "long_term",
}


def _spotify_setup_help(config: dict) -> None:
    creds = check_spotify_credentials(config)
    log_info("\n" + "=" * 72)
    log_info("SPOTIFY WEB API SETUP")
    log_info("=" * 72)
    log_info(spotify_app_setup_instructions(redirect_uri=creds.get("redirect_uri") or ""))
    if not creds.get("ok"):
        log_warning(creds.get("message") or "Spotify credentials are incomplete.")
    else:
        log_info(creds.get("message") or "Spotify credentials look OK.")
    log_info("=" * 72 + "\n")


async def _login(session: DashboardSession) -> None:
    """Browser login where the user pastes the redirect URL back into the CLI."""
    creds = check_spotify_credentials(session.config)
    if not creds.get("ok"):
        _spotify_setup_help(session.config)
        return

    flow = session.authorize_url()
    log_info(f"Authorize URL:\n{flow['auth_url']}")

    if await questionary.confirm("Open the authorize URL in your default browser?", default=True).ask_async():
        webbrowser.open(flow["auth_url"])

    pasted = await questionary.text("Paste the full redirect URL:").ask_async()
    pasted = (pasted or "").strip()
    if not pasted:
        log_warning("No redirect URL provided. Cancelling login.")
        return

    try:
        await session.complete_login(extract_code_from_redirect_url(pasted), expected_state=flow["state"])
    except SpotifySessionError as e:
        log_error(f"Authentication failed: {e.user_message} ({e})")
        return

    log_success(f"Successfully logged in! Welcome, {session.display_name or 'Spotify user'}!")


def _report_progress(progress) -> None:
    if progress.running and progress.count:
        log_info(f"Loaded {progress.count} playlists...")


async def _show_playlists(session: DashboardSession) -> None:
    session.start_playlists_fetch()
    await session.playlists_engine.wait()

    error = session.playlists_engine.last_error()
    if error is not None:
        log_error(f"Error: {error.user_message}")
        return

    playlists = session.playlists()
    if not playlists:
        log_info("No playlists found for this account.")
        return

    letter = await questionary.select(
        "Show playlists starting with:",
        choices=["All"] + playlist_letters(playlists),
    ).ask_async()
    shown = filter_playlists_by_letter(playlists, letter)

    for p in shown:
        visibility = "Public" if p.get("is_public") else "Private"
        log_info(f"{p['name']} | By {p.get('owner') or '?'} | {p.get('track_count') or 0} tracks | {visibility} | {p.get('spotify_url') or ''}")
    log_info(f"Showing {len(shown)} of {len(playlists)} playlists")


async def _generate_playlist(session: DashboardSession) -> None:
    source_label = await questionary.select("Build the playlist from:", choices=list(SOURCE_CHOICES)).ask_async()
    if not source_label:
        return
    source = SOURCE_CHOICES[source_label]

    kwargs = {}
    if source != "recently_played":
        range_label = await questionary.select("Time range:", choices=list(TIME_RANGE_CHOICES)).ask_async()
        kwargs["time_range"] = TIME_RANGE_CHOICES.get(range_label, session.config.get("default_time_range", "short_term"))

    count = int(session.config.get("default_track_count", 20))
    kwargs.update({"track_count": count, "num_artists": count, "recent_count": count})

    try:
        tracks = await session.load_track_selection(source, **kwargs)
    except SpotifySessionError as e:
        log_error(f"Error fetching playlist tracks: {e.user_message}")
        return

    if not tracks:
        log_warning("No tracks available to create playlist.")
        return

    for i, t in enumerate(tracks, start=1):
        log_info(f"{i}. {t['name']} - {t['artist']}")

    name = await questionary.text("Playlist name (leave empty for the default):").ask_async()
    if not await questionary.confirm(f"Create a playlist with these {len(tracks)} tracks?", default=True).ask_async():
        return

    result = await session.create_playlist(tracks, source=source, name=name)
    if isinstance(result, Created):
        log_success(f"{result.message} Open your new playlist: {result.name} {result.url}")
    elif isinstance(result, CreatedTracksFailed):
        log_warning(f"{result.message} Open playlist: {result.url}")
    else:
        log_error(result.message)


async def dashboard_menu(config: dict) -> None:
    async with DashboardSession.from_config(config) as session:
        session.tokens.subscribe(lambda event: log_info(event.message))
        session.playlists_engine.on_progress(_report_progress)

        while True:
            if session.tokens.is_authenticated:
                choices = ["My playlists", "Generate a playlist", "Logout", "Exit"]
            else:
                choices = ["Login with Spotify", "Spotify setup help", "Exit"]

            choice = await questionary.select("Dashboard", choices=choices).ask_async()

            if choice == "Login with Spotify":
                await _login(session)
            elif choice == "Spotify setup help":
                _spotify_setup_help(config)
            elif choice == "My playlists":
                await _show_playlists(session)
            elif choice == "Generate a playlist":
                await _generate_playlist(session)
            elif choice == "Logout":
                session.logout()
            else:
                log_info("Exiting program...")
                break


def run_dashboard(config: dict) -> None:
    asyncio.run(dashboard_menu(config))
