"""Thin Spotify Web API layer: the session value and the mutation endpoints.

Every call takes an explicit Session. Nothing here reads ambient state.
Mutations go through the session's spotipy client; a 429 is waited out and
the same call is sent again, anything else propagates.
"""

import time

import requests
import spotipy
import spotipy.exceptions

import paginate
from log_setup import get_logger

API_BASE = "https://api.spotify.com/v1"

PLAYLISTS_URL = f"{API_BASE}/me/playlists?limit=50"
SAVED_TRACKS_URL = f"{API_BASE}/me/tracks?limit=50"

log = get_logger("spotify_api")


class Session:
    """Bearer credential plus the clients every request goes through.

    http is used for raw paginated reads, sp (a spotipy client on the same
    token and HTTP session) for mutations. Built once by
    spotify_client.create_session() and passed by reference.
    """

    def __init__(self, token, user_id, http=None, sp=None):
        if not token:
            raise ValueError("Session needs a bearer token")
        self.token = token
        self.user_id = user_id
        self.http = http if http is not None else requests.Session()
        self.sp = sp if sp is not None else spotipy.Spotify(auth=token, requests_session=self.http)

    def headers(self):
        return {"Authorization": f"Bearer {self.token}"}


def playlist_tracks_url(playlist_id):
    return f"{API_BASE}/playlists/{playlist_id}/tracks?limit=100"


def call(func, *args, max_retries=None):
    """Run one spotipy call, resending it after each 429.

    Raises:
        RateLimitExhausted: More than max_retries (MAX_RETRIES) 429s.
        SpotifyException: Any other API error, unretried.
    """
    if max_retries is None:
        max_retries = paginate.MAX_RETRIES
    retries = 0
    while True:
        try:
            return func(*args)
        except spotipy.exceptions.SpotifyException as e:
            if e.http_status != 429:
                raise
            retries += 1
            if retries > max_retries:
                raise paginate.RateLimitExhausted(
                    f"Gave up on {getattr(func, '__name__', func)} after {max_retries} rate-limit retries"
                ) from e
            wait = paginate.get_retry_after(e.headers)
            log.warning(f"  Rate limited, waiting {wait:g}s (retry {retries}/{max_retries})...")
            time.sleep(wait)


def create_playlist(session, name):
    """Create a playlist owned by the session user and return its JSON."""
    playlist = call(session.sp.user_playlist_create, session.user_id, name)
    log.info(f"Created playlist '{name}' ({playlist['id']})")
    return playlist


def unfollow_playlist(session, playlist):
    call(session.sp.current_user_unfollow_playlist, playlist["id"])
    log.info(f"Unfollowed playlist '{playlist.get('name', playlist['id'])}'")


def add_tracks(session, playlist, uris):
    call(session.sp.playlist_add_items, playlist["id"], list(uris))


def remove_tracks(session, playlist, uris):
    call(session.sp.playlist_remove_all_occurrences_of_items, playlist["id"], list(uris))
