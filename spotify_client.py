"""Spotify OAuth setup.

Runs the authorization-code flow through spotipy and hands back an
explicit spotify_api.Session for the rest of the sync to use.
"""

import os

import requests as _requests
import spotipy
from spotipy.oauth2 import SpotifyOAuth

from config import CLIENT_ID, CLIENT_SECRET, REDIRECT_URI
from spotify_api import Session

DIR = os.path.dirname(os.path.abspath(__file__))

SCOPES = "playlist-modify-public playlist-modify-private playlist-read-private user-library-read"


def create_session():
    """Authorize the user and return a Session carrying their bearer token.

    Opens the browser on first use; later runs reuse the cached token.
    """
    auth = SpotifyOAuth(
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        redirect_uri=REDIRECT_URI,
        scope=SCOPES,
        cache_path=f"{DIR}/.spotify_token_cache",
    )
    token = auth.get_access_token(as_dict=False)

    # No adapter retries: 429s surface with their Retry-After header
    http = _requests.Session()
    http.mount("https://", _requests.adapters.HTTPAdapter(max_retries=0))

    sp = spotipy.Spotify(auth=token, requests_session=http)
    user_id = sp.current_user()["id"]
    return Session(token, user_id, http=http, sp=sp)
