"""Shared fixtures: an in-memory Spotify Web API behind a fake HTTP session."""

import json
import os
import sys
from urllib.parse import parse_qs, urlsplit

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
import spotipy.exceptions

import paginate
from cache import CacheStore, JsonFileStorage
from spotify_api import API_BASE, Session

NOT_JSON = object()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_track(tid, release_date="2020-01-01"):
    """A saved/playlist item in the service's JSON shape."""
    return {
        "added_at": "2024-01-01T00:00:00Z",
        "track": {
            "id": tid,
            "uri": f"spotify:track:{tid}",
            "name": f"Song {tid}",
            "album": {"release_date": release_date},
        },
    }


class FakeResponse:
    def __init__(self, status_code, body=None, headers=None, text=None):
        self.status_code = status_code
        self._body = body
        self.headers = headers or {}
        if text is None:
            text = "" if body is NOT_JSON else json.dumps(body)
        self.text = text

    def json(self):
        if self._body is NOT_JSON:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._body


class FakeRemote:
    """In-memory Spotify: serves paginated collections and records every call.

    Set rate_limits to make the next N requests answer 429, add a
    (method, path) pair to throttle_once to make the next matching call answer
    429, or set fail_on to a (method, path) pair to make matching calls answer 500.
    """

    def __init__(self, user_id="me", page_size=2):
        self.user_id = user_id
        self.page_size = page_size
        self.playlists = []
        self.items = {}
        self.saved = []
        self.calls = []
        self.rate_limits = 0
        self.retry_after = "3"
        self.fail_on = None
        self.throttle_once = set()
        self._uris = {}
        self._next_id = 1

    # --- Setup ---

    def add_saved(self, *items):
        for item in items:
            self._uris[item["track"]["uri"]] = item["track"]
            self.saved.append(item)

    def add_playlist(self, name, items=(), owner=None, collaborative=False):
        pid = f"pl{self._next_id}"
        self._next_id += 1
        playlist = {
            "id": pid,
            "name": name,
            "owner": {"id": owner or self.user_id},
            "collaborative": collaborative,
        }
        self.playlists.append(playlist)
        self.items[pid] = []
        for item in items:
            self._uris[item["track"]["uri"]] = item["track"]
            self.items[pid].append(item)
        return playlist

    def by_name(self, name):
        return next(pl for pl in self.playlists if pl["name"] == name)

    def ids_in(self, name):
        return [item["track"]["id"] for item in self.items[self.by_name(name)["id"]]]

    def mutations(self):
        return [c for c in self.calls if c[0] != "GET"]

    # --- HTTP ---

    def get(self, url, headers=None):
        return self.request("GET", url, headers=headers)

    def request(self, method, url, headers=None, json=None):
        self.calls.append((method, url, json))
        assert headers == {"Authorization": "Bearer token"}

        if self.rate_limits:
            self.rate_limits -= 1
            return FakeResponse(429, {"error": {"status": 429}}, headers={"Retry-After": self.retry_after})

        parts = urlsplit(url)
        path = parts.path[len(urlsplit(API_BASE).path):]
        if (method, path) in self.throttle_once:
            self.throttle_once.discard((method, path))
            return FakeResponse(429, {"error": {"status": 429}}, headers={"Retry-After": self.retry_after})
        if self.fail_on == (method, path):
            return FakeResponse(500, {"error": {"status": 500, "message": "boom"}})

        query = parse_qs(parts.query)
        segments = path.strip("/").split("/")

        if method == "GET":
            if path == "/me/playlists":
                return self._page(url, self.playlists, query)
            if path == "/me/tracks":
                return self._page(url, self.saved, query)
            if len(segments) == 3 and segments[0] == "playlists" and segments[2] == "tracks":
                return self._page(url, self.items[segments[1]], query)
        if method == "POST" and segments[0] == "users":
            playlist = self.add_playlist(json["name"], owner=segments[1])
            return FakeResponse(201, playlist)
        if method == "POST" and segments[-1] == "tracks":
            self.items[segments[1]].extend({"track": self._uris[uri]} for uri in json["uris"])
            return FakeResponse(201, {"snapshot_id": "x"})
        if method == "DELETE" and segments[-1] == "tracks":
            uris = {t["uri"] for t in json["tracks"]}
            self.items[segments[1]] = [i for i in self.items[segments[1]] if i["track"]["uri"] not in uris]
            return FakeResponse(200, {"snapshot_id": "x"})
        if method == "DELETE" and segments[-1] == "followers":
            self.playlists = [pl for pl in self.playlists if pl["id"] != segments[1]]
            return FakeResponse(200, None, text="")
        return FakeResponse(404, {"error": {"status": 404}})

    def _page(self, url, collection, query):
        offset = int(query.get("offset", ["0"])[0])
        limit = self.page_size
        base = url.split("?")[0]
        end = offset + limit
        return FakeResponse(200, {
            "items": list(collection[offset:end]),
            "total": len(collection),
            "offset": offset,
            "limit": limit,
            "next": f"{base}?offset={end}&limit={limit}" if end < len(collection) else None,
        })


class FakeSpotify:
    """The spotipy.Spotify methods the sync mutates with, sent through FakeRemote.

    Non-2xx answers raise SpotifyException with the response headers, as
    spotipy does on a session without adapter retries.
    """

    def __init__(self, remote, token="token"):
        self.remote = remote
        self.token = token

    def _send(self, method, path, body=None):
        r = self.remote.request(method, f"{API_BASE}{path}", headers={"Authorization": f"Bearer {self.token}"}, json=body)
        if not 200 <= r.status_code < 300:
            raise spotipy.exceptions.SpotifyException(
                r.status_code, -1, f"{method} {path}: {r.text}", headers=r.headers,
            )
        return r.json()

    def user_playlist_create(self, user, name):
        return self._send("POST", f"/users/{user}/playlists", {"name": name})

    def current_user_unfollow_playlist(self, playlist_id):
        return self._send("DELETE", f"/playlists/{playlist_id}/followers")

    def playlist_add_items(self, playlist_id, items):
        return self._send("POST", f"/playlists/{playlist_id}/tracks", {"uris": list(items)})

    def playlist_remove_all_occurrences_of_items(self, playlist_id, items):
        return self._send("DELETE", f"/playlists/{playlist_id}/tracks", {"tracks": [{"uri": uri} for uri in items]})


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def sleeps(monkeypatch):
    """Record rate-limit and page-delay sleeps instead of waiting."""
    calls = []
    monkeypatch.setattr(paginate.time, "sleep", calls.append)
    return calls


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def session(remote):
    return Session("token", remote.user_id, http=remote, sp=FakeSpotify(remote))


@pytest.fixture
def cache(tmp_path):
    return CacheStore(JsonFileStorage(str(tmp_path / "cache")))
