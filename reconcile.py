"""
Reconcile the saved library against the automatically managed playlists.

Three passes, each planned from one snapshot before anything is mutated:
  unplaylisted  keep the catch-all playlist equal to saved tracks that are
                not filed into any other (non-reserved, non-year) playlist
  years         add each saved track to its release-year / decade playlist
  flagged       drop tracks from the review playlist once they are saved

Remote collections come through the CacheStore; every mutation that is
sent invalidates the entry it made stale.
"""

import re
from enum import Enum

import spotify_api
from log_setup import get_logger
from mutations import Operation, PendingMutation, apply_pending
from paginate import fetch_all

CATCH_ALL_NAME = "Unplaylisted"
FLAGGED_NAME = "👀"
YEAR_CUTOFF = 2018
YEAR_PATTERN = re.compile(r"\d{4}")

# Cache keys
PLAYLISTS = "playlists"
SAVED_TRACKS = "saved_tracks"
PLAYLISTED_TRACKS = "playlisted_tracks"
UNPLAYLISTED_TRACKS = "unplaylisted_tracks"
FLAGGED_TRACKS = "flagged_tracks"

log = get_logger("reconcile")


class Invalidation(Enum):
    REFRESH = "r"       # saved tracks + playlisted tracks
    CATEGORIES = "c"    # playlisted tracks only
    FULL = "f"          # everything


class Pass(Enum):
    # Definition order is the order passes run in.
    UNPLAYLISTED = "u"
    YEARS = "y"
    FLAGGED = "e"


def year_bucket(release_date):
    """Map a release date ("1987", "2019-05-01", ...) to its playlist label.

    2018 and later get their own year; anything older is grouped by decade.
    """
    year = release_date.split("-")[0]
    if int(year) >= YEAR_CUTOFF:
        return year
    return f"{year[:3]}0s"


def year_key(label):
    return f"year_{label}"


def is_reserved(name):
    """True for playlists the sync manages itself (catch-all, flagged, years)."""
    return name in (CATCH_ALL_NAME, FLAGGED_NAME) or bool(YEAR_PATTERN.search(name))


def track_id(item):
    track = item.get("track")
    return track.get("id") if track else None


def track_ids(items):
    return {tid for tid in map(track_id, items) if tid}


def invalidate(cache, invalidation):
    if invalidation is Invalidation.REFRESH:
        cache.invalidate(SAVED_TRACKS)
        cache.invalidate(PLAYLISTED_TRACKS)
    elif invalidation is Invalidation.CATEGORIES:
        cache.invalidate(PLAYLISTED_TRACKS)
    elif invalidation is Invalidation.FULL:
        cache.clear()
    else:
        raise ValueError(f"Unknown invalidation: {invalidation}")


def _pending(operation, playlist, tracks, cache_key):
    if not tracks:
        return []
    return [PendingMutation(operation, playlist, tuple(tracks), cache_key)]


class Reconciler:
    """Plans and applies the reconciliation passes for one run."""

    def __init__(self, session, cache):
        self.session = session
        self.cache = cache
        self._playlists = None
        # Per-run memo: label -> playlist, label -> set of track ids
        self._year_playlists = {}
        self._year_tracks = {}

    # --- Remote state ---

    def playlists(self):
        if self._playlists is None:
            self._playlists = self.cache.get_or_load(PLAYLISTS, self._load_owned_playlists)
        return self._playlists

    def _load_owned_playlists(self):
        log.info("Getting playlists...")
        return [
            pl for pl in fetch_all(self.session, spotify_api.PLAYLISTS_URL, progress=True)
            if not pl.get("collaborative") and pl["owner"]["id"] == self.session.user_id
        ]

    def find_or_create_playlist(self, name):
        for pl in self.playlists():
            if pl["name"] == name:
                return pl
        playlist = spotify_api.create_playlist(self.session, name)
        self.cache.invalidate(PLAYLISTS)
        self._playlists = self._playlists + [playlist]
        return playlist

    def playlist_tracks(self, playlist, progress=False):
        return fetch_all(self.session, spotify_api.playlist_tracks_url(playlist["id"]), progress=progress)

    def saved_tracks(self):
        def load():
            log.info("Getting saved tracks...")
            return fetch_all(self.session, spotify_api.SAVED_TRACKS_URL, progress=True)
        return self.cache.get_or_load(SAVED_TRACKS, load)

    def playlisted_tracks(self):
        """Items of every playlist that is not reserved, concatenated."""
        return self.cache.get_or_load(PLAYLISTED_TRACKS, self._load_playlisted)

    def _load_playlisted(self):
        others = [pl for pl in self.playlists() if not is_reserved(pl["name"])]
        log.info(f"Getting tracks of {len(others)} playlists...")
        tracks = []
        for i, pl in enumerate(others):
            tracks.extend(self.playlist_tracks(pl))
            log.info(f"  {round((i + 1) / len(others) * 100)}% {pl['name']}")
        return tracks

    # --- Passes ---

    def plan_years(self):
        """Queue every saved track missing from its year/decade playlist."""
        additions = {}
        for item in self.saved_tracks():
            tid = track_id(item)
            if not tid:
                continue
            label = year_bucket(item["track"]["album"]["release_date"])

            if label not in self._year_playlists:
                playlist = self.find_or_create_playlist(label)
                self._year_playlists[label] = playlist
                existing = self.cache.get_or_load(year_key(label), lambda: self.playlist_tracks(playlist))
                self._year_tracks[label] = track_ids(existing)

            if tid in self._year_tracks[label]:
                continue
            self._year_tracks[label].add(tid)
            additions.setdefault(label, []).append(item)

        for label, tracks in additions.items():
            log.info(f"  {label}: {len(tracks)} new tracks")

        pending = []
        for label, tracks in additions.items():
            pending += _pending(Operation.ADD, self._year_playlists[label], tracks, year_key(label))
        return pending

    def plan_unplaylisted(self):
        """Drop filed tracks from the catch-all playlist and add unfiled ones."""
        saved = self.saved_tracks()
        playlisted = track_ids(self.playlisted_tracks())

        catch_all = self.find_or_create_playlist(CATCH_ALL_NAME)
        log.info(f"Getting {CATCH_ALL_NAME} list...")
        tracked = self.cache.get_or_load(
            UNPLAYLISTED_TRACKS, lambda: self.playlist_tracks(catch_all, progress=True),
        )
        tracked_ids = track_ids(tracked)

        filed = [item for item in tracked if track_id(item) in playlisted]
        unfiled = [
            item for item in saved
            if track_id(item) and track_id(item) not in playlisted and track_id(item) not in tracked_ids
        ]
        log.info(f"Tracks that have been playlisted: {len(filed)}")
        log.info(f"Tracks not in playlists: {len(unfiled)}")

        return (
            _pending(Operation.REMOVE, catch_all, filed, UNPLAYLISTED_TRACKS)
            + _pending(Operation.ADD, catch_all, unfiled, UNPLAYLISTED_TRACKS)
        )

    def plan_flagged(self):
        """Clear flagged tracks that are now in the saved library."""
        saved_ids = track_ids(self.saved_tracks())

        flagged = self.find_or_create_playlist(FLAGGED_NAME)
        log.info(f"Getting {FLAGGED_NAME} list...")
        tracks = self.cache.get_or_load(FLAGGED_TRACKS, lambda: self.playlist_tracks(flagged, progress=True))

        liked = [item for item in tracks if track_id(item) in saved_ids]
        log.info(f"Tracks to remove from {FLAGGED_NAME}: {len(liked)}")
        return _pending(Operation.REMOVE, flagged, liked, FLAGGED_TRACKS)

    def plan(self, pass_):
        if pass_ is Pass.UNPLAYLISTED:
            return self.plan_unplaylisted()
        elif pass_ is Pass.YEARS:
            return self.plan_years()
        elif pass_ is Pass.FLAGGED:
            return self.plan_flagged()
        raise ValueError(f"Unknown pass: {pass_}")

    def run(self, passes):
        """Plan every selected pass, then apply the results in pass order.

        Returns the list of PendingMutations that were applied.
        """
        selected = [p for p in Pass if p in passes]

        pending = []
        for p in selected:
            log.info(f"\n=== Planning {p.name.lower()} ===")
            pending += self.plan(p)

        if not pending:
            log.info("\nNothing to change.")
            return []

        log.info(f"\n=== Applying {len(pending)} changes ===")
        for mutation in pending:
            apply_pending(self.session, self.cache, mutation)
        return pending
