#!/usr/bin/env python3
"""
Sync the Spotify saved library into the managed playlists.

Usage:
  python3 sync_library.py -u        # Update the Unplaylisted playlist
  python3 sync_library.py -y        # Update year / decade playlists
  python3 sync_library.py -e        # Clear saved tracks out of the 👀 playlist
  python3 sync_library.py -ruye     # Refresh saved + playlisted caches, then run all passes
  python3 sync_library.py -f        # Empty the entire cache
"""

import argparse
import os
import sys

import spotipy.exceptions

from cache import CacheStore, JsonFileStorage
from log_setup import get_logger, reset_latest
from paginate import MalformedResponse, RateLimitExhausted
from reconcile import FLAGGED_NAME, Invalidation, Pass, Reconciler, invalidate

DIR = os.path.dirname(os.path.abspath(__file__))
CACHE_DIR = f"{DIR}/_cache"

log = get_logger("sync_library")


def build_parser():
    parser = argparse.ArgumentParser(description="Sync saved tracks into managed Spotify playlists")
    parser.add_argument("-r", "--refresh", dest="invalidations", action="append_const",
                        const=Invalidation.REFRESH, help="Refresh saved_tracks and playlisted_tracks")
    parser.add_argument("-c", "--categories", dest="invalidations", action="append_const",
                        const=Invalidation.CATEGORIES, help="Refresh playlisted_tracks")
    parser.add_argument("-f", "--force", dest="invalidations", action="append_const",
                        const=Invalidation.FULL, help="Empty entire cache")
    parser.add_argument("-u", "--unplaylisted", dest="passes", action="append_const",
                        const=Pass.UNPLAYLISTED, help="Update Unplaylisted playlist")
    parser.add_argument("-y", "--years", dest="passes", action="append_const",
                        const=Pass.YEARS, help="Update year and decade playlists")
    parser.add_argument("-e", "--flagged", dest="passes", action="append_const",
                        const=Pass.FLAGGED, help=f"Update {FLAGGED_NAME} playlist")
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    invalidations = args.invalidations or []
    passes = args.passes or []

    if not invalidations and not passes:
        parser.print_help()
        return

    reset_latest()
    cache = CacheStore(JsonFileStorage(CACHE_DIR))
    for invalidation in invalidations:
        invalidate(cache, invalidation)

    if not passes:
        return

    from spotify_client import create_session

    try:
        session = create_session()
        applied = Reconciler(session, cache).run(passes)
    except (MalformedResponse, RateLimitExhausted, spotipy.exceptions.SpotifyException) as e:
        log.error(f"*** Sync aborted: {e} ***")
        sys.exit(1)

    log.info(f"\nDone! {len(applied)} playlist changes applied.")


if __name__ == "__main__":
    main()
