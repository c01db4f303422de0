"""Batched playlist mutations.

Track lists are split into chunks of at most BATCH_SIZE (the API's
per-request limit) and sent one chunk at a time. A failing chunk raises
and the remaining chunks are not attempted.
"""

from collections import namedtuple
from enum import Enum

import spotify_api
from log_setup import get_logger

BATCH_SIZE = 100

log = get_logger("mutations")


class Operation(Enum):
    ADD = "add"
    REMOVE = "remove"


# cache_key names the entry that goes stale once the mutation is applied.
PendingMutation = namedtuple("PendingMutation", ["operation", "playlist", "tracks", "cache_key"])


def chunked(items, size=None):
    """Split items into a tuple of tuples of at most size elements."""
    if size is None:
        size = BATCH_SIZE
    return tuple(tuple(items[start:start + size]) for start in range(0, len(items), size))


def track_uri(item):
    return item["track"]["uri"]


def apply(session, playlist, operation, tracks):
    """Send one add/remove call per chunk of tracks, in order."""
    chunks = chunked(tracks)
    for i, chunk in enumerate(chunks):
        uris = [track_uri(item) for item in chunk]
        if operation is Operation.ADD:
            spotify_api.add_tracks(session, playlist, uris)
        elif operation is Operation.REMOVE:
            spotify_api.remove_tracks(session, playlist, uris)
        else:
            raise ValueError(f"Unknown operation: {operation}")
        log.debug(f"  {operation.value} batch {i + 1}/{len(chunks)} ({len(chunk)} tracks) → '{playlist['name']}'")
    return len(chunks)


def apply_pending(session, cache, mutation):
    """Invalidate the mutation's cache entry, then apply it."""
    if not mutation.tracks:
        return 0
    cache.invalidate(mutation.cache_key)
    log.info(f"  {mutation.operation.value} {len(mutation.tracks)} tracks → '{mutation.playlist['name']}'")
    return apply(session, mutation.playlist, mutation.operation, mutation.tracks)
