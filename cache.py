"""Get-or-load memoization of fetched collections.

CacheStore sits on a small get/put/delete storage interface. The default
storage, JsonFileStorage, keeps one _<key>.json file per entry.
"""

import glob
import json
import os
import tempfile

from log_setup import get_logger

log = get_logger("cache")


class JsonFileStorage:
    """Key/value storage backed by one JSON file per key in a directory."""

    def __init__(self, directory):
        self.directory = directory
        os.makedirs(directory, exist_ok=True)

    def path(self, key):
        return os.path.join(self.directory, f"_{key}.json")

    def get(self, key):
        """Return the stored value, or None if missing or unreadable."""
        try:
            with open(self.path(key), encoding="utf-8") as f:
                return json.load(f)
        except (FileNotFoundError, json.JSONDecodeError):
            return None

    def put(self, key, value):
        """Write JSON atomically: write to temp file then rename."""
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f, ensure_ascii=False)
            os.replace(tmp_path, self.path(key))
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def delete(self, key):
        try:
            os.unlink(self.path(key))
        except FileNotFoundError:
            pass

    def clear(self):
        for path in glob.glob(os.path.join(self.directory, "_*.json")):
            os.unlink(path)


def _is_valid(value):
    return isinstance(value, list) and all(isinstance(item, dict) for item in value)


class CacheStore:
    """Memoize collections under stable string keys.

    An entry is trusted only if it is a non-empty list of JSON objects;
    anything else counts as a miss and the loader runs again.
    """

    def __init__(self, storage):
        self.storage = storage

    def get_or_load(self, key, loader):
        value = self.storage.get(key)
        if value and _is_valid(value):
            log.debug(f"Cache hit: {key} ({len(value)} items)")
            return value
        if value:
            log.warning(f"Cache entry '{key}' has an unexpected shape, reloading")

        value = loader()
        self.storage.put(key, value)
        log.debug(f"Cached {key} ({len(value)} items)")
        return value

    def invalidate(self, key):
        """Drop an entry. Missing entries are ignored."""
        self.storage.delete(key)
        log.debug(f"Invalidated {key}")

    def clear(self):
        self.storage.clear()
        log.info("Emptied entire cache")
