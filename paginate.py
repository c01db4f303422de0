"""Cursor-paginated retrieval with rate-limit backoff.

fetch_all() follows each page's "next" link until there is none. A 429
response is retried on the same page after the server's Retry-After delay,
and every successful page is followed by a short self-imposed pause so the
service rarely has to throttle us in the first place.
"""

import logging
import time

from log_setup import get_logger

PAGE_DELAY = 0.5            # seconds between successful page requests
MAX_RETRIES = 100           # rate-limit retries allowed per fetch_all() call
DEFAULT_RETRY_AFTER = 60    # seconds, when the 429 carries no Retry-After

log = get_logger("paginate")


class MalformedResponse(Exception):
    """A page could not be read as {"items": [...], ...}."""

    def __init__(self, message, status=None, headers=None, body=None):
        super().__init__(message)
        self.status = status
        self.headers = headers
        self.body = body

    def __str__(self):
        return f"{self.args[0]} (status {self.status})"


class RateLimitExhausted(Exception):
    """Still rate limited after MAX_RETRIES retries of one fetch_all() or mutation call."""


def get_retry_after(headers):
    """Extract Retry-After (seconds) from response headers.

    Falls back to DEFAULT_RETRY_AFTER when the header is missing or is not
    a number of seconds (e.g. an HTTP date).
    """
    if headers and "Retry-After" in headers:
        try:
            return float(headers["Retry-After"])
        except (TypeError, ValueError):
            log.debug(f"  Unreadable Retry-After {headers['Retry-After']!r}, using {DEFAULT_RETRY_AFTER}s")
    return DEFAULT_RETRY_AFTER


def _malformed(message, response):
    err = MalformedResponse(message, response.status_code, dict(response.headers or {}), response.text)
    log.error(f"{message}: status={err.status}")
    log.error(f"  headers: {err.headers}")
    log.error(f"  body: {err.body}")
    return err


def _parse_page(response):
    try:
        body = response.json()
    except ValueError as e:
        raise _malformed("Response body is not JSON", response) from e
    if not isinstance(body, dict) or not isinstance(body.get("items"), list):
        raise _malformed("Response has no item list", response)
    return body


def fetch_all(session, url, progress=False, max_retries=None):
    """Fetch every item behind a paginated endpoint, in page order.

    Args:
        session: spotify_api.Session used for every page request.
        url: First page URL.
        progress: Log percentage retrieved at INFO instead of DEBUG.
        max_retries: Rate-limit retry ceiling, MAX_RETRIES when None.

    Raises:
        MalformedResponse: A page body is not JSON or lacks "items".
        RateLimitExhausted: More than max_retries 429 responses.
    """
    if max_retries is None:
        max_retries = MAX_RETRIES
    level = logging.INFO if progress else logging.DEBUG

    items = []
    total = 0
    requests_made = 0
    retries = 0

    while url:
        response = session.http.get(url, headers=session.headers())
        requests_made += 1

        if response.status_code == 429:
            retries += 1
            if retries > max_retries:
                raise RateLimitExhausted(f"Gave up on {url} after {max_retries} rate-limit retries")
            wait = get_retry_after(response.headers)
            log.warning(f"  Rate limited, waiting {wait:g}s (retry {retries}/{max_retries})...")
            time.sleep(wait)
            continue

        body = _parse_page(response)
        items.extend(body["items"])
        total = body.get("total", len(items))
        pct = round(len(items) / total * 100) if total else 100
        log.log(level, f"  {pct}% ({len(items)}/{total})")

        url = body.get("next")
        if url:
            time.sleep(PAGE_DELAY)

    if len(items) != total:
        log.warning(f"  Expected {total} items, got {len(items)}")
    log.log(level, f"  Took {requests_made} requests.")
    return items
