"""
Product slugs: derive a URL-safe identifier from a title and make sure no
other product already uses it.

The check and the later insert are two separate database calls, so two admins
saving the same slug at the same moment can both succeed. Only a unique index
on products.slug would close that gap.
"""

import asyncio
import logging
import os
import re
import time
import unicodedata
from typing import Callable, Optional

from pymongo.errors import PyMongoError

import database

logger = logging.getLogger(__name__)

PRODUCT_COLLECTION = "products"

# Numbered candidates tried before falling back to a time-based suffix.
MAX_SUGGEST_ATTEMPTS = 12

SLUG_CHECK_DELAY = float(os.getenv("SLUG_CHECK_DELAY", "0.6"))

_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def slugify(title: str) -> str:
    s = unicodedata.normalize("NFD", str(title or "").strip().lower())
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = re.sub(r"[^a-z0-9\s-]", "", s)
    s = re.sub(r"\s+", "-", s)
    s = re.sub(r"-+", "-", s)
    return s.strip("-")


def is_slug(value: str) -> bool:
    return bool(value) and slugify(value) == value


def check_slug_exists(slug: str) -> bool:
    """True when a product already has `slug`.

    Errors count as "exists": reporting a taken slug as free would let a
    duplicate through, reporting a free one as taken only costs a retry.
    """
    if not slug:
        return False
    try:
        return database.find_one(PRODUCT_COLLECTION, {"slug": slug}) is not None
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.warning("Slug check failed for %r, treating as taken: %s", slug, e)
        return True


def _base36(n: int) -> str:
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = _ALPHABET[r] + out
    return out or "0"


def time_suffix() -> str:
    return _base36(time.time_ns() // 1_000_000)[-6:]


def suggest_slug(title: str, exists: Callable[[str], bool] = check_slug_exists) -> str:
    """Return a free slug for `title`: base, base-1, ... then base-<time suffix>.

    At most MAX_SUGGEST_ATTEMPTS lookups are made. Returns "" when the title
    has no usable characters.
    """
    base = slugify(title or "product")
    if not base:
        return ""

    candidate = base
    for attempt in range(1, MAX_SUGGEST_ATTEMPTS + 1):
        try:
            taken = exists(candidate)
        except Exception:
            logger.exception("Slug lookup for %r failed", candidate)
            taken = True
        if not taken:
            return candidate
        candidate = f"{base}-{attempt}"

    fallback = f"{base}-{time_suffix()}"
    logger.info("No free numbered slug for %r after %d lookups, using %s", base, MAX_SUGGEST_ATTEMPTS, fallback)
    return fallback


class SlugCheckGate:
    """Availability checks for one editing session.

    Every check takes a ticket from an increasing counter; a result is only
    applied when its ticket is still the newest one, so a slow answer for an
    old value can never overwrite the status of the value typed since. After
    close() nothing is applied at all.
    """

    def __init__(self, exists: Callable[[str], bool] = check_slug_exists, delay: Optional[float] = None):
        self._exists = exists
        self.delay = SLUG_CHECK_DELAY if delay is None else delay
        self._counter = 0
        self.closed = False
        self.status = "idle"
        self.slug = ""

    def begin(self, slug: str) -> int:
        self._counter += 1
        self.slug = slug
        if not self.closed:
            self.status = "checking" if slug else "idle"
        return self._counter

    def is_current(self, ticket: int) -> bool:
        return not self.closed and ticket == self._counter

    def apply(self, ticket: int, status: str) -> bool:
        if not self.is_current(ticket):
            return False
        self.status = status
        return True

    async def check(self, slug: str) -> Optional[str]:
        """Check `slug`; returns the applied status, or None if superseded or closed."""
        ticket = self.begin(slug)
        if not slug:
            return self.status if self.is_current(ticket) else None
        if self.delay:
            await asyncio.sleep(self.delay)
            if not self.is_current(ticket):
                return None
        # check_slug_exists already reports database failures as "taken";
        # "error" is only reached by lookups that raise.
        try:
            taken = await asyncio.to_thread(self._exists, slug)
            status = "taken" if taken else "available"
        except Exception:
            logger.exception("Slug availability check for %r failed", slug)
            status = "error"
        return status if self.apply(ticket, status) else None

    def close(self) -> None:
        self.closed = True
