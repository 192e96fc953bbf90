"""Link creation and resolution on top of the cache and the durable store.

This module holds the business logic of the shortener: turning a URL into a
stored short code, and turning a short code back into a redirect target with
a cache-aside read path.

Flow Diagram — Link Creation
============================
::
    ┌─────────────┐
    │ create_link │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Validate URL│  http/https only ──▶ InvalidInput
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Custom code?│
    └──────┬──────┘
    YES   │    NO
    ┌─────┴──────────────┐
    ▼                    ▼
┌──────────────┐   ┌──────────────┐
│ Format check │   │ Base62 code  │
│ Active owner?│   │ from URL hash│
│ ─▶ Conflict  │   │              │
└──────┬───────┘   └──────┬───────┘
       │                  │ duplicate on insert
       │                  ▼
       │           ┌──────────────┐
       │           │ Timestamp-   │
       │           │ salted retry │
       │           └──────┬───────┘
       ▼                  ▼
    ┌─────────────┐
    │ Insert link │  store failure ──▶ Unavailable
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Cache 1h    │  failure logged only
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ short_url   │
    └─────────────┘

Flow Diagram — Resolve
======================
::
    ┌─────────────┐
    │ cache.get() │  CacheUnavailable counts as a miss
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌───────────┐  ┌───────────────────┐
│ store.get │  │ detached INCR      │
│ _by_code  │  │ clicks:<code>      │
└────┬──────┘  └────────┬──────────┘
     │ absent ─▶ NotFound│
     ▼                   ▼
┌───────────┐        cache_hit=True
│ cache 24h │
│ detached  │
│ DB clicks │
└────┬──────┘
     ▼
 cache_hit=False

Key Behaviours
===============
- The cache is advisory: populate failures on create and on miss are
  logged and never change the result.
- Cache-hit clicks accrue only in the ``clicks:<code>`` counter; cache-miss
  clicks accrue only in the durable ``clicks`` column. Analytics reports
  both without merging them.
- Cached destinations never outlive the link's ``expires_at``.
- Creating a link clears any click counter left behind by an expired link
  that held the same code.
- Click increments are detached; the caller never waits for them.
- No internal retries, except fresh timestamp-salted codes when a
  hash-derived code is already taken.

Classes:
    LinkService:  Create, resolve, inspect links.
    CreatedLink:  Result of ``create_link``.
    Resolution:  Result of ``resolve`` with redirect metadata.
    LinkAnalytics:  Durable and cached click counters for a code.
"""

import datetime
import logging
import time
import uuid
from dataclasses import dataclass
from urllib.parse import urlsplit

import validators
from prometheus_client import Counter, Histogram

from shortener.cache import DEFAULT_TTL, LinkCache, click_key, url_key
from shortener.codes import (
    RESERVED_CODES,
    generate_short_code_base62,
    generate_short_code_with_timestamp,
    is_valid_custom_code,
)
from shortener.config import Settings, get_settings
from shortener.enums import CacheStatus, RequestStatus
from shortener.errors import (
    CacheUnavailable,
    Conflict,
    DuplicateShortCode,
    InvalidInput,
    NotFound,
    ShortenerError,
    StorageError,
    Unavailable,
)
from shortener.models import Link
from shortener.store import LinkStore
from shortener.tasks import DetachedTaskRunner

__all__ = [
    "ALLOWED_SCHEMES",
    "IMMUTABLE_CACHE_CONTROL",
    "CreatedLink",
    "LinkAnalytics",
    "LinkService",
    "Resolution",
]

ALLOWED_SCHEMES = frozenset({"http", "https"})
IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"

# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

LINK_CREATION_TOTAL = Counter(
    "link_creation_total",
    "Link creation requests by outcome",
    ["status"],
)
LINK_RESOLVE_TOTAL = Counter(
    "link_resolve_total",
    "Short code resolutions by outcome and cache status",
    ["status", "cache"],
)
LINK_CREATION_DURATION = Histogram(
    "link_creation_duration_seconds",
    "Time taken to create links",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)
CODE_COLLISIONS_TOTAL = Counter(
    "link_code_collisions_total",
    "Hash-derived short codes that were already taken",
)

_STATUS_BY_ERROR = {
    InvalidInput: RequestStatus.INVALID_INPUT,
    Conflict: RequestStatus.CONFLICT,
    NotFound: RequestStatus.NOT_FOUND,
}


def _status_for(exc: ShortenerError) -> RequestStatus:
    return _STATUS_BY_ERROR.get(type(exc), RequestStatus.UNAVAILABLE)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


# ============================================================================
# DATA STRUCTURES
# ============================================================================


@dataclass(frozen=True)
class CreatedLink:
    short_code: str
    short_url: str
    original_url: str
    expires_at: datetime.datetime | None = None


@dataclass(frozen=True)
class Resolution:
    """Redirect target plus what the HTTP layer needs to build the response."""

    destination_url: str
    short_code: str
    cache_hit: bool

    @property
    def etag(self) -> str:
        return f'"{self.short_code}"'

    @property
    def cache_control(self) -> str:
        return IMMUTABLE_CACHE_CONTROL

    @property
    def cache_status(self) -> CacheStatus:
        return CacheStatus.from_hit(self.cache_hit)


@dataclass(frozen=True)
class LinkAnalytics:
    short_code: str
    clicks: int
    cached_clicks: int

    @property
    def total_clicks(self) -> int:
        return self.clicks + self.cached_clicks


# ============================================================================
# CORE SERVICE CLASS
# ============================================================================


class LinkService:
    """Create and resolve short links.

    One instance is shared by all requests; every collaborator it holds is
    safe for concurrent use.

    Example:
        >>> service = LinkService(cache, store, tasks)
        >>> created = await service.create_link("https://example.com")
        >>> resolution = await service.resolve(created.short_code)
        >>> resolution.cache_hit
        True
    """

    def __init__(
        self,
        cache: LinkCache,
        store: LinkStore,
        tasks: DetachedTaskRunner,
        settings: Settings | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._cache = cache
        self._store = store
        self._tasks = tasks
        self._settings = settings or get_settings()
        self._logger = logger or logging.getLogger("shortener")

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def create_link(
        self,
        url: str,
        custom_code: str | None = None,
        expires_in_hours: int | None = None,
    ) -> CreatedLink:
        """Store a new link and return its short code and short URL.

        Raises:
            InvalidInput: Malformed URL, non-http(s) scheme, bad custom code
                or non-positive expiry.
            Conflict: The custom code (or every generated code) is taken.
            Unavailable: The durable store failed.
        """
        start_time = time.perf_counter()
        try:
            self._validate_url(url)
            expires_at = self._expiry_from_hours(expires_in_hours)

            if custom_code is not None:
                short_code = await self._claim_custom_code(custom_code)
                await self._insert_custom(short_code, url, expires_at)
            else:
                short_code = await self._insert_generated(url, expires_at)

            await self._reset_click_counter(short_code)
            await self._populate_cache(short_code, url, self._settings.CACHE_CREATE_TTL_SECONDS, expires_at)
        except ShortenerError as exc:
            LINK_CREATION_TOTAL.labels(status=_status_for(exc)).inc()
            self._logger.warning(f"Link creation failed: {exc.message}")
            raise
        finally:
            LINK_CREATION_DURATION.observe(time.perf_counter() - start_time)

        LINK_CREATION_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        self._logger.info(f"Link created: {short_code} -> {url}")
        return CreatedLink(
            short_code=short_code,
            short_url=self.short_url_for(short_code),
            original_url=url,
            expires_at=expires_at,
        )

    async def resolve(self, short_code: str) -> Resolution:
        """Resolve a short code to its destination, cache first.

        Raises:
            NotFound: No active link owns the code.
            Unavailable: The cache missed and the durable store failed.
        """
        cached_url = await self._lookup_cache(short_code)
        if cached_url is not None:
            self._tasks.spawn(
                self._cache.increment(click_key(short_code)),
                name=f"cache-click:{short_code}",
            )
            LINK_RESOLVE_TOTAL.labels(status=RequestStatus.SUCCESS, cache=CacheStatus.HIT).inc()
            self._logger.debug(f"Cache hit for {short_code}")
            return Resolution(destination_url=cached_url, short_code=short_code, cache_hit=True)

        try:
            link = await self._store.get_by_code(short_code)
        except StorageError as exc:
            LINK_RESOLVE_TOTAL.labels(status=RequestStatus.UNAVAILABLE, cache=CacheStatus.MISS).inc()
            self._logger.error(f"Store lookup failed for {short_code}: {exc}")
            raise Unavailable() from exc

        if link is None:
            LINK_RESOLVE_TOTAL.labels(status=RequestStatus.NOT_FOUND, cache=CacheStatus.MISS).inc()
            raise NotFound()

        await self._populate_cache(short_code, link.original_url, expires_at=link.expires_at)
        self._tasks.spawn(
            self._store.increment_clicks(short_code),
            name=f"db-click:{short_code}",
        )
        LINK_RESOLVE_TOTAL.labels(status=RequestStatus.SUCCESS, cache=CacheStatus.MISS).inc()
        self._logger.debug(f"Cache miss for {short_code}, served from store")
        return Resolution(destination_url=link.original_url, short_code=short_code, cache_hit=False)

    async def get_link(self, short_code: str) -> Link:
        try:
            link = await self._store.get_by_code(short_code)
        except StorageError as exc:
            raise Unavailable() from exc
        if link is None:
            raise NotFound()
        return link

    async def get_analytics(self, short_code: str) -> LinkAnalytics:
        """Durable and cache-hit click counts for an active link, side by side."""
        link = await self.get_link(short_code)
        cached_clicks = 0
        try:
            raw = await self._cache.get(click_key(short_code))
            if raw is not None:
                cached_clicks = int(raw)
        except CacheUnavailable as exc:
            self._logger.warning(f"Cached click count unavailable for {short_code}: {exc}")
        return LinkAnalytics(short_code=short_code, clicks=link.clicks, cached_clicks=cached_clicks)

    def short_url_for(self, short_code: str) -> str:
        return f"{self._settings.BASE_URL.rstrip('/')}/{short_code}"

    # ========================================================================
    # PRIVATE HELPER METHODS
    # ========================================================================

    @staticmethod
    def _validate_url(url: str) -> None:
        if not isinstance(url, str) or not url:
            raise InvalidInput("Invalid URL format")
        try:
            parts = urlsplit(url)
            well_formed = bool(parts.netloc) and bool(validators.url(url))
        except ValueError as exc:
            raise InvalidInput("Invalid URL format") from exc
        if parts.scheme.lower() not in ALLOWED_SCHEMES:
            raise InvalidInput("Only HTTP and HTTPS URLs are allowed")
        if not well_formed:
            raise InvalidInput("Invalid URL format")

    @staticmethod
    def _expiry_from_hours(expires_in_hours: int | None) -> datetime.datetime | None:
        if expires_in_hours is None:
            return None
        if isinstance(expires_in_hours, bool) or not isinstance(expires_in_hours, int) or expires_in_hours <= 0:
            raise InvalidInput("expires_in_hours must be a positive integer")
        try:
            return _utcnow() + datetime.timedelta(hours=expires_in_hours)
        except OverflowError as exc:
            raise InvalidInput("expires_in_hours is too large") from exc

    async def _claim_custom_code(self, custom_code: str) -> str:
        if not is_valid_custom_code(custom_code):
            raise InvalidInput("Invalid custom code format")
        if custom_code.lower() in RESERVED_CODES:
            raise InvalidInput(f"Custom code '{custom_code}' is reserved")
        try:
            existing = await self._store.get_by_code(custom_code)
        except StorageError as exc:
            raise Unavailable() from exc
        if existing is not None:
            raise Conflict(f"Custom code '{custom_code}' is already taken")
        return custom_code

    async def _insert(self, short_code: str, url: str, expires_at: datetime.datetime | None) -> None:
        link = Link(
            id=uuid.uuid4(),
            short_code=short_code,
            original_url=url,
            clicks=0,
            created_at=_utcnow(),
            expires_at=expires_at,
        )
        try:
            await self._store.create(link)
        except DuplicateShortCode:
            raise
        except StorageError as exc:
            self._logger.error(f"Store insert failed for {short_code}: {exc}")
            raise Unavailable() from exc

    async def _insert_custom(self, short_code: str, url: str, expires_at: datetime.datetime | None) -> None:
        try:
            await self._insert(short_code, url, expires_at)
        except DuplicateShortCode as exc:
            # Lost a race with another request claiming the same code.
            raise Conflict(f"Custom code '{short_code}' is already taken") from exc

    async def _insert_generated(self, url: str, expires_at: datetime.datetime | None) -> str:
        short_code = generate_short_code_base62(url)
        for _ in range(self._settings.CODE_COLLISION_RETRIES + 1):
            try:
                await self._insert(short_code, url, expires_at)
                return short_code
            except DuplicateShortCode:
                CODE_COLLISIONS_TOTAL.inc()
                self._logger.info(f"Generated code {short_code} already taken, retrying with salt")
                short_code = generate_short_code_with_timestamp(url)
        raise Conflict("Could not allocate a unique short code")

    async def _lookup_cache(self, short_code: str) -> str | None:
        try:
            return await self._cache.get(url_key(short_code))
        except CacheUnavailable as exc:
            self._logger.warning(f"Cache lookup failed for {short_code}, falling back to store: {exc}")
            return None

    async def _populate_cache(
        self,
        short_code: str,
        url: str,
        ttl: int | None = None,
        expires_at: datetime.datetime | None = None,
    ) -> None:
        if expires_at is not None:
            remaining = int((expires_at - _utcnow()).total_seconds())
            if remaining <= 0:
                return
            ttl = min(ttl or int(DEFAULT_TTL.total_seconds()), remaining)
        try:
            if ttl is None:
                await self._cache.set_default(url_key(short_code), url)
            else:
                await self._cache.set(url_key(short_code), url, ttl)
        except CacheUnavailable as exc:
            self._logger.warning(f"Failed to cache link {short_code}: {exc}")

    async def _reset_click_counter(self, short_code: str) -> None:
        try:
            await self._cache.delete(click_key(short_code))
        except CacheUnavailable as exc:
            self._logger.warning(f"Failed to reset click counter for {short_code}: {exc}")
