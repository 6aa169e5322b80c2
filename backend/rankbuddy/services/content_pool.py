"""
content_pool.py

Filtered candidate pools and streaming availability for wildcard rounds.

ContentPoolManager owns two caches:
- the filtered pool for the current (media type, filters), rebuilt lazily after
  any filter change;
- StreamingCache, id -> consolidated provider list, persisted through the
  key-value store with its own load/save lifecycle (unbounded, no TTL).
"""
import logging
import random
from typing import Any, Dict, List, Optional, Protocol, Set, Tuple

from rankbuddy.core.config import settings
from rankbuddy.core.exceptions import CatalogUnavailable, PersistenceFailure, PoolExhausted
from rankbuddy.schemas import CandidateItem, Filters, MediaType, PaymentType, StreamingService
from rankbuddy.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

STREAMING_CACHE_KEY = "streaming_cache"

# Supported streaming services (TMDB provider ids)
STREAMING_SERVICES = [
    {"id": 8, "name": "Netflix"},
    {"id": 350, "name": "Apple TV+"},
    {"id": 15, "name": "Hulu"},
    {"id": 384, "name": "HBO Max"},
    {"id": 337, "name": "Disney+"},
    {"id": 387, "name": "Peacock"},
    {"id": 9, "name": "Prime Video"},
    {"id": 192, "name": "YouTube"},
    {"id": 2, "name": "Apple TV"},
]

# Storefront SKUs that collapse into one canonical provider: id -> (canonical id, name)
PROVIDER_CONSOLIDATION = {
    9: (9, "Prime Video"),
    10: (9, "Prime Video"),
    2100: (9, "Prime Video"),
    350: (350, "Apple TV+"),
    2: (350, "Apple TV+"),
    8: (8, "Netflix"),
    15: (15, "Hulu"),
    384: (384, "HBO Max"),
    337: (337, "Disney+"),
    387: (387, "Peacock"),
    192: (192, "YouTube"),
}


def canonical_provider_id(provider_id: int) -> int:
    consolidated = PROVIDER_CONSOLIDATION.get(int(provider_id))
    return consolidated[0] if consolidated else int(provider_id)


def consolidate_providers(providers: Dict[str, List[Dict[str, Any]]]) -> List[StreamingService]:
    """Collapse raw {free, rent, buy} provider lists into canonical services.

    A provider listed under `free` (flatrate) anywhere wins over rent/buy for
    the same canonical id. Providers outside PROVIDER_CONSOLIDATION are dropped.
    """
    payment_by_raw: Dict[int, PaymentType] = {}
    ordered: List[Dict[str, Any]] = []
    for bucket, payment in (("free", PaymentType.FREE), ("rent", PaymentType.PAID), ("buy", PaymentType.PAID)):
        for provider in providers.get(bucket) or []:
            pid = provider.get("provider_id")
            if pid is None:
                continue
            if pid not in payment_by_raw:
                payment_by_raw[pid] = payment
                ordered.append(provider)

    consolidated: Dict[int, StreamingService] = {}
    for provider in ordered:
        pid = provider["provider_id"]
        mapping = PROVIDER_CONSOLIDATION.get(pid)
        if not mapping:
            continue
        canonical_id, name = mapping
        payment = payment_by_raw[pid]
        existing = consolidated.get(canonical_id)
        if existing is None:
            consolidated[canonical_id] = StreamingService(
                provider_id=canonical_id,
                provider_name=name,
                logo_path=provider.get("logo_path"),
                payment_type=payment,
            )
        elif payment == PaymentType.FREE and existing.payment_type != PaymentType.FREE:
            consolidated[canonical_id] = existing.model_copy(update={"payment_type": PaymentType.FREE})
    return list(consolidated.values())


class ContentCatalog(Protocol):
    async def query(self, media_type: MediaType, filters: Filters, page: int = 1) -> List[CandidateItem]: ...

    async def popular(self, media_type: MediaType, page: int = 1) -> List[CandidateItem]: ...

    async def get_details(self, media_type: MediaType, item_id: int) -> CandidateItem: ...

    async def get_providers(self, media_type: MediaType, item_id: int) -> Dict[str, List[Dict[str, Any]]]: ...

    async def provider_directory(self, media_type: MediaType) -> List[Dict[str, Any]]: ...


class StreamingCache:
    """id -> provider list, keyed per media type since TMDB ids collide across types."""

    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store = store
        self._entries: Dict[str, List[StreamingService]] = {}
        self.loaded = False

    @staticmethod
    def _key(media_type: MediaType, item_id: int) -> str:
        return f"{MediaType(media_type).value}:{item_id}"

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, media_type: MediaType, item_id: int) -> Optional[List[StreamingService]]:
        return self._entries.get(self._key(media_type, item_id))

    def put(self, media_type: MediaType, item_id: int, services: List[StreamingService]) -> None:
        self._entries[self._key(media_type, item_id)] = list(services)

    async def load(self) -> None:
        if self.store is None:
            self.loaded = True
            return
        try:
            raw = await self.store.get(STREAMING_CACHE_KEY) or {}
        except PersistenceFailure as e:
            logger.error(f"Failed to load streaming cache: {e}")
            raw = {}
        entries: Dict[str, List[StreamingService]] = {}
        for key, services in raw.items():
            try:
                entries[key] = [StreamingService(**s) for s in services]
            except (TypeError, ValueError) as e:
                logger.warning(f"Dropping malformed streaming cache entry {key}: {e}")
        # entries written before load() finished win over stale stored ones
        entries.update(self._entries)
        self._entries = entries
        self.loaded = True
        logger.info(f"Loaded streaming cache with {len(self._entries)} entries")

    async def save(self) -> None:
        if self.store is None:
            return
        payload = {k: [s.model_dump(mode="json") for s in v] for k, v in self._entries.items()}
        try:
            await self.store.set(STREAMING_CACHE_KEY, payload)
        except PersistenceFailure as e:
            logger.error(f"Failed to save streaming cache: {e}")


class ContentPoolManager:
    """Builds, caches and draws from filtered candidate pools."""

    def __init__(self, catalog: ContentCatalog, store: Optional[KeyValueStore] = None, rng: Optional[random.Random] = None):
        self.catalog = catalog
        self.streaming_cache = StreamingCache(store)
        self.rng = rng or random.Random()
        self._pool: List[CandidateItem] = []
        self._pool_key: Optional[Tuple[MediaType, Tuple]] = None

    @property
    def pool(self) -> List[CandidateItem]:
        return list(self._pool)

    def invalidate(self) -> None:
        if self._pool_key is not None:
            logger.info("Filters changed, clearing pool to rebuild on next draw")
        self._pool = []
        self._pool_key = None

    def is_current(self, media_type: MediaType, filters: Filters) -> bool:
        return self._pool_key == (MediaType(media_type), filters.signature())

    async def get_streaming_data(self, media_type: MediaType, item_id: int) -> List[StreamingService]:
        """Cache-first provider lookup. Failures are not cached and yield []."""
        if not self.streaming_cache.loaded:
            await self.streaming_cache.load()
        cached = self.streaming_cache.get(media_type, item_id)
        if cached is not None:
            return cached
        try:
            raw = await self.catalog.get_providers(media_type, item_id)
        except CatalogUnavailable as e:
            logger.warning(f"Streaming lookup failed for {media_type} {item_id}: {e}")
            return []
        services = consolidate_providers(raw)
        self.streaming_cache.put(media_type, item_id, services)
        await self.streaming_cache.save()
        return services

    async def fetch_candidate(self, media_type: MediaType, item_id: int) -> CandidateItem:
        """Full details plus streaming availability for one catalog id."""
        details = await self.catalog.get_details(media_type, item_id)
        services = await self.get_streaming_data(media_type, item_id)
        return details.model_copy(update={"streaming_services": services})

    async def build(self, media_type: MediaType, filters: Filters, exclusion: Set[int]) -> List[CandidateItem]:
        mt = MediaType(media_type)
        logger.info(
            f"Building filtered {mt.value} pool: genres={list(filters.genres)} "
            f"decades={list(filters.decades)} streaming={list(filters.streaming_services)} "
            f"excluding {len(exclusion)} ids"
        )

        collected: List[CandidateItem] = []
        seen_ids: Set[int] = set()
        failures = 0
        for page in range(1, settings.pool_max_pages + 1):
            try:
                results = await self.catalog.query(mt, filters, page)
            except CatalogUnavailable as e:
                failures += 1
                logger.warning(f"Pool page {page} failed: {e}")
                continue
            added = 0
            for c in results:
                if not c.poster_path or c.score < settings.min_score or c.id in exclusion or c.id in seen_ids:
                    continue
                seen_ids.add(c.id)
                collected.append(c)
                added += 1
            logger.debug(f"Pool page {page}: {added} eligible {mt.value} items")
            if len(collected) >= settings.pool_target_size:
                break

        if failures == settings.pool_max_pages:
            raise CatalogUnavailable(f"Discover failed for every page while building {mt.value} pool", media_type=mt.value)

        if not filters.streaming_services:
            pool = collected[:settings.pool_keep]
        else:
            wanted = {int(s) for s in filters.streaming_services}
            pool = []
            for candidate in collected[:settings.pool_streaming_probe_limit]:
                services = await self.get_streaming_data(mt, candidate.id)
                if any(canonical_provider_id(s.provider_id) in wanted for s in services):
                    pool.append(candidate.model_copy(update={"streaming_services": services}))
                if len(pool) >= settings.pool_streaming_match_limit:
                    break

        self._pool = pool
        self._pool_key = (mt, filters.signature())
        logger.info(f"Filtered {mt.value} pool ready: {len(pool)} items")
        return list(pool)

    async def draw(self, media_type: MediaType, filters: Filters, exclusion: Set[int]) -> CandidateItem:
        """Uniform draw from the pool, rebuilding once if nothing eligible remains."""
        rebuilt = False
        if not self.is_current(media_type, filters):
            await self.build(media_type, filters, exclusion)
            rebuilt = True
        eligible = [c for c in self._pool if c.id not in exclusion]
        if not eligible and not rebuilt:
            await self.build(media_type, filters, exclusion)
            eligible = [c for c in self._pool if c.id not in exclusion]
        if not eligible:
            raise PoolExhausted(f"No {MediaType(media_type).value} items match the current filters", media_type=MediaType(media_type).value)
        return self.rng.choice(eligible)

    async def available_providers(self, media_type: MediaType) -> List[Dict[str, Any]]:
        """Supported services with logos, or the static table if the catalog is down."""
        by_id = {s["id"]: s["name"] for s in STREAMING_SERVICES}
        try:
            directory = await self.catalog.provider_directory(media_type)
        except CatalogUnavailable as e:
            logger.error(f"Error fetching streaming providers: {e}")
            return [{"id": sid, "name": name, "logo_path": None, "logo_url": None} for sid, name in by_id.items()]
        providers = []
        for provider in directory:
            pid = provider.get("provider_id")
            if pid not in by_id:
                continue
            logo = provider.get("logo_path")
            providers.append({
                "id": pid,
                "name": by_id[pid] or provider.get("provider_name"),
                "logo_path": logo,
                "logo_url": f"https://image.tmdb.org/t/p/w92{logo}" if logo else None,
            })
        return providers
