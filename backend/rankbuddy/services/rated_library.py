"""
rated_library.py

The user's rated items and watchlist, per media type, persisted through the
key-value store. Receives the session's outbound callbacks.
"""
import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from rankbuddy.core.exceptions import PersistenceFailure
from rankbuddy.schemas import CandidateItem, MediaType, RatedItem
from rankbuddy.services.comparison_session import SessionCallbacks
from rankbuddy.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class RatedLibrary:
    def __init__(self, store: KeyValueStore):
        self.store = store
        self._rated: Dict[MediaType, Dict[int, RatedItem]] = {}
        self._watchlist: Dict[MediaType, Dict[int, CandidateItem]] = {}
        self._loaded: Set[MediaType] = set()
        self.last_error: Optional[Tuple[str, str]] = None

    @staticmethod
    def key(media_type: MediaType, name: str) -> str:
        return f"library:{MediaType(media_type).value}:{name}"

    async def _ensure(self, media_type: MediaType) -> MediaType:
        """Load a media type's library once; while the store is down, work in memory and retry the read later."""
        mt = MediaType(media_type)
        if mt in self._loaded:
            return mt
        self._rated.setdefault(mt, {})
        self._watchlist.setdefault(mt, {})
        try:
            rated_raw = await self.store.get(self.key(mt, "rated")) or []
            watch_raw = await self.store.get(self.key(mt, "watchlist")) or []
        except PersistenceFailure as e:
            logger.error(f"Failed to load {mt.value} library, using in-memory items: {e}")
            return mt

        rated: Dict[int, RatedItem] = {}
        for raw in rated_raw:
            try:
                item = RatedItem(**raw)
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed rated {mt.value} entry: {e}")
                continue
            rated[item.id] = item
        watchlist: Dict[int, CandidateItem] = {}
        for raw in watch_raw:
            try:
                item = CandidateItem(**raw)
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed watchlist {mt.value} entry: {e}")
                continue
            watchlist[item.id] = item
        # changes made while the store was unreachable win over stored entries
        rated.update(self._rated[mt])
        watchlist.update(self._watchlist[mt])
        self._rated[mt] = rated
        self._watchlist[mt] = watchlist
        self._loaded.add(mt)
        logger.debug(f"Loaded {len(rated)} rated and {len(watchlist)} watchlist {mt.value} items")
        return mt

    async def _save_rated(self, mt: MediaType) -> None:
        await self.store.set(self.key(mt, "rated"), [r.model_dump(mode="json", exclude={"elo_rating"}) for r in self._rated[mt].values()])

    async def _save_watchlist(self, mt: MediaType) -> None:
        await self.store.set(self.key(mt, "watchlist"), [c.model_dump(mode="json") for c in self._watchlist[mt].values()])

    async def rated_items(self, media_type: MediaType) -> List[RatedItem]:
        mt = await self._ensure(media_type)
        return list(self._rated[mt].values())

    async def watchlist(self, media_type: MediaType) -> List[CandidateItem]:
        mt = await self._ensure(media_type)
        return list(self._watchlist[mt].values())

    async def watchlist_ids(self, media_type: MediaType) -> List[int]:
        return [c.id for c in await self.watchlist(media_type)]

    async def replace_ratings(self, media_type: MediaType, items: Iterable[RatedItem]) -> List[RatedItem]:
        mt = await self._ensure(media_type)
        self._rated[mt] = {item.id: item.model_copy(update={"media_type": mt}) for item in items}
        await self._save_rated(mt)
        logger.info(f"Replaced {mt.value} ratings with {len(self._rated[mt])} items")
        return list(self._rated[mt].values())

    # session callbacks

    async def on_ratings_changed(self, items: List[RatedItem]) -> None:
        touched = set()
        for item in items:
            mt = await self._ensure(item.media_type)
            self._rated[mt][item.id] = item
            touched.add(mt)
        for mt in touched:
            await self._save_rated(mt)

    async def on_ratings_removed(self, items: List[CandidateItem]) -> None:
        touched = set()
        for item in items:
            mt = await self._ensure(item.media_type)
            if self._rated[mt].pop(item.id, None) is not None:
                touched.add(mt)
        for mt in touched:
            await self._save_rated(mt)

    async def on_watchlist_add(self, item: CandidateItem) -> None:
        mt = await self._ensure(item.media_type)
        self._watchlist[mt][item.id] = item
        await self._save_watchlist(mt)
        logger.info(f"Added {item.title} to {mt.value} watchlist")

    async def on_watchlist_remove(self, item: CandidateItem) -> None:
        mt = await self._ensure(item.media_type)
        if self._watchlist[mt].pop(item.id, None) is not None:
            await self._save_watchlist(mt)

    def on_error(self, kind: str, message: str) -> None:
        self.last_error = (kind, message)

    def callbacks(self) -> SessionCallbacks:
        return SessionCallbacks(
            on_ratings_changed=self.on_ratings_changed,
            on_ratings_removed=self.on_ratings_removed,
            on_watchlist_add=self.on_watchlist_add,
            on_watchlist_remove=self.on_watchlist_remove,
            on_error=self.on_error,
        )
