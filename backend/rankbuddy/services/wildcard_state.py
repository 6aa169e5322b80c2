"""
wildcard_state.py

Per-media-type wildcard progress: which candidate ids were compared or
skipped, whether the curated baseline is done, and the round counters.
One MediaTypeState per media type replaces separate movie/TV variables.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Set

from rankbuddy.schemas import MediaType
from rankbuddy.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

PATTERN_CYCLE = 5
KNOWN_VS_KNOWN_SLOT = 4


@dataclass
class MediaTypeState:
    compared_ids: List[int] = field(default_factory=list)
    skipped_ids: List[int] = field(default_factory=list)
    baseline_complete: bool = False
    comparison_count: int = 0
    pattern: int = 0

    def exclusion_set(self, rated_ids: Iterable[int] = (), watchlist_ids: Iterable[int] = ()) -> Set[int]:
        excluded = set(self.compared_ids)
        excluded.update(self.skipped_ids)
        excluded.update(rated_ids)
        excluded.update(watchlist_ids)
        return excluded

    def mark_compared(self, item_id: int) -> bool:
        if item_id in self.compared_ids:
            return False
        self.compared_ids.append(item_id)
        return True

    def mark_skipped(self, item_id: int) -> bool:
        if item_id in self.skipped_ids:
            return False
        self.skipped_ids.append(item_id)
        return True

    def forget(self, item_id: int) -> None:
        """Drop an id from the compared/skipped lists (undo only)."""
        self.compared_ids = [i for i in self.compared_ids if i != item_id]
        self.skipped_ids = [i for i in self.skipped_ids if i != item_id]

    def advance(self) -> None:
        self.comparison_count += 1
        self.pattern = (self.pattern + 1) % PATTERN_CYCLE

    def rewind(self) -> None:
        self.comparison_count = max(0, self.comparison_count - 1)
        self.pattern = (self.pattern - 1) % PATTERN_CYCLE

    def complete_baseline(self) -> bool:
        """Flip the baseline flag once; returns False if it was already set."""
        if self.baseline_complete:
            return False
        self.baseline_complete = True
        self.pattern = 0
        return True


class WildcardStateStore:
    """Reads and writes MediaTypeState through the key-value store."""

    FIELDS = ("compared", "skipped", "baseline_complete", "comparison_count", "pattern")

    def __init__(self, store: KeyValueStore):
        self.store = store

    @staticmethod
    def key(media_type: MediaType, name: str) -> str:
        return f"wildcard:{MediaType(media_type).value}:{name}"

    async def load(self, media_type: MediaType) -> MediaTypeState:
        compared = await self.store.get(self.key(media_type, "compared")) or []
        skipped = await self.store.get(self.key(media_type, "skipped")) or []
        baseline = await self.store.get(self.key(media_type, "baseline_complete"))
        count = await self.store.get(self.key(media_type, "comparison_count"))
        pattern = await self.store.get(self.key(media_type, "pattern"))
        state = MediaTypeState(
            compared_ids=[int(i) for i in compared],
            skipped_ids=[int(i) for i in skipped],
            baseline_complete=bool(baseline),
            comparison_count=max(0, int(count or 0)),
            pattern=int(pattern or 0) % PATTERN_CYCLE,
        )
        logger.debug(
            f"Loaded {media_type} wildcard state: {len(state.compared_ids)} compared, "
            f"{len(state.skipped_ids)} skipped, baseline={state.baseline_complete}, pattern={state.pattern}"
        )
        return state

    async def save(self, media_type: MediaType, state: MediaTypeState) -> None:
        await self.store.set(self.key(media_type, "compared"), list(state.compared_ids))
        await self.store.set(self.key(media_type, "skipped"), list(state.skipped_ids))
        await self.store.set(self.key(media_type, "baseline_complete"), state.baseline_complete)
        await self.store.set(self.key(media_type, "comparison_count"), state.comparison_count)
        await self.store.set(self.key(media_type, "pattern"), state.pattern)

    async def clear(self, media_type: MediaType) -> None:
        for name in self.FIELDS:
            await self.store.remove(self.key(media_type, name))
