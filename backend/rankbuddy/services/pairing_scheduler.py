"""
pairing_scheduler.py

Chooses the next wildcard pair.

Pattern slot 4 (every fifth round) pairs two already-rated items when at least
five exist. Every other round pairs one rated item against a new candidate,
sourced in priority order:
1. the filtered pool, whenever any filter is active (bypasses the baseline);
2. the curated baseline ids, until no more than 15% of them remain;
3. a random page of the live popularity list.
"""
import logging
import random
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set, Union

from rankbuddy.core.config import settings
from rankbuddy.core.exceptions import FilterTooNarrow, InsufficientRatings, PoolExhausted
from rankbuddy.schemas import CandidateItem, Filters, MediaType, RatedItem
from rankbuddy.services.baseline_seeds import BASELINE_IDS
from rankbuddy.services.content_pool import ContentPoolManager
from rankbuddy.services.wildcard_state import KNOWN_VS_KNOWN_SLOT

logger = logging.getLogger(__name__)

SOURCE_KNOWN = "known"
SOURCE_POOL = "pool"
SOURCE_BASELINE = "baseline"
SOURCE_POPULAR = "popular"


@dataclass(frozen=True)
class Pairing:
    media_type: MediaType
    rated: RatedItem
    challenger: Union[RatedItem, CandidateItem]
    source: str
    completes_baseline: bool = False

    @property
    def known_vs_known(self) -> bool:
        return isinstance(self.challenger, RatedItem)


class PairingScheduler:
    def __init__(
        self,
        pool_manager: ContentPoolManager,
        rng: Optional[random.Random] = None,
        baseline_ids: Optional[dict] = None,
    ):
        self.pool_manager = pool_manager
        self.rng = rng or random.Random()
        self.baseline_ids = baseline_ids if baseline_ids is not None else BASELINE_IDS

    def _eligible_rated(self, rated_items: Sequence[RatedItem], filters: Filters) -> List[RatedItem]:
        if not filters.has_genre_filter:
            return list(rated_items)
        return [r for r in rated_items if filters.matches_genres(r.genre_ids)]

    def remaining_baseline(self, media_type: MediaType, rated_ids: Set[int], exclusion: Set[int]) -> List[int]:
        return [i for i in self.baseline_ids.get(MediaType(media_type), []) if i not in exclusion and i not in rated_ids]

    def baseline_threshold(self, media_type: MediaType) -> int:
        return int(len(self.baseline_ids.get(MediaType(media_type), [])) * settings.baseline_remaining_ratio)

    async def select_next(
        self,
        media_type: MediaType,
        rated_items: Sequence[RatedItem],
        filters: Filters,
        pattern: int,
        baseline_complete: bool,
        exclusion: Set[int],
    ) -> Pairing:
        mt = MediaType(media_type)
        if len(rated_items) < settings.min_rated_items:
            raise InsufficientRatings(
                f"At least {settings.min_rated_items} rated {mt.value} items are needed, have {len(rated_items)}",
                media_type=mt.value,
            )

        eligible = self._eligible_rated(rated_items, filters)

        if pattern == KNOWN_VS_KNOWN_SLOT and len(rated_items) >= settings.min_rated_for_known_pair:
            if len(eligible) < 2:
                raise FilterTooNarrow(
                    f"Only {len(eligible)} rated {mt.value} items match the genre filter",
                    media_type=mt.value,
                )
            first, second = self.rng.sample(eligible, 2)
            logger.info(f"Known-vs-known round: {first.title} vs {second.title}")
            return Pairing(media_type=mt, rated=first, challenger=second, source=SOURCE_KNOWN)

        if not eligible:
            raise FilterTooNarrow(f"No rated {mt.value} items match the genre filter", media_type=mt.value)
        rated = self.rng.choice(eligible)
        excluded = set(exclusion) | {rated.id}

        if filters.is_active:
            candidate = await self.pool_manager.draw(mt, filters, excluded)
            return Pairing(media_type=mt, rated=rated, challenger=candidate, source=SOURCE_POOL)

        completes_baseline = False
        if not baseline_complete:
            rated_ids = {r.id for r in rated_items}
            remaining = self.remaining_baseline(mt, rated_ids, set(exclusion))
            if not remaining:
                logger.info(f"All baseline {mt.value} ids compared, switching to popularity")
                completes_baseline = True
            else:
                completes_baseline = len(remaining) <= self.baseline_threshold(mt)
                choices = [i for i in remaining if i != rated.id]
                if choices:
                    candidate = await self.pool_manager.fetch_candidate(mt, self.rng.choice(choices))
                    logger.info(f"Using baseline {mt.value}: {candidate.title} ({len(remaining)} remaining)")
                    return Pairing(
                        media_type=mt,
                        rated=rated,
                        challenger=candidate,
                        source=SOURCE_BASELINE,
                        completes_baseline=completes_baseline,
                    )

        candidate = await self._popular_candidate(mt, excluded)
        return Pairing(
            media_type=mt,
            rated=rated,
            challenger=candidate,
            source=SOURCE_POPULAR,
            completes_baseline=completes_baseline,
        )

    async def _popular_candidate(self, media_type: MediaType, excluded: Set[int]) -> CandidateItem:
        page = self.rng.randint(1, settings.popular_max_page)
        results = await self.pool_manager.catalog.popular(media_type, page)
        eligible = [c for c in results if c.poster_path and c.id not in excluded]
        if not eligible:
            raise PoolExhausted(
                f"No new {media_type.value} items found on popularity page {page}",
                media_type=media_type.value,
            )
        candidate = self.rng.choice(eligible)
        services = await self.pool_manager.get_streaming_data(media_type, candidate.id)
        return candidate.model_copy(update={"streaming_services": services})
