"""
comparison_session.py

Orchestrates wildcard rounds end to end for one local user.

States: IDLE -> LOADING -> AWAITING_DECISION -> RESOLVING -> (LOADING ...)
and ERROR when pairing fails. Exactly one pair is pending at a time and it
accepts exactly one decision. Every resolved round advances the per-media-type
pattern/counter, may add the candidate id to the exclusion lists, and records
one undo entry. Rated items and the watchlist belong to the caller; changes
are reported through SessionCallbacks.
"""
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union

from rankbuddy.core.exceptions import DecisionRejected, PersistenceFailure, WildcardError
from rankbuddy.schemas import CandidateItem, Filters, MediaType, RatedItem
from rankbuddy.services.content_pool import ContentPoolManager
from rankbuddy.services.pairing_scheduler import Pairing, PairingScheduler
from rankbuddy.services.rating_engine import RatingEngine
from rankbuddy.services.undo_log import (
    ComparisonAction,
    KnownComparisonAction,
    LastAction,
    SkipAction,
    ToughAction,
    ToughKnownAction,
    UndoLog,
    WatchlistAction,
)
from rankbuddy.services.wildcard_state import MediaTypeState, WildcardStateStore

logger = logging.getLogger(__name__)

SOURCE_UNDO = "undo"


class SessionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    AWAITING_DECISION = "awaiting_decision"
    RESOLVING = "resolving"
    ERROR = "error"


class Side(str, Enum):
    RATED = "rated"            # the already-rated item shown first
    CHALLENGER = "challenger"  # the candidate, or the second rated item


@dataclass(frozen=True)
class Win:
    side: Side


@dataclass(frozen=True)
class TooTough:
    pass


@dataclass(frozen=True)
class AddToWatchlist:
    pass


@dataclass(frozen=True)
class Skip:
    pass


Decision = Union[Win, TooTough, AddToWatchlist, Skip]


@dataclass
class SessionCallbacks:
    on_ratings_changed: Optional[Callable[[List[RatedItem]], Any]] = None
    on_ratings_removed: Optional[Callable[[List[CandidateItem]], Any]] = None
    on_watchlist_add: Optional[Callable[[CandidateItem], Any]] = None
    on_watchlist_remove: Optional[Callable[[CandidateItem], Any]] = None
    on_error: Optional[Callable[[str, str], Any]] = None


class ComparisonSession:
    def __init__(
        self,
        pool_manager: ContentPoolManager,
        scheduler: Optional[PairingScheduler] = None,
        engine: Optional[RatingEngine] = None,
        state_store: Optional[WildcardStateStore] = None,
        callbacks: Optional[SessionCallbacks] = None,
        media_type: MediaType = MediaType.MOVIE,
    ):
        self.pool_manager = pool_manager
        self.scheduler = scheduler or PairingScheduler(pool_manager)
        self.engine = engine or RatingEngine()
        self.state_store = state_store
        self.callbacks = callbacks or SessionCallbacks()
        self.media_type = MediaType(media_type)
        self.filters = Filters()
        self.undo_log = UndoLog()

        self.status = SessionState.IDLE
        self.pending: Optional[Pairing] = None
        self.last_error: Optional[WildcardError] = None

        self._rated: Dict[MediaType, List[RatedItem]] = {mt: [] for mt in MediaType}
        self._watchlist: Dict[MediaType, Set[int]] = {mt: set() for mt in MediaType}
        self._states: Dict[MediaType, MediaTypeState] = {mt: MediaTypeState() for mt in MediaType}

        self._alive = True
        self._generation = 0
        self._in_flight_generation: Optional[int] = None

    # ------------------------------------------------------------------ state

    @property
    def state(self) -> MediaTypeState:
        return self._states[self.media_type]

    @property
    def rated_items(self) -> List[RatedItem]:
        return list(self._rated[self.media_type])

    @property
    def watchlist_ids(self) -> Set[int]:
        return set(self._watchlist[self.media_type])

    @property
    def fetch_in_flight(self) -> bool:
        return self._in_flight_generation is not None and self._in_flight_generation == self._generation

    def exclusion_set(self, media_type: Optional[MediaType] = None) -> Set[int]:
        mt = MediaType(media_type or self.media_type)
        return self._states[mt].exclusion_set(
            rated_ids=(r.id for r in self._rated[mt]),
            watchlist_ids=self._watchlist[mt],
        )

    def set_library(self, media_type: MediaType, rated_items: Iterable[RatedItem], watchlist_ids: Iterable[int] = ()) -> None:
        """Seed the caller-owned rated list and watchlist for one media type."""
        mt = MediaType(media_type)
        self._rated[mt] = list(rated_items)
        self._watchlist[mt] = set(watchlist_ids)

    async def load(self) -> None:
        """Load persisted per-media-type progress and the streaming cache."""
        if self.state_store is not None:
            for mt in MediaType:
                try:
                    self._states[mt] = await self.state_store.load(mt)
                except PersistenceFailure as e:
                    logger.error(f"Failed to load {mt.value} wildcard state, starting fresh: {e}")
                    self._states[mt] = MediaTypeState()
        await self.pool_manager.streaming_cache.load()

    async def _persist_state(self, media_type: MediaType) -> None:
        if self.state_store is None:
            return
        try:
            await self.state_store.save(media_type, self._states[media_type])
        except PersistenceFailure as e:
            logger.error(f"Failed to save {media_type.value} wildcard state, keeping in-memory state: {e}")

    async def _emit(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except PersistenceFailure as e:
            logger.error(f"Callback {getattr(callback, '__name__', callback)} failed to persist: {e}")

    def _invalidate_pending(self) -> None:
        self._generation += 1
        self.pending = None
        if self.status in (SessionState.AWAITING_DECISION, SessionState.LOADING):
            self.status = SessionState.IDLE

    # ---------------------------------------------------------------- pairing

    async def request_next(self) -> Optional[Pairing]:
        """Fetch and expose the next pair. Duplicate or stale fetches return None."""
        if not self._alive:
            return None
        if self.status == SessionState.AWAITING_DECISION and self.pending is not None:
            return self.pending
        if self.status == SessionState.RESOLVING:
            logger.debug("Ignoring fetch while a decision is resolving")
            return None
        if self.fetch_in_flight:
            logger.debug("Already loading, dropping duplicate fetch")
            return None

        generation = self._generation
        media_type = self.media_type
        state = self._states[media_type]
        self._in_flight_generation = generation
        self.status = SessionState.LOADING
        self.last_error = None
        try:
            pairing = await self.scheduler.select_next(
                media_type,
                self._rated[media_type],
                self.filters,
                state.pattern,
                state.baseline_complete,
                self.exclusion_set(media_type),
            )
        except WildcardError as e:
            if self._is_stale(generation, media_type):
                logger.info(f"Discarding failure of superseded fetch: {e.kind}")
                return None
            await self._fail(e)
            return None
        finally:
            if self._in_flight_generation == generation:
                self._in_flight_generation = None

        if self._is_stale(generation, media_type):
            logger.info("Discarding stale pair from superseded fetch")
            return None

        if pairing.completes_baseline and state.complete_baseline():
            logger.info(f"Baseline complete for {media_type.value}, pattern reset")
            await self._persist_state(media_type)

        self.pending = pairing
        self.status = SessionState.AWAITING_DECISION
        return pairing

    def _is_stale(self, generation: int, media_type: MediaType) -> bool:
        return not self._alive or generation != self._generation or media_type != self.media_type

    async def _fail(self, error: WildcardError) -> None:
        logger.warning(f"Wildcard round failed ({error.kind}): {error.message}")
        self.pending = None
        self.last_error = error
        self.status = SessionState.ERROR
        await self._emit(self.callbacks.on_error, error.kind, error.message)

    async def retry(self) -> Optional[Pairing]:
        if self.status == SessionState.ERROR:
            self.status = SessionState.IDLE
            self.last_error = None
        return await self.request_next()

    # -------------------------------------------------------------- decisions

    async def decide(self, decision: Decision, fetch_next: bool = True) -> Optional[Pairing]:
        """Apply one decision to the pending pair, then load the next pair."""
        if self.status != SessionState.AWAITING_DECISION or self.pending is None:
            raise DecisionRejected(f"No pair awaiting a decision (state={self.status.value})", media_type=self.media_type.value)

        pairing = self.pending
        media_type = pairing.media_type
        state = self._states[media_type]
        self.status = SessionState.RESOLVING
        try:
            action, updated, watchlist_item = self._resolve(pairing, decision, state)
        except DecisionRejected:
            self.status = SessionState.AWAITING_DECISION
            raise

        # commit: both ratings land together or not at all
        if updated:
            self._upsert(media_type, updated)
        if watchlist_item is not None:
            self._watchlist[media_type].add(watchlist_item.id)
        state.advance()
        self.undo_log.record(action)
        self.pending = None
        self.status = SessionState.IDLE
        logger.info(f"Resolved {action.kind} round for {media_type.value}: pattern={state.pattern} count={state.comparison_count}")

        await self._persist_state(media_type)
        if updated:
            await self._emit(self.callbacks.on_ratings_changed, updated)
        if watchlist_item is not None:
            await self._emit(self.callbacks.on_watchlist_add, watchlist_item)

        if not fetch_next:
            return None
        return await self.request_next()

    def _challenger_as_rated(self, challenger: Union[RatedItem, CandidateItem]) -> RatedItem:
        if isinstance(challenger, RatedItem):
            return challenger
        return challenger.to_rated(challenger.prior_rating)

    def _resolve(self, pairing: Pairing, decision: Decision, state: MediaTypeState):
        """Compute the outcome without mutating session state (except exclusion lists)."""
        rated, challenger = pairing.rated, pairing.challenger
        known = pairing.known_vs_known
        mt = pairing.media_type

        if isinstance(decision, Win):
            other = self._challenger_as_rated(challenger)
            if decision.side == Side.RATED:
                result = self.engine.adjust(rated, other)
                updated = [result.updated_winner, result.updated_loser]
            else:
                result = self.engine.adjust(other, rated)
                updated = [result.updated_loser, result.updated_winner]
            if known:
                return KnownComparisonAction(media_type=mt, first_before=rated, second_before=challenger), updated, None
            state.mark_compared(challenger.id)
            return ComparisonAction(media_type=mt, rated_before=rated, candidate_before=challenger), updated, None

        if isinstance(decision, TooTough):
            other = self._challenger_as_rated(challenger)
            result = self.engine.tough_choice(rated, other, known_vs_known=known)
            updated = [result.updated_first, result.updated_second]
            if known:
                return ToughKnownAction(media_type=mt, first_before=rated, second_before=challenger), updated, None
            state.mark_compared(challenger.id)
            return ToughAction(media_type=mt, rated_before=rated, candidate_before=challenger), updated, None

        if isinstance(decision, AddToWatchlist):
            if known:
                raise DecisionRejected(f"{challenger.title} is already in your rated list", media_type=mt.value)
            state.mark_compared(challenger.id)
            return WatchlistAction(media_type=mt, rated=rated, candidate=challenger), [], challenger

        if isinstance(decision, Skip):
            if known:
                return SkipAction(media_type=mt, rated=rated, challenger=challenger, skipped_id=None), [], None
            state.mark_skipped(challenger.id)
            return SkipAction(media_type=mt, rated=rated, challenger=challenger, skipped_id=challenger.id), [], None

        raise DecisionRejected(f"Unknown decision {decision!r}", media_type=mt.value)

    def _upsert(self, media_type: MediaType, items: List[RatedItem]) -> None:
        by_id = {item.id: item for item in items}
        current = self._rated[media_type]
        merged = [by_id.pop(r.id, r) for r in current]
        merged.extend(by_id.values())
        self._rated[media_type] = merged

    def _remove_rated(self, media_type: MediaType, item_id: int) -> None:
        self._rated[media_type] = [r for r in self._rated[media_type] if r.id != item_id]

    # ------------------------------------------------------------------- undo

    async def undo(self) -> Optional[Pairing]:
        """Reverse the last outcome and re-present its pair. No-op when the slot is empty."""
        if self.status == SessionState.RESOLVING:
            logger.debug("Ignoring undo while a decision is resolving")
            return None
        action: Optional[LastAction] = self.undo_log.pop(self.media_type)
        if action is None:
            return None

        mt = self.media_type
        state = self._states[mt]
        restored: List[RatedItem] = []
        removed: List[CandidateItem] = []
        watchlist_removed: Optional[CandidateItem] = None

        if isinstance(action, (ComparisonAction, ToughAction)):
            restored = [action.rated_before]
            removed = [action.candidate_before]
            self._remove_rated(mt, action.candidate_before.id)
            state.forget(action.candidate_before.id)
        elif isinstance(action, (KnownComparisonAction, ToughKnownAction)):
            restored = [action.first_before, action.second_before]
        elif isinstance(action, WatchlistAction):
            watchlist_removed = action.candidate
            self._watchlist[mt].discard(action.candidate.id)
            state.forget(action.candidate.id)
        elif isinstance(action, SkipAction):
            if action.skipped_id is not None:
                state.forget(action.skipped_id)

        if restored:
            self._upsert(mt, restored)
        state.rewind()

        # supersede any fetch still running for the discarded next pair
        self._generation += 1
        self.pending = Pairing(media_type=mt, rated=action.pair[0], challenger=action.pair[1], source=SOURCE_UNDO)
        self.status = SessionState.AWAITING_DECISION
        self.last_error = None
        logger.info(f"Undid {action.kind} round for {mt.value}: pattern={state.pattern} count={state.comparison_count}")

        await self._persist_state(mt)
        if restored:
            await self._emit(self.callbacks.on_ratings_changed, restored)
        if removed:
            await self._emit(self.callbacks.on_ratings_removed, removed)
        if watchlist_removed is not None:
            await self._emit(self.callbacks.on_watchlist_remove, watchlist_removed)
        return self.pending

    # ------------------------------------------------------------- lifecycle

    def set_filters(self, filters: Filters) -> bool:
        """Replace the filters; returns True if they changed (pool and pending pair dropped)."""
        if filters.signature() == self.filters.signature():
            return False
        self.filters = filters
        self.pool_manager.invalidate()
        self._invalidate_pending()
        if self.status == SessionState.ERROR:
            self.status = SessionState.IDLE
        return True

    def switch_media_type(self, media_type: MediaType) -> None:
        mt = MediaType(media_type)
        if mt == self.media_type:
            return
        logger.info(f"Media type changed to {mt.value}, resetting pending pair")
        self.media_type = mt
        self.pool_manager.invalidate()
        self._invalidate_pending()
        if self.status == SessionState.ERROR:
            self.status = SessionState.IDLE

    async def reset(self) -> None:
        """Clear comparison progress for the current media type; ratings are kept."""
        mt = self.media_type
        self._states[mt] = MediaTypeState()
        self.undo_log.clear()
        self.pool_manager.invalidate()
        self._invalidate_pending()
        self.status = SessionState.IDLE
        self.last_error = None
        if self.state_store is not None:
            try:
                await self.state_store.clear(mt)
            except PersistenceFailure as e:
                logger.error(f"Failed to clear {mt.value} wildcard state: {e}")
        logger.info(f"{mt.value} wildcard state reset")

    def close(self) -> None:
        """Tear down; results of fetches still outstanding are discarded."""
        self._alive = False
        self.pending = None
        self.status = SessionState.IDLE
