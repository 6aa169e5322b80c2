"""
Wildcard comparison endpoints.

One process-wide ComparisonSession (single local user) shared by all
requests; the media type in the path selects which per-media-type state the
session works on.
"""
import logging
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from rankbuddy.core import metrics
from rankbuddy.core.exceptions import WildcardError
from rankbuddy.schemas import CandidateItem, DECADES, Filters, MediaType, RatedItem
from rankbuddy.services.comparison_session import (
    AddToWatchlist,
    ComparisonSession,
    SessionState,
    Side,
    Skip,
    TooTough,
    Win,
)
from rankbuddy.services.content_pool import ContentPoolManager
from rankbuddy.services.kv_store import KeyValueStore, RedisKeyValueStore
from rankbuddy.services.pairing_scheduler import Pairing
from rankbuddy.services.rated_library import RatedLibrary
from rankbuddy.services.tmdb_client import TMDBCatalog
from rankbuddy.services.wildcard_state import WildcardStateStore

logger = logging.getLogger(__name__)
router = APIRouter()

STATUS_BY_KIND = {
    "insufficient_ratings": 422,
    "filter_too_narrow": 422,
    "pool_exhausted": 409,
    "decision_rejected": 409,
    "undo_rejected": 409,
    "catalog_unavailable": 503,
    "persistence_failure": 503,
}


# Request/Response Models
class DecisionRequest(BaseModel):
    action: Literal["win", "too_tough", "watchlist", "skip"] = Field(..., description="Outcome for the pending pair")
    winner: Optional[Side] = Field(default=None, description="Required for 'win': 'rated' or 'challenger'")


class FiltersRequest(BaseModel):
    genres: List[int] = Field(default_factory=list, description="TMDB genre ids")
    decades: List[str] = Field(default_factory=list, description=f"Any of {', '.join(DECADES)}")
    streaming_services: List[int] = Field(default_factory=list, description="Canonical TMDB provider ids")


class ErrorDetail(BaseModel):
    kind: str
    message: str


class PairResponse(BaseModel):
    media_type: MediaType
    state: SessionState
    source: Optional[str] = None
    known_vs_known: bool = False
    rated: Optional[Dict[str, Any]] = None
    challenger: Optional[Dict[str, Any]] = None
    error: Optional[ErrorDetail] = None


class StateResponse(BaseModel):
    media_type: MediaType
    state: SessionState
    pattern: int
    comparison_count: int
    baseline_complete: bool
    compared_count: int
    skipped_count: int
    rated_count: int
    watchlist_count: int
    undo_available: bool
    filters: Dict[str, Any]


class WildcardRuntime:
    """The shared session plus the rated library that feeds it."""

    def __init__(self, session: ComparisonSession, library: RatedLibrary):
        self.session = session
        self.library = library
        self._loaded = False

    async def activate(self, media_type: MediaType) -> ComparisonSession:
        if not self._loaded:
            await self.session.load()
            self._loaded = True
        self.session.switch_media_type(media_type)
        self.session.set_library(
            media_type,
            await self.library.rated_items(media_type),
            await self.library.watchlist_ids(media_type),
        )
        return self.session


def build_runtime(store: Optional[KeyValueStore] = None, catalog=None) -> WildcardRuntime:
    store = store if store is not None else RedisKeyValueStore()
    library = RatedLibrary(store)
    pool_manager = ContentPoolManager(catalog if catalog is not None else TMDBCatalog(), store)
    session = ComparisonSession(
        pool_manager,
        state_store=WildcardStateStore(store),
        callbacks=library.callbacks(),
    )
    return WildcardRuntime(session, library)


_runtime: Optional[WildcardRuntime] = None


# Dependency
async def get_runtime() -> WildcardRuntime:
    global _runtime
    if _runtime is None:
        _runtime = build_runtime()
    return _runtime


def _http_error(error: WildcardError) -> HTTPException:
    return HTTPException(
        status_code=STATUS_BY_KIND.get(error.kind, 500),
        detail={"kind": error.kind, "message": error.message},
    )


def _pair_response(session: ComparisonSession, pairing: Optional[Pairing] = None) -> PairResponse:
    pairing = pairing or session.pending
    error = session.last_error
    return PairResponse(
        media_type=session.media_type,
        state=session.status,
        source=pairing.source if pairing else None,
        known_vs_known=pairing.known_vs_known if pairing else False,
        rated=pairing.rated.model_dump(mode="json") if pairing else None,
        challenger=pairing.challenger.model_dump(mode="json") if pairing else None,
        error=ErrorDetail(kind=error.kind, message=error.message) if error else None,
    )


async def _count(name: str) -> None:
    try:
        await metrics.increment(name, 1)
    except Exception as e:
        logger.debug(f"Failed to record {name} metric: {e}")


@router.post("/{media_type}/next", response_model=PairResponse)
async def next_pair(media_type: MediaType, runtime: WildcardRuntime = Depends(get_runtime)):
    """Load the next pair, or return the one still awaiting a decision."""
    session = await runtime.activate(media_type)
    if session.status == SessionState.ERROR:
        await session.retry()
    else:
        await session.request_next()

    if session.status == SessionState.ERROR and session.last_error is not None:
        await _count(f"wildcard.errors.{session.last_error.kind}")
        raise _http_error(session.last_error)
    if session.pending is None:
        raise HTTPException(status_code=409, detail={"kind": "busy", "message": "A pair is already loading"})

    await _count("wildcard.pairs_served")
    return _pair_response(session)


@router.get("/{media_type}/pair", response_model=PairResponse)
async def current_pair(media_type: MediaType, runtime: WildcardRuntime = Depends(get_runtime)):
    session = await runtime.activate(media_type)
    if session.pending is None:
        raise HTTPException(status_code=404, detail={"kind": "no_pair", "message": "No pair is awaiting a decision"})
    return _pair_response(session)


@router.post("/{media_type}/decision", response_model=PairResponse)
async def submit_decision(
    media_type: MediaType,
    request: DecisionRequest,
    runtime: WildcardRuntime = Depends(get_runtime),
):
    """Resolve the pending pair and return the next one.

    A failure while loading the next pair does not undo the decision; it is
    reported in the `error` field with state 'error'.
    """
    if request.action == "win":
        if request.winner is None:
            raise HTTPException(status_code=422, detail={"kind": "decision_rejected", "message": "winner is required for a win"})
        decision = Win(side=request.winner)
    elif request.action == "too_tough":
        decision = TooTough()
    elif request.action == "watchlist":
        decision = AddToWatchlist()
    else:
        decision = Skip()

    session = await runtime.activate(media_type)
    try:
        await session.decide(decision)
    except WildcardError as e:
        raise _http_error(e)

    await _count("wildcard.decisions")
    await _count(f"wildcard.decisions.{request.action}")
    return _pair_response(session)


@router.post("/{media_type}/undo", response_model=PairResponse)
async def undo_last(media_type: MediaType, runtime: WildcardRuntime = Depends(get_runtime)):
    session = await runtime.activate(media_type)
    try:
        restored = await session.undo()
    except WildcardError as e:
        raise _http_error(e)
    if restored is not None:
        await _count("wildcard.undos")
    return _pair_response(session)


@router.put("/{media_type}/filters", response_model=Dict[str, Any])
async def update_filters(
    media_type: MediaType,
    request: FiltersRequest,
    runtime: WildcardRuntime = Depends(get_runtime),
):
    unknown = [d for d in request.decades if d not in DECADES]
    if unknown:
        raise HTTPException(status_code=422, detail={"kind": "invalid_filters", "message": f"Unknown decades: {unknown}"})
    session = await runtime.activate(media_type)
    filters = Filters(
        genres=tuple(request.genres),
        decades=tuple(request.decades),
        streaming_services=tuple(request.streaming_services),
    )
    changed = session.set_filters(filters)
    return {"changed": changed, "filters": filters.model_dump(mode="json"), "state": session.status.value}


@router.post("/{media_type}/reset", response_model=Dict[str, Any])
async def reset_progress(media_type: MediaType, runtime: WildcardRuntime = Depends(get_runtime)):
    """Clear comparison history for this media type. Ratings are kept."""
    session = await runtime.activate(media_type)
    await session.reset()
    await _count("wildcard.resets")
    return {"media_type": media_type.value, "message": f"{media_type.value} comparison history cleared"}


@router.get("/{media_type}/providers", response_model=List[Dict[str, Any]])
async def list_providers(media_type: MediaType, runtime: WildcardRuntime = Depends(get_runtime)):
    return await runtime.session.pool_manager.available_providers(media_type)


@router.get("/{media_type}/state", response_model=StateResponse)
async def session_state(media_type: MediaType, runtime: WildcardRuntime = Depends(get_runtime)):
    session = await runtime.activate(media_type)
    state = session.state
    last = session.undo_log.peek()
    return StateResponse(
        media_type=media_type,
        state=session.status,
        pattern=state.pattern,
        comparison_count=state.comparison_count,
        baseline_complete=state.baseline_complete,
        compared_count=len(state.compared_ids),
        skipped_count=len(state.skipped_ids),
        rated_count=len(session.rated_items),
        watchlist_count=len(session.watchlist_ids),
        undo_available=last is not None and MediaType(last.media_type) == media_type,
        filters=session.filters.model_dump(mode="json"),
    )


@router.put("/{media_type}/ratings", response_model=List[RatedItem])
async def replace_ratings(
    media_type: MediaType,
    items: List[RatedItem],
    runtime: WildcardRuntime = Depends(get_runtime),
):
    """Seed or replace the rated library for this media type."""
    try:
        saved = await runtime.library.replace_ratings(media_type, items)
    except WildcardError as e:
        raise _http_error(e)
    await runtime.activate(media_type)
    return saved


@router.get("/{media_type}/ratings", response_model=List[RatedItem])
async def list_ratings(media_type: MediaType, runtime: WildcardRuntime = Depends(get_runtime)):
    items = await runtime.library.rated_items(media_type)
    return sorted(items, key=lambda r: r.user_rating, reverse=True)


@router.get("/{media_type}/watchlist", response_model=List[CandidateItem])
async def list_watchlist(media_type: MediaType, runtime: WildcardRuntime = Depends(get_runtime)):
    return await runtime.library.watchlist(media_type)
