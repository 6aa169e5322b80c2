import copy
from typing import Any, Dict, List, Optional

import pytest

from rankbuddy.core.exceptions import CatalogUnavailable, PersistenceFailure
from rankbuddy.schemas import CandidateItem, MediaType, RatedItem


def make_rated(item_id: int, rating: float = 7.0, games: int = 0, genres=None, media_type=MediaType.MOVIE) -> RatedItem:
    return RatedItem(
        id=item_id,
        title=f"Rated {item_id}",
        media_type=media_type,
        genre_ids=list(genres or []),
        user_rating=rating,
        games_played=games,
        poster_path=f"/rated{item_id}.jpg",
    )


def make_candidate(item_id: int, score: float = 7.5, genres=None, poster: bool = True, media_type=MediaType.MOVIE) -> CandidateItem:
    return CandidateItem(
        id=item_id,
        title=f"Candidate {item_id}",
        media_type=media_type,
        genre_ids=list(genres or []),
        score=score,
        vote_count=1000,
        poster_path=f"/cand{item_id}.jpg" if poster else None,
    )


class FakeStore:
    """In-memory KeyValueStore; set `fail` to simulate an unreachable backend."""

    def __init__(self):
        self.data: Dict[str, Any] = {}
        self.fail = False

    async def get(self, key: str) -> Optional[Any]:
        if self.fail:
            raise PersistenceFailure(f"read failed for {key}")
        return copy.deepcopy(self.data.get(key))

    async def set(self, key: str, value: Any) -> None:
        if self.fail:
            raise PersistenceFailure(f"write failed for {key}")
        self.data[key] = copy.deepcopy(value)

    async def remove(self, key: str) -> None:
        if self.fail:
            raise PersistenceFailure(f"remove failed for {key}")
        self.data.pop(key, None)


class FakeCatalog:
    """Scriptable ContentCatalog recording every call."""

    def __init__(self):
        self.discover_pages: Dict[int, List[CandidateItem]] = {}
        self.popular_results: List[CandidateItem] = []
        self.details: Dict[int, CandidateItem] = {}
        self.providers: Dict[int, Dict[str, List[Dict[str, Any]]]] = {}
        self.directory: List[Dict[str, Any]] = []
        self.failing_pages: set = set()
        self.fail_providers = False
        self.fail_directory = False
        self.calls: List[tuple] = []

    async def query(self, media_type, filters, page=1):
        self.calls.append(("query", page))
        if page in self.failing_pages:
            raise CatalogUnavailable(f"discover page {page} failed")
        return list(self.discover_pages.get(page, []))

    async def popular(self, media_type, page=1):
        self.calls.append(("popular", page))
        return list(self.popular_results)

    async def get_details(self, media_type, item_id):
        self.calls.append(("details", item_id))
        if item_id in self.details:
            return self.details[item_id]
        return make_candidate(item_id, media_type=MediaType(media_type))

    async def get_providers(self, media_type, item_id):
        self.calls.append(("providers", item_id))
        if self.fail_providers:
            raise CatalogUnavailable("providers down")
        return self.providers.get(item_id, {"free": [], "rent": [], "buy": []})

    async def provider_directory(self, media_type):
        self.calls.append(("directory", media_type))
        if self.fail_directory:
            raise CatalogUnavailable("directory down")
        return list(self.directory)

    def count(self, name: str) -> int:
        return sum(1 for c in self.calls if c[0] == name)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def catalog():
    return FakeCatalog()
