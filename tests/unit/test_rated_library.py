import pytest

from rankbuddy.core.exceptions import PersistenceFailure
from rankbuddy.schemas import CandidateItem, MediaType
from rankbuddy.services.rated_library import RatedLibrary
from conftest import FakeStore, make_candidate, make_rated


@pytest.mark.asyncio
async def test_library_persists_callbacks():
    store = FakeStore()
    library = RatedLibrary(store)
    await library.replace_ratings(MediaType.MOVIE, [make_rated(1), make_rated(2)])
    await library.on_ratings_changed([make_rated(2, rating=9.0), make_rated(3)])
    await library.on_ratings_removed([make_candidate(1)])
    await library.on_watchlist_add(make_candidate(4))

    reloaded = RatedLibrary(store)
    ratings = {r.id: r.user_rating for r in await reloaded.rated_items(MediaType.MOVIE)}
    assert ratings == {2: 9.0, 3: 7.0}
    watchlist = await reloaded.watchlist(MediaType.MOVIE)
    assert [w.id for w in watchlist] == [4]
    assert isinstance(watchlist[0], CandidateItem)
    assert await reloaded.rated_items(MediaType.TV) == []

    await reloaded.on_watchlist_remove(make_candidate(4))
    assert await RatedLibrary(store).watchlist_ids(MediaType.MOVIE) == []


@pytest.mark.asyncio
async def test_unreachable_store_falls_back_to_memory():
    store = FakeStore()
    store.data[RatedLibrary.key(MediaType.MOVIE, "rated")] = [make_rated(1).model_dump(mode="json", exclude={"elo_rating"})]
    store.fail = True
    library = RatedLibrary(store)

    assert await library.rated_items(MediaType.MOVIE) == []
    with pytest.raises(PersistenceFailure):
        await library.on_ratings_changed([make_rated(2, rating=8.0)])
    assert [r.id for r in await library.rated_items(MediaType.MOVIE)] == [2]

    # the read is retried once the store is back, keeping in-memory changes
    store.fail = False
    ratings = {r.id: r.user_rating for r in await library.rated_items(MediaType.MOVIE)}
    assert ratings == {1: 7.0, 2: 8.0}


def test_on_error_records_last_error():
    library = RatedLibrary(FakeStore())
    library.callbacks().on_error("pool_exhausted", "nothing left")
    assert library.last_error == ("pool_exhausted", "nothing left")
