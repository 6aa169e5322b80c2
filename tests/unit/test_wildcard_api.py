import inspect

import pytest
from fastapi.testclient import TestClient

from rankbuddy.api import wildcard
from rankbuddy.core import metrics
from rankbuddy.main import app
from conftest import FakeCatalog, FakeStore, make_rated


@pytest.fixture
def runtime(monkeypatch):
    counted = []

    async def fake_increment(name, amount=1):
        counted.append(name)

    monkeypatch.setattr(metrics, "increment", fake_increment)
    rt = wildcard.build_runtime(store=FakeStore(), catalog=FakeCatalog())
    rt.counted = counted
    app.dependency_overrides[wildcard.get_runtime] = lambda: rt
    yield rt
    app.dependency_overrides.clear()


@pytest.fixture
def client(runtime):
    return TestClient(app)


def _seed(client, n=3, media_type="movie"):
    items = [make_rated(i, rating=5.0 + i).model_dump(mode="json") for i in range(1, n + 1)]
    response = client.put(f"/api/wildcard/{media_type}/ratings", json=items)
    assert response.status_code == 200
    return response.json()


def test_root():
    assert TestClient(app).get("/").json() == {"status": "RankBuddy API Running"}


def test_full_round(client, runtime):
    saved = _seed(client)
    assert [r["elo_rating"] for r in saved] == [60.0, 70.0, 80.0]

    pair = client.post("/api/wildcard/movie/next").json()
    assert pair["state"] == "awaiting_decision"
    assert pair["known_vs_known"] is False
    assert pair["source"] == "baseline"
    challenger_id = pair["challenger"]["id"]

    assert client.get("/api/wildcard/movie/pair").json()["challenger"]["id"] == challenger_id

    response = client.post("/api/wildcard/movie/decision", json={"action": "win", "winner": "challenger"})
    assert response.status_code == 200
    assert response.json()["state"] == "awaiting_decision"

    state = client.get("/api/wildcard/movie/state").json()
    assert state["comparison_count"] == 1
    assert state["pattern"] == 1
    assert state["compared_count"] == 1
    assert state["rated_count"] == 4
    assert state["undo_available"] is True

    ratings = client.get("/api/wildcard/movie/ratings").json()
    assert challenger_id in [r["id"] for r in ratings]
    assert ratings == sorted(ratings, key=lambda r: r["user_rating"], reverse=True)

    undone = client.post("/api/wildcard/movie/undo").json()
    assert undone["challenger"]["id"] == challenger_id
    assert undone["source"] == "undo"
    state = client.get("/api/wildcard/movie/state").json()
    assert state["comparison_count"] == 0
    assert state["rated_count"] == 3
    assert challenger_id not in [r["id"] for r in client.get("/api/wildcard/movie/ratings").json()]

    assert "wildcard.pairs_served" in runtime.counted
    assert "wildcard.decisions.win" in runtime.counted
    assert "wildcard.undos" in runtime.counted


def test_watchlist_decision(client):
    _seed(client)
    pair = client.post("/api/wildcard/movie/next").json()
    client.post("/api/wildcard/movie/decision", json={"action": "watchlist"})
    watchlist = client.get("/api/wildcard/movie/watchlist").json()
    assert [w["id"] for w in watchlist] == [pair["challenger"]["id"]]


def test_insufficient_ratings(client):
    _seed(client, n=2)
    response = client.post("/api/wildcard/movie/next")
    assert response.status_code == 422
    assert response.json()["detail"]["kind"] == "insufficient_ratings"


def test_decision_without_pair(client):
    _seed(client)
    response = client.post("/api/wildcard/movie/decision", json={"action": "skip"})
    assert response.status_code == 409
    assert response.json()["detail"]["kind"] == "decision_rejected"


def test_win_requires_side(client):
    _seed(client)
    client.post("/api/wildcard/movie/next")
    response = client.post("/api/wildcard/movie/decision", json={"action": "win"})
    assert response.status_code == 422


def test_undo_with_empty_slot(client):
    _seed(client)
    response = client.post("/api/wildcard/movie/undo")
    assert response.status_code == 200
    assert response.json()["challenger"] is None


def test_undo_rejected_for_other_media_type(client):
    _seed(client)
    _seed(client, media_type="tv")
    client.post("/api/wildcard/movie/next")
    client.post("/api/wildcard/movie/decision", json={"action": "skip"})
    response = client.post("/api/wildcard/tv/undo")
    assert response.status_code == 409
    assert response.json()["detail"]["kind"] == "undo_rejected"


def test_filters(client, runtime):
    _seed(client)
    response = client.put("/api/wildcard/movie/filters", json={"genres": [28], "decades": ["1990s"]})
    assert response.status_code == 200
    assert response.json()["changed"] is True
    assert runtime.session.filters.genres == (28,)

    again = client.put("/api/wildcard/movie/filters", json={"genres": [28], "decades": ["1990s"]})
    assert again.json()["changed"] is False

    bad = client.put("/api/wildcard/movie/filters", json={"decades": ["1890s"]})
    assert bad.status_code == 422


def test_filter_too_narrow_maps_to_422(client, runtime):
    _seed(client)
    client.put("/api/wildcard/movie/filters", json={"genres": [28]})
    response = client.post("/api/wildcard/movie/next")
    assert response.status_code == 422
    assert response.json()["detail"]["kind"] == "filter_too_narrow"
    assert runtime.library.last_error[0] == "filter_too_narrow"


def test_catalog_outage_maps_to_503(client, runtime):
    runtime.session.pool_manager.catalog.failing_pages = {1, 2, 3}
    items = [make_rated(i, genres=[28]).model_dump(mode="json") for i in range(1, 4)]
    client.put("/api/wildcard/movie/ratings", json=items)
    client.put("/api/wildcard/movie/filters", json={"genres": [28]})
    response = client.post("/api/wildcard/movie/next")
    assert response.status_code == 503
    assert response.json()["detail"]["kind"] == "catalog_unavailable"


def test_reset_keeps_ratings(client):
    _seed(client)
    client.post("/api/wildcard/movie/next")
    client.post("/api/wildcard/movie/decision", json={"action": "skip"})
    assert client.post("/api/wildcard/movie/reset").status_code == 200
    state = client.get("/api/wildcard/movie/state").json()
    assert state["comparison_count"] == 0
    assert state["skipped_count"] == 0
    assert state["rated_count"] == 3


def test_providers_fallback(client, runtime):
    runtime.session.pool_manager.catalog.fail_directory = True
    providers = client.get("/api/wildcard/tv/providers").json()
    assert {"id": 8, "name": "Netflix", "logo_path": None, "logo_url": None} in providers


def test_unknown_media_type(client):
    assert client.post("/api/wildcard/anime/next").status_code == 422


def test_no_pending_pair(client):
    _seed(client)
    assert client.get("/api/wildcard/movie/pair").status_code == 404


def test_store_outage_is_not_fatal(client, runtime):
    runtime.library.store.fail = True
    state = client.get("/api/wildcard/movie/state")
    assert state.status_code == 200
    assert state.json()["rated_count"] == 0

    items = [make_rated(i, rating=5.0 + i).model_dump(mode="json") for i in range(1, 4)]
    saved = client.put("/api/wildcard/movie/ratings", json=items)
    assert saved.status_code == 503
    assert saved.json()["detail"]["kind"] == "persistence_failure"

    # ratings stay in memory, so the session keeps working
    pair = client.post("/api/wildcard/movie/next")
    assert pair.status_code == 200
    decided = client.post("/api/wildcard/movie/decision", json={"action": "win", "winner": "challenger"})
    assert decided.status_code == 200
    assert client.get("/api/wildcard/movie/state").json()["rated_count"] == 4


def test_runtime_dependency_runs_on_the_event_loop():
    # a threadpool dependency would bind the Redis client outside the app's loop
    assert inspect.iscoroutinefunction(wildcard.get_runtime)
