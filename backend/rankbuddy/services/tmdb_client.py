"""
TMDB content catalog for the wildcard engine.
- Async httpx client, one short-lived connection per request.
- Every call is bounded by settings.catalog_timeout_seconds.
- Any transport/HTTP/rate-limit failure is raised as CatalogUnavailable;
  nothing is retried here, the caller decides.
- No in-module caching; streaming availability is cached by ContentPoolManager.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from rankbuddy.core.config import settings
from rankbuddy.core.exceptions import CatalogUnavailable
from rankbuddy.schemas import CandidateItem, Filters, MediaType
from rankbuddy.services.rate_limit import AsyncLimiter, RateLimitExceeded

logger = logging.getLogger(__name__)


def _media_path(media_type: MediaType) -> str:
    return "movie" if MediaType(media_type) == MediaType.MOVIE else "tv"


def to_candidate(raw: Dict[str, Any], media_type: MediaType) -> CandidateItem:
    """Normalize a TMDB list or detail payload into a CandidateItem."""
    mt = MediaType(media_type)
    if "genre_ids" in raw:
        genre_ids = list(raw.get("genre_ids") or [])
    else:
        genre_ids = [g["id"] for g in raw.get("genres") or [] if isinstance(g, dict) and "id" in g][:3]
    if mt == MediaType.MOVIE:
        title = raw.get("title") or raw.get("name") or ""
        release_date = raw.get("release_date") or None
    else:
        title = raw.get("name") or raw.get("title") or ""
        release_date = raw.get("first_air_date") or None
    return CandidateItem(
        id=int(raw["id"]),
        title=title,
        media_type=mt,
        genre_ids=genre_ids,
        release_date=release_date,
        score=float(raw.get("vote_average") or 0.0),
        vote_count=int(raw.get("vote_count") or 0),
        poster_path=raw.get("poster_path"),
        overview=raw.get("overview"),
    )


class TMDBCatalog:
    """Content catalog backed by the TMDB v3 API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        region: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        limiter: Optional[AsyncLimiter] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.tmdb_api_key
        self.base_url = (base_url or settings.tmdb_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.catalog_timeout_seconds
        self.region = region or settings.tmdb_region
        self.transport = transport
        if limiter is None and settings.rate_limit_enabled:
            limiter = AsyncLimiter("tmdb_api")
        self.limiter = limiter

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.api_key:
            logger.warning("TMDB API key not configured")
            raise CatalogUnavailable("TMDB API key not configured")

        query = {"api_key": self.api_key}
        query.update(params or {})
        url = f"{self.base_url}{path}"

        async def make_request():
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.get(url, params=query)
                resp.raise_for_status()
                return resp.json()

        try:
            if self.limiter is not None:
                await self.limiter.check()
            return await asyncio.wait_for(make_request(), timeout=self.timeout)
        except RateLimitExceeded as e:
            raise CatalogUnavailable(str(e)) from e
        except asyncio.TimeoutError as e:
            logger.warning(f"TMDB request timed out after {self.timeout}s: {path}")
            raise CatalogUnavailable(f"Timed out after {self.timeout}s: {path}") from e
        except httpx.HTTPStatusError as e:
            logger.warning(f"TMDB returned {e.response.status_code} for {path}")
            raise CatalogUnavailable(f"HTTP {e.response.status_code}: {path}", status_code=e.response.status_code) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"TMDB request failed for {path}: {e}")
            raise CatalogUnavailable(f"Request failed: {path}: {e}") from e

    async def query(self, media_type: MediaType, filters: Filters, page: int = 1) -> List[CandidateItem]:
        """Discover endpoint with genre and decade filters, most popular first."""
        mt = MediaType(media_type)
        params: Dict[str, Any] = {
            "language": settings.tmdb_language,
            "sort_by": "popularity.desc",
            "vote_count.gte": settings.min_vote_count,
            "include_adult": "false",
            "page": page,
        }
        date_range = filters.date_range()
        if date_range:
            start_year, end_year = date_range
            date_field = "primary_release_date" if mt == MediaType.MOVIE else "first_air_date"
            params[f"{date_field}.gte"] = f"{start_year}-01-01"
            params[f"{date_field}.lte"] = f"{end_year}-12-31"
        if filters.genres:
            params["with_genres"] = ",".join(str(g) for g in filters.genres)

        data = await self._get(f"/discover/{_media_path(mt)}", params)
        return [to_candidate(r, mt) for r in data.get("results") or [] if r.get("id") is not None]

    async def popular(self, media_type: MediaType, page: int = 1) -> List[CandidateItem]:
        mt = MediaType(media_type)
        data = await self._get(f"/{_media_path(mt)}/popular", {"language": settings.tmdb_language, "page": page})
        return [to_candidate(r, mt) for r in data.get("results") or [] if r.get("id") is not None]

    async def get_details(self, media_type: MediaType, item_id: int) -> CandidateItem:
        mt = MediaType(media_type)
        data = await self._get(f"/{_media_path(mt)}/{item_id}", {"language": settings.tmdb_language})
        return to_candidate(data, mt)

    async def get_providers(self, media_type: MediaType, item_id: int) -> Dict[str, List[Dict[str, Any]]]:
        """Watch providers for the configured region as {free, rent, buy}."""
        mt = MediaType(media_type)
        data = await self._get(f"/{_media_path(mt)}/{item_id}/watch/providers")
        region = (data.get("results") or {}).get(self.region) or {}
        return {
            "free": list(region.get("flatrate") or []),
            "rent": list(region.get("rent") or []),
            "buy": list(region.get("buy") or []),
        }

    async def provider_directory(self, media_type: MediaType) -> List[Dict[str, Any]]:
        mt = MediaType(media_type)
        data = await self._get(f"/watch/providers/{_media_path(mt)}", {"watch_region": self.region})
        return list(data.get("results") or [])
