"""
schemas.py

Pydantic schemas for rated items, catalog candidates, streaming availability
and wildcard filters.
"""
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field

from rankbuddy.core.config import settings


class MediaType(str, Enum):
    MOVIE = "movie"
    TV = "tv"


class PaymentType(str, Enum):
    FREE = "free"
    PAID = "paid"


class StreamingService(BaseModel):
    provider_id: int
    provider_name: str = ""
    logo_path: Optional[str] = None
    payment_type: PaymentType = PaymentType.PAID


def clamp_rating(value: float) -> float:
    """Clamp to [1, 10] and round to one decimal, halves up."""
    clamped = min(10.0, max(1.0, float(value)))
    return float(Decimal(repr(clamped)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


class CandidateItem(BaseModel):
    """Catalog-sourced item that has not been rated yet."""
    id: int
    title: str
    media_type: MediaType = MediaType.MOVIE
    genre_ids: List[int] = Field(default_factory=list)
    release_date: Optional[str] = None
    score: float = 0.0  # catalog vote_average
    vote_count: int = 0
    poster_path: Optional[str] = None
    overview: Optional[str] = None
    streaming_services: List[StreamingService] = Field(default_factory=list)

    @property
    def prior_rating(self) -> float:
        return clamp_rating(self.score)

    def to_rated(self, user_rating: float, games_played: int = 0) -> "RatedItem":
        return RatedItem(
            id=self.id,
            title=self.title,
            media_type=self.media_type,
            genre_ids=list(self.genre_ids),
            release_date=self.release_date,
            user_rating=clamp_rating(user_rating),
            games_played=games_played,
            poster_path=self.poster_path,
            overview=self.overview,
            streaming_services=list(self.streaming_services),
        )


class RatedItem(BaseModel):
    id: int
    title: str
    media_type: MediaType = MediaType.MOVIE
    genre_ids: List[int] = Field(default_factory=list)
    release_date: Optional[str] = None
    user_rating: float = Field(ge=1.0, le=10.0)
    games_played: int = Field(default=0, ge=0)
    poster_path: Optional[str] = None
    overview: Optional[str] = None
    streaming_services: List[StreamingService] = Field(default_factory=list)

    @computed_field
    @property
    def elo_rating(self) -> float:
        return round(self.user_rating * settings.rating_elo_scale, 1)


# Decade buckets: value -> (start_year, end_year, label)
DECADES = {
    "1960s": (1900, 1969, "Pre-70s"),
    "1970s": (1970, 1979, "1970s"),
    "1980s": (1980, 1989, "1980s"),
    "1990s": (1990, 1999, "1990s"),
    "2000s": (2000, 2009, "2000s"),
    "2010s": (2010, 2019, "2010s"),
    "2020s": (2020, 2029, "2020s"),
}


class Filters(BaseModel):
    model_config = ConfigDict(frozen=True)

    genres: Tuple[int, ...] = ()
    decades: Tuple[str, ...] = ()
    streaming_services: Tuple[int, ...] = ()

    @property
    def is_active(self) -> bool:
        return bool(self.genres or self.decades or self.streaming_services)

    @property
    def has_genre_filter(self) -> bool:
        return bool(self.genres)

    def signature(self) -> Tuple[Tuple[int, ...], Tuple[str, ...], Tuple[int, ...]]:
        """Order-insensitive identity used to detect filter changes."""
        return (
            tuple(sorted(set(self.genres))),
            tuple(sorted(set(self.decades))),
            tuple(sorted(set(self.streaming_services))),
        )

    def date_range(self) -> Optional[Tuple[int, int]]:
        """Collapse selected decades into one (start_year, end_year) span."""
        ranges = [DECADES[d][:2] for d in self.decades if d in DECADES]
        if not ranges:
            return None
        return min(r[0] for r in ranges), max(r[1] for r in ranges)

    def matches_genres(self, genre_ids: List[int]) -> bool:
        if not self.genres:
            return True
        return bool(set(self.genres) & set(genre_ids or []))
