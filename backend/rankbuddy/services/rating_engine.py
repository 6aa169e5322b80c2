"""
rating_engine.py

Pure rating update rules for wildcard comparison outcomes.

- adjust(): Elo-style win/loss update on the 1-10 user scale. K shrinks as an
  item accumulates games, upsets earn a multiplier, and a major upset (lower
  item beats a much higher one) earns a flat bonus with the winner's cap lifted.
- tough_choice(): "too tough to decide" collapses both items to their mean,
  nudged toward whichever item was rated higher before the round.

Nothing here touches storage or the network.
"""
from dataclasses import dataclass
from typing import NamedTuple, Tuple

from rankbuddy.core.config import settings
from rankbuddy.schemas import RatedItem, clamp_rating


@dataclass(frozen=True)
class RatingConstants:
    min_delta: float = 0.1
    upset_multiplier: float = 1.2
    major_upset_gap: float = 3.0
    major_upset_bonus: float = 3.0
    max_delta: float = 0.7
    tough_nudge: float = 0.1
    tough_known_nudge: float = 0.05
    # (games_played upper bound, K); the last band applies to everything above
    k_bands: Tuple[Tuple[int, float], ...] = ((5, 0.5), (10, 0.25), (20, 0.125))
    k_floor: float = 0.1

    @classmethod
    def from_settings(cls) -> "RatingConstants":
        return cls(
            min_delta=settings.rating_min_delta,
            upset_multiplier=settings.rating_upset_multiplier,
            major_upset_gap=settings.rating_major_upset_gap,
            major_upset_bonus=settings.rating_major_upset_bonus,
            max_delta=settings.rating_max_delta,
            tough_nudge=settings.rating_tough_nudge,
            tough_known_nudge=settings.rating_tough_known_nudge,
        )


class RatingAdjustment(NamedTuple):
    updated_winner: RatedItem
    updated_loser: RatedItem


class ToughChoiceResult(NamedTuple):
    updated_first: RatedItem
    updated_second: RatedItem


class RatingEngine:
    def __init__(self, constants: RatingConstants | None = None):
        self.constants = constants or RatingConstants.from_settings()

    def k_factor(self, games_played: int) -> float:
        for upper, k in self.constants.k_bands:
            if games_played < upper:
                return k
        return self.constants.k_floor

    @staticmethod
    def expected_score(winner_rating: float, loser_rating: float) -> float:
        return 1 / (1 + 10 ** ((loser_rating - winner_rating) / 4))

    def adjust(self, winner: RatedItem, loser: RatedItem) -> RatingAdjustment:
        c = self.constants
        winner_rating = winner.user_rating
        loser_rating = loser.user_rating

        expected = self.expected_score(winner_rating, loser_rating)
        winner_increase = max(c.min_delta, self.k_factor(winner.games_played) * (1 - expected))
        loser_decrease = max(c.min_delta, self.k_factor(loser.games_played) * (1 - expected))

        upset = winner_rating < loser_rating
        if upset:
            winner_increase *= c.upset_multiplier

        major_upset = upset and (loser_rating - winner_rating) > c.major_upset_gap
        if major_upset:
            winner_increase += c.major_upset_bonus
            loser_decrease = min(c.max_delta, loser_decrease)
        else:
            winner_increase = min(c.max_delta, winner_increase)
            loser_decrease = min(c.max_delta, loser_decrease)

        return RatingAdjustment(
            updated_winner=winner.model_copy(update={
                "user_rating": clamp_rating(winner_rating + winner_increase),
                "games_played": winner.games_played + 1,
            }),
            updated_loser=loser.model_copy(update={
                "user_rating": clamp_rating(loser_rating - loser_decrease),
                "games_played": loser.games_played + 1,
            }),
        )

    def tough_choice(self, first: RatedItem, second: RatedItem, known_vs_known: bool = False) -> ToughChoiceResult:
        """Average both priors; the higher prior (first on a tie) keeps the upper half of the nudge."""
        nudge = self.constants.tough_known_nudge if known_vs_known else self.constants.tough_nudge
        average = (first.user_rating + second.user_rating) / 2
        if first.user_rating >= second.user_rating:
            first_rating, second_rating = average + nudge, average - nudge
        else:
            first_rating, second_rating = average - nudge, average + nudge
        return ToughChoiceResult(
            updated_first=first.model_copy(update={
                "user_rating": clamp_rating(first_rating),
                "games_played": first.games_played + 1,
            }),
            updated_second=second.model_copy(update={
                "user_rating": clamp_rating(second_rating),
                "games_played": second.games_played + 1,
            }),
        )
