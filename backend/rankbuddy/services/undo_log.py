"""
undo_log.py

Single-slot history of the most recent wildcard outcome.

Each outcome kind is its own frozen dataclass holding the pre-mutation
snapshots needed to reverse it. The session dispatches on the concrete type.
"""
from dataclasses import dataclass
from typing import ClassVar, Optional, Tuple, Union

from rankbuddy.core.exceptions import UndoRejected
from rankbuddy.schemas import CandidateItem, MediaType, RatedItem


@dataclass(frozen=True)
class ComparisonAction:
    """Rated item vs candidate, one side won. The candidate was unrated before."""
    kind: ClassVar[str] = "comparison"
    media_type: MediaType
    rated_before: RatedItem
    candidate_before: CandidateItem

    @property
    def pair(self) -> Tuple[RatedItem, CandidateItem]:
        return self.rated_before, self.candidate_before


@dataclass(frozen=True)
class KnownComparisonAction:
    kind: ClassVar[str] = "known_comparison"
    media_type: MediaType
    first_before: RatedItem
    second_before: RatedItem

    @property
    def pair(self) -> Tuple[RatedItem, RatedItem]:
        return self.first_before, self.second_before


@dataclass(frozen=True)
class WatchlistAction:
    kind: ClassVar[str] = "watchlist"
    media_type: MediaType
    rated: RatedItem
    candidate: CandidateItem

    @property
    def pair(self) -> Tuple[RatedItem, CandidateItem]:
        return self.rated, self.candidate


@dataclass(frozen=True)
class SkipAction:
    """`skipped_id` is None when the round was known-vs-known (nothing was excluded)."""
    kind: ClassVar[str] = "skip"
    media_type: MediaType
    rated: RatedItem
    challenger: Union[RatedItem, CandidateItem]
    skipped_id: Optional[int]

    @property
    def pair(self) -> Tuple[RatedItem, Union[RatedItem, CandidateItem]]:
        return self.rated, self.challenger


@dataclass(frozen=True)
class ToughAction:
    kind: ClassVar[str] = "tough"
    media_type: MediaType
    rated_before: RatedItem
    candidate_before: CandidateItem

    @property
    def pair(self) -> Tuple[RatedItem, CandidateItem]:
        return self.rated_before, self.candidate_before


@dataclass(frozen=True)
class ToughKnownAction:
    kind: ClassVar[str] = "tough_known"
    media_type: MediaType
    first_before: RatedItem
    second_before: RatedItem

    @property
    def pair(self) -> Tuple[RatedItem, RatedItem]:
        return self.first_before, self.second_before


LastAction = Union[
    ComparisonAction,
    KnownComparisonAction,
    WatchlistAction,
    SkipAction,
    ToughAction,
    ToughKnownAction,
]


class UndoLog:
    """Stack of depth one."""

    def __init__(self):
        self._entry: Optional[LastAction] = None

    def record(self, action: LastAction) -> None:
        self._entry = action

    def peek(self) -> Optional[LastAction]:
        return self._entry

    def clear(self) -> None:
        self._entry = None

    def pop(self, media_type: MediaType) -> Optional[LastAction]:
        """Take the entry for `media_type`; None if empty. A mismatch leaves it in place."""
        entry = self._entry
        if entry is None:
            return None
        if MediaType(entry.media_type) != MediaType(media_type):
            raise UndoRejected(
                f"Last action belongs to {MediaType(entry.media_type).value}, not {MediaType(media_type).value}",
                media_type=MediaType(media_type).value,
            )
        self._entry = None
        return entry
