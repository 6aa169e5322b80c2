"""
exceptions.py

Typed failures raised by the wildcard engine. Each carries a stable `kind`
string so callers (session error callback, HTTP layer) can classify it
without isinstance checks.
"""
from typing import Optional


class WildcardError(Exception):
    """Base class for engine failures."""

    kind = "wildcard_error"

    def __init__(self, message: str = "", media_type: Optional[str] = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind
        self.media_type = media_type


class InsufficientRatings(WildcardError):
    """Fewer rated items than the scheduler needs to build a pair."""

    kind = "insufficient_ratings"


class FilterTooNarrow(WildcardError):
    """The active genre filter leaves too few rated items to pair."""

    kind = "filter_too_narrow"


class PoolExhausted(WildcardError):
    """No stage produced an eligible candidate."""

    kind = "pool_exhausted"


class CatalogUnavailable(WildcardError):
    """Network, timeout, rate limit or HTTP error from the content catalog."""

    kind = "catalog_unavailable"

    def __init__(self, message: str = "", media_type: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, media_type=media_type)
        self.status_code = status_code


class PersistenceFailure(WildcardError):
    """Key-value store read/write error. Logged and treated as non-fatal."""

    kind = "persistence_failure"


class DecisionRejected(WildcardError):
    """An outcome was submitted outside AwaitingDecision or is invalid for the round."""

    kind = "decision_rejected"


class UndoRejected(WildcardError):
    """The undo slot belongs to a different media type."""

    kind = "undo_rejected"
