"""
jobless.errors — Domain Error Taxonomy
========================================

Every error raised by the engine and services derives from
:class:`RewardsError`.  Each class carries the HTTP status the API layer
answers with, so routes never need their own mapping table.

State conflicts (``AlreadyPinned``, ``NotPinned`` …) are expected in normal
use and safe to retry or ignore; none of them indicates corrupted data.
"""

from __future__ import annotations


class RewardsError(Exception):
    """Base class for all rule-engine errors."""

    status_code = 400

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__class__.__doc__ or self.__class__.__name__)

    @property
    def detail(self) -> str:
        return str(self)


# ---------------------------------------------------------------------------
# Missing records
# ---------------------------------------------------------------------------
class NotFound(RewardsError):
    """Requested record does not exist."""

    status_code = 404


class UserNotFound(NotFound):
    """User not found."""


class BadgeNotFound(NotFound):
    """Badge not found."""


class TargetNotFound(NotFound):
    """Engagement target not found."""


class EngagementNotFound(NotFound):
    """Engagement not found."""


# ---------------------------------------------------------------------------
# State conflicts — recoverable, expected
# ---------------------------------------------------------------------------
class StateConflict(RewardsError):
    """Operation conflicts with the record's current state."""

    status_code = 409


class AlreadyAwarded(StateConflict):
    """User already holds this badge."""


class AlreadyPinned(StateConflict):
    """Badge already pinned."""


class NotPinned(StateConflict):
    """Badge is not pinned."""


class PinSlotTaken(StateConflict):
    """Requested pin slot is already in use."""


class EngagementAlreadyReviewed(StateConflict):
    """Engagement has already been reviewed."""


# ---------------------------------------------------------------------------
# User-facing rejections
# ---------------------------------------------------------------------------
class PinLimitExceeded(RewardsError):
    """Maximum 3 badges can be pinned."""


class SelfEngagement(RewardsError):
    """Cannot engage with your own post."""


class DuplicateEngagement(StateConflict):
    """You have already engaged with this post."""


class EngagementRateLimited(RewardsError):
    """Engagement limit reached; try again later."""

    status_code = 429


# ---------------------------------------------------------------------------
# Catalogue problems
# ---------------------------------------------------------------------------
class MisconfiguredRule(RewardsError):
    """Rule configuration is invalid or uses an unknown type."""

    status_code = 422
