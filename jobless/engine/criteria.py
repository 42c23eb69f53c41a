"""
jobless.engine.criteria — Criteria Evaluator
=============================================

A badge's ``criteria`` JSON is parsed into one of a closed set of typed
variants (pydantic discriminated union on ``type``).  Each variant maps to
a measurement handler in :data:`MEASUREMENTS` that asks the
:class:`~jobless.services.activity_service.ActivityAggregator` for one
scalar, which is then compared against ``target``.

Stored shape (admin-authored)::

    {"type": "like_count", "target": 50, "operator": "gte", "single": true}

The legacy ``additionalCriteria`` envelope and camelCase qualifier keys
(``contentType``, ``requestType``) are accepted and flattened on parse.

This module performs no database I/O of its own; every read goes through
the aggregator passed in, so tests can hand it a ``MagicMock``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from jobless.constants import timeframe_start
from jobless.errors import MisconfiguredRule

if TYPE_CHECKING:
    from jobless.services.activity_service import ActivityAggregator

logger = logging.getLogger(__name__)

Operator = Literal["gte", "gt", "lte", "lt", "eq"]
Timeframe = Literal["daily", "weekly", "monthly", "yearly", "all_time"]

_CAMEL_KEYS: dict[str, str] = {
    "contentType": "content_type",
    "requestType": "request_role",
    "request_type": "request_role",
}


# ---------------------------------------------------------------------------
# Criterion variants
# ---------------------------------------------------------------------------
class _CriterionBase(BaseModel):
    """Qualifiers shared by every variant."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    target: float
    operator: Operator = "gte"
    timeframe: Timeframe = "all_time"
    # Overrides the badge's category when selecting rules for a module sweep
    module: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_legacy(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        flat = dict(data)
        for envelope in ("additionalCriteria", "additional_criteria"):
            extra = flat.pop(envelope, None)
            if isinstance(extra, dict):
                for key, value in extra.items():
                    flat.setdefault(key, value)
        for camel, snake in _CAMEL_KEYS.items():
            if camel in flat:
                flat.setdefault(snake, flat.pop(camel))
        return flat


class ContentCount(_CriterionBase):
    type: Literal["content_count"]
    content_type: str | None = None


class LikeCount(_CriterionBase):
    type: Literal["like_count"]
    single: bool = False


class CommentCount(_CriterionBase):
    type: Literal["comment_count"]
    single: bool = False


class RequestCount(_CriterionBase):
    type: Literal["request_count"]
    request_role: Literal["requester", "claimed", "completed"] = "requester"


class RatingCount(_CriterionBase):
    """Five-star ratings received on requests the user fulfilled."""
    type: Literal["rating_count"]


class RatingAvg(_CriterionBase):
    type: Literal["rating_avg"]


class CourseCount(_CriterionBase):
    type: Literal["course_count"]
    role: Literal["mentor", "learner"] = "mentor"


class EnrollmentCount(_CriterionBase):
    """Learners enrolled across the courses a mentor teaches."""
    type: Literal["enrollment_count"]


class CompletionCount(_CriterionBase):
    type: Literal["completion_count"]


class AlphaCount(_CriterionBase):
    type: Literal["alpha_count"]


class BullishCount(_CriterionBase):
    type: Literal["bullish_count"]
    single: bool = False


class EngagementCount(_CriterionBase):
    type: Literal["engagement_count"]


class JrankPoints(_CriterionBase):
    type: Literal["jrank_points"]


class ContributionScore(_CriterionBase):
    type: Literal["contribution_score"]


class DaysActive(_CriterionBase):
    type: Literal["days_active"]


class UserIdThreshold(_CriterionBase):
    """Early adopter: the user's sign-up rank is at or below ``target``."""
    type: Literal["user_id_threshold"]
    operator: Literal["lt", "lte"] = "lte"


class RoleMember(_CriterionBase):
    """Measurement is 1 when the user holds ``role``, else 0."""
    type: Literal["role_member"]
    role: str
    target: float = 1


Criterion = Annotated[
    Union[
        ContentCount,
        LikeCount,
        CommentCount,
        RequestCount,
        RatingCount,
        RatingAvg,
        CourseCount,
        EnrollmentCount,
        CompletionCount,
        AlphaCount,
        BullishCount,
        EngagementCount,
        JrankPoints,
        ContributionScore,
        DaysActive,
        UserIdThreshold,
        RoleMember,
    ],
    Field(discriminator="type"),
]

_criterion_adapter: TypeAdapter[Criterion] = TypeAdapter(Criterion)


def parse_criterion(raw: dict | None) -> Criterion:
    """Validate stored criteria JSON into its typed variant.

    Raises
    ------
    MisconfiguredRule
        If *raw* is empty, names an unknown ``type``, or fails validation.
    """
    if not raw:
        raise MisconfiguredRule("Rule has no criteria")
    try:
        return _criterion_adapter.validate_python(raw)
    except ValidationError as exc:
        raise MisconfiguredRule(
            f"Invalid criteria {raw.get('type')!r}: {exc.errors()[0]['msg']}"
        ) from exc


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------
_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "gte": lambda value, target: value >= target,
    "gt": lambda value, target: value > target,
    "lte": lambda value, target: value <= target,
    "lt": lambda value, target: value < target,
    "eq": lambda value, target: value == target,
}


def compare(value: float, operator: str, target: float) -> bool:
    """Apply *operator* to ``value`` vs ``target``; unknown operators never match."""
    op = _OPERATORS.get(operator)
    if op is None:
        return False
    return op(value, target)


# ---------------------------------------------------------------------------
# Measurement handlers — (criterion, user_id, aggregator) → number | None
# ---------------------------------------------------------------------------
def _since(criterion: _CriterionBase, agg: ActivityAggregator) -> datetime | None:
    start = timeframe_start(criterion.timeframe, agg.now)
    # Stored timestamps compare in UTC
    return start.astimezone(UTC) if start is not None else None


def _content_count(c: ContentCount, user_id: int, agg: ActivityAggregator) -> float:
    return agg.count_contents(user_id, content_type=c.content_type, since=_since(c, agg))


def _like_count(c: LikeCount, user_id: int, agg: ActivityAggregator) -> float:
    return agg.content_likes(user_id, single=c.single, since=_since(c, agg))


def _comment_count(c: CommentCount, user_id: int, agg: ActivityAggregator) -> float:
    return agg.content_comments(user_id, single=c.single, since=_since(c, agg))


def _request_count(c: RequestCount, user_id: int, agg: ActivityAggregator) -> float:
    return agg.count_requests(user_id, role=c.request_role, since=_since(c, agg))


def _rating_count(c: RatingCount, user_id: int, agg: ActivityAggregator) -> float:
    return agg.count_top_ratings(user_id, since=_since(c, agg))


def _rating_avg(c: RatingAvg, user_id: int, agg: ActivityAggregator) -> float | None:
    return agg.average_rating(user_id, since=_since(c, agg))


def _course_count(c: CourseCount, user_id: int, agg: ActivityAggregator) -> float:
    return agg.count_courses(user_id, role=c.role, since=_since(c, agg))


def _enrollment_count(c: EnrollmentCount, user_id: int, agg: ActivityAggregator) -> float:
    return agg.total_enrollments(user_id, since=_since(c, agg))


def _completion_count(c: CompletionCount, user_id: int, agg: ActivityAggregator) -> float:
    return agg.count_completions(user_id, since=_since(c, agg))


def _alpha_count(c: AlphaCount, user_id: int, agg: ActivityAggregator) -> float:
    return agg.count_alpha_posts(user_id, since=_since(c, agg))


def _bullish_count(c: BullishCount, user_id: int, agg: ActivityAggregator) -> float:
    return agg.alpha_bullish(user_id, single=c.single, since=_since(c, agg))


def _engagement_count(c: EngagementCount, user_id: int, agg: ActivityAggregator) -> float:
    return agg.count_engagement_posts(user_id, since=_since(c, agg))


def _jrank_points(c: JrankPoints, user_id: int, agg: ActivityAggregator) -> float:
    return agg.jrank_points(user_id)


def _contribution_score(c: ContributionScore, user_id: int, agg: ActivityAggregator) -> float:
    return agg.contribution_score(user_id)


def _days_active(c: DaysActive, user_id: int, agg: ActivityAggregator) -> float | None:
    return agg.days_since_join(user_id)


def _user_id_threshold(c: UserIdThreshold, user_id: int, agg: ActivityAggregator) -> float:
    return agg.signup_rank(user_id)


def _role_member(c: RoleMember, user_id: int, agg: ActivityAggregator) -> float:
    return 1 if agg.has_role(user_id, c.role) else 0


MEASUREMENTS: dict[str, Callable[[Any, int, ActivityAggregator], float | None]] = {
    "content_count": _content_count,
    "like_count": _like_count,
    "comment_count": _comment_count,
    "request_count": _request_count,
    "rating_count": _rating_count,
    "rating_avg": _rating_avg,
    "course_count": _course_count,
    "enrollment_count": _enrollment_count,
    "completion_count": _completion_count,
    "alpha_count": _alpha_count,
    "bullish_count": _bullish_count,
    "engagement_count": _engagement_count,
    "jrank_points": _jrank_points,
    "contribution_score": _contribution_score,
    "days_active": _days_active,
    "user_id_threshold": _user_id_threshold,
    "role_member": _role_member,
}

CRITERION_TYPES: tuple[str, ...] = tuple(MEASUREMENTS)


# ---------------------------------------------------------------------------
# Main evaluation function
# ---------------------------------------------------------------------------
def evaluate_criterion(
    criterion: Criterion | dict | None,
    user_id: int,
    aggregator: ActivityAggregator,
) -> bool:
    """Return whether *user_id* currently satisfies *criterion*.

    Raw dicts are parsed first.  A criterion that does not parse, or whose
    type has no measurement, is logged and never matches; callers that
    need a strict check use :func:`parse_criterion`.  A missing
    measurement (no ratings for ``rating_avg``, no join date for
    ``days_active``) never matches either.
    """
    if not isinstance(criterion, BaseModel):
        try:
            criterion = parse_criterion(criterion)
        except MisconfiguredRule as exc:
            logger.warning("Ignoring criterion for user %d: %s", user_id, exc)
            return False

    handler = MEASUREMENTS.get(criterion.type)
    if handler is None:
        logger.warning("No measurement for criteria type %r", criterion.type)
        return False

    value = handler(criterion, user_id, aggregator)
    if value is None:
        logger.debug(
            "No %s measurement for user %d, criterion not met",
            criterion.type, user_id,
        )
        return False
    return compare(value, criterion.operator, criterion.target)
