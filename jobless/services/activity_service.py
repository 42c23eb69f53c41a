"""
jobless.services.activity_service — Activity Aggregator
========================================================

Read-only queries that turn raw module activity (hub contents, studio
requests, academy courses, alpha posts, info submissions) into the scalar
measurements :mod:`jobless.engine.criteria` compares against targets.

All methods run on the caller's session; nothing here writes.  ``since``
filters each item on its creation time (``None`` means all time).
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from jobless.constants import utcnow, whole_days_between
from jobless.database.models import (
    AlphaPost,
    Content,
    Course,
    CourseEnrollment,
    EngagementPost,
    ProductionRequest,
    Role,
    User,
    user_roles,
)
from jobless.errors import UserNotFound

logger = logging.getLogger(__name__)

PUBLISHED = "published"
COMPLETED = "completed"
TOP_RATING = 5


class ActivityAggregator:
    """Measurement capability bound to one session and one clock reading."""

    def __init__(self, session: Session, now: datetime | None = None) -> None:
        self.session = session
        self.now = now or utcnow()

    # -- helpers -------------------------------------------------------------

    def _scalar(self, stmt: Select) -> int:
        return self.session.scalar(stmt) or 0

    def _user(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise UserNotFound(f"User {user_id} not found")
        return user

    @staticmethod
    def _max_or_sum(column, single: bool):
        # MAX over an empty set is NULL, coalesced to 0 by _scalar
        return func.max(column) if single else func.sum(column)

    # -- hub -----------------------------------------------------------------

    def _published_contents(self, user_id: int, since: datetime | None):
        conds = [Content.author_id == user_id, Content.status == PUBLISHED]
        if since is not None:
            conds.append(Content.created_at >= since)
        return conds

    def count_contents(
        self, user_id: int, content_type: str | None = None, since: datetime | None = None,
    ) -> int:
        conds = self._published_contents(user_id, since)
        if content_type:
            conds.append(Content.content_type == content_type)
        return self._scalar(select(func.count(Content.id)).where(*conds))

    def content_likes(self, user_id: int, single: bool = False, since: datetime | None = None) -> int:
        agg = self._max_or_sum(Content.likes_count, single)
        return self._scalar(select(agg).where(*self._published_contents(user_id, since)))

    def content_comments(self, user_id: int, single: bool = False, since: datetime | None = None) -> int:
        agg = self._max_or_sum(Content.comments_count, single)
        return self._scalar(select(agg).where(*self._published_contents(user_id, since)))

    # -- studio --------------------------------------------------------------

    def count_requests(self, user_id: int, role: str = "requester", since: datetime | None = None) -> int:
        """``requester``: requests opened; ``claimed``: requests assigned to the
        user; ``completed``: assigned requests finished."""
        if role == "requester":
            conds = [ProductionRequest.requester_id == user_id]
        else:
            conds = [ProductionRequest.assigned_to == user_id]
            if role == COMPLETED:
                conds.append(ProductionRequest.status == COMPLETED)
        if since is not None:
            conds.append(ProductionRequest.created_at >= since)
        return self._scalar(select(func.count(ProductionRequest.id)).where(*conds))

    def count_top_ratings(self, user_id: int, since: datetime | None = None) -> int:
        stmt = select(func.count(ProductionRequest.id)).where(
            ProductionRequest.assigned_to == user_id,
            ProductionRequest.rating == TOP_RATING,
        )
        if since is not None:
            stmt = stmt.where(ProductionRequest.created_at >= since)
        return self._scalar(stmt)

    def average_rating(self, user_id: int, since: datetime | None = None) -> float | None:
        """Mean rating over rated requests the user fulfilled; None when unrated.

        Computed on read, so a rating written concurrently may or may not
        be included.
        """
        stmt = select(func.avg(ProductionRequest.rating)).where(
            ProductionRequest.assigned_to == user_id,
            ProductionRequest.rating.is_not(None),
        )
        if since is not None:
            stmt = stmt.where(ProductionRequest.created_at >= since)
        avg = self.session.scalar(stmt)
        return float(avg) if avg is not None else None

    # -- academy -------------------------------------------------------------

    def count_courses(self, user_id: int, role: str = "mentor", since: datetime | None = None) -> int:
        if role == "mentor":
            stmt = select(func.count(Course.id)).where(Course.mentor_id == user_id)
            if since is not None:
                stmt = stmt.where(Course.created_at >= since)
        else:
            stmt = select(func.count(CourseEnrollment.id)).where(CourseEnrollment.user_id == user_id)
            if since is not None:
                stmt = stmt.where(CourseEnrollment.enrolled_at >= since)
        return self._scalar(stmt)

    def total_enrollments(self, user_id: int, since: datetime | None = None) -> int:
        stmt = select(func.sum(Course.enrolled_count)).where(Course.mentor_id == user_id)
        if since is not None:
            stmt = stmt.where(Course.created_at >= since)
        return self._scalar(stmt)

    def count_completions(self, user_id: int, since: datetime | None = None) -> int:
        stmt = select(func.count(CourseEnrollment.id)).where(
            CourseEnrollment.user_id == user_id,
            CourseEnrollment.completed_at.is_not(None),
        )
        if since is not None:
            stmt = stmt.where(CourseEnrollment.completed_at >= since)
        return self._scalar(stmt)

    # -- alpha ---------------------------------------------------------------

    def count_alpha_posts(self, user_id: int, since: datetime | None = None) -> int:
        stmt = select(func.count(AlphaPost.id)).where(AlphaPost.scout_id == user_id)
        if since is not None:
            stmt = stmt.where(AlphaPost.created_at >= since)
        return self._scalar(stmt)

    def alpha_bullish(self, user_id: int, single: bool = False, since: datetime | None = None) -> int:
        stmt = select(self._max_or_sum(AlphaPost.bullish_count, single)).where(
            AlphaPost.scout_id == user_id,
        )
        if since is not None:
            stmt = stmt.where(AlphaPost.created_at >= since)
        return self._scalar(stmt)

    # -- info ----------------------------------------------------------------

    def count_engagement_posts(self, user_id: int, since: datetime | None = None) -> int:
        stmt = select(func.count(EngagementPost.id)).where(EngagementPost.submitter_id == user_id)
        if since is not None:
            stmt = stmt.where(EngagementPost.created_at >= since)
        return self._scalar(stmt)

    # -- general -------------------------------------------------------------

    def jrank_points(self, user_id: int) -> int:
        return self._user(user_id).jrank_points or 0

    def contribution_score(self, user_id: int) -> int:
        return self._user(user_id).contribution_score or 0

    def days_since_join(self, user_id: int) -> int | None:
        joined = self._user(user_id).joined_at
        if joined is None:
            return None
        return whole_days_between(joined, self.now)

    def signup_rank(self, user_id: int) -> int:
        """Early-adopter rank: ids are assigned in sign-up order."""
        return self._user(user_id).id

    def role_names(self, user_id: int) -> set[str]:
        rows = self.session.scalars(
            select(Role.name)
            .join(user_roles, user_roles.c.role_id == Role.id)
            .where(user_roles.c.user_id == user_id)
        )
        return set(rows)

    def has_role(self, user_id: int, role: str) -> bool:
        return role in self.role_names(user_id)
