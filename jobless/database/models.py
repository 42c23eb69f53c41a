"""
jobless.database.models — SQLAlchemy 2.0 Data Models
=====================================================

Tables:
- users               — Community members (points, verification, join date)
- roles / user_roles  — Role catalogue and membership
- contents            — Hub items (likes / comments counters)
- alpha_posts         — Alpha intelligence posts (bullish votes)
- courses             — Academy courses (mentor, enrollment counter)
- course_enrollments  — Per-learner enrollment and completion
- production_requests — Studio design requests (claim, completion, rating)
- engagement_posts    — Info module submissions
- tweets              — Members' social posts other members engage with
- badges              — Admin-defined badge rules with typed criteria
- user_badges         — Earned badges (unique per user+badge, pin slots)
- engagement_criteria — Admin-defined scoring rules for engagements
- tweet_engagements   — One engagement record per user+tweet
- engagement_point_entries — Per-rule points breakdown of an engagement
- admin_log           — Append-only audit trail
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Jobless ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class BadgeType(enum.StrEnum):
    """How a badge is earned."""
    ROLE = "role"
    ACTIVITY = "activity"
    ACHIEVEMENT = "achievement"
    SPECIAL = "special"


class EarnedFrom(enum.StrEnum):
    """Provenance tag stored on every award."""
    ROLE_ASSIGNMENT = "role_assignment"
    CONTENT_MILESTONE = "content_milestone"
    MANUAL = "manual"
    SYSTEM = "system"


class EngagementKind(enum.StrEnum):
    """Social actions a member can perform on another member's post."""
    LIKE = "like"
    RETWEET = "retweet"
    QUOTE = "quote"
    REPLY = "reply"
    BOOKMARK = "bookmark"
    VIEW = "view"


class EngagementStatus(enum.StrEnum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    AUTO_VERIFIED = "auto_verified"


# Statuses whose points have been credited to the user
CREDITED_STATUSES: frozenset[str] = frozenset({
    EngagementStatus.VERIFIED.value,
    EngagementStatus.AUTO_VERIFIED.value,
})


class AdminActionType(enum.StrEnum):
    """Categories of admin mutations recorded in admin_log."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    MANUAL_AWARD = "MANUAL_AWARD"
    MANUAL_REVOKE = "MANUAL_REVOKE"
    REVIEW = "REVIEW"


# ---------------------------------------------------------------------------
# Users & roles
# ---------------------------------------------------------------------------
user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)

    def __repr__(self) -> str:
        return f"<Role id={self.id} name={self.name!r}>"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    jrank_points: Mapped[int] = mapped_column(Integer, default=0)
    contribution_score: Mapped[int] = mapped_column(Integer, default=0)
    # Engagement points credited after verification
    total_points: Mapped[float] = mapped_column(Float, default=0.0)
    is_twitter_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    twitter_followers_count: Mapped[int | None] = mapped_column(Integer, default=None)
    joined_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    roles: Mapped[list[Role]] = relationship(secondary=user_roles)
    badges: Mapped[list[UserBadge]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.username!r}>"


# ---------------------------------------------------------------------------
# Activity tables — owned by the module CRUD layers, read by the aggregator
# ---------------------------------------------------------------------------
class Content(Base):
    __tablename__ = "contents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    content_type: Mapped[str] = mapped_column(String(50), nullable=False, default="article")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    likes_count: Mapped[int] = mapped_column(Integer, default=0)
    comments_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_contents_author_status", "author_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Content id={self.id} author={self.author_id} status={self.status!r}>"


class AlphaPost(Base):
    __tablename__ = "alpha_posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scout_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    bullish_count: Mapped[int] = mapped_column(Integer, default=0)
    bearish_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_alpha_posts_scout", "scout_id"),
    )


class Course(Base):
    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mentor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    enrolled_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_courses_mentor", "mentor_id"),
    )


class CourseEnrollment(Base):
    __tablename__ = "course_enrollments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    course_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    enrolled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    __table_args__ = (
        UniqueConstraint("course_id", "user_id", name="uq_enrollments_course_user"),
        Index("ix_enrollments_user", "user_id"),
    )


class ProductionRequest(Base):
    __tablename__ = "production_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    requester_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    assigned_to: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    request_type: Mapped[str] = mapped_column(String(50), nullable=False, default="design")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open")
    rating: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_requests_assigned", "assigned_to", "status"),
        Index("ix_requests_requester", "requester_id"),
    )


class EngagementPost(Base):
    __tablename__ = "engagement_posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submitter_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    platform: Mapped[str] = mapped_column(String(30), nullable=False, default="twitter")
    url: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_engagement_posts_submitter", "submitter_id"),
    )


class Tweet(Base):
    """A member's social post, synced from Twitter, that others engage with."""
    __tablename__ = "tweets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    external_id: Mapped[str | None] = mapped_column(String(64), unique=True, default=None)
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    total_engagements_given: Mapped[int] = mapped_column(Integer, default=0)
    total_points_distributed: Mapped[float] = mapped_column(Float, default=0.0)
    posted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_tweets_author", "author_id"),
    )

    def __repr__(self) -> str:
        return f"<Tweet id={self.id} author={self.author_id}>"


# ---------------------------------------------------------------------------
# Badge — admin-defined rule with typed criteria
# ---------------------------------------------------------------------------
class Badge(Base):
    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    icon_name: Mapped[str | None] = mapped_column(String(100), default=None)
    color: Mapped[str] = mapped_column(String(7), nullable=False, default="#9e9e9e")

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)

    # Parsed by jobless.engine.criteria.parse_criterion at evaluation time
    criteria: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    required_roles: Mapped[list | None] = mapped_column(JSONB, default=list)

    rarity: Mapped[str] = mapped_column(String(20), nullable=False, default="common")
    tier: Mapped[str | None] = mapped_column(String(20), default=None)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    earned_by: Mapped[list[UserBadge]] = relationship(
        back_populates="badge", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_badges_type_category", "type", "category"),
        Index("ix_badges_active", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Badge id={self.id} name={self.name!r} type={self.type!r}>"


# ---------------------------------------------------------------------------
# UserBadge — earned badges
# ---------------------------------------------------------------------------
class UserBadge(Base):
    __tablename__ = "user_badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    badge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("badges.id", ondelete="CASCADE"), nullable=False
    )
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    earned_from: Mapped[str] = mapped_column(
        String(30), nullable=False, default=EarnedFrom.SYSTEM.value
    )
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)

    is_visible: Mapped[bool] = mapped_column(Boolean, default=True)
    is_pinned: Mapped[bool] = mapped_column(Boolean, default=False)
    pinned_order: Mapped[int | None] = mapped_column(Integer, default=None)
    pinned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    user: Mapped[User] = relationship(back_populates="badges")
    badge: Mapped[Badge] = relationship(back_populates="earned_by")

    __table_args__ = (
        # One award per (user, badge), ever; concurrent sweeps rely on it
        UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_badge"),
        # NULL slots are distinct, so only occupied slots collide
        UniqueConstraint("user_id", "pinned_order", name="uq_user_badges_pin_slot"),
        CheckConstraint(
            "pinned_order IS NULL OR (pinned_order >= 1 AND pinned_order <= 3)",
            name="ck_user_badges_pin_slot_range",
        ),
        Index("ix_user_badges_user_pinned", "user_id", "is_pinned"),
        Index("ix_user_badges_user_earned", "user_id", "earned_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserBadge user={self.user_id} badge={self.badge_id} "
            f"pinned={self.pinned_order}>"
        )


# ---------------------------------------------------------------------------
# EngagementCriteria — admin-defined scoring rule
# ---------------------------------------------------------------------------
class EngagementCriteria(Base):
    """Scoring rule for one engagement kind.

    The four JSON columns are parsed into typed models by
    :func:`jobless.engine.scoring.parse_scoring_rule`.
    """
    __tablename__ = "engagement_criteria"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    criteria_type: Mapped[str] = mapped_column(String(20), nullable=False)
    points_config: Mapped[dict] = mapped_column(JSONB, nullable=False)
    requirements: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    time_constraints: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    multipliers: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    created_by: Mapped[int | None] = mapped_column(Integer, default=None)
    updated_by: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_engagement_criteria_active_priority", "is_active", "priority"),
        Index("ix_engagement_criteria_type", "criteria_type"),
    )

    def __repr__(self) -> str:
        return f"<EngagementCriteria id={self.id} name={self.name!r} type={self.criteria_type!r}>"


# ---------------------------------------------------------------------------
# TweetEngagement — one record per (user, tweet)
# ---------------------------------------------------------------------------
class TweetEngagement(Base):
    __tablename__ = "tweet_engagements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    tweet_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tweets.id", ondelete="CASCADE"), nullable=False
    )
    tweet_author_id: Mapped[int] = mapped_column(Integer, nullable=False)
    engagement_types: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    total_points: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    proof_urls: Mapped[list | None] = mapped_column(JSONB, default=list)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EngagementStatus.PENDING.value
    )
    verified_by: Mapped[int | None] = mapped_column(Integer, default=None)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    rejection_reason: Mapped[str | None] = mapped_column(Text, default=None)

    # Snapshot at engagement time, never recomputed
    user_follower_count: Mapped[int | None] = mapped_column(Integer, default=None)
    user_account_age: Mapped[int | None] = mapped_column(Integer, default=None)

    engaged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    entries: Mapped[list[EngagementPointEntry]] = relationship(
        back_populates="engagement",
        cascade="all, delete-orphan",
        order_by="EngagementPointEntry.id",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "tweet_id", name="uq_tweet_engagements_user_tweet"),
        Index("ix_tweet_engagements_user_time", "user_id", "engaged_at"),
        Index("ix_tweet_engagements_author_time", "tweet_author_id", "engaged_at"),
        Index("ix_tweet_engagements_status_time", "status", "engaged_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<TweetEngagement id={self.id} user={self.user_id} "
            f"tweet={self.tweet_id} status={self.status!r}>"
        )


class EngagementPointEntry(Base):
    """One breakdown line: the points a single scoring rule contributed."""
    __tablename__ = "engagement_point_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    engagement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tweet_engagements.id", ondelete="CASCADE"), nullable=False
    )
    criteria_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("engagement_criteria.id", ondelete="SET NULL"), nullable=True
    )
    criteria_name: Mapped[str] = mapped_column(String(100), nullable=False)
    engagement_type: Mapped[str] = mapped_column(String(20), nullable=False)
    base_points: Mapped[float] = mapped_column(Float, nullable=False)
    bonus_points: Mapped[float] = mapped_column(Float, default=0.0)
    multiplier: Mapped[float] = mapped_column(Float, default=1.0)
    total_points: Mapped[float] = mapped_column(Float, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)

    engagement: Mapped[TweetEngagement] = relationship(back_populates="entries")

    __table_args__ = (
        Index("ix_point_entries_criteria", "criteria_id"),
        Index("ix_point_entries_engagement", "engagement_id"),
    )


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(Integer, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id} action={self.action_type}>"
