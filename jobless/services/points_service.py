"""
jobless.services.points_service — Engagement Points Service
============================================================

Loads the acting user, the target post and the active scoring rules,
builds an :class:`~jobless.engine.scoring.EngagerContext` and runs the
pure scoring pipeline.  Also owns the engagement record lifecycle:

    record  → pending (or auto_verified)
    pending → verified   (points credited)
    pending → rejected

Counters (tweet engagement count, user / tweet point totals) are bumped
with ``UPDATE … SET x = x + n`` so concurrent writers never lose updates.

Clock: ``now`` is read in its own timezone for daily windows and active
hours (the API passes it in the configured community timezone); stored
timestamps are UTC.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from jobless.constants import as_utc, start_of_day, utcnow, whole_days_between
from jobless.database.models import (
    CREDITED_STATUSES,
    EngagementCriteria,
    EngagementPointEntry,
    EngagementStatus,
    Tweet,
    TweetEngagement,
    User,
)
from jobless.engine.scoring import (
    EngagerContext,
    PointsResult,
    Requirements,
    ScoringRule,
    calculate,
    parse_scoring_rule,
    streak_length,
)
from jobless.errors import (
    DuplicateEngagement,
    EngagementAlreadyReviewed,
    EngagementNotFound,
    EngagementRateLimited,
    MisconfiguredRule,
    SelfEngagement,
    TargetNotFound,
    UserNotFound,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

# How far back engagement days are scanned for the streak bonus
STREAK_LOOKBACK_DAYS = 90


def _clock(now: datetime | None) -> tuple[datetime, datetime]:
    """Return (*now* in its own timezone, the same instant in UTC)."""
    local = as_utc(now) if now is not None else utcnow()
    return local, local.astimezone(UTC)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------
def _load_target(session: Session, user_id: int, tweet_id: int) -> tuple[User, Tweet]:
    """Fetch the engager and the target, enforcing the preconditions."""
    tweet = session.get(Tweet, tweet_id)
    if tweet is None:
        raise TargetNotFound(f"Post {tweet_id} not found")
    if tweet.author_id == user_id:
        raise SelfEngagement()
    user = session.get(User, user_id)
    if user is None:
        raise UserNotFound(f"User {user_id} not found")
    return user, tweet


def load_active_rules(session: Session) -> list[ScoringRule]:
    """Active scoring rules, highest priority first.  Misconfigured rows
    are logged and left out."""
    rows = session.scalars(
        select(EngagementCriteria)
        .where(EngagementCriteria.is_active.is_(True))
        .order_by(EngagementCriteria.priority.desc(), EngagementCriteria.id)
    ).all()
    rules: list[ScoringRule] = []
    for row in rows:
        try:
            rules.append(parse_scoring_rule(row))
        except MisconfiguredRule as exc:
            logger.warning("Skipping misconfigured scoring rule %s (id=%d): %s", row.name, row.id, exc)
    return rules


def _engagement_counts(session: Session, user_id: int) -> tuple[int, int]:
    """(credited engagements, all engagements) for *user_id*."""
    row = session.execute(
        select(
            func.count(TweetEngagement.id),
            func.sum(case((TweetEngagement.status.in_(CREDITED_STATUSES), 1), else_=0)),
        ).where(TweetEngagement.user_id == user_id)
    ).one()
    total, credited = row
    return credited or 0, total or 0


def _streak(session: Session, user_id: int, now_local: datetime) -> int:
    since = (now_local - timedelta(days=STREAK_LOOKBACK_DAYS)).astimezone(UTC)
    stamps = session.scalars(
        select(TweetEngagement.engaged_at).where(
            TweetEngagement.user_id == user_id,
            TweetEngagement.engaged_at >= since,
        )
    ).all()
    days = {as_utc(ts).astimezone(now_local.tzinfo).date() for ts in stamps}
    return streak_length(days, now_local.date())


def build_context(session: Session, user: User, tweet: Tweet, now: datetime) -> EngagerContext:
    now_local, now_utc = _clock(now)
    verified, total = _engagement_counts(session, user.id)
    post_age_hours = None
    if tweet.posted_at is not None:
        post_age_hours = (now_utc - as_utc(tweet.posted_at)).total_seconds() / 3600
    return EngagerContext(
        user_id=user.id,
        account_age_days=whole_days_between(user.created_at, now_utc) if user.created_at else 0,
        is_verified=bool(user.is_twitter_verified),
        follower_count=user.twitter_followers_count or 0,
        verified_engagements=verified,
        total_engagements=total,
        streak_days=_streak(session, user.id, now_local),
        post_age_hours=post_age_hours,
    )


# ---------------------------------------------------------------------------
# Calculation
# ---------------------------------------------------------------------------
def calculate_points(
    engine: Engine,
    user_id: int,
    tweet_id: int,
    kinds: list[str],
    now: datetime | None = None,
) -> PointsResult:
    """Preview the points *user_id* would earn for *kinds* on *tweet_id*.

    Daily limits and cooldowns are **not** applied here; see
    :func:`check_daily_limit` and :func:`check_cooldown`.

    Raises
    ------
    TargetNotFound, SelfEngagement, UserNotFound
    """
    now_local, _ = _clock(now)
    with Session(engine) as session:
        user, tweet = _load_target(session, user_id, tweet_id)
        ctx = build_context(session, user, tweet, now_local)
        return calculate(load_active_rules(session), kinds, ctx, now_local)


# ---------------------------------------------------------------------------
# Rate gates
# ---------------------------------------------------------------------------
def _rule_actions_since(session: Session, user_id: int, criteria_id: int, since: datetime) -> int:
    return session.scalar(
        select(func.count(func.distinct(TweetEngagement.id)))
        .select_from(TweetEngagement)
        .join(EngagementPointEntry, EngagementPointEntry.engagement_id == TweetEngagement.id)
        .where(
            TweetEngagement.user_id == user_id,
            EngagementPointEntry.criteria_id == criteria_id,
            TweetEngagement.engaged_at >= since,
        )
    ) or 0


def _within_daily_limit(
    session: Session, user_id: int, criteria_id: int, req: Requirements, now_local: datetime,
) -> bool:
    if not req.max_daily_actions:
        return True
    since = start_of_day(now_local).astimezone(UTC)
    return _rule_actions_since(session, user_id, criteria_id, since) < req.max_daily_actions


def _cooled_down(
    session: Session, user_id: int, criteria_id: int, req: Requirements, now_local: datetime,
) -> bool:
    if not req.cooldown_minutes:
        return True
    since = (now_local - timedelta(minutes=req.cooldown_minutes)).astimezone(UTC)
    return _rule_actions_since(session, user_id, criteria_id, since) == 0


def _rule_requirements(session: Session, criteria_id: int) -> Requirements | None:
    row = session.get(EngagementCriteria, criteria_id)
    if row is None:
        return None
    return parse_scoring_rule(row).requirements


def check_daily_limit(
    engine: Engine, user_id: int, criteria_id: int, now: datetime | None = None,
) -> bool:
    """True while the user is under the rule's ``max_daily_actions`` for the
    current calendar day.  Rules without a limit (or unknown rules) pass."""
    now_local, _ = _clock(now)
    with Session(engine) as session:
        req = _rule_requirements(session, criteria_id)
        if req is None:
            return True
        return _within_daily_limit(session, user_id, criteria_id, req, now_local)


def check_cooldown(
    engine: Engine, user_id: int, criteria_id: int, now: datetime | None = None,
) -> bool:
    """True when the rule's ``cooldown_minutes`` have elapsed since the
    user's last engagement scored by it."""
    now_local, _ = _clock(now)
    with Session(engine) as session:
        req = _rule_requirements(session, criteria_id)
        if req is None:
            return True
        return _cooled_down(session, user_id, criteria_id, req, now_local)


# ---------------------------------------------------------------------------
# Recording & review
# ---------------------------------------------------------------------------
def _credit(session: Session, engagement: TweetEngagement) -> None:
    points = engagement.total_points
    session.execute(
        update(User)
        .where(User.id == engagement.user_id)
        .values(total_points=User.total_points + points)
    )
    session.execute(
        update(Tweet)
        .where(Tweet.id == engagement.tweet_id)
        .values(total_points_distributed=Tweet.total_points_distributed + points)
    )


def _load_engagement(session: Session, engagement_id: int) -> TweetEngagement:
    engagement = session.scalar(
        select(TweetEngagement)
        .options(selectinload(TweetEngagement.entries))
        .where(TweetEngagement.id == engagement_id)
    )
    if engagement is None:
        raise EngagementNotFound(f"Engagement {engagement_id} not found")
    return engagement


def record_engagement(
    engine: Engine,
    user_id: int,
    tweet_id: int,
    kinds: list[str],
    proof_urls: list[dict] | None = None,
    now: datetime | None = None,
    auto_verify: bool = False,
) -> TweetEngagement:
    """Score and persist one engagement of *user_id* on *tweet_id*.

    Every rule that contributes must pass its daily limit and cooldown.
    Follower count and account age are snapshotted onto the record.

    Raises
    ------
    TargetNotFound, SelfEngagement, UserNotFound
    EngagementRateLimited
        A contributing rule's daily limit or cooldown is not satisfied.
    DuplicateEngagement
        The user already has an engagement on this post.
    """
    now_local, now_utc = _clock(now)
    with Session(engine, expire_on_commit=False) as session:
        user, tweet = _load_target(session, user_id, tweet_id)
        # Reported before the rate gates; the unique constraint still backs it
        existing = session.scalar(
            select(TweetEngagement.id).where(
                TweetEngagement.user_id == user_id, TweetEngagement.tweet_id == tweet_id,
            )
        )
        if existing is not None:
            raise DuplicateEngagement()

        rules = load_active_rules(session)
        ctx = build_context(session, user, tweet, now_local)
        result = calculate(rules, kinds, ctx, now_local)

        by_id = {rule.id: rule for rule in rules}
        for rule_id in result.matched_rule_ids:
            rule = by_id[rule_id]
            if not _within_daily_limit(session, user_id, rule_id, rule.requirements, now_local):
                raise EngagementRateLimited(f"Daily limit reached for {rule.name}")
            if not _cooled_down(session, user_id, rule_id, rule.requirements, now_local):
                raise EngagementRateLimited(f"Cooldown active for {rule.name}")

        status = EngagementStatus.AUTO_VERIFIED if auto_verify else EngagementStatus.PENDING
        engagement = TweetEngagement(
            user_id=user_id,
            tweet_id=tweet_id,
            tweet_author_id=tweet.author_id,
            engagement_types=list(dict.fromkeys(kinds)),
            total_points=result.total_points,
            proof_urls=proof_urls or [],
            status=status.value,
            verified_at=now_utc if auto_verify else None,
            user_follower_count=user.twitter_followers_count,
            user_account_age=ctx.account_age_days,
            engaged_at=now_utc,
            entries=[
                EngagementPointEntry(
                    criteria_id=item.criteria_id,
                    criteria_name=item.criteria_name,
                    engagement_type=item.engagement_type,
                    base_points=item.base_points,
                    bonus_points=item.bonus_points,
                    multiplier=item.multiplier,
                    total_points=item.total_points,
                    reason=item.reason,
                )
                for item in result.breakdown
            ],
        )
        try:
            with session.begin_nested():
                session.add(engagement)
                session.flush()
        except IntegrityError:
            raise DuplicateEngagement() from None

        session.execute(
            update(Tweet)
            .where(Tweet.id == tweet_id)
            .values(total_engagements_given=Tweet.total_engagements_given + 1)
        )
        if auto_verify:
            _credit(session, engagement)

        session.commit()
        session.expunge(engagement)

    logger.info(
        "Engagement recorded: user %d → post %d %s = %.2f pts [%s]",
        user_id, tweet_id, engagement.engagement_types, engagement.total_points, engagement.status,
    )
    return engagement


def _review(
    engine: Engine,
    engagement_id: int,
    reviewer_id: int,
    status: EngagementStatus,
    reason: str | None,
    now: datetime | None,
) -> TweetEngagement:
    _, now_utc = _clock(now)
    with Session(engine, expire_on_commit=False) as session:
        values = {"status": status.value, "verified_by": reviewer_id, "verified_at": now_utc}
        if reason is not None:
            values["rejection_reason"] = reason
        # Conditional transition: only one reviewer can move it out of pending
        result = session.execute(
            update(TweetEngagement)
            .where(
                TweetEngagement.id == engagement_id,
                TweetEngagement.status == EngagementStatus.PENDING.value,
            )
            .values(**values)
        )
        if result.rowcount == 0:
            _load_engagement(session, engagement_id)
            raise EngagementAlreadyReviewed()

        engagement = _load_engagement(session, engagement_id)
        if status == EngagementStatus.VERIFIED:
            _credit(session, engagement)
        session.commit()
        session.expunge(engagement)

    logger.info(
        "Engagement %d %s by %d (%.2f pts)",
        engagement_id, status.value, reviewer_id, engagement.total_points,
    )
    return engagement


def verify_engagement(
    engine: Engine, engagement_id: int, reviewer_id: int, now: datetime | None = None,
) -> TweetEngagement:
    """pending → verified, crediting the user and the post."""
    return _review(engine, engagement_id, reviewer_id, EngagementStatus.VERIFIED, None, now)


def reject_engagement(
    engine: Engine,
    engagement_id: int,
    reviewer_id: int,
    reason: str,
    now: datetime | None = None,
) -> TweetEngagement:
    """pending → rejected.  No points move."""
    return _review(engine, engagement_id, reviewer_id, EngagementStatus.REJECTED, reason, now)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_engagement_stats(engine: Engine, user_id: int) -> dict:
    """Per-status counts and point sums for a user's engagements."""
    with Session(engine) as session:
        rows = session.execute(
            select(
                TweetEngagement.status,
                func.count(TweetEngagement.id),
                func.coalesce(func.sum(TweetEngagement.total_points), 0.0),
            )
            .where(TweetEngagement.user_id == user_id)
            .group_by(TweetEngagement.status)
        ).all()

    by_status = {status.value: 0 for status in EngagementStatus}
    earned = pending = 0.0
    for status, count, points in rows:
        by_status[status] = count
        if status in CREDITED_STATUSES:
            earned += points
        elif status == EngagementStatus.PENDING.value:
            pending += points
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "points_earned": earned,
        "points_pending": pending,
    }


def list_pending_engagements(engine: Engine, limit: int = 50) -> list[TweetEngagement]:
    """Oldest pending engagements first, for the review queue."""
    with Session(engine) as session:
        return list(session.scalars(
            select(TweetEngagement)
            .options(selectinload(TweetEngagement.entries))
            .where(TweetEngagement.status == EngagementStatus.PENDING.value)
            .order_by(TweetEngagement.engaged_at, TweetEngagement.id)
            .limit(limit)
        ).all())
