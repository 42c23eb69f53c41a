"""
jobless.services.badge_service — Award Manager
===============================================

Badge sweeps, idempotent awarding and the per-user pin slot state machine.

Every public function takes an :class:`~sqlalchemy.Engine` and runs as one
request-scoped transaction.  Returned ORM objects are detached from their
session with the attributes the API layer reads already loaded.

Idempotency: ``user_badges`` carries a UNIQUE (user_id, badge_id)
constraint.  Awards are inserted inside a SAVEPOINT; an
:class:`IntegrityError` means another sweep won the race and is reported
as ``False``, never as an error.

Pinning: the user's row is locked (``SELECT … FOR UPDATE``) before the
free-slot read, and the UNIQUE (user_id, pinned_order) constraint catches
anything that slips through on backends without row locks.  A collision
is retried a bounded number of times.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from jobless.constants import MODULES, RARITIES, utcnow
from jobless.database.models import Badge, BadgeType, EarnedFrom, User, UserBadge
from jobless.engine.criteria import evaluate_criterion, parse_criterion
from jobless.engine.pins import at_capacity, is_valid_slot, next_free_slot
from jobless.errors import (
    AlreadyPinned,
    BadgeNotFound,
    MisconfiguredRule,
    NotPinned,
    PinLimitExceeded,
    PinSlotTaken,
    UserNotFound,
)
from jobless.services.activity_service import ActivityAggregator

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

# Badge types evaluated by activity sweeps (role badges use required_roles)
SWEEP_TYPES: tuple[str, ...] = (
    BadgeType.ACTIVITY.value,
    BadgeType.ACHIEVEMENT.value,
    BadgeType.SPECIAL.value,
)

PIN_RETRIES = 3


# ---------------------------------------------------------------------------
# Session-level helpers
# ---------------------------------------------------------------------------
def _require_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise UserNotFound(f"User {user_id} not found")
    return user


def _held_badge_ids(session: Session, user_id: int) -> set[int]:
    rows = session.scalars(
        select(UserBadge.badge_id).where(UserBadge.user_id == user_id)
    ).all()
    return set(rows)


def _get_award(session: Session, user_id: int, badge_id: int) -> UserBadge:
    award = session.scalar(
        select(UserBadge)
        .options(selectinload(UserBadge.badge))
        .where(UserBadge.user_id == user_id, UserBadge.badge_id == badge_id)
    )
    if award is None:
        raise BadgeNotFound(f"Badge {badge_id} not earned by user {user_id}")
    return award


def insert_award(
    session: Session,
    user_id: int,
    badge: Badge,
    earned_from: str,
    metadata: dict | None = None,
) -> bool:
    """Insert an award inside a SAVEPOINT.  False when already held."""
    award = UserBadge(
        user_id=user_id,
        badge_id=badge.id,
        earned_from=earned_from,
        metadata_=metadata,
        earned_at=utcnow(),
    )
    try:
        with session.begin_nested():
            session.add(award)
            session.flush()
    except IntegrityError:
        # SAVEPOINT rolled back; the outer transaction is still usable
        logger.debug("Badge %s already held by user %d", badge.name, user_id)
        return False
    logger.info(
        "Badge awarded: %s (id=%d) to user %d [%s]",
        badge.name, badge.id, user_id, earned_from,
    )
    return True


def _rule_module(badge: Badge) -> str:
    criteria = badge.criteria if isinstance(badge.criteria, dict) else {}
    return criteria.get("module") or badge.category


def _sweep(
    session: Session,
    user_id: int,
    badges: list[Badge],
    aggregator: ActivityAggregator,
    earned_from: str,
) -> list[int]:
    """Evaluate *badges* one by one and award the satisfied ones.

    A failing rule is logged and skipped; the remaining rules still run.
    """
    held = _held_badge_ids(session, user_id)
    awarded: list[int] = []

    for badge in badges:
        if badge.id in held or not badge.criteria:
            continue
        try:
            criterion = parse_criterion(badge.criteria)
        except MisconfiguredRule as exc:
            logger.warning("Skipping misconfigured badge %s (id=%d): %s", badge.name, badge.id, exc)
            continue
        try:
            with session.begin_nested():
                matched = evaluate_criterion(criterion, user_id, aggregator)
        except Exception:
            logger.exception("Badge check failed for %s (id=%d), user %d", badge.name, badge.id, user_id)
            continue

        if matched and insert_award(session, user_id, badge, earned_from):
            awarded.append(badge.id)
            held.add(badge.id)

    return awarded


def _activity_sweep(
    session: Session,
    user_id: int,
    modules: tuple[str, ...],
    now: datetime | None,
) -> list[int]:
    _require_user(session, user_id)
    badges = session.scalars(
        select(Badge)
        .where(Badge.is_active.is_(True), Badge.type.in_(SWEEP_TYPES))
        .order_by(Badge.sort_order, Badge.id)
    ).all()
    aggregator = ActivityAggregator(session, now)

    awarded: list[int] = []
    for module in modules:
        scoped = [b for b in badges if _rule_module(b) == module]
        awarded.extend(_sweep(session, user_id, scoped, aggregator, EarnedFrom.CONTENT_MILESTONE.value))
    return awarded


# ---------------------------------------------------------------------------
# Sweeps
# ---------------------------------------------------------------------------
def check_role_badges(engine: Engine, user_id: int) -> list[int]:
    """Award every active role badge whose required roles intersect the
    user's current roles.  Returns the newly awarded badge ids."""
    with Session(engine) as session:
        _require_user(session, user_id)
        roles = ActivityAggregator(session).role_names(user_id)
        if not roles:
            return []

        badges = session.scalars(
            select(Badge)
            .where(Badge.is_active.is_(True), Badge.type == BadgeType.ROLE.value)
            .order_by(Badge.sort_order, Badge.id)
        ).all()
        held = _held_badge_ids(session, user_id)

        awarded: list[int] = []
        for badge in badges:
            if badge.id in held:
                continue
            matching = roles.intersection(badge.required_roles or [])
            if not matching:
                continue
            meta = {"roles": sorted(matching)}
            if insert_award(session, user_id, badge, EarnedFrom.ROLE_ASSIGNMENT.value, meta):
                awarded.append(badge.id)

        session.commit()
        return awarded


def check_activity_badges(
    engine: Engine,
    user_id: int,
    module: str,
    now: datetime | None = None,
) -> list[int]:
    """Evaluate active activity / achievement / special badges scoped to
    *module* and award the satisfied ones."""
    if module not in MODULES:
        raise ValueError(f"Unknown module {module!r}; expected one of {MODULES}")
    with Session(engine) as session:
        awarded = _activity_sweep(session, user_id, (module,), now)
        session.commit()
        return awarded


def check_all_activity_badges(engine: Engine, user_id: int, now: datetime | None = None) -> list[int]:
    """Union of :func:`check_activity_badges` over every module."""
    with Session(engine) as session:
        awarded = _activity_sweep(session, user_id, MODULES, now)
        session.commit()
    if awarded:
        logger.info("Full sweep for user %d awarded %d badge(s)", user_id, len(awarded))
    return awarded


# ---------------------------------------------------------------------------
# Award / remove
# ---------------------------------------------------------------------------
def award_badge(
    engine: Engine,
    user_id: int,
    badge_id: int,
    earned_from: str = EarnedFrom.SYSTEM.value,
    metadata: dict | None = None,
) -> bool:
    """Award *badge_id* to *user_id*.

    Returns True if a new award was created, False if the user already
    held it (including when a concurrent sweep inserted it first).
    """
    with Session(engine) as session:
        _require_user(session, user_id)
        badge = session.get(Badge, badge_id)
        if badge is None:
            raise BadgeNotFound(f"Badge {badge_id} not found")
        created = insert_award(session, user_id, badge, earned_from, metadata)
        session.commit()
        return created


def remove_badge(engine: Engine, user_id: int, badge_id: int) -> bool:
    """Administrative removal.  Returns False if the user did not hold it."""
    with Session(engine) as session:
        result = session.execute(
            delete(UserBadge).where(
                UserBadge.user_id == user_id, UserBadge.badge_id == badge_id,
            )
        )
        removed = result.rowcount > 0
        session.commit()
    if removed:
        logger.info("Badge %d removed from user %d", badge_id, user_id)
    return removed


# ---------------------------------------------------------------------------
# Pin state machine
# ---------------------------------------------------------------------------
def _pin(session: Session, user_id: int, badge_id: int, slot: int | None) -> UserBadge:
    # Serialise pin operations per user
    user = session.scalar(select(User).where(User.id == user_id).with_for_update())
    if user is None:
        raise UserNotFound(f"User {user_id} not found")

    award = _get_award(session, user_id, badge_id)
    if award.is_pinned:
        raise AlreadyPinned()

    used = session.scalars(
        select(UserBadge.pinned_order).where(
            UserBadge.user_id == user_id, UserBadge.is_pinned.is_(True),
        )
    ).all()
    if at_capacity(len(used)):
        raise PinLimitExceeded()

    if slot is None:
        slot = next_free_slot(used)
    elif slot in used:
        raise PinSlotTaken(f"Pin slot {slot} is already in use")

    award.is_pinned = True
    award.pinned_order = slot
    award.pinned_at = utcnow()
    session.flush()
    return award


def pin_badge(engine: Engine, user_id: int, badge_id: int, slot: int | None = None) -> UserBadge:
    """Pin an earned badge to the lowest free slot (or *slot* if given).

    Raises
    ------
    AlreadyPinned, PinLimitExceeded, PinSlotTaken, BadgeNotFound, UserNotFound
    ValueError
        If *slot* is outside 1..3.
    """
    if slot is not None and not is_valid_slot(slot):
        raise ValueError(f"Pin slot must be 1, 2 or 3 (got {slot})")

    for attempt in range(1, PIN_RETRIES + 1):
        with Session(engine, expire_on_commit=False) as session:
            try:
                award = _pin(session, user_id, badge_id, slot)
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.info(
                    "Pin slot collision for user %d (attempt %d/%d)",
                    user_id, attempt, PIN_RETRIES,
                )
                continue
            session.expunge(award)
        logger.info("User %d pinned badge %d in slot %d", user_id, badge_id, award.pinned_order)
        return award

    raise PinSlotTaken("Could not assign a free pin slot; try again")


def unpin_badge(engine: Engine, user_id: int, badge_id: int) -> UserBadge:
    """Clear the pin slot and timestamp of a pinned badge."""
    with Session(engine, expire_on_commit=False) as session:
        award = _get_award(session, user_id, badge_id)
        if not award.is_pinned:
            raise NotPinned()
        award.is_pinned = False
        award.pinned_order = None
        award.pinned_at = None
        session.commit()
        session.expunge(award)
    logger.info("User %d unpinned badge %d", user_id, badge_id)
    return award


def toggle_badge_visibility(engine: Engine, user_id: int, badge_id: int) -> UserBadge:
    """Flip ``is_visible``.  Pin state is left untouched."""
    with Session(engine, expire_on_commit=False) as session:
        award = _get_award(session, user_id, badge_id)
        award.is_visible = not award.is_visible
        session.commit()
        session.expunge(award)
    return award


# ---------------------------------------------------------------------------
# Read accessors
# ---------------------------------------------------------------------------
def get_user_badges(engine: Engine, user_id: int, only_visible: bool = False) -> list[UserBadge]:
    """A user's awards, newest first."""
    with Session(engine) as session:
        stmt = (
            select(UserBadge)
            .options(selectinload(UserBadge.badge))
            .where(UserBadge.user_id == user_id)
            .order_by(UserBadge.earned_at.desc(), UserBadge.id.desc())
        )
        if only_visible:
            stmt = stmt.where(UserBadge.is_visible.is_(True))
        return list(session.scalars(stmt).all())


def get_pinned_badges(engine: Engine, user_id: int) -> list[UserBadge]:
    """Visible pinned awards ordered by slot (at most 3).

    A pinned award the user has hidden keeps its slot but is not shown.
    """
    with Session(engine) as session:
        return list(session.scalars(
            select(UserBadge)
            .options(selectinload(UserBadge.badge))
            .where(
                UserBadge.user_id == user_id,
                UserBadge.is_pinned.is_(True),
                UserBadge.is_visible.is_(True),
            )
            .order_by(UserBadge.pinned_order)
            .limit(3)
        ).all())


def get_badge_stats(engine: Engine, user_id: int) -> dict:
    """Counts of a user's visible awards by rarity and by category."""
    with Session(engine) as session:
        rows = session.execute(
            select(Badge.rarity, Badge.category)
            .join(UserBadge, UserBadge.badge_id == Badge.id)
            .where(UserBadge.user_id == user_id, UserBadge.is_visible.is_(True))
        ).all()

    by_rarity = {rarity: 0 for rarity in RARITIES}
    by_rarity.update(Counter(row.rarity for row in rows))
    return {
        "total": len(rows),
        "by_rarity": by_rarity,
        "by_category": dict(Counter(row.category for row in rows)),
    }


def list_badges(engine: Engine, include_inactive: bool = False) -> list[Badge]:
    """The badge catalogue in display order."""
    with Session(engine) as session:
        stmt = select(Badge).order_by(Badge.category, Badge.sort_order, Badge.id)
        if not include_inactive:
            stmt = stmt.where(Badge.is_active.is_(True))
        return list(session.scalars(stmt).all())
