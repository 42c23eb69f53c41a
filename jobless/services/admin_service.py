"""
jobless.services.admin_service — Admin Mutation Service Layer
==============================================================

Catalogue mutations (badges, scoring rules) and manual award / revoke.
Every write follows the pattern:
  1. Begin transaction
  2. Read "before" snapshot
  3. Validate and apply change
  4. Write admin_log with before/after JSONB
  5. Commit

Criteria and scoring configuration are validated here, at authoring
time, so a malformed rule is rejected with :class:`MisconfiguredRule`
before it ever reaches a sweep.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from jobless.constants import BADGE_CATEGORIES, RARITIES
from jobless.database.models import (
    AdminActionType,
    AdminLog,
    Badge,
    BadgeType,
    EarnedFrom,
    EngagementCriteria,
    EngagementKind,
    User,
    UserBadge,
)
from jobless.engine.criteria import parse_criterion
from jobless.engine.scoring import parse_rule_config
from jobless.errors import BadgeNotFound, MisconfiguredRule, UserNotFound
from jobless.services.badge_service import insert_award

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generic audit helpers
# ---------------------------------------------------------------------------
def _row_to_dict(obj: Any) -> dict | None:
    """Convert an ORM instance to a JSON-serializable dict keyed by column name."""
    if obj is None:
        return None
    result = {}
    for attr in obj.__mapper__.column_attrs:
        val = getattr(obj, attr.key, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[attr.columns[0].name] = val
    return result


def _log_admin_action(
    session: Session,
    *,
    actor_id: int,
    action_type: str,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


def _audited_create(engine, row: Any, *, table_name: str, actor_id: int) -> Any:
    """Generic audited CREATE: add -> flush -> log -> commit -> return."""
    with Session(engine, expire_on_commit=False) as session:
        session.add(row)
        session.flush()
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.CREATE.value,
            target_table=table_name,
            target_id=str(row.id),
            before=None,
            after=_row_to_dict(row),
        )
        session.commit()
        session.refresh(row)
        session.expunge(row)
        return row


def _audited_update(
    engine,
    model_cls: type,
    pk: int,
    *,
    table_name: str,
    actor_id: int,
    frozen_keys: tuple[str, ...] = ("id", "created_at"),
    validate: Callable[[Any], None] | None = None,
    **kwargs: Any,
) -> Any | None:
    """Generic audited UPDATE: get -> before -> apply -> validate -> log -> commit.

    Returns the updated (expunged) object, or ``None`` if not found.
    """
    with Session(engine, expire_on_commit=False) as session:
        obj = session.get(model_cls, pk)
        if obj is None:
            return None
        before = _row_to_dict(obj)
        for key, value in kwargs.items():
            if hasattr(obj, key) and key not in frozen_keys:
                setattr(obj, key, value)
        if validate is not None:
            validate(obj)
        session.flush()
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.UPDATE.value,
            target_table=table_name,
            target_id=str(obj.id),
            before=before,
            after=_row_to_dict(obj),
        )
        session.commit()
        session.refresh(obj)
        session.expunge(obj)
        return obj


def _audited_delete(engine, model_cls: type, pk: int, *, table_name: str, actor_id: int) -> bool:
    """Generic audited DELETE.  Returns ``True`` if the row existed."""
    with Session(engine) as session:
        obj = session.get(model_cls, pk)
        if obj is None:
            return False
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.DELETE.value,
            target_table=table_name,
            target_id=str(obj.id),
            before=_row_to_dict(obj),
            after=None,
        )
        session.delete(obj)
        session.commit()
        return True


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def normalize_criteria(criteria: dict | None) -> dict | None:
    """Parse and re-serialize badge criteria in canonical snake_case form."""
    if criteria is None:
        return None
    return parse_criterion(criteria).model_dump(mode="json", exclude_none=True)


def _validate_badge(badge: Badge) -> None:
    if badge.type not in {t.value for t in BadgeType}:
        raise MisconfiguredRule(f"Unknown badge type {badge.type!r}")
    if badge.category not in BADGE_CATEGORIES:
        raise MisconfiguredRule(f"Unknown badge category {badge.category!r}")
    if badge.rarity not in RARITIES:
        raise MisconfiguredRule(f"Unknown rarity {badge.rarity!r}")
    if badge.type == BadgeType.ROLE.value and not badge.required_roles:
        raise MisconfiguredRule("Role badges need at least one required role")
    if badge.type in (BadgeType.ACTIVITY.value, BadgeType.ACHIEVEMENT.value) and not badge.criteria:
        raise MisconfiguredRule(f"{badge.type.title()} badges need criteria")


def normalize_scoring_config(
    criteria_type: str,
    points_config: dict,
    requirements: dict | None = None,
    time_constraints: dict | None = None,
    multipliers: list | None = None,
) -> dict[str, Any]:
    """Validate a scoring rule and return its JSON columns in canonical form."""
    if criteria_type not in {k.value for k in EngagementKind}:
        raise MisconfiguredRule(f"Unknown engagement kind {criteria_type!r}")
    points, req, tc, mults = parse_rule_config(
        points_config, requirements, time_constraints, multipliers,
    )
    return {
        "points_config": points.model_dump(mode="json"),
        "requirements": req.model_dump(mode="json", exclude_none=True) if requirements else None,
        "time_constraints": tc.model_dump(mode="json", exclude_none=True) if tc else None,
        "multipliers": [m.model_dump(mode="json", exclude_none=True) for m in mults] or None,
    }


# ---------------------------------------------------------------------------
# Badge CRUD
# ---------------------------------------------------------------------------
def create_badge(
    engine,
    *,
    name: str,
    display_name: str,
    type: str,
    category: str,
    description: str = "",
    criteria: dict | None = None,
    required_roles: list[str] | None = None,
    rarity: str = "common",
    tier: str | None = None,
    icon_name: str | None = None,
    color: str = "#9e9e9e",
    sort_order: int = 0,
    is_active: bool = True,
    actor_id: int,
) -> Badge:
    """Create a badge rule.  Raises MisconfiguredRule on invalid config."""
    badge = Badge(
        name=name,
        display_name=display_name,
        description=description,
        type=type,
        category=category,
        criteria=normalize_criteria(criteria),
        required_roles=required_roles or [],
        rarity=rarity,
        tier=tier,
        icon_name=icon_name,
        color=color,
        sort_order=sort_order,
        is_active=is_active,
        created_by=actor_id,
    )
    _validate_badge(badge)
    return _audited_create(engine, badge, table_name="badges", actor_id=actor_id)


def update_badge(engine, *, badge_id: int, actor_id: int, **kwargs) -> Badge | None:
    """Update a badge rule; criteria are re-validated."""
    if kwargs.get("criteria") is not None:
        kwargs["criteria"] = normalize_criteria(kwargs["criteria"])
    return _audited_update(
        engine, Badge, badge_id,
        table_name="badges",
        actor_id=actor_id,
        frozen_keys=("id", "created_at", "created_by"),
        validate=_validate_badge,
        **kwargs,
    )


def delete_badge(engine, *, badge_id: int, actor_id: int) -> bool:
    """Delete a badge rule (its awards cascade)."""
    return _audited_delete(engine, Badge, badge_id, table_name="badges", actor_id=actor_id)


# ---------------------------------------------------------------------------
# Scoring rule CRUD
# ---------------------------------------------------------------------------
def create_scoring_rule(
    engine,
    *,
    name: str,
    criteria_type: str,
    points_config: dict,
    description: str = "",
    requirements: dict | None = None,
    time_constraints: dict | None = None,
    multipliers: list | None = None,
    priority: int = 0,
    is_active: bool = True,
    actor_id: int,
) -> EngagementCriteria:
    config = normalize_scoring_config(
        criteria_type, points_config, requirements, time_constraints, multipliers,
    )
    return _audited_create(
        engine,
        EngagementCriteria(
            name=name,
            description=description,
            criteria_type=criteria_type,
            priority=priority,
            is_active=is_active,
            created_by=actor_id,
            **config,
        ),
        table_name="engagement_criteria",
        actor_id=actor_id,
    )


def update_scoring_rule(engine, *, rule_id: int, actor_id: int, **kwargs) -> EngagementCriteria | None:
    def _validate(row: EngagementCriteria) -> None:
        config = normalize_scoring_config(
            row.criteria_type, row.points_config, row.requirements,
            row.time_constraints, row.multipliers,
        )
        for key, value in config.items():
            setattr(row, key, value)

    return _audited_update(
        engine, EngagementCriteria, rule_id,
        table_name="engagement_criteria",
        actor_id=actor_id,
        frozen_keys=("id", "created_at", "created_by"),
        validate=_validate,
        updated_by=actor_id,
        **kwargs,
    )


def delete_scoring_rule(engine, *, rule_id: int, actor_id: int) -> bool:
    return _audited_delete(
        engine, EngagementCriteria, rule_id,
        table_name="engagement_criteria",
        actor_id=actor_id,
    )


# ---------------------------------------------------------------------------
# Manual award / revoke
# ---------------------------------------------------------------------------
def manual_award(
    engine,
    *,
    user_id: int,
    badge_id: int,
    actor_id: int,
    reason: str | None = None,
) -> bool:
    """Grant a badge by hand.  Returns False if the user already held it."""
    with Session(engine) as session:
        if session.get(User, user_id) is None:
            raise UserNotFound(f"User {user_id} not found")
        badge = session.get(Badge, badge_id)
        if badge is None:
            raise BadgeNotFound(f"Badge {badge_id} not found")

        meta = {"awarded_by": actor_id, "reason": reason}
        created = insert_award(session, user_id, badge, EarnedFrom.MANUAL.value, meta)
        if created:
            _log_admin_action(
                session,
                actor_id=actor_id,
                action_type=AdminActionType.MANUAL_AWARD.value,
                target_table="user_badges",
                target_id=f"{user_id}:{badge_id}",
                before=None,
                after={"user_id": user_id, "badge_id": badge_id, "badge": badge.name},
                reason=reason,
            )
        session.commit()
        return created


def manual_revoke(
    engine,
    *,
    user_id: int,
    badge_id: int,
    actor_id: int,
    reason: str | None = None,
) -> bool:
    """Remove an award, keeping a before-snapshot in the audit log."""
    with Session(engine) as session:
        award = session.scalar(
            select(UserBadge).where(UserBadge.user_id == user_id, UserBadge.badge_id == badge_id)
        )
        if award is None:
            return False
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.MANUAL_REVOKE.value,
            target_table="user_badges",
            target_id=f"{user_id}:{badge_id}",
            before=_row_to_dict(award),
            after=None,
            reason=reason,
        )
        session.delete(award)
        session.commit()
    logger.info("Admin %d revoked badge %d from user %d", actor_id, badge_id, user_id)
    return True


def get_admin_log(engine, *, limit: int = 100, target_table: str | None = None) -> list[AdminLog]:
    with Session(engine) as session:
        stmt = select(AdminLog).order_by(AdminLog.timestamp.desc(), AdminLog.id.desc()).limit(limit)
        if target_table:
            stmt = stmt.where(AdminLog.target_table == target_table)
        return list(session.scalars(stmt).all())
