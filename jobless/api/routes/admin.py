"""
jobless.api.routes.admin — Admin catalogue & review endpoints (JWT-protected)
==============================================================================
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from jobless.api.deps import get_current_admin, get_engine, get_now, get_session
from jobless.api.routes.badges import badge_dict
from jobless.api.routes.engagements import engagement_dict
from jobless.database.models import EngagementCriteria, EngagementKind
from jobless.errors import AlreadyAwarded
from jobless.services import admin_service, badge_service, points_service

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class BadgeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    display_name: str
    type: str
    category: str
    description: str = ""
    criteria: dict | None = None
    required_roles: list[str] = Field(default_factory=list)
    rarity: str = "common"
    tier: str | None = None
    icon_name: str | None = None
    color: str = "#9e9e9e"
    sort_order: int = 0
    is_active: bool = True


class BadgeUpdate(BaseModel):
    display_name: str | None = None
    description: str | None = None
    type: str | None = None
    category: str | None = None
    criteria: dict | None = None
    required_roles: list[str] | None = None
    rarity: str | None = None
    tier: str | None = None
    icon_name: str | None = None
    color: str | None = None
    sort_order: int | None = None
    is_active: bool | None = None


class ScoringRuleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    criteria_type: EngagementKind
    points_config: dict
    description: str = ""
    requirements: dict | None = None
    time_constraints: dict | None = None
    multipliers: list[dict] | None = None
    priority: int = 0
    is_active: bool = True


class ScoringRuleUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    criteria_type: EngagementKind | None = None
    points_config: dict | None = None
    requirements: dict | None = None
    time_constraints: dict | None = None
    multipliers: list[dict] | None = None
    priority: int | None = None
    is_active: bool | None = None


class ManualAwardRequest(BaseModel):
    badge_id: int
    reason: str | None = None


class RejectRequest(BaseModel):
    reason: str = Field(min_length=1)


def _rule_dict(r: EngagementCriteria) -> dict:
    return {
        "id": r.id,
        "name": r.name,
        "description": r.description,
        "criteria_type": r.criteria_type,
        "points_config": r.points_config,
        "requirements": r.requirements,
        "time_constraints": r.time_constraints,
        "multipliers": r.multipliers,
        "priority": r.priority,
        "is_active": r.is_active,
    }


def _updates(body: BaseModel) -> dict[str, Any]:
    kwargs = body.model_dump(exclude_none=True, mode="json")
    if not kwargs:
        raise HTTPException(400, "No fields to update")
    return kwargs


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------
@router.get("/badges")
def list_badges(
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    return {"badges": [badge_dict(b) for b in badge_service.list_badges(engine, include_inactive=True)]}


@router.post("/badges", status_code=201)
def create_badge(
    body: BadgeCreate,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    badge = admin_service.create_badge(engine, actor_id=admin["user_id"], **body.model_dump())
    return badge_dict(badge)


@router.patch("/badges/{badge_id}")
def update_badge(
    badge_id: int,
    body: BadgeUpdate,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    badge = admin_service.update_badge(
        engine, badge_id=badge_id, actor_id=admin["user_id"], **_updates(body),
    )
    if not badge:
        raise HTTPException(404, "Badge not found")
    return badge_dict(badge)


@router.delete("/badges/{badge_id}", status_code=204)
def delete_badge(
    badge_id: int,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    if not admin_service.delete_badge(engine, badge_id=badge_id, actor_id=admin["user_id"]):
        raise HTTPException(404, "Badge not found")
    return None


# ---------------------------------------------------------------------------
# Scoring rules
# ---------------------------------------------------------------------------
@router.get("/scoring-rules")
def list_scoring_rules(
    admin: dict = Depends(get_current_admin),
    session: Session = Depends(get_session),
):
    rows = session.scalars(
        select(EngagementCriteria).order_by(
            EngagementCriteria.priority.desc(), EngagementCriteria.id,
        )
    ).all()
    return {"rules": [_rule_dict(r) for r in rows]}


@router.post("/scoring-rules", status_code=201)
def create_scoring_rule(
    body: ScoringRuleCreate,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    rule = admin_service.create_scoring_rule(
        engine, actor_id=admin["user_id"], **body.model_dump(mode="json"),
    )
    return _rule_dict(rule)


@router.patch("/scoring-rules/{rule_id}")
def update_scoring_rule(
    rule_id: int,
    body: ScoringRuleUpdate,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    rule = admin_service.update_scoring_rule(
        engine, rule_id=rule_id, actor_id=admin["user_id"], **_updates(body),
    )
    if not rule:
        raise HTTPException(404, "Scoring rule not found")
    return _rule_dict(rule)


@router.delete("/scoring-rules/{rule_id}", status_code=204)
def delete_scoring_rule(
    rule_id: int,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    if not admin_service.delete_scoring_rule(engine, rule_id=rule_id, actor_id=admin["user_id"]):
        raise HTTPException(404, "Scoring rule not found")
    return None


# ---------------------------------------------------------------------------
# Awards
# ---------------------------------------------------------------------------
@router.post("/users/{user_id}/badges")
def grant_badge(
    user_id: int,
    body: ManualAwardRequest,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    created = admin_service.manual_award(
        engine, user_id=user_id, badge_id=body.badge_id,
        actor_id=admin["user_id"], reason=body.reason,
    )
    if not created:
        raise AlreadyAwarded()
    return {"awarded": True}


@router.delete("/users/{user_id}/badges/{badge_id}")
def revoke_badge(
    user_id: int,
    badge_id: int,
    reason: str | None = Query(None),
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    if not admin_service.manual_revoke(
        engine, user_id=user_id, badge_id=badge_id, actor_id=admin["user_id"], reason=reason,
    ):
        raise HTTPException(404, "User does not hold this badge")
    return {"removed": True}


@router.post("/users/{user_id}/role-sweep")
def role_sweep(
    user_id: int,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    """Run after changing a user's roles."""
    return {"awarded": badge_service.check_role_badges(engine, user_id)}


# ---------------------------------------------------------------------------
# Engagement review
# ---------------------------------------------------------------------------
@router.get("/engagements/pending")
def pending_engagements(
    limit: int = Query(50, ge=1, le=500),
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    rows = points_service.list_pending_engagements(engine, limit=limit)
    return {"engagements": [engagement_dict(e) for e in rows]}


@router.post("/engagements/{engagement_id}/verify")
def verify_engagement(
    engagement_id: int,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
    now=Depends(get_now),
):
    engagement = points_service.verify_engagement(engine, engagement_id, admin["user_id"], now=now)
    return engagement_dict(engagement)


@router.post("/engagements/{engagement_id}/reject")
def reject_engagement(
    engagement_id: int,
    body: RejectRequest,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
    now=Depends(get_now),
):
    engagement = points_service.reject_engagement(
        engine, engagement_id, admin["user_id"], body.reason, now=now,
    )
    return engagement_dict(engagement)


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------
@router.get("/audit-log")
def audit_log(
    limit: int = Query(100, ge=1, le=1000),
    target_table: str | None = Query(None),
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    rows = admin_service.get_admin_log(engine, limit=limit, target_table=target_table)
    return {
        "entries": [
            {
                "id": r.id,
                "actor_id": r.actor_id,
                "action_type": r.action_type,
                "target_table": r.target_table,
                "target_id": r.target_id,
                "before": r.before_snapshot,
                "after": r.after_snapshot,
                "reason": r.reason,
                "timestamp": r.timestamp.isoformat() if r.timestamp else None,
            }
            for r in rows
        ]
    }
