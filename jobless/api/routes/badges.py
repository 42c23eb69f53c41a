"""
jobless.api.routes.badges — Badge catalogue, profiles, pins & re-check
=======================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from jobless.api.deps import get_current_user, get_engine
from jobless.database.models import Badge, UserBadge
from jobless.services import badge_service

router = APIRouter(tags=["badges"])


# ---------------------------------------------------------------------------
# Pydantic schemas & serializers
# ---------------------------------------------------------------------------
class PinRequest(BaseModel):
    slot: int | None = Field(default=None, ge=1, le=3)


def badge_dict(b: Badge) -> dict:
    return {
        "id": b.id,
        "name": b.name,
        "display_name": b.display_name,
        "description": b.description,
        "icon_name": b.icon_name,
        "color": b.color,
        "type": b.type,
        "category": b.category,
        "rarity": b.rarity,
        "tier": b.tier,
        "criteria": b.criteria,
        "required_roles": b.required_roles or [],
        "is_active": b.is_active,
    }


def award_dict(ub: UserBadge) -> dict:
    return {
        "badge": badge_dict(ub.badge),
        "earned_at": ub.earned_at.isoformat() if ub.earned_at else None,
        "earned_from": ub.earned_from,
        "is_visible": ub.is_visible,
        "is_pinned": ub.is_pinned,
        "pinned_order": ub.pinned_order,
        "pinned_at": ub.pinned_at.isoformat() if ub.pinned_at else None,
    }


def _pin_state(ub: UserBadge) -> dict:
    return {
        "badge_id": ub.badge_id,
        "is_visible": ub.is_visible,
        "is_pinned": ub.is_pinned,
        "pinned_order": ub.pinned_order,
    }


# ---------------------------------------------------------------------------
# Public reads
# ---------------------------------------------------------------------------
@router.get("/badges")
def list_badges(engine: Engine = Depends(get_engine)):
    return {"badges": [badge_dict(b) for b in badge_service.list_badges(engine)]}


@router.get("/users/{user_id}/badges")
def user_badges(user_id: int, engine: Engine = Depends(get_engine)):
    awards = badge_service.get_user_badges(engine, user_id, only_visible=True)
    return {"badges": [award_dict(ub) for ub in awards]}


@router.get("/users/{user_id}/badges/pinned")
def user_pinned_badges(user_id: int, engine: Engine = Depends(get_engine)):
    return {"badges": [award_dict(ub) for ub in badge_service.get_pinned_badges(engine, user_id)]}


@router.get("/users/{user_id}/badges/stats")
def user_badge_stats(user_id: int, engine: Engine = Depends(get_engine)):
    return badge_service.get_badge_stats(engine, user_id)


# ---------------------------------------------------------------------------
# Own badges
# ---------------------------------------------------------------------------
@router.get("/me/badges")
def my_badges(
    only_visible: bool = Query(False),
    user: dict = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    awards = badge_service.get_user_badges(engine, user["user_id"], only_visible=only_visible)
    return {"badges": [award_dict(ub) for ub in awards]}


@router.post("/me/badges/{badge_id}/pin")
def pin_badge(
    badge_id: int,
    body: PinRequest | None = None,
    user: dict = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    slot = body.slot if body else None
    return _pin_state(badge_service.pin_badge(engine, user["user_id"], badge_id, slot=slot))


@router.post("/me/badges/{badge_id}/unpin")
def unpin_badge(
    badge_id: int,
    user: dict = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return _pin_state(badge_service.unpin_badge(engine, user["user_id"], badge_id))


@router.post("/me/badges/{badge_id}/visibility")
def toggle_visibility(
    badge_id: int,
    user: dict = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return _pin_state(badge_service.toggle_badge_visibility(engine, user["user_id"], badge_id))


@router.post("/me/badges/recheck")
def recheck_badges(
    user: dict = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    """Manual "re-check my badges": role sweep plus full activity sweep."""
    user_id = user["user_id"]
    awarded = badge_service.check_role_badges(engine, user_id)
    awarded += badge_service.check_all_activity_badges(engine, user_id)
    return {"awarded": awarded}
