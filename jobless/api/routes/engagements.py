"""
jobless.api.routes.engagements — Points preview, recording & stats
===================================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from jobless.api.deps import get_config, get_current_user, get_engine, get_now
from jobless.config import JoblessConfig
from jobless.database.models import EngagementKind, TweetEngagement
from jobless.services import points_service

router = APIRouter(tags=["engagements"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class EngagementRequest(BaseModel):
    tweet_id: int
    engagement_types: list[EngagementKind] = Field(min_length=1)


class EngagementCreate(EngagementRequest):
    proof_urls: list[dict] = Field(default_factory=list)


def engagement_dict(e: TweetEngagement) -> dict:
    return {
        "id": e.id,
        "user_id": e.user_id,
        "tweet_id": e.tweet_id,
        "engagement_types": e.engagement_types,
        "total_points": e.total_points,
        "status": e.status,
        "points_breakdown": [
            {
                "criteria_id": p.criteria_id,
                "criteria_name": p.criteria_name,
                "engagement_type": p.engagement_type,
                "base_points": p.base_points,
                "bonus_points": p.bonus_points,
                "multiplier": p.multiplier,
                "total_points": p.total_points,
                "reason": p.reason,
            }
            for p in e.entries
        ],
        "user_follower_count": e.user_follower_count,
        "user_account_age": e.user_account_age,
        "engaged_at": e.engaged_at.isoformat() if e.engaged_at else None,
        "rejection_reason": e.rejection_reason,
    }


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.post("/engagements/preview")
def preview_points(
    body: EngagementRequest,
    user: dict = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    now: datetime = Depends(get_now),
):
    kinds = [k.value for k in body.engagement_types]
    result = points_service.calculate_points(engine, user["user_id"], body.tweet_id, kinds, now=now)
    return result.to_dict()


@router.post("/engagements", status_code=201)
def record_engagement(
    body: EngagementCreate,
    user: dict = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    cfg: JoblessConfig = Depends(get_config),
    now: datetime = Depends(get_now),
):
    engagement = points_service.record_engagement(
        engine,
        user["user_id"],
        body.tweet_id,
        [k.value for k in body.engagement_types],
        proof_urls=body.proof_urls,
        now=now,
        auto_verify=cfg.auto_verify_engagements,
    )
    return engagement_dict(engagement)


@router.get("/me/engagements/stats")
def my_engagement_stats(
    user: dict = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return points_service.get_engagement_stats(engine, user["user_id"])


@router.get("/me/engagements/limits/{criteria_id}")
def my_rule_limits(
    criteria_id: int,
    user: dict = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    now: datetime = Depends(get_now),
):
    """Whether the daily limit and cooldown of a scoring rule currently allow
    another engagement."""
    user_id = user["user_id"]
    return {
        "criteria_id": criteria_id,
        "daily_limit_ok": points_service.check_daily_limit(engine, user_id, criteria_id, now=now),
        "cooldown_ok": points_service.check_cooldown(engine, user_id, criteria_id, now=now),
    }
