"""
jobless.database.seed — Default Catalogue Seeder
=================================================

Baseline badges, roles and scoring rules seeded on first startup so the
platform has something to award out of the box.

Idempotent: rows are matched by name and only missing ones are inserted.
Admin edits to seeded rows are never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from jobless.database.models import Badge, EngagementCriteria, Role

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default catalogue
# ---------------------------------------------------------------------------
DEFAULT_ROLES: dict[str, str] = {
    "member": "Member",
    "content_creator": "Content Creator",
    "mentor": "Mentor",
    "requester": "Requester",
    "scout": "Scout",
    "admin": "Admin",
}

DEFAULT_BADGES: list[dict] = [
    # -- role ---------------------------------------------------------------
    {"name": "rookie", "display_name": "Rookie", "type": "role", "category": "general",
     "description": "Welcome to Jobless! Your journey begins here.",
     "required_roles": ["member"], "rarity": "common", "tier": "entry", "color": "#6B7280"},
    {"name": "creator", "display_name": "Creator", "type": "role", "category": "hub",
     "description": "Holds the content creator role.",
     "required_roles": ["content_creator"], "rarity": "rare", "color": "#8B5CF6"},
    {"name": "mentor", "display_name": "Mentor", "type": "role", "category": "academy",
     "description": "Teaches in the academy.",
     "required_roles": ["mentor"], "rarity": "rare", "color": "#10B981"},
    {"name": "scout", "display_name": "Scout", "type": "role", "category": "alpha",
     "description": "Hunts alpha for the community.",
     "required_roles": ["scout"], "rarity": "rare", "color": "#F59E0B"},
    # -- general ------------------------------------------------------------
    {"name": "active_member", "display_name": "Active Member", "type": "achievement",
     "category": "general", "description": "Member for a week.",
     "criteria": {"type": "days_active", "target": 7}, "rarity": "common"},
    {"name": "veteran", "display_name": "Veteran", "type": "achievement",
     "category": "general", "description": "Member for 30 days.",
     "criteria": {"type": "days_active", "target": 30}, "rarity": "rare"},
    {"name": "point_collector", "display_name": "Point Collector", "type": "achievement",
     "category": "general", "description": "Reached 100 J-Rank points.",
     "criteria": {"type": "jrank_points", "target": 100}, "rarity": "common"},
    {"name": "contributor", "display_name": "Contributor", "type": "achievement",
     "category": "general", "description": "Contribution score of 500.",
     "criteria": {"type": "contribution_score", "target": 500}, "rarity": "rare"},
    {"name": "early_adopter", "display_name": "Early Adopter", "type": "special",
     "category": "general", "description": "One of the first 1000 members.",
     "criteria": {"type": "user_id_threshold", "target": 1000, "operator": "lte"},
     "rarity": "epic"},
    # -- hub ----------------------------------------------------------------
    {"name": "first_post", "display_name": "First Post", "type": "activity",
     "category": "hub", "description": "Published your first piece of content.",
     "criteria": {"type": "content_count", "target": 1}, "rarity": "common"},
    {"name": "prolific", "display_name": "Prolific", "type": "achievement",
     "category": "hub", "description": "Published 20 pieces of content.",
     "criteria": {"type": "content_count", "target": 20}, "rarity": "rare"},
    {"name": "popular_post", "display_name": "Popular Post", "type": "achievement",
     "category": "hub", "description": "Received 50+ likes on a single post.",
     "criteria": {"type": "like_count", "target": 50, "single": True}, "rarity": "rare"},
    {"name": "viral_hit", "display_name": "Viral Hit", "type": "achievement",
     "category": "hub", "description": "Received 100+ likes on a single post.",
     "criteria": {"type": "like_count", "target": 100, "single": True}, "rarity": "epic"},
    # -- studio -------------------------------------------------------------
    {"name": "first_request", "display_name": "First Request", "type": "activity",
     "category": "studio", "description": "Opened your first design request.",
     "criteria": {"type": "request_count", "target": 1, "request_role": "requester"},
     "rarity": "common"},
    {"name": "studio_pro", "display_name": "Studio Pro", "type": "achievement",
     "category": "studio", "description": "Completed 10 design requests.",
     "criteria": {"type": "request_count", "target": 10, "request_role": "completed"},
     "rarity": "rare"},
    {"name": "five_star", "display_name": "Five Star", "type": "achievement",
     "category": "studio", "description": "Average rating of 4.8 or higher.",
     "criteria": {"type": "rating_avg", "target": 4.8}, "rarity": "epic"},
    # -- academy ------------------------------------------------------------
    {"name": "first_course", "display_name": "First Course", "type": "activity",
     "category": "academy", "description": "Published your first course.",
     "criteria": {"type": "course_count", "target": 1}, "rarity": "common"},
    {"name": "graduate", "display_name": "Graduate", "type": "achievement",
     "category": "academy", "description": "Completed 5 courses.",
     "criteria": {"type": "completion_count", "target": 5}, "rarity": "rare"},
    # -- alpha --------------------------------------------------------------
    {"name": "first_alpha", "display_name": "First Alpha", "type": "activity",
     "category": "alpha", "description": "Shared your first alpha.",
     "criteria": {"type": "alpha_count", "target": 1}, "rarity": "common"},
    {"name": "bull_run", "display_name": "Bull Run", "type": "achievement",
     "category": "alpha", "description": "25 bullish votes on a single alpha.",
     "criteria": {"type": "bullish_count", "target": 25, "single": True}, "rarity": "epic"},
    # -- info ---------------------------------------------------------------
    {"name": "amplifier", "display_name": "Amplifier", "type": "activity",
     "category": "info", "description": "Submitted 10 posts for engagement.",
     "criteria": {"type": "engagement_count", "target": 10}, "rarity": "common"},
]

DEFAULT_SCORING_RULES: list[dict] = [
    {"name": "Like", "criteria_type": "like", "priority": 0,
     "description": "Base points for a like",
     "points_config": {"base_points": 1}},
    {"name": "Retweet", "criteria_type": "retweet", "priority": 0,
     "description": "Base points for a retweet",
     "points_config": {"base_points": 3},
     "requirements": {"max_daily_actions": 50}},
    {"name": "Quote", "criteria_type": "quote", "priority": 0,
     "description": "Base points for a quote post",
     "points_config": {
         "base_points": 5,
         "bonus_conditions": [{
             "condition": "time_based", "threshold": 24, "bonus_points": 2,
             "description": "Quoted within the first 24 hours",
         }],
     },
     "requirements": {"min_account_age": 7}},
    {"name": "Reply", "criteria_type": "reply", "priority": 0,
     "description": "Base points for a reply",
     "points_config": {"base_points": 2},
     "requirements": {"cooldown_minutes": 1}},
]


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_catalogue(engine: Engine) -> None:
    """Insert default roles, badges and scoring rules that don't yet exist."""
    session = Session(engine)
    inserted = 0
    try:
        roles = set(session.scalars(select(Role.name)).all())
        for name, display in DEFAULT_ROLES.items():
            if name not in roles:
                session.add(Role(name=name, display_name=display))
                inserted += 1

        badges = set(session.scalars(select(Badge.name)).all())
        for spec in DEFAULT_BADGES:
            if spec["name"] not in badges:
                session.add(Badge(**spec))
                inserted += 1

        rules = set(session.scalars(select(EngagementCriteria.name)).all())
        for spec in DEFAULT_SCORING_RULES:
            if spec["name"] not in rules:
                session.add(EngagementCriteria(**spec))
                inserted += 1

        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default catalogue rows.", inserted)
