"""
jobless.engine.scoring — Engagement Points Pipeline
====================================================

Pure calculation: given the active scoring rules, the requested
engagement kinds and a snapshot of the engaging user, produce a points
breakdown.  No database I/O here; :mod:`jobless.services.points_service`
loads rows and builds the :class:`EngagerContext`.

Per matching rule, in descending priority:

    1. requirement gate  (account age, verification, followers)
    2. time gate         (validity window, active hours with midnight wrap)
    3. bonuses           (added to base points)
    4. multipliers       (multiplied together)
    5. contribution = (base + bonus) × multiplier

Rules are additive: every active rule whose kind matches contributes.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from jobless.constants import as_utc
from jobless.database.models import EngagementKind
from jobless.errors import MisconfiguredRule

if TYPE_CHECKING:
    from jobless.database.models import EngagementCriteria

logger = logging.getLogger(__name__)

BonusConditionType = Literal[
    "follower_count", "engagement_rate", "quality_score", "time_based", "streak",
]
MultiplierCondition = Literal["weekend", "campaign", "special_event"]

# datetime.weekday(): Saturday=5, Sunday=6
WEEKEND_DAYS: frozenset[int] = frozenset({5, 6})


# ---------------------------------------------------------------------------
# Rule configuration models (JSON columns on engagement_criteria)
# ---------------------------------------------------------------------------
class _RuleModel(BaseModel):
    # Stored JSON may use either snake_case or the dashboard's camelCase
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="ignore",
    )


class BonusCondition(_RuleModel):
    condition: BonusConditionType
    threshold: float
    bonus_points: float
    description: str = ""


class PointsConfig(_RuleModel):
    base_points: float = Field(ge=0)
    bonus_conditions: list[BonusCondition] = Field(default_factory=list)


class Requirements(_RuleModel):
    min_followers: int | None = None
    min_account_age: int | None = None
    must_be_verified: bool = False
    max_daily_actions: int | None = Field(default=None, ge=1)
    cooldown_minutes: int | None = Field(default=None, ge=0)


class ActiveHours(_RuleModel):
    start: int = Field(ge=0, le=23)
    end: int = Field(ge=0, le=23)

    def contains(self, hour: int) -> bool:
        """``start > end`` wraps through midnight; ``start == end`` is empty."""
        if self.start <= self.end:
            return self.start <= hour < self.end
        return hour >= self.start or hour < self.end


class TimeConstraints(_RuleModel):
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    active_hours_only: bool = False
    active_hours: ActiveHours | None = None


class Multiplier(_RuleModel):
    condition: MultiplierCondition
    multiplier: float = Field(ge=0)
    valid_from: datetime | None = None
    valid_until: datetime | None = None


@dataclass(frozen=True, slots=True)
class ScoringRule:
    """Typed view of one ``engagement_criteria`` row."""

    id: int | None
    name: str
    kind: str
    priority: int
    points: PointsConfig
    requirements: Requirements = field(default_factory=Requirements)
    time_constraints: TimeConstraints | None = None
    multipliers: tuple[Multiplier, ...] = ()


def parse_rule_config(
    points_config: dict | None,
    requirements: dict | None = None,
    time_constraints: dict | None = None,
    multipliers: list | None = None,
) -> tuple[PointsConfig, Requirements, TimeConstraints | None, tuple[Multiplier, ...]]:
    """Validate the four JSON columns of a scoring rule.

    Raises
    ------
    MisconfiguredRule
        On a missing points config, unknown bonus / multiplier condition,
        or any other invalid shape.
    """
    if not points_config:
        raise MisconfiguredRule("Scoring rule has no points config")
    try:
        return (
            PointsConfig.model_validate(points_config),
            Requirements.model_validate(requirements or {}),
            TimeConstraints.model_validate(time_constraints) if time_constraints else None,
            tuple(Multiplier.model_validate(m) for m in (multipliers or [])),
        )
    except ValidationError as exc:
        err = exc.errors()[0]
        loc = ".".join(str(p) for p in err["loc"])
        raise MisconfiguredRule(f"Invalid scoring rule config at {loc or 'root'}: {err['msg']}") from exc


def parse_scoring_rule(row: EngagementCriteria) -> ScoringRule:
    """Build a :class:`ScoringRule` from an ORM row (raises MisconfiguredRule)."""
    kinds = {k.value for k in EngagementKind}
    if row.criteria_type not in kinds:
        raise MisconfiguredRule(f"Unknown engagement kind {row.criteria_type!r}")
    points, requirements, time_constraints, multipliers = parse_rule_config(
        row.points_config, row.requirements, row.time_constraints, row.multipliers,
    )
    return ScoringRule(
        id=row.id,
        name=row.name,
        kind=row.criteria_type,
        priority=row.priority or 0,
        points=points,
        requirements=requirements,
        time_constraints=time_constraints,
        multipliers=multipliers,
    )


# ---------------------------------------------------------------------------
# Engager snapshot
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class EngagerContext:
    """State of the engaging user (and target post) at calculation time.

    Parameters
    ----------
    account_age_days : Whole days since the account was created.
    verified_engagements : Engagements with status verified / auto_verified.
    total_engagements : All engagement records of the user.
    streak_days : Consecutive days, ending today, with at least one engagement.
    post_age_hours : Age of the target post (None if unknown).
    """

    user_id: int
    account_age_days: int = 0
    is_verified: bool = False
    follower_count: int = 0
    verified_engagements: int = 0
    total_engagements: int = 0
    streak_days: int = 0
    post_age_hours: float | None = None

    @property
    def quality_score(self) -> float:
        if self.total_engagements <= 0:
            return 0.0
        return self.verified_engagements / self.total_engagements * 100


def streak_length(active_days: set[date], today: date) -> int:
    """Consecutive days ending at *today* found in *active_days*.

    Today not being active yet does not break a streak that ran through
    yesterday.
    """
    day = today if today in active_days else today - timedelta(days=1)
    streak = 0
    while day in active_days:
        streak += 1
        day -= timedelta(days=1)
    return streak


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BreakdownItem:
    criteria_id: int | None
    criteria_name: str
    engagement_type: str
    base_points: float
    bonus_points: float
    multiplier: float
    total_points: float
    reason: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class PointsResult:
    total_points: float
    breakdown: list[BreakdownItem]

    @property
    def matched_rule_ids(self) -> list[int]:
        seen: list[int] = []
        for item in self.breakdown:
            if item.criteria_id is not None and item.criteria_id not in seen:
                seen.append(item.criteria_id)
        return seen

    def to_dict(self) -> dict:
        return {
            "total_points": self.total_points,
            "breakdown": [item.to_dict() for item in self.breakdown],
        }


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------
def meets_requirements(rule: ScoringRule, ctx: EngagerContext) -> bool:
    req = rule.requirements
    if req.min_account_age is not None and ctx.account_age_days < req.min_account_age:
        return False
    if req.must_be_verified and not ctx.is_verified:
        return False
    if req.min_followers is not None and ctx.follower_count < req.min_followers:
        return False
    return True


def _within(now: datetime, start: datetime | None, end: datetime | None) -> bool:
    now = as_utc(now)
    if start is not None and now < as_utc(start):
        return False
    if end is not None and now > as_utc(end):
        return False
    return True


def meets_time_constraints(rule: ScoringRule, now: datetime) -> bool:
    """Validity window plus active hours, read in *now*'s own timezone."""
    tc = rule.time_constraints
    if tc is None:
        return True
    if not _within(now, tc.valid_from, tc.valid_until):
        return False
    if tc.active_hours_only and tc.active_hours is not None:
        return tc.active_hours.contains(now.hour)
    return True


# ---------------------------------------------------------------------------
# Bonuses & multipliers
# ---------------------------------------------------------------------------
def _bonus_applies(cond: BonusCondition, ctx: EngagerContext) -> bool:
    if cond.condition == "follower_count":
        return ctx.follower_count >= cond.threshold
    if cond.condition == "engagement_rate":
        return ctx.verified_engagements >= cond.threshold
    if cond.condition == "quality_score":
        return ctx.quality_score >= cond.threshold
    if cond.condition == "time_based":
        # Early engagement: post is at most `threshold` hours old
        return ctx.post_age_hours is not None and ctx.post_age_hours <= cond.threshold
    if cond.condition == "streak":
        return ctx.streak_days >= cond.threshold
    return False


def compute_bonus(rule: ScoringRule, ctx: EngagerContext) -> tuple[float, list[str]]:
    """Sum of fired bonus points and the names of the conditions that fired."""
    bonus = 0.0
    fired: list[str] = []
    for cond in rule.points.bonus_conditions:
        if _bonus_applies(cond, ctx):
            bonus += cond.bonus_points
            fired.append(cond.condition)
    return bonus, fired


def compute_multiplier(rule: ScoringRule, now: datetime) -> tuple[float, list[str]]:
    """Product of applicable multipliers and the conditions that applied."""
    combined = 1.0
    fired: list[str] = []
    for mult in rule.multipliers:
        if not _within(now, mult.valid_from, mult.valid_until):
            continue
        if mult.condition == "weekend":
            applies = now.weekday() in WEEKEND_DAYS
        else:
            # campaign / special_event: the validity window is the condition
            applies = True
        if applies:
            combined *= mult.multiplier
            fired.append(mult.condition)
    return combined, fired


def build_reason(
    rule_name: str,
    bonus: float,
    bonus_names: list[str],
    multiplier: float,
    multiplier_names: list[str],
) -> str:
    reason = f"{rule_name} criteria applied"
    if bonus:
        reason += f" (+{bonus:g} bonus: {', '.join(bonus_names)})"
    if multiplier != 1:
        reason += f" (x{multiplier:g} multiplier: {', '.join(multiplier_names)})"
    return reason


# ---------------------------------------------------------------------------
# Main calculation
# ---------------------------------------------------------------------------
def calculate(
    rules: list[ScoringRule],
    kinds: list[str],
    ctx: EngagerContext,
    now: datetime,
) -> PointsResult:
    """Score *kinds* against *rules* for the engager in *ctx*.

    Duplicate kinds count once.  Rules failing a gate are skipped without
    error; the breakdown lists only contributing rules and is returned
    even when the total is zero.
    """
    ordered = sorted(rules, key=lambda r: r.priority, reverse=True)
    breakdown: list[BreakdownItem] = []
    total = 0.0

    for kind in dict.fromkeys(kinds):
        for rule in ordered:
            if rule.kind != kind:
                continue
            if not meets_requirements(rule, ctx):
                logger.debug("User %d does not meet requirements for %s", ctx.user_id, rule.name)
                continue
            if not meets_time_constraints(rule, now):
                logger.debug("Time constraints not met for %s", rule.name)
                continue

            base = rule.points.base_points
            bonus, bonus_names = compute_bonus(rule, ctx)
            multiplier, multiplier_names = compute_multiplier(rule, now)
            points = (base + bonus) * multiplier

            breakdown.append(BreakdownItem(
                criteria_id=rule.id,
                criteria_name=rule.name,
                engagement_type=kind,
                base_points=base,
                bonus_points=bonus,
                multiplier=multiplier,
                total_points=points,
                reason=build_reason(rule.name, bonus, bonus_names, multiplier, multiplier_names),
            ))
            total += points

    return PointsResult(total_points=total, breakdown=breakdown)
