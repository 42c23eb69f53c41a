"""
tests/test_badge_service.py — Award Manager Integration Tests
==============================================================
Sweeps, idempotent awarding, the pin slot state machine and profile
reads.  Uses an in-memory SQLite database via the shared conftest fixtures.
"""

from __future__ import annotations

import logging

import pytest
from conftest import NOW, make_badge, make_user
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from jobless.database.engine import get_session
from jobless.database.models import Content, UserBadge
from jobless.engine.pins import next_free_slot
from jobless.errors import (
    AlreadyPinned,
    BadgeNotFound,
    NotPinned,
    PinLimitExceeded,
    PinSlotTaken,
    UserNotFound,
)
from jobless.services import badge_service


@pytest.fixture
def engine(db_engine):
    """Re-use the shared conftest db_engine (SQLite, StaticPool)."""
    return db_engine


@pytest.fixture
def user_id(engine):
    return make_user(engine, "alice", roles=("member",))


def _award_count(engine, user_id: int) -> int:
    with Session(engine) as session:
        return session.scalar(select(func.count(UserBadge.id)).where(UserBadge.user_id == user_id))


def _publish(engine, user_id: int, *likes: int) -> None:
    with get_session(engine) as s:
        s.add_all([Content(author_id=user_id, status="published", likes_count=n) for n in likes])


# ===========================================================================
# award_badge / remove_badge
# ===========================================================================
class TestAwardBadge:
    def test_award_is_idempotent(self, engine, user_id):
        badge_id = make_badge(engine, "welcome", type="special", category="general")
        assert badge_service.award_badge(engine, user_id, badge_id) is True
        assert badge_service.award_badge(engine, user_id, badge_id) is False
        assert _award_count(engine, user_id) == 1

    def test_award_stores_provenance(self, engine, user_id):
        badge_id = make_badge(engine, "welcome", type="special", category="general")
        badge_service.award_badge(engine, user_id, badge_id, earned_from="manual", metadata={"note": "hi"})
        [award] = badge_service.get_user_badges(engine, user_id)
        assert award.earned_from == "manual"
        assert award.metadata_ == {"note": "hi"}
        assert award.is_visible is True
        assert award.is_pinned is False

    def test_unknown_badge_or_user(self, engine, user_id):
        badge_id = make_badge(engine, "welcome")
        with pytest.raises(BadgeNotFound):
            badge_service.award_badge(engine, user_id, 9999)
        with pytest.raises(UserNotFound):
            badge_service.award_badge(engine, 9999, badge_id)

    def test_remove_badge(self, engine, user_id):
        badge_id = make_badge(engine, "welcome")
        badge_service.award_badge(engine, user_id, badge_id)
        assert badge_service.remove_badge(engine, user_id, badge_id) is True
        assert badge_service.remove_badge(engine, user_id, badge_id) is False
        assert _award_count(engine, user_id) == 0


# ===========================================================================
# Sweeps
# ===========================================================================
class TestActivitySweep:
    def test_first_post_awarded_once(self, engine, user_id):
        badge_id = make_badge(engine, "first_post", criteria={"type": "content_count", "target": 1})
        assert badge_service.check_activity_badges(engine, user_id, "hub", now=NOW) == []

        _publish(engine, user_id, 0)
        assert badge_service.check_activity_badges(engine, user_id, "hub", now=NOW) == [badge_id]
        assert badge_service.check_activity_badges(engine, user_id, "hub", now=NOW) == []

        [award] = badge_service.get_user_badges(engine, user_id)
        assert award.earned_from == "content_milestone"

    def test_single_post_likes(self, engine, user_id):
        popular = make_badge(engine, "popular_post", criteria={"type": "like_count", "target": 60, "single": True})
        best = make_badge(engine, "best_post", criteria={"type": "like_count", "target": 61, "single": True})
        total = make_badge(engine, "crowd", criteria={"type": "like_count", "target": 75})
        _publish(engine, user_id, 10, 60, 5)

        awarded = badge_service.check_activity_badges(engine, user_id, "hub", now=NOW)
        assert sorted(awarded) == sorted([popular, total])
        assert best not in awarded

    def test_sweep_is_scoped_to_module(self, engine, user_id):
        make_badge(engine, "first_alpha", category="alpha", criteria={"type": "content_count", "target": 1})
        _publish(engine, user_id, 0)
        assert badge_service.check_activity_badges(engine, user_id, "hub", now=NOW) == []

    def test_criteria_module_overrides_category(self, engine, user_id):
        badge_id = make_badge(
            engine, "cross_post", category="general",
            criteria={"type": "content_count", "target": 1, "module": "hub"},
        )
        _publish(engine, user_id, 0)
        assert badge_service.check_activity_badges(engine, user_id, "general", now=NOW) == []
        assert badge_service.check_activity_badges(engine, user_id, "hub", now=NOW) == [badge_id]

    def test_inactive_and_role_badges_are_skipped(self, engine, user_id):
        make_badge(engine, "retired", is_active=False, criteria={"type": "content_count", "target": 1})
        make_badge(engine, "member_role", type="role", required_roles=["member"])
        _publish(engine, user_id, 0)
        assert badge_service.check_activity_badges(engine, user_id, "hub", now=NOW) == []

    def test_special_badges_are_swept(self, engine, user_id):
        badge_id = make_badge(
            engine, "early_adopter", type="special", category="general",
            criteria={"type": "user_id_threshold", "target": 1000},
        )
        assert badge_service.check_all_activity_badges(engine, user_id, now=NOW) == [badge_id]

    def test_misconfigured_rule_is_skipped(self, engine, user_id, caplog):
        make_badge(engine, "broken", criteria={"type": "karma_count", "target": 1})
        good = make_badge(engine, "first_post", criteria={"type": "content_count", "target": 1})
        _publish(engine, user_id, 0)

        with caplog.at_level(logging.WARNING, logger="jobless.services.badge_service"):
            awarded = badge_service.check_activity_badges(engine, user_id, "hub", now=NOW)

        assert awarded == [good]
        assert "broken" in caplog.text

    def test_full_sweep_covers_every_module(self, engine, user_id):
        hub = make_badge(engine, "first_post", criteria={"type": "content_count", "target": 1})
        general = make_badge(
            engine, "active_member", type="achievement", category="general",
            criteria={"type": "days_active", "target": 7},
        )
        _publish(engine, user_id, 0)
        awarded = badge_service.check_all_activity_badges(engine, user_id, now=NOW)
        assert sorted(awarded) == sorted([hub, general])

    def test_unknown_module(self, engine, user_id):
        with pytest.raises(ValueError):
            badge_service.check_activity_badges(engine, user_id, "casino")

    def test_unknown_user(self, engine):
        with pytest.raises(UserNotFound):
            badge_service.check_all_activity_badges(engine, 9999)


class TestRoleSweep:
    def test_awards_matching_role_badges(self, engine):
        uid = make_user(engine, "maya", roles=("member", "mentor"))
        rookie = make_badge(engine, "rookie", type="role", category="general", required_roles=["member"])
        mentor = make_badge(engine, "mentor", type="role", category="academy", required_roles=["mentor", "admin"])
        make_badge(engine, "scout", type="role", category="alpha", required_roles=["scout"])

        awarded = badge_service.check_role_badges(engine, uid)
        assert sorted(awarded) == sorted([rookie, mentor])
        assert badge_service.check_role_badges(engine, uid) == []

        awards = {ub.badge_id: ub for ub in badge_service.get_user_badges(engine, uid)}
        assert awards[mentor].earned_from == "role_assignment"
        assert awards[mentor].metadata_ == {"roles": ["mentor"]}

    def test_no_roles_awards_nothing(self, engine):
        uid = make_user(engine, "nobody")
        make_badge(engine, "rookie", type="role", required_roles=["member"])
        assert badge_service.check_role_badges(engine, uid) == []


# ===========================================================================
# Pin state machine
# ===========================================================================
class TestPinning:
    @pytest.fixture
    def badges(self, engine, user_id):
        ids = [make_badge(engine, f"badge_{i}") for i in range(5)]
        for badge_id in ids:
            badge_service.award_badge(engine, user_id, badge_id)
        return ids

    def test_pins_fill_lowest_free_slot(self, engine, user_id, badges):
        slots = [badge_service.pin_badge(engine, user_id, b).pinned_order for b in badges[:3]]
        assert slots == [1, 2, 3]

    def test_fourth_pin_is_rejected(self, engine, user_id, badges):
        for b in badges[:3]:
            badge_service.pin_badge(engine, user_id, b)
        with pytest.raises(PinLimitExceeded):
            badge_service.pin_badge(engine, user_id, badges[3])

    def test_unpin_frees_slot_for_reuse(self, engine, user_id, badges):
        for b in badges[:3]:
            badge_service.pin_badge(engine, user_id, b)
        unpinned = badge_service.unpin_badge(engine, user_id, badges[1])
        assert unpinned.is_pinned is False
        assert unpinned.pinned_order is None
        assert unpinned.pinned_at is None

        assert badge_service.pin_badge(engine, user_id, badges[3]).pinned_order == 2

    def test_explicit_slot(self, engine, user_id, badges):
        assert badge_service.pin_badge(engine, user_id, badges[0], slot=3).pinned_order == 3
        assert badge_service.pin_badge(engine, user_id, badges[1]).pinned_order == 1
        with pytest.raises(PinSlotTaken):
            badge_service.pin_badge(engine, user_id, badges[2], slot=3)

    def test_invalid_slot(self, engine, user_id, badges):
        with pytest.raises(ValueError):
            badge_service.pin_badge(engine, user_id, badges[0], slot=4)

    def test_pin_twice(self, engine, user_id, badges):
        badge_service.pin_badge(engine, user_id, badges[0])
        with pytest.raises(AlreadyPinned):
            badge_service.pin_badge(engine, user_id, badges[0])

    def test_unpin_unpinned(self, engine, user_id, badges):
        with pytest.raises(NotPinned):
            badge_service.unpin_badge(engine, user_id, badges[0])

    def test_pin_unearned_badge(self, engine, user_id):
        other = make_badge(engine, "unearned")
        with pytest.raises(BadgeNotFound):
            badge_service.pin_badge(engine, user_id, other)

    def test_pinned_slots_are_unique(self, engine, user_id, badges):
        for b in badges[:3]:
            badge_service.pin_badge(engine, user_id, b)
        badge_service.unpin_badge(engine, user_id, badges[0])
        badge_service.pin_badge(engine, user_id, badges[4])
        with Session(engine) as session:
            slots = session.scalars(
                select(UserBadge.pinned_order).where(
                    UserBadge.user_id == user_id, UserBadge.is_pinned.is_(True),
                )
            ).all()
        assert sorted(slots) == [1, 2, 3]

    def test_slot_collision_is_retried(self, engine, user_id, badges, monkeypatch, caplog):
        badge_service.pin_badge(engine, user_id, badges[0])
        calls = []

        def stale_slot(used):
            # First attempt behaves as if slot 1 were still free
            calls.append(list(used))
            return 1 if len(calls) == 1 else next_free_slot(used)

        monkeypatch.setattr(badge_service, "next_free_slot", stale_slot)
        with caplog.at_level(logging.INFO, logger="jobless.services.badge_service"):
            award = badge_service.pin_badge(engine, user_id, badges[1])

        assert award.pinned_order == 2
        assert len(calls) == 2
        assert "Pin slot collision" in caplog.text

    def test_persistent_collision_gives_up(self, engine, user_id, badges, monkeypatch):
        badge_service.pin_badge(engine, user_id, badges[0])
        monkeypatch.setattr(badge_service, "next_free_slot", lambda used: 1)

        with pytest.raises(PinSlotTaken):
            badge_service.pin_badge(engine, user_id, badges[1])

        with Session(engine) as session:
            award = session.scalar(
                select(UserBadge).where(UserBadge.user_id == user_id, UserBadge.badge_id == badges[1])
            )
            assert award.is_pinned is False
            assert award.pinned_order is None


class TestVisibilityAndReads:
    @pytest.fixture
    def awarded(self, engine, user_id):
        common = make_badge(engine, "common_one", rarity="common", category="hub")
        epic = make_badge(engine, "epic_one", rarity="epic", category="alpha")
        for badge_id in (common, epic):
            badge_service.award_badge(engine, user_id, badge_id)
        return common, epic

    def test_toggle_visibility_keeps_pin(self, engine, user_id, awarded):
        common, _ = awarded
        badge_service.pin_badge(engine, user_id, common)
        hidden = badge_service.toggle_badge_visibility(engine, user_id, common)
        assert hidden.is_visible is False
        assert hidden.is_pinned is True
        assert hidden.pinned_order == 1

        assert badge_service.get_pinned_badges(engine, user_id) == []
        assert badge_service.toggle_badge_visibility(engine, user_id, common).is_visible is True
        assert [ub.badge_id for ub in badge_service.get_pinned_badges(engine, user_id)] == [common]

    def test_pinned_ordered_by_slot(self, engine, user_id, awarded):
        common, epic = awarded
        badge_service.pin_badge(engine, user_id, common, slot=2)
        badge_service.pin_badge(engine, user_id, epic, slot=1)
        pinned = badge_service.get_pinned_badges(engine, user_id)
        assert [ub.badge_id for ub in pinned] == [epic, common]
        assert pinned[0].badge.name == "epic_one"

    def test_only_visible_filter(self, engine, user_id, awarded):
        common, epic = awarded
        badge_service.toggle_badge_visibility(engine, user_id, epic)
        visible = badge_service.get_user_badges(engine, user_id, only_visible=True)
        assert [ub.badge_id for ub in visible] == [common]
        assert len(badge_service.get_user_badges(engine, user_id)) == 2

    def test_stats(self, engine, user_id, awarded):
        stats = badge_service.get_badge_stats(engine, user_id)
        assert stats["total"] == 2
        assert stats["by_rarity"] == {"common": 1, "rare": 0, "epic": 1, "legendary": 0}
        assert stats["by_category"] == {"hub": 1, "alpha": 1}

    def test_stats_for_user_without_badges(self, engine):
        uid = make_user(engine, "empty")
        stats = badge_service.get_badge_stats(engine, uid)
        assert stats["total"] == 0
        assert stats["by_category"] == {}

    def test_list_badges(self, engine):
        make_badge(engine, "live")
        make_badge(engine, "retired", is_active=False)
        assert [b.name for b in badge_service.list_badges(engine)] == ["live"]
        assert len(badge_service.list_badges(engine, include_inactive=True)) == 2
