"""
tests/test_criteria.py — Unit Tests for the Criteria Evaluator
===============================================================

Pure evaluation against a mocked aggregator (no database).
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from jobless.engine.criteria import (
    CRITERION_TYPES,
    LikeCount,
    RequestCount,
    compare,
    evaluate_criterion,
    parse_criterion,
)
from jobless.errors import MisconfiguredRule

NOW = datetime(2026, 3, 4, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def agg():
    """A mock ActivityAggregator returning zero for every measurement."""
    mock = MagicMock()
    mock.now = NOW
    for method in (
        "count_contents", "content_likes", "content_comments", "count_requests",
        "count_top_ratings", "count_courses", "total_enrollments", "count_completions",
        "count_alpha_posts", "alpha_bullish", "count_engagement_posts",
        "jrank_points", "contribution_score", "days_since_join", "signup_rank",
    ):
        getattr(mock, method).return_value = 0
    mock.average_rating.return_value = None
    mock.has_role.return_value = False
    return mock


def _likes_agg(agg, per_post: list[int]):
    """Wire content_likes to behave like the real aggregator over *per_post*."""
    agg.content_likes.side_effect = (
        lambda user_id, single=False, since=None: max(per_post, default=0) if single else sum(per_post)
    )
    return agg


# ===========================================================================
# Operators
# ===========================================================================
class TestOperators:
    @pytest.mark.parametrize("operator,value,expected", [
        ("gte", 10, True),
        ("gte", 9, False),
        ("gt", 10, False),
        ("gt", 11, True),
        ("lte", 10, True),
        ("lte", 11, False),
        ("lt", 10, False),
        ("lt", 9, True),
        ("eq", 10, True),
        ("eq", 10.5, False),
    ])
    def test_operator_at_target_ten(self, operator, value, expected):
        assert compare(value, operator, 10) is expected

    def test_unknown_operator_never_matches(self):
        assert compare(100, "between", 10) is False

    def test_default_operator_is_gte(self, agg):
        agg.count_contents.return_value = 1
        assert evaluate_criterion({"type": "content_count", "target": 1}, 1, agg)


# ===========================================================================
# Parsing
# ===========================================================================
class TestParseCriterion:
    def test_every_type_has_a_measurement(self):
        for name in CRITERION_TYPES:
            raw = {"type": name, "target": 1}
            if name == "role_member":
                raw["role"] = "mentor"
            assert parse_criterion(raw).type == name

    def test_unknown_type_is_misconfigured(self):
        with pytest.raises(MisconfiguredRule):
            parse_criterion({"type": "karma_count", "target": 3})

    def test_empty_criteria_is_misconfigured(self):
        with pytest.raises(MisconfiguredRule):
            parse_criterion({})
        with pytest.raises(MisconfiguredRule):
            parse_criterion(None)

    def test_missing_target_is_misconfigured(self):
        with pytest.raises(MisconfiguredRule):
            parse_criterion({"type": "content_count"})

    def test_bad_request_role_is_misconfigured(self):
        with pytest.raises(MisconfiguredRule):
            parse_criterion({"type": "request_count", "target": 1, "request_role": "lurker"})

    def test_legacy_additional_criteria_envelope_is_flattened(self):
        c = parse_criterion({
            "type": "like_count",
            "target": 50,
            "additionalCriteria": {"single": True, "timeframe": "weekly"},
        })
        assert isinstance(c, LikeCount)
        assert c.single is True
        assert c.timeframe == "weekly"

    def test_camel_case_qualifiers_are_mapped(self):
        c = parse_criterion({"type": "request_count", "target": 2, "requestType": "completed"})
        assert isinstance(c, RequestCount)
        assert c.request_role == "completed"

        c = parse_criterion({"type": "content_count", "target": 1, "contentType": "video"})
        assert c.content_type == "video"

    def test_unknown_keys_are_ignored(self):
        c = parse_criterion({"type": "alpha_count", "target": 1, "comment": "first alpha"})
        assert c.target == 1

    def test_user_id_threshold_rejects_gte(self):
        with pytest.raises(MisconfiguredRule):
            parse_criterion({"type": "user_id_threshold", "target": 1000, "operator": "gte"})


# ===========================================================================
# Evaluation
# ===========================================================================
class TestSingleVersusCumulative:
    """Likes per post [10, 60, 5]: best post 60, total 75."""

    @pytest.mark.parametrize("target,single,expected", [
        (60, True, True),
        (61, True, False),
        (75, False, True),
        (76, False, False),
        (70, True, False),
        (70, False, True),
    ])
    def test_boundaries(self, agg, target, single, expected):
        _likes_agg(agg, [10, 60, 5])
        criterion = {"type": "like_count", "target": target, "single": single}
        assert evaluate_criterion(criterion, 7, agg) is expected

    def test_no_posts_measures_zero(self, agg):
        _likes_agg(agg, [])
        assert not evaluate_criterion({"type": "like_count", "target": 1, "single": True}, 7, agg)
        assert evaluate_criterion({"type": "like_count", "target": 0, "single": True}, 7, agg)


class TestEvaluateCriterion:
    def test_qualifiers_are_passed_to_aggregator(self, agg):
        agg.count_requests.return_value = 3
        assert evaluate_criterion(
            {"type": "request_count", "target": 3, "request_role": "completed"}, 5, agg,
        )
        agg.count_requests.assert_called_once_with(5, role="completed", since=None)

    def test_timeframe_bounds_since(self, agg):
        agg.count_alpha_posts.return_value = 2
        evaluate_criterion({"type": "alpha_count", "target": 2, "timeframe": "weekly"}, 5, agg)
        _, kwargs = agg.count_alpha_posts.call_args
        assert kwargs["since"] == NOW - timedelta(days=7)

    def test_daily_timeframe_starts_at_midnight(self, agg):
        evaluate_criterion({"type": "engagement_count", "target": 1, "timeframe": "daily"}, 5, agg)
        _, kwargs = agg.count_engagement_posts.call_args
        assert kwargs["since"] == datetime(2026, 3, 4, tzinfo=UTC)

    def test_missing_measurement_is_not_met(self, agg):
        agg.average_rating.return_value = None
        assert not evaluate_criterion({"type": "rating_avg", "target": 0, "operator": "gte"}, 5, agg)

    def test_rating_average(self, agg):
        agg.average_rating.return_value = 4.8
        assert evaluate_criterion({"type": "rating_avg", "target": 4.8}, 5, agg)
        agg.average_rating.return_value = 4.79
        assert not evaluate_criterion({"type": "rating_avg", "target": 4.8}, 5, agg)

    def test_user_id_threshold(self, agg):
        agg.signup_rank.return_value = 1000
        assert evaluate_criterion({"type": "user_id_threshold", "target": 1000}, 1000, agg)
        assert not evaluate_criterion(
            {"type": "user_id_threshold", "target": 1000, "operator": "lt"}, 1000, agg,
        )
        agg.signup_rank.return_value = 1001
        assert not evaluate_criterion({"type": "user_id_threshold", "target": 1000}, 1001, agg)

    def test_role_member(self, agg):
        agg.has_role.side_effect = lambda user_id, role: role == "mentor"
        assert evaluate_criterion({"type": "role_member", "role": "mentor"}, 5, agg)
        assert not evaluate_criterion({"type": "role_member", "role": "scout"}, 5, agg)

    def test_days_active(self, agg):
        agg.days_since_join.return_value = 7
        assert evaluate_criterion({"type": "days_active", "target": 7}, 5, agg)
        assert not evaluate_criterion({"type": "days_active", "target": 30}, 5, agg)

    def test_unknown_type_never_matches(self, agg, caplog):
        with caplog.at_level(logging.WARNING, logger="jobless.engine.criteria"):
            assert evaluate_criterion({"type": "karma_count", "target": 1}, 5, agg) is False
        assert "karma_count" in caplog.text
        assert agg.method_calls == []

    def test_malformed_criterion_never_matches(self, agg):
        assert evaluate_criterion({"type": "content_count"}, 5, agg) is False
        assert evaluate_criterion(None, 5, agg) is False

    def test_accepts_parsed_criterion(self, agg):
        agg.content_likes.return_value = 50
        criterion = parse_criterion({"type": "like_count", "target": 50, "single": True})
        assert evaluate_criterion(criterion, 5, agg)
