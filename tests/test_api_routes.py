"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================

These tests verify:
- Auth guards on member and admin endpoints
- Domain errors mapped to HTTP status codes
- Response structure of badge, pin and engagement endpoints
"""

from __future__ import annotations

import pytest
from conftest import auth, make_badge, make_token, make_tweet, make_user

from jobless.services import badge_service


@pytest.fixture
def member(db_engine):
    return make_user(db_engine, "member", roles=("member",))


@pytest.fixture
def member_token(member):
    return make_token(member)


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Auth guards
# ===========================================================================
class TestAuthGuards:
    ADMIN_GET_ENDPOINTS = [
        "/api/admin/badges",
        "/api/admin/scoring-rules",
        "/api/admin/engagements/pending",
        "/api/admin/audit-log",
    ]

    MEMBER_ENDPOINTS = [
        ("get", "/api/me/badges"),
        ("post", "/api/me/badges/recheck"),
        ("get", "/api/me/engagements/stats"),
    ]

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_admin_get_no_token(self, client, endpoint):
        assert client.get(endpoint).status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_admin_get_non_admin(self, client, member_token, endpoint):
        assert client.get(endpoint, headers=auth(member_token)).status_code == 403

    @pytest.mark.parametrize("method,endpoint", MEMBER_ENDPOINTS)
    def test_member_no_token(self, client, method, endpoint):
        assert getattr(client, method)(endpoint).status_code == 401

    def test_invalid_token(self, client):
        resp = client.get("/api/me/badges", headers=auth("not.a.jwt"))
        assert resp.status_code == 401

    def test_non_numeric_subject(self, client):
        resp = client.get("/api/me/badges", headers=auth(make_token("drew")))
        assert resp.status_code == 401


# ===========================================================================
# Badges & pins
# ===========================================================================
class TestBadgeRoutes:
    @pytest.fixture
    def badges(self, db_engine, member):
        ids = [make_badge(db_engine, f"badge_{i}", rarity="rare") for i in range(4)]
        for badge_id in ids:
            badge_service.award_badge(db_engine, member, badge_id)
        return ids

    def test_catalogue_is_public(self, client, badges):
        resp = client.get("/api/badges")
        assert resp.status_code == 200
        assert len(resp.json()["badges"]) == 4

    def test_pin_flow(self, client, member, member_token, badges):
        headers = auth(member_token)
        for expected, badge_id in zip((1, 2, 3), badges[:3]):
            resp = client.post(f"/api/me/badges/{badge_id}/pin", headers=headers)
            assert resp.status_code == 200
            assert resp.json()["pinned_order"] == expected

        resp = client.post(f"/api/me/badges/{badges[3]}/pin", headers=headers)
        assert resp.status_code == 400
        assert resp.json() == {"detail": "Maximum 3 badges can be pinned."}

        resp = client.post(f"/api/me/badges/{badges[0]}/pin", headers=headers)
        assert resp.status_code == 409

        resp = client.post(f"/api/me/badges/{badges[1]}/unpin", headers=headers)
        assert resp.json()["pinned_order"] is None

        resp = client.get(f"/api/users/{member}/badges/pinned")
        assert [b["badge"]["id"] for b in resp.json()["badges"]] == [badges[0], badges[2]]

    def test_pin_explicit_slot(self, client, member_token, badges):
        headers = auth(member_token)
        resp = client.post(f"/api/me/badges/{badges[0]}/pin", json={"slot": 2}, headers=headers)
        assert resp.json()["pinned_order"] == 2

        resp = client.post(f"/api/me/badges/{badges[1]}/pin", json={"slot": 2}, headers=headers)
        assert resp.status_code == 409

        resp = client.post(f"/api/me/badges/{badges[1]}/pin", json={"slot": 7}, headers=headers)
        assert resp.status_code == 422

    def test_pin_unearned_badge(self, client, db_engine, member_token):
        other = make_badge(db_engine, "unearned")
        resp = client.post(f"/api/me/badges/{other}/pin", headers=auth(member_token))
        assert resp.status_code == 404

    def test_hidden_badges_not_on_public_profile(self, client, member, member_token, badges):
        resp = client.post(f"/api/me/badges/{badges[0]}/visibility", headers=auth(member_token))
        assert resp.json()["is_visible"] is False

        public = client.get(f"/api/users/{member}/badges").json()["badges"]
        assert badges[0] not in [b["badge"]["id"] for b in public]

        own = client.get("/api/me/badges", headers=auth(member_token)).json()["badges"]
        assert len(own) == 4

        stats = client.get(f"/api/users/{member}/badges/stats").json()
        assert stats["total"] == 3
        assert stats["by_rarity"]["rare"] == 3

    def test_recheck_awards_role_and_activity(self, client, db_engine, member_token):
        rookie = make_badge(db_engine, "rookie", type="role", category="general", required_roles=["member"])
        veteran = make_badge(
            db_engine, "active_member", type="achievement", category="general",
            criteria={"type": "days_active", "target": 7},
        )
        resp = client.post("/api/me/badges/recheck", headers=auth(member_token))
        assert resp.status_code == 200
        assert sorted(resp.json()["awarded"]) == sorted([rookie, veteran])

        resp = client.post("/api/me/badges/recheck", headers=auth(member_token))
        assert resp.json()["awarded"] == []


# ===========================================================================
# Engagements
# ===========================================================================
class TestEngagementRoutes:
    @pytest.fixture
    def setup(self, client, db_engine, member, admin_token):
        author = make_user(db_engine, "author")
        tweet = make_tweet(db_engine, author)
        resp = client.post(
            "/api/admin/scoring-rules",
            json={"name": "Retweet", "criteria_type": "retweet", "points_config": {"basePoints": 3}},
            headers=auth(admin_token),
        )
        assert resp.status_code == 201
        return {"author": author, "tweet": tweet, "rule_id": resp.json()["id"]}

    def test_preview(self, client, member_token, setup):
        resp = client.post(
            "/api/engagements/preview",
            json={"tweet_id": setup["tweet"], "engagement_types": ["retweet", "like"]},
            headers=auth(member_token),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["total_points"] == 3
        assert body["breakdown"][0]["reason"] == "Retweet criteria applied"

    def test_unknown_kind_is_rejected(self, client, member_token, setup):
        resp = client.post(
            "/api/engagements/preview",
            json={"tweet_id": setup["tweet"], "engagement_types": ["poke"]},
            headers=auth(member_token),
        )
        assert resp.status_code == 422

    def test_self_engagement(self, client, setup):
        resp = client.post(
            "/api/engagements",
            json={"tweet_id": setup["tweet"], "engagement_types": ["retweet"]},
            headers=auth(make_token(setup["author"])),
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Cannot engage with your own post."

    def test_record_verify_and_stats(self, client, member_token, admin_token, setup):
        body = {"tweet_id": setup["tweet"], "engagement_types": ["retweet"]}
        resp = client.post("/api/engagements", json=body, headers=auth(member_token))
        assert resp.status_code == 201
        engagement = resp.json()
        assert engagement["status"] == "pending"
        assert engagement["points_breakdown"][0]["criteria_id"] == setup["rule_id"]

        dup = client.post("/api/engagements", json=body, headers=auth(member_token))
        assert dup.status_code == 409

        pending = client.get("/api/admin/engagements/pending", headers=auth(admin_token)).json()
        assert [e["id"] for e in pending["engagements"]] == [engagement["id"]]

        resp = client.post(f"/api/admin/engagements/{engagement['id']}/verify", headers=auth(admin_token))
        assert resp.json()["status"] == "verified"

        again = client.post(f"/api/admin/engagements/{engagement['id']}/verify", headers=auth(admin_token))
        assert again.status_code == 409

        stats = client.get("/api/me/engagements/stats", headers=auth(member_token)).json()
        assert stats["points_earned"] == 3

    def test_reject_requires_reason(self, client, member_token, admin_token, setup):
        resp = client.post(
            "/api/engagements",
            json={"tweet_id": setup["tweet"], "engagement_types": ["retweet"]},
            headers=auth(member_token),
        )
        eid = resp.json()["id"]
        assert client.post(
            f"/api/admin/engagements/{eid}/reject", json={}, headers=auth(admin_token),
        ).status_code == 422

        resp = client.post(
            f"/api/admin/engagements/{eid}/reject", json={"reason": "No proof"}, headers=auth(admin_token),
        )
        assert resp.json()["status"] == "rejected"
        assert resp.json()["rejection_reason"] == "No proof"

    def test_rule_limits(self, client, member_token, setup):
        resp = client.get(f"/api/me/engagements/limits/{setup['rule_id']}", headers=auth(member_token))
        assert resp.json() == {"criteria_id": setup["rule_id"], "daily_limit_ok": True, "cooldown_ok": True}


# ===========================================================================
# Admin catalogue
# ===========================================================================
class TestAdminRoutes:
    def test_badge_crud(self, client, admin_token):
        headers = auth(admin_token)
        resp = client.post("/api/admin/badges", json={
            "name": "first_post", "display_name": "First Post", "type": "activity",
            "category": "hub", "criteria": {"type": "content_count", "target": 1},
        }, headers=headers)
        assert resp.status_code == 201
        badge_id = resp.json()["id"]

        resp = client.patch(f"/api/admin/badges/{badge_id}", json={"rarity": "epic"}, headers=headers)
        assert resp.json()["rarity"] == "epic"

        resp = client.patch(f"/api/admin/badges/{badge_id}", json={}, headers=headers)
        assert resp.status_code == 400

        assert client.delete(f"/api/admin/badges/{badge_id}", headers=headers).status_code == 204
        assert client.delete(f"/api/admin/badges/{badge_id}", headers=headers).status_code == 404

        log = client.get("/api/admin/audit-log", params={"target_table": "badges"}, headers=headers).json()
        assert {e["action_type"] for e in log["entries"]} == {"CREATE", "UPDATE", "DELETE"}

    def test_misconfigured_badge(self, client, admin_token):
        resp = client.post("/api/admin/badges", json={
            "name": "broken", "display_name": "Broken", "type": "activity",
            "category": "hub", "criteria": {"type": "karma_count", "target": 1},
        }, headers=auth(admin_token))
        assert resp.status_code == 422
        assert "karma_count" in resp.json()["detail"]

    def test_manual_award_and_role_sweep(self, client, db_engine, member, admin_token):
        headers = auth(admin_token)
        hero = make_badge(db_engine, "hero", type="special", category="admin")
        rookie = make_badge(db_engine, "rookie", type="role", category="general", required_roles=["member"])

        resp = client.post(f"/api/admin/users/{member}/badges", json={"badge_id": hero}, headers=headers)
        assert resp.json() == {"awarded": True}

        resp = client.post(f"/api/admin/users/{member}/badges", json={"badge_id": hero}, headers=headers)
        assert resp.status_code == 409
        assert resp.json() == {"detail": "User already holds this badge."}

        resp = client.post(f"/api/admin/users/{member}/role-sweep", headers=headers)
        assert resp.json() == {"awarded": [rookie]}

        assert client.delete(f"/api/admin/users/{member}/badges/{hero}", headers=headers).status_code == 200
        assert client.delete(f"/api/admin/users/{member}/badges/{hero}", headers=headers).status_code == 404

    def test_manual_award_unknown_user(self, client, db_engine, admin_token):
        hero = make_badge(db_engine, "hero", type="special", category="admin")
        resp = client.post("/api/admin/users/4040/badges", json={"badge_id": hero}, headers=auth(admin_token))
        assert resp.status_code == 404
