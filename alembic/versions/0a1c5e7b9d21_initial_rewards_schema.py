"""Initial rewards schema

Users, roles, the module activity tables, the badge catalogue with
earned badges and pin slots, engagement scoring rules with their
engagement records and points breakdown, and the admin audit log.

Revision ID: 0a1c5e7b9d21
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "0a1c5e7b9d21"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name: str, *, nullable: bool = True, now: bool = True) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=sa.func.now() if now else None,
    )


def upgrade() -> None:
    # --- Users & roles ---
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("jrank_points", sa.Integer(), server_default="0"),
        sa.Column("contribution_score", sa.Integer(), server_default="0"),
        sa.Column("total_points", sa.Float(), server_default="0"),
        sa.Column("is_twitter_verified", sa.Boolean(), server_default=sa.false()),
        sa.Column("twitter_followers_count", sa.Integer(), nullable=True),
        _ts("joined_at"),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
    )
    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
        sa.PrimaryKeyConstraint("user_id", "role_id"),
    )

    # --- Module activity ---
    op.create_table(
        "contents",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("author_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False, server_default=""),
        sa.Column("content_type", sa.String(50), nullable=False, server_default="article"),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("likes_count", sa.Integer(), server_default="0"),
        sa.Column("comments_count", sa.Integer(), server_default="0"),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_contents_author_status", "contents", ["author_id", "status"])

    op.create_table(
        "alpha_posts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("scout_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False, server_default=""),
        sa.Column("bullish_count", sa.Integer(), server_default="0"),
        sa.Column("bearish_count", sa.Integer(), server_default="0"),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_alpha_posts_scout", "alpha_posts", ["scout_id"])

    op.create_table(
        "courses",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("mentor_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False, server_default=""),
        sa.Column("enrolled_count", sa.Integer(), server_default="0"),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_courses_mentor", "courses", ["mentor_id"])

    op.create_table(
        "course_enrollments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        _ts("enrolled_at"),
        _ts("completed_at", now=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("course_id", "user_id", name="uq_enrollments_course_user"),
    )
    op.create_index("ix_enrollments_user", "course_enrollments", ["user_id"])

    op.create_table(
        "production_requests",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("requester_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("assigned_to", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("request_type", sa.String(50), nullable=False, server_default="design"),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("rating", sa.Integer(), nullable=True),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_requests_assigned", "production_requests", ["assigned_to", "status"])
    op.create_index("ix_requests_requester", "production_requests", ["requester_id"])

    op.create_table(
        "engagement_posts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("submitter_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("platform", sa.String(30), nullable=False, server_default="twitter"),
        sa.Column("url", sa.String(500), nullable=False, server_default=""),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_engagement_posts_submitter", "engagement_posts", ["submitter_id"])

    op.create_table(
        "tweets",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("author_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("external_id", sa.String(64), nullable=True),
        sa.Column("text", sa.Text(), nullable=False, server_default=""),
        sa.Column("total_engagements_given", sa.Integer(), server_default="0"),
        sa.Column("total_points_distributed", sa.Float(), server_default="0"),
        _ts("posted_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("external_id"),
    )
    op.create_index("ix_tweets_author", "tweets", ["author_id"])

    # --- Badges ---
    op.create_table(
        "badges",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("icon_name", sa.String(100), nullable=True),
        sa.Column("color", sa.String(7), nullable=False, server_default="#9e9e9e"),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("criteria", postgresql.JSONB(), nullable=True),
        sa.Column("required_roles", postgresql.JSONB(), nullable=True),
        sa.Column("rarity", sa.String(20), nullable=False, server_default="common"),
        sa.Column("tier", sa.String(20), nullable=True),
        sa.Column("sort_order", sa.Integer(), server_default="0"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_index("ix_badges_type_category", "badges", ["type", "category"])
    op.create_index("ix_badges_active", "badges", ["is_active"])

    op.create_table(
        "user_badges",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("badge_id", sa.Integer(), sa.ForeignKey("badges.id", ondelete="CASCADE"), nullable=False),
        _ts("earned_at"),
        sa.Column("earned_from", sa.String(30), nullable=False, server_default="system"),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("is_visible", sa.Boolean(), server_default=sa.true()),
        sa.Column("is_pinned", sa.Boolean(), server_default=sa.false()),
        sa.Column("pinned_order", sa.Integer(), nullable=True),
        _ts("pinned_at", now=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_badge"),
        sa.UniqueConstraint("user_id", "pinned_order", name="uq_user_badges_pin_slot"),
        sa.CheckConstraint(
            "pinned_order IS NULL OR (pinned_order >= 1 AND pinned_order <= 3)",
            name="ck_user_badges_pin_slot_range",
        ),
    )
    op.create_index("ix_user_badges_user_pinned", "user_badges", ["user_id", "is_pinned"])
    op.create_index("ix_user_badges_user_earned", "user_badges", ["user_id", "earned_at"])

    # --- Engagement scoring ---
    op.create_table(
        "engagement_criteria",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("criteria_type", sa.String(20), nullable=False),
        sa.Column("points_config", postgresql.JSONB(), nullable=False),
        sa.Column("requirements", postgresql.JSONB(), nullable=True),
        sa.Column("time_constraints", postgresql.JSONB(), nullable=True),
        sa.Column("multipliers", postgresql.JSONB(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("priority", sa.Integer(), server_default="0"),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_engagement_criteria_active_priority", "engagement_criteria", ["is_active", "priority"]
    )
    op.create_index("ix_engagement_criteria_type", "engagement_criteria", ["criteria_type"])

    op.create_table(
        "tweet_engagements",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tweet_id", sa.Integer(), sa.ForeignKey("tweets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tweet_author_id", sa.Integer(), nullable=False),
        sa.Column("engagement_types", postgresql.JSONB(), nullable=False),
        sa.Column("total_points", sa.Float(), nullable=False, server_default="0"),
        sa.Column("proof_urls", postgresql.JSONB(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("verified_by", sa.Integer(), nullable=True),
        _ts("verified_at", now=False),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("user_follower_count", sa.Integer(), nullable=True),
        sa.Column("user_account_age", sa.Integer(), nullable=True),
        _ts("engaged_at", nullable=False, now=False),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "tweet_id", name="uq_tweet_engagements_user_tweet"),
    )
    op.create_index("ix_tweet_engagements_user_time", "tweet_engagements", ["user_id", "engaged_at"])
    op.create_index(
        "ix_tweet_engagements_author_time", "tweet_engagements", ["tweet_author_id", "engaged_at"]
    )
    op.create_index("ix_tweet_engagements_status_time", "tweet_engagements", ["status", "engaged_at"])

    op.create_table(
        "engagement_point_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "engagement_id", sa.Integer(),
            sa.ForeignKey("tweet_engagements.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "criteria_id", sa.Integer(),
            sa.ForeignKey("engagement_criteria.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("criteria_name", sa.String(100), nullable=False),
        sa.Column("engagement_type", sa.String(20), nullable=False),
        sa.Column("base_points", sa.Float(), nullable=False),
        sa.Column("bonus_points", sa.Float(), server_default="0"),
        sa.Column("multiplier", sa.Float(), server_default="1"),
        sa.Column("total_points", sa.Float(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_point_entries_criteria", "engagement_point_entries", ["criteria_id"])
    op.create_index("ix_point_entries_engagement", "engagement_point_entries", ["engagement_id"])

    # --- Audit ---
    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        _ts("timestamp"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index("ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"])


def downgrade() -> None:
    # Reverse FK order
    for table in (
        "admin_log",
        "engagement_point_entries",
        "tweet_engagements",
        "engagement_criteria",
        "user_badges",
        "badges",
        "tweets",
        "engagement_posts",
        "production_requests",
        "course_enrollments",
        "courses",
        "alpha_posts",
        "contents",
        "user_roles",
        "users",
        "roles",
    ):
        op.drop_table(table)
