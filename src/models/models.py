import enum
from datetime import datetime

from sqlalchemy import (
    Column, Integer, BigInteger, Float, String, Text, Boolean, DateTime, Date,
    ForeignKey, Enum, JSON, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from src.db.database import Base


# ── Enums ──────────────────────────────────────────────────────────────────────

class ContentType(str, enum.Enum):
    POST = "post"
    GIG = "gig"
    SKATE_SPOT = "skate_spot"
    TRICK_VIDEO = "trick_video"
    FORUM_TOPIC = "forum_topic"
    COMMUTE_ALERT = "commute_alert"


class InteractionKind(str, enum.Enum):
    LIKE = "like"
    INTERESTED = "interested"
    RATING = "rating"


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    MODERATOR = "moderator"
    USER = "user"


class ReportReason(str, enum.Enum):
    SPAM = "spam"
    HARASSMENT = "harassment"
    HATE_SPEECH = "hate_speech"
    VIOLENCE = "violence"
    NUDITY = "nudity"
    MISINFORMATION = "misinformation"
    COPYRIGHT = "copyright"
    OTHER = "other"


class ReportPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ReportStatus(str, enum.Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class ModerationActionType(str, enum.Enum):
    NO_ACTION = "no_action"
    CONTENT_REMOVED = "content_removed"
    USER_WARNED = "user_warned"
    USER_SUSPENDED = "user_suspended"
    USER_BANNED = "user_banned"


class WarningType(str, enum.Enum):
    CONTENT_VIOLATION = "content_violation"
    HARASSMENT = "harassment"
    SPAM = "spam"
    INAPPROPRIATE_BEHAVIOR = "inappropriate_behavior"
    OTHER = "other"


class WarningSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SanctionType(str, enum.Enum):
    SUSPENSION = "suspension"
    BAN = "ban"


class CampaignType(str, enum.Enum):
    POST_BOOST = "post_boost"
    PROFILE_PROMOTION = "profile_promotion"
    EVENT_PROMOTION = "event_promotion"


class PromotionType(str, enum.Enum):
    BOOST = "boost"
    FEATURED = "featured"
    SPOTLIGHT = "spotlight"


class CampaignStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# ── Content items ──────────────────────────────────────────────────────────────

class ContentColumns:
    """Columns shared by every content variant."""

    id = Column(Integer, primary_key=True)
    author_id = Column(String(64), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    likes_count = Column(Integer, nullable=False, default=0)
    comments_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)


class Post(ContentColumns, Base):
    __tablename__ = "posts"

    page_slug = Column(String(64), nullable=True)
    content = Column(Text, nullable=False)
    image_url = Column(String(500), nullable=True)
    shared_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_posts_author", "author_id"),
        Index("idx_posts_created", "created_at"),
        Index("idx_posts_page", "page_slug"),
    )


class Gig(ContentColumns, Base):
    __tablename__ = "gigs"

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    artist_name = Column(String(200), nullable=True)
    venue_name = Column(String(200), nullable=True)
    event_date = Column(DateTime, nullable=True)
    interested_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_gigs_created", "created_at"),
        Index("idx_gigs_event_date", "event_date"),
    )


class SkateSpot(ContentColumns, Base):
    __tablename__ = "skate_spots"

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    location_name = Column(String(200), nullable=True)
    spot_type = Column(String(50), nullable=True)
    difficulty_level = Column(String(50), nullable=True)
    rating = Column(Float, nullable=False, default=0.0)
    ratings_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_spots_created", "created_at"),
    )


class TrickVideo(ContentColumns, Base):
    __tablename__ = "trick_videos"

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    video_url = Column(String(500), nullable=True)
    trick_name = Column(String(100), nullable=True)
    difficulty = Column(Integer, nullable=True)
    views_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_tricks_created", "created_at"),
    )


class ForumTopic(ContentColumns, Base):
    __tablename__ = "forum_topics"

    forum_slug = Column(String(64), nullable=True)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=True)
    is_pinned = Column(Boolean, default=False)
    is_locked = Column(Boolean, default=False)
    views_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_topics_forum", "forum_slug"),
        Index("idx_topics_created", "created_at"),
    )


class CommuteAlert(ContentColumns, Base):
    __tablename__ = "commute_alerts"

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    alert_type = Column(String(50), nullable=True)
    location_name = Column(String(200), nullable=True)
    severity = Column(String(20), nullable=True)
    valid_until = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_alerts_created", "created_at"),
    )


# ── Engagement ─────────────────────────────────────────────────────────────────

class Interaction(Base):
    __tablename__ = "interactions"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    content_type = Column(Enum(ContentType), nullable=False)
    content_id = Column(Integer, nullable=False)
    kind = Column(Enum(InteractionKind), nullable=False)
    value = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "content_type", "content_id", "kind",
            name="uq_interactions_user_content_kind",
        ),
        Index("idx_interactions_content", "content_type", "content_id", "kind"),
    )


class Comment(Base):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True)
    content_type = Column(Enum(ContentType), nullable=False)
    content_id = Column(Integer, nullable=False)
    author_id = Column(String(64), nullable=False)
    body = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_comments_content", "content_type", "content_id"),
    )


# ── Moderation ─────────────────────────────────────────────────────────────────

class UserRoleGrant(Base):
    __tablename__ = "user_roles"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    role = Column(Enum(UserRole), nullable=False)
    granted_by = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )


class ModerationReport(Base):
    __tablename__ = "moderation_reports"

    id = Column(Integer, primary_key=True)
    reporter_id = Column(String(64), nullable=False)
    reported_user_id = Column(String(64), nullable=True)
    content_type = Column(Enum(ContentType), nullable=True)
    content_id = Column(Integer, nullable=True)
    reason = Column(Enum(ReportReason), nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(Enum(ReportPriority), nullable=False, default=ReportPriority.MEDIUM)
    status = Column(Enum(ReportStatus), nullable=False, default=ReportStatus.PENDING)
    resolution = Column(Enum(ModerationActionType), nullable=True)
    resolution_notes = Column(Text, nullable=True)
    resolved_by = Column(String(64), nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    action = relationship("ModerationAction", back_populates="report", uselist=False)

    __table_args__ = (
        Index("idx_reports_status", "status"),
        Index("idx_reports_reporter", "reporter_id"),
        Index("idx_reports_target", "content_type", "content_id"),
    )


class ModerationAction(Base):
    __tablename__ = "moderation_actions"

    id = Column(Integer, primary_key=True)
    moderator_id = Column(String(64), nullable=False)
    report_id = Column(Integer, ForeignKey("moderation_reports.id"), nullable=True, unique=True)
    target_user_id = Column(String(64), nullable=True)
    content_type = Column(Enum(ContentType), nullable=True)
    content_id = Column(Integer, nullable=True)
    action_type = Column(Enum(ModerationActionType), nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    report = relationship("ModerationReport", back_populates="action")

    __table_args__ = (
        Index("idx_actions_target_user", "target_user_id"),
        Index("idx_actions_created", "created_at"),
    )


class UserWarning(Base):
    __tablename__ = "user_warnings"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    moderator_id = Column(String(64), nullable=False)
    report_id = Column(Integer, ForeignKey("moderation_reports.id"), nullable=True)
    warning_type = Column(Enum(WarningType), nullable=False)
    severity = Column(Enum(WarningSeverity), nullable=False, default=WarningSeverity.MEDIUM)
    message = Column(Text, nullable=False)
    is_acknowledged = Column(Boolean, nullable=False, default=False)
    acknowledged_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_warnings_user", "user_id"),
        Index("idx_warnings_ack", "is_acknowledged"),
    )


class UserSanction(Base):
    __tablename__ = "user_sanctions"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    moderator_id = Column(String(64), nullable=False)
    report_id = Column(Integer, ForeignKey("moderation_reports.id"), nullable=True)
    sanction_type = Column(Enum(SanctionType), nullable=False)
    reason = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_sanctions_user", "user_id"),
    )


# ── Promotions ─────────────────────────────────────────────────────────────────

class Campaign(Base):
    """Budgets and spend are held in integer cents."""

    __tablename__ = "promotion_campaigns"

    id = Column(Integer, primary_key=True)
    owner_id = Column(String(64), nullable=False)
    campaign_name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    campaign_type = Column(Enum(CampaignType), nullable=False, default=CampaignType.POST_BOOST)
    target_pages = Column(JSON, nullable=False, default=list)
    objectives = Column(JSON, nullable=True)
    budget_daily_cents = Column(BigInteger, nullable=True)
    budget_total_cents = Column(BigInteger, nullable=False)
    spent_cents = Column(BigInteger, nullable=False, default=0)
    status = Column(Enum(CampaignStatus), nullable=False, default=CampaignStatus.ACTIVE)
    start_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    end_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_campaigns_owner", "owner_id"),
        Index("idx_campaigns_status", "status"),
    )


class CampaignDailySpend(Base):
    __tablename__ = "campaign_daily_spend"

    id = Column(Integer, primary_key=True)
    campaign_id = Column(Integer, ForeignKey("promotion_campaigns.id"), nullable=False)
    spend_date = Column(Date, nullable=False)
    amount_cents = Column(BigInteger, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("campaign_id", "spend_date", name="uq_daily_spend_campaign_date"),
    )


class PromotedPost(Base):
    __tablename__ = "promoted_posts"

    id = Column(Integer, primary_key=True)
    owner_id = Column(String(64), nullable=False)
    post_id = Column(Integer, ForeignKey("posts.id"), nullable=False)
    promotion_type = Column(Enum(PromotionType), nullable=False, default=PromotionType.BOOST)
    target_pages = Column(JSON, nullable=False, default=list)
    boost_level = Column(Integer, nullable=False, default=1)
    budget_cents = Column(BigInteger, nullable=False)
    spent_cents = Column(BigInteger, nullable=False, default=0)
    status = Column(Enum(CampaignStatus), nullable=False, default=CampaignStatus.ACTIVE)
    start_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    end_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_promoted_owner", "owner_id"),
        Index("idx_promoted_post", "post_id"),
    )


class SpendEvent(Base):
    """Append-only record of every accepted spend; the amounts on campaigns
    and promoted posts are its materialized totals."""

    __tablename__ = "spend_events"

    id = Column(Integer, primary_key=True)
    campaign_id = Column(Integer, ForeignKey("promotion_campaigns.id"), nullable=True)
    promotion_id = Column(Integer, ForeignKey("promoted_posts.id"), nullable=True)
    amount_cents = Column(BigInteger, nullable=False)
    spend_date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_spend_campaign", "campaign_id"),
        Index("idx_spend_promotion", "promotion_id"),
    )
