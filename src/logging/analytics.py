"""
Analytics and data extraction engine for the community platform.

Provides engagement totals and top content per content type, moderation
throughput, campaign spend totals and a per-user activity summary for the
admin dashboard.
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal

from sqlalchemy import case, func, desc
from sqlalchemy.future import select

from src.db.database import async_session
from src.engine.registry import all_variants, get_variant
from src.models.models import (
    Campaign,
    CampaignStatus,
    Comment,
    Interaction,
    ModerationAction,
    ModerationReport,
    PromotedPost,
    ReportPriority,
    ReportStatus,
    SpendEvent,
    UserSanction,
    UserWarning,
)
from src.config.settings import settings


def _money(cents) -> str:
    return str((Decimal(int(cents or 0)) / 100).quantize(Decimal("0.01")))


class AnalyticsEngine:
    """Async analytics engine for aggregating engagement, moderation and spend data."""

    def __init__(self, session_factory=async_session):
        self._session_factory = session_factory

    # ──────────────────────────────────────────────────────────────────────
    # Engagement
    # ──────────────────────────────────────────────────────────────────────

    async def get_engagement_summary(self) -> dict:
        """Return item and counter totals for every content type.

        Returns:
            A dict keyed by content type, each holding ``items``,
            ``active_items`` and the summed value of every counter the
            variant carries, plus ``ledger_records`` per interaction kind.
        """
        async with self._session_factory() as session:
            per_type = {}
            for variant in all_variants():
                model = variant.model
                columns = [
                    func.coalesce(func.sum(getattr(model, name)), 0).label(name)
                    for name in variant.counter_fields
                ]
                row = (await session.execute(
                    select(
                        func.count(model.id).label("items"),
                        func.coalesce(
                            func.sum(case((model.is_active.is_(True), 1), else_=0)), 0
                        ).label("active_items"),
                        *columns,
                    )
                )).one()
                per_type[variant.content_type.value] = {
                    key: int(value) for key, value in row._mapping.items()
                }

            kind_rows = (await session.execute(
                select(Interaction.kind, func.count(Interaction.id))
                .group_by(Interaction.kind)
            )).all()
            comments_total = (await session.execute(
                select(func.count(Comment.id)).where(Comment.is_active.is_(True))
            )).scalar()

        return {
            "content": per_type,
            "ledger_records": {kind.value: count for kind, count in kind_rows},
            "active_comments": comments_total,
            "generated_at": datetime.utcnow().isoformat(),
        }

    async def get_top_content(self, content_type: str, limit: int = 10) -> dict:
        """Return the most liked active items of one content type.

        Args:
            content_type: A registered content type tag, e.g. ``"post"``.
            limit: Maximum number of items to return.
        """
        variant = get_variant(content_type)
        model = variant.model
        limit = max(1, min(limit, settings.FEED_PAGE_SIZE_MAX))

        async with self._session_factory() as session:
            rows = (await session.execute(
                select(model)
                .where(model.is_active.is_(True))
                .order_by(desc(model.likes_count), desc(model.comments_count), model.id)
                .limit(limit)
            )).scalars().all()

            items = []
            for item in rows:
                entry = {
                    "id": item.id,
                    "author_id": item.author_id,
                    "created_at": item.created_at.isoformat() if item.created_at else None,
                }
                for name in variant.counter_fields:
                    entry[name] = getattr(item, name)
                if variant.average_field:
                    entry[variant.average_field] = round(
                        float(getattr(item, variant.average_field) or 0.0), 2
                    )
                items.append(entry)

        return {"content_type": variant.content_type.value, "items": items}

    # ──────────────────────────────────────────────────────────────────────
    # Moderation
    # ──────────────────────────────────────────────────────────────────────

    async def get_moderation_summary(self) -> dict:
        """Return report throughput, action mix and warning/sanction counts."""
        async with self._session_factory() as session:
            status_rows = (await session.execute(
                select(ModerationReport.status, func.count(ModerationReport.id))
                .group_by(ModerationReport.status)
            )).all()
            pending_by_priority = (await session.execute(
                select(ModerationReport.priority, func.count(ModerationReport.id))
                .where(ModerationReport.status == ReportStatus.PENDING)
                .group_by(ModerationReport.priority)
            )).all()
            reason_rows = (await session.execute(
                select(ModerationReport.reason, func.count(ModerationReport.id))
                .group_by(ModerationReport.reason)
            )).all()
            action_rows = (await session.execute(
                select(ModerationAction.action_type, func.count(ModerationAction.id))
                .group_by(ModerationAction.action_type)
            )).all()
            resolved = (await session.execute(
                select(ModerationReport.created_at, ModerationReport.resolved_at)
                .where(ModerationReport.status == ReportStatus.RESOLVED)
            )).all()
            warnings_total = (await session.execute(
                select(func.count(UserWarning.id))
            )).scalar()
            warnings_open = (await session.execute(
                select(func.count(UserWarning.id))
                .where(UserWarning.is_acknowledged.is_(False))
            )).scalar()
            sanctions = (await session.execute(
                select(UserSanction.sanction_type, func.count(UserSanction.id))
                .group_by(UserSanction.sanction_type)
            )).all()

        hours = [
            (resolved_at - created_at).total_seconds() / 3600.0
            for created_at, resolved_at in resolved
            if created_at and resolved_at
        ]
        priorities = {p.value: 0 for p in ReportPriority}
        for priority, count in pending_by_priority:
            priorities[priority.value] = count

        return {
            "reports_by_status": {status.value: count for status, count in status_rows},
            "pending_by_priority": priorities,
            "reports_by_reason": {reason.value: count for reason, count in reason_rows},
            "actions_by_type": {action.value: count for action, count in action_rows},
            "avg_resolution_hours": round(sum(hours) / len(hours), 2) if hours else None,
            "warnings": {"total": warnings_total, "unacknowledged": warnings_open},
            "sanctions": {kind.value: count for kind, count in sanctions},
        }

    # ──────────────────────────────────────────────────────────────────────
    # Campaigns
    # ──────────────────────────────────────────────────────────────────────

    async def get_campaign_summary(self) -> dict:
        """Return budget and spend totals per campaign status, and daily spend."""
        async with self._session_factory() as session:
            campaign_rows = (await session.execute(
                select(
                    Campaign.status,
                    func.count(Campaign.id),
                    func.coalesce(func.sum(Campaign.budget_total_cents), 0),
                    func.coalesce(func.sum(Campaign.spent_cents), 0),
                ).group_by(Campaign.status)
            )).all()
            promotion_rows = (await session.execute(
                select(
                    PromotedPost.status,
                    func.count(PromotedPost.id),
                    func.coalesce(func.sum(PromotedPost.budget_cents), 0),
                    func.coalesce(func.sum(PromotedPost.spent_cents), 0),
                ).group_by(PromotedPost.status)
            )).all()
            daily_rows = (await session.execute(
                select(SpendEvent.spend_date, func.sum(SpendEvent.amount_cents))
                .group_by(SpendEvent.spend_date)
                .order_by(SpendEvent.spend_date)
            )).all()

        def _by_status(rows) -> dict:
            out = {s.value: {"count": 0, "budget": "0.00", "spent": "0.00"} for s in CampaignStatus}
            for status, count, budget, spent in rows:
                out[status.value] = {
                    "count": count,
                    "budget": _money(budget),
                    "spent": _money(spent),
                }
            return out

        campaigns = _by_status(campaign_rows)
        total_spent = sum(Decimal(v["spent"]) for v in campaigns.values())
        total_budget = sum(Decimal(v["budget"]) for v in campaigns.values())

        return {
            "campaigns": campaigns,
            "promoted_posts": _by_status(promotion_rows),
            "campaign_budget_total": _money(total_budget),
            "campaign_spent_total": _money(total_spent),
            "utilization_percent": (
                round(float(total_spent / total_budget * 100), 2) if total_budget else 0.0
            ),
            "spend_by_day": [
                {"date": day.isoformat(), "amount": _money(amount)}
                for day, amount in daily_rows
            ],
        }

    # ──────────────────────────────────────────────────────────────────────
    # Users
    # ──────────────────────────────────────────────────────────────────────

    async def get_user_activity(self, user_id: str) -> dict:
        """Return what one user has authored, interacted with and been sanctioned for.

        Args:
            user_id: The opaque identity supplied by the auth collaborator.
        """
        async with self._session_factory() as session:
            authored = {}
            for variant in all_variants():
                count = (await session.execute(
                    select(func.count(variant.model.id))
                    .where(variant.model.author_id == user_id)
                )).scalar()
                authored[variant.content_type.value] = count

            interactions = defaultdict(dict)
            rows = (await session.execute(
                select(Interaction.content_type, Interaction.kind, func.count(Interaction.id))
                .where(Interaction.user_id == user_id)
                .group_by(Interaction.content_type, Interaction.kind)
            )).all()
            for content_type, kind, count in rows:
                interactions[content_type.value][kind.value] = count

            comments = (await session.execute(
                select(func.count(Comment.id)).where(Comment.author_id == user_id)
            )).scalar()
            reports_filed = (await session.execute(
                select(func.count(ModerationReport.id))
                .where(ModerationReport.reporter_id == user_id)
            )).scalar()
            reports_against = (await session.execute(
                select(func.count(ModerationReport.id))
                .where(ModerationReport.reported_user_id == user_id)
            )).scalar()
            warnings = (await session.execute(
                select(func.count(UserWarning.id)).where(UserWarning.user_id == user_id)
            )).scalar()
            sanctions = (await session.execute(
                select(func.count(UserSanction.id)).where(UserSanction.user_id == user_id)
            )).scalar()

        return {
            "user_id": user_id,
            "authored": authored,
            "interactions": dict(interactions),
            "comments": comments,
            "reports_filed": reports_filed,
            "reports_against": reports_against,
            "warnings": warnings,
            "sanctions": sanctions,
        }

    async def get_platform_summary(self) -> dict:
        """Everything the admin dashboard shows, in one call."""
        return {
            "engagement": await self.get_engagement_summary(),
            "moderation": await self.get_moderation_summary(),
            "campaigns": await self.get_campaign_summary(),
        }
