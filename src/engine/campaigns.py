"""
Campaign budget tracker.

Promotion campaigns and single-post promotions carry a budget and an
accumulated spend, both in integer cents. Spend accrues only through
``record_spend`` / ``record_promotion_spend``, which append a ``SpendEvent``
and raise the materialized totals with conditional UPDATEs::

    UPDATE promotion_campaigns
       SET spent_cents = spent_cents + :amount
     WHERE id = :id AND status = 'active'
       AND spent_cents + :amount <= budget_total_cents

The guard and the increment are one statement, so concurrent spend events
can never push a campaign past its total (or daily) budget.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.settings import settings
from src.db.store import ContentStore, insert_ignore, procedure, store as default_store
from src.engine.access import require_active_user
from src.engine.errors import (
    AuthorizationError,
    ConflictError,
    ConsistencyError,
    EngineError,
    NotFoundError,
    Result,
    ValidationError,
    ok,
)
from src.models.models import (
    Campaign,
    CampaignDailySpend,
    CampaignStatus,
    CampaignType,
    Post,
    PromotedPost,
    PromotionType,
    SpendEvent,
)

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")

_TOGGLE = {
    CampaignStatus.ACTIVE: CampaignStatus.PAUSED,
    CampaignStatus.PAUSED: CampaignStatus.ACTIVE,
}


def _money(value, label: str, allow_none: bool = False) -> Optional[int]:
    """Parse a currency amount into a positive number of cents."""
    if value is None or value == "":
        if allow_none:
            return None
        raise ValidationError(f"{label} is required.")
    try:
        amount = Decimal(str(value))
        whole_cents = amount.is_finite() and amount == amount.quantize(_CENT)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{label} must be a number.") from None
    if not amount.is_finite():
        raise ValidationError(f"{label} must be a number.")
    if not whole_cents:
        raise ValidationError(f"{label} cannot have fractions of a cent.")
    if amount <= 0:
        raise ValidationError(f"{label} must be greater than zero.")
    return int(amount * 100)


def _amount(cents) -> str:
    return str((Decimal(int(cents or 0)) / 100).quantize(_CENT))


def _parse(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(
            f"Invalid {label} '{value}'. Valid values: {[e.value for e in enum_cls]}"
        ) from None


def _pages(target_pages) -> list[str]:
    pages = list(dict.fromkeys(target_pages or []))
    unknown = [p for p in pages if p not in settings.PROMOTABLE_PAGES]
    if unknown:
        raise ValidationError(
            f"Unknown target pages {unknown}. Valid pages: {settings.PROMOTABLE_PAGES}"
        )
    return pages


def _dates(start_date: Optional[datetime], end_date: Optional[datetime]) -> tuple[datetime, Optional[datetime]]:
    start = start_date or datetime.utcnow()
    if end_date is not None and end_date < start:
        raise ValidationError("End date cannot be before the start date.")
    return start, end_date


def _check_window(label: str, start: datetime, end: Optional[datetime], spend_date: date) -> None:
    if spend_date < start.date():
        raise ConflictError(f"{label} does not start until {start.date().isoformat()}.")
    if end is not None and spend_date > end.date():
        raise ConflictError(f"{label} ended on {end.date().isoformat()}.")


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_campaign(c: Campaign) -> dict[str, Any]:
    return {
        "id": c.id,
        "owner_id": c.owner_id,
        "campaign_name": c.campaign_name,
        "description": c.description,
        "campaign_type": c.campaign_type.value,
        "target_pages": list(c.target_pages or []),
        "objectives": c.objectives,
        "budget_daily": _amount(c.budget_daily_cents) if c.budget_daily_cents is not None else None,
        "budget_total": _amount(c.budget_total_cents),
        "spent_amount": _amount(c.spent_cents),
        "remaining": _amount(c.budget_total_cents - (c.spent_cents or 0)),
        "status": c.status.value,
        "start_date": _iso(c.start_date),
        "end_date": _iso(c.end_date),
        "created_at": _iso(c.created_at),
    }


def serialize_promotion(p: PromotedPost) -> dict[str, Any]:
    return {
        "id": p.id,
        "owner_id": p.owner_id,
        "post_id": p.post_id,
        "promotion_type": p.promotion_type.value,
        "target_pages": list(p.target_pages or []),
        "boost_level": p.boost_level,
        "budget_amount": _amount(p.budget_cents),
        "spent_amount": _amount(p.spent_cents),
        "status": p.status.value,
        "start_date": _iso(p.start_date),
        "end_date": _iso(p.end_date),
        "created_at": _iso(p.created_at),
    }


# ── Procedures ───────────────────────────────────────────────────────────────

@procedure("record_campaign_spend")
async def record_campaign_spend(
    session: AsyncSession,
    campaign_id: int,
    amount_cents: int,
    spend_date: date,
) -> dict[str, Any]:
    campaign = await session.get(Campaign, campaign_id)
    if campaign is None:
        raise NotFoundError(f"Campaign {campaign_id} not found.")
    if campaign.status != CampaignStatus.ACTIVE:
        raise ConflictError(f"Campaign {campaign_id} is {campaign.status.value}.")
    _check_window(f"Campaign {campaign_id}", campaign.start_date, campaign.end_date, spend_date)

    raised = await session.execute(
        update(Campaign)
        .where(
            Campaign.id == campaign_id,
            Campaign.status == CampaignStatus.ACTIVE,
            Campaign.spent_cents + amount_cents <= Campaign.budget_total_cents,
        )
        .values(spent_cents=Campaign.spent_cents + amount_cents)
        .execution_options(synchronize_session=False)
    )
    if raised.rowcount == 0:
        raise ConsistencyError(
            f"Spend of {_amount(amount_cents)} would exceed the total budget "
            f"of campaign {campaign_id}."
        )

    if campaign.budget_daily_cents is not None:
        await insert_ignore(
            session,
            CampaignDailySpend,
            {"campaign_id": campaign_id, "spend_date": spend_date, "amount_cents": 0},
        )
        daily = await session.execute(
            update(CampaignDailySpend)
            .where(
                CampaignDailySpend.campaign_id == campaign_id,
                CampaignDailySpend.spend_date == spend_date,
                CampaignDailySpend.amount_cents + amount_cents <= campaign.budget_daily_cents,
            )
            .values(amount_cents=CampaignDailySpend.amount_cents + amount_cents)
            .execution_options(synchronize_session=False)
        )
        if daily.rowcount == 0:
            # Raising rolls back the total increment above as well.
            raise ConsistencyError(
                f"Spend of {_amount(amount_cents)} would exceed the daily budget "
                f"of campaign {campaign_id}."
            )

    session.add(SpendEvent(
        campaign_id=campaign_id,
        amount_cents=amount_cents,
        spend_date=spend_date,
        created_at=datetime.utcnow(),
    ))

    # Exhausted budgets complete the campaign.
    await session.execute(
        update(Campaign)
        .where(
            Campaign.id == campaign_id,
            Campaign.spent_cents >= Campaign.budget_total_cents,
        )
        .values(status=CampaignStatus.COMPLETED)
        .execution_options(synchronize_session=False)
    )
    await session.flush()
    await session.refresh(campaign)
    return serialize_campaign(campaign)


@procedure("record_promotion_spend")
async def record_promotion_spend(
    session: AsyncSession,
    promotion_id: int,
    amount_cents: int,
    spend_date: date,
) -> dict[str, Any]:
    promotion = await session.get(PromotedPost, promotion_id)
    if promotion is None:
        raise NotFoundError(f"Promoted post {promotion_id} not found.")
    if promotion.status != CampaignStatus.ACTIVE:
        raise ConflictError(f"Promoted post {promotion_id} is {promotion.status.value}.")
    _check_window(f"Promoted post {promotion_id}", promotion.start_date, promotion.end_date, spend_date)

    raised = await session.execute(
        update(PromotedPost)
        .where(
            PromotedPost.id == promotion_id,
            PromotedPost.status == CampaignStatus.ACTIVE,
            PromotedPost.spent_cents + amount_cents <= PromotedPost.budget_cents,
        )
        .values(spent_cents=PromotedPost.spent_cents + amount_cents)
        .execution_options(synchronize_session=False)
    )
    if raised.rowcount == 0:
        raise ConsistencyError(
            f"Spend of {_amount(amount_cents)} would exceed the budget "
            f"of promoted post {promotion_id}."
        )

    session.add(SpendEvent(
        promotion_id=promotion_id,
        amount_cents=amount_cents,
        spend_date=spend_date,
        created_at=datetime.utcnow(),
    ))
    await session.execute(
        update(PromotedPost)
        .where(
            PromotedPost.id == promotion_id,
            PromotedPost.spent_cents >= PromotedPost.budget_cents,
        )
        .values(status=CampaignStatus.COMPLETED)
        .execution_options(synchronize_session=False)
    )
    await session.flush()
    await session.refresh(promotion)
    return serialize_promotion(promotion)


# ── Engine ───────────────────────────────────────────────────────────────────

class CampaignEngine:
    """Campaigns, promoted posts and their budget accounting.

    Failures here are consequential, so every failure tuple carries a
    message meant to be shown to the owner as-is.
    """

    def __init__(self, content_store: ContentStore = default_store):
        self._store = content_store

    # ══════════════════════════════════════════════════════════════════
    #  Campaigns
    # ══════════════════════════════════════════════════════════════════

    async def create_campaign(
        self,
        owner_id: str,
        campaign_name: str,
        budget_total,
        target_pages: Optional[list[str]] = None,
        campaign_type: str = "post_boost",
        description: Optional[str] = None,
        budget_daily=None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        objectives: Optional[dict[str, Any]] = None,
    ) -> Result:
        """Create a campaign; it starts ``active`` with nothing spent."""
        try:
            if not campaign_name or not campaign_name.strip():
                raise ValidationError("Campaign name is required.")
            total = _money(budget_total, "Total budget")
            daily = _money(budget_daily, "Daily budget", allow_none=True)
            if daily is not None and daily > total:
                raise ValidationError("Daily budget cannot exceed the total budget.")
            resolved_type = _parse(CampaignType, campaign_type, "campaign type")
            pages = _pages(target_pages)
            start, end = _dates(start_date, end_date)

            async with self._store.transaction() as session:
                await require_active_user(session, owner_id)
                campaign = Campaign(
                    owner_id=owner_id,
                    campaign_name=campaign_name.strip(),
                    description=description,
                    campaign_type=resolved_type,
                    target_pages=pages,
                    objectives=objectives,
                    budget_daily_cents=daily,
                    budget_total_cents=total,
                    spent_cents=0,
                    status=CampaignStatus.ACTIVE,
                    start_date=start,
                    end_date=end,
                    created_at=datetime.utcnow(),
                )
                session.add(campaign)
                await session.flush()
                data = serialize_campaign(campaign)

            logger.info(
                "Campaign %s created by %s (total=%s, daily=%s)",
                data["id"], owner_id, data["budget_total"], data["budget_daily"],
            )
            return ok("Campaign created.", data)
        except EngineError as exc:
            return exc.as_result()

    async def list_campaigns(self, owner_id: str) -> Result:
        try:
            async with self._store.reader() as session:
                result = await session.execute(
                    select(Campaign)
                    .where(Campaign.owner_id == owner_id)
                    .order_by(Campaign.created_at.desc(), Campaign.id.desc())
                )
                campaigns = [serialize_campaign(c) for c in result.scalars().all()]
            return ok(f"Retrieved {len(campaigns)} campaigns.", {"campaigns": campaigns})
        except EngineError as exc:
            return exc.as_result()

    async def get_campaign(self, owner_id: str, campaign_id: int) -> Result:
        try:
            async with self._store.reader() as session:
                campaign = await session.get(Campaign, campaign_id)
                if campaign is None:
                    raise NotFoundError(f"Campaign {campaign_id} not found.")
                if campaign.owner_id != owner_id:
                    raise AuthorizationError("Campaigns are visible to their owner only.")
                data = serialize_campaign(campaign)
            return ok("Campaign retrieved.", data)
        except EngineError as exc:
            return exc.as_result()

    async def toggle_status(self, owner_id: str, campaign_id: int) -> Result:
        """Flip active <-> paused; completed and cancelled are final here."""
        try:
            async with self._store.transaction() as session:
                campaign = await session.get(Campaign, campaign_id)
                if campaign is None:
                    raise NotFoundError(f"Campaign {campaign_id} not found.")
                if campaign.owner_id != owner_id:
                    raise AuthorizationError("Only the owner may change a campaign.")
                current = campaign.status
                new_status = _TOGGLE.get(current)
                if new_status is None:
                    raise ConflictError(f"Campaign {campaign_id} is {current.value}.")

                flipped = await session.execute(
                    update(Campaign)
                    .where(Campaign.id == campaign_id, Campaign.status == current)
                    .values(status=new_status)
                    .execution_options(synchronize_session=False)
                )
                if flipped.rowcount == 0:
                    raise ConflictError(f"Campaign {campaign_id} changed concurrently.")
                await session.refresh(campaign)
                data = serialize_campaign(campaign)

            logger.info(
                "Campaign %s %s -> %s by %s",
                campaign_id, current.value, new_status.value, owner_id,
            )
            verb = "activated" if new_status == CampaignStatus.ACTIVE else "paused"
            return ok(f"Campaign {verb}.", data)
        except EngineError as exc:
            return exc.as_result()

    async def record_spend(
        self,
        campaign_id: int,
        amount,
        spent_on: Optional[date] = None,
    ) -> Result:
        """Accrue spend against a campaign's budgets.

        Rejected (``consistency_error``) when the amount would take the
        total, or the day's spend, past its budget; nothing changes then.
        Spend dated outside the campaign's start and end dates is a
        ``conflict``.
        """
        try:
            value = _money(amount, "Spend amount")
            data = await self._store.invoke(
                "record_campaign_spend",
                campaign_id=campaign_id,
                amount_cents=value,
                spend_date=spent_on or datetime.utcnow().date(),
            )
        except EngineError as exc:
            logger.warning("Spend on campaign %s rejected: %s", campaign_id, exc.message)
            return exc.as_result()

        logger.info(
            "Campaign %s spent %s (total %s of %s, status=%s)",
            campaign_id, _amount(value), data["spent_amount"], data["budget_total"], data["status"],
        )
        return ok("Spend recorded.", data)

    # ══════════════════════════════════════════════════════════════════
    #  Promoted posts
    # ══════════════════════════════════════════════════════════════════

    async def promote_post(
        self,
        owner_id: str,
        post_id: int,
        budget_amount,
        promotion_type: str = "boost",
        target_pages: Optional[list[str]] = None,
        boost_level: int = 1,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Result:
        """Promote one of the owner's own active posts."""
        try:
            budget = _money(budget_amount, "Budget")
            resolved_type = _parse(PromotionType, promotion_type, "promotion type")
            if isinstance(boost_level, bool) or not isinstance(boost_level, int) or not (
                settings.BOOST_LEVEL_MIN <= boost_level <= settings.BOOST_LEVEL_MAX
            ):
                raise ValidationError(
                    f"Boost level must be between {settings.BOOST_LEVEL_MIN} "
                    f"and {settings.BOOST_LEVEL_MAX}."
                )
            pages = _pages(target_pages)
            start, end = _dates(start_date, end_date)

            async with self._store.transaction() as session:
                await require_active_user(session, owner_id)
                post = await session.get(Post, post_id)
                if post is None or not post.is_active:
                    raise NotFoundError(f"Post {post_id} not found.")
                if post.author_id != owner_id:
                    raise AuthorizationError("You can only promote your own posts.")
                promotion = PromotedPost(
                    owner_id=owner_id,
                    post_id=post_id,
                    promotion_type=resolved_type,
                    target_pages=pages,
                    boost_level=boost_level,
                    budget_cents=budget,
                    spent_cents=0,
                    status=CampaignStatus.ACTIVE,
                    start_date=start,
                    end_date=end,
                    created_at=datetime.utcnow(),
                )
                session.add(promotion)
                await session.flush()
                data = serialize_promotion(promotion)

            logger.info("Post %s promoted by %s (budget=%s)", post_id, owner_id, _amount(budget))
            return ok("Post promoted.", data)
        except EngineError as exc:
            return exc.as_result()

    async def list_promoted_posts(self, owner_id: str) -> Result:
        try:
            async with self._store.reader() as session:
                result = await session.execute(
                    select(PromotedPost, Post.content)
                    .join(Post, Post.id == PromotedPost.post_id)
                    .where(PromotedPost.owner_id == owner_id)
                    .order_by(PromotedPost.created_at.desc(), PromotedPost.id.desc())
                )
                promotions = []
                for promotion, content in result.all():
                    entry = serialize_promotion(promotion)
                    entry["post_content"] = content
                    promotions.append(entry)
            return ok(f"Retrieved {len(promotions)} promoted posts.", {"promotions": promotions})
        except EngineError as exc:
            return exc.as_result()

    async def toggle_promotion_status(self, owner_id: str, promotion_id: int) -> Result:
        try:
            async with self._store.transaction() as session:
                promotion = await session.get(PromotedPost, promotion_id)
                if promotion is None:
                    raise NotFoundError(f"Promoted post {promotion_id} not found.")
                if promotion.owner_id != owner_id:
                    raise AuthorizationError("Only the owner may change a promotion.")
                new_status = _TOGGLE.get(promotion.status)
                if new_status is None:
                    raise ConflictError(
                        f"Promoted post {promotion_id} is {promotion.status.value}."
                    )
                promotion.status = new_status
                await session.flush()
                data = serialize_promotion(promotion)

            logger.info("Promotion %s -> %s by %s", promotion_id, new_status.value, owner_id)
            return ok(f"Promotion {new_status.value}.", data)
        except EngineError as exc:
            return exc.as_result()

    async def record_promotion_spend(
        self,
        promotion_id: int,
        amount,
        spent_on: Optional[date] = None,
    ) -> Result:
        try:
            value = _money(amount, "Spend amount")
            data = await self._store.invoke(
                "record_promotion_spend",
                promotion_id=promotion_id,
                amount_cents=value,
                spend_date=spent_on or datetime.utcnow().date(),
            )
        except EngineError as exc:
            logger.warning("Spend on promotion %s rejected: %s", promotion_id, exc.message)
            return exc.as_result()

        logger.info(
            "Promotion %s spent %s (total %s of %s)",
            promotion_id, _amount(value), data["spent_amount"], data["budget_amount"],
        )
        return ok("Spend recorded.", data)
