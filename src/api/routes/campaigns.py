"""
Campaign and promoted-post routes.

Owners manage their own campaigns. Spend is reported by the ad-serving
side and therefore sits behind ``X-Admin-Secret``; it is rejected with
409 when it would exceed a budget.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.api.deps import current_user, respond, verify_admin
from src.engine.campaigns import CampaignEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/campaigns", tags=["campaigns"])

_campaign_engine = CampaignEngine()


# ── Request bodies ────────────────────────────────────────────────────────────

class CreateCampaignRequest(BaseModel):
    campaign_name: str
    budget_total: Decimal
    budget_daily: Optional[Decimal] = None
    campaign_type: str = "post_boost"
    description: Optional[str] = None
    target_pages: list[str] = Field(default_factory=list)
    objectives: Optional[dict[str, Any]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class PromotePostRequest(BaseModel):
    post_id: int
    budget_amount: Decimal
    promotion_type: str = "boost"
    target_pages: list[str] = Field(default_factory=list)
    boost_level: int = 1
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class SpendRequest(BaseModel):
    amount: Decimal
    spent_on: Optional[date] = None


# ── Promoted posts ───────────────────────────────────────────────────────────

@router.post("/promoted-posts")
async def promote_post(body: PromotePostRequest, user_id: str = Depends(current_user)):
    return respond(
        await _campaign_engine.promote_post(
            owner_id=user_id,
            post_id=body.post_id,
            budget_amount=body.budget_amount,
            promotion_type=body.promotion_type,
            target_pages=body.target_pages,
            boost_level=body.boost_level,
            start_date=body.start_date,
            end_date=body.end_date,
        ),
        success_status=201,
    )


@router.get("/promoted-posts")
async def list_promoted_posts(user_id: str = Depends(current_user)):
    return respond(await _campaign_engine.list_promoted_posts(user_id))


@router.post("/promoted-posts/{promotion_id}/toggle")
async def toggle_promotion(promotion_id: int, user_id: str = Depends(current_user)):
    return respond(await _campaign_engine.toggle_promotion_status(user_id, promotion_id))


@router.post("/promoted-posts/{promotion_id}/spend")
async def record_promotion_spend(
    promotion_id: int,
    body: SpendRequest,
    _: bool = Depends(verify_admin),
):
    return respond(
        await _campaign_engine.record_promotion_spend(promotion_id, body.amount, body.spent_on)
    )


# ── Campaigns ────────────────────────────────────────────────────────────────

@router.post("")
async def create_campaign(body: CreateCampaignRequest, user_id: str = Depends(current_user)):
    return respond(
        await _campaign_engine.create_campaign(
            owner_id=user_id,
            campaign_name=body.campaign_name,
            budget_total=body.budget_total,
            target_pages=body.target_pages,
            campaign_type=body.campaign_type,
            description=body.description,
            budget_daily=body.budget_daily,
            start_date=body.start_date,
            end_date=body.end_date,
            objectives=body.objectives,
        ),
        success_status=201,
    )


@router.get("")
async def list_campaigns(user_id: str = Depends(current_user)):
    return respond(await _campaign_engine.list_campaigns(user_id))


@router.get("/{campaign_id}")
async def get_campaign(campaign_id: int, user_id: str = Depends(current_user)):
    return respond(await _campaign_engine.get_campaign(user_id, campaign_id))


@router.post("/{campaign_id}/toggle")
async def toggle_campaign(campaign_id: int, user_id: str = Depends(current_user)):
    """Flip between active and paused."""
    return respond(await _campaign_engine.toggle_status(user_id, campaign_id))


@router.post("/{campaign_id}/spend")
async def record_spend(
    campaign_id: int,
    body: SpendRequest,
    _: bool = Depends(verify_admin),
):
    return respond(
        await _campaign_engine.record_spend(campaign_id, body.amount, body.spent_on)
    )
