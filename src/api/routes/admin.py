"""
Admin routes for the community platform.

Analytics for the operator dashboard and store introspection. All routes
require the ``X-Admin-Secret`` header to match the configured admin secret.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError

from src.api.deps import respond, verify_admin
from src.db.store import registered_procedures
from src.engine.errors import EngineError, ok
from src.logging.analytics import AnalyticsEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

_analytics_engine = AnalyticsEngine()


# ── GET /admin/analytics/summary ─────────────────────────────────────────────

@router.get("/analytics/summary")
async def analytics_summary(_: bool = Depends(verify_admin)):
    """Engagement totals, moderation throughput and campaign spend in one body."""
    try:
        summary = await _analytics_engine.get_platform_summary()
        return respond(ok("Platform summary.", summary))
    except SQLAlchemyError:
        logger.exception("Failed to build analytics summary")
        raise HTTPException(status_code=500, detail="Analytics unavailable.")


# ── GET /admin/analytics/engagement ──────────────────────────────────────────

@router.get("/analytics/engagement")
async def engagement(_: bool = Depends(verify_admin)):
    try:
        return respond(ok("Engagement summary.", await _analytics_engine.get_engagement_summary()))
    except SQLAlchemyError:
        logger.exception("Failed to build engagement summary")
        raise HTTPException(status_code=500, detail="Analytics unavailable.")


# ── GET /admin/analytics/top/{content_type} ──────────────────────────────────

@router.get("/analytics/top/{content_type}")
async def top_content(
    content_type: str,
    limit: int = Query(default=10, ge=1, le=100),
    _: bool = Depends(verify_admin),
):
    """Most liked active items of one content type."""
    try:
        data = await _analytics_engine.get_top_content(content_type, limit)
        return respond(ok(f"Top {len(data['items'])} items.", data))
    except EngineError as exc:
        return respond(exc.as_result())
    except SQLAlchemyError:
        logger.exception("Failed to load top content for %s", content_type)
        raise HTTPException(status_code=500, detail="Analytics unavailable.")


# ── GET /admin/analytics/moderation ──────────────────────────────────────────

@router.get("/analytics/moderation")
async def moderation_summary(_: bool = Depends(verify_admin)):
    try:
        return respond(ok("Moderation summary.", await _analytics_engine.get_moderation_summary()))
    except SQLAlchemyError:
        logger.exception("Failed to build moderation summary")
        raise HTTPException(status_code=500, detail="Analytics unavailable.")


# ── GET /admin/analytics/campaigns ───────────────────────────────────────────

@router.get("/analytics/campaigns")
async def campaign_summary(_: bool = Depends(verify_admin)):
    try:
        return respond(ok("Campaign summary.", await _analytics_engine.get_campaign_summary()))
    except SQLAlchemyError:
        logger.exception("Failed to build campaign summary")
        raise HTTPException(status_code=500, detail="Analytics unavailable.")


# ── GET /admin/analytics/users/{user_id} ─────────────────────────────────────

@router.get("/analytics/users/{user_id}")
async def user_activity(user_id: str, _: bool = Depends(verify_admin)):
    try:
        return respond(ok("User activity.", await _analytics_engine.get_user_activity(user_id)))
    except SQLAlchemyError:
        logger.exception("Failed to build activity for user %s", user_id)
        raise HTTPException(status_code=500, detail="Analytics unavailable.")


# ── GET /admin/procedures ────────────────────────────────────────────────────

@router.get("/procedures")
async def procedures(_: bool = Depends(verify_admin)):
    """Names of the atomic store procedures the engines have registered."""
    names = registered_procedures()
    return respond(ok(f"{len(names)} procedures registered.", {"procedures": names}))
