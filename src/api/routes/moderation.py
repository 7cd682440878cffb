"""
Moderation routes.

Any user may file a report, read their own reports and acknowledge their
own warnings. Queue, resolution, actions, warnings and stats are gated by
the moderator capability inside the engine, so these routes only pass the
caller's identity through.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel

from src.api.deps import current_user, optional_user, respond
from src.engine.access import AccessEngine
from src.engine.moderation import ModerationEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/moderation", tags=["moderation"])

_moderation_engine = ModerationEngine()
_access_engine = AccessEngine()


# ── Request bodies ────────────────────────────────────────────────────────────

class SubmitReportRequest(BaseModel):
    reason: str
    content_type: Optional[str] = None
    content_id: Optional[int] = None
    reported_user_id: Optional[str] = None
    description: Optional[str] = None
    priority: str = "medium"


class ResolveReportRequest(BaseModel):
    resolution: str
    notes: Optional[str] = None


class RecordActionRequest(BaseModel):
    action_type: str
    target_user_id: Optional[str] = None
    content_type: Optional[str] = None
    content_id: Optional[int] = None
    reason: Optional[str] = None


class CreateWarningRequest(BaseModel):
    target_user_id: str
    warning_type: str
    severity: str = "medium"
    message: str


class GrantRoleRequest(BaseModel):
    user_id: str
    role: str


# ── Reports ──────────────────────────────────────────────────────────────────

@router.post("/reports")
async def submit_report(body: SubmitReportRequest, user_id: str = Depends(current_user)):
    return respond(
        await _moderation_engine.submit_report(
            reporter_id=user_id,
            reason=body.reason,
            content_type=body.content_type,
            content_id=body.content_id,
            reported_user_id=body.reported_user_id,
            description=body.description,
            priority=body.priority,
        ),
        success_status=201,
    )


@router.get("/queue")
async def get_queue(
    limit: Optional[int] = Query(default=None, ge=1),
    user_id: str = Depends(current_user),
):
    """Pending reports, most urgent first."""
    return respond(await _moderation_engine.get_queue(user_id, limit))


@router.get("/reports/{report_id}")
async def get_report(report_id: int, user_id: str = Depends(current_user)):
    return respond(await _moderation_engine.get_report(user_id, report_id))


@router.post("/reports/{report_id}/resolve")
async def resolve_report(
    report_id: int,
    body: ResolveReportRequest,
    user_id: str = Depends(current_user),
):
    return respond(
        await _moderation_engine.resolve_report(user_id, report_id, body.resolution, body.notes)
    )


# ── Actions ──────────────────────────────────────────────────────────────────

@router.post("/actions")
async def record_action(body: RecordActionRequest, user_id: str = Depends(current_user)):
    return respond(
        await _moderation_engine.record_action(
            moderator_id=user_id,
            action_type=body.action_type,
            target_user_id=body.target_user_id,
            content_type=body.content_type,
            content_id=body.content_id,
            reason=body.reason,
        ),
        success_status=201,
    )


@router.get("/actions")
async def get_actions(
    target_user_id: Optional[str] = None,
    limit: int = Query(default=20, ge=1, le=100),
    user_id: str = Depends(current_user),
):
    return respond(await _moderation_engine.get_actions(user_id, target_user_id, limit))


# ── Warnings ─────────────────────────────────────────────────────────────────

@router.post("/warnings")
async def create_warning(body: CreateWarningRequest, user_id: str = Depends(current_user)):
    return respond(
        await _moderation_engine.create_warning(
            moderator_id=user_id,
            target_user_id=body.target_user_id,
            warning_type=body.warning_type,
            severity=body.severity,
            message=body.message,
        ),
        success_status=201,
    )


@router.get("/warnings")
async def list_warnings(
    acknowledged: Optional[bool] = None,
    target_user_id: Optional[str] = None,
    limit: int = Query(default=20, ge=1, le=100),
    user_id: str = Depends(current_user),
):
    return respond(
        await _moderation_engine.list_warnings(user_id, acknowledged, target_user_id, limit)
    )


@router.get("/warnings/mine")
async def my_warnings(user_id: str = Depends(current_user)):
    return respond(await _moderation_engine.get_my_warnings(user_id))


@router.post("/warnings/{warning_id}/acknowledge")
async def acknowledge_warning(warning_id: int, user_id: str = Depends(current_user)):
    return respond(await _moderation_engine.acknowledge_warning(user_id, warning_id))


# ── Stats ────────────────────────────────────────────────────────────────────

@router.get("/stats")
async def get_stats(user_id: str = Depends(current_user)):
    return respond(await _moderation_engine.get_stats(user_id))


# ── Roles ────────────────────────────────────────────────────────────────────

@router.get("/roles/{target_user_id}")
async def get_roles(target_user_id: str):
    return respond(await _access_engine.get_roles(target_user_id))


@router.post("/roles")
async def grant_role(
    body: GrantRoleRequest,
    user_id: Optional[str] = Depends(optional_user),
    x_admin_secret: Optional[str] = Header(default=None, alias="X-Admin-Secret"),
):
    """Grant a role; admins only, or the admin secret for the first admin."""
    return respond(
        await _access_engine.grant_role(user_id, body.user_id, body.role, x_admin_secret)
    )


@router.delete("/roles/{target_user_id}/{role}")
async def revoke_role(target_user_id: str, role: str, user_id: str = Depends(current_user)):
    return respond(await _access_engine.revoke_role(user_id, target_user_id, role))
