"""
Engagement routes.

Like / interested toggles, ratings, counter reads and reconciliation, view
and share counting. Paths are addressed by content type tag and id, e.g.
``POST /interactions/post/12/like/toggle``.
"""

import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from src.api.deps import current_user, respond, verify_admin
from src.engine.counters import CounterProjection
from src.engine.ledger import InteractionLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/interactions", tags=["interactions"])

# Engine singletons -- initialised once and reused across requests.
_ledger = InteractionLedger()
_counters = CounterProjection()


# ── Request bodies ────────────────────────────────────────────────────────────

class SetStateRequest(BaseModel):
    on: bool


class RateRequest(BaseModel):
    value: int


class DeltaRequest(BaseModel):
    field: str
    delta: int


# ── GET /interactions/{type}/state ───────────────────────────────────────────

@router.get("/{content_type}/state")
async def get_feed_state(
    content_type: str,
    ids: list[int] = Query(default=[]),
    user_id: str = Depends(current_user),
):
    """Toggle state of the caller for a page of items (``?ids=1&ids=2``)."""
    return respond(await _ledger.get_user_interactions(user_id, content_type, ids))


# ── GET /interactions/{type}/{id}/counters ─────────────────────────────────

@router.get("/{content_type}/{content_id}/counters")
async def get_counters(content_type: str, content_id: int):
    """Authoritative counter refetch; registered before the kind lookup."""
    return respond(await _counters.get_counters(content_type, content_id))


# ── GET /interactions/{type}/{id}/{kind} ─────────────────────────────────────

@router.get("/{content_type}/{content_id}/{kind}")
async def get_state(
    content_type: str,
    content_id: int,
    kind: str,
    user_id: str = Depends(current_user),
):
    return respond(await _ledger.has_interaction(user_id, content_type, content_id, kind))


# ── POST /interactions/{type}/{id}/{kind}/toggle ─────────────────────────────

@router.post("/{content_type}/{content_id}/{kind}/toggle")
async def toggle(
    content_type: str,
    content_id: int,
    kind: str,
    user_id: str = Depends(current_user),
):
    return respond(await _ledger.toggle(user_id, content_type, content_id, kind))


# ── PUT /interactions/{type}/{id}/{kind} ─────────────────────────────────────

@router.put("/{content_type}/{content_id}/{kind}")
async def set_state(
    content_type: str,
    content_id: int,
    kind: str,
    body: SetStateRequest,
    user_id: str = Depends(current_user),
):
    """Idempotent on/off, safe for clients to retry."""
    return respond(
        await _ledger.set_state(user_id, content_type, content_id, kind, body.on)
    )


# ── POST /interactions/{type}/{id}/rating ────────────────────────────────────

@router.post("/{content_type}/{content_id}/rating")
async def rate(
    content_type: str,
    content_id: int,
    body: RateRequest,
    user_id: str = Depends(current_user),
):
    return respond(await _ledger.rate(user_id, content_type, content_id, body.value))


# ── Counters ─────────────────────────────────────────────────────────────────

@router.post("/{content_type}/{content_id}/reconcile")
async def reconcile(
    content_type: str,
    content_id: int,
    _: bool = Depends(verify_admin),
):
    return respond(await _counters.reconcile(content_type, content_id))


@router.post("/{content_type}/{content_id}/counters")
async def apply_delta(
    content_type: str,
    content_id: int,
    body: DeltaRequest,
    _: bool = Depends(verify_admin),
):
    """Manual counter adjustment for operators."""
    logger.info(
        "Manual counter delta %+d on %s %s.%s",
        body.delta, content_type, content_id, body.field,
    )
    return respond(
        await _counters.apply_delta(content_type, content_id, body.field, body.delta)
    )


@router.post("/{content_type}/{content_id}/view")
async def record_view(content_type: str, content_id: int):
    return respond(await _counters.record_view(content_type, content_id))


@router.post("/{content_type}/{content_id}/share")
async def record_share(
    content_type: str,
    content_id: int,
    user_id: str = Depends(current_user),
):
    return respond(await _counters.record_share(content_type, content_id))
