"""
Content and comment routes.

Thin CRUD over the registered content variants plus comments. Counter
columns are never writable here; they move only through interactions.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from src.api.deps import current_user, respond
from src.engine.social import SocialEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/content", tags=["content"])

_social_engine = SocialEngine()


# ── Request bodies ────────────────────────────────────────────────────────────

class CreateContentRequest(BaseModel):
    fields: dict[str, Any] = Field(default_factory=dict)


class CreateCommentRequest(BaseModel):
    body: str


# ── Comments ─────────────────────────────────────────────────────────────────

@router.delete("/comments/{comment_id}")
async def delete_comment(comment_id: int, user_id: str = Depends(current_user)):
    """Hide a comment; the author or a moderator may do this."""
    return respond(await _social_engine.deactivate_comment(comment_id, user_id))


@router.get("/{content_type}/{content_id}/comments")
async def get_comments(content_type: str, content_id: int):
    return respond(await _social_engine.get_comments(content_type, content_id))


@router.post("/{content_type}/{content_id}/comments")
async def create_comment(
    content_type: str,
    content_id: int,
    body: CreateCommentRequest,
    user_id: str = Depends(current_user),
):
    return respond(
        await _social_engine.create_comment(user_id, content_type, content_id, body.body),
        success_status=201,
    )


# ── Items ────────────────────────────────────────────────────────────────────

@router.get("/{content_type}")
async def get_feed(
    content_type: str,
    sort: str = Query(default="recent"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    author_id: Optional[str] = None,
):
    """Feed page of active items, ``recent`` or ``popular`` first."""
    return respond(
        await _social_engine.get_feed(content_type, sort, limit, offset, author_id)
    )


@router.post("/{content_type}")
async def create_content(
    content_type: str,
    body: CreateContentRequest,
    user_id: str = Depends(current_user),
):
    return respond(
        await _social_engine.create_content(content_type, user_id, body.fields),
        success_status=201,
    )


@router.get("/{content_type}/{content_id}")
async def get_content(content_type: str, content_id: int):
    return respond(await _social_engine.get_content(content_type, content_id))


@router.delete("/{content_type}/{content_id}")
async def delete_content(
    content_type: str,
    content_id: int,
    user_id: str = Depends(current_user),
):
    return respond(await _social_engine.delete_content(content_type, content_id, user_id))
