"""
Content & Comments Engine
─────────────────────────
Async engine behind the community feeds: posts, gigs, skate spots, trick
videos, forum topics and commute alerts.

Handles the thin content lifecycle (create, fetch, soft-delete), comments
with their ``comments_count`` projection, and feed pages. Every public
method returns the standardised ``(success: bool, message: str,
data: dict | None)`` tuple so callers can relay results uniformly.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.settings import settings
from src.db.store import ContentStore, store as default_store
from src.engine.access import MODERATION_ROLES, has_role, require_active_user
from src.engine.counters import apply_counter_delta
from src.engine.errors import (
    AuthorizationError,
    ConflictError,
    EngineError,
    NotFoundError,
    Result,
    ValidationError,
    ok,
)
from src.engine.registry import ContentVariant, get_variant
from src.models.models import Comment

logger = logging.getLogger(__name__)

_SORTS = ("recent", "popular")

# Columns no caller may set when creating content.
_PROTECTED_FIELDS = {"id", "author_id", "is_active", "created_at"}


def serialize_item(variant: ContentVariant, item) -> dict[str, Any]:
    data: dict[str, Any] = {"content_type": variant.content_type.value}
    for column in variant.model.__table__.columns:
        value = getattr(item, column.key)
        if isinstance(value, datetime):
            value = value.isoformat()
        data[column.key] = value
    return data


def _serialize_comment(c: Comment) -> dict[str, Any]:
    return {
        "id": c.id,
        "content_type": c.content_type.value,
        "content_id": c.content_id,
        "author_id": c.author_id,
        "body": c.body,
        "is_active": c.is_active,
        "created_at": c.created_at.isoformat() if c.created_at else None,
    }


class SocialEngine:
    """Async engine managing content items and their comments.

    All public methods open (and close) their own database sessions so
    callers never need to manage transactions directly.
    """

    def __init__(self, content_store: ContentStore = default_store):
        self._store = content_store

    # ══════════════════════════════════════════════════════════════════
    #  Content
    # ══════════════════════════════════════════════════════════════════

    async def create_content(
        self,
        content_type: str,
        author_id: str,
        fields: dict[str, Any],
    ) -> Result:
        """Create a content item of any registered variant.

        Counter columns cannot be set by the caller; they start at zero and
        only move through interactions and comments.
        """
        try:
            variant = get_variant(content_type)
            model = variant.model
            columns = {c.key for c in model.__table__.columns}
            counters = set(variant.counter_fields)
            if variant.average_field:
                counters.add(variant.average_field)

            values: dict[str, Any] = {}
            for key, value in (fields or {}).items():
                if key in _PROTECTED_FIELDS or key in counters:
                    raise ValidationError(f"Field '{key}' cannot be set directly.")
                if key not in columns:
                    raise ValidationError(f"Unknown field '{key}' for {variant.label}.")
                values[key] = value

            for column in model.__table__.columns:
                if (
                    not column.nullable
                    and column.default is None
                    and not column.primary_key
                    and column.key not in values
                    and column.key != "author_id"
                ):
                    raise ValidationError(f"Field '{column.key}' is required.")
                value = values.get(column.key)
                if isinstance(value, str) and not column.nullable and not value.strip():
                    raise ValidationError(f"Field '{column.key}' cannot be empty.")

            async with self._store.transaction() as session:
                await require_active_user(session, author_id)
                item = model(author_id=author_id, created_at=datetime.utcnow(), **values)
                session.add(item)
                await session.flush()
                await session.refresh(item)
                data = serialize_item(variant, item)

            logger.info(
                "User %s created %s %s", author_id, variant.content_type.value, data["id"]
            )
            return ok(f"{variant.label} created.", data)

        except EngineError as exc:
            return exc.as_result()

    # ──────────────────────────────────────────────────────────────────

    async def get_content(self, content_type: str, content_id: int) -> Result:
        """Return a single content item (authoritative counters included)."""
        try:
            variant = get_variant(content_type)
            async with self._store.reader() as session:
                item = await session.get(variant.model, content_id)
                if item is None or not item.is_active:
                    raise NotFoundError(f"{variant.label} {content_id} not found.")
                data = serialize_item(variant, item)
            return ok(f"{variant.label} retrieved.", data)
        except EngineError as exc:
            return exc.as_result()

    # ──────────────────────────────────────────────────────────────────

    async def delete_content(self, content_type: str, content_id: int, actor_id: str) -> Result:
        """Soft-delete (``is_active = False``) by the author or a moderator."""
        try:
            variant = get_variant(content_type)
            async with self._store.transaction() as session:
                item = await session.get(variant.model, content_id)
                if item is None:
                    raise NotFoundError(f"{variant.label} {content_id} not found.")
                if item.author_id != actor_id and not await has_role(
                    session, actor_id, *MODERATION_ROLES
                ):
                    raise AuthorizationError("Only the author or a moderator may delete this.")
                if not item.is_active:
                    raise ConflictError(f"{variant.label} {content_id} is already deleted.")
                item.is_active = False

            logger.info(
                "%s %s soft-deleted by %s", variant.content_type.value, content_id, actor_id
            )
            return ok(
                f"{variant.label} deleted.",
                {"content_type": variant.content_type.value, "content_id": content_id},
            )
        except EngineError as exc:
            return exc.as_result()

    # ──────────────────────────────────────────────────────────────────

    async def get_feed(
        self,
        content_type: str,
        sort: str = "recent",
        limit: int = 20,
        offset: int = 0,
        author_id: Optional[str] = None,
    ) -> Result:
        """Return a page of active items, newest or most liked first."""
        try:
            variant = get_variant(content_type)
            if sort not in _SORTS:
                raise ValidationError(f"Invalid sort '{sort}'. Valid sorts: {list(_SORTS)}")
            limit = max(1, min(limit, settings.FEED_PAGE_SIZE_MAX))
            offset = max(0, offset)
            model = variant.model

            query = select(model).where(model.is_active.is_(True))
            if author_id:
                query = query.where(model.author_id == author_id)
            if sort == "popular":
                query = query.order_by(model.likes_count.desc(), model.created_at.desc())
            else:
                query = query.order_by(model.created_at.desc(), model.id.desc())
            query = query.offset(offset).limit(limit)

            async with self._store.reader() as session:
                result = await session.execute(query)
                items = [serialize_item(variant, i) for i in result.scalars().all()]

            return ok(
                f"Retrieved {len(items)} items.",
                {"items": items, "limit": limit, "offset": offset, "sort": sort},
            )
        except EngineError as exc:
            return exc.as_result()

    # ══════════════════════════════════════════════════════════════════
    #  Comments
    # ══════════════════════════════════════════════════════════════════

    async def create_comment(
        self,
        author_id: str,
        content_type: str,
        content_id: int,
        body: str,
    ) -> Result:
        """Add a comment and bump ``comments_count`` in one transaction."""
        if not body or not body.strip():
            return ValidationError("Comment cannot be empty.").as_result()
        if len(body) > settings.MAX_COMMENT_LENGTH:
            return ValidationError(
                f"Comment exceeds {settings.MAX_COMMENT_LENGTH}-character limit "
                f"({len(body)} chars)."
            ).as_result()

        try:
            variant = get_variant(content_type)
            async with self._store.transaction() as session:
                await require_active_user(session, author_id)
                item = await session.get(variant.model, content_id)
                if item is None:
                    raise NotFoundError(f"{variant.label} {content_id} not found.")
                if not item.is_active:
                    raise ConflictError(f"Cannot comment on a deleted {variant.label.lower()}.")
                if getattr(item, "is_locked", False):
                    raise ConflictError(f"{variant.label} {content_id} is locked.")

                comment = Comment(
                    content_type=variant.content_type,
                    content_id=content_id,
                    author_id=author_id,
                    body=body.strip(),
                    created_at=datetime.utcnow(),
                )
                session.add(comment)
                await session.flush()
                count, _ = await apply_counter_delta(
                    session, variant, content_id, variant.comments_field, 1
                )
                comment_data = _serialize_comment(comment)

            logger.info(
                "Comment %s added to %s %s by %s",
                comment_data["id"], variant.content_type.value, content_id, author_id,
            )
            comment_data["comments_count"] = count
            return ok("Comment created.", comment_data)

        except EngineError as exc:
            return exc.as_result()

    # ──────────────────────────────────────────────────────────────────

    async def get_comments(self, content_type: str, content_id: int) -> Result:
        """Return the active comments of an item, oldest first."""
        try:
            variant = get_variant(content_type)
            async with self._store.reader() as session:
                exists = await session.execute(
                    select(variant.model.id).where(variant.model.id == content_id)
                )
                if exists.scalar_one_or_none() is None:
                    raise NotFoundError(f"{variant.label} {content_id} not found.")

                result = await session.execute(
                    select(Comment)
                    .where(
                        Comment.content_type == variant.content_type,
                        Comment.content_id == content_id,
                        Comment.is_active.is_(True),
                    )
                    .order_by(Comment.created_at.asc(), Comment.id.asc())
                )
                comments = [_serialize_comment(c) for c in result.scalars().all()]

            return ok(f"Retrieved {len(comments)} comments.", {"comments": comments})
        except EngineError as exc:
            return exc.as_result()

    # ──────────────────────────────────────────────────────────────────

    async def deactivate_comment(self, comment_id: int, actor_id: str) -> Result:
        """Hide a comment (author or moderator) and decrement the count."""
        try:
            async with self._store.transaction() as session:
                comment = await session.get(Comment, comment_id)
                if comment is None:
                    raise NotFoundError(f"Comment {comment_id} not found.")
                if comment.author_id != actor_id and not await has_role(
                    session, actor_id, *MODERATION_ROLES
                ):
                    raise AuthorizationError("Only the author or a moderator may remove this.")
                count = await self._deactivate(session, comment)

            logger.info("Comment %s deactivated by %s", comment_id, actor_id)
            return ok(
                "Comment removed.",
                {"comment_id": comment_id, "comments_count": count},
            )
        except EngineError as exc:
            return exc.as_result()

    @staticmethod
    async def _deactivate(session: AsyncSession, comment: Comment) -> int:
        variant = get_variant(comment.content_type)
        result = await session.execute(
            update(Comment)
            .where(Comment.id == comment.id, Comment.is_active.is_(True))
            .values(is_active=False)
        )
        if result.rowcount == 0:
            raise ConflictError(f"Comment {comment.id} is already removed.")
        count, _ = await apply_counter_delta(
            session, variant, comment.content_id, variant.comments_field, -1
        )
        return count
