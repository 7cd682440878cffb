"""
Interaction ledger.

One row per (user, content item, interaction kind) records that a user
liked, rated or marked interest in an item. The unique key on that tuple is
what keeps repeated or concurrent toggles from producing duplicates; the
matching counter is moved in the same transaction as the ledger row, so a
failed call leaves neither changed. No retries: one attempt per user
action, with the failure reported to the caller.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.settings import settings
from src.db.store import ContentStore, insert_ignore, procedure, store as default_store
from src.engine.access import require_active_user
from src.engine.counters import apply_counter_delta, refresh_rating
from src.engine.errors import (
    ConflictError,
    EngineError,
    NotFoundError,
    Result,
    ValidationError,
    ok,
)
from src.engine.registry import ContentVariant, get_variant, parse_kind
from src.models.models import Interaction, InteractionKind

logger = logging.getLogger(__name__)

STATE_ON = "on"
STATE_OFF = "off"


# ── Helpers ──────────────────────────────────────────────────────────────────

def _key(variant: ContentVariant, user_id: str, content_id: int, kind: InteractionKind):
    return (
        Interaction.user_id == user_id,
        Interaction.content_type == variant.content_type,
        Interaction.content_id == content_id,
        Interaction.kind == kind,
    )


async def _load_target(session: AsyncSession, variant: ContentVariant, content_id: int):
    result = await session.execute(
        select(variant.model).where(variant.model.id == content_id)
    )
    item = result.scalar_one_or_none()
    if item is None:
        raise NotFoundError(f"{variant.label} {content_id} not found.")
    if not item.is_active:
        raise ConflictError(f"{variant.label} {content_id} is no longer available.")
    return item


def _toggle_kind(variant: ContentVariant, kind) -> InteractionKind:
    resolved = parse_kind(kind)
    if resolved == InteractionKind.RATING:
        raise ValidationError("Ratings are set with rate(), not toggled.")
    variant.counter_for(resolved)
    return resolved


async def _switch_on(session, variant, user_id, content_id, kind) -> tuple[bool, int, bool]:
    """Insert the ledger row if absent; returns (changed, counter, clamped)."""
    field = variant.counter_for(kind)
    created = await insert_ignore(
        session,
        Interaction,
        {
            "user_id": user_id,
            "content_type": variant.content_type,
            "content_id": content_id,
            "kind": kind,
            "created_at": datetime.utcnow(),
        },
    )
    if not created:
        value = await session.execute(
            select(getattr(variant.model, field)).where(variant.model.id == content_id)
        )
        return False, value.scalar_one(), False
    value, clamped = await apply_counter_delta(session, variant, content_id, field, 1)
    return True, value, clamped


async def _switch_off(session, variant, user_id, content_id, kind) -> tuple[bool, int, bool]:
    field = variant.counter_for(kind)
    result = await session.execute(
        delete(Interaction).where(*_key(variant, user_id, content_id, kind))
    )
    if result.rowcount == 0:
        value = await session.execute(
            select(getattr(variant.model, field)).where(variant.model.id == content_id)
        )
        return False, value.scalar_one(), False
    value, clamped = await apply_counter_delta(session, variant, content_id, field, -1)
    return True, value, clamped


def _outcome(variant, content_id, kind, user_id, state, changed, value, clamped) -> dict[str, Any]:
    return {
        "content_type": variant.content_type.value,
        "content_id": content_id,
        "kind": kind.value,
        "user_id": user_id,
        "state": state,
        "changed": changed,
        "counter": variant.counter_for(kind),
        "count": value,
        "clamped": clamped,
    }


# ── Procedures ───────────────────────────────────────────────────────────────

@procedure("toggle_interaction")
async def toggle_interaction(
    session: AsyncSession, user_id: str, content_type: str, content_id: int, kind: str
) -> dict[str, Any]:
    variant = get_variant(content_type)
    resolved = _toggle_kind(variant, kind)
    await require_active_user(session, user_id)
    await _load_target(session, variant, content_id)

    # Delete first: if a row existed the toggle is "off", otherwise insert.
    changed, value, clamped = await _switch_off(session, variant, user_id, content_id, resolved)
    if changed:
        return _outcome(variant, content_id, resolved, user_id, STATE_OFF, True, value, clamped)
    changed, value, clamped = await _switch_on(session, variant, user_id, content_id, resolved)
    return _outcome(variant, content_id, resolved, user_id, STATE_ON, changed, value, clamped)


@procedure("set_interaction")
async def set_interaction(
    session: AsyncSession,
    user_id: str,
    content_type: str,
    content_id: int,
    kind: str,
    on: bool,
) -> dict[str, Any]:
    variant = get_variant(content_type)
    resolved = _toggle_kind(variant, kind)
    await require_active_user(session, user_id)
    if on:
        await _load_target(session, variant, content_id)
        changed, value, clamped = await _switch_on(session, variant, user_id, content_id, resolved)
    else:
        # Turning off is allowed on removed content so users can retract.
        changed, value, clamped = await _switch_off(session, variant, user_id, content_id, resolved)
    state = STATE_ON if on else STATE_OFF
    return _outcome(variant, content_id, resolved, user_id, state, changed, value, clamped)


@procedure("rate_content")
async def rate_content(
    session: AsyncSession, user_id: str, content_type: str, content_id: int, value: int
) -> dict[str, Any]:
    variant = get_variant(content_type)
    variant.counter_for(InteractionKind.RATING)
    await require_active_user(session, user_id)
    await _load_target(session, variant, content_id)

    now = datetime.utcnow()
    created = await insert_ignore(
        session,
        Interaction,
        {
            "user_id": user_id,
            "content_type": variant.content_type,
            "content_id": content_id,
            "kind": InteractionKind.RATING,
            "value": value,
            "created_at": now,
        },
    )
    if not created:
        await session.execute(
            update(Interaction)
            .where(*_key(variant, user_id, content_id, InteractionKind.RATING))
            .values(value=value, updated_at=now)
        )
    average, count = await refresh_rating(session, variant, content_id)
    return {
        "content_type": variant.content_type.value,
        "content_id": content_id,
        "user_id": user_id,
        "value": value,
        "created": bool(created),
        "rating": average,
        "ratings_count": count,
    }


# ── Engine ───────────────────────────────────────────────────────────────────

class InteractionLedger:
    """Records per-user interactions and keeps the counter projection in step.

    Every public method returns the standard ``(success, message, data)``
    tuple; failures carry ``data["error_kind"]``.
    """

    def __init__(self, content_store: ContentStore = default_store):
        self._store = content_store

    async def has_interaction(
        self, user_id: str, content_type: str, content_id: int, kind: str
    ) -> Result:
        """Existence check used to render the toggle state on load."""
        try:
            variant = get_variant(content_type)
            resolved = parse_kind(kind)
            variant.counter_for(resolved)
            async with self._store.reader() as session:
                result = await session.execute(
                    select(Interaction.id, Interaction.value).where(
                        *_key(variant, user_id, content_id, resolved)
                    )
                )
                row = result.one_or_none()
            data = {
                "content_type": variant.content_type.value,
                "content_id": content_id,
                "kind": resolved.value,
                "user_id": user_id,
                "exists": row is not None,
            }
            if resolved == InteractionKind.RATING:
                data["value"] = row.value if row is not None else None
            return ok("Interaction check complete.", data)
        except EngineError as exc:
            return exc.as_result()

    async def toggle(
        self, user_id: str, content_type: str, content_id: int, kind: str
    ) -> Result:
        """Flip the interaction: create the record if absent, else delete it."""
        try:
            data = await self._store.invoke(
                "toggle_interaction",
                user_id=user_id,
                content_type=content_type,
                content_id=content_id,
                kind=kind,
            )
        except EngineError as exc:
            logger.info(
                "Toggle %s on %s %s by %s failed: %s",
                kind, content_type, content_id, user_id, exc.message,
            )
            return exc.as_result()

        logger.info(
            "User %s toggled %s on %s %s -> %s (%s=%d)",
            user_id, data["kind"], data["content_type"], content_id,
            data["state"], data["counter"], data["count"],
        )
        return ok(f"Interaction {data['state']}.", data)

    async def set_state(
        self, user_id: str, content_type: str, content_id: int, kind: str, on: bool
    ) -> Result:
        """Idempotent form of ``toggle``: make the interaction on or off.

        Repeating the call, or racing it against itself, leaves exactly one
        record (or none) and moves the counter at most once.
        """
        try:
            data = await self._store.invoke(
                "set_interaction",
                user_id=user_id,
                content_type=content_type,
                content_id=content_id,
                kind=kind,
                on=bool(on),
            )
        except EngineError as exc:
            return exc.as_result()

        if data["changed"]:
            logger.info(
                "User %s set %s on %s %s -> %s",
                user_id, data["kind"], data["content_type"], content_id, data["state"],
            )
        return ok(
            f"Interaction {data['state']}." if data["changed"]
            else f"Interaction already {data['state']}.",
            data,
        )

    async def rate(
        self, user_id: str, content_type: str, content_id: int, value: int
    ) -> Result:
        """Create or overwrite the user's rating of an item."""
        try:
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError("Rating must be an integer.")
            if not settings.RATING_MIN <= value <= settings.RATING_MAX:
                raise ValidationError(
                    f"Rating must be between {settings.RATING_MIN} and {settings.RATING_MAX}."
                )
            data = await self._store.invoke(
                "rate_content",
                user_id=user_id,
                content_type=content_type,
                content_id=content_id,
                value=value,
            )
        except EngineError as exc:
            return exc.as_result()

        logger.info(
            "User %s rated %s %s: %d (avg %.2f over %d)",
            user_id, data["content_type"], content_id, value,
            data["rating"], data["ratings_count"],
        )
        return ok("Rating saved.", data)

    async def get_rating(self, user_id: str, content_type: str, content_id: int) -> Result:
        return await self.has_interaction(user_id, content_type, content_id, InteractionKind.RATING)

    async def get_user_interactions(
        self,
        user_id: str,
        content_type: str,
        content_ids: Iterable[int],
    ) -> Result:
        """Bulk toggle state for one page of a feed.

        Returns ``{content_id: {"like": bool, ..., "rating": int | None}}``
        for every requested id, covering every kind the variant supports.
        """
        try:
            variant = get_variant(content_type)
            ids = sorted({int(i) for i in content_ids})
            state: dict[int, dict[str, Optional[Any]]] = {}
            for cid in ids:
                entry: dict[str, Optional[Any]] = {}
                for kind in variant.counters:
                    entry[kind.value] = None if kind == InteractionKind.RATING else False
                state[cid] = entry

            if ids:
                async with self._store.reader() as session:
                    result = await session.execute(
                        select(Interaction.content_id, Interaction.kind, Interaction.value).where(
                            Interaction.user_id == user_id,
                            Interaction.content_type == variant.content_type,
                            Interaction.content_id.in_(ids),
                        )
                    )
                    for content_id, kind, value in result.all():
                        if kind == InteractionKind.RATING:
                            state[content_id][kind.value] = value
                        else:
                            state[content_id][kind.value] = True

            return ok(
                f"Retrieved interaction state for {len(ids)} items.",
                {"content_type": variant.content_type.value, "user_id": user_id, "items": state},
            )
        except EngineError as exc:
            return exc.as_result()
