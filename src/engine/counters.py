"""
Counter projection.

The ``*_count`` columns on content rows are a cache of the interaction
ledger and the comment table. Every change is a single atomic
``UPDATE ... SET f = f + :delta`` at the store, never a read-then-write, so
concurrent likes on the same item cannot lose updates. A decrement that
would go below zero is clamped at zero and logged as a data-integrity
warning.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.store import ContentStore, procedure, store as default_store
from src.engine.errors import EngineError, NotFoundError, Result, ValidationError, ok
from src.engine.registry import ContentVariant, get_variant
from src.models.models import Comment, Interaction, InteractionKind

logger = logging.getLogger(__name__)


# ── Session-level primitives (shared with the ledger and comments) ───────────

async def apply_counter_delta(
    session: AsyncSession,
    variant: ContentVariant,
    content_id: int,
    field: str,
    delta: int,
) -> tuple[int, bool]:
    """Atomically add *delta* to *field*; return ``(new_value, clamped)``."""
    if field not in variant.counter_fields:
        raise ValidationError(
            f"'{field}' is not a counter of {variant.content_type.value}."
        )
    model = variant.model
    column = getattr(model, field)
    clamped = False

    if delta >= 0:
        result = await session.execute(
            update(model)
            .where(model.id == content_id)
            .values({field: column + delta})
        )
        if result.rowcount == 0:
            raise NotFoundError(f"{variant.label} {content_id} not found.")
    else:
        result = await session.execute(
            update(model)
            .where(model.id == content_id, column >= -delta)
            .values({field: column + delta})
        )
        if result.rowcount == 0:
            exists = await session.execute(select(model.id).where(model.id == content_id))
            if exists.scalar_one_or_none() is None:
                raise NotFoundError(f"{variant.label} {content_id} not found.")
            await session.execute(
                update(model).where(model.id == content_id).values({field: 0})
            )
            clamped = True
            logger.warning(
                "Counter %s.%s on %s would go negative (delta %d); clamped to 0",
                variant.content_type.value, field, content_id, delta,
            )

    value = await session.execute(select(column).where(model.id == content_id))
    return value.scalar_one(), clamped


async def read_counters(
    session: AsyncSession, variant: ContentVariant, content_id: int
) -> dict[str, Any]:
    model = variant.model
    columns = [getattr(model, name) for name in variant.counter_fields]
    if variant.average_field:
        columns.append(getattr(model, variant.average_field))
    result = await session.execute(
        select(model.is_active, *columns).where(model.id == content_id)
    )
    row = result.one_or_none()
    if row is None:
        raise NotFoundError(f"{variant.label} {content_id} not found.")
    data = dict(row._mapping)
    if variant.average_field:
        data[variant.average_field] = round(float(data[variant.average_field] or 0.0), 2)
    return data


async def refresh_rating(
    session: AsyncSession, variant: ContentVariant, content_id: int
) -> tuple[float, int]:
    """Recompute the average rating and rating count from the ledger."""
    result = await session.execute(
        select(func.avg(Interaction.value), func.count(Interaction.id)).where(
            Interaction.content_type == variant.content_type,
            Interaction.content_id == content_id,
            Interaction.kind == InteractionKind.RATING,
        )
    )
    average, count = result.one()
    average = round(float(average or 0.0), 2)
    await session.execute(
        update(variant.model)
        .where(variant.model.id == content_id)
        .values({
            variant.average_field: average,
            variant.counter_for(InteractionKind.RATING): count,
        })
    )
    return average, count


@procedure("increment_counter")
async def increment_counter(
    session: AsyncSession, content_type: str, content_id: int, field: str, delta: int
) -> dict[str, Any]:
    variant = get_variant(content_type)
    value, clamped = await apply_counter_delta(session, variant, content_id, field, delta)
    return {"field": field, "value": value, "clamped": clamped}


# ── Engine ────────────────────────────────────────────────────────────────────

class CounterProjection:
    """Reads, adjusts and reconciles the denormalized engagement counters."""

    def __init__(self, content_store: ContentStore = default_store):
        self._store = content_store

    async def apply_delta(
        self, content_type: str, content_id: int, field: str, delta: int
    ) -> Result:
        """Add *delta* to one counter of one content item."""
        try:
            if not isinstance(delta, int) or isinstance(delta, bool):
                raise ValidationError("delta must be an integer.")
            data = await self._store.invoke(
                "increment_counter",
                content_type=content_type,
                content_id=content_id,
                field=field,
                delta=delta,
            )
            data.update({"content_type": get_variant(content_type).content_type.value,
                         "content_id": content_id})
            msg = "Counter updated."
            if data["clamped"]:
                msg = "Counter clamped at zero."
            return ok(msg, data)
        except EngineError as exc:
            return exc.as_result()

    async def get_counters(self, content_type: str, content_id: int) -> Result:
        """Authoritative refetch of an item's counters."""
        try:
            variant = get_variant(content_type)
            async with self._store.reader() as session:
                counters = await read_counters(session, variant, content_id)
            return ok(
                "Counters retrieved.",
                {
                    "content_type": variant.content_type.value,
                    "content_id": content_id,
                    "counters": counters,
                },
            )
        except EngineError as exc:
            return exc.as_result()

    async def reconcile(self, content_type: str, content_id: int) -> Result:
        """Rewrite every counter of an item from the ledger and comments.

        Returns the corrected values together with the drift that was
        repaired, keyed by counter name.
        """
        try:
            variant = get_variant(content_type)
            model = variant.model
            async with self._store.transaction() as session:
                before = await read_counters(session, variant, content_id)

                truth: dict[str, int] = {}
                for kind, field in variant.counters.items():
                    result = await session.execute(
                        select(func.count(Interaction.id)).where(
                            Interaction.content_type == variant.content_type,
                            Interaction.content_id == content_id,
                            Interaction.kind == kind,
                        )
                    )
                    truth[field] = result.scalar_one()

                result = await session.execute(
                    select(func.count(Comment.id)).where(
                        Comment.content_type == variant.content_type,
                        Comment.content_id == content_id,
                        Comment.is_active.is_(True),
                    )
                )
                truth[variant.comments_field] = result.scalar_one()

                await session.execute(
                    update(model).where(model.id == content_id).values(truth)
                )
                if variant.average_field:
                    await refresh_rating(session, variant, content_id)

                after = await read_counters(session, variant, content_id)

            drift = {
                name: after[name] - before[name]
                for name in truth
                if after[name] != before[name]
            }
            if drift:
                logger.warning(
                    "Reconciled %s %s counters, drift=%s",
                    variant.content_type.value, content_id, drift,
                )
            return ok(
                "Counters reconciled.",
                {
                    "content_type": variant.content_type.value,
                    "content_id": content_id,
                    "counters": after,
                    "drift": drift,
                },
            )
        except EngineError as exc:
            return exc.as_result()

    async def record_view(self, content_type: str, content_id: int) -> Result:
        try:
            variant = get_variant(content_type)
            if not variant.views_field:
                raise ValidationError(f"{variant.label} does not track views.")
            return await self.apply_delta(content_type, content_id, variant.views_field, 1)
        except EngineError as exc:
            return exc.as_result()

    async def record_share(self, content_type: str, content_id: int) -> Result:
        try:
            variant = get_variant(content_type)
            if not variant.shares_field:
                raise ValidationError(f"{variant.label} does not track shares.")
            return await self.apply_delta(content_type, content_id, variant.shares_field, 1)
        except EngineError as exc:
            return exc.as_result()
