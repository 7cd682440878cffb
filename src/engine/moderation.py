"""
Moderation case manager.

Reports move from ``pending`` to ``resolved`` exactly once. Resolution runs
as one store procedure that closes the report, writes its audit
``ModerationAction`` and applies the resolution's side effect (content
removal, warning, suspension or ban) in the same transaction, so no reader
can observe a closed report without its action or the reverse.

Only moderators and admins may read the queue, resolve reports, record
actions or issue warnings; the check runs inside each operation.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.settings import settings
from src.db.store import ContentStore, procedure, store as default_store
from src.engine.access import require_active_user, require_moderator
from src.engine.errors import (
    AuthorizationError,
    ConflictError,
    EngineError,
    NotFoundError,
    Result,
    ValidationError,
    ok,
)
from src.engine.registry import get_variant, parse_content_type
from src.models.models import (
    ModerationAction,
    ModerationActionType,
    ModerationReport,
    ReportPriority,
    ReportReason,
    ReportStatus,
    SanctionType,
    UserSanction,
    UserWarning,
    WarningSeverity,
    WarningType,
)

logger = logging.getLogger(__name__)

# Queue order: lower rank first.
_PRIORITY_RANK = {
    ReportPriority.URGENT: 0,
    ReportPriority.HIGH: 1,
    ReportPriority.MEDIUM: 2,
    ReportPriority.LOW: 3,
}

_SEVERITY_FOR_PRIORITY = {
    ReportPriority.LOW: WarningSeverity.LOW,
    ReportPriority.MEDIUM: WarningSeverity.MEDIUM,
    ReportPriority.HIGH: WarningSeverity.HIGH,
    ReportPriority.URGENT: WarningSeverity.HIGH,
}

_WARNING_FOR_REASON = {
    ReportReason.SPAM: WarningType.SPAM,
    ReportReason.HARASSMENT: WarningType.HARASSMENT,
    ReportReason.HATE_SPEECH: WarningType.HARASSMENT,
}

_USER_ACTIONS = (
    ModerationActionType.USER_WARNED,
    ModerationActionType.USER_SUSPENDED,
    ModerationActionType.USER_BANNED,
)


def _parse(enum_cls, value, label: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(
            f"Invalid {label} '{value}'. Valid values: {[e.value for e in enum_cls]}"
        ) from None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_report(r: ModerationReport) -> dict[str, Any]:
    return {
        "id": r.id,
        "reporter_id": r.reporter_id,
        "reported_user_id": r.reported_user_id,
        "content_type": r.content_type.value if r.content_type else None,
        "content_id": r.content_id,
        "reason": r.reason.value,
        "description": r.description,
        "priority": r.priority.value,
        "status": r.status.value,
        "resolution": r.resolution.value if r.resolution else None,
        "resolution_notes": r.resolution_notes,
        "resolved_by": r.resolved_by,
        "resolved_at": _iso(r.resolved_at),
        "created_at": _iso(r.created_at),
    }


def serialize_action(a: ModerationAction) -> dict[str, Any]:
    return {
        "id": a.id,
        "moderator_id": a.moderator_id,
        "report_id": a.report_id,
        "target_user_id": a.target_user_id,
        "content_type": a.content_type.value if a.content_type else None,
        "content_id": a.content_id,
        "action_type": a.action_type.value,
        "reason": a.reason,
        "created_at": _iso(a.created_at),
    }


def serialize_warning(w: UserWarning) -> dict[str, Any]:
    return {
        "id": w.id,
        "user_id": w.user_id,
        "moderator_id": w.moderator_id,
        "report_id": w.report_id,
        "warning_type": w.warning_type.value,
        "severity": w.severity.value,
        "message": w.message,
        "is_acknowledged": w.is_acknowledged,
        "acknowledged_at": _iso(w.acknowledged_at),
        "created_at": _iso(w.created_at),
    }


# ── Side effects shared by resolutions and direct actions ────────────────────

async def _apply_action(
    session: AsyncSession,
    moderator_id: str,
    action_type: ModerationActionType,
    target_user_id: Optional[str],
    content_type,
    content_id: Optional[int],
    reason: Optional[str],
    report: Optional[ModerationReport] = None,
) -> dict[str, Any]:
    """Write the audit action plus the side effect its type implies."""
    if action_type == ModerationActionType.CONTENT_REMOVED:
        if content_type is None or content_id is None:
            raise ValidationError("content_removed needs a content target.")
        variant = get_variant(content_type)
        await session.execute(
            update(variant.model)
            .where(variant.model.id == content_id)
            .values(is_active=False)
        )
    elif action_type in _USER_ACTIONS and not target_user_id:
        raise ValidationError(f"{action_type.value} needs a target user.")

    warning = None
    sanction = None
    if action_type == ModerationActionType.USER_WARNED:
        reason_kind = report.reason if report is not None else None
        warning = UserWarning(
            user_id=target_user_id,
            moderator_id=moderator_id,
            report_id=report.id if report is not None else None,
            warning_type=_WARNING_FOR_REASON.get(reason_kind, WarningType.CONTENT_VIOLATION),
            severity=_SEVERITY_FOR_PRIORITY[report.priority] if report is not None
            else WarningSeverity.MEDIUM,
            message=reason or "Your activity was reviewed by a moderator.",
            created_at=datetime.utcnow(),
        )
        session.add(warning)
    elif action_type in (ModerationActionType.USER_SUSPENDED, ModerationActionType.USER_BANNED):
        banned = action_type == ModerationActionType.USER_BANNED
        sanction = UserSanction(
            user_id=target_user_id,
            moderator_id=moderator_id,
            report_id=report.id if report is not None else None,
            sanction_type=SanctionType.BAN if banned else SanctionType.SUSPENSION,
            reason=reason,
            expires_at=None if banned
            else datetime.utcnow() + timedelta(days=settings.SUSPENSION_DAYS),
            created_at=datetime.utcnow(),
        )
        session.add(sanction)

    action = ModerationAction(
        moderator_id=moderator_id,
        report_id=report.id if report is not None else None,
        target_user_id=target_user_id,
        content_type=parse_content_type(content_type) if content_type is not None else None,
        content_id=content_id,
        action_type=action_type,
        reason=reason,
        created_at=datetime.utcnow(),
    )
    session.add(action)
    await session.flush()

    return {
        "action": serialize_action(action),
        "warning": serialize_warning(warning) if warning is not None else None,
        "sanction_id": sanction.id if sanction is not None else None,
    }


# ── Procedures ───────────────────────────────────────────────────────────────

@procedure("resolve_moderation_report")
async def resolve_moderation_report(
    session: AsyncSession,
    report_id: int,
    moderator_id: str,
    resolution: str,
    notes: Optional[str] = None,
) -> dict[str, Any]:
    await require_moderator(session, moderator_id)
    action_type = _parse(ModerationActionType, resolution, "resolution")

    report = await session.get(ModerationReport, report_id)
    if report is None:
        raise NotFoundError(f"Report {report_id} not found.")
    if report.status != ReportStatus.PENDING:
        raise ConflictError(f"Report {report_id} is already resolved.")

    now = datetime.utcnow()
    # Guarded on status so two concurrent resolutions cannot both win.
    closed = await session.execute(
        update(ModerationReport)
        .where(
            ModerationReport.id == report_id,
            ModerationReport.status == ReportStatus.PENDING,
        )
        .values(
            status=ReportStatus.RESOLVED,
            resolution=action_type,
            resolution_notes=notes,
            resolved_by=moderator_id,
            resolved_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if closed.rowcount == 0:
        raise ConflictError(f"Report {report_id} is already resolved.")

    effects = await _apply_action(
        session,
        moderator_id,
        action_type,
        report.reported_user_id,
        report.content_type,
        report.content_id,
        notes or action_type.value,
        report=report,
    )
    await session.refresh(report)
    effects["report"] = serialize_report(report)
    return effects


@procedure("record_moderation_action")
async def record_moderation_action(
    session: AsyncSession,
    moderator_id: str,
    action_type: str,
    target_user_id: Optional[str] = None,
    content_type: Optional[str] = None,
    content_id: Optional[int] = None,
    reason: Optional[str] = None,
) -> dict[str, Any]:
    await require_moderator(session, moderator_id)
    resolved = _parse(ModerationActionType, action_type, "action type")
    if content_type is not None and content_id is not None:
        variant = get_variant(content_type)
        item = await session.get(variant.model, content_id)
        if item is None:
            raise NotFoundError(f"{variant.label} {content_id} not found.")
        target_user_id = target_user_id or item.author_id
    elif not target_user_id:
        raise ValidationError("A target user or content item is required.")
    return await _apply_action(
        session, moderator_id, resolved, target_user_id, content_type, content_id, reason
    )


@procedure("create_user_warning")
async def create_user_warning(
    session: AsyncSession,
    target_user_id: str,
    moderator_id: str,
    warning_type: str,
    message: str,
    severity: str,
) -> dict[str, Any]:
    await require_moderator(session, moderator_id)
    warning = UserWarning(
        user_id=target_user_id,
        moderator_id=moderator_id,
        warning_type=_parse(WarningType, warning_type, "warning type"),
        severity=_parse(WarningSeverity, severity, "severity"),
        message=message.strip(),
        created_at=datetime.utcnow(),
    )
    session.add(warning)
    await session.flush()
    return serialize_warning(warning)


# ── Engine ───────────────────────────────────────────────────────────────────

class ModerationEngine:
    """Report queue, resolutions, audit actions and user warnings."""

    def __init__(self, content_store: ContentStore = default_store):
        self._store = content_store

    # ══════════════════════════════════════════════════════════════════
    #  Reports
    # ══════════════════════════════════════════════════════════════════

    async def submit_report(
        self,
        reporter_id: str,
        reason: str,
        content_type: Optional[str] = None,
        content_id: Optional[int] = None,
        reported_user_id: Optional[str] = None,
        description: Optional[str] = None,
        priority: str = "medium",
    ) -> Result:
        """File a report against a content item, a user, or both.

        When only content is given, the reported user is the content's
        author. A reporter may hold one pending report per target.
        """
        try:
            if not reason or not str(reason).strip():
                raise ValidationError("Report reason is required.")
            resolved_reason = _parse(ReportReason, reason, "reason")
            resolved_priority = _parse(ReportPriority, priority, "priority")
            if description and len(description) > settings.MAX_REPORT_DESCRIPTION_LENGTH:
                raise ValidationError(
                    f"Description exceeds {settings.MAX_REPORT_DESCRIPTION_LENGTH} characters."
                )
            if (content_type is None) != (content_id is None):
                raise ValidationError("content_type and content_id go together.")
            if content_type is None and not reported_user_id:
                raise ValidationError("A report needs a content item or a user.")

            async with self._store.transaction() as session:
                await require_active_user(session, reporter_id)

                resolved_type = None
                if content_type is not None:
                    variant = get_variant(content_type)
                    resolved_type = variant.content_type
                    item = await session.get(variant.model, content_id)
                    if item is None:
                        raise NotFoundError(f"{variant.label} {content_id} not found.")
                    reported_user_id = reported_user_id or item.author_id

                if reported_user_id == reporter_id:
                    raise ValidationError("Users cannot report themselves.")

                duplicate = await session.execute(
                    select(ModerationReport.id).where(
                        ModerationReport.reporter_id == reporter_id,
                        ModerationReport.status == ReportStatus.PENDING,
                        ModerationReport.content_type == resolved_type
                        if resolved_type is not None
                        else ModerationReport.content_type.is_(None),
                        ModerationReport.content_id == content_id
                        if content_id is not None
                        else ModerationReport.content_id.is_(None),
                        ModerationReport.reported_user_id == reported_user_id,
                    ).limit(1)
                )
                if duplicate.scalar_one_or_none() is not None:
                    raise ConflictError("You already have a pending report for this target.")

                report = ModerationReport(
                    reporter_id=reporter_id,
                    reported_user_id=reported_user_id,
                    content_type=resolved_type,
                    content_id=content_id,
                    reason=resolved_reason,
                    description=description.strip() if description else None,
                    priority=resolved_priority,
                    status=ReportStatus.PENDING,
                    created_at=datetime.utcnow(),
                )
                session.add(report)
                await session.flush()
                data = serialize_report(report)

            logger.info(
                "Report %s filed by %s (%s, priority=%s)",
                data["id"], reporter_id, resolved_reason.value, resolved_priority.value,
            )
            return ok("Report submitted.", data)
        except EngineError as exc:
            return exc.as_result()

    # ──────────────────────────────────────────────────────────────────

    async def get_queue(self, moderator_id: str, limit: Optional[int] = None) -> Result:
        """Pending reports, most urgent first, then newest first."""
        try:
            limit = min(limit or settings.MODERATION_QUEUE_LIMIT, settings.MODERATION_QUEUE_LIMIT)
            rank = case(
                *[(ModerationReport.priority == p, r) for p, r in _PRIORITY_RANK.items()],
                else_=len(_PRIORITY_RANK),
            )
            async with self._store.reader() as session:
                await require_moderator(session, moderator_id)
                result = await session.execute(
                    select(ModerationReport)
                    .where(ModerationReport.status == ReportStatus.PENDING)
                    .order_by(rank, ModerationReport.created_at.desc(), ModerationReport.id.desc())
                    .limit(limit)
                )
                reports = [serialize_report(r) for r in result.scalars().all()]
            return ok(f"{len(reports)} pending reports.", {"reports": reports})
        except EngineError as exc:
            return exc.as_result()

    # ──────────────────────────────────────────────────────────────────

    async def get_report(self, viewer_id: str, report_id: int) -> Result:
        """A report is visible to its reporter and to moderators."""
        try:
            async with self._store.reader() as session:
                report = await session.get(ModerationReport, report_id)
                if report is None:
                    raise NotFoundError(f"Report {report_id} not found.")
                if report.reporter_id != viewer_id:
                    await require_moderator(session, viewer_id)
                data = serialize_report(report)
            return ok("Report retrieved.", data)
        except EngineError as exc:
            return exc.as_result()

    # ──────────────────────────────────────────────────────────────────

    async def resolve_report(
        self,
        moderator_id: str,
        report_id: int,
        resolution: str,
        notes: Optional[str] = None,
    ) -> Result:
        """Close a pending report with one of the resolution actions.

        Write-once: a second resolution is rejected as a conflict and the
        first resolution's audit action stays as it was.
        """
        try:
            _parse(ModerationActionType, resolution, "resolution")
            data = await self._store.invoke(
                "resolve_moderation_report",
                report_id=report_id,
                moderator_id=moderator_id,
                resolution=resolution,
                notes=notes.strip() if notes else None,
            )
        except EngineError as exc:
            logger.info("Resolution of report %s failed: %s", report_id, exc.message)
            return exc.as_result()

        logger.info(
            "Report %s resolved by %s: %s", report_id, moderator_id, data["action"]["action_type"]
        )
        return ok("Report resolved.", data)

    # ══════════════════════════════════════════════════════════════════
    #  Actions
    # ══════════════════════════════════════════════════════════════════

    async def record_action(
        self,
        moderator_id: str,
        action_type: str,
        target_user_id: Optional[str] = None,
        content_type: Optional[str] = None,
        content_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> Result:
        """Take a moderation action without a report."""
        try:
            _parse(ModerationActionType, action_type, "action type")
            data = await self._store.invoke(
                "record_moderation_action",
                moderator_id=moderator_id,
                action_type=action_type,
                target_user_id=target_user_id,
                content_type=content_type,
                content_id=content_id,
                reason=reason,
            )
        except EngineError as exc:
            return exc.as_result()

        logger.info(
            "Moderator %s recorded %s against user=%s content=%s/%s",
            moderator_id, action_type, data["action"]["target_user_id"], content_type, content_id,
        )
        return ok("Action recorded.", data)

    async def get_actions(
        self,
        moderator_id: str,
        target_user_id: Optional[str] = None,
        limit: int = 20,
    ) -> Result:
        """Most recent audit actions, optionally for one user."""
        try:
            limit = max(1, min(limit, settings.MODERATION_QUEUE_LIMIT))
            async with self._store.reader() as session:
                await require_moderator(session, moderator_id)
                query = select(ModerationAction)
                if target_user_id:
                    query = query.where(ModerationAction.target_user_id == target_user_id)
                result = await session.execute(
                    query.order_by(ModerationAction.created_at.desc(), ModerationAction.id.desc())
                    .limit(limit)
                )
                actions = [serialize_action(a) for a in result.scalars().all()]
            return ok(f"Retrieved {len(actions)} actions.", {"actions": actions})
        except EngineError as exc:
            return exc.as_result()

    # ══════════════════════════════════════════════════════════════════
    #  Warnings
    # ══════════════════════════════════════════════════════════════════

    async def create_warning(
        self,
        moderator_id: str,
        target_user_id: str,
        warning_type: str,
        severity: str,
        message: str,
    ) -> Result:
        """Issue a standalone warning; no report is required."""
        try:
            if not target_user_id:
                raise ValidationError("Target user is required.")
            if not message or not message.strip():
                raise ValidationError("Warning message is required.")
            if len(message) > settings.MAX_WARNING_MESSAGE_LENGTH:
                raise ValidationError(
                    f"Warning message exceeds {settings.MAX_WARNING_MESSAGE_LENGTH} characters."
                )
            _parse(WarningType, warning_type, "warning type")
            _parse(WarningSeverity, severity, "severity")
            data = await self._store.invoke(
                "create_user_warning",
                target_user_id=target_user_id,
                moderator_id=moderator_id,
                warning_type=warning_type,
                message=message,
                severity=severity,
            )
        except EngineError as exc:
            return exc.as_result()

        logger.info(
            "Warning %s (%s/%s) issued to %s by %s",
            data["id"], data["warning_type"], data["severity"], target_user_id, moderator_id,
        )
        return ok("Warning created.", data)

    async def list_warnings(
        self,
        moderator_id: str,
        acknowledged: Optional[bool] = None,
        target_user_id: Optional[str] = None,
        limit: int = 20,
    ) -> Result:
        try:
            limit = max(1, min(limit, settings.MODERATION_QUEUE_LIMIT))
            async with self._store.reader() as session:
                await require_moderator(session, moderator_id)
                query = select(UserWarning)
                if acknowledged is not None:
                    query = query.where(UserWarning.is_acknowledged.is_(acknowledged))
                if target_user_id:
                    query = query.where(UserWarning.user_id == target_user_id)
                result = await session.execute(
                    query.order_by(UserWarning.created_at.desc(), UserWarning.id.desc()).limit(limit)
                )
                warnings = [serialize_warning(w) for w in result.scalars().all()]
            return ok(f"Retrieved {len(warnings)} warnings.", {"warnings": warnings})
        except EngineError as exc:
            return exc.as_result()

    async def get_my_warnings(self, user_id: str) -> Result:
        """Warnings addressed to *user_id*, newest first."""
        try:
            async with self._store.reader() as session:
                result = await session.execute(
                    select(UserWarning)
                    .where(UserWarning.user_id == user_id)
                    .order_by(UserWarning.created_at.desc(), UserWarning.id.desc())
                )
                warnings = [serialize_warning(w) for w in result.scalars().all()]
            return ok(f"Retrieved {len(warnings)} warnings.", {"warnings": warnings})
        except EngineError as exc:
            return exc.as_result()

    async def acknowledge_warning(self, user_id: str, warning_id: int) -> Result:
        """The warned user acknowledges; the flag never flips back."""
        try:
            async with self._store.transaction() as session:
                warning = await session.get(UserWarning, warning_id)
                if warning is None:
                    raise NotFoundError(f"Warning {warning_id} not found.")
                if warning.user_id != user_id:
                    raise AuthorizationError("Only the warned user may acknowledge it.")
                changed = False
                if not warning.is_acknowledged:
                    warning.is_acknowledged = True
                    warning.acknowledged_at = datetime.utcnow()
                    changed = True
                data = serialize_warning(warning)

            if changed:
                logger.info("Warning %s acknowledged by %s", warning_id, user_id)
            return ok(
                "Warning acknowledged." if changed else "Warning already acknowledged.",
                data,
            )
        except EngineError as exc:
            return exc.as_result()

    # ══════════════════════════════════════════════════════════════════
    #  Dashboard
    # ══════════════════════════════════════════════════════════════════

    async def get_stats(self, moderator_id: str) -> Result:
        try:
            async with self._store.reader() as session:
                await require_moderator(session, moderator_id)
                pending = await session.execute(
                    select(func.count(ModerationReport.id)).where(
                        ModerationReport.status == ReportStatus.PENDING
                    )
                )
                actions = await session.execute(select(func.count(ModerationAction.id)))
                unacknowledged = await session.execute(
                    select(func.count(UserWarning.id)).where(
                        UserWarning.is_acknowledged.is_(False)
                    )
                )
                by_priority = await session.execute(
                    select(ModerationReport.priority, func.count(ModerationReport.id))
                    .where(ModerationReport.status == ReportStatus.PENDING)
                    .group_by(ModerationReport.priority)
                )
                data = {
                    "pending_reports": pending.scalar_one(),
                    "actions_taken": actions.scalar_one(),
                    "unacknowledged_warnings": unacknowledged.scalar_one(),
                    "pending_by_priority": {p.value: n for p, n in by_priority.all()},
                }
            return ok("Moderation stats.", data)
        except EngineError as exc:
            return exc.as_result()
