"""
Capability checks.

Moderation and role management call these at the point of invocation,
before any write, so an unprivileged caller is refused with
``AuthorizationError`` no matter which surface issued the call.
"""

from __future__ import annotations

import hmac
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.settings import settings
from src.db.store import ContentStore, insert_ignore, store as default_store
from src.engine.errors import AuthorizationError, EngineError, Result, ValidationError, ok
from src.models.models import SanctionType, UserRole, UserRoleGrant, UserSanction

logger = logging.getLogger(__name__)

MODERATION_ROLES = (UserRole.ADMIN, UserRole.MODERATOR)


def admin_secret_matches(secret: Optional[str]) -> bool:
    """Constant-time comparison against the configured admin secret."""
    if not secret or not settings.ADMIN_SECRET:
        return False
    return hmac.compare_digest(secret.encode(), settings.ADMIN_SECRET.encode())


async def get_roles(session: AsyncSession, user_id: str) -> set[UserRole]:
    result = await session.execute(
        select(UserRoleGrant.role).where(UserRoleGrant.user_id == user_id)
    )
    return set(result.scalars().all())


async def has_role(session: AsyncSession, user_id: Optional[str], *roles: UserRole) -> bool:
    if not user_id:
        return False
    result = await session.execute(
        select(UserRoleGrant.id)
        .where(UserRoleGrant.user_id == user_id, UserRoleGrant.role.in_(roles))
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def require_moderator(session: AsyncSession, user_id: Optional[str]) -> None:
    if not await has_role(session, user_id, *MODERATION_ROLES):
        logger.warning("Moderation capability denied for user %s", user_id)
        raise AuthorizationError("Moderator or admin capability required.")


async def active_sanction(session: AsyncSession, user_id: str) -> Optional[UserSanction]:
    """Return the user's ban, or an unexpired suspension, if any."""
    now = datetime.utcnow()
    result = await session.execute(
        select(UserSanction)
        .where(
            UserSanction.user_id == user_id,
            or_(
                UserSanction.sanction_type == SanctionType.BAN,
                UserSanction.expires_at.is_(None),
                UserSanction.expires_at > now,
            ),
        )
        .order_by(UserSanction.created_at.desc())
        .limit(1)
    )
    return result.scalars().first()


async def require_active_user(session: AsyncSession, user_id: Optional[str]) -> None:
    """Refuse anonymous callers and users who are banned or suspended."""
    if not user_id:
        raise AuthorizationError("An authenticated user is required.")
    sanction = await active_sanction(session, user_id)
    if sanction is not None:
        raise AuthorizationError(
            f"User {user_id} is under a {sanction.sanction_type.value}."
        )


class AccessEngine:
    """Role management on top of the ``user_roles`` table."""

    def __init__(self, content_store: ContentStore = default_store):
        self._store = content_store

    async def get_roles(self, user_id: str) -> Result:
        try:
            async with self._store.reader() as session:
                roles = await get_roles(session, user_id)
                sanction = await active_sanction(session, user_id)
            return ok(
                "Roles retrieved.",
                {
                    "user_id": user_id,
                    "roles": sorted(r.value for r in roles) or [UserRole.USER.value],
                    "sanction": sanction.sanction_type.value if sanction else None,
                },
            )
        except EngineError as exc:
            return exc.as_result()

    async def grant_role(
        self,
        granter_id: Optional[str],
        user_id: str,
        role: str,
        admin_secret: Optional[str] = None,
    ) -> Result:
        """Grant *role* to *user_id*.

        The granter must be an admin, or present the bootstrap admin secret
        (used once to create the first admin).
        """
        try:
            try:
                resolved = UserRole(role)
            except ValueError:
                raise ValidationError(
                    f"Invalid role '{role}'. Valid roles: {[r.value for r in UserRole]}"
                ) from None
            if not user_id:
                raise ValidationError("user_id is required.")

            bootstrap = admin_secret_matches(admin_secret)

            async with self._store.transaction() as session:
                if not bootstrap and not await has_role(session, granter_id, UserRole.ADMIN):
                    raise AuthorizationError("Only admins may grant roles.")
                created = await insert_ignore(
                    session,
                    UserRoleGrant,
                    {
                        "user_id": user_id,
                        "role": resolved,
                        "granted_by": granter_id,
                        "created_at": datetime.utcnow(),
                    },
                )

            logger.info(
                "Role %s granted to %s by %s (new=%s)",
                resolved.value, user_id, granter_id or "bootstrap", bool(created),
            )
            return ok(
                "Role granted." if created else "Role already held.",
                {"user_id": user_id, "role": resolved.value},
            )
        except EngineError as exc:
            return exc.as_result()

    async def revoke_role(self, granter_id: str, user_id: str, role: str) -> Result:
        try:
            try:
                resolved = UserRole(role)
            except ValueError:
                raise ValidationError(f"Invalid role '{role}'.") from None

            async with self._store.transaction() as session:
                if not await has_role(session, granter_id, UserRole.ADMIN):
                    raise AuthorizationError("Only admins may revoke roles.")
                result = await session.execute(
                    select(UserRoleGrant).where(
                        UserRoleGrant.user_id == user_id,
                        UserRoleGrant.role == resolved,
                    )
                )
                grant = result.scalar_one_or_none()
                if grant is not None:
                    await session.delete(grant)

            logger.info(
                "Role %s revoked from %s by %s (held=%s)",
                resolved.value, user_id, granter_id, grant is not None,
            )
            return ok(
                "Role revoked." if grant is not None else "Role not held.",
                {"user_id": user_id, "role": resolved.value, "revoked": grant is not None},
            )
        except EngineError as exc:
            return exc.as_result()
