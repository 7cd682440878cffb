"""
Shared request dependencies and the result-to-response mapping.

The caller's identity is supplied by the external auth layer in the
``X-User-Id`` header. Engine result tuples become ``{"ok", "message",
"data"}`` bodies; failures carry an HTTP status derived from
``data["error_kind"]``.
"""

import logging
from typing import Optional

from fastapi import Header, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from src.engine.access import admin_secret_matches
from src.engine.errors import Result

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "validation_error": 422,
    "authorization_error": 403,
    "not_found": 404,
    "conflict": 409,
    "consistency_error": 409,
    "store_error": 500,
}


# ── Identity ──────────────────────────────────────────────────────────────────

async def current_user(x_user_id: str = Header(..., alias="X-User-Id")) -> str:
    """The authenticated caller; every mutating route requires one."""
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header is empty.")
    return user_id


async def optional_user(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> Optional[str]:
    return x_user_id.strip() if x_user_id and x_user_id.strip() else None


async def verify_admin(x_admin_secret: str = Header(..., alias="X-Admin-Secret")):
    """Validate the admin secret header on admin-only routes."""
    if not admin_secret_matches(x_admin_secret):
        raise HTTPException(status_code=403, detail="Invalid admin secret.")
    return True


# ── Responses ─────────────────────────────────────────────────────────────────

def respond(result: Result, success_status: int = 200) -> JSONResponse:
    success, message, data = result
    if success:
        status = success_status
    else:
        kind = (data or {}).get("error_kind", "store_error")
        status = ERROR_STATUS.get(kind, 500)
        if status >= 500:
            logger.error("Request failed (%s): %s", kind, message)
    return JSONResponse(
        status_code=status,
        content=jsonable_encoder({"ok": success, "message": message, "data": data}),
    )
