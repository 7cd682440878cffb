"""
RollUp community service — Main Application Entry Point
==========================================================
Single command: python main.py
Serves: FastAPI (HTTP) on one port.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from src.config.settings import settings
from src.db.database import init_db
from src.db.store import registered_procedures
from src.api.routes import admin, campaigns, content, interactions, moderation

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("rollup")


# ── Lifespan ────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("=== RollUp starting ===")
    await init_db()
    logger.info("Store procedures: %s", ", ".join(registered_procedures()))
    logger.info("=== RollUp ready on port %s ===", settings.API_PORT)
    yield
    logger.info("=== RollUp shutting down ===")


app = FastAPI(title="RollUp", lifespan=lifespan)

app.include_router(content.router)
app.include_router(interactions.router)
app.include_router(moderation.router)
app.include_router(campaigns.router)
app.include_router(admin.router)


@app.get("/health")
async def health():
    return {"ok": True, "message": "healthy", "data": None}


# ═══════════════════════════════════════════════════════════════════════════
#  Entry Point
# ═══════════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.API_PORT,
        log_level="info",
    )
