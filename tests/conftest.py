import os
import tempfile

# Settings are read at import time, so the database must be chosen first.
_DB_DIR = tempfile.mkdtemp(prefix="rollup-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ.setdefault("ADMIN_SECRET", "test-admin-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import httpx  # noqa: E402
import pytest  # noqa: E402

from src.config.settings import settings  # noqa: E402
from src.db.database import drop_db, engine, init_db  # noqa: E402
from src.engine.access import AccessEngine  # noqa: E402
from src.engine.social import SocialEngine  # noqa: E402


@pytest.fixture(autouse=True)
async def db():
    await drop_db()
    await init_db()
    yield
    await engine.dispose()


@pytest.fixture()
def social():
    return SocialEngine()


@pytest.fixture()
def make_content(social):
    """Create a content item and return its id."""

    async def _make(content_type="post", author_id="author", **fields):
        if not fields:
            fields = {
                "post": {"content": "kickflip at the plaza"},
                "gig": {"title": "Friday gig"},
                "skate_spot": {"name": "Harbour ledges"},
                "trick_video": {"title": "Heelflip line"},
                "forum_topic": {"title": "Best bearings?"},
                "commute_alert": {"title": "Bridge closed"},
            }[content_type]
        success, message, data = await social.create_content(content_type, author_id, fields)
        assert success, message
        return data["id"]

    return _make


@pytest.fixture()
async def moderator():
    success, message, _ = await AccessEngine().grant_role(
        None, "mod", "moderator", admin_secret=settings.ADMIN_SECRET
    )
    assert success, message
    return "mod"


@pytest.fixture()
async def admin():
    success, message, _ = await AccessEngine().grant_role(
        None, "root", "admin", admin_secret=settings.ADMIN_SECRET
    )
    assert success, message
    return "root"


@pytest.fixture()
async def client():
    from main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def user_headers(user_id):
    return {"X-User-Id": user_id}


def admin_headers():
    return {"X-Admin-Secret": settings.ADMIN_SECRET}
