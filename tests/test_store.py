import pytest

from src.db.store import ContentStore, procedure, store
from src.engine.errors import ConflictError, NotFoundError, StoreError
from src.models.models import UserRole, UserRoleGrant


@procedure("grant_then_refuse")
async def grant_then_refuse(session, user_id):
    session.add(UserRoleGrant(user_id=user_id, role=UserRole.MODERATOR))
    await session.flush()
    raise ConflictError("Refused after writing.")


async def test_insert_query_update_delete():
    first = await store.insert("user_roles", {"user_id": "kim", "role": UserRole.MODERATOR})
    await store.insert("user_roles", {"user_id": "lee", "role": UserRole.MODERATOR})
    await store.insert("user_roles", {"user_id": "kim", "role": UserRole.ADMIN})

    rows = await store.query("user_roles", {"user_id": "kim"}, order_by=["-id"])
    assert [r["role"] for r in rows] == [UserRole.ADMIN, UserRole.MODERATOR]
    assert rows[-1]["id"] == first

    page = await store.query("user_roles", order_by=["id"], limit=1, offset=1)
    assert [r["user_id"] for r in page] == ["lee"]

    assert await store.update("user_roles", {"id": first}, {"granted_by": "root"}) == 1
    (row,) = await store.query("user_roles", {"id": first})
    assert row["granted_by"] == "root"

    assert await store.delete("user_roles", {"user_id": "kim"}) == 2
    assert await store.delete("user_roles", {"user_id": "kim"}) == 0
    assert [r["user_id"] for r in await store.query("user_roles")] == ["lee"]


async def test_delete_requires_a_filter():
    await store.insert("user_roles", {"user_id": "kim", "role": UserRole.MODERATOR})

    with pytest.raises(StoreError):
        await store.delete("user_roles", {})

    assert len(await store.query("user_roles")) == 1


async def test_unique_violation_is_a_conflict():
    await store.insert("user_roles", {"user_id": "kim", "role": UserRole.MODERATOR})

    with pytest.raises(ConflictError):
        await store.insert("user_roles", {"user_id": "kim", "role": UserRole.MODERATOR})

    assert len(await store.query("user_roles", {"user_id": "kim"})) == 1


async def test_unknown_table_and_column():
    with pytest.raises(NotFoundError):
        await store.query("likes")

    with pytest.raises(StoreError):
        await store.query("user_roles", {"nickname": "kim"})

    with pytest.raises(StoreError):
        await store.query("user_roles", order_by=["-nickname"])


async def test_invoke_runs_a_registered_procedure(make_content):
    post_id = await make_content("post")

    data = await store.invoke(
        "increment_counter", content_type="post", content_id=post_id, field="likes_count", delta=3
    )

    assert data == {"field": "likes_count", "value": 3, "clamped": False}
    (row,) = await store.query("posts", {"id": post_id})
    assert row["likes_count"] == 3


async def test_invoke_rolls_back_when_the_procedure_raises():
    with pytest.raises(ConflictError):
        await ContentStore().invoke("grant_then_refuse", user_id="kim")

    assert await store.query("user_roles", {"user_id": "kim"}) == []


async def test_invoke_unknown_procedure():
    with pytest.raises(NotFoundError):
        await store.invoke("drop_everything")
