import asyncio

from src.db.store import store
from src.engine.counters import CounterProjection
from src.engine.ledger import InteractionLedger


async def test_decrement_below_zero_is_clamped(make_content, caplog):
    post_id = await make_content("post")

    success, message, data = await CounterProjection().apply_delta(
        "post", post_id, "likes_count", -1
    )

    assert success
    assert data["value"] == 0
    assert data["clamped"] is True
    assert message == "Counter clamped at zero."
    assert "clamped to 0" in caplog.text


async def test_concurrent_increments_are_not_lost(make_content):
    counters = CounterProjection()
    post_id = await make_content("post")

    await asyncio.gather(
        *[counters.apply_delta("post", post_id, "likes_count", 1) for _ in range(8)]
    )

    _, _, data = await counters.get_counters("post", post_id)
    assert data["counters"]["likes_count"] == 8


async def test_unknown_counter_field(make_content):
    post_id = await make_content("post")

    success, _, data = await CounterProjection().apply_delta("post", post_id, "content", 1)

    assert not success
    assert data["error_kind"] == "validation_error"


async def test_reconcile_repairs_drift(make_content, social):
    counters = CounterProjection()
    post_id = await make_content("post")
    await InteractionLedger().toggle("alice", "post", post_id, "like")
    await social.create_comment("bob", "post", post_id, "nice line")
    await store.update("posts", {"id": post_id}, {"likes_count": 7, "comments_count": 0})

    success, _, data = await counters.reconcile("post", post_id)

    assert success
    assert data["counters"]["likes_count"] == 1
    assert data["counters"]["comments_count"] == 1
    assert data["drift"] == {"likes_count": -6, "comments_count": 1}


async def test_reconcile_without_drift(make_content):
    post_id = await make_content("post")

    _, _, data = await CounterProjection().reconcile("post", post_id)

    assert data["drift"] == {}


async def test_views_and_shares(make_content):
    counters = CounterProjection()
    video_id = await make_content("trick_video")
    post_id = await make_content("post")

    success, _, data = await counters.record_view("trick_video", video_id)
    assert success and data["value"] == 1

    success, _, data = await counters.record_share("post", post_id)
    assert success and data["field"] == "shared_count" and data["value"] == 1

    success, _, data = await counters.record_view("post", post_id)
    assert not success and data["error_kind"] == "validation_error"


async def test_counters_include_rating_average(make_content):
    spot_id = await make_content("skate_spot")
    await InteractionLedger().rate("alice", "skate_spot", spot_id, 3)

    _, _, data = await CounterProjection().get_counters("skate_spot", spot_id)

    assert data["counters"]["ratings_count"] == 1
    assert data["counters"]["rating"] == 3.0
    assert data["counters"]["is_active"] is True
