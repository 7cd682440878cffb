import asyncio

from src.db.store import store
from src.engine.counters import CounterProjection
from src.engine.ledger import InteractionLedger
from src.models.models import ContentType, InteractionKind, SanctionType


async def _ledger_rows(content_type, content_id, kind="like", user_id=None):
    filters = {
        "content_type": ContentType(content_type),
        "content_id": content_id,
        "kind": InteractionKind(kind),
    }
    if user_id:
        filters["user_id"] = user_id
    return await store.query("interactions", filters)


async def test_toggle_twice_returns_to_off(make_content):
    ledger = InteractionLedger()
    post_id = await make_content("post")

    success, _, data = await ledger.toggle("alice", "post", post_id, "like")
    assert success
    assert data["state"] == "on"
    assert data["count"] == 1

    success, _, data = await ledger.toggle("alice", "post", post_id, "like")
    assert success
    assert data["state"] == "off"
    assert data["count"] == 0

    assert await _ledger_rows("post", post_id, user_id="alice") == []
    _, _, check = await ledger.has_interaction("alice", "post", post_id, "like")
    assert check["exists"] is False


async def test_concurrent_set_on_keeps_one_record(make_content):
    ledger = InteractionLedger()
    post_id = await make_content("post")

    results = await asyncio.gather(
        *[ledger.set_state("alice", "post", post_id, "like", True) for _ in range(5)]
    )

    assert all(success for success, _, _ in results)
    assert sum(1 for _, _, data in results if data["changed"]) == 1
    assert len(await _ledger_rows("post", post_id)) == 1

    _, _, counters = await CounterProjection().get_counters("post", post_id)
    assert counters["counters"]["likes_count"] == 1


async def test_two_users_like_concurrently(make_content):
    ledger = InteractionLedger()
    post_id = await make_content("post")

    (ok_a, _, _), (ok_b, _, _) = await asyncio.gather(
        ledger.toggle("alice", "post", post_id, "like"),
        ledger.toggle("bob", "post", post_id, "like"),
    )

    assert ok_a and ok_b
    rows = await _ledger_rows("post", post_id)
    assert sorted(r["user_id"] for r in rows) == ["alice", "bob"]
    _, _, counters = await CounterProjection().get_counters("post", post_id)
    assert counters["counters"]["likes_count"] == 2


async def test_set_state_off_without_record_is_noop(make_content):
    ledger = InteractionLedger()
    post_id = await make_content("post")

    success, message, data = await ledger.set_state("alice", "post", post_id, "like", False)

    assert success
    assert data["changed"] is False
    assert data["count"] == 0
    assert message == "Interaction already off."


async def test_interested_moves_its_own_counter(make_content):
    ledger = InteractionLedger()
    gig_id = await make_content("gig")

    success, _, data = await ledger.toggle("alice", "gig", gig_id, "interested")

    assert success
    assert data["counter"] == "interested_count"
    _, _, counters = await CounterProjection().get_counters("gig", gig_id)
    assert counters["counters"]["interested_count"] == 1
    assert counters["counters"]["likes_count"] == 0


async def test_unsupported_kind_is_validation_error(make_content):
    post_id = await make_content("post")

    success, _, data = await InteractionLedger().toggle("alice", "post", post_id, "interested")

    assert not success
    assert data["error_kind"] == "validation_error"


async def test_existence_check_rejects_unsupported_kind(make_content):
    ledger = InteractionLedger()
    post_id = await make_content("post")

    success, _, data = await ledger.has_interaction("u", "post", post_id, "interested")
    assert not success
    assert data["error_kind"] == "validation_error"

    success, _, data = await ledger.get_rating("u", "post", post_id)
    assert not success
    assert data["error_kind"] == "validation_error"


async def test_toggle_missing_content_is_not_found():
    success, _, data = await InteractionLedger().toggle("alice", "post", 999, "like")

    assert not success
    assert data["error_kind"] == "not_found"


async def test_toggle_on_removed_content_is_conflict(make_content, social):
    post_id = await make_content("post")
    await social.delete_content("post", post_id, "author")

    success, _, data = await InteractionLedger().toggle("alice", "post", post_id, "like")

    assert not success
    assert data["error_kind"] == "conflict"
    assert await _ledger_rows("post", post_id) == []


async def test_rating_is_an_upsert(make_content):
    ledger = InteractionLedger()
    spot_id = await make_content("skate_spot")

    success, _, data = await ledger.rate("alice", "skate_spot", spot_id, 4)
    assert success and data["created"] is True

    success, _, data = await ledger.rate("alice", "skate_spot", spot_id, 2)
    assert success and data["created"] is False
    assert data["ratings_count"] == 1
    assert data["rating"] == 2.0

    success, _, data = await ledger.rate("bob", "skate_spot", spot_id, 5)
    assert data["ratings_count"] == 2
    assert data["rating"] == 3.5

    _, _, mine = await ledger.get_rating("alice", "skate_spot", spot_id)
    assert mine["value"] == 2
    assert len(await _ledger_rows("skate_spot", spot_id, kind="rating")) == 2


async def test_rating_out_of_range(make_content):
    spot_id = await make_content("skate_spot")

    success, _, data = await InteractionLedger().rate("alice", "skate_spot", spot_id, 6)

    assert not success
    assert data["error_kind"] == "validation_error"


async def test_rating_unrated_variant(make_content):
    post_id = await make_content("post")

    success, _, data = await InteractionLedger().rate("alice", "post", post_id, 3)

    assert not success
    assert data["error_kind"] == "validation_error"


async def test_bulk_state_for_feed_page(make_content):
    ledger = InteractionLedger()
    first = await make_content("gig")
    second = await make_content("gig")
    await ledger.toggle("alice", "gig", first, "like")
    await ledger.toggle("alice", "gig", second, "interested")

    success, _, data = await ledger.get_user_interactions("alice", "gig", [first, second])

    assert success
    assert data["items"][first] == {"like": True, "interested": False}
    assert data["items"][second] == {"like": False, "interested": True}


async def test_sanctioned_user_cannot_interact(make_content):
    post_id = await make_content("post")
    await store.insert(
        "user_sanctions",
        {"user_id": "troll", "moderator_id": "mod", "sanction_type": SanctionType.BAN},
    )

    success, _, data = await InteractionLedger().toggle("troll", "post", post_id, "like")

    assert not success
    assert data["error_kind"] == "authorization_error"
