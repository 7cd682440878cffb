from src.config.settings import settings
from src.engine.ledger import InteractionLedger


async def test_comment_increments_and_deactivation_decrements(make_content, social):
    post_id = await make_content("post")

    success, _, comment = await social.create_comment("bob", "post", post_id, "  clean  ")
    assert success
    assert comment["body"] == "clean"
    assert comment["comments_count"] == 1

    success, _, data = await social.get_comments("post", post_id)
    assert [c["id"] for c in data["comments"]] == [comment["id"]]

    success, _, data = await social.deactivate_comment(comment["id"], "mallory")
    assert not success and data["error_kind"] == "authorization_error"

    success, _, data = await social.deactivate_comment(comment["id"], "bob")
    assert success and data["comments_count"] == 0

    success, _, data = await social.deactivate_comment(comment["id"], "bob")
    assert not success and data["error_kind"] == "conflict"

    _, _, data = await social.get_comments("post", post_id)
    assert data["comments"] == []


async def test_moderator_can_remove_any_comment(make_content, social, moderator):
    post_id = await make_content("post")
    _, _, comment = await social.create_comment("bob", "post", post_id, "spam spam")

    success, _, data = await social.deactivate_comment(comment["id"], moderator)

    assert success


async def test_comment_validation(make_content, social):
    post_id = await make_content("post")

    success, _, data = await social.create_comment("bob", "post", post_id, "   ")
    assert not success and data["error_kind"] == "validation_error"

    too_long = "x" * (settings.MAX_COMMENT_LENGTH + 1)
    success, _, data = await social.create_comment("bob", "post", post_id, too_long)
    assert not success and data["error_kind"] == "validation_error"


async def test_no_comments_on_locked_topic(make_content, social):
    topic_id = await make_content("forum_topic", title="Closed thread", is_locked=True)

    success, _, data = await social.create_comment("bob", "forum_topic", topic_id, "hello?")

    assert not success
    assert data["error_kind"] == "conflict"


async def test_counters_cannot_be_set_on_create(social):
    success, _, data = await social.create_content(
        "post", "author", {"content": "hi", "likes_count": 500}
    )
    assert not success and data["error_kind"] == "validation_error"

    success, _, data = await social.create_content("gig", "author", {})
    assert not success and data["error_kind"] == "validation_error"

    success, _, data = await social.create_content("post", "author", {"colour": "red"})
    assert not success and data["error_kind"] == "validation_error"


async def test_delete_content_rules(make_content, social):
    post_id = await make_content("post")

    success, _, data = await social.delete_content("post", post_id, "mallory")
    assert not success and data["error_kind"] == "authorization_error"

    success, _, _ = await social.delete_content("post", post_id, "author")
    assert success

    success, _, data = await social.get_content("post", post_id)
    assert not success and data["error_kind"] == "not_found"

    success, _, data = await social.create_comment("bob", "post", post_id, "late")
    assert not success and data["error_kind"] == "conflict"


async def test_feed_sorts(make_content, social):
    older = await make_content("post", content="first")
    newer = await make_content("post", content="second")
    await InteractionLedger().toggle("alice", "post", older, "like")

    _, _, recent = await social.get_feed("post", sort="recent")
    _, _, popular = await social.get_feed("post", sort="popular")

    assert [i["id"] for i in recent["items"]] == [newer, older]
    assert [i["id"] for i in popular["items"]] == [older, newer]

    success, _, data = await social.get_feed("post", sort="random")
    assert not success and data["error_kind"] == "validation_error"


async def test_unknown_content_type(social):
    success, _, data = await social.get_feed("podcast")

    assert not success
    assert data["error_kind"] == "validation_error"
