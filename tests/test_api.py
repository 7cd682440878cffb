from src.config.settings import settings

ALICE = {"X-User-Id": "alice"}
AUTHOR = {"X-User-Id": "author"}
MOD = {"X-User-Id": "mod"}
ADMIN = {"X-Admin-Secret": settings.ADMIN_SECRET}


async def _post(client, headers=AUTHOR, content="drop-in at the bowl"):
    r = await client.post("/content/post", json={"fields": {"content": content}}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()["data"]["id"]


async def _make_moderator(client):
    r = await client.post(
        "/moderation/roles", json={"user_id": "mod", "role": "moderator"}, headers=ADMIN
    )
    assert r.status_code == 200, r.text


async def test_like_toggle_round_trip(client):
    post_id = await _post(client)

    r = await client.post(f"/interactions/post/{post_id}/like/toggle", headers=ALICE)
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["data"]["state"] == "on"

    r = await client.get(f"/interactions/post/{post_id}/counters")
    assert r.json()["data"]["counters"]["likes_count"] == 1

    r = await client.get(f"/interactions/post/{post_id}/like", headers=ALICE)
    assert r.json()["data"]["exists"] is True

    r = await client.put(f"/interactions/post/{post_id}/like", json={"on": False}, headers=ALICE)
    assert r.json()["data"]["state"] == "off"

    r = await client.get("/interactions/post/state", params={"ids": [post_id]}, headers=ALICE)
    assert r.json()["data"]["items"][str(post_id)] == {"like": False}


async def test_identity_header_is_required(client):
    post_id = await _post(client)

    r = await client.post(f"/interactions/post/{post_id}/like/toggle")

    assert r.status_code == 422


async def test_error_kinds_map_to_status(client):
    r = await client.post("/interactions/post/999/like/toggle", headers=ALICE)
    assert r.status_code == 404
    assert r.json()["data"]["error_kind"] == "not_found"

    r = await client.get("/content/podcast")
    assert r.status_code == 422

    post_id = await _post(client)
    r = await client.get(f"/interactions/post/{post_id}/interested", headers=ALICE)
    assert r.status_code == 422
    assert r.json()["data"]["error_kind"] == "validation_error"

    r = await client.get("/moderation/queue", headers=ALICE)
    assert r.status_code == 403


async def test_comments_endpoints(client):
    post_id = await _post(client)

    r = await client.post(
        f"/content/post/{post_id}/comments", json={"body": "sick line"}, headers=ALICE
    )
    assert r.status_code == 201
    comment_id = r.json()["data"]["id"]

    r = await client.get(f"/content/post/{post_id}/comments")
    assert len(r.json()["data"]["comments"]) == 1

    r = await client.delete(f"/content/comments/{comment_id}", headers=ALICE)
    assert r.status_code == 200
    assert r.json()["data"]["comments_count"] == 0


async def test_report_and_resolve_flow(client):
    await _make_moderator(client)
    post_id = await _post(client)

    r = await client.post(
        "/moderation/reports",
        json={"reason": "spam", "content_type": "post", "content_id": post_id},
        headers=ALICE,
    )
    assert r.status_code == 201
    report_id = r.json()["data"]["id"]

    r = await client.get("/moderation/queue", headers=MOD)
    assert [rep["id"] for rep in r.json()["data"]["reports"]] == [report_id]

    r = await client.post(
        f"/moderation/reports/{report_id}/resolve",
        json={"resolution": "user_warned", "notes": "no ads"},
        headers=MOD,
    )
    assert r.status_code == 200
    warning_id = r.json()["data"]["warning"]["id"]

    r = await client.post(
        f"/moderation/reports/{report_id}/resolve", json={"resolution": "no_action"}, headers=MOD
    )
    assert r.status_code == 409

    r = await client.post(f"/moderation/warnings/{warning_id}/acknowledge", headers=AUTHOR)
    assert r.status_code == 200
    assert r.json()["data"]["is_acknowledged"] is True

    r = await client.get("/moderation/stats", headers=MOD)
    assert r.json()["data"]["pending_reports"] == 0


async def test_campaign_spend_over_http(client):
    r = await client.post(
        "/campaigns",
        json={"campaign_name": "Launch", "budget_total": "4.00", "target_pages": ["groovist"]},
        headers=ALICE,
    )
    assert r.status_code == 201
    campaign_id = r.json()["data"]["id"]

    r = await client.post(f"/campaigns/{campaign_id}/spend", json={"amount": "3.00"}, headers=ALICE)
    assert r.status_code == 422

    r = await client.post(f"/campaigns/{campaign_id}/spend", json={"amount": "3.00"}, headers=ADMIN)
    assert r.status_code == 200

    r = await client.post(f"/campaigns/{campaign_id}/spend", json={"amount": "1.50"}, headers=ADMIN)
    assert r.status_code == 409
    assert r.json()["data"]["error_kind"] == "consistency_error"

    r = await client.post(f"/campaigns/{campaign_id}/toggle", headers=ALICE)
    assert r.json()["data"]["status"] == "paused"


async def test_admin_analytics(client):
    post_id = await _post(client)
    await client.post(f"/interactions/post/{post_id}/like/toggle", headers=ALICE)

    r = await client.get("/admin/analytics/summary")
    assert r.status_code == 422

    r = await client.get("/admin/analytics/summary", headers=ADMIN)
    assert r.status_code == 200
    engagement = r.json()["data"]["engagement"]
    assert engagement["content"]["post"]["likes_count"] == 1
    assert engagement["ledger_records"] == {"like": 1}

    r = await client.get("/admin/analytics/top/post", headers=ADMIN)
    assert r.json()["data"]["items"][0]["id"] == post_id

    r = await client.get("/admin/procedures", headers=ADMIN)
    assert "record_campaign_spend" in r.json()["data"]["procedures"]


async def test_wrong_admin_secret_is_refused(client):
    wrong = {"X-Admin-Secret": "not-" + settings.ADMIN_SECRET}

    r = await client.get("/admin/analytics/summary", headers=wrong)
    assert r.status_code == 403

    r = await client.post(
        "/moderation/roles", json={"user_id": "mod", "role": "moderator"}, headers=wrong
    )
    assert r.status_code == 403
    assert r.json()["data"]["error_kind"] == "authorization_error"


async def test_admin_revokes_role_over_http(client):
    r = await client.post(
        "/moderation/roles", json={"user_id": "root", "role": "admin"}, headers=ADMIN
    )
    assert r.status_code == 200
    await _make_moderator(client)

    r = await client.delete("/moderation/roles/mod/moderator", headers=MOD)
    assert r.status_code == 403

    r = await client.delete("/moderation/roles/mod/moderator", headers={"X-User-Id": "root"})
    assert r.status_code == 200
    assert r.json()["data"]["revoked"] is True

    r = await client.get("/moderation/roles/mod")
    assert r.json()["data"]["roles"] == ["user"]
    r = await client.get("/moderation/queue", headers=MOD)
    assert r.status_code == 403
