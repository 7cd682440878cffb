import asyncio
from datetime import date, datetime, timedelta
from decimal import Decimal

from src.db.store import store
from src.engine.campaigns import CampaignEngine


async def _campaign(engine, owner="brand", total="10.00", daily=None, **kw):
    success, message, data = await engine.create_campaign(
        owner,
        "Summer session",
        total,
        target_pages=kw.pop("target_pages", ["dashboard", "stance"]),
        budget_daily=daily,
        **kw,
    )
    assert success, message
    return data


async def test_create_starts_active_with_nothing_spent():
    data = await _campaign(CampaignEngine())

    assert data["status"] == "active"
    assert data["spent_amount"] == "0.00"
    assert data["budget_total"] == "10.00"
    assert data["target_pages"] == ["dashboard", "stance"]


async def test_create_validation():
    engine = CampaignEngine()
    cases = [
        dict(budget_total="0"),
        dict(budget_total="10", budget_daily="20"),
        dict(budget_total="10", target_pages=["myspace"]),
        dict(budget_total="ten"),
        dict(budget_total="10.005"),
        dict(budget_total="10", campaign_type="billboard"),
        dict(
            budget_total="10",
            start_date=datetime(2026, 5, 2),
            end_date=datetime(2026, 5, 1),
        ),
    ]
    for kwargs in cases:
        success, _, data = await engine.create_campaign("brand", "x", **kwargs)
        assert not success, kwargs
        assert data["error_kind"] == "validation_error"

    success, _, data = await engine.create_campaign("brand", "  ", "10")
    assert not success and data["error_kind"] == "validation_error"


async def test_toggle_flips_between_active_and_paused():
    engine = CampaignEngine()
    campaign = await _campaign(engine)

    success, message, data = await engine.toggle_status("brand", campaign["id"])
    assert success and data["status"] == "paused" and message == "Campaign paused."

    success, _, data = await engine.record_spend(campaign["id"], "1.00")
    assert not success and data["error_kind"] == "conflict"

    success, _, data = await engine.toggle_status("brand", campaign["id"])
    assert success and data["status"] == "active"

    success, _, data = await engine.toggle_status("rival", campaign["id"])
    assert not success and data["error_kind"] == "authorization_error"


async def test_completed_campaign_cannot_be_toggled():
    engine = CampaignEngine()
    campaign = await _campaign(engine, total="2.50")

    success, _, data = await engine.record_spend(campaign["id"], "2.50")
    assert success and data["status"] == "completed"

    success, _, data = await engine.toggle_status("brand", campaign["id"])
    assert not success and data["error_kind"] == "conflict"


async def test_overspend_is_rejected_and_changes_nothing():
    engine = CampaignEngine()
    campaign = await _campaign(engine, total="5.00")
    await engine.record_spend(campaign["id"], "4.50")

    success, _, data = await engine.record_spend(campaign["id"], "0.75")

    assert not success
    assert data["error_kind"] == "consistency_error"
    _, _, fresh = await engine.get_campaign("brand", campaign["id"])
    assert fresh["spent_amount"] == "4.50"
    assert fresh["status"] == "active"
    assert len(await store.query("spend_events", {"campaign_id": campaign["id"]})) == 1


async def test_concurrent_spend_never_exceeds_budget():
    engine = CampaignEngine()
    campaign = await _campaign(engine, total="10.00")

    results = await asyncio.gather(
        *[engine.record_spend(campaign["id"], "1.00") for _ in range(14)]
    )

    accepted = [r for r in results if r[0]]
    rejected = [r for r in results if not r[0]]
    assert len(accepted) == 10
    assert {data["error_kind"] for _, _, data in rejected} <= {"consistency_error", "conflict"}

    _, _, fresh = await engine.get_campaign("brand", campaign["id"])
    assert Decimal(fresh["spent_amount"]) <= Decimal(fresh["budget_total"])
    assert fresh["spent_amount"] == "10.00"
    assert fresh["status"] == "completed"


async def test_daily_budget_is_enforced_per_day():
    engine = CampaignEngine()
    today = date(2026, 6, 1)
    campaign = await _campaign(
        engine, total="100.00", daily="5.00", start_date=datetime(2026, 6, 1, 9, 30)
    )
    tomorrow = today + timedelta(days=1)

    assert (await engine.record_spend(campaign["id"], "3.00", today))[0]

    success, _, data = await engine.record_spend(campaign["id"], "2.50", today)
    assert not success and data["error_kind"] == "consistency_error"

    assert (await engine.record_spend(campaign["id"], "2.00", today))[0]
    success, _, data = await engine.record_spend(campaign["id"], "4.00", tomorrow)
    assert success
    assert data["spent_amount"] == "9.00"

    rows = await store.query(
        "campaign_daily_spend", {"campaign_id": campaign["id"]}, order_by=["spend_date"]
    )
    assert [r["amount_cents"] for r in rows] == [500, 400]


async def test_campaigns_are_private_to_owner():
    engine = CampaignEngine()
    campaign = await _campaign(engine)
    await _campaign(engine, owner="other")

    success, _, data = await engine.get_campaign("other", campaign["id"])
    assert not success and data["error_kind"] == "authorization_error"

    _, _, mine = await engine.list_campaigns("brand")
    assert [c["id"] for c in mine["campaigns"]] == [campaign["id"]]


async def test_promote_post_and_spend(make_content):
    engine = CampaignEngine()
    post_id = await make_content("post", author_id="brand")
    foreign = await make_content("post", author_id="someone")

    success, _, data = await engine.promote_post("brand", foreign, "5.00")
    assert not success and data["error_kind"] == "authorization_error"

    success, _, data = await engine.promote_post("brand", post_id, "5.00", boost_level=9)
    assert not success and data["error_kind"] == "validation_error"

    success, _, promotion = await engine.promote_post(
        "brand", post_id, "5.00", promotion_type="spotlight", target_pages=["roll-up"], boost_level=3
    )
    assert success and promotion["status"] == "active"

    _, _, listed = await engine.list_promoted_posts("brand")
    assert listed["promotions"][0]["post_content"] == "kickflip at the plaza"

    success, _, data = await engine.toggle_promotion_status("brand", promotion["id"])
    assert success and data["status"] == "paused"
    await engine.toggle_promotion_status("brand", promotion["id"])

    success, _, data = await engine.record_promotion_spend(promotion["id"], "5.50")
    assert not success and data["error_kind"] == "consistency_error"

    success, _, data = await engine.record_promotion_spend(promotion["id"], "5.00")
    assert success and data["status"] == "completed"


async def test_cent_amounts_reach_the_budget_exactly():
    engine = CampaignEngine()
    campaign = await _campaign(engine, total="0.30")

    assert (await engine.record_spend(campaign["id"], "0.10"))[0]
    success, message, data = await engine.record_spend(campaign["id"], "0.20")

    assert success, message
    assert data["spent_amount"] == "0.30"
    assert data["remaining"] == "0.00"
    assert data["status"] == "completed"


async def test_ten_dimes_complete_a_one_dollar_campaign():
    engine = CampaignEngine()
    campaign = await _campaign(engine, total="1.00", daily="0.50")
    today = datetime.utcnow().date()

    results = [await engine.record_spend(campaign["id"], "0.10", today) for _ in range(5)]
    assert all(r[0] for r in results)
    success, _, data = await engine.record_spend(campaign["id"], "0.10", today)
    assert not success and data["error_kind"] == "consistency_error"

    tomorrow = today + timedelta(days=1)
    for _ in range(5):
        success, _, data = await engine.record_spend(campaign["id"], "0.10", tomorrow)
        assert success

    assert data["spent_amount"] == "1.00"
    assert data["status"] == "completed"


async def test_spend_outside_the_campaign_dates_is_a_conflict():
    engine = CampaignEngine()
    campaign = await _campaign(
        engine,
        start_date=datetime(2026, 7, 1),
        end_date=datetime(2026, 7, 31, 23, 59),
    )

    for day in (date(2026, 6, 30), date(2026, 8, 1)):
        success, _, data = await engine.record_spend(campaign["id"], "1.00", day)
        assert not success and data["error_kind"] == "conflict"

    success, _, data = await engine.record_spend(campaign["id"], "1.00", date(2026, 7, 31))
    assert success and data["spent_amount"] == "1.00"


async def test_promotion_spend_respects_its_end_date(make_content):
    engine = CampaignEngine()
    post_id = await make_content("post", author_id="brand")
    _, _, promotion = await engine.promote_post(
        "brand",
        post_id,
        "0.30",
        start_date=datetime(2026, 7, 1),
        end_date=datetime(2026, 7, 2),
    )

    success, _, data = await engine.record_promotion_spend(promotion["id"], "0.10", date(2026, 7, 3))
    assert not success and data["error_kind"] == "conflict"

    await engine.record_promotion_spend(promotion["id"], "0.10", date(2026, 7, 1))
    success, _, data = await engine.record_promotion_spend(promotion["id"], "0.20", date(2026, 7, 2))
    assert success and data["status"] == "completed"
