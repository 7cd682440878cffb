from src.engine.ledger import InteractionLedger
from src.engine.optimistic import OptimisticToggle


async def test_success_keeps_tentative_state():
    toggle = OptimisticToggle(active=False, count=4)

    assert toggle.apply() == (True, 5)
    assert toggle.pending

    toggle.settle((True, "Interaction on.", {"state": "on", "count": 5}))
    assert (toggle.active, toggle.count) == (True, 5)
    assert not toggle.pending


async def test_failure_restores_prior_state():
    toggle = OptimisticToggle(active=True, count=1)
    toggle.apply()
    assert (toggle.active, toggle.count) == (False, 0)

    toggle.settle((False, "Content store unavailable.", {"error_kind": "store_error"}))

    assert (toggle.active, toggle.count) == (True, 1)


async def test_count_never_shown_negative():
    toggle = OptimisticToggle(active=True, count=0)

    toggle.apply()

    assert toggle.count == 0


async def test_settling_twice_is_a_noop():
    toggle = OptimisticToggle(active=False, count=0)
    toggle.apply()
    toggle.settle((False, "boom", {"error_kind": "store_error"}))

    toggle.settle((True, "late", {"state": "on", "count": 9}))

    assert (toggle.active, toggle.count) == (False, 0)


async def test_server_count_wins_on_success():
    toggle = OptimisticToggle(active=False, count=2)
    toggle.apply()

    toggle.settle((True, "Interaction on.", {"state": "on", "count": 7}))

    assert toggle.count == 7


async def test_adopt_refetched_counters():
    toggle = OptimisticToggle(counter="interested_count", count=3)

    assert toggle.adopt({"likes_count": 10, "interested_count": 1}) == 1
    assert toggle.adopt({"likes_count": 10}) == 1


async def test_against_the_ledger(make_content):
    post_id = await make_content("post")
    toggle = OptimisticToggle()

    toggle.apply()
    toggle.settle(await InteractionLedger().toggle("alice", "post", post_id, "like"))
    assert (toggle.active, toggle.count) == (True, 1)

    toggle.apply()
    toggle.settle(await InteractionLedger().toggle("alice", "post", 404, "like"))
    assert (toggle.active, toggle.count) == (True, 1)
