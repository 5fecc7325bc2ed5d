import asyncio
import time
from datetime import datetime

import pytest
import pytz

from driver_portal.schemas.punch import PunchType
from driver_portal.schemas.return_form import ReturnForm
from driver_portal.schemas.user import UserRole
from driver_portal.stores.local_cache import LocalCacheStore
from driver_portal.stores.remote import PUNCH_RECORDS, RETURN_FORMS, USERS
from driver_portal.sync.gateway import (
    FALLBACK_USERS_KEY, PUNCH_RECORDS_KEY, RETURN_FORMS_KEY, SyncGateway, profile_key,
)
from driver_portal.sync.results import Ok, Source, WriteFailed

SHIFT_START = datetime(2024, 1, 5, 8, 0, 0, tzinfo=pytz.UTC)
SHIFT_END = datetime(2024, 1, 5, 16, 30, 0, tzinfo=pytz.UTC)


def make_form(order_no="ORD-1", driver_id="d1", created_at=SHIFT_START):
    return ReturnForm(
        driver_id=driver_id,
        driver_email="driver@example.com",
        order_no=order_no,
        customer_name="Jane",
        organization="Acme",
        reason="damaged",
        date=created_at,
        created_at=created_at,
    )


def test_profile_update_goes_remote_when_reachable(gateway, remote_store, local_store):
    result = asyncio.run(gateway.update_user_profile("u1", {"email": "a@example.com", "pin": "1234"}))

    assert isinstance(result, Ok)
    assert result.source == Source.REMOTE
    assert remote_store.docs(USERS)["u1"]["pin"] == "1234"
    assert local_store.get(profile_key("u1")) is None


def test_punch_in_offline_lands_locally(gateway, remote_store, local_store):
    local_store.set(profile_key("d1"), {
        "email": "driver@example.com", "role": "driver", "pin": "1234",
        "lastPunchIn": "2024-01-04T08:00:00+00:00", "lastPunchOut": "2024-01-04T16:00:00+00:00",
    })
    remote_store.available = False

    result = asyncio.run(gateway.record_punch("d1", "driver@example.com", PunchType.PUNCH_IN, at=SHIFT_START))

    assert isinstance(result, Ok)
    assert result.source == Source.LOCAL
    profile = gateway.get_local_profile("d1")
    assert profile.last_punch_in == SHIFT_START
    assert profile.last_punch_out is None
    assert profile.currently_working
    assert profile.pin == "1234"

    records = local_store.get(PUNCH_RECORDS_KEY)
    assert len(records) == 1
    assert records[0]["type"] == "punch-in"
    assert records[0]["driverId"] == "d1"
    assert remote_store.docs(PUNCH_RECORDS) == {}


def test_punch_out_keeps_punch_in_on_remote(gateway, remote_store, local_store):
    remote_store.docs(USERS)["d1"] = {
        "email": "driver@example.com", "role": "driver", "pin": "1234",
        "lastPunchIn": SHIFT_START.isoformat(), "lastPunchOut": None,
    }

    result = asyncio.run(gateway.record_punch("d1", "driver@example.com", PunchType.PUNCH_OUT, at=SHIFT_END))

    assert isinstance(result, Ok)
    assert result.source == Source.REMOTE
    stored = remote_store.docs(USERS)["d1"]
    assert stored["lastPunchIn"] == SHIFT_START.isoformat()
    assert stored["lastPunchOut"] == SHIFT_END.isoformat()
    assert [r["type"] for r in remote_store.docs(PUNCH_RECORDS).values()] == ["punch-out"]
    assert local_store.get(PUNCH_RECORDS_KEY) is None


def test_hanging_remote_falls_back_within_timeout(gateway, remote_store, local_store):
    remote_store.hang = True

    started = time.monotonic()
    result = asyncio.run(gateway.submit_return_form(make_form()))
    elapsed = time.monotonic() - started

    assert isinstance(result, Ok)
    assert result.source == Source.LOCAL
    assert elapsed < 1.0
    assert local_store.get(RETURN_FORMS_KEY)[0]["orderNo"] == "ORD-1"


def test_both_stores_failing_reports_write_failed(tmp_path, remote_store):
    full_cache = LocalCacheStore(str(tmp_path / "cache.json"), quota_bytes=10)
    gateway = SyncGateway(remote_store, full_cache, remote_timeout=0.1, probe_timeout=0.1)
    remote_store.available = False

    result = asyncio.run(gateway.submit_return_form(make_form()))

    assert isinstance(result, WriteFailed)
    assert not result.ok
    assert "quota" in result.reason


def test_submitted_form_is_listed_from_the_same_store(gateway, remote_store):
    remote_store.available = False

    async def scenario():
        await gateway.submit_return_form(make_form("ORD-7"))
        return await gateway.fetch_return_forms(driver_id="d1")

    forms = asyncio.run(scenario())

    assert [f.order_no for f in forms] == ["ORD-7"]
    assert forms[0].id


def test_submitted_form_gets_created_at(gateway, remote_store):
    form = make_form(created_at=None)

    result = asyncio.run(gateway.submit_return_form(form))

    assert result.value.created_at is not None
    assert list(remote_store.docs(RETURN_FORMS).values())[0]["createdAt"]


def test_probe_reports_reachability(gateway, remote_store):
    assert asyncio.run(gateway.probe_remote()) is True

    remote_store.available = False
    assert asyncio.run(gateway.probe_remote()) is False


def test_probe_gives_up_on_a_silent_remote(gateway, remote_store):
    remote_store.hang = True

    started = time.monotonic()
    reachable = asyncio.run(gateway.probe_remote())

    assert reachable is False
    assert time.monotonic() - started < 1.0


def test_offline_list_delivers_local_data_once(gateway, remote_store, local_store):
    local_store.append_to_list(RETURN_FORMS_KEY, dict(make_form("ORD-1").to_document(), id="f1"))
    local_store.append_to_list(RETURN_FORMS_KEY, dict(make_form("ORD-2", driver_id="d2").to_document(), id="f2"))
    remote_store.available = False
    deliveries = []

    async def scenario():
        feed = await gateway.list_return_forms(deliveries.append, driver_id="d1")
        await asyncio.sleep(0.05)
        return feed

    feed = asyncio.run(scenario())

    assert feed.source == Source.LOCAL
    assert not feed.live
    assert len(deliveries) == 1
    assert [f.id for f in deliveries[0]] == ["f1"]
    feed.unsubscribe()


def test_live_list_stops_after_unsubscribe(gateway, remote_store):
    deliveries = []

    async def scenario():
        feed = await gateway.list_return_forms(deliveries.append)
        await asyncio.sleep(0.05)
        await remote_store.add(RETURN_FORMS, make_form("ORD-1").to_document())
        await asyncio.sleep(0.05)

        feed.unsubscribe()
        count = len(deliveries)
        await remote_store.add(RETURN_FORMS, make_form("ORD-2").to_document())
        await asyncio.sleep(0.05)
        return feed, count

    feed, count_at_unsubscribe = asyncio.run(scenario())

    assert feed.source == Source.REMOTE
    assert not feed.live
    assert deliveries[0] == []
    assert [f.order_no for f in deliveries[-1]] == ["ORD-1"]
    assert len(deliveries) == count_at_unsubscribe


def test_local_drivers_deduplicate_by_email(gateway, local_store):
    local_store.set(profile_key("u1"), {"email": "a@example.com", "role": "driver", "pin": "1111",
                                        "createdAt": "2024-01-02T00:00:00Z"})
    local_store.set(profile_key("admin1"), {"email": "boss@example.com", "role": "admin"})
    local_store.set(FALLBACK_USERS_KEY, [
        {"email": "a@example.com", "role": "driver", "createdAt": "2024-01-01T00:00:00Z"},
        {"email": "b@example.com", "role": "driver", "createdAt": "2024-01-03T00:00:00Z"},
        {"email": "c@example.com", "role": "admin"},
    ])

    drivers = gateway.local_drivers()

    assert sorted(d.email for d in drivers) == ["a@example.com", "b@example.com"]
    fallback = [d for d in drivers if d.email == "b@example.com"][0]
    assert fallback.id == "fallback_b@example.com"
    assert fallback.is_active
    assert not fallback.currently_working
    assert [d for d in drivers if d.email == "a@example.com"][0].id == "u1"


def test_malformed_local_documents_are_skipped(gateway, local_store):
    local_store.set(RETURN_FORMS_KEY, [
        {"id": "broken", "orderNo": "X"},
        dict(make_form("ORD-1").to_document(), id="ok"),
        "not a document",
    ])

    assert [f.id for f in gateway.local_return_forms()] == ["ok"]


def test_profile_read_falls_back_to_local(gateway, remote_store, local_store):
    local_store.set(profile_key("u1"), {"email": "a@example.com", "role": "admin"})

    assert asyncio.run(gateway.get_user_profile("u1")).role == UserRole.ADMIN.value

    remote_store.available = False
    assert asyncio.run(gateway.get_user_profile("u1")).email == "a@example.com"
    assert asyncio.run(gateway.get_user_profile("nobody")) is None


def test_register_driver_writes_default_profile(gateway, remote_store):
    result = asyncio.run(gateway.register_user("u9", "new@example.com", UserRole.DRIVER, at=SHIFT_START))

    assert result.source == Source.REMOTE
    assert remote_store.docs(USERS)["u9"] == {
        "email": "new@example.com", "role": "driver", "createdAt": SHIFT_START.isoformat(),
        "pin": None, "isActive": True,
    }


@pytest.mark.parametrize("available", [True, False])
def test_return_form_round_trip(gateway, remote_store, available):
    remote_store.available = available
    form = make_form()

    async def scenario():
        written = await gateway.submit_return_form(form)
        return written, await gateway.fetch_return_forms()

    written, [read] = asyncio.run(scenario())

    assert read.id == written.value.id
    assert read.model_dump(exclude={"id", "created_at"}) == form.model_dump(exclude={"id", "created_at"})


def test_write_committing_past_timeout_counts_as_remote(gateway, remote_store, local_store):
    remote_store.commit_delay = 0.3

    result = asyncio.run(gateway.submit_return_form(make_form()))

    assert result.source == Source.REMOTE
    assert len(remote_store.docs(RETURN_FORMS)) == 1
    assert local_store.get(RETURN_FORMS_KEY) is None


def test_profile_update_without_base_needs_no_read_back(gateway, remote_store, local_store):
    remote_store.docs(USERS)["u1"] = {"email": "a@example.com", "role": "driver", "pin": "1234"}
    remote_store.fail_gets = True

    result = asyncio.run(gateway.update_user_profile("u1", {"pin": "5678"}))

    assert result.source == Source.REMOTE
    assert result.value.email == "a@example.com"
    assert result.value.pin == "5678"
    assert remote_store.docs(USERS)["u1"]["pin"] == "5678"
    assert local_store.get(profile_key("u1")) is None


def test_punch_record_falls_back_on_its_own(gateway, remote_store, local_store):
    remote_store.docs(USERS)["d1"] = {"email": "driver@example.com", "role": "driver", "pin": "1234"}
    remote_store.fail_adds = True

    result = asyncio.run(gateway.record_punch("d1", "driver@example.com", PunchType.PUNCH_IN, at=SHIFT_START))

    assert result.source == Source.LOCAL
    assert remote_store.docs(USERS)["d1"]["lastPunchIn"] == SHIFT_START.isoformat()
    assert remote_store.docs(PUNCH_RECORDS) == {}
    assert [r["type"] for r in local_store.get(PUNCH_RECORDS_KEY)] == ["punch-in"]
    assert local_store.get(profile_key("d1")) is None


def test_punch_can_create_missing_profile(gateway, remote_store):
    result = asyncio.run(gateway.record_punch("d1", "driver@example.com", PunchType.PUNCH_OUT,
                                              at=SHIFT_END, create_profile=True))

    assert result.source == Source.REMOTE
    assert remote_store.docs(USERS)["d1"] == {
        "email": "driver@example.com", "role": "driver", "isActive": True, "createdAt": SHIFT_END.isoformat(),
        "lastPunchOut": SHIFT_END.isoformat(), "updatedAt": SHIFT_END.isoformat(),
    }


def test_repeated_reachability_checks_stay_bounded(gateway, remote_store):
    remote_store.hang = True

    async def scenario():
        timings = []
        for _ in range(5):
            started = time.monotonic()
            reachable = await gateway.probe_remote()
            timings.append((reachable, time.monotonic() - started))
        return timings

    timings = asyncio.run(scenario())

    assert [reachable for reachable, _ in timings] == [False] * 5
    assert all(elapsed < 0.5 for _, elapsed in timings)


def test_live_list_survives_a_failing_consumer(gateway, remote_store):
    deliveries = []

    def on_update(forms):
        deliveries.append(forms)
        if len(deliveries) == 2:
            raise RuntimeError("consumer failed")

    async def scenario():
        feed = await gateway.list_return_forms(on_update)
        await asyncio.sleep(0.05)
        await remote_store.add(RETURN_FORMS, make_form("ORD-1").to_document())
        await asyncio.sleep(0.05)
        await remote_store.add(RETURN_FORMS, make_form("ORD-2").to_document())
        await asyncio.sleep(0.05)

        live = feed.live
        feed.unsubscribe()
        return live

    live = asyncio.run(scenario())

    assert live
    assert len(deliveries) == 3
    assert sorted(f.order_no for f in deliveries[-1]) == ["ORD-1", "ORD-2"]
