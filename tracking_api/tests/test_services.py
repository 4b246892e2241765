import pytest

from tracking_api.errors import ErrorKind, Forbidden, NotFound
from tracking_api.schemas import BeaconReading, EntityKind, Location

from .helpers import UNKNOWN_USER_ID, UNTRACKED_USER_ID, USER_ID


class TestTrackedUsers:
    async def test_put_unknown_user_is_forbidden(self, user_service, store):
        with pytest.raises(Forbidden) as exc:
            await user_service.put_tracked_user(UNKNOWN_USER_ID, Location(x=0, y=1, z=2))
        assert exc.value.kind is ErrorKind.forbidden
        assert await store.count(EntityKind.user) == 0

    async def test_put_creates_then_updates_in_place(self, user_service, store):
        before = await store.count(EntityKind.user)
        created = await user_service.put_tracked_user(USER_ID, Location(x=0, y=1, z=2))
        assert await store.count(EntityKind.user) == before + 1
        assert created.location == Location(x=0, y=1, z=2)
        assert created.historical_data == []

        updated = await user_service.put_tracked_user(USER_ID, Location(x=0, y=2, z=3))
        assert await store.count(EntityKind.user) == before + 1
        assert updated.location.y == 2
        assert len(updated.historical_data) == 1
        assert updated.historical_data[0].location == Location(x=0, y=1, z=2)
        assert updated.date >= created.date

    async def test_get_unknown_user_is_not_found(self, user_service):
        with pytest.raises(NotFound):
            await user_service.get_tracked_user(UNKNOWN_USER_ID)

    async def test_get_known_but_untracked_user_is_forbidden(self, user_service):
        with pytest.raises(Forbidden):
            await user_service.get_tracked_user(UNTRACKED_USER_ID)

    async def test_get_tracked_user_returns_current_state(self, user_service):
        await user_service.put_tracked_user(USER_ID, Location(x=0, y=2, z=3))
        record = await user_service.get_tracked_user(USER_ID)
        assert record.user_id == USER_ID
        assert record.location == Location(x=0, y=2, z=3)
        assert record.date is not None

    async def test_list_without_tracked_users_is_not_found(self, user_service):
        with pytest.raises(NotFound):
            await user_service.list_tracked_users()

    async def test_list_returns_one_record_per_identity(self, user_service):
        await user_service.put_tracked_user(USER_ID, Location(x=0, y=2, z=3))
        await user_service.put_tracked_user(USER_ID, Location(x=0, y=2, z=4))
        await user_service.put_tracked_user(UNTRACKED_USER_ID, Location(x=1, y=1, z=1))
        records = await user_service.list_tracked_users()
        assert sorted(r.user_id for r in records) == sorted([USER_ID, UNTRACKED_USER_ID])

    async def test_put_emits_user_update(self, user_service, notifier):
        await user_service.put_tracked_user(USER_ID, Location(x=0, y=1, z=2))
        assert notifier.pending == 1


class TestProximity:
    async def test_locates_user_between_active_beacons(self, user_service):
        readings = [
            BeaconReading(id_beacon="AA:01", rssi=-50.0),
            BeaconReading(id_beacon="AA:02", rssi=-60.0),
        ]
        record = await user_service.put_tracked_user_from_readings(USER_ID, readings)
        assert 0.0 < record.location.x < 5.0
        assert record.location.y == 0.0

    async def test_inactive_and_unknown_beacons_are_not_found(self, user_service, store):
        readings = [BeaconReading(id_beacon="ZZ:99", rssi=-40.0)]
        with pytest.raises(NotFound):
            await user_service.put_tracked_user_from_readings(USER_ID, readings)
        assert await store.count(EntityKind.user) == 0

    async def test_unknown_user_is_forbidden(self, user_service):
        readings = [BeaconReading(id_beacon="AA:01", rssi=-50.0)]
        with pytest.raises(Forbidden):
            await user_service.put_tracked_user_from_readings(UNKNOWN_USER_ID, readings)


class TestTrackedItems:
    async def test_put_by_unknown_user_is_forbidden(self, item_service):
        with pytest.raises(Forbidden):
            await item_service.put_tracked_item(
                UNKNOWN_USER_ID, "12345678", "TestItem", "itemDescription", Location(x=0, y=1, z=2)
            )

    async def test_put_creates_then_updates_in_place(self, item_service, store):
        await item_service.put_tracked_item(
            USER_ID, "12345678", "TestItem", "itemDescription", Location(x=0, y=1, z=2)
        )
        count = await store.count(EntityKind.item)
        assert count == 1

        item = await item_service.put_tracked_item(
            USER_ID, "12345678", "TestItemNewName", "itemDescriptionNew", Location(x=0, y=1, z=3)
        )
        assert await store.count(EntityKind.item) == count
        assert item.name == "TestItemNewName"
        assert item.description == "itemDescriptionNew"
        assert item.location.z == 3
        assert len(item.historical_data) == 1

    async def test_item_identity_does_not_depend_on_reporter(self, item_service, store):
        await item_service.put_tracked_item(USER_ID, "tag-1", "Drill", None, Location(x=0, y=0))
        item = await item_service.put_tracked_item(
            UNTRACKED_USER_ID, "tag-1", "Drill", None, Location(x=1, y=0)
        )
        assert await store.count(EntityKind.item) == 1
        assert len(item.historical_data) == 1

    async def test_get_unregistered_item_is_forbidden(self, item_service):
        with pytest.raises(Forbidden):
            await item_service.get_tracked_item("unregistered-code")

    async def test_get_tracked_item(self, item_service):
        await item_service.put_tracked_item(
            USER_ID, "12345678", "TestItem", "itemDescriptionNew", Location(x=0, y=1, z=2)
        )
        item = await item_service.get_tracked_item("12345678")
        assert item.description == "itemDescriptionNew"
        assert item.location == Location(x=0, y=1, z=2)

    async def test_list_items(self, item_service):
        with pytest.raises(NotFound):
            await item_service.list_tracked_items()
        await item_service.put_tracked_item(USER_ID, "a", "A", None, Location(x=0, y=0))
        await item_service.put_tracked_item(USER_ID, "b", "B", None, Location(x=0, y=0))
        assert {i.code for i in await item_service.list_tracked_items()} == {"a", "b"}
