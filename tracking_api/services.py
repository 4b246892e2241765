# path: tracking_api/services.py
"""Tracked-user and tracked-item services.

The services validate the owning identity against the credential store,
upsert the entity store and forward the updated record to the notifier.
Errors are raised as the kinds defined in `errors.py` and are never
suppressed, with one exception: a failing notifier is logged and ignored so
that push delivery can never fail a location update.

Error tiers:

- tracking a uid unknown to the credential store is `Forbidden`
- reading a tracked user whose uid is unknown is `NotFound`; a known user
  that has never been tracked is `Forbidden`
- item codes belong to no registry, so reading an untracked item is
  `Forbidden` only
- listings with zero members are `NotFound`
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from .beacons import BeaconRegistry
from .config import Settings
from .errors import Forbidden, NotFound
from .notifier import Notifier
from .proximity import estimate_position
from .schemas import BeaconReading, EntityKind, Location, TrackedItem, TrackedUser
from .store import EntityStore
from .users import CredentialStore

logger = logging.getLogger("tracking_api.services")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _TrackingService:
    def __init__(self, store: EntityStore, users: CredentialStore, notifier: Notifier) -> None:
        self._store = store
        self._users = users
        self._notifier = notifier

    async def _require_user(self, user_id: str) -> None:
        if await self._users.find_user_by_id(user_id) is None:
            raise Forbidden(f"User {user_id} is not allowed to report locations")

    def _notify(self, kind: EntityKind, record) -> None:
        try:
            self._notifier.emit(kind, record)
        except Exception:
            logger.exception("failed to emit %s update", kind.value)


class TrackedUserService(_TrackingService):
    def __init__(
        self,
        store: EntityStore,
        users: CredentialStore,
        notifier: Notifier,
        beacons: BeaconRegistry,
        settings: Settings,
    ) -> None:
        super().__init__(store, users, notifier)
        self._beacons = beacons
        self._settings = settings

    async def put_tracked_user(self, user_id: str, location: Location) -> TrackedUser:
        await self._require_user(user_id)
        record = await self._store.upsert(EntityKind.user, user_id, location, _utcnow())
        logger.debug("user %s at (%.2f, %.2f, %.2f)", user_id, location.x, location.y, location.z)
        self._notify(EntityKind.user, record)
        return record

    async def put_tracked_user_from_readings(
        self, user_id: str, readings: Iterable[BeaconReading]
    ) -> TrackedUser:
        """Locate a user from the beacons their device currently hears."""
        readings = list(readings)
        await self._require_user(user_id)
        known = await self._beacons.find_active(r.id_beacon for r in readings)
        estimate = estimate_position(
            readings,
            {uid: beacon.location for uid, beacon in known.items()},
            tx_power_ref=self._settings.tx_power_dbm_at_1m,
            path_loss_exponent=self._settings.path_loss_exponent,
            k=self._settings.top_k,
            clamp_m=self._settings.weight_dist_clamp_m,
        )
        if estimate is None:
            raise NotFound("None of the reported beacons is registered and active")
        logger.info(
            "user %s located via %s (nearest=%s, q=%.2f)",
            user_id,
            estimate.method,
            estimate.nearest,
            estimate.q_score,
        )
        return await self.put_tracked_user(user_id, estimate.location)

    async def get_tracked_user(self, user_id: str) -> TrackedUser:
        if await self._users.find_user_by_id(user_id) is None:
            raise NotFound(f"User {user_id} not found")
        try:
            return await self._store.get(EntityKind.user, user_id)
        except NotFound:
            raise Forbidden(f"User {user_id} has no tracking data")

    async def list_tracked_users(self) -> List[TrackedUser]:
        return await self._store.list_all(EntityKind.user)


class TrackedItemService(_TrackingService):
    async def put_tracked_item(
        self,
        user_id: str,
        code: str,
        name: str,
        description: Optional[str],
        location: Location,
    ) -> TrackedItem:
        await self._require_user(user_id)
        record = await self._store.upsert(
            EntityKind.item, code, location, _utcnow(), name=name, description=description
        )
        self._notify(EntityKind.item, record)
        return record

    async def get_tracked_item(self, code: str) -> TrackedItem:
        try:
            return await self._store.get(EntityKind.item, code)
        except NotFound:
            raise Forbidden(f"Item {code} is not being tracked")

    async def list_tracked_items(self) -> List[TrackedItem]:
        return await self._store.list_all(EntityKind.item)
