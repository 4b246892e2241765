# path: tracking_api/memory.py
"""In-memory implementations of the stores for tests and local development.

Selected with `STORE_BACKEND=memory`. State lives in the process and is lost
on restart.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from .auth import get_password_hash
from .beacons import BeaconRegistry, beacon_not_found
from .schemas import Beacon, EntityKind, Location, Role, UserOut
from .store import (
    EntityStore,
    TrackedRecord,
    build_record,
    nothing_tracked,
    not_tracked,
    rotate_history,
)
from .users import CredentialStore


class MemoryEntityStore(EntityStore):
    """Entity store keeping records in a dict.

    One `asyncio.Lock` per identity serializes upserts of that identity.
    """

    def __init__(self, history_limit: int = 0) -> None:
        super().__init__(history_limit)
        self._records: Dict[Tuple[EntityKind, str], TrackedRecord] = {}
        self._locks: Dict[Tuple[EntityKind, str], asyncio.Lock] = {}

    async def upsert(
        self,
        kind: EntityKind,
        identity: str,
        location: Location,
        date: datetime,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TrackedRecord:
        key = (kind, identity)
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            previous = self._records.get(key)
            history = []
            if previous is not None:
                history = rotate_history(
                    previous.historical_data, previous.location, previous.date, self.history_limit
                )
            record = build_record(
                kind, identity, location.model_copy(), date, history, name, description
            )
            self._records[key] = record
        return record.model_copy(deep=True)

    async def get(self, kind: EntityKind, identity: str) -> TrackedRecord:
        record = self._records.get((kind, identity))
        if record is None:
            raise not_tracked(kind, identity)
        return record.model_copy(deep=True)

    async def list_all(self, kind: EntityKind) -> List[TrackedRecord]:
        records = [r.model_copy(deep=True) for (k, _), r in self._records.items() if k is kind]
        if not records:
            raise nothing_tracked(kind)
        return records

    async def count(self, kind: EntityKind) -> int:
        return sum(1 for k, _ in self._records if k is kind)

    async def delete_all(self, kind: EntityKind) -> int:
        keys = [key for key in self._records if key[0] is kind]
        for key in keys:
            del self._records[key]
            self._locks.pop(key, None)
        return len(keys)


class MemoryCredentialStore(CredentialStore):
    def __init__(self) -> None:
        self._users: Dict[str, UserOut] = {}
        self._password_hashes: Dict[str, str] = {}

    def add_user(
        self,
        username: str,
        role: Role = Role.viewer,
        password: Optional[str] = None,
        uid: Optional[str] = None,
    ) -> UserOut:
        user = UserOut(
            uid=uid or str(uuid.uuid4()),
            username=username,
            role=role,
            created_at=datetime.now(timezone.utc),
        )
        self._users[user.uid] = user
        if password is not None:
            self._password_hashes[user.uid] = get_password_hash(password)
        return user

    async def find_user_by_id(self, uid: str) -> Optional[UserOut]:
        return self._users.get(uid)

    async def create_user(self, username: str, password: str, role: Role) -> UserOut:
        for user in self._users.values():
            if user.username == username:
                return user
        return self.add_user(username, role, password)


class MemoryBeaconRegistry(BeaconRegistry):
    def __init__(self) -> None:
        self._beacons: Dict[Tuple[str, str], Beacon] = {}

    def add(self, beacon: Beacon) -> None:
        self._beacons[(beacon.project_id, beacon.id)] = beacon

    async def list_beacons(self, project_id: str) -> List[Beacon]:
        return sorted(
            (b.model_copy() for (p, _), b in self._beacons.items() if p == project_id),
            key=lambda b: b.id,
        )

    async def list_active_beacons(self, project_id: str) -> List[Beacon]:
        return [b for b in await self.list_beacons(project_id) if b.is_active]

    async def get_beacon(self, project_id: str, beacon_id: str) -> Beacon:
        beacon = self._beacons.get((project_id, beacon_id))
        if beacon is None:
            raise beacon_not_found(project_id, beacon_id)
        return beacon.model_copy()

    async def set_beacon_uid(self, project_id: str, beacon_id: str, id_beacon: str) -> Beacon:
        key = (project_id, beacon_id)
        if key not in self._beacons:
            raise beacon_not_found(project_id, beacon_id)
        for other_key, other in list(self._beacons.items()):
            if other_key != key and other.id_beacon == id_beacon:
                self._beacons[other_key] = other.model_copy(
                    update={"id_beacon": None, "is_active": False}
                )
        updated = self._beacons[key].model_copy(update={"id_beacon": id_beacon, "is_active": True})
        self._beacons[key] = updated
        return updated.model_copy()

    async def find_active(self, id_beacons: Iterable[str]) -> Dict[str, Beacon]:
        wanted = set(id_beacons)
        return {
            b.id_beacon: b.model_copy()
            for b in self._beacons.values()
            if b.is_active and b.id_beacon in wanted
        }
