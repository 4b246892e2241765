# path: tracking_api/store.py
"""Entity store: current state and bounded history of tracked users and items.

Every tracked entity is identified by its kind (`user` or `item`) and an
identity string (the user uid or the external item code). An upsert installs
the new current state and, if the entity already existed, moves the previous
`{location, date}` onto the end of `historical_data`. Upserts on the same
identity are serialized; upserts on different identities never wait on each
other.

`PostgresEntityStore` is the production backend. The in-process backend used
by tests and local development lives in `memory.py`.
"""

from __future__ import annotations

import abc
import logging
from datetime import datetime
from typing import Any, List, Optional, Sequence, Union

from .db import Database, store_errors
from .errors import NotFound
from .schemas import EntityKind, HistoricalEntry, Location, TrackedItem, TrackedUser

logger = logging.getLogger("tracking_api.store")

TrackedRecord = Union[TrackedUser, TrackedItem]


def rotate_history(
    history: Sequence[HistoricalEntry],
    location: Location,
    date: datetime,
    limit: int,
) -> List[HistoricalEntry]:
    """Append the superseded state and evict the oldest entries beyond `limit`."""
    rotated = list(history)
    rotated.append(HistoricalEntry(location=location, date=date))
    if limit and len(rotated) > limit:
        rotated = rotated[-limit:]
    return rotated


def build_record(
    kind: EntityKind,
    identity: str,
    location: Location,
    date: datetime,
    history: Sequence[Any] = (),
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> TrackedRecord:
    if kind is EntityKind.user:
        return TrackedUser(
            user_id=identity, location=location, date=date, historical_data=list(history)
        )
    return TrackedItem(
        code=identity,
        name=name,
        description=description,
        location=location,
        date=date,
        historical_data=list(history),
    )


class EntityStore(abc.ABC):
    """Repository owning all tracked user and item records."""

    def __init__(self, history_limit: int = 0) -> None:
        self.history_limit = history_limit

    @abc.abstractmethod
    async def upsert(
        self,
        kind: EntityKind,
        identity: str,
        location: Location,
        date: datetime,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TrackedRecord:
        """Create or update the record of `identity`, rotating its history."""
        raise NotImplementedError

    @abc.abstractmethod
    async def get(self, kind: EntityKind, identity: str) -> TrackedRecord:
        """Return the record of `identity` or raise `NotFound`."""
        raise NotImplementedError

    @abc.abstractmethod
    async def list_all(self, kind: EntityKind) -> List[TrackedRecord]:
        """Return every record of `kind`; raise `NotFound` when there are none."""
        raise NotImplementedError

    @abc.abstractmethod
    async def count(self, kind: EntityKind) -> int:
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_all(self, kind: EntityKind) -> int:
        """Administrative teardown. Not used by the tracking services."""
        raise NotImplementedError


def not_tracked(kind: EntityKind, identity: str) -> NotFound:
    return NotFound(f"Tracked {kind.value} {identity} not found")


def nothing_tracked(kind: EntityKind) -> NotFound:
    return NotFound(f"No tracked {kind.value}s found")


_COLUMNS = "identity, x, y, z, date, name, description, historical_data"

_INSERT_SQL = f"""
    INSERT INTO tracked_entities
      (kind, identity, x, y, z, date, name, description, historical_data)
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, '[]'::jsonb)
    ON CONFLICT (kind, identity) DO NOTHING
    RETURNING {_COLUMNS}
"""

_LOCK_SQL = f"""
    SELECT {_COLUMNS}
      FROM tracked_entities
     WHERE kind = $1 AND identity = $2
       FOR UPDATE
"""

_UPDATE_SQL = f"""
    UPDATE tracked_entities
       SET x = $3, y = $4, z = $5, date = $6,
           name = $7, description = $8, historical_data = $9
     WHERE kind = $1 AND identity = $2
    RETURNING {_COLUMNS}
"""


class PostgresEntityStore(EntityStore):
    """Entity store backed by the `tracked_entities` table.

    The upsert runs in a single transaction. The creation path is an
    `INSERT .. ON CONFLICT DO NOTHING`; if the row already exists it is locked
    with `SELECT .. FOR UPDATE` before the history is rotated and written
    back, so concurrent upserts on one identity queue on the row lock.
    """

    def __init__(self, db: Database, history_limit: int = 0) -> None:
        super().__init__(history_limit)
        self._db = db

    @staticmethod
    def _record(kind: EntityKind, row) -> TrackedRecord:
        return build_record(
            kind,
            row["identity"],
            Location(x=row["x"], y=row["y"], z=row["z"]),
            row["date"],
            row["historical_data"] or [],
            row["name"],
            row["description"],
        )

    async def upsert(
        self,
        kind: EntityKind,
        identity: str,
        location: Location,
        date: datetime,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TrackedRecord:
        async with store_errors("upsert"), self._db.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    _INSERT_SQL,
                    kind.value,
                    identity,
                    location.x,
                    location.y,
                    location.z,
                    date,
                    name,
                    description,
                )
                if row is None:
                    current = await conn.fetchrow(_LOCK_SQL, kind.value, identity)
                    previous = self._record(kind, current)
                    history = rotate_history(
                        previous.historical_data,
                        previous.location,
                        previous.date,
                        self.history_limit,
                    )
                    row = await conn.fetchrow(
                        _UPDATE_SQL,
                        kind.value,
                        identity,
                        location.x,
                        location.y,
                        location.z,
                        date,
                        name,
                        description,
                        [h.model_dump(mode="json") for h in history],
                    )
                else:
                    logger.info("started tracking %s %s", kind.value, identity)
        return self._record(kind, row)

    async def get(self, kind: EntityKind, identity: str) -> TrackedRecord:
        async with store_errors("get"), self._db.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM tracked_entities WHERE kind = $1 AND identity = $2",
                kind.value,
                identity,
            )
        if row is None:
            raise not_tracked(kind, identity)
        return self._record(kind, row)

    async def list_all(self, kind: EntityKind) -> List[TrackedRecord]:
        async with store_errors("list_all"), self._db.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} FROM tracked_entities WHERE kind = $1 ORDER BY date",
                kind.value,
            )
        if not rows:
            raise nothing_tracked(kind)
        return [self._record(kind, row) for row in rows]

    async def count(self, kind: EntityKind) -> int:
        async with store_errors("count"), self._db.acquire() as conn:
            return await conn.fetchval(
                "SELECT COUNT(*) FROM tracked_entities WHERE kind = $1", kind.value
            )

    async def delete_all(self, kind: EntityKind) -> int:
        async with store_errors("delete_all"), self._db.acquire() as conn:
            deleted = await conn.fetch(
                "DELETE FROM tracked_entities WHERE kind = $1 RETURNING identity",
                kind.value,
            )
        return len(deleted)
