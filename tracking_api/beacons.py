# path: tracking_api/beacons.py
"""Beacon registry: the fixed Bluetooth beacons placed in a project's building.

Beacon objects and their positions are imported from the BIM model and cached
in the table `beacons`. A beacon becomes active once the identifier broadcast
by the physical device (`id_beacon`) has been assigned to it. Only active
beacons take part in proximity positioning.
"""

import abc
from typing import Dict, Iterable, List

from .db import Database, store_errors
from .errors import NotFound
from .schemas import Beacon, Location


class BeaconRegistry(abc.ABC):
    @abc.abstractmethod
    async def list_beacons(self, project_id: str) -> List[Beacon]:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_active_beacons(self, project_id: str) -> List[Beacon]:
        raise NotImplementedError

    @abc.abstractmethod
    async def get_beacon(self, project_id: str, beacon_id: str) -> Beacon:
        raise NotImplementedError

    @abc.abstractmethod
    async def set_beacon_uid(self, project_id: str, beacon_id: str, id_beacon: str) -> Beacon:
        """Assign a hardware identifier to a beacon and activate it.

        The identifier is taken away from any other beacon holding it.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def find_active(self, id_beacons: Iterable[str]) -> Dict[str, Beacon]:
        """Map hardware identifiers to the active beacons carrying them."""
        raise NotImplementedError


def beacon_not_found(project_id: str, beacon_id: str) -> NotFound:
    return NotFound(f"Beacon {beacon_id} not found in project {project_id}")


_COLUMNS = "id, project_id, name, id_beacon, is_active, x, y, z"


def _beacon(row) -> Beacon:
    return Beacon(
        id=row["id"],
        project_id=row["project_id"],
        name=row["name"],
        id_beacon=row["id_beacon"],
        is_active=row["is_active"],
        location=Location(x=row["x"], y=row["y"], z=row["z"]),
    )


class PostgresBeaconRegistry(BeaconRegistry):
    def __init__(self, db: Database) -> None:
        self._db = db

    async def list_beacons(self, project_id: str) -> List[Beacon]:
        async with store_errors("list_beacons"), self._db.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} FROM beacons WHERE project_id=$1 ORDER BY id",
                project_id,
            )
        return [_beacon(r) for r in rows]

    async def list_active_beacons(self, project_id: str) -> List[Beacon]:
        async with store_errors("list_active_beacons"), self._db.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} FROM beacons WHERE project_id=$1 AND is_active ORDER BY id",
                project_id,
            )
        return [_beacon(r) for r in rows]

    async def get_beacon(self, project_id: str, beacon_id: str) -> Beacon:
        async with store_errors("get_beacon"), self._db.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM beacons WHERE project_id=$1 AND id=$2",
                project_id,
                beacon_id,
            )
        if row is None:
            raise beacon_not_found(project_id, beacon_id)
        return _beacon(row)

    async def set_beacon_uid(self, project_id: str, beacon_id: str, id_beacon: str) -> Beacon:
        async with store_errors("set_beacon_uid"), self._db.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    """
                    UPDATE beacons SET id_beacon = NULL, is_active = FALSE
                     WHERE id_beacon = $3 AND NOT (project_id = $1 AND id = $2)
                    """,
                    project_id,
                    beacon_id,
                    id_beacon,
                )
                row = await conn.fetchrow(
                    f"""
                    UPDATE beacons SET id_beacon = $3, is_active = TRUE
                     WHERE project_id = $1 AND id = $2
                    RETURNING {_COLUMNS}
                    """,
                    project_id,
                    beacon_id,
                    id_beacon,
                )
                if row is None:
                    raise beacon_not_found(project_id, beacon_id)
        return _beacon(row)

    async def find_active(self, id_beacons: Iterable[str]) -> Dict[str, Beacon]:
        wanted = sorted(set(id_beacons))
        if not wanted:
            return {}
        async with store_errors("find_active"), self._db.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} FROM beacons WHERE is_active AND id_beacon = ANY($1::text[])",
                wanted,
            )
        return {r["id_beacon"]: _beacon(r) for r in rows}
