# path: tracking_api/scripts/seed.py

from __future__ import annotations
import asyncio
import os
from pathlib import Path
from typing import Sequence
import asyncpg

from tracking_api.auth import create_access_token
from tracking_api.config import get_settings
from tracking_api.db import Database
from tracking_api.schemas import Role, UserOut
from tracking_api.users import CredentialStore, PostgresCredentialStore

DEFAULT_SCHEMA_PATH = Path(__file__).resolve().parent.parent / "schema.sql"

DEMO_PROJECT = "demo"


async def ensure_schema(conn: asyncpg.Connection) -> bool:
    """Load the schema unless the tables already exist. Returns True if loaded."""
    exists = await conn.fetchval("SELECT to_regclass('public.tracked_entities')")
    if exists:
        return False
    schema_path = os.environ.get("SCHEMA_PATH", str(DEFAULT_SCHEMA_PATH))
    ddl = Path(schema_path).read_text(encoding="utf-8")
    await conn.execute(ddl)
    return True


async def ensure_admin(users: CredentialStore, username: str = "admin", password: str = "admin") -> UserOut:
    """Create the admin account, or return it when it already exists."""
    return await users.create_user(username, password, Role.admin)


async def seed() -> None:
    settings = get_settings()
    db = Database(settings)
    await db.connect()

    try:
        async with db.acquire() as conn:
            await ensure_schema(conn)

            beacons: Sequence[tuple[str, str, float, float, float]] = [
                ("3fe89152-46fc-428a-ba8a-18a165b92a91", "Beacon7:Beacon:2439889", -8680.2, 6270.0, 7009.4),
                ("b5a1c0de-0000-4000-8000-000000000002", "Beacon8:Beacon:2439890", -4200.0, 6270.0, 7009.4),
            ]
            for bid, name, x, y, z in beacons:
                await conn.execute(
                    """
                    INSERT INTO beacons (id, project_id, name, x, y, z)
                    VALUES ($1, $2, $3, $4, $5, $6)
                    ON CONFLICT (project_id, id) DO NOTHING
                    """,
                    bid,
                    DEMO_PROJECT,
                    name,
                    x,
                    y,
                    z,
                )

        admin = await ensure_admin(PostgresCredentialStore(db))

        print("✓ Schema loaded, demo beacons and admin account created")
        print(f"  dev token: {create_access_token(settings, subject=admin.uid, role=admin.role.value)}")
    finally:
        await db.disconnect()


def main() -> None:
    asyncio.run(seed())


if __name__ == "__main__":
    main()
