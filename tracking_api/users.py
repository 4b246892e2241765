# path: tracking_api/users.py
"""Credential store: user accounts referenced by tracked users.

Users are stored in the table `users` with the columns `uid`, `username`,
`password_hash`, `role` and `created_at`. The tracking services only ever ask
whether a uid exists. `create_user` is used by the seed script and returns
the existing account when the username is already taken, so seeding can be
repeated.
"""

import abc
from typing import Optional

from .auth import get_password_hash
from .db import Database, store_errors
from .schemas import Role, UserOut


class CredentialStore(abc.ABC):
    @abc.abstractmethod
    async def find_user_by_id(self, uid: str) -> Optional[UserOut]:
        raise NotImplementedError

    @abc.abstractmethod
    async def create_user(self, username: str, password: str, role: Role) -> UserOut:
        raise NotImplementedError


class PostgresCredentialStore(CredentialStore):
    def __init__(self, db: Database) -> None:
        self._db = db

    async def find_user_by_id(self, uid: str) -> Optional[UserOut]:
        async with store_errors("find_user_by_id"), self._db.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT uid, username, role, created_at FROM users WHERE uid=$1", uid
            )
        return UserOut(**dict(row)) if row else None

    async def create_user(self, username: str, password: str, role: Role) -> UserOut:
        async with store_errors("create_user"), self._db.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO users (username, password_hash, role)
                VALUES ($1, $2, $3)
                ON CONFLICT (username) DO NOTHING
                RETURNING uid, username, role, created_at
                """,
                username,
                get_password_hash(password),
                role.value,
            )
            if row is None:
                row = await conn.fetchrow(
                    "SELECT uid, username, role, created_at FROM users WHERE username=$1",
                    username,
                )
        return UserOut(**dict(row))
