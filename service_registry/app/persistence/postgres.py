"""
PostgreSQL persistence layer for the Registry Service.
"""

from typing import Dict, List, Optional, Sequence

import asyncpg

from shared.logging import get_logger
from shared.errors import ConflictError, RecordNotFoundError, RegistryException

from ..users.models import User
from ..devices.models import Device, Topic
from .base import Storage

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id SERIAL PRIMARY KEY,
        first_name VARCHAR(30),
        last_name VARCHAR(30),
        username VARCHAR(15) NOT NULL UNIQUE,
        password_hash VARCHAR(60) NOT NULL,
        mqtt_password_hash VARCHAR(60),
        UNIQUE (first_name, last_name)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS devices (
        id SERIAL PRIMARY KEY,
        name VARCHAR(15) NOT NULL,
        serial VARCHAR(50),
        user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS topics (
        id SERIAL PRIMARY KEY,
        name VARCHAR(15) NOT NULL,
        unit VARCHAR(10),
        last_update TIMESTAMP WITH TIME ZONE,
        device_id INTEGER NOT NULL REFERENCES devices(id) ON DELETE CASCADE,
        CONSTRAINT uq_topics_device_name UNIQUE (device_id, name)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_devices_user ON devices(user_id);",
)

# Joined device/topic projection; one row per topic, or one row with NULL
# topic columns for a device without topics.
DEVICE_SELECT = """
    SELECT d.id, d.name, d.serial, d.user_id,
           t.id AS topic_id, t.name AS topic_name, t.unit AS topic_unit,
           t.last_update AS topic_last_update
    FROM devices d
    JOIN users u ON u.id = d.user_id
    LEFT JOIN topics t ON t.device_id = d.id
"""

UNIQUE_VIOLATION_MESSAGES = {
    "users_username_key": "Username already exists",
    "users_first_name_last_name_key": "First and last name already in use",
    "uq_topics_device_name": "Topics are already registered",
}


class PostgreSQLStorage(Storage):
    """asyncpg-backed storage. Cascades rely on foreign keys."""

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.logger = get_logger("registry.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=30
            )
            await self._create_tables()
            self.logger.info("PostgreSQL storage started")
        except (OSError, asyncpg.PostgresError) as e:
            self.logger.error("Failed to start PostgreSQL storage", error=str(e))
            raise RegistryException("POSTGRES_START_FAILED", str(e))

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL storage stopped")

    async def _create_tables(self):
        async with self.pool.acquire() as conn:
            for statement in SCHEMA:
                await conn.execute(statement)

    async def health_check(self) -> bool:
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except (OSError, asyncpg.PostgresError):
            return False

    # Users

    async def get_user_by_id(self, user_id: int) -> User:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
        if row is None:
            raise RecordNotFoundError("User", id=user_id)
        return self._row_to_user(row)

    async def get_user_by_username(self, username: str) -> User:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE username = $1", username)
        if row is None:
            raise RecordNotFoundError("User", username=username)
        return self._row_to_user(row)

    async def create_user(self, user: User) -> User:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow("""
                    INSERT INTO users (first_name, last_name, username, password_hash, mqtt_password_hash)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING *
                """, user.first_name, user.last_name, user.username,
                    user.password_hash, user.mqtt_password_hash)
        except asyncpg.UniqueViolationError as e:
            raise self._conflict(e)
        return self._row_to_user(row)

    async def update_user(self, user: User) -> User:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow("""
                    UPDATE users SET first_name = $2, last_name = $3, username = $4,
                        password_hash = $5, mqtt_password_hash = $6
                    WHERE id = $1
                    RETURNING *
                """, user.id, user.first_name, user.last_name, user.username,
                    user.password_hash, user.mqtt_password_hash)
        except asyncpg.UniqueViolationError as e:
            raise self._conflict(e)
        if row is None:
            raise RecordNotFoundError("User", id=user.id)
        return self._row_to_user(row)

    async def delete_user(self, user_id: int) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute("DELETE FROM users WHERE id = $1", user_id)
        return result == "DELETE 1"

    # Devices

    async def create_device(self, device: Device) -> Device:
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    device_id = await conn.fetchval("""
                        INSERT INTO devices (name, serial, user_id)
                        VALUES ($1, $2, $3)
                        RETURNING id
                    """, device.name, device.serial, device.user_id)
                    if device.topics:
                        await conn.executemany("""
                            INSERT INTO topics (name, unit, device_id) VALUES ($1, $2, $3)
                        """, [(t.name, t.unit, device_id) for t in device.topics])
                    rows = await conn.fetch(DEVICE_SELECT + " WHERE d.id = $1 ORDER BY t.id", device_id)
        except asyncpg.UniqueViolationError as e:
            raise self._conflict(e)
        except asyncpg.ForeignKeyViolationError:
            raise RecordNotFoundError("User", id=device.user_id)
        return self._rows_to_devices(rows)[0]

    async def find_owned_device(self, device_id: int, owner_id: int) -> Optional[Device]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                DEVICE_SELECT + " WHERE d.id = $1 AND u.id = $2 ORDER BY t.id",
                device_id, owner_id
            )
        devices = self._rows_to_devices(rows)
        return devices[0] if devices else None

    async def list_devices_for_owner(self, owner_id: int) -> List[Device]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                DEVICE_SELECT + " WHERE u.id = $1 ORDER BY d.id, t.id",
                owner_id
            )
        return self._rows_to_devices(rows)

    async def delete_device(self, device_id: int) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute("DELETE FROM devices WHERE id = $1", device_id)
        return result == "DELETE 1"

    # Topics

    async def add_topics(self, device_id: int, names: Sequence[str]) -> List[Topic]:
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    rows = [
                        await conn.fetchrow("""
                            INSERT INTO topics (name, device_id) VALUES ($1, $2)
                            RETURNING id, name, unit, last_update, device_id
                        """, name, device_id)
                        for name in names
                    ]
        except asyncpg.UniqueViolationError as e:
            raise self._conflict(e)
        except asyncpg.ForeignKeyViolationError:
            raise RecordNotFoundError("Device", id=device_id)
        return [Topic(**dict(row)) for row in rows]

    async def delete_topics(self, topic_ids: Sequence[int]) -> List[int]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "DELETE FROM topics WHERE id = ANY($1::int[]) RETURNING id", list(topic_ids)
            )
        return [row["id"] for row in rows]

    # Row mapping

    def _conflict(self, error: asyncpg.UniqueViolationError) -> ConflictError:
        constraint = getattr(error, "constraint_name", None)
        self.logger.info("Unique constraint violated", constraint=constraint)
        return ConflictError(UNIQUE_VIOLATION_MESSAGES.get(constraint, "Record already exists"))

    @staticmethod
    def _row_to_user(row) -> User:
        return User(
            id=row["id"],
            username=row["username"],
            password_hash=row["password_hash"],
            mqtt_password_hash=row["mqtt_password_hash"],
            first_name=row["first_name"],
            last_name=row["last_name"],
        )

    @staticmethod
    def _rows_to_devices(rows) -> List[Device]:
        devices: Dict[int, Device] = {}
        for row in rows:
            device = devices.get(row["id"])
            if device is None:
                device = Device(
                    id=row["id"],
                    name=row["name"],
                    serial=row["serial"],
                    user_id=row["user_id"],
                )
                devices[device.id] = device
            if row["topic_id"] is not None:
                device.topics.append(Topic(
                    id=row["topic_id"],
                    name=row["topic_name"],
                    unit=row["topic_unit"],
                    last_update=row["topic_last_update"],
                    device_id=device.id,
                ))
        return list(devices.values())
