"""
In-process storage backend.

Used for local runs and tests. Every call yields to the event loop once
before touching state, the way a network round trip would, so concurrent
operations interleave exactly where they would against a real database.
State changes after that point happen without further suspension and are
therefore atomic.
"""

import asyncio
import copy
import itertools
from typing import Dict, List, Optional, Sequence

from shared.errors import ConflictError, RecordNotFoundError
from shared.logging import get_logger

from ..users.models import User
from ..devices.models import Device, Topic
from .base import Storage


class InMemoryStorage(Storage):
    """Dictionary-backed storage with the same constraints as PostgreSQL."""

    def __init__(self):
        self.logger = get_logger("registry.persistence.memory")
        self._users: Dict[int, User] = {}
        self._devices: Dict[int, Device] = {}
        self._topics: Dict[int, Topic] = {}
        self._user_ids = itertools.count(1)
        self._device_ids = itertools.count(1)
        self._topic_ids = itertools.count(1)

    # Users

    async def get_user_by_id(self, user_id: int) -> User:
        await asyncio.sleep(0)
        user = self._users.get(user_id)
        if user is None:
            raise RecordNotFoundError("User", id=user_id)
        return copy.copy(user)

    async def get_user_by_username(self, username: str) -> User:
        await asyncio.sleep(0)
        for user in self._users.values():
            if user.username == username:
                return copy.copy(user)
        raise RecordNotFoundError("User", username=username)

    async def create_user(self, user: User) -> User:
        await asyncio.sleep(0)
        self._check_user_unique(user)
        stored = copy.copy(user)
        stored.id = next(self._user_ids)
        self._users[stored.id] = stored
        return copy.copy(stored)

    async def update_user(self, user: User) -> User:
        await asyncio.sleep(0)
        if user.id not in self._users:
            raise RecordNotFoundError("User", id=user.id)
        self._check_user_unique(user)
        self._users[user.id] = copy.copy(user)
        return copy.copy(user)

    async def delete_user(self, user_id: int) -> bool:
        await asyncio.sleep(0)
        if user_id not in self._users:
            return False
        owned = [d.id for d in self._devices.values() if d.user_id == user_id]
        for device_id in owned:
            self._drop_device(device_id)
        del self._users[user_id]
        self.logger.debug("User deleted", user_id=user_id, devices_deleted=len(owned))
        return True

    def _check_user_unique(self, user: User) -> None:
        for other in self._users.values():
            if other.id == user.id:
                continue
            if other.username == user.username:
                raise ConflictError("Username already exists")
            if (user.first_name is not None and user.last_name is not None
                    and (other.first_name, other.last_name) == (user.first_name, user.last_name)):
                raise ConflictError("First and last name already in use")

    # Devices

    async def create_device(self, device: Device) -> Device:
        await asyncio.sleep(0)
        if device.user_id not in self._users:
            raise RecordNotFoundError("User", id=device.user_id)
        names = [topic.name for topic in device.topics]
        if len(set(names)) != len(names):
            raise ConflictError("Topics are already registered")

        device_id = next(self._device_ids)
        self._devices[device_id] = Device(
            id=device_id,
            name=device.name,
            serial=device.serial,
            user_id=device.user_id,
        )
        for topic in device.topics:
            self._insert_topic(device_id, topic)
        return self._load_device(device_id)

    async def find_owned_device(self, device_id: int, owner_id: int) -> Optional[Device]:
        await asyncio.sleep(0)
        device = self._devices.get(device_id)
        if device is None or device.user_id != owner_id or owner_id not in self._users:
            return None
        return self._load_device(device_id)

    async def list_devices_for_owner(self, owner_id: int) -> List[Device]:
        await asyncio.sleep(0)
        return [
            self._load_device(device_id)
            for device_id in sorted(self._devices)
            if self._devices[device_id].user_id == owner_id
        ]

    async def delete_device(self, device_id: int) -> bool:
        await asyncio.sleep(0)
        if device_id not in self._devices:
            return False
        self._drop_device(device_id)
        return True

    # Topics

    async def add_topics(self, device_id: int, names: Sequence[str]) -> List[Topic]:
        await asyncio.sleep(0)
        if device_id not in self._devices:
            raise RecordNotFoundError("Device", id=device_id)
        existing = {t.name for t in self._topics.values() if t.device_id == device_id}
        if existing.intersection(names) or len(set(names)) != len(names):
            raise ConflictError("Topics are already registered")
        return [copy.copy(self._insert_topic(device_id, Topic(name=name))) for name in names]

    async def delete_topics(self, topic_ids: Sequence[int]) -> List[int]:
        await asyncio.sleep(0)
        return [topic_id for topic_id in topic_ids if self._topics.pop(topic_id, None) is not None]

    # Helpers

    def _insert_topic(self, device_id: int, topic: Topic) -> Topic:
        stored = Topic(
            id=next(self._topic_ids),
            name=topic.name,
            unit=topic.unit,
            last_update=topic.last_update,
            device_id=device_id,
        )
        self._topics[stored.id] = stored
        return stored

    def _drop_device(self, device_id: int) -> None:
        for topic_id in [t.id for t in self._topics.values() if t.device_id == device_id]:
            del self._topics[topic_id]
        del self._devices[device_id]

    def _load_device(self, device_id: int) -> Device:
        device = copy.copy(self._devices[device_id])
        device.topics = [
            copy.copy(self._topics[topic_id])
            for topic_id in sorted(self._topics)
            if self._topics[topic_id].device_id == device_id
        ]
        return device

    # Introspection used by tests

    def count_rows(self) -> Dict[str, int]:
        return {
            "users": len(self._users),
            "devices": len(self._devices),
            "topics": len(self._topics),
        }
