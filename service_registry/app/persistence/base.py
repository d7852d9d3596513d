"""
Storage interface shared by the registry services.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from ..users.models import User
from ..devices.models import Device, Topic


class Storage(ABC):
    """Typed CRUD and filtered queries over users, devices and topics.

    Contract shared by all backends:

    - ``get_user_*`` raise ``RecordNotFoundError`` when nothing matches.
    - Unique violations (username, first/last name pair, topic name within
      a device) raise ``ConflictError`` at write time; the write is not
      applied.
    - Deleting a user removes its devices and their topics; deleting a
      device removes its topics.
    - Devices are always returned with their topics loaded, ordered by id.
    """

    async def start(self) -> None:
        """Open connections and create the schema if needed."""

    async def stop(self) -> None:
        """Release connections."""

    async def health_check(self) -> bool:
        return True

    @abstractmethod
    async def get_user_by_id(self, user_id: int) -> User:
        ...

    @abstractmethod
    async def get_user_by_username(self, username: str) -> User:
        ...

    @abstractmethod
    async def create_user(self, user: User) -> User:
        """Insert ``user`` and return it with its id assigned."""

    @abstractmethod
    async def update_user(self, user: User) -> User:
        ...

    @abstractmethod
    async def delete_user(self, user_id: int) -> bool:
        """Delete a user and everything it owns. False if absent."""

    @abstractmethod
    async def create_device(self, device: Device) -> Device:
        """Insert ``device`` together with ``device.topics`` atomically."""

    @abstractmethod
    async def find_owned_device(self, device_id: int, owner_id: int) -> Optional[Device]:
        """Single lookup filtered by device id and owner id together."""

    @abstractmethod
    async def list_devices_for_owner(self, owner_id: int) -> List[Device]:
        ...

    @abstractmethod
    async def delete_device(self, device_id: int) -> bool:
        ...

    @abstractmethod
    async def add_topics(self, device_id: int, names: Sequence[str]) -> List[Topic]:
        """Insert topics for a device; all or nothing."""

    @abstractmethod
    async def delete_topics(self, topic_ids: Sequence[int]) -> List[int]:
        """Delete topics by id and return the ids that were actually deleted."""
