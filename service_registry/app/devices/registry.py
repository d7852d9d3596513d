"""
Device registry: lifecycle of the devices owned by a single user.
"""

from typing import List, Optional, Sequence

from shared.errors import InvalidInputError, NotFoundError, RecordNotFoundError
from shared.logging import get_logger

from ..persistence.base import Storage
from ..users.models import User
from ..users.service import UsersService
from .models import DEVICE_NAME_MAX_LENGTH, Device, DeviceDetail, Topic
from .ownership import OwnershipGuard
from .topics import normalize_topic_names, unique_in_order


class DeviceRegistry:
    """Registers, lists, describes and unregisters devices."""

    def __init__(self, storage: Storage, users: UsersService, guard: Optional[OwnershipGuard] = None):
        self.storage = storage
        self.users = users
        self.guard = guard or OwnershipGuard(storage)
        self.logger = get_logger("registry.devices")

    async def register(self, owner_id: int, name: Optional[str],
                       topic_names: Optional[Sequence[str]] = None) -> DeviceDetail:
        """Create a device for ``owner_id`` with its initial topics."""
        owner = await self._get_owner(owner_id)

        if not name:
            raise InvalidInputError("Device name is missing")
        if not isinstance(name, str) or len(name) > DEVICE_NAME_MAX_LENGTH:
            raise InvalidInputError(f"Device name must be a string of at most {DEVICE_NAME_MAX_LENGTH} characters")

        topics = [Topic(name=topic) for topic in unique_in_order(normalize_topic_names(topic_names))]
        try:
            device = await self.storage.create_device(Device(name=name, user_id=owner.id, topics=topics))
        except RecordNotFoundError:
            # Owner unregistered since it was resolved
            raise NotFoundError("User not found")

        self.logger.info("Device registered", device_id=device.id, user_id=owner.id, topics=len(topics))
        return DeviceDetail.from_device(device)

    async def unregister(self, owner_id: int, device_id: int) -> DeviceDetail:
        device = await self.guard.resolve_owned_device(device_id, owner_id)
        await self.storage.delete_device(device.id)
        self.logger.info("Device unregistered", device_id=device.id, user_id=owner_id)
        return DeviceDetail.from_device(device, device_id)

    async def list(self, owner_id: int) -> List[DeviceDetail]:
        """All devices of the owner. An owner without devices is NotFound."""
        owner = await self._get_owner(owner_id)
        devices = await self.storage.list_devices_for_owner(owner.id)
        if not devices:
            raise NotFoundError("No devices found")
        return [DeviceDetail.from_device(device) for device in devices]

    async def get_details(self, owner_id: int, device_id: int) -> DeviceDetail:
        device = await self.guard.resolve_owned_device(device_id, owner_id)
        return DeviceDetail.from_device(device)

    async def _get_owner(self, owner_id: int) -> User:
        owner = None
        if isinstance(owner_id, int) and not isinstance(owner_id, bool):
            owner = await self.users.find_user_by_id(owner_id)
        if owner is None:
            raise NotFoundError("User not found")
        return owner
