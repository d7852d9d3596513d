"""
Ownership guard shared by the device registry and the topic set manager.
"""

from shared.errors import NotFoundError

from ..persistence.base import Storage
from .models import Device


def device_not_found(device_id, owner_id) -> NotFoundError:
    """The one error shape for every way a device can be out of reach.

    A missing owner, a missing device and a device owned by someone else
    must be indistinguishable to the caller.
    """
    return NotFoundError(
        f"Device {device_id} was not found for user {owner_id}",
        details={"device_id": device_id, "user_id": owner_id}
    )


class OwnershipGuard:
    """Resolves "device X owned by user Y" with one filtered lookup."""

    def __init__(self, storage: Storage):
        self.storage = storage

    async def resolve_owned_device(self, device_id: int, owner_id: int) -> Device:
        device = None
        if _is_id(device_id) and _is_id(owner_id):
            device = await self.storage.find_owned_device(device_id, owner_id)
        if device is None:
            raise device_not_found(device_id, owner_id)
        return device


def _is_id(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
