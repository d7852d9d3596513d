"""
Unit tests for the device ownership guard.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_registry.app.devices.ownership import OwnershipGuard
from shared.errors import NotFoundError
from shared.test_helpers import create_registry_stack


class TestOwnershipGuard:
    """Test cases for OwnershipGuard."""

    @pytest.fixture
    def stack(self):
        return create_registry_stack()

    async def owned_device(self, stack):
        owner = await stack.users.register("u1", "p1")
        other = await stack.users.register("u2", "p2")
        device = await stack.devices.register(owner.id, "d1", ["t1"])
        return owner.id, other.id, device.id

    @pytest.mark.asyncio
    async def test_resolves_owned_device(self, stack):
        owner_id, _, device_id = await self.owned_device(stack)

        device = await OwnershipGuard(stack.storage).resolve_owned_device(device_id, owner_id)

        assert device.id == device_id
        assert device.topic_names == ["t1"]

    @pytest.mark.asyncio
    async def test_failures_are_indistinguishable(self):
        """Foreign device, unknown device and unknown owner look the same for one id pair."""
        foreign = create_registry_stack()
        await self.owned_device(foreign)

        no_device = create_registry_stack()
        await no_device.users.register("u1", "p1")
        await no_device.users.register("u2", "p2")

        no_owner = create_registry_stack()
        owner = await no_owner.users.register("u1", "p1")
        await no_owner.devices.register(owner.id, "d1", ["t1"])

        errors = []
        for stack in (foreign, no_device, no_owner):
            with pytest.raises(NotFoundError) as exc_info:
                await OwnershipGuard(stack.storage).resolve_owned_device(1, 2)
            errors.append(exc_info.value)

        assert errors[0].message == errors[1].message == errors[2].message
        assert errors[0].message == "Device 1 was not found for user 2"
        assert {type(e) for e in errors} == {NotFoundError}
        assert {e.code for e in errors} == {"NOT_FOUND"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("device_id,owner_id", [(None, 1), (1, None), ("1", 1), (1, True)])
    async def test_malformed_ids_are_not_found(self, stack, device_id, owner_id):
        await self.owned_device(stack)

        with pytest.raises(NotFoundError, match="was not found for user"):
            await OwnershipGuard(stack.storage).resolve_owned_device(device_id, owner_id)

    @pytest.mark.asyncio
    async def test_owner_deleted_hides_device(self, stack):
        owner_id, _, device_id = await self.owned_device(stack)
        await stack.users.unregister(owner_id, "p1")

        with pytest.raises(NotFoundError):
            await OwnershipGuard(stack.storage).resolve_owned_device(device_id, owner_id)
