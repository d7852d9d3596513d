"""
Integration tests for the registry flow against the mock token authority.

Both applications run in-process over httpx.ASGITransport; nothing listens
on a socket.
"""

import pytest
import httpx

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from mocks.token_authority.server import MockTokenAuthority
from service_registry.app.main import RegistryService
from service_registry.app.persistence import InMemoryStorage
from service_registry.app.users.token_client import TokenClient
from shared.config import get_config
from shared.test_helpers import FAST_BCRYPT_ROUNDS, create_sample_users


class TestRegistryFlow:
    """Integration tests for complete registry flows."""

    @pytest.fixture
    def authority(self):
        return MockTokenAuthority(secret="integration-secret-with-enough-bytes")

    @pytest.fixture
    def registry(self, authority):
        config = get_config("registry", 8020, bcrypt_rounds=FAST_BCRYPT_ROUNDS)
        token_client = TokenClient(
            "http://authority",
            transport=httpx.ASGITransport(app=authority.app)
        )
        return RegistryService(config=config, storage=InMemoryStorage(), token_client=token_client)

    @pytest.fixture
    def client_factory(self, registry):
        def factory():
            return httpx.AsyncClient(
                transport=httpx.ASGITransport(app=registry.app),
                base_url="http://registry"
            )
        return factory

    @staticmethod
    async def call(client, cmd, **data):
        response = await client.post("/rpc", json={"cmd": cmd, "data": data})
        return response.status_code, response.json()

    @pytest.mark.asyncio
    async def test_device_lifecycle(self, client_factory):
        """Register, add and remove topics, then read the device back."""
        async with client_factory() as client:
            status, user = await self.call(client, "users.register", username="u1", password="p1")
            assert status == 200
            user_id = user["id"]

            status, device = await self.call(
                client, "devices.register", userId=user_id, deviceName="D1", deviceTopics=["t1", "t2"]
            )
            assert status == 200
            device_id = device["id"]

            status, devices = await self.call(client, "devices.list", userId=user_id)
            assert status == 200
            assert len(devices) == 1
            assert devices[0]["topics"] == ["t1", "t2"]

            status, added = await self.call(
                client, "devices.topics.add", userId=user_id, deviceId=device_id, deviceTopics="t3"
            )
            assert status == 200
            assert added == {"topicsAdded": 1, "topics": ["t3"]}

            status, removed = await self.call(
                client, "devices.topics.remove", userId=user_id, deviceId=device_id, deviceTopics=["t1", "t3"]
            )
            assert status == 200
            assert removed == {"topicsRemoved": 2, "topics": ["t1", "t3"]}

            status, details = await self.call(client, "devices.details", userId=user_id, deviceId=device_id)
            assert status == 200
            assert details["topics"] == ["t2"]

            status, error = await self.call(
                client, "device.topic.check", userId=user_id, deviceId=device_id, deviceTopic="t1"
            )
            assert status == 409
            assert error["message"] == "Topic is not registered"

    @pytest.mark.asyncio
    async def test_signin_issues_authority_tokens(self, client_factory, authority):
        async with client_factory() as client:
            for sample in create_sample_users():
                status, _ = await self.call(
                    client, "users.register", username=sample.username, password=sample.password
                )
                assert status == 200

            status, result = await self.call(client, "users.signin", username="jane.smith", password="password123")
            assert status == 200

            access = authority.decode(result["token"]["accessToken"])
            refresh = authority.decode(result["token"]["refreshToken"])
            assert result["user"]["username"] == "jane.smith"
            assert access["sub"] == str(result["user"]["sub"])
            assert access["type"] == "access"
            assert refresh["type"] == "refresh"

            status, error = await self.call(client, "users.signin", username="jane.smith", password="wrong")
            assert status == 401
            assert error["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_unregister_cascades(self, client_factory, registry):
        async with client_factory() as client:
            _, user = await self.call(client, "users.register", username="u1", password="p1")
            await self.call(client, "devices.register", userId=user["id"], deviceName="D1", deviceTopics=["t1"])
            await self.call(client, "devices.register", userId=user["id"], deviceName="D2", deviceTopics=["t2"])

            status, removed = await self.call(client, "users.unregister", userId=user["id"], password="p1")
            assert status == 200
            assert removed["username"] == "u1"

            status, error = await self.call(client, "devices.list", userId=user["id"])
            assert status == 404
            assert error["code"] == "NOT_FOUND"

        assert registry.storage.count_rows() == {"users": 0, "devices": 0, "topics": 0}

    @pytest.mark.asyncio
    async def test_foreign_device_is_not_found(self, client_factory):
        async with client_factory() as client:
            _, owner = await self.call(client, "users.register", username="u1", password="p1")
            _, intruder = await self.call(client, "users.register", username="u2", password="p2")
            _, device = await self.call(
                client, "devices.register", userId=owner["id"], deviceName="D1", deviceTopics=["t1"]
            )

            status, error = await self.call(
                client, "devices.details", userId=intruder["id"], deviceId=device["id"]
            )

            assert status == 404
            assert error["message"] == f"Device {device['id']} was not found for user {intruder['id']}"

    @pytest.mark.asyncio
    async def test_broker_hook_with_broker_password(self, client_factory):
        async with client_factory() as client:
            _, user = await self.call(client, "users.register", username="u1", password="p1")

            response = await client.post("/users/mqtt/auth", json={"username": "u1", "password": "p1"})
            assert response.json() == {"result": "allow"}

            status, _ = await self.call(client, "users.mqtt.password", userId=user["id"], password="broker")
            assert status == 200

            response = await client.post("/users/mqtt/auth", json={"username": "u1", "password": "p1"})
            assert response.json() == {"result": "deny"}
            response = await client.post("/users/mqtt/auth", json={"username": "u1", "password": "broker"})
            assert response.json() == {"result": "allow"}

    @pytest.mark.asyncio
    async def test_authority_down_is_upstream_failure(self):
        config = get_config("registry", 8020, bcrypt_rounds=FAST_BCRYPT_ROUNDS)

        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        registry = RegistryService(
            config=config,
            storage=InMemoryStorage(),
            token_client=TokenClient("http://authority", transport=httpx.MockTransport(refuse))
        )
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=registry.app), base_url="http://registry"
        ) as client:
            await self.call(client, "users.register", username="u1", password="p1")

            status, error = await self.call(client, "users.signin", username="u1", password="p1")

            assert status == 502
            assert error["code"] == "UPSTREAM_FAILURE"
