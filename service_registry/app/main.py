"""
Registry service: identities, devices and device topics.
"""

import sys
import os
from typing import Optional

# Add shared directory to path
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from fastapi import Request
from pydantic import ValidationError

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config

from .commands import CommandRequest, CommandRouter
from .devices.ownership import OwnershipGuard
from .devices.registry import DeviceRegistry
from .devices.topics import TopicSetManager
from .persistence import Storage, create_storage
from .users.hashing import PasswordHasher
from .users.models import MqttAuthDecision, MqttAuthRequest, MqttAuthResult
from .users.service import UsersService
from .users.token_client import TokenClient

SERVICE_NAME = "registry"
SERVICE_PORT = 8020


class RegistryService(BaseService):
    """Registry service implementation.

    Collaborators can be injected (tests do); anything omitted is built
    from configuration.
    """

    def __init__(self, config: Optional[ServiceConfig] = None, storage: Optional[Storage] = None,
                 token_client: Optional[TokenClient] = None, hasher: Optional[PasswordHasher] = None):
        config = config or get_config(SERVICE_NAME, SERVICE_PORT)
        super().__init__(SERVICE_NAME, SERVICE_PORT, config=config)

        self.storage = storage or create_storage(
            self.config.storage_dsn,
            min_size=self.config.storage_pool_min_size,
            max_size=self.config.storage_pool_max_size
        )
        self.hasher = hasher or PasswordHasher(rounds=self.config.bcrypt_rounds)
        self.token_client = token_client or TokenClient(
            self.config.auth_service_url,
            timeout=self.config.token_sign_timeout
        )

        guard = OwnershipGuard(self.storage)
        self.users = UsersService(self.storage, self.hasher, self.token_client, metrics=self.metrics)
        self.devices = DeviceRegistry(self.storage, self.users, guard=guard)
        self.topics = TopicSetManager(self.storage, guard=guard)
        self.commands = CommandRouter(self.users, self.devices, self.topics, metrics=self.metrics)

        self._setup_registry_routes()

    def _setup_registry_routes(self):
        """Set up registry-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Device Registry - Registry Service",
                "version": "1.0.0",
                "commands": self.commands.commands
            }

        @self.app.post("/rpc")
        async def dispatch_command(request: CommandRequest):
            """Command endpoint; errors are rendered by the base service handlers."""
            return await self.commands.dispatch(request.cmd, request.data)

        @self.app.post("/users/mqtt/auth", response_model=MqttAuthResult)
        async def mqtt_auth(request: Request):
            """Broker authorization hook. Always answers 200."""
            try:
                body = MqttAuthRequest.model_validate(await request.json())
            except (ValueError, ValidationError):
                self.metrics.increment_counter("mqtt_auth_total", result=MqttAuthDecision.DENY.value)
                return MqttAuthResult(result=MqttAuthDecision.DENY)
            return await self.users.mqtt_auth(body.username, body.password)

    async def startup(self):
        await self.storage.start()

    async def shutdown(self):
        await self.storage.stop()

    async def _check_dependencies(self):
        """Check registry dependencies."""
        return {"storage": "ok" if await self.storage.health_check() else "error"}


def create_app(**kwargs):
    """Create FastAPI application."""
    service = RegistryService(**kwargs)
    return service.app


if __name__ == "__main__":
    service = RegistryService()
    service.run()
