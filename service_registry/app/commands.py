"""
Command dispatch for the Registry Service.

Callers address the service with command messages ``{"cmd", "data"}``.
Each command name maps to one service operation; the payload field names
are part of the contract with existing clients and are kept camelCase.
"""

import time
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import BaseModel

from shared.errors import InvalidInputError, RegistryException
from shared.logging import get_logger, set_command_context
from shared.metrics import MetricsCollector

from .devices.registry import DeviceRegistry
from .devices.topics import TopicSetManager
from .users.service import UsersService

Handler = Callable[[Dict[str, Any]], Awaitable[Any]]


class CommandRequest(BaseModel):
    cmd: str
    data: Dict[str, Any] = {}


class CommandRouter:
    """Maps command names to service operations."""

    def __init__(self, users: UsersService, devices: DeviceRegistry, topics: TopicSetManager,
                 metrics: Optional[MetricsCollector] = None):
        self.users = users
        self.devices = devices
        self.topics = topics
        self.metrics = metrics
        self.logger = get_logger("registry.commands")
        self.handlers: Dict[str, Handler] = {
            "users.signin": lambda d: users.sign_in(d.get("username"), d.get("password")),
            "users.register": lambda d: users.register(d.get("username"), d.get("password")),
            "users.unregister": lambda d: users.unregister(d.get("userId"), d.get("password")),
            "users.details": lambda d: users.get_user_details(d.get("userId")),
            "users.details.by.name": lambda d: users.get_user_details(d.get("username")),
            "users.mqtt.password": lambda d: users.update_mqtt_password(d.get("userId"), d.get("password")),
            "devices.register": lambda d: devices.register(
                d.get("userId"), d.get("deviceName"), d.get("deviceTopics")),
            "devices.unregister": lambda d: devices.unregister(d.get("userId"), d.get("deviceId")),
            "devices.list": lambda d: devices.list(d.get("userId")),
            "devices.details": lambda d: devices.get_details(d.get("userId"), d.get("deviceId")),
            "devices.topics.add": lambda d: topics.add_topics(
                d.get("userId"), d.get("deviceId"), d.get("deviceTopics")),
            "devices.topics.remove": lambda d: topics.remove_topics(
                d.get("userId"), d.get("deviceId"), d.get("deviceTopics")),
            "device.topic.check": lambda d: topics.check_topic(
                d.get("userId"), d.get("deviceId"), d.get("deviceTopic")),
        }
        # Name used by broker-side consumers
        self.handlers["user.device.topic.check"] = self.handlers["device.topic.check"]

    @property
    def commands(self):
        return sorted(self.handlers)

    async def dispatch(self, cmd: str, data: Optional[Dict[str, Any]] = None) -> Any:
        """Run one command and return its JSON-ready result.

        Failures propagate as RegistryException subclasses.
        """
        handler = self.handlers.get(cmd)
        if handler is None:
            raise InvalidInputError(f"Unknown command: {cmd}", details={"cmd": cmd})

        data = data or {}
        set_command_context(cmd, data.get("userId"))
        start_time = time.time()
        outcome = "ok"
        try:
            return to_wire(await handler(data))
        except RegistryException as e:
            outcome = e.code.lower()
            raise
        except Exception:
            outcome = "error"
            raise
        finally:
            if self.metrics is not None:
                self.metrics.increment_counter("commands_total", cmd=cmd, outcome=outcome)
                self.metrics.observe_histogram("command_duration_seconds", time.time() - start_time, cmd=cmd)


def to_wire(result: Any) -> Any:
    """Serialize a service result with the caller-facing field names."""
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json", by_alias=True)
    if isinstance(result, list):
        return [to_wire(item) for item in result]
    return result
