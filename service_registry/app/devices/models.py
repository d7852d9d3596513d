"""
Device and topic data models for the Registry Service.
"""

from typing import List, Optional
from dataclasses import dataclass, field
from datetime import datetime

from ..users.models import WireModel

DEVICE_NAME_MAX_LENGTH = 15
DEVICE_SERIAL_MAX_LENGTH = 50
TOPIC_NAME_MAX_LENGTH = 15
TOPIC_UNIT_MAX_LENGTH = 10


@dataclass
class Topic:
    """Named data channel of a device."""
    name: str
    id: Optional[int] = None
    device_id: Optional[int] = None
    unit: Optional[str] = None
    # Written by the telemetry pipeline only
    last_update: Optional[datetime] = None


@dataclass
class Device:
    """Named endpoint owned by exactly one user."""
    name: str
    user_id: int
    id: Optional[int] = None
    serial: Optional[str] = None
    topics: List[Topic] = field(default_factory=list)

    @property
    def topic_names(self) -> List[str]:
        return [topic.name for topic in self.topics]


class DeviceDetail(WireModel):
    id: Optional[int] = None
    name: str
    user_id: int
    serial: Optional[str] = None
    topics: List[str] = []

    @classmethod
    def from_device(cls, device: Device, device_id: Optional[int] = None) -> "DeviceDetail":
        return cls(
            id=device.id if device.id is not None else device_id,
            name=device.name,
            user_id=device.user_id,
            serial=device.serial,
            topics=device.topic_names,
        )


class TopicAdd(WireModel):
    topics_added: int
    topics: List[str]


class TopicRemove(WireModel):
    topics_removed: int
    topics: List[str]
