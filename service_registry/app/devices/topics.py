"""
Topic set manager and the pure topic-set diff it is built on.

The diff helpers take plain string collections so they can be tested
without storage. Name matching is exact string equality.
"""

from typing import Iterable, List, Optional, Sequence, Union

from shared.errors import ConflictError, InvalidInputError, RecordNotFoundError
from shared.logging import get_logger

from ..persistence.base import Storage
from .models import TOPIC_NAME_MAX_LENGTH, Topic, TopicAdd, TopicRemove
from .ownership import OwnershipGuard, device_not_found

TopicNames = Union[str, Sequence[str], None]


def normalize_topic_names(names: TopicNames, validate: bool = True) -> List[str]:
    """Accept a single name or a list of names.

    With ``validate`` each name must be a non-empty string within the
    length bound; lookups pass False since an invalid name simply matches
    nothing.
    """
    if names is None:
        return []
    if isinstance(names, str):
        names = [names]
    elif not isinstance(names, (list, tuple)):
        raise InvalidInputError("Topics must be a name or a list of names")

    if not validate:
        return [name for name in names if isinstance(name, str)]

    normalized = []
    for name in names:
        if not isinstance(name, str) or not name:
            raise InvalidInputError("Topic names must be non-empty strings")
        if len(name) > TOPIC_NAME_MAX_LENGTH:
            raise InvalidInputError(f"Topic name '{name}' exceeds {TOPIC_NAME_MAX_LENGTH} characters")
        normalized.append(name)
    return normalized


def unique_in_order(names: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for name in names:
        if name not in seen:
            seen.add(name)
            ordered.append(name)
    return ordered


def topics_to_add(requested: Iterable[str], current: Iterable[str]) -> List[str]:
    """Requested names not yet present, in request order, without repeats."""
    present = set(current)
    return [name for name in unique_in_order(requested) if name not in present]


def topics_to_remove(current: Sequence[Topic], requested: Iterable[str]) -> List[Topic]:
    """Current topic records whose name was requested, in stored order."""
    wanted = set(requested)
    return [topic for topic in current if topic.name in wanted]


class TopicSetManager:
    """Adds, removes and checks topics on a device the caller owns."""

    def __init__(self, storage: Storage, guard: Optional[OwnershipGuard] = None):
        self.storage = storage
        self.guard = guard or OwnershipGuard(storage)
        self.logger = get_logger("registry.topics")

    async def add_topics(self, owner_id: int, device_id: int, names: TopicNames) -> TopicAdd:
        device = await self.guard.resolve_owned_device(device_id, owner_id)

        added = topics_to_add(normalize_topic_names(names), device.topic_names)
        if not added:
            raise ConflictError("Topics are already registered")

        # Raises ConflictError if a concurrent add got there first
        try:
            await self.storage.add_topics(device.id, added)
        except RecordNotFoundError:
            # Device unregistered since it was resolved
            raise device_not_found(device_id, owner_id)

        self.logger.info("Topics added", device_id=device.id, count=len(added))
        return TopicAdd(topics_added=len(added), topics=added)

    async def remove_topics(self, owner_id: int, device_id: int, names: TopicNames) -> TopicRemove:
        device = await self.guard.resolve_owned_device(device_id, owner_id)

        removed = topics_to_remove(device.topics, normalize_topic_names(names, validate=False))
        if not removed:
            raise ConflictError("Topics are not registered")

        # A concurrent remove may have deleted some of them already
        deleted = set(await self.storage.delete_topics([topic.id for topic in removed]))
        names = [topic.name for topic in removed if topic.id in deleted]
        if not names:
            raise ConflictError("Topics are not registered")

        self.logger.info("Topics removed", device_id=device.id, count=len(names))
        return TopicRemove(topics_removed=len(names), topics=names)

    async def check_topic(self, owner_id: int, device_id: int, name: str) -> bool:
        """True when the topic exists; absence is a ConflictError, not False."""
        device = await self.guard.resolve_owned_device(device_id, owner_id)
        if name not in device.topic_names:
            raise ConflictError("Topic is not registered")
        return True
