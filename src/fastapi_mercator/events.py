"""Change notifications emitted by the mapping stores.

Stores report every committed change to a listener instead of dispatching
global hooks.  Implement :class:`MappingEventListener` to forward events to a
queue, an admin activity log, or a cache tier of your own::

    class QueueListener:
        async def emit(self, event: MappingEvent) -> None:
            await queue.put(event.model_dump_json())

    store = MappingStore(backend, cache, listener=QueueListener())

The default listener logs each event at ``INFO`` level via Python's standard
logging.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from fastapi_mercator.core.types import MappingEvent

logger = logging.getLogger(__name__)


@runtime_checkable
class MappingEventListener(Protocol):
    """Structural protocol for mapping event consumers."""

    async def emit(self, event: MappingEvent) -> None:
        """Handle *event*.  Exceptions propagate to the mutating caller."""
        ...


class LoggingEventListener:
    """Writes every event to the ``fastapi_mercator.events`` logger at INFO."""

    async def emit(self, event: MappingEvent) -> None:
        previous = event.previous.domain if event.previous is not None else None
        logger.info(
            "MAPPING EVENT type=%s scope=%s id=%s owner=%s domain=%s active=%s previous=%s",
            event.type,
            event.scope,
            event.mapping.id,
            event.mapping.owner_id,
            event.mapping.domain,
            event.mapping.active,
            previous,
        )


__all__ = ["LoggingEventListener", "MappingEventListener"]
