import asyncio
import logging
from typing import AsyncIterator, Callable, Optional, Set

from adventure.schemas.story import SessionSnapshot

logger = logging.getLogger(__name__)


class SnapshotBroadcaster:
    """
    Fans session snapshots out to every connected event stream.
    """

    def __init__(self):
        self.listeners: Set[asyncio.Queue] = set()

    def publish(self, snapshot: SessionSnapshot):
        message = snapshot.model_dump_json()
        for queue in list(self.listeners):
            queue.put_nowait(message)

    async def listen(self, current: Optional[Callable[[], SessionSnapshot]] = None) -> AsyncIterator[str]:
        """
        Yields serialized snapshots until the consumer goes away.

        `current` is read only after the listener is registered, so no
        transition can fall between the first snapshot and the updates.
        """
        queue: asyncio.Queue = asyncio.Queue()
        self.listeners.add(queue)
        logger.info("Event stream connected (%d listeners).", len(self.listeners))
        try:
            if current is not None:
                yield current().model_dump_json()
            while True:
                yield await queue.get()
        finally:
            self.listeners.discard(queue)
            logger.info("Event stream disconnected (%d listeners).", len(self.listeners))

broadcaster = SnapshotBroadcaster()

async def sse_generator(current: Callable[[], SessionSnapshot], source: SnapshotBroadcaster = broadcaster):
    """
    An async generator that yields SSE-formatted snapshot messages.
    The current snapshot is sent first so a fresh page renders immediately.
    """
    stream = source.listen(current)
    try:
        async for message in stream:
            yield f"event: snapshot\ndata: {message}\n\n"
    finally:
        await stream.aclose()
