import asyncio
import collections
from typing import Callable

from .common import Constants
from .logging import get_logger


LOGGER = get_logger(__name__)


class Closed(Exception):
    """The publisher is closed and every retained chunk has been delivered."""


class Lagged(Exception):
    """The subscriber fell behind and `skipped` chunks were overwritten."""

    def __init__(self, skipped: int):
        super().__init__(f"Subscriber lagged behind by {skipped} chunks.")
        self.skipped = skipped


class Bus:
    """A single producer, multi consumer channel of byte chunks.

    The bus retains the last `capacity` chunks. Publishing never waits for
    subscribers: a subscriber that falls further behind than that loses the
    oldest chunks it has not read yet.
    """

    def __init__(self, capacity: int = Constants.BUS_CAPACITY):
        if capacity < 1:
            raise ValueError("Capacity must be at least 1.")

        self._buffer = collections.deque[bytes](maxlen=capacity)
        self._next_sequence = 0
        self._subscribers = 0
        self._closed = False
        self._published = asyncio.Event()

        self.publisher = Publisher(self)

    @property
    def capacity(self) -> int:
        return self._buffer.maxlen

    @property
    def subscribers(self) -> int:
        return self._subscribers

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def _oldest_sequence(self) -> int:
        return self._next_sequence - len(self._buffer)

    def _wake(self):
        self._published.set()
        self._published = asyncio.Event()

    def _publish(self, chunk: bytes) -> bool:
        if self._closed:
            raise Closed()

        if self._subscribers == 0:
            return False

        self._buffer.append(chunk)
        self._next_sequence += 1
        self._wake()
        return True

    def _close(self):
        if self._closed:
            return
        self._closed = True
        self._wake()

    def subscribe(self) -> "Subscriber":
        """Returns a subscriber that receives every chunk published from now on."""

        self._subscribers += 1
        return Subscriber(self, self._next_sequence)

    def _unsubscribe(self):
        self._subscribers -= 1
        if self._subscribers == 0:
            self._buffer.clear()


class Publisher:

    def __init__(self, bus: Bus):
        self._bus = bus

    def publish(self, chunk: bytes) -> bool:
        """Publishes a chunk to every subscriber.

        Returns
        -------
        bool
            False if there were no subscribers and the chunk was dropped.

        Raises
        ------
        Closed
            If the publisher has been closed.
        """

        return self._bus._publish(chunk)

    def write(self, data: bytes):
        self.publish(data)

    async def drain(self):
        # Let subscribers run before the next chunk is read.
        await asyncio.sleep(0)

    def close(self):
        self._bus._close()


class Subscriber:

    def __init__(self, bus: Bus, cursor: int):
        self._bus = bus
        self._cursor = cursor
        self._closed = False

    async def next(self) -> bytes:
        """Waits for the next chunk.

        Raises
        ------
        Lagged
            Chunks were overwritten before this subscriber read them. The
            subscriber resumes from the oldest retained chunk.
        Closed
            The publisher is closed and nothing is left to read.
        """

        bus = self._bus

        while True:
            oldest = bus._oldest_sequence
            if self._cursor < oldest:
                skipped = oldest - self._cursor
                self._cursor = oldest
                raise Lagged(skipped)

            if self._cursor < bus._next_sequence:
                chunk = bus._buffer[self._cursor - oldest]
                self._cursor += 1
                return chunk

            if bus._closed:
                raise Closed()

            await bus._published.wait()

    async def read(self, n: int = -1) -> bytes:
        """Returns the next whole chunk, or b"" once the bus is closed.

        `n` is accepted for compatibility with stream readers; chunks are
        never split.
        """

        while True:
            try:
                return await self.next()
            except Lagged as e:
                LOGGER.warning("%s Resuming.", e)
            except Closed:
                return b""

    def close(self):
        if self._closed:
            return
        self._closed = True
        self._bus._unsubscribe()

    def __enter__(self) -> "Subscriber":
        return self

    def __exit__(self, *exc_info):
        self.close()


def new_bus(capacity: int = Constants.BUS_CAPACITY) -> tuple[Publisher, Callable[[], Subscriber]]:
    bus = Bus(capacity)
    return bus.publisher, bus.subscribe
