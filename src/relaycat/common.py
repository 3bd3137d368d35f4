import asyncio
import dataclasses
from typing import Protocol

from .logging import get_logger
from .scope import Scope


LOGGER = get_logger(__name__)


class GenericException(Exception):
    def __init__(self, msg: str):
        super().__init__(msg)
        self._msg = msg

    @property
    def message(self) -> str:
        return self._msg


class FatalError(GenericException):
    """An error that ends the whole run."""


class HostUnreachableError(FatalError):
    """Raised when the endpoint cannot be looked up, bound or dialed."""


class Constants:

    DEFAULT_PORT = 31337

    CHUNK_SIZE = 8192
    BUS_CAPACITY = 16
    LISTEN_BACKLOG = 128


class Source(Protocol):
    async def read(self, n: int = -1) -> bytes: ...


class Sink(Protocol):
    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...


async def pump(source: Source, sink: Sink, chunk_size: int = Constants.CHUNK_SIZE) -> int:
    """Copies bytes from `source` to `sink` until `source` reaches end-of-stream.

    Parameters
    ----------
    source : Source
        Anything with an async ``read(n)`` returning ``b""`` at end-of-stream.
    sink : Sink
        Anything with ``write(data)`` and an async ``drain()``.
    chunk_size : int
        Maximum number of bytes read at a time.

    Returns
    -------
    int
        The number of bytes copied.

    Raises
    ------
    OSError
        If reading or writing fails.
    """

    total = 0
    while True:
        data = await source.read(chunk_size)

        if not data:
            return total

        sink.write(data)
        await sink.drain()
        total += len(data)


@dataclasses.dataclass(slots=True, eq=False)
class Session:
    peer: str
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    scope: Scope

    def __str__(self) -> str:
        return self.peer

    def half_close(self):
        if self.writer.is_closing():
            return
        if self.writer.can_write_eof():
            self.writer.write_eof()

    async def close(self):
        if self.writer.is_closing():
            return

        self.writer.close()
        try:
            await self.writer.wait_closed()
        except ConnectionError as e:
            LOGGER.debug("Connection %s closed uncleanly: %s", self.peer, e)
