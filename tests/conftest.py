import asyncio
import socket

import pytest


class CollectingSink:
    """Stands in for stdout."""

    def __init__(self):
        self.data = bytearray()

    def write(self, data: bytes):
        self.data.extend(data)

    async def drain(self):
        pass


class FailingSink:

    def write(self, data: bytes):
        raise ConnectionResetError("connection reset by peer")

    async def drain(self):
        pass


def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def sink() -> CollectingSink:
    return CollectingSink()


@pytest.fixture
def failing_sink() -> FailingSink:
    return FailingSink()


@pytest.fixture
def free_port() -> int:
    return unused_port()


@pytest.fixture(autouse=True)
def fresh_event_loop():
    # asyncio.run() leaves no current loop behind; give synchronous test code
    # (e.g. constructing asyncio.StreamReader) a loop regardless of test order.
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield
    asyncio.set_event_loop(None)
    loop.close()
