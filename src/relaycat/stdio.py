import asyncio
import os
import stat
import sys
from typing import BinaryIO, TextIO

from .common import Sink, Source


def _is_pipe(fd: int) -> bool:
    mode = os.fstat(fd).st_mode
    return stat.S_ISFIFO(mode) or stat.S_ISSOCK(mode)


def _is_pollable(fd: int) -> bool:
    # Character devices such as /dev/null cannot be registered with epoll.
    return _is_pipe(fd) or os.isatty(fd)


class FileReader:
    """Reads a file the event loop cannot poll, such as a regular file or /dev/null."""

    def __init__(self, fd: int):
        self._fd = fd

    async def read(self, n: int = -1) -> bytes:
        if n < 0:
            n = 1024 ** 2
        return await asyncio.to_thread(os.read, self._fd, n)


class FileWriter:
    """Writes synchronously to a terminal or a regular file."""

    def __init__(self, file: BinaryIO):
        self._file = file

    def write(self, data: bytes):
        self._file.write(data)

    async def drain(self):
        self._file.flush()


async def connect_stdin_stdout(
    stdin: TextIO = sys.stdin, stdout: TextIO = sys.stdout
) -> tuple[Source, Sink]:
    loop = asyncio.get_running_loop()

    if _is_pollable(stdin.fileno()):
        reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(reader)
        await loop.connect_read_pipe(lambda: protocol, stdin)
    else:
        reader = FileReader(stdin.fileno())

    if _is_pipe(stdout.fileno()):
        w_transport, w_protocol = await loop.connect_write_pipe(
            asyncio.streams.FlowControlMixin, stdout
        )
        writer = asyncio.StreamWriter(w_transport, w_protocol, None, loop)
    else:
        writer = FileWriter(stdout.buffer)

    return reader, writer
