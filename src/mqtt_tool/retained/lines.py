"""
Non-blocking line sources for purge and restore.

Pipes and terminals are read through an `asyncio.StreamReader`; regular
files (and anything without a usable file descriptor) are read one line
at a time in a worker thread. Either way the event loop keeps running
while input is pending.
"""
import asyncio
import os
import stat
from typing import AsyncIterable, AsyncIterator, IO, Iterable, Optional, Union

Lines = Union[Iterable[str], AsyncIterable[str]]


def _is_pollable(stream: IO[str]) -> bool:
    try:
        mode = os.fstat(stream.fileno()).st_mode
    except (OSError, ValueError):
        return False
    return stat.S_ISFIFO(mode) or stat.S_ISCHR(mode) or stat.S_ISSOCK(mode)


async def _threaded_lines(stream: IO[str]) -> AsyncIterator[str]:
    while True:
        line = await asyncio.to_thread(stream.readline)
        if not line:
            return
        yield line


async def _piped_lines(stream: IO[str]) -> AsyncIterator[str]:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    transport, _ = await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), stream)
    try:
        while True:
            line = await reader.readline()
            if not line:
                return
            yield line.decode("utf-8")
    finally:
        transport.close()


async def read_lines(path: Optional[str], stdin: IO[str]) -> AsyncIterator[str]:
    """Yields lines from `path`, or from stdin when no path is given."""
    if path:
        with open(path, encoding="utf-8") as f:
            async for line in _threaded_lines(f):
                yield line
    elif _is_pollable(stdin):
        async for line in _piped_lines(stdin):
            yield line
    else:
        async for line in _threaded_lines(stdin):
            yield line


async def iterate_lines(lines: Lines) -> AsyncIterator[str]:
    """Lets purge and restore accept plain lists as well as async sources."""
    if hasattr(lines, "__aiter__"):
        async for line in lines:
            yield line
    else:
        for line in lines:
            yield line
