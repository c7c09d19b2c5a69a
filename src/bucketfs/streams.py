import asyncio
from typing import AsyncIterator, Awaitable, Callable, Optional

from loguru import logger

from bucketfs.config import UPLOAD_QUEUE_SIZE
from bucketfs.errors import UploadError

_EOF = object()


class ReadStream:
    """Readable byte stream bound to the key it was opened for.

    Iterate it for chunks or call ``read()`` for the whole remaining body.
    The underlying connection is released when iteration ends or on ``aclose()``.
    """

    def __init__(
        self,
        client_path: str,
        chunks: AsyncIterator[bytes],
        closer: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.client_path = client_path
        self._chunks = chunks
        self._closer = closer
        self._closed = False

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._chunks:
                if chunk:
                    yield chunk
        finally:
            await self.aclose()

    async def read(self) -> bytes:
        return b"".join([chunk async for chunk in self])

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._closer is not None:
            await self._closer()

    async def __aenter__(self) -> "ReadStream":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


class ChannelReader:
    """Backend-facing end of an upload channel.

    Supports ``await read(size)`` for SDKs that want a file-like object and
    async iteration for SDKs that take an async iterable body.
    """

    def __init__(self, queue: asyncio.Queue):
        self._queue = queue
        self._buffer = bytearray()
        self._eof = False

    async def _next_chunk(self) -> bytes | None:
        if self._eof:
            return None
        item = await self._queue.get()
        if item is _EOF:
            self._eof = True
            return None
        return item

    async def read(self, size: int = -1) -> bytes:
        while size is None or size < 0 or len(self._buffer) < size:
            chunk = await self._next_chunk()
            if chunk is None:
                break
            self._buffer.extend(chunk)

        if size is None or size < 0:
            size = len(self._buffer)
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def __aiter__(self) -> "ChannelReader":
        return self

    async def __anext__(self) -> bytes:
        if self._buffer:
            data = bytes(self._buffer)
            self._buffer.clear()
            return data
        chunk = await self._next_chunk()
        if chunk is None:
            raise StopAsyncIteration
        return chunk


class UploadChannel:
    """Caller-facing end of an upload.

    The persist coroutine is started as a task when the channel is built and
    drains the channel concurrently while the caller writes. The caller must
    ``close()`` the channel; a failure of the persist task is raised as
    ``UploadError`` from the next ``write()`` or from ``close()``.
    """

    def __init__(
        self,
        client_path: str,
        persist: Callable[[ChannelReader], Awaitable[None]],
        queue_size: int = UPLOAD_QUEUE_SIZE,
    ):
        self.client_path = client_path
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._closed = False
        self.reader = ChannelReader(self._queue)
        self._task = asyncio.create_task(persist(self.reader))
        self._task.add_done_callback(self._on_persist_done)

    def _on_persist_done(self, task: asyncio.Task) -> None:
        error = self.exception()
        if error is not None:
            logger.error(f"Error persisting '{self.client_path}': {error!r}")
        else:
            logger.debug(f"Persisted '{self.client_path}'")

        # Wake a writer blocked on a full queue.
        while not self._queue.empty():
            self._queue.get_nowait()

    def _raise_if_failed(self) -> None:
        error = self.exception()
        if error is not None:
            raise UploadError(self.client_path, error) from error

    @property
    def closed(self) -> bool:
        return self._closed

    def done(self) -> bool:
        return self._task.done()

    def exception(self) -> BaseException | None:
        if not self._task.done():
            return None
        if self._task.cancelled():
            return asyncio.CancelledError()
        return self._task.exception()

    async def write(self, data: bytes) -> None:
        if self._closed:
            raise ValueError(f"Upload channel for '{self.client_path}' is closed")
        self._raise_if_failed()
        if self._task.done():
            raise UploadError(
                self.client_path,
                RuntimeError("upload finished before the channel was closed"),
            )
        if not data:
            return

        await self._queue.put(bytes(data))
        self._raise_if_failed()

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            if not self._task.done():
                await self._queue.put(_EOF)
        await self.wait_closed()

    async def wait_closed(self) -> None:
        await asyncio.wait({self._task})
        self._raise_if_failed()

    async def __aenter__(self) -> "UploadChannel":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is None:
            await self.close()
            return

        try:
            await self.close()
        except UploadError as e:
            logger.warning(f"Upload of '{self.client_path}' also failed: {e}")
