"""
Byte-stream producers for synthesized audio.

Synthesis providers hand back audio in one of several shapes. Each shape gets
an adapter exposing the same async ``chunks()`` iterator, so delivery never
has to care which one it got.
"""

import inspect
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Optional

from logger import get_logger

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 16 * 1024


class AudioStream:
    """Single internal interface for an outbound audio byte stream."""

    shape = "unknown"

    def __init__(self, on_close: Optional[Callable[[], Awaitable[None]]] = None):
        self._on_close = on_close
        self._closed = False

    async def _produce(self) -> AsyncIterator[bytes]:
        raise NotImplementedError
        yield b""

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield every non-empty chunk in order, then release the source."""
        try:
            async for chunk in self._produce():
                if chunk:
                    yield bytes(chunk)
        finally:
            await self.aclose()

    async def read_all(self) -> bytes:
        return b"".join([chunk async for chunk in self.chunks()])

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._on_close is not None:
            await self._on_close()


class PushStreamAdapter(AudioStream):
    """Source pushes chunks to us: an async iterator or async generator."""

    shape = "push"

    def __init__(self, source: Any, on_close=None):
        super().__init__(on_close)
        self._source = source

    async def _produce(self) -> AsyncIterator[bytes]:
        async for chunk in self._source:
            yield chunk


class IterableStreamAdapter(AudioStream):
    """Synchronous iterable of chunks, such as a list or generator."""

    shape = "iterable"

    def __init__(self, source: Iterable[bytes], on_close=None):
        super().__init__(on_close)
        self._source = source

    async def _produce(self) -> AsyncIterator[bytes]:
        for chunk in self._source:
            yield chunk


class PullStreamAdapter(AudioStream):
    """We pull from a reader exposing ``read(size)``, sync or async."""

    shape = "pull"

    def __init__(self, reader: Any, chunk_size: int = DEFAULT_CHUNK_SIZE, on_close=None):
        super().__init__(on_close)
        self._reader = reader
        self._chunk_size = chunk_size

    async def _produce(self) -> AsyncIterator[bytes]:
        while True:
            chunk = self._reader.read(self._chunk_size)
            if inspect.isawaitable(chunk):
                chunk = await chunk
            if not chunk:
                break
            yield chunk


class BufferAdapter(AudioStream):
    """The whole payload arrived at once."""

    shape = "buffer"

    def __init__(self, payload: Any, on_close=None):
        super().__init__(on_close)
        self._payload = payload

    async def _produce(self) -> AsyncIterator[bytes]:
        payload = self._payload
        # Response-like objects that only offer the whole body
        if not isinstance(payload, (bytes, bytearray, memoryview)):
            payload = payload.content
        yield bytes(payload)


def to_audio_stream(payload: Any, on_close=None) -> AudioStream:
    """
    Wrap whatever a synthesis provider returned in the matching adapter.

    Raises:
        TypeError: If the payload has none of the admissible shapes
    """
    if isinstance(payload, AudioStream):
        return payload
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return BufferAdapter(payload, on_close=on_close)
    if hasattr(payload, "__aiter__"):
        return PushStreamAdapter(payload, on_close=on_close)
    if hasattr(payload, "read"):
        return PullStreamAdapter(payload, on_close=on_close)
    if hasattr(payload, "content"):
        return BufferAdapter(payload, on_close=on_close)
    if hasattr(payload, "__iter__") and not isinstance(payload, str):
        return IterableStreamAdapter(payload, on_close=on_close)

    logger.error("Unsupported audio payload", payload_type=type(payload).__name__)
    raise TypeError(f"Unsupported audio payload type: {type(payload).__name__}")


async def close_payload(payload: Any) -> None:
    """Release a provider result that never made it into an AudioStream."""
    for name in ("aclose", "close"):
        close = getattr(payload, name, None)
        if not callable(close):
            continue
        try:
            result = close()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Could not close audio payload: {e}", payload_type=type(payload).__name__)
        return
