"""Bounded-memory streaming decompression of ZIP entry data.

A producer thread feeds the compressed slice through a raw DEFLATE decoder in
fixed-size chunks and hands decoded blocks to the consumer through a bounded
queue. The consumer is an ordinary generator running in the caller's thread.
When the consumer falls behind, ``queue.put`` blocks the producer, so at most
``max_pending_chunks`` decoded blocks are ever waiting in memory.

Multi-hundred-MB Apple Health exports are never materialised as one string:
callers iterate over :meth:`StreamingDecompressor.iter_text` and keep only a
small rolling window of text.
"""

from __future__ import annotations

import codecs
import logging
import queue
import threading
import zlib
from collections.abc import Callable, Iterator
from typing import Protocol

from bioage.core.archive.errors import (
    DecompressionError,
    ImportCancelledError,
    UnsupportedCompressionError,
)
from bioage.core.archive.reader import METHOD_DEFLATE, METHOD_STORED

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_MAX_PENDING_CHUNKS = 4

# Poll interval for the producer while waiting on a full queue, so it can
# notice that the consumer has gone away.
_PUT_TIMEOUT_S = 0.1
_JOIN_TIMEOUT_S = 5.0

ProgressCallback = Callable[[int], None]


class CancellationToken(Protocol):
    """Anything with ``is_set()`` — ``threading.Event`` is the usual choice."""

    def is_set(self) -> bool:
        ...


_DONE = object()


class _Producer(threading.Thread):
    """Decodes compressed chunks and pushes the output onto ``channel``."""

    def __init__(
        self,
        data: memoryview,
        method: int,
        chunk_size: int,
        channel: queue.Queue,
        cancel: CancellationToken | None,
    ) -> None:
        super().__init__(name="bioage-inflate", daemon=True)
        self._data = data
        self._method = method
        self._chunk_size = chunk_size
        self._channel = channel
        self._cancel = cancel
        self.stopped = threading.Event()
        self.written = 0

    def _put(self, item: object) -> bool:
        while not self.stopped.is_set():
            try:
                self._channel.put(item, timeout=_PUT_TIMEOUT_S)
                return True
            except queue.Full:
                continue
        return False

    def _cancelled(self) -> bool:
        return self._cancel is not None and self._cancel.is_set()

    def run(self) -> None:
        try:
            self._pump()
        except zlib.error as exc:
            self._put(DecompressionError(f"Malformed deflate data: {exc}"))
        except Exception as exc:
            # Re-raised on the consumer side.
            self._put(exc)

    def _pump(self) -> None:
        total = len(self._data)
        decoder = zlib.decompressobj(-zlib.MAX_WBITS) if self._method == METHOD_DEFLATE else None

        for start in range(0, total, self._chunk_size):
            if self.stopped.is_set():
                return
            if self._cancelled():
                self._put(ImportCancelledError())
                return

            end = min(start + self._chunk_size, total)
            block = self._data[start:end]
            if decoder is None:
                out = bytes(block)
                if out and not self._put(out):
                    return
            else:
                # Cap each decoded piece so a highly compressible chunk cannot
                # balloon into one huge allocation.
                out = decoder.decompress(block, self._chunk_size)
                if out and not self._put(out):
                    return
                while decoder.unconsumed_tail:
                    out = decoder.decompress(decoder.unconsumed_tail, self._chunk_size)
                    if out and not self._put(out):
                        return
            self.written = end

        if decoder is not None:
            tail = decoder.flush()
            if tail and not self._put(tail):
                return
            if not decoder.eof:
                raise DecompressionError("Deflate stream ended unexpectedly — the archive entry is truncated.")

        self._put(_DONE)


class StreamingDecompressor:
    """Producer/consumer decompression with backpressure.

    Usage::

        inflater = StreamingDecompressor()
        for text in inflater.iter_text(raw, method=8, progress=print):
            ...
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_pending_chunks: int = DEFAULT_MAX_PENDING_CHUNKS,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if max_pending_chunks <= 0:
            raise ValueError("max_pending_chunks must be positive")
        self._chunk_size = chunk_size
        self._max_pending = max_pending_chunks

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def iter_bytes(
        self,
        data: bytes | memoryview,
        method: int,
        *,
        progress: ProgressCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> Iterator[bytes]:
        """Yield decoded byte blocks in order.

        Raises:
            UnsupportedCompressionError: ``method`` is not stored/deflate.
            DecompressionError: malformed or truncated deflate stream.
            ImportCancelledError: ``cancel`` was set mid-stream.
        """
        if method not in (METHOD_STORED, METHOD_DEFLATE):
            raise UnsupportedCompressionError(method)

        view = memoryview(data)
        total = len(view)
        channel: queue.Queue = queue.Queue(maxsize=self._max_pending)
        producer = _Producer(view, method, self._chunk_size, channel, cancel)
        producer.start()
        last_reported = -1

        try:
            while True:
                if cancel is not None and cancel.is_set():
                    raise ImportCancelledError()
                item = channel.get()
                if item is _DONE:
                    break
                if isinstance(item, BaseException):
                    raise item
                yield item
                if progress is not None and total:
                    pct = min(99, round(producer.written / total * 100))
                    if pct != last_reported:
                        last_reported = pct
                        progress(pct)
        finally:
            producer.stopped.set()
            producer.join(timeout=_JOIN_TIMEOUT_S)
            if producer.is_alive():  # pragma: no cover
                logger.warning("Decompression worker did not stop within %.1fs", _JOIN_TIMEOUT_S)

    def iter_text(
        self,
        data: bytes | memoryview,
        method: int,
        *,
        progress: ProgressCallback | None = None,
        cancel: CancellationToken | None = None,
        encoding: str = "utf-8",
    ) -> Iterator[str]:
        """Yield decoded text; multi-byte characters split across blocks survive."""
        decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        for block in self.iter_bytes(data, method, progress=progress, cancel=cancel):
            text = decoder.decode(block)
            if text:
                yield text
        tail = decoder.decode(b"", final=True)
        if tail:
            yield tail

    def decompress_bytes(
        self,
        data: bytes | memoryview,
        method: int,
        *,
        cancel: CancellationToken | None = None,
    ) -> bytes:
        """Materialise a whole entry — only for entries known to be small."""
        return b"".join(self.iter_bytes(data, method, cancel=cancel))
