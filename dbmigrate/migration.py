"""A single migration step read from a source and run against a database."""

from __future__ import annotations

import io
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any

DEFAULT_BUFFER_SIZE = 100000
"""In-memory buffer size in bytes for every pre-read migration."""


class _Pipe(io.RawIOBase):
    """In-memory pipe: one thread feeds chunks, another reads them in order."""

    def __init__(self) -> None:
        super().__init__()
        self._cond = threading.Condition()
        self._chunks: deque[bytes] = deque()
        self._eof = False
        self._error: BaseException | None = None

    def readable(self) -> bool:
        return True

    def feed(self, data: bytes) -> None:
        if not data:
            return
        with self._cond:
            self._chunks.append(bytes(data))
            self._cond.notify_all()

    def finish(self, error: BaseException | None = None) -> None:
        with self._cond:
            self._eof = True
            self._error = error
            self._cond.notify_all()

    def readinto(self, buffer: Any) -> int:
        view = memoryview(buffer).cast("B")
        with self._cond:
            while not self._chunks and not self._eof:
                self._cond.wait()
            if self._chunks:
                chunk = self._chunks[0]
                n = min(len(view), len(chunk))
                view[:n] = chunk[:n]
                if n < len(chunk):
                    self._chunks[0] = chunk[n:]
                else:
                    self._chunks.popleft()
                return n
            if self._error is not None:
                raise self._error
            return 0


def _read_chunk(body: Any, size: int) -> bytes:
    data = body.read(size)
    if isinstance(data, str):
        data = data.encode()
    return data or b""


@dataclass(eq=False)
class Migration:
    """A migration from ``version`` to ``target_version``.

    ``target_version`` may be -1, the nil version. A migration without a
    body only moves the recorded version. Times are ``time.monotonic()``
    readings in seconds.
    """

    identifier: str = ""
    version: int = 0
    target_version: int = 0
    body: Any = None
    buffered_body: Any = None
    buffer_size: int = 0
    scheduled: float = 0.0
    started_buffering: float = 0.0
    finished_buffering: float = 0.0
    finished_reading: float = 0.0
    bytes_read: int = 0

    def __str__(self) -> str:
        return f"{self.identifier} [{self.version}=>{self.target_version}]"

    def log_string(self) -> str:
        """Describe the migration for humans, e.g. ``1/u create_users``."""
        direction = "d" if self.target_version < self.version else "u"
        return f"{self.version}/{direction} {self.identifier}"

    def buffer(self) -> None:
        """Read the body into ``buffered_body``, then close the body.

        Meant to run in a background thread while a consumer reads
        ``buffered_body``. Errors reading the body are raised here and
        also passed on to the reader.
        """
        if self.body is None:
            return
        pipe = self.buffered_body
        size = max(self.buffer_size, 1)
        self.started_buffering = time.monotonic()
        try:
            head = bytearray()
            while len(head) < size:
                chunk = _read_chunk(self.body, size - len(head))
                if not chunk:
                    break
                head += chunk
            self.finished_buffering = time.monotonic()

            total = len(head)
            pipe.feed(bytes(head))
            while chunk := _read_chunk(self.body, size):
                total += len(chunk)
                pipe.feed(chunk)
        except BaseException as exc:
            pipe.finish(exc)
            raise

        self.finished_reading = time.monotonic()
        self.bytes_read = total
        pipe.finish()
        self.body.close()


def new_migration(body: Any, identifier: str, version: int, target_version: int) -> Migration:
    """Create a migration; a ``None`` body makes an empty migration."""
    now = time.monotonic()
    migration = Migration(
        identifier=identifier,
        version=version,
        target_version=target_version,
        scheduled=now,
    )
    if body is None:
        if not identifier:
            migration.identifier = "<empty>"
        migration.started_buffering = now
        migration.finished_buffering = now
        migration.finished_reading = now
        return migration

    migration.body = body
    migration.buffer_size = DEFAULT_BUFFER_SIZE
    migration.buffered_body = _Pipe()
    return migration