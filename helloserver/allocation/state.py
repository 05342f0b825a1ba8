# ------------------------------------------------------------------------------
# FILE: helloserver/allocation/state.py
# ------------------------------------------------------------------------------
import threading
from dataclasses import dataclass

from helloserver.errors.fatal import AllocationLimitReached


@dataclass(frozen=True)
class AllocationSnapshot:
    count: int
    target: int
    chunk_size_bytes: int
    buffer_bytes: int

    @property
    def is_full(self) -> bool:
        return self.count >= self.target


class AllocationState:
    """Chunk counter and the buffer it describes.

    The allocator loop is the only writer. Readers go through `snapshot()`,
    which takes the same lock as the writer so count and buffer length are
    always observed together.
    """

    def __init__(self, target: int, chunk_size_bytes: int):
        if target < 0:
            raise ValueError("target must be >= 0")
        if chunk_size_bytes <= 0:
            raise ValueError("chunk_size_bytes must be > 0")
        self._target = int(target)
        self._chunk_size_bytes = int(chunk_size_bytes)
        self._count = 0
        self._buffer = bytearray()
        self._lock = threading.Lock()

    @property
    def target(self) -> int:
        return self._target

    @property
    def chunk_size_bytes(self) -> int:
        return self._chunk_size_bytes

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    @property
    def buffer_bytes(self) -> int:
        with self._lock:
            return len(self._buffer)

    def is_full(self) -> bool:
        with self._lock:
            return self._count >= self._target

    def allocate_chunk(self) -> int:
        # zero-filled chunk; extending the bytearray writes every page
        chunk = bytearray(self._chunk_size_bytes)
        with self._lock:
            if self._count >= self._target:
                raise AllocationLimitReached(self._count, self._target)
            self._buffer += chunk
            self._count += 1
            return self._count

    def snapshot(self) -> AllocationSnapshot:
        with self._lock:
            return AllocationSnapshot(
                count=self._count,
                target=self._target,
                chunk_size_bytes=self._chunk_size_bytes,
                buffer_bytes=len(self._buffer),
            )
