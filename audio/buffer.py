"""Growable PCM buffer for the capture thread."""

import logging

from config import INITIAL_BUFFER_BYTES

logger = logging.getLogger("voice_transcribe")


class AudioBuffer:
    """Append-only byte buffer that doubles its capacity when full.

    Owned by the capture thread while recording; read by the main thread
    only after that thread has been joined.
    """

    def __init__(self, initial_capacity: int = INITIAL_BUFFER_BYTES) -> None:
        if initial_capacity <= 0:
            raise ValueError("initial_capacity must be positive")
        self.initial_capacity = initial_capacity
        self._data = bytearray(initial_capacity)
        self._length = 0
        self._released = False

    def __len__(self) -> int:
        return self._length

    @property
    def capacity(self) -> int:
        return len(self._data)

    @property
    def released(self) -> bool:
        return self._released

    def append(self, chunk: bytes) -> bool:
        """Appends `chunk`, growing by doubling until it fits.

        Returns:
            False if the chunk was dropped (out of memory or released buffer)
        """
        size = len(chunk)
        if self._released:
            return False
        if size == 0:
            return True

        needed = self._length + size
        if needed > self.capacity:
            new_capacity = self.capacity * 2
            while new_capacity < needed:
                new_capacity *= 2
            try:
                self._data.extend(bytes(new_capacity - self.capacity))
            except MemoryError:
                # Losing one frame beats stalling the capture loop
                logger.warning(f"Buffer growth to {new_capacity} bytes failed, frame dropped")
                return False

        self._data[self._length : needed] = chunk
        self._length = needed
        return True

    def getvalue(self) -> bytes:
        """The captured bytes."""
        return bytes(self._data[: self._length])

    def release(self) -> None:
        """Frees the storage. Further calls are no-ops."""
        if self._released:
            return
        self._released = True
        self._data = bytearray()
        self._length = 0
