"""
Double-buffered intermediate and destination buffers for the blur/warp pass.

Each eye owns two slots, each holding a warp buffer and a destination
buffer. A dispatch holds its slot until it has copied its result out, so a
second dispatch for the same eye (the next frame, or an overlapping call)
works in the other slot. When both slots are busy a transient slot is
allocated rather than waiting. Slots are reallocated when the frame shape
changes.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Tuple

import numpy as np

from ..errors import ResourceExhausted
from ..optics.profile import Eye

log = logging.getLogger(__name__)


def _allocate(shape: Tuple[int, ...]) -> np.ndarray:
    try:
        return np.empty(shape, dtype=np.float32)
    except MemoryError as e:
        raise ResourceExhausted(f"Cannot allocate frame buffer of shape {shape}") from e


class BufferSlot:
    """A warp buffer and its destination, owned by one dispatch at a time."""

    def __init__(self, shape: Tuple[int, ...]):
        self.warp = _allocate(shape)
        self.destination = _allocate(shape)
        self.in_use = False

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.warp.shape


class FrameBuffers:
    """
    Per-eye buffer slots.

    Attributes:
        depth: Number of pooled slots per eye
    """

    def __init__(self, depth: int = 2):
        self.depth = max(int(depth), 1)
        self._lock = threading.Lock()
        self._shapes: Dict[Eye, Tuple[int, ...]] = {}
        self._slots: Dict[Eye, List[BufferSlot]] = {}
        self._next: Dict[Eye, int] = {}

    def acquire(self, eye: Eye, shape: Tuple[int, ...]) -> BufferSlot:
        """
        Take a free slot for the next pass of an eye.

        Pooled slots are handed out in alternation. The caller must give
        the slot back with release_slot().

        Raises:
            ResourceExhausted: If allocation fails. Existing slots are kept.
        """
        shape = tuple(shape)
        with self._lock:
            if self._shapes.get(eye) != shape:
                slots = [BufferSlot(shape) for _ in range(self.depth)]
                log.debug("Allocated %s frame buffers for %s eye", shape, eye.name.lower())
                self._shapes[eye] = shape
                self._slots[eye] = slots
                self._next[eye] = 0

            slots = self._slots[eye]
            start = self._next[eye]
            for offset in range(self.depth):
                index = (start + offset) % self.depth
                slot = slots[index]
                if not slot.in_use:
                    slot.in_use = True
                    self._next[eye] = (index + 1) % self.depth
                    return slot

        log.debug("All %s eye buffer slots busy; allocating a transient slot", eye.name.lower())
        slot = BufferSlot(shape)
        slot.in_use = True
        return slot

    def release_slot(self, slot: BufferSlot) -> None:
        with self._lock:
            slot.in_use = False

    @contextmanager
    def slot(self, eye: Eye, shape: Tuple[int, ...]) -> Iterator[BufferSlot]:
        """Hold a slot for the duration of a with-block."""
        slot = self.acquire(eye, shape)
        try:
            yield slot
        finally:
            self.release_slot(slot)

    def shape(self, eye: Eye):
        return self._shapes.get(eye)

    def busy_count(self, eye: Eye) -> int:
        with self._lock:
            return sum(slot.in_use for slot in self._slots.get(eye, ()))

    def release(self) -> None:
        """Drop every pooled slot. Slots still held by a dispatch stay valid."""
        with self._lock:
            self._shapes.clear()
            self._slots.clear()
            self._next.clear()
