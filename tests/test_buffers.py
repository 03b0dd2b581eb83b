"""Tests for the pass's double-buffered frame buffers."""

import pytest

from pal_simulator.errors import ResourceExhausted
from pal_simulator.optics.profile import Eye
from pal_simulator.render import buffers as buffers_module
from pal_simulator.render.buffers import FrameBuffers


def test_slots_alternate_per_eye():
    buffers = FrameBuffers(depth=2)
    with buffers.slot(Eye.RIGHT, (8, 8)) as first:
        pass
    with buffers.slot(Eye.RIGHT, (8, 8)) as second:
        pass
    with buffers.slot(Eye.RIGHT, (8, 8)) as third:
        pass

    assert first is not second
    assert third is first
    assert first.warp is not first.destination


def test_busy_slot_is_not_handed_out_again():
    """Overlapping passes for one eye never share a warp buffer."""
    buffers = FrameBuffers(depth=2)
    first = buffers.acquire(Eye.RIGHT, (8, 8))
    second = buffers.acquire(Eye.RIGHT, (8, 8))
    assert first.warp is not second.warp
    assert buffers.busy_count(Eye.RIGHT) == 2

    buffers.release_slot(first)
    assert buffers.acquire(Eye.RIGHT, (8, 8)) is first


def test_transient_slot_when_all_are_busy():
    buffers = FrameBuffers(depth=1)
    held = buffers.acquire(Eye.LEFT, (4, 4))
    extra = buffers.acquire(Eye.LEFT, (4, 4))

    assert extra is not held
    assert extra.shape == (4, 4)
    buffers.release_slot(extra)
    assert buffers.busy_count(Eye.LEFT) == 1


def test_eyes_have_separate_buffers():
    buffers = FrameBuffers()
    right = buffers.acquire(Eye.RIGHT, (4, 4))
    left = buffers.acquire(Eye.LEFT, (4, 4))
    assert right.warp is not left.warp


def test_slot_is_returned_when_the_block_fails():
    buffers = FrameBuffers()
    with pytest.raises(RuntimeError):
        with buffers.slot(Eye.RIGHT, (4, 4)):
            raise RuntimeError("pass failed")
    assert buffers.busy_count(Eye.RIGHT) == 0


def test_shape_change_reallocates():
    buffers = FrameBuffers()
    buffers.acquire(Eye.LEFT, (8, 8))
    slot = buffers.acquire(Eye.LEFT, (16, 8, 3))
    assert slot.warp.shape == (16, 8, 3)
    assert slot.destination.shape == (16, 8, 3)
    assert buffers.shape(Eye.LEFT) == (16, 8, 3)


def test_release_drops_buffers():
    buffers = FrameBuffers()
    buffers.acquire(Eye.RIGHT, (4, 4))
    buffers.release()
    assert buffers.shape(Eye.RIGHT) is None


def test_allocation_failure_keeps_existing_buffers(monkeypatch):
    buffers = FrameBuffers()
    buffers.release_slot(buffers.acquire(Eye.RIGHT, (4, 4)))

    def fail(*args, **kwargs):
        raise MemoryError

    monkeypatch.setattr(buffers_module.np, "empty", fail)
    with pytest.raises(ResourceExhausted):
        buffers.acquire(Eye.RIGHT, (4096, 4096))
    assert buffers.shape(Eye.RIGHT) == (4, 4)
