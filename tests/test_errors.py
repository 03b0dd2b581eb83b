"""Tests for the error taxonomy."""

import pytest

from pal_simulator.errors import (
    CapabilityUnavailable,
    DegradedInput,
    GenerationCancelled,
    InvalidArgument,
    PalSimulationError,
    ResourceExhausted,
)


@pytest.mark.parametrize("error, builtin", [
    (InvalidArgument, ValueError),
    (ResourceExhausted, MemoryError),
    (CapabilityUnavailable, RuntimeError),
    (DegradedInput, UserWarning),
])
def test_errors_are_catchable_as_builtins(error, builtin):
    with pytest.raises(builtin):
        raise error("boom")


@pytest.mark.parametrize("error", [
    InvalidArgument, ResourceExhausted, CapabilityUnavailable, DegradedInput, GenerationCancelled,
])
def test_errors_share_a_base(error):
    assert issubclass(error, PalSimulationError)
