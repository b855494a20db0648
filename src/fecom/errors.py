# src/fecom/errors.py
from __future__ import annotations


class FecomError(Exception):
    """Base class for recoverable commissioning errors."""


class OutOfRangeError(FecomError, IndexError):
    """A geometry coordinate or electronic address lies outside the declared topology."""


class IndexOutOfRangeError(FecomError, IndexError):
    """A waveform sample index is beyond the declared waveform size."""


class InvariantViolationError(FecomError, ValueError):
    """
    A commissioning event invariant was broken at mutation time:
    hit trigger id differs from the event trigger id, the trigger id
    was changed after hits were added, or the event is locked for writing.
    """


class CorruptedStreamError(FecomError, ValueError):
    """Decoding met malformed, truncated or inconsistent data."""
