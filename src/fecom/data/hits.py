from __future__ import annotations
import sys
from dataclasses import dataclass, field, fields, replace
from enum import IntEnum
from typing import Iterable, Optional, TextIO, Union

import numpy as np

from fecom.errors import IndexOutOfRangeError

INVALID_ID = -1

# Raw ADC samples are stored as signed 16-bit words
SAMPLE_DTYPE = np.int16
_SAMPLE_INFO = np.iinfo(SAMPLE_DTYPE)


class HitMode(IntEnum):
    """Tag of the hit variant (also its wire code)."""
    CALORIMETER = 1
    TRACKER = 2


class ChannelType(IntEnum):
    INVALID = 0
    ANODIC = 1
    CATHODIC = 2


def _emit(text: str, out: Optional[TextIO]) -> str:
    print(text, file=out if out is not None else sys.stdout)
    return text


def _render(title: str, indent: str, rows: list[tuple[str, object]]) -> str:
    lines = []
    if title:
        lines.append(f"{indent}{title}")
    for i, (name, value) in enumerate(rows):
        tag = "`-- " if i == len(rows) - 1 else "|-- "
        lines.append(f"{indent}{tag}{name} : {value}")
    return "\n".join(lines)


def _same_fields(a, b) -> bool:
    return all(getattr(a, f.name) == getattr(b, f.name) for f in fields(a) if f.compare)


def check_word(name: str, value: int, bits: int) -> int:
    """Raise ValueError unless value fits a signed `bits`-wide word."""
    lo, hi = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    if not lo <= value <= hi:
        raise ValueError(f"{name}={value} does not fit a {bits}-bit signed word [{lo}, {hi}]")
    return value


class _WordFields:
    """
    Integer fields that end up in fixed-width wire words are range checked
    on every assignment (constructor included).
    """

    __slots__ = ()
    _WORD_BITS: dict = {}

    def __setattr__(self, name, value):
        bits = self._WORD_BITS.get(name)
        if bits is not None:
            check_word(f"{type(self).__name__}.{name}", value, bits)
        object.__setattr__(self, name, value)


@dataclass(slots=True, eq=False)
class CaloHit(_WordFields):
    """
    One calorimeter channel readout.

    The waveform buffer is sized with `waveform_data_size` before samples
    are written. Resizing clears every sample (no stale data survives a
    resize). Beyond the waveform, the front-end reports a few raw words
    (threshold flags, first cell read, counters, baseline/peak/charge);
    they are carried as-is.

    Ids and counters are 64-bit words, slot/channel/fcr and the raw
    amplitude words are 32-bit; out-of-range values raise ValueError.
    """
    _WORD_BITS = {
        "hit_id": 64, "slot_index": 32, "trigger_id": 64, "channel": 32,
        "fcr": 32, "lt_trigger_counter": 32, "lt_time_counter": 64,
        "raw_baseline": 32, "raw_peak": 32, "raw_charge": 32,
    }

    hit_id: int = INVALID_ID
    slot_index: int = INVALID_ID
    trigger_id: int = INVALID_ID
    channel: int = INVALID_ID

    low_threshold: bool = False
    high_threshold: bool = False
    fcr: int = 0  # first cell read in the circular sampling buffer
    lt_trigger_counter: int = 0
    lt_time_counter: int = 0
    raw_baseline: int = 0
    raw_peak: int = 0
    raw_charge: int = 0
    raw_charge_overflow: bool = False

    _samples: np.ndarray = field(
        default_factory=lambda: np.zeros(0, dtype=SAMPLE_DTYPE), init=False, repr=False, compare=False
    )

    @property
    def hit_mode(self) -> HitMode:
        return HitMode.CALORIMETER

    @property
    def waveform_data_size(self) -> int:
        return int(self._samples.size)

    @waveform_data_size.setter
    def waveform_data_size(self, n: int) -> None:
        n = int(n)
        if n < 0:
            raise ValueError(f"waveform_data_size must be >= 0, got {n}")
        self._samples = np.zeros(n, dtype=SAMPLE_DTYPE)

    @property
    def waveform(self) -> np.ndarray:
        """Read-only view of the samples."""
        view = self._samples.view()
        view.flags.writeable = False
        return view

    def _check_index(self, index: int) -> None:
        if not 0 <= index < self._samples.size:
            raise IndexOutOfRangeError(
                f"sample index {index} outside waveform of size {self._samples.size}"
            )

    def set_raw_sample(self, index: int, value: int) -> None:
        self._check_index(index)
        value = int(value)
        if not _SAMPLE_INFO.min <= value <= _SAMPLE_INFO.max:
            raise ValueError(f"sample value {value} does not fit a 16-bit ADC word")
        self._samples[index] = value

    def get_raw_sample(self, index: int) -> int:
        self._check_index(index)
        return int(self._samples[index])

    def set_waveform(self, samples: Iterable[int]) -> None:
        """Resize to len(samples) and copy them in."""
        arr = np.asarray(list(samples) if not isinstance(samples, np.ndarray) else samples)
        if arr.ndim != 1:
            raise ValueError("waveform must be one-dimensional")
        if arr.size and (arr.min() < _SAMPLE_INFO.min or arr.max() > _SAMPLE_INFO.max):
            raise ValueError("waveform samples do not fit 16-bit ADC words")
        self._samples = arr.astype(SAMPLE_DTYPE, copy=True)

    def is_valid(self) -> bool:
        return self.hit_id >= 0 and self.trigger_id >= 0 and self.slot_index >= 0 and self.channel >= 0

    def copy(self) -> "CaloHit":
        out = replace(self)
        out._samples = self._samples.copy()
        return out

    def __eq__(self, other) -> bool:
        if not isinstance(other, CaloHit):
            return NotImplemented
        return _same_fields(self, other) and np.array_equal(self._samples, other._samples)

    def tree_dump(self, out: Optional[TextIO] = None, title: str = "", indent: str = "") -> str:
        shown = np.array2string(self._samples, threshold=32, max_line_width=120)
        rows = [
            ("Hit ID", self.hit_id),
            ("Hit mode", self.hit_mode.name),
            ("Slot index", self.slot_index),
            ("Trigger ID", self.trigger_id),
            ("Channel", self.channel),
            ("Thresholds (LT/HT)", f"{int(self.low_threshold)}/{int(self.high_threshold)}"),
            ("FCR", self.fcr),
            ("LT trigger counter", self.lt_trigger_counter),
            ("LT time counter", self.lt_time_counter),
            ("Raw baseline", self.raw_baseline),
            ("Raw peak", self.raw_peak),
            ("Raw charge", f"{self.raw_charge}{' (overflow)' if self.raw_charge_overflow else ''}"),
            ("Waveform data size", self.waveform_data_size),
            ("Waveform", shown),
        ]
        return _emit(_render(title, indent, rows), out)


@dataclass(slots=True, eq=False)
class TrackerChannelHit(_WordFields):
    """
    One Geiger channel timestamp.

    channel_type and timestamp_type are independent: nothing checks that
    the timestamp kind suits the channel kind.
    """
    _WORD_BITS = {
        "hit_id": 64, "slot_index": 32, "trigger_id": 64, "channel": 32,
        "feast_id": 32, "timestamp_value": 64,
    }

    hit_id: int = INVALID_ID
    slot_index: int = INVALID_ID
    trigger_id: int = INVALID_ID
    channel: int = INVALID_ID
    feast_id: int = INVALID_ID  # front-end ASIC on the board
    channel_type: ChannelType = ChannelType.INVALID
    timestamp_type: str = ""
    timestamp_value: int = 0

    @property
    def hit_mode(self) -> HitMode:
        return HitMode.TRACKER

    def __post_init__(self) -> None:
        # Rejects out-of-range tags
        self.channel_type = ChannelType(self.channel_type)

    def is_valid(self) -> bool:
        return (
            self.hit_id >= 0
            and self.trigger_id >= 0
            and self.slot_index >= 0
            and self.channel >= 0
            and self.feast_id >= 0
            and self.channel_type is not ChannelType.INVALID
        )

    def copy(self) -> "TrackerChannelHit":
        return replace(self)

    def __eq__(self, other) -> bool:
        if not isinstance(other, TrackerChannelHit):
            return NotImplemented
        return _same_fields(self, other)

    def tree_dump(self, out: Optional[TextIO] = None, title: str = "", indent: str = "") -> str:
        rows = [
            ("Hit ID", self.hit_id),
            ("Hit mode", self.hit_mode.name),
            ("Slot index", self.slot_index),
            ("Trigger ID", self.trigger_id),
            ("Channel", self.channel),
            ("FEAST ID", self.feast_id),
            ("Channel type", self.channel_type.name),
            ("Timestamp type", repr(self.timestamp_type)),
            ("Timestamp value", self.timestamp_value),
        ]
        return _emit(_render(title, indent, rows), out)


Hit = Union[CaloHit, TrackerChannelHit]
