"""
fecom.io.codec

Byte-level encoding of a CommissioningEvent.

Record layout (little endian), field order is the contract:

  preamble        PREAMBLE_DTYPE            magic "FCOM", version, trigger_id
  n_calo          <u4
  calo records    CALO_RECORD_DTYPE x n_calo
  calo samples    <i2 x sum(waveform_data_size)   (concatenated, hit order)
  n_tracker       <u4
  tracker records TRACKER_RECORD_DTYPE x n_tracker
  timestamp types utf-8 bytes, sum(timestamp_type_len)   (concatenated, hit order)

The codec only walks the event's ordered hit sequences, so swapping it for
another wire/archive format does not touch the data model.
"""
from __future__ import annotations
from typing import List, Protocol, Union

import numpy as np

from fecom.data.events import CommissioningEvent
from fecom.data.hits import CaloHit, ChannelType, HitMode, TrackerChannelHit
from fecom.errors import CorruptedStreamError, FecomError, InvariantViolationError

MAGIC = b"FCOM"
FORMAT_VERSION = 1

PREAMBLE_DTYPE = np.dtype([
    ("magic", "S4"),
    ("version", "<u2"),
    ("trigger_id", "<i8"),
])

COUNT_DTYPE = np.dtype("<u4")

_FLAG_LT = 0x1
_FLAG_HT = 0x2
_FLAG_CHARGE_OVERFLOW = 0x4

CALO_RECORD_DTYPE = np.dtype([
    ("hit_mode", "u1"),
    ("flags", "u1"),
    ("hit_id", "<i8"),
    ("slot_index", "<i4"),
    ("trigger_id", "<i8"),
    ("channel", "<i4"),
    ("fcr", "<i4"),
    ("lt_trigger_counter", "<i4"),
    ("lt_time_counter", "<i8"),
    ("raw_baseline", "<i4"),
    ("raw_peak", "<i4"),
    ("raw_charge", "<i4"),
    ("waveform_data_size", "<u4"),
])

SAMPLE_WIRE_DTYPE = np.dtype("<i2")

TRACKER_RECORD_DTYPE = np.dtype([
    ("hit_mode", "u1"),
    ("channel_type", "u1"),
    ("hit_id", "<i8"),
    ("slot_index", "<i4"),
    ("trigger_id", "<i8"),
    ("channel", "<i4"),
    ("feast_id", "<i4"),
    ("timestamp_value", "<i8"),
    ("timestamp_type_len", "<u4"),
])

Buffer = Union[bytes, bytearray, memoryview]


class EventCodec(Protocol):
    name: str

    def encode(self, event: CommissioningEvent) -> bytes:
        """Serialize one event into an opaque record."""

    def decode(self, data: Buffer) -> CommissioningEvent:
        """Rebuild a brand-new event from a record produced by encode()."""


class _Cursor:
    """Sequential reader over a byte buffer; running short is a CorruptedStreamError."""

    def __init__(self, data: Buffer):
        self._buf = memoryview(data).cast("B")
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._buf) - self._pos

    def take(self, dtype: np.dtype, count: int, what: str) -> np.ndarray:
        dtype = np.dtype(dtype)
        nbytes = dtype.itemsize * count
        if nbytes > self.remaining:
            raise CorruptedStreamError(
                f"truncated {what}: need {nbytes} bytes at offset {self._pos}, {self.remaining} left"
            )
        if count == 0:
            return np.zeros(0, dtype=dtype)
        arr = np.frombuffer(self._buf, dtype=dtype, count=count, offset=self._pos).copy()
        self._pos += nbytes
        return arr

    def take_bytes(self, n: int, what: str) -> bytes:
        if n > self.remaining:
            raise CorruptedStreamError(
                f"truncated {what}: need {n} bytes at offset {self._pos}, {self.remaining} left"
            )
        out = self._buf[self._pos:self._pos + n].tobytes()
        self._pos += n
        return out


def _count(n: int) -> bytes:
    return np.array([n], dtype=COUNT_DTYPE).tobytes()


def _check_trigger(event: CommissioningEvent, hit) -> None:
    # Nothing is written for an event whose hits disagree with it
    if hit.trigger_id != event.trigger_id:
        raise InvariantViolationError(
            f"{type(hit).__name__} #{hit.hit_id} has trigger id {hit.trigger_id}, "
            f"event has {event.trigger_id}"
        )


class BinaryEventCodec:
    """
    numpy structured-dtype codec (see module docstring for the layout).
    """

    name = "fecom-binary"

    def __init__(self, diagnostics_level: int = 0):
        self.diagnostics_level = diagnostics_level

    # ------------------------------------------------------------------
    # encode
    # ------------------------------------------------------------------

    def encode(self, event: CommissioningEvent) -> bytes:
        with event.locked():
            calo = list(event.iter_calo_hits())
            tracker = list(event.iter_tracker_channel_hits())

            pre = np.zeros(1, dtype=PREAMBLE_DTYPE)
            pre["magic"] = MAGIC
            pre["version"] = FORMAT_VERSION
            pre["trigger_id"] = event.trigger_id
            chunks: List[bytes] = [pre.tobytes(), _count(len(calo))]

            recs = np.zeros(len(calo), dtype=CALO_RECORD_DTYPE)
            for i, h in enumerate(calo):
                _check_trigger(event, h)
                r = recs[i]
                r["hit_mode"] = int(HitMode.CALORIMETER)
                r["flags"] = (
                    (_FLAG_LT if h.low_threshold else 0)
                    | (_FLAG_HT if h.high_threshold else 0)
                    | (_FLAG_CHARGE_OVERFLOW if h.raw_charge_overflow else 0)
                )
                for key in ("hit_id", "slot_index", "trigger_id", "channel", "fcr",
                            "lt_trigger_counter", "lt_time_counter",
                            "raw_baseline", "raw_peak", "raw_charge", "waveform_data_size"):
                    r[key] = getattr(h, key)
            chunks.append(recs.tobytes())
            if calo:
                samples = np.concatenate([h.waveform for h in calo]).astype(SAMPLE_WIRE_DTYPE)
                chunks.append(samples.tobytes())

            chunks.append(_count(len(tracker)))
            recs = np.zeros(len(tracker), dtype=TRACKER_RECORD_DTYPE)
            labels: List[bytes] = []
            for i, h in enumerate(tracker):
                _check_trigger(event, h)
                label = h.timestamp_type.encode("utf-8")
                labels.append(label)
                r = recs[i]
                r["hit_mode"] = int(HitMode.TRACKER)
                r["channel_type"] = int(ChannelType(h.channel_type))
                for key in ("hit_id", "slot_index", "trigger_id", "channel", "feast_id", "timestamp_value"):
                    r[key] = getattr(h, key)
                r["timestamp_type_len"] = len(label)
            chunks.append(recs.tobytes())
            chunks.append(b"".join(labels))

        data = b"".join(chunks)
        if self.diagnostics_level >= 2:
            print(f"[codec] encoded trigger {event.trigger_id}: "
                  f"{len(calo)} calo + {len(tracker)} tracker hits -> {len(data)} bytes")
        return data

    # ------------------------------------------------------------------
    # decode
    # ------------------------------------------------------------------

    def decode(self, data: Buffer) -> CommissioningEvent:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError(f"decode expects a bytes-like record, got {type(data).__name__}")
        try:
            event = self._decode(_Cursor(data))
        except CorruptedStreamError:
            raise
        except (FecomError, ValueError, UnicodeDecodeError) as exc:
            raise CorruptedStreamError(f"inconsistent record: {exc}") from exc
        if self.diagnostics_level >= 2:
            print(f"[codec] decoded {event!r} from {len(data)} bytes")
        return event

    def _decode(self, cur: _Cursor) -> CommissioningEvent:
        pre = cur.take(PREAMBLE_DTYPE, 1, "preamble")[0]
        if bytes(pre["magic"]) != MAGIC:
            raise CorruptedStreamError(f"bad magic {bytes(pre['magic'])!r}")
        if int(pre["version"]) != FORMAT_VERSION:
            raise CorruptedStreamError(f"unsupported format version {int(pre['version'])}")
        event = CommissioningEvent(int(pre["trigger_id"]))

        n_calo = int(cur.take(COUNT_DTYPE, 1, "calo count")[0])
        recs = cur.take(CALO_RECORD_DTYPE, n_calo, "calo records")
        total = int(recs["waveform_data_size"].astype(np.int64).sum()) if n_calo else 0
        samples = cur.take(SAMPLE_WIRE_DTYPE, total, "calo waveforms")
        offset = 0
        for r in recs:
            if int(r["hit_mode"]) != HitMode.CALORIMETER:
                raise CorruptedStreamError(f"calo record with hit mode {int(r['hit_mode'])}")
            flags = int(r["flags"])
            hit = CaloHit(
                hit_id=int(r["hit_id"]),
                slot_index=int(r["slot_index"]),
                trigger_id=int(r["trigger_id"]),
                channel=int(r["channel"]),
                low_threshold=bool(flags & _FLAG_LT),
                high_threshold=bool(flags & _FLAG_HT),
                fcr=int(r["fcr"]),
                lt_trigger_counter=int(r["lt_trigger_counter"]),
                lt_time_counter=int(r["lt_time_counter"]),
                raw_baseline=int(r["raw_baseline"]),
                raw_peak=int(r["raw_peak"]),
                raw_charge=int(r["raw_charge"]),
                raw_charge_overflow=bool(flags & _FLAG_CHARGE_OVERFLOW),
            )
            n = int(r["waveform_data_size"])
            hit.set_waveform(samples[offset:offset + n])
            offset += n
            event.add_calo_hit(hit)

        n_tracker = int(cur.take(COUNT_DTYPE, 1, "tracker count")[0])
        recs = cur.take(TRACKER_RECORD_DTYPE, n_tracker, "tracker records")
        for r in recs:
            if int(r["hit_mode"]) != HitMode.TRACKER:
                raise CorruptedStreamError(f"tracker record with hit mode {int(r['hit_mode'])}")
            label = cur.take_bytes(int(r["timestamp_type_len"]), "timestamp type")
            hit = TrackerChannelHit(
                hit_id=int(r["hit_id"]),
                slot_index=int(r["slot_index"]),
                trigger_id=int(r["trigger_id"]),
                channel=int(r["channel"]),
                feast_id=int(r["feast_id"]),
                channel_type=ChannelType(int(r["channel_type"])),
                timestamp_type=label.decode("utf-8"),
                timestamp_value=int(r["timestamp_value"]),
            )
            event.add_tracker_channel_hit(hit)

        if cur.remaining:
            raise CorruptedStreamError(f"{cur.remaining} trailing bytes after tracker section")
        return event
