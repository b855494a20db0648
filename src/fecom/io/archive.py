"""
fecom.io.archive

HDF5 storage of encoded commissioning events.

Layout:

  /                     attrs: format_version, created_utc, software, codec,
                               config_text (optional)
  /events/<NNNNNN>      (nbytes,) uint8   one opaque codec record per event
                        attrs: trigger_id, n_calo_hits, n_tracker_hits

The archive never looks inside a record; event structure is the codec's
business (fecom.io.codec).
"""
from __future__ import annotations
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

import h5py
import numpy as np

from fecom.data.events import CommissioningEvent
from fecom.errors import CorruptedStreamError
from fecom.io.codec import BinaryEventCodec, EventCodec

FORMAT_VERSION = "1.0"
SOFTWARE = "fecom 0.1.0"
EVENTS_GROUP = "events"


def _record_name(index: int) -> str:
    return f"{index:06d}"


class EventArchiveWriter:
    """
    Append-only event archive.

    Usage:
        with EventArchiveWriter(path) as w:
            w.store(event)
    """

    def __init__(
        self,
        path: str | Path,
        *,
        codec: Optional[EventCodec] = None,
        config_text: Optional[str] = None,
        compression: Optional[str] = "gzip",
        diagnostics_level: int = 0,
    ) -> None:
        self.path = Path(path)
        self.codec = codec if codec is not None else BinaryEventCodec(diagnostics_level)
        self.compression = None if compression in (None, "none") else compression
        self.diagnostics_level = diagnostics_level

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._f = h5py.File(str(self.path), "w")
        self._f.attrs["format_version"] = FORMAT_VERSION
        self._f.attrs["created_utc"] = datetime.now(timezone.utc).isoformat()
        self._f.attrs["software"] = SOFTWARE
        self._f.attrs["codec"] = self.codec.name
        if config_text is not None:
            self._f.attrs["config_text"] = config_text
        self._events = self._f.create_group(EVENTS_GROUP)
        self._count = 0

    def __len__(self) -> int:
        return self._count

    def store(self, event: CommissioningEvent) -> int:
        """Encode and append one event; returns its index in the archive."""
        record = self.codec.encode(event)
        name = _record_name(self._count)
        dset = self._events.create_dataset(
            name,
            data=np.frombuffer(record, dtype=np.uint8),
            compression=self.compression,
        )
        dset.attrs["trigger_id"] = event.trigger_id
        dset.attrs["n_calo_hits"] = len(event.calo_hits)
        dset.attrs["n_tracker_hits"] = len(event.tracker_channel_hits)
        if self.diagnostics_level >= 2:
            print(f"[archive] stored trigger {event.trigger_id} as /{EVENTS_GROUP}/{name} ({len(record)} bytes)")
        self._count += 1
        return self._count - 1

    def close(self) -> None:
        if self._f.id.valid:
            self._f.close()
            if self.diagnostics_level >= 1:
                print(f"[archive] wrote {self._count} events to {self.path}")

    def __enter__(self) -> "EventArchiveWriter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class EventArchiveReader:
    """
    Random-access / sequential reader for archives written by EventArchiveWriter.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        codec: Optional[EventCodec] = None,
        diagnostics_level: int = 0,
    ) -> None:
        self.path = Path(path)
        self.codec = codec if codec is not None else BinaryEventCodec(diagnostics_level)
        self.diagnostics_level = diagnostics_level
        self._f = h5py.File(str(self.path), "r")
        if EVENTS_GROUP not in self._f:
            self._f.close()
            raise CorruptedStreamError(f"{self.path} has no /{EVENTS_GROUP} group")
        self._events = self._f[EVENTS_GROUP]
        self._names = sorted(self._events.keys())

    @property
    def attrs(self) -> dict:
        return {k: self._f.attrs[k] for k in self._f.attrs}

    def __len__(self) -> int:
        return len(self._names)

    def load(self, index: int) -> CommissioningEvent:
        if not 0 <= index < len(self._names):
            raise IndexError(f"event index {index} outside archive of {len(self._names)} events")
        dset = self._events[self._names[index]]
        if dset.dtype != np.uint8 or dset.ndim != 1:
            raise CorruptedStreamError(f"record {dset.name} is not a byte record ({dset.dtype}, {dset.shape})")
        record = np.asarray(dset[()], dtype=np.uint8).tobytes()
        event = self.codec.decode(record)
        if self.diagnostics_level >= 2:
            print(f"[archive] loaded {event!r} from {dset.name}")
        return event

    def __iter__(self) -> Iterator[CommissioningEvent]:
        for i in range(len(self._names)):
            yield self.load(i)

    def close(self) -> None:
        if self._f.id.valid:
            self._f.close()

    def __enter__(self) -> "EventArchiveReader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
