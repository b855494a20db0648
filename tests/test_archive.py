from pathlib import Path

import h5py
import numpy as np
import pytest

from fecom.data.events import CommissioningEvent
from fecom.errors import CorruptedStreamError
from fecom.io.archive import EventArchiveReader, EventArchiveWriter
from fecom.io.tables import CALO_COLUMNS, TRACKER_COLUMNS, hits_to_frames
from fecom.mapping.electronic import AddressMapper
from fecom.sim.synth import random_commissioning_event, reference_commissioning_event
from fecom.vis.waveform import save_waveform_png


def _events():
    rng = np.random.default_rng(7)
    return [
        reference_commissioning_event(12),
        CommissioningEvent(13),
        random_commissioning_event(14, AddressMapper(), n_calo_hits=2, n_tracker_hits=5, rng=rng),
    ]


def _write(path: Path, events, **kw):
    with EventArchiveWriter(path, **kw) as w:
        for ev in events:
            w.store(ev)
    return path


def test_archive_write_read(tmp_path):
    events = _events()
    path = _write(tmp_path / "out" / "events.h5", events, config_text="[io]\n")

    with EventArchiveReader(path) as r:
        assert len(r) == 3
        assert r.attrs["format_version"] == "1.0"
        assert r.attrs["codec"] == "fecom-binary"
        assert r.attrs["config_text"] == "[io]\n"
        assert list(r) == events
        assert r.load(1) == events[1]
        with pytest.raises(IndexError):
            r.load(3)


def test_archive_record_attrs(tmp_path):
    path = _write(tmp_path / "events.h5", _events(), compression="none")
    with h5py.File(path, "r") as f:
        dset = f["events/000000"]
        assert dset.dtype == np.uint8
        assert dset.attrs["trigger_id"] == 12
        assert dset.attrs["n_calo_hits"] == 1
        assert dset.attrs["n_tracker_hits"] == 7


def test_corrupted_record_is_reported(tmp_path):
    path = _write(tmp_path / "events.h5", _events())
    with h5py.File(path, "a") as f:
        data = f["events/000000"][()]
        del f["events/000000"]
        f.create_dataset("events/000000", data=data[:-5])

    with EventArchiveReader(path) as r:
        with pytest.raises(CorruptedStreamError):
            r.load(0)
        assert r.load(1) == CommissioningEvent(13)


def test_missing_events_group(tmp_path):
    path = tmp_path / "empty.h5"
    with h5py.File(path, "w") as f:
        f.attrs["format_version"] = "1.0"
    with pytest.raises(CorruptedStreamError):
        EventArchiveReader(path)


def test_hits_to_frames():
    calo, tracker = hits_to_frames(_events())
    assert list(calo.columns) == CALO_COLUMNS
    assert list(tracker.columns) == TRACKER_COLUMNS
    assert len(calo) == 1 + 0 + 2
    assert len(tracker) == 7 + 0 + 5
    first = tracker[tracker.event_index == 0]
    assert list(first.timestamp_type) == [f"t{i}" for i in range(7)]
    assert list(first.channel_type) == ["ANODIC"] * 5 + ["CATHODIC"] * 2
    assert calo.iloc[0].waveform_data_size == 16


def test_save_waveform_png(tmp_path):
    hit = reference_commissioning_event().calo_hits[0]
    out = save_waveform_png(hit, tmp_path / "wf.png")
    assert Path(out).exists() and Path(out).stat().st_size > 0
