# src/fecom/io/tables.py
from __future__ import annotations
from typing import Iterable, Tuple

import pandas as pd

from fecom.data.events import CommissioningEvent

CALO_COLUMNS = [
    "event_index", "trigger_id", "hit_id", "slot_index", "channel",
    "low_threshold", "high_threshold", "fcr", "lt_trigger_counter", "lt_time_counter",
    "raw_baseline", "raw_peak", "raw_charge", "raw_charge_overflow", "waveform_data_size",
]

TRACKER_COLUMNS = [
    "event_index", "trigger_id", "hit_id", "slot_index", "feast_id", "channel",
    "channel_type", "timestamp_type", "timestamp_value",
]

def hits_to_frames(events: Iterable[CommissioningEvent]) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Flatten events into one row per hit, in event then insertion order.

    Waveform samples are not tabulated (only their count); use
    fecom.vis.waveform for those.
    """
    calo_rows = []
    tracker_rows = []
    for i, ev in enumerate(events):
        for h in ev.iter_calo_hits():
            row = {k: getattr(h, k) for k in CALO_COLUMNS[2:]}
            calo_rows.append({"event_index": i, "trigger_id": ev.trigger_id, **row})
        for h in ev.iter_tracker_channel_hits():
            row = {k: getattr(h, k) for k in TRACKER_COLUMNS[2:]}
            row["channel_type"] = h.channel_type.name
            tracker_rows.append({"event_index": i, "trigger_id": ev.trigger_id, **row})
    return (
        pd.DataFrame(calo_rows, columns=CALO_COLUMNS),
        pd.DataFrame(tracker_rows, columns=TRACKER_COLUMNS),
    )
