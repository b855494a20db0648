from __future__ import annotations
import numpy as np
from typing import Iterable, Sequence

from ..data.events import CommissioningEvent
from ..data.hits import CaloHit, ChannelType, TrackerChannelHit
from ..geometry.coords import GeomCoordinate
from ..mapping.electronic import AddressMapper

def make_calo_hit(
    hit_id: int,
    trigger_id: int,
    *,
    slot_index: int = 0,
    channel: int = 0,
    samples: Sequence[int] | np.ndarray = (),
) -> CaloHit:
    hit = CaloHit(hit_id=hit_id, slot_index=slot_index, trigger_id=trigger_id, channel=channel)
    hit.set_waveform(samples)
    return hit

def make_tracker_hit(
    hit_id: int,
    trigger_id: int,
    *,
    slot_index: int = 1,
    feast_id: int = 0,
    channel: int = 1,
    channel_type: ChannelType = ChannelType.ANODIC,
    timestamp_type: str = "t0",
    timestamp_value: int = 0,
) -> TrackerChannelHit:
    return TrackerChannelHit(
        hit_id=hit_id,
        slot_index=slot_index,
        trigger_id=trigger_id,
        channel=channel,
        feast_id=feast_id,
        channel_type=channel_type,
        timestamp_type=timestamp_type,
        timestamp_value=timestamp_value,
    )

def reference_commissioning_event(trigger_id: int = 12, waveform_size: int = 16, n_tracker_hits: int = 7) -> CommissioningEvent:
    """
    The commissioning test event:
      - one calo hit (id 42, slot 0, channel 11) whose waveform is all 23,
      - tracker hits 0..n-1 on slot 1 / FEAST 0 / channel 1; the first five
        anodic, the rest cathodic, timestamp types "t<i>", values 42*i.
    """
    event = CommissioningEvent(trigger_id)

    calo = CaloHit(hit_id=42, slot_index=0, trigger_id=trigger_id, channel=11)
    calo.waveform_data_size = waveform_size
    for icell in range(waveform_size):
        calo.set_raw_sample(icell, 23)
    event.add_calo_hit(calo)

    for i in range(n_tracker_hits):
        event.add_tracker_channel_hit(make_tracker_hit(
            i,
            trigger_id,
            channel_type=ChannelType.ANODIC if i < 5 else ChannelType.CATHODIC,
            timestamp_type=f"t{i}",
            timestamp_value=42 * i,
        ))
    return event

def _random_calo_cell(rng: np.random.Generator, mapper: AddressMapper) -> GeomCoordinate:
    t = mapper.topology
    return GeomCoordinate.main_wall(
        side=int(rng.integers(t.calo_side_size)),
        column=int(rng.integers(t.calo_main_wall_column_size)),
        row=int(rng.integers(t.calo_main_wall_row_size)),
    )

def _random_tracker_cell(rng: np.random.Generator, mapper: AddressMapper) -> GeomCoordinate:
    t = mapper.topology
    return GeomCoordinate.tracker(
        side=int(rng.integers(t.geiger_side_size)),
        layer=int(rng.integers(t.geiger_layer_size)),
        row=int(rng.integers(t.geiger_row_size)),
    )

def random_commissioning_event(
    trigger_id: int,
    mapper: AddressMapper,
    *,
    n_calo_hits: int = 1,
    n_tracker_hits: int = 7,
    waveform_size: int = 16,
    rng: np.random.Generator | None = None,
) -> CommissioningEvent:
    """
    Fake acquisition: hits on random cells, addressed through the mapper.

    slot_index is the board id of the cell's front-end board. Tracker boards
    carry one FEAST per side, so feast_id/channel are the FEAST and its
    local channel.
    """
    rng = rng or np.random.default_rng()
    event = CommissioningEvent(trigger_id)
    t = mapper.topology

    for i in range(n_calo_hits):
        addr = mapper.map(_random_calo_cell(rng, mapper))
        baseline = int(rng.integers(-20, 20))
        samples = baseline + rng.integers(-4, 5, size=waveform_size)
        hit = make_calo_hit(i, trigger_id, slot_index=addr.board_id, channel=addr.channel, samples=samples)
        hit.fcr = int(rng.integers(0, 1024))
        hit.low_threshold = bool(rng.integers(2))
        hit.raw_baseline = baseline
        event.add_calo_hit(hit)

    per_feast = t.geiger_rows_per_board * t.geiger_layer_size
    for i in range(n_tracker_hits):
        addr = mapper.map(_random_tracker_cell(rng, mapper))
        feast, local = divmod(addr.channel, per_feast)
        anodic = bool(rng.integers(2))
        event.add_tracker_channel_hit(make_tracker_hit(
            i,
            trigger_id,
            slot_index=addr.board_id,
            feast_id=feast,
            channel=local,
            channel_type=ChannelType.ANODIC if anodic else ChannelType.CATHODIC,
            timestamp_type=f"t{int(rng.integers(0, 7))}" if anodic else f"t{int(rng.integers(1, 3))}",
            timestamp_value=int(rng.integers(0, 2**40)),
        ))
    return event

def events_from_cfg(sim_cfg, mapper: AddressMapper) -> Iterable[CommissioningEvent]:
    """Yield the events requested by a SimCfg."""
    rng = np.random.default_rng(sim_cfg.seed)
    for k in range(sim_cfg.n_events):
        trigger_id = sim_cfg.first_trigger_id + k
        if sim_cfg.source == "reference":
            yield reference_commissioning_event(
                trigger_id, waveform_size=sim_cfg.waveform_size, n_tracker_hits=sim_cfg.n_tracker_hits
            )
        else:
            yield random_commissioning_event(
                trigger_id,
                mapper,
                n_calo_hits=sim_cfg.n_calo_hits,
                n_tracker_hits=sim_cfg.n_tracker_hits,
                waveform_size=sim_cfg.waveform_size,
                rng=rng,
            )
