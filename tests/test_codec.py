import numpy as np
import pytest

from fecom.data.events import CommissioningEvent
from fecom.data.hits import CaloHit, ChannelType
from fecom.errors import CorruptedStreamError
from fecom.io.codec import (
    CALO_RECORD_DTYPE,
    COUNT_DTYPE,
    PREAMBLE_DTYPE,
    SAMPLE_WIRE_DTYPE,
    BinaryEventCodec,
)
from fecom.mapping.electronic import AddressMapper
from fecom.sim.synth import (
    make_calo_hit,
    make_tracker_hit,
    random_commissioning_event,
    reference_commissioning_event,
)


@pytest.fixture
def codec():
    return BinaryEventCodec()


def _tracker_only_event():
    ev = CommissioningEvent(12)
    for i in range(7):
        ev.add_tracker_channel_hit(make_tracker_hit(
            i, 12,
            channel_type=ChannelType.ANODIC if i < 5 else ChannelType.CATHODIC,
            timestamp_type=f"t{i}",
            timestamp_value=42 * i,
        ))
    return ev


def _calo_only_event():
    ev = CommissioningEvent(12)
    hit = CaloHit(hit_id=42, slot_index=0, trigger_id=12, channel=11)
    hit.waveform_data_size = 16
    for i in range(16):
        hit.set_raw_sample(i, 23)
    ev.add_calo_hit(hit)
    return ev


def _patch(data: bytes, offset: int, value, dtype) -> bytes:
    buf = bytearray(data)
    raw = np.array([value], dtype=dtype).tobytes()
    buf[offset:offset + len(raw)] = raw
    return bytes(buf)


@pytest.mark.parametrize(
    "build",
    [
        _calo_only_event,
        _tracker_only_event,
        lambda: CommissioningEvent(12),
        CommissioningEvent,
        reference_commissioning_event,
    ],
)
def test_round_trip(codec, build):
    ev = build()
    back = codec.decode(codec.encode(ev))
    assert back == ev
    assert back is not ev


def test_round_trip_keeps_every_calo_word(codec):
    ev = CommissioningEvent(3)
    hit = make_calo_hit(1, 3, slot_index=4, channel=7, samples=[-32768, 0, 32767])
    hit.low_threshold = True
    hit.raw_charge_overflow = True
    hit.fcr = 1023
    hit.lt_trigger_counter = 17
    hit.lt_time_counter = 2**40
    hit.raw_baseline, hit.raw_peak, hit.raw_charge = -12, 300, -45000
    ev.add_calo_hit(hit)
    ev.add_calo_hit(make_calo_hit(2, 3))  # zero-length waveform
    back = codec.decode(codec.encode(ev))
    assert back == ev
    assert back.calo_hits[0].high_threshold is False
    assert back.calo_hits[1].waveform_data_size == 0


def test_round_trip_random_events(codec):
    mapper = AddressMapper()
    rng = np.random.default_rng(1234)
    for k in range(5):
        ev = random_commissioning_event(100 + k, mapper, n_calo_hits=3, n_tracker_hits=20,
                                        waveform_size=1024, rng=rng)
        assert codec.decode(codec.encode(ev)) == ev


def test_large_waveform_round_trip(codec):
    ev = CommissioningEvent(1)
    ev.add_calo_hit(make_calo_hit(0, 1, samples=np.arange(-20000, 20000, dtype=np.int64) % 30000))
    assert codec.decode(codec.encode(ev)) == ev


def test_record_starts_with_trigger_id_then_counts(codec):
    data = codec.encode(reference_commissioning_event(trigger_id=77))
    pre = np.frombuffer(data, dtype=PREAMBLE_DTYPE, count=1)[0]
    assert bytes(pre["magic"]) == b"FCOM"
    assert int(pre["trigger_id"]) == 77
    n_calo = np.frombuffer(data, dtype=COUNT_DTYPE, count=1, offset=PREAMBLE_DTYPE.itemsize)[0]
    assert n_calo == 1


def test_encode_releases_the_event(codec):
    ev = reference_commissioning_event()
    codec.encode(ev)
    assert not ev.is_locked
    ev.add_calo_hit(make_calo_hit(1, 12))


def test_count_prefix_larger_than_records_fails(codec):
    data = codec.encode(_tracker_only_event())
    tracker_count_at = PREAMBLE_DTYPE.itemsize + COUNT_DTYPE.itemsize  # no calo hits
    assert np.frombuffer(data, dtype=COUNT_DTYPE, count=1, offset=tracker_count_at)[0] == 7
    with pytest.raises(CorruptedStreamError):
        codec.decode(_patch(data, tracker_count_at, 8, COUNT_DTYPE))


def test_calo_count_prefix_mismatch_fails(codec):
    ev = reference_commissioning_event()
    data = codec.encode(ev)
    with pytest.raises(CorruptedStreamError):
        codec.decode(_patch(data, PREAMBLE_DTYPE.itemsize, 2, COUNT_DTYPE))
    with pytest.raises(CorruptedStreamError):
        codec.decode(_patch(codec.encode(CommissioningEvent(5)), PREAMBLE_DTYPE.itemsize, 1, COUNT_DTYPE))


def test_tracker_count_after_waveforms(codec):
    ev = reference_commissioning_event()
    data = codec.encode(ev)
    at = PREAMBLE_DTYPE.itemsize + COUNT_DTYPE.itemsize + CALO_RECORD_DTYPE.itemsize + 16 * SAMPLE_WIRE_DTYPE.itemsize
    assert np.frombuffer(data, dtype=COUNT_DTYPE, count=1, offset=at)[0] == 7
    with pytest.raises(CorruptedStreamError):
        codec.decode(_patch(data, at, 100, COUNT_DTYPE))


@pytest.mark.parametrize("cut", [0, 3, 10, 20, 60, -1])
def test_truncated_stream_fails(codec, cut):
    data = codec.encode(reference_commissioning_event())
    with pytest.raises(CorruptedStreamError):
        codec.decode(data[:cut])


def test_trailing_bytes_fail(codec):
    data = codec.encode(reference_commissioning_event())
    with pytest.raises(CorruptedStreamError):
        codec.decode(data + b"\x00")


def test_bad_magic_and_version(codec):
    data = codec.encode(CommissioningEvent(1))
    with pytest.raises(CorruptedStreamError):
        codec.decode(b"XXXX" + data[4:])
    with pytest.raises(CorruptedStreamError):
        codec.decode(_patch(data, 4, 99, "<u2"))


def test_hits_disagreeing_with_stream_trigger_id_fail(codec):
    data = codec.encode(reference_commissioning_event(trigger_id=12))
    with pytest.raises(CorruptedStreamError):
        codec.decode(_patch(data, 6, 99, "<i8"))


def test_unknown_channel_type_fails(codec):
    data = codec.encode(_tracker_only_event())
    first_record = PREAMBLE_DTYPE.itemsize + 2 * COUNT_DTYPE.itemsize
    with pytest.raises(CorruptedStreamError):
        codec.decode(_patch(data, first_record + 1, 9, "u1"))


def test_decoded_event_does_not_alias_input(codec):
    ev = reference_commissioning_event()
    buf = bytearray(codec.encode(ev))
    back = codec.decode(buf)
    buf[:] = bytes(len(buf))
    assert back == ev


def test_decode_rejects_non_bytes(codec):
    with pytest.raises(TypeError):
        codec.decode("FCOM")


def test_round_trip_at_word_limits(codec):
    i32, i64 = 2**31 - 1, 2**63 - 1
    ev = CommissioningEvent(i64)
    hit = make_calo_hit(i64, i64, slot_index=i32, channel=-i32 - 1, samples=[1])
    hit.lt_time_counter = -i64 - 1
    hit.raw_charge = i32
    ev.add_calo_hit(hit)
    ev.add_tracker_channel_hit(make_tracker_hit(
        -i64 - 1, i64, slot_index=-i32 - 1, feast_id=i32, channel=i32, timestamp_value=i64,
    ))
    assert codec.decode(codec.encode(ev)) == ev


def test_encode_after_mutating_handed_out_hits(codec):
    ev = reference_commissioning_event(12)
    ev.tracker_channel_hits[0].trigger_id = 99
    assert codec.decode(codec.encode(ev)) == reference_commissioning_event(12)
