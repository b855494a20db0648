import io

import pytest

from fecom.data.events import CommissioningEvent
from fecom.data.hits import CaloHit, ChannelType, TrackerChannelHit
from fecom.errors import InvariantViolationError
from fecom.sim.synth import make_calo_hit, make_tracker_hit, reference_commissioning_event


def test_hit_with_other_trigger_id_is_rejected():
    ev = CommissioningEvent(12)
    with pytest.raises(InvariantViolationError):
        ev.add_calo_hit(make_calo_hit(0, 13))
    with pytest.raises(InvariantViolationError):
        ev.add_tracker_channel_hit(make_tracker_hit(0, 11))
    assert ev.is_empty()


def test_event_without_trigger_id_refuses_hits():
    ev = CommissioningEvent()
    assert not ev.has_trigger_id()
    with pytest.raises(InvariantViolationError):
        ev.add_calo_hit(make_calo_hit(0, 12))
    ev.set_trigger_id(12)
    ev.add_calo_hit(make_calo_hit(0, 12))
    assert len(ev.calo_hits) == 1


def test_trigger_id_is_fixed_once_hits_exist():
    ev = CommissioningEvent(12)
    ev.set_trigger_id(14)  # still empty, allowed
    ev.add_tracker_channel_hit(make_tracker_hit(0, 14))
    with pytest.raises(InvariantViolationError):
        ev.set_trigger_id(15)
    assert ev.trigger_id == 14


def test_insertion_order_and_duplicates_preserved():
    ev = CommissioningEvent(1)
    for hit_id in (5, 3, 5, 0):
        ev.add_tracker_channel_hit(make_tracker_hit(hit_id, 1))
    assert [h.hit_id for h in ev.tracker_channel_hits] == [5, 3, 5, 0]


def test_hits_are_copied_in():
    ev = CommissioningEvent(12)
    hit = make_calo_hit(1, 12, samples=[1, 2, 3])
    ev.add_calo_hit(hit)
    hit.set_raw_sample(0, 100)
    hit.channel = 99
    stored = ev.calo_hits[0]
    assert stored.get_raw_sample(0) == 1 and stored.channel == 0


def test_iteration_is_restartable():
    ev = reference_commissioning_event()
    first = list(ev.iter_tracker_channel_hits())
    second = list(ev.iter_tracker_channel_hits())
    assert len(first) == len(second) == 7
    assert first == second
    assert [h.timestamp_type for h in first] == [f"t{i}" for i in range(7)]
    assert [h.timestamp_value for h in first] == [42 * i for i in range(7)]
    kinds = [h.channel_type for h in first]
    assert kinds.count(ChannelType.ANODIC) == 5 and kinds.count(ChannelType.CATHODIC) == 2


def test_collections_are_read_only():
    ev = reference_commissioning_event()
    with pytest.raises(AttributeError):
        ev.calo_hits.append(CaloHit())


def test_wrong_variant_is_a_type_error():
    ev = CommissioningEvent(12)
    with pytest.raises(TypeError):
        ev.add_calo_hit(make_tracker_hit(0, 12))
    with pytest.raises(TypeError):
        ev.add_tracker_channel_hit(make_calo_hit(0, 12))


def test_locked_event_refuses_mutation():
    ev = CommissioningEvent(12)
    with ev.locked():
        assert ev.is_locked
        with pytest.raises(InvariantViolationError):
            ev.add_calo_hit(make_calo_hit(0, 12))
        with pytest.raises(InvariantViolationError):
            ev.set_trigger_id(3)
    assert not ev.is_locked
    ev.add_calo_hit(make_calo_hit(0, 12))


def test_reset_and_equality():
    a = reference_commissioning_event()
    b = reference_commissioning_event()
    assert a == b
    c = b.copy()
    c.add_tracker_channel_hit(make_tracker_hit(7, 12))
    assert c != b
    c.reset()
    assert c.is_empty() and not c.has_trigger_id()
    assert c == CommissioningEvent()


def test_tree_dump():
    sink = io.StringIO()
    text = reference_commissioning_event().tree_dump(sink, title="My commissioning event")
    assert "Trigger ID : 12" in text
    assert "Calo hits : 1" in text
    assert "Tracker channel hits : 7" in text
    assert "Tracker channel hit #6" in text
    assert sink.getvalue().startswith("My commissioning event")


def test_hits_are_copied_out():
    ev = reference_commissioning_event(12)
    ev.tracker_channel_hits[0].trigger_id = 99
    ev.calo_hits[0].set_raw_sample(0, 5)
    next(ev.iter_calo_hits()).channel = 3
    assert ev == reference_commissioning_event(12)
    assert ev.tracker_channel_hits[0].trigger_id == 12
    assert ev.calo_hits[0].get_raw_sample(0) == 23


def test_trigger_id_must_fit_64_bits():
    assert CommissioningEvent(2**63 - 1).trigger_id == 2**63 - 1
    with pytest.raises(ValueError):
        CommissioningEvent(2**63)
    ev = CommissioningEvent()
    with pytest.raises(ValueError):
        ev.set_trigger_id(-2**63 - 1)
    assert not ev.has_trigger_id()
