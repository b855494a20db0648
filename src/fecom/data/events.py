# src/fecom/data/events.py
from __future__ import annotations
import io
import sys
from contextlib import contextmanager
from typing import Iterator, List, Optional, TextIO, Tuple

from fecom.data.hits import INVALID_ID, CaloHit, TrackerChannelHit, check_word
from fecom.errors import InvariantViolationError


class CommissioningEvent:
    """
    All hits collected for one trigger.

    Hits are copied in and handed out as copies (the event owns its
    collections), kept in insertion order, without deduplication. Every
    hit must carry the event's trigger id; the trigger id itself is a
    64-bit word, fixed once the first hit is added.

    While `locked()` is active (the codec holds it for the duration of an
    encode) any mutation raises InvariantViolationError.
    """

    __slots__ = ("_trigger_id", "_calo_hits", "_tracker_hits", "_locks", "diagnostics_level")

    def __init__(self, trigger_id: int = INVALID_ID, diagnostics_level: int = 0):
        self._trigger_id = check_word("trigger_id", int(trigger_id), 64)
        self._calo_hits: List[CaloHit] = []
        self._tracker_hits: List[TrackerChannelHit] = []
        self._locks = 0
        self.diagnostics_level = diagnostics_level

    # ---- trigger id ----

    @property
    def trigger_id(self) -> int:
        return self._trigger_id

    def has_trigger_id(self) -> bool:
        return self._trigger_id != INVALID_ID

    def set_trigger_id(self, trigger_id: int) -> None:
        self._check_unlocked()
        if not self.is_empty():
            raise InvariantViolationError(
                f"cannot change trigger id {self._trigger_id} -> {trigger_id}: event already holds hits"
            )
        self._trigger_id = check_word("trigger_id", int(trigger_id), 64)

    # ---- accumulation ----

    def _check_unlocked(self) -> None:
        if self._locks:
            raise InvariantViolationError("event is locked for writing")

    def _check_hit_trigger(self, hit) -> None:
        if not self.has_trigger_id():
            raise InvariantViolationError("event has no trigger id; call set_trigger_id first")
        if hit.trigger_id != self._trigger_id:
            raise InvariantViolationError(
                f"{type(hit).__name__} #{hit.hit_id} has trigger id {hit.trigger_id}, "
                f"event has {self._trigger_id}"
            )

    def add_calo_hit(self, hit: CaloHit) -> None:
        if not isinstance(hit, CaloHit):
            raise TypeError(f"add_calo_hit expects a CaloHit, got {type(hit).__name__}")
        self._check_unlocked()
        self._check_hit_trigger(hit)
        self._calo_hits.append(hit.copy())
        if self.diagnostics_level >= 2:
            print(f"[event] trigger {self._trigger_id}: + calo hit #{hit.hit_id}")

    def add_tracker_channel_hit(self, hit: TrackerChannelHit) -> None:
        if not isinstance(hit, TrackerChannelHit):
            raise TypeError(f"add_tracker_channel_hit expects a TrackerChannelHit, got {type(hit).__name__}")
        self._check_unlocked()
        self._check_hit_trigger(hit)
        self._tracker_hits.append(hit.copy())
        if self.diagnostics_level >= 2:
            print(f"[event] trigger {self._trigger_id}: + tracker hit #{hit.hit_id}")

    def reset(self) -> None:
        self._check_unlocked()
        self._calo_hits.clear()
        self._tracker_hits.clear()
        self._trigger_id = INVALID_ID

    # ---- access ----

    @property
    def calo_hits(self) -> Tuple[CaloHit, ...]:
        return tuple(h.copy() for h in self._calo_hits)

    @property
    def tracker_channel_hits(self) -> Tuple[TrackerChannelHit, ...]:
        return tuple(h.copy() for h in self._tracker_hits)

    def iter_calo_hits(self) -> Iterator[CaloHit]:
        return iter(self.calo_hits)

    def iter_tracker_channel_hits(self) -> Iterator[TrackerChannelHit]:
        return iter(self.tracker_channel_hits)

    def is_empty(self) -> bool:
        return not self._calo_hits and not self._tracker_hits

    @property
    def is_locked(self) -> bool:
        return self._locks > 0

    @contextmanager
    def locked(self):
        self._locks += 1
        try:
            yield self
        finally:
            self._locks -= 1

    def copy(self) -> "CommissioningEvent":
        out = CommissioningEvent(self._trigger_id, diagnostics_level=self.diagnostics_level)
        out._calo_hits = [h.copy() for h in self._calo_hits]
        out._tracker_hits = [h.copy() for h in self._tracker_hits]
        return out

    def __eq__(self, other) -> bool:
        if not isinstance(other, CommissioningEvent):
            return NotImplemented
        return (
            self._trigger_id == other._trigger_id
            and self._calo_hits == other._calo_hits
            and self._tracker_hits == other._tracker_hits
        )

    __hash__ = None

    def __repr__(self) -> str:
        return (
            f"CommissioningEvent(trigger_id={self._trigger_id}, "
            f"calo_hits={len(self._calo_hits)}, tracker_channel_hits={len(self._tracker_hits)})"
        )

    def tree_dump(self, out: Optional[TextIO] = None, title: str = "", indent: str = "") -> str:
        """
        Render the event and its hits as an indented tree.
        Diagnostic only: the layout is not a stable format.
        """
        lines = []
        if title:
            lines.append(f"{indent}{title}")
        lines.append(f"{indent}|-- Trigger ID : {self._trigger_id}")
        lines.append(f"{indent}|-- Calo hits : {len(self._calo_hits)}")
        sink = io.StringIO()
        for i, h in enumerate(self._calo_hits):
            lines.append(h.tree_dump(sink, title=f"Calo hit #{i}", indent=indent + "|   "))
        lines.append(f"{indent}`-- Tracker channel hits : {len(self._tracker_hits)}")
        for i, h in enumerate(self._tracker_hits):
            lines.append(h.tree_dump(sink, title=f"Tracker channel hit #{i}", indent=indent + "    "))
        text = "\n".join(lines)
        print(text, file=out if out is not None else sys.stdout)
        return text
