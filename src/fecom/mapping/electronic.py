"""
fecom.mapping.electronic

Geometry coordinate -> electronic address translation for the three
readout subsystems.

Electronic addresses are hierarchical: rack -> crate -> board -> channel.
All ids and sizes come from one immutable TopologyCfg table; nothing in
here is a free-standing magic number.

Numbering rules
---------------
Tracker (Geiger) cells, rack geiger_rack_id:
  - crate 0 reads rows 0 .. three_wires_crate_0_limit (inclusive),
    crate 1 reads rows up to three_wires_crate_1_limit, crate 2 the rest;
  - a front-end board reads geiger_rows_per_board consecutive rows
    (both sides, all layers): 2 x 2 x 9 = 36 channels;
  - crate 1 holds an odd number of rows: three_wires_lonely_row is wired
    alone on its own board, separate from the pair buckets on either
    side of it. This is a wiring asymmetry, keep it as an explicit rule;
  - channel = side * 18 + row_in_board * 9 + layer.

Calorimeter optical modules, rack calo_rack_id:
  - main wall side s -> crate s, column -> board, row -> channel;
  - X-walls then gamma vetos fill crate xwall_gveto_crate_id, 16 channels
    per board, in (side, wall, column, row) order.

Trigger: a single board (trigger_rack_id, trigger_crate_id, trigger_board_id).

Board slots skip the reserved control board id in every crate and the
trigger board id in the trigger crate.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from fecom.config.schemas import TopologyCfg
from fecom.errors import OutOfRangeError
from fecom.geometry.coords import CaloPart, GeomCoordinate, Subsystem


@dataclass(frozen=True, slots=True)
class ElectronicAddress:
    rack_id: int
    crate_id: int
    board_id: int
    channel: Optional[int] = None  # None for board-level addresses

    @property
    def triple(self) -> Tuple[int, int, int]:
        return (self.rack_id, self.crate_id, self.board_id)

    def __str__(self) -> str:
        ch = "*" if self.channel is None else str(self.channel)
        return f"[{self.rack_id}:{self.crate_id}:{self.board_id}:{ch}]"


def as_subsystem(value) -> Subsystem:
    """Coerce a subsystem tag; unknown tags are programming errors (ValueError)."""
    try:
        return Subsystem(value)
    except ValueError:
        raise ValueError(f"Unknown subsystem tag {value!r}") from None


def _check(sub: Subsystem, name: str, value: int, size: int) -> None:
    if not 0 <= value < size:
        raise OutOfRangeError(f"{sub.value} {name}={value} outside [0, {size})")


def _require_unused(c: GeomCoordinate, *names: str) -> None:
    for name in names:
        if getattr(c, name) != 0:
            raise OutOfRangeError(
                f"{as_subsystem(c.subsystem).value} coordinate does not use '{name}' (got {getattr(c, name)})"
            )


class AddressMapper:
    """
    Pure, deterministic geometry -> electronics translation.

    Results are cached per instance; OutOfRangeError is raised (never
    cached, never clamped) for coordinates outside the declared topology.
    """

    def __init__(self, topology: TopologyCfg | None = None, diagnostics_level: int = 0):
        self.topology = topology if topology is not None else TopologyCfg()
        self.diagnostics_level = diagnostics_level
        self._cache: Dict[GeomCoordinate, ElectronicAddress] = {}

    # ------------------------------------------------------------------
    # Static tables
    # ------------------------------------------------------------------

    def rack_id(self, subsystem) -> int:
        sub = as_subsystem(subsystem)
        t = self.topology
        if sub is Subsystem.TRACKER:
            return t.geiger_rack_id
        if sub is Subsystem.CALORIMETER:
            return t.calo_rack_id
        return t.trigger_rack_id

    def crate_ids(self, subsystem) -> Tuple[int, ...]:
        sub = as_subsystem(subsystem)
        if sub is Subsystem.TRIGGER:
            return (self.topology.trigger_crate_id,)
        return tuple(range(self.topology.max_number_of_crate + 1))

    def control_board(self, subsystem, crate_id: int) -> ElectronicAddress:
        """Board-level address of the control board of a crate."""
        sub = as_subsystem(subsystem)
        if crate_id not in self.crate_ids(sub):
            raise OutOfRangeError(f"{sub.value} has no crate {crate_id}")
        return ElectronicAddress(self.rack_id(sub), crate_id, self.topology.control_board_id)

    def trigger_board(self) -> ElectronicAddress:
        t = self.topology
        return ElectronicAddress(t.trigger_rack_id, t.trigger_crate_id, t.trigger_board_id)

    def control_board_type(self, subsystem) -> int:
        sub = as_subsystem(subsystem)
        if sub is Subsystem.TRACKER:
            return self.topology.tracker_control_board_type
        return self.topology.calorimeter_control_board_type

    def _reserved_boards(self, rack_id: int, crate_id: int) -> Tuple[int, ...]:
        t = self.topology
        reserved = [t.control_board_id]
        if rack_id == t.trigger_rack_id and crate_id == t.trigger_crate_id:
            reserved.append(t.trigger_board_id)
        return tuple(sorted(reserved))

    def is_reserved_board(self, address: ElectronicAddress) -> bool:
        return address.board_id in self._reserved_boards(address.rack_id, address.crate_id)

    def _board_for_slot(self, rack_id: int, crate_id: int, slot: int) -> int:
        board = slot
        for r in self._reserved_boards(rack_id, crate_id):
            if board >= r:
                board += 1
        return board

    def _slot_for_board(self, address: ElectronicAddress) -> int:
        reserved = self._reserved_boards(address.rack_id, address.crate_id)
        if address.board_id < 0 or address.board_id in reserved:
            raise OutOfRangeError(f"board {address.board_id} is not a front-end board ({address})")
        return address.board_id - sum(1 for r in reserved if r < address.board_id)

    # ------------------------------------------------------------------
    # Forward mapping
    # ------------------------------------------------------------------

    def map(self, coord: GeomCoordinate, subsystem=None) -> ElectronicAddress:
        """
        Translate a geometry coordinate into its electronic address.

        subsystem defaults to coord.subsystem; passing a different one is a
        programming error.
        """
        own = as_subsystem(coord.subsystem)
        sub = own if subsystem is None else as_subsystem(subsystem)
        if sub is not own:
            raise ValueError(f"Coordinate belongs to {own.value}, not {sub.value}")

        cached = self._cache.get(coord)
        if cached is not None:
            return cached

        if sub is Subsystem.TRACKER:
            address = self._map_tracker(coord)
        elif sub is Subsystem.CALORIMETER:
            address = self._map_calo(coord)
        elif sub is Subsystem.TRIGGER:
            _require_unused(coord, "side", "layer", "row", "column", "wall")
            address = ElectronicAddress(*self.trigger_board().triple, channel=0)
        else:  # pragma: no cover
            raise AssertionError(f"unhandled subsystem {sub!r}")

        self._cache[coord] = address
        if self.diagnostics_level >= 2:
            print(f"[mapping] {coord} -> {address}")
        return address

    def tracker_slot(self, row: int) -> Tuple[int, int, int]:
        """
        Return (crate_id, board_slot, row_in_board) for a tracker row.
        """
        t = self.topology
        _check(Subsystem.TRACKER, "row", row, t.geiger_row_size)
        per = t.geiger_rows_per_board
        if row <= t.three_wires_crate_0_limit:
            crate, first = 0, 0
        elif row <= t.three_wires_crate_1_limit:
            crate, first = 1, t.three_wires_crate_0_limit + 1
            lonely = t.three_wires_lonely_row
            lonely_slot = (lonely - first) // per
            if row == lonely:
                return crate, lonely_slot, 0
            if row > lonely:
                return crate, lonely_slot + 1 + (row - lonely - 1) // per, (row - lonely - 1) % per
        else:
            crate, first = 2, t.three_wires_crate_1_limit + 1
        return crate, (row - first) // per, (row - first) % per

    def _map_tracker(self, c: GeomCoordinate) -> ElectronicAddress:
        t = self.topology
        sub = Subsystem.TRACKER
        _require_unused(c, "column", "wall")
        _check(sub, "side", c.side, t.geiger_side_size)
        _check(sub, "layer", c.layer, t.geiger_layer_size)
        crate, slot, row_in_board = self.tracker_slot(c.row)
        per_side = t.geiger_rows_per_board * t.geiger_layer_size
        channel = c.side * per_side + row_in_board * t.geiger_layer_size + c.layer
        board = self._board_for_slot(t.geiger_rack_id, crate, slot)
        return ElectronicAddress(t.geiger_rack_id, crate, board, channel)

    def _xwall_channels(self) -> int:
        t = self.topology
        return t.calo_side_size * t.xwall_wall_size * t.xwall_column_size * t.xwall_row_size

    def _xwall_boards(self) -> int:
        cpb = self.topology.calo_channels_per_board
        return -(-self._xwall_channels() // cpb)

    def _map_calo(self, c: GeomCoordinate) -> ElectronicAddress:
        t = self.topology
        sub = Subsystem.CALORIMETER
        cpb = t.calo_channels_per_board
        _require_unused(c, "layer")
        _check(sub, "side", c.side, t.calo_side_size)
        part = CaloPart(c.part)
        if part is CaloPart.MAIN_WALL:
            _require_unused(c, "wall")
            _check(sub, "column", c.column, t.calo_main_wall_column_size)
            _check(sub, "row", c.row, t.calo_main_wall_row_size)
            crate, slot, channel = c.side, c.column, c.row
        elif part is CaloPart.XWALL:
            _check(sub, "wall", c.wall, t.xwall_wall_size)
            _check(sub, "column", c.column, t.xwall_column_size)
            _check(sub, "row", c.row, t.xwall_row_size)
            index = ((c.side * t.xwall_wall_size + c.wall) * t.xwall_column_size + c.column) * t.xwall_row_size + c.row
            crate = t.xwall_gveto_crate_id
            slot, channel = divmod(index, cpb)
        else:
            _require_unused(c, "row")
            _check(sub, "wall", c.wall, t.gveto_wall_size)
            _check(sub, "column", c.column, t.gveto_column_size)
            index = (c.side * t.gveto_wall_size + c.wall) * t.gveto_column_size + c.column
            crate = t.xwall_gveto_crate_id
            slot = self._xwall_boards() + index // cpb
            channel = index % cpb
        board = self._board_for_slot(t.calo_rack_id, crate, slot)
        return ElectronicAddress(t.calo_rack_id, crate, board, channel)

    # ------------------------------------------------------------------
    # Inverse mapping
    # ------------------------------------------------------------------

    def to_geometry(self, address: ElectronicAddress, subsystem) -> GeomCoordinate:
        """
        Inverse of map() for channel-level addresses owned by subsystem.
        Raises OutOfRangeError for any address the subsystem does not own.
        """
        sub = as_subsystem(subsystem)
        if address.channel is None:
            raise OutOfRangeError(f"{address} is a board-level address, not a channel")
        if address.rack_id != self.rack_id(sub) or address.crate_id not in self.crate_ids(sub):
            raise OutOfRangeError(f"{address} is not owned by {sub.value}")
        if sub is Subsystem.TRACKER:
            return self._tracker_geometry(address)
        if sub is Subsystem.CALORIMETER:
            return self._calo_geometry(address)
        if address.triple != self.trigger_board().triple or address.channel != 0:
            raise OutOfRangeError(f"{address} is not the trigger board input")
        return GeomCoordinate.trigger()

    def _tracker_geometry(self, a: ElectronicAddress) -> GeomCoordinate:
        t = self.topology
        per = t.geiger_rows_per_board
        per_side = per * t.geiger_layer_size
        _check(Subsystem.TRACKER, "channel", a.channel, t.geiger_channels_per_board)
        slot = self._slot_for_board(a)
        side, rest = divmod(a.channel, per_side)
        row_in_board, layer = divmod(rest, t.geiger_layer_size)

        if a.crate_id == 0:
            first, last = 0, t.three_wires_crate_0_limit
        elif a.crate_id == 1:
            first, last = t.three_wires_crate_0_limit + 1, t.three_wires_crate_1_limit
        else:
            first, last = t.three_wires_crate_1_limit + 1, t.geiger_row_size - 1

        row = first + slot * per + row_in_board
        if a.crate_id == 1:
            lonely = t.three_wires_lonely_row
            lonely_slot = (lonely - first) // per
            if slot == lonely_slot:
                if row_in_board != 0:
                    raise OutOfRangeError(f"{a}: lonely row board reads a single row")
                row = lonely
            elif slot > lonely_slot:
                row = lonely + 1 + (slot - lonely_slot - 1) * per + row_in_board
        if not first <= row <= last:
            raise OutOfRangeError(f"{a} is beyond the last tracker board of crate {a.crate_id}")
        return GeomCoordinate.tracker(side=side, layer=layer, row=row)

    def _calo_geometry(self, a: ElectronicAddress) -> GeomCoordinate:
        t = self.topology
        cpb = t.calo_channels_per_board
        _check(Subsystem.CALORIMETER, "channel", a.channel, cpb)
        slot = self._slot_for_board(a)

        if a.crate_id == t.xwall_gveto_crate_id:
            if slot < self._xwall_boards():
                index = slot * cpb + a.channel
                if index >= self._xwall_channels():
                    raise OutOfRangeError(f"{a} is an unused X-wall channel")
                index, row = divmod(index, t.xwall_row_size)
                index, column = divmod(index, t.xwall_column_size)
                side, wall = divmod(index, t.xwall_wall_size)
                return GeomCoordinate.xwall(side=side, wall=wall, column=column, row=row)
            index = (slot - self._xwall_boards()) * cpb + a.channel
            if index >= t.calo_side_size * t.gveto_wall_size * t.gveto_column_size:
                raise OutOfRangeError(f"{a} is an unused gamma-veto channel")
            index, column = divmod(index, t.gveto_column_size)
            side, wall = divmod(index, t.gveto_wall_size)
            return GeomCoordinate.gveto(side=side, wall=wall, column=column)

        if a.crate_id >= t.calo_side_size:
            raise OutOfRangeError(f"{a}: calorimeter crate {a.crate_id} is not wired")
        if slot >= t.calo_main_wall_column_size or a.channel >= t.calo_main_wall_row_size:
            raise OutOfRangeError(f"{a} is an unused main wall channel")
        return GeomCoordinate.main_wall(side=a.crate_id, column=slot, row=a.channel)
