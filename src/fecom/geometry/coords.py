from __future__ import annotations
from dataclasses import dataclass
from enum import Enum

class Subsystem(str, Enum):
    TRACKER = "tracker"
    CALORIMETER = "calorimeter"
    TRIGGER = "trigger"

class CaloPart(str, Enum):
    MAIN_WALL = "main_wall"
    XWALL = "xwall"
    GVETO = "gveto"

@dataclass(frozen=True, slots=True)
class GeomCoordinate:
    """
    Detector cell locator as handed over by the geometry service.

    Index usage per subsystem:
      tracker     : side, layer, row
      calorimeter : part, side, column, row (main wall / xwall), wall (xwall / gveto)
      trigger     : no indices (single trigger board)

    Unused indices stay at 0. Bounds are checked by the mapper, not here.
    """
    subsystem: Subsystem
    side: int = 0
    layer: int = 0
    row: int = 0
    column: int = 0
    wall: int = 0
    part: CaloPart = CaloPart.MAIN_WALL

    @classmethod
    def tracker(cls, side: int, layer: int, row: int) -> "GeomCoordinate":
        return cls(Subsystem.TRACKER, side=side, layer=layer, row=row)

    @classmethod
    def main_wall(cls, side: int, column: int, row: int) -> "GeomCoordinate":
        return cls(Subsystem.CALORIMETER, side=side, column=column, row=row, part=CaloPart.MAIN_WALL)

    @classmethod
    def xwall(cls, side: int, wall: int, column: int, row: int) -> "GeomCoordinate":
        return cls(Subsystem.CALORIMETER, side=side, wall=wall, column=column, row=row, part=CaloPart.XWALL)

    @classmethod
    def gveto(cls, side: int, wall: int, column: int) -> "GeomCoordinate":
        return cls(Subsystem.CALORIMETER, side=side, wall=wall, column=column, part=CaloPart.GVETO)

    @classmethod
    def trigger(cls) -> "GeomCoordinate":
        return cls(Subsystem.TRIGGER)
