from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Literal, Optional

class RunCfg(BaseModel):
    """
    Global run controls.

    diagnostics_level replaces any process-wide logger priority: every
    component receives it explicitly and prints only what its level allows.
    """

    model_config = ConfigDict(validate_assignment=True)

    # Diagnostics
    diagnostics_level: int = 1  # 0=off, 1=minimal, 2=verbose
    progress: bool = True

    # Verify every stored event by reading the archive back
    verify: bool = True

    @field_validator("diagnostics_level")
    def _diag_range(cls, v: int) -> int:
        if v not in (0, 1, 2):
            raise ValueError("diagnostics_level must be 0, 1, or 2")
        return v

class IOCfg(BaseModel):
    """
    Archive locations.

    TOML:

    [io]
    output_path = "${FECOM_RESOURCES_DIR}/output_test/commissioning_event.h5"
    input_path  = "..."     # optional, used by the dump tools
    compression = "gzip"    # "gzip" | "none"

    Paths may contain ${VAR} / ~ tokens; they are expanded by
    fecom.config.load.resolve_path before reaching the archive engine.
    """

    model_config = ConfigDict(validate_assignment=True)

    output_path: str
    input_path: Optional[str] = None
    compression: Literal["gzip", "none"] = "gzip"


class SimCfg(BaseModel):
    """
    Which events the commissioning pipeline fabricates.

    source = "reference" reproduces the single commissioning test event
    (1 calo hit, 7 tracker hits); "random" draws hits on random detector
    cells and addresses them through the mapper.
    """

    source: Literal["reference", "random"] = "reference"
    n_events: int = 1
    first_trigger_id: int = 12
    n_calo_hits: int = 1
    n_tracker_hits: int = 7
    waveform_size: int = 16
    seed: Optional[int] = None

    @field_validator("n_events", "n_calo_hits", "n_tracker_hits", "waveform_size")
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("counts must be >= 0")
        return v


class TopologyCfg(BaseModel):
    """
    Static numbering of the readout electronics.

    One immutable table holds every rack/crate/board id and detector size
    used by fecom.mapping.electronic.AddressMapper. The defaults are the
    production values; tests may build reduced tables.

    Tracker rows are split over three crates by two inclusive row limits.
    The middle crate holds an odd number of rows, so one row
    (three_wires_lonely_row) is read alone on its own board.
    """

    model_config = ConfigDict(frozen=True)

    # Board type codes
    tracker_control_board_type: int = 666
    calorimeter_control_board_type: int = 666

    # Racks
    calo_rack_id: int = 3
    trigger_rack_id: int = 3
    geiger_rack_id: int = 5

    # Crates
    max_number_of_crate: int = 2  # highest crate index in a rack
    xwall_gveto_crate_id: int = 2
    trigger_crate_id: int = 2

    # Reserved boards
    control_board_id: int = 10
    trigger_board_id: int = 20

    # Tracker crate split
    three_wires_crate_0_limit: int = 37
    three_wires_crate_1_limit: int = 74
    three_wires_lonely_row: int = 56

    # Tracker sizes
    geiger_side_size: int = 2
    geiger_layer_size: int = 9
    geiger_row_size: int = 113
    geiger_rows_per_board: int = 2

    # Calorimeter sizes
    calo_side_size: int = 2
    calo_main_wall_column_size: int = 20
    calo_main_wall_row_size: int = 13
    xwall_wall_size: int = 2
    xwall_column_size: int = 2
    xwall_row_size: int = 16
    gveto_wall_size: int = 2
    gveto_column_size: int = 16
    calo_channels_per_board: int = 16

    @property
    def geiger_channels_per_board(self) -> int:
        return self.geiger_side_size * self.geiger_rows_per_board * self.geiger_layer_size

    @model_validator(mode="after")
    def _check_layout(self) -> "TopologyCfg":
        c0, c1 = self.three_wires_crate_0_limit, self.three_wires_crate_1_limit
        lonely = self.three_wires_lonely_row
        if not (0 <= c0 < c1 < self.geiger_row_size - 1):
            raise ValueError(
                f"tracker crate limits must satisfy 0 <= {c0} < {c1} < {self.geiger_row_size - 1}"
            )
        if not (c0 < lonely <= c1):
            raise ValueError(f"lonely row {lonely} must lie in crate 1 rows ({c0}, {c1}]")
        if (lonely - (c0 + 1)) % self.geiger_rows_per_board != 0:
            raise ValueError("lonely row must start a board bucket in crate 1")
        if self.control_board_id == self.trigger_board_id:
            raise ValueError("control and trigger board ids must differ")
        if self.calo_main_wall_row_size > self.calo_channels_per_board:
            raise ValueError("a main wall column must fit on one calorimeter board")
        for crate in (self.xwall_gveto_crate_id, self.trigger_crate_id):
            if not (0 <= crate <= self.max_number_of_crate):
                raise ValueError(f"crate id {crate} exceeds max_number_of_crate")
        return self


class Config(BaseModel):
    """
    Top-level TOML configuration.
    """

    run: RunCfg = Field(default_factory=RunCfg)
    io: IOCfg
    sim: SimCfg = Field(default_factory=SimCfg)
    topology: TopologyCfg = Field(default_factory=TopologyCfg)
