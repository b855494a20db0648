from __future__ import annotations

from pathlib import Path
from typing import List, Optional
import typer

from fecom.config.load import load_config, resolve_path, snapshot_config_toml
from fecom.data.events import CommissioningEvent
from fecom.errors import CorruptedStreamError
from fecom.io.archive import EventArchiveReader, EventArchiveWriter
from fecom.mapping.electronic import AddressMapper
from fecom.sim.synth import events_from_cfg


def _verify_archive(path: Path, expected: List[CommissioningEvent], diag_level: int) -> None:
    """
    Read the archive back and require a field-for-field match with what was stored.
    """
    with EventArchiveReader(path, diagnostics_level=diag_level) as reader:
        if len(reader) != len(expected):
            raise CorruptedStreamError(f"{path}: {len(reader)} events read back, {len(expected)} stored")
        for i, (got, want) in enumerate(zip(reader, expected)):
            if got != want:
                raise CorruptedStreamError(f"{path}: event {i} (trigger {want.trigger_id}) differs after reload")
            if diag_level >= 2:
                got.tree_dump(title=f"Commissioning event #{i} after deserialization")
    if diag_level >= 1:
        print(f"[pipeline] Verified {len(expected)} events round-trip through {path}")


def run_commissioning(
    cfg_path: str,
    *,
    diagnostics_level: Optional[int] = None,
    output_path: Optional[str] = None,
) -> Path:
    """
    Build commissioning events, store them and (optionally) read them back.

    Flow: fabricate hits (reference or random cells addressed by the
    mapper) -> accumulate per trigger -> encode + store -> reload + compare.

    CLI flags override the corresponding TOML fields when not None.

    Returns
    -------
    Path to the written archive.
    """
    cfg = load_config(cfg_path)

    # ---- apply CLI overrides on top of TOML ----
    if diagnostics_level is not None:
        cfg.run.diagnostics_level = diagnostics_level
    if output_path is not None:
        cfg.io.output_path = output_path

    diag_level = cfg.run.diagnostics_level

    out_path = resolve_path(cfg.io.output_path)
    if diag_level >= 1:
        print(f"[run] config = {cfg_path}")
        print(f"[run] source={cfg.sim.source} n_events={cfg.sim.n_events} -> output={out_path}")

    mapper = AddressMapper(cfg.topology, diagnostics_level=diag_level)

    stored: List[CommissioningEvent] = []
    with EventArchiveWriter(
        out_path,
        config_text=snapshot_config_toml(cfg_path),
        compression=cfg.io.compression,
        diagnostics_level=diag_level,
    ) as writer:
        for event in events_from_cfg(cfg.sim, mapper):
            if diag_level >= 2:
                event.tree_dump(title="Commissioning event before serialization")
            writer.store(event)
            stored.append(event)
            if cfg.run.progress and diag_level >= 1 and len(stored) % 100 == 0:
                print(f"[pipeline] {len(stored)} events stored")

    if diag_level >= 1:
        n_calo = sum(len(e.calo_hits) for e in stored)
        n_tracker = sum(len(e.tracker_channel_hits) for e in stored)
        print(f"[pipeline] Stored {len(stored)} events ({n_calo} calo hits, {n_tracker} tracker hits)")

    if cfg.run.verify:
        _verify_archive(out_path, stored, diag_level)

    return out_path


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

app = typer.Typer(help="Commissioning event round-trip (fecom.pipelines.commissioning)")


@app.command()
def main(
    cfg_path: str = typer.Argument(
        ...,
        help="Path to TOML config file",
    ),
    diagnostics_level: Optional[int] = typer.Option(
        None,
        "--diagnostics",
        "-d",
        help="Override [run].diagnostics_level (0=off, 1=minimal, 2=verbose)",
    ),
    output_path: Optional[str] = typer.Option(
        None,
        "--out",
        "-o",
        help="Override [io].output_path",
    ),
):
    """
    Run the commissioning round-trip for a single config.
    """
    out_path = run_commissioning(
        cfg_path,
        diagnostics_level=diagnostics_level,
        output_path=output_path,
    )
    typer.echo(str(out_path))


if __name__ == "__main__":
    app()
