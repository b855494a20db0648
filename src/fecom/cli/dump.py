from __future__ import annotations

import typer
from pathlib import Path
from typing import Optional

from fecom.config.load import resolve_path
from fecom.io.archive import EventArchiveReader
from fecom.io.tables import hits_to_frames
from fecom.vis.waveform import save_waveform_png

app = typer.Typer(help="Commissioning archive inspection tools")

@app.command("dump")
def dump(
    archive: str = typer.Argument(..., help="Path to an event archive (.h5)"),
    index: Optional[int] = typer.Option(None, "--index", "-i", help="Only this event (default: all)"),
):
    """Tree-dump events stored in an archive."""
    with EventArchiveReader(resolve_path(archive)) as reader:
        indices = range(len(reader)) if index is None else [index]
        for i in indices:
            reader.load(i).tree_dump(title=f"Commissioning event #{i}")

@app.command("table")
def table(
    archive: str = typer.Argument(..., help="Path to an event archive (.h5)"),
    out_dir: Optional[str] = typer.Option(None, "--out-dir", "-o", help="Directory for the CSV files (defaults to archive dir)"),
):
    """Export calo and tracker hits to <archive>_calo.csv / <archive>_tracker.csv."""
    path = resolve_path(archive)
    with EventArchiveReader(path) as reader:
        calo, tracker = hits_to_frames(reader)
    target = Path(out_dir) if out_dir else path.parent
    target.mkdir(parents=True, exist_ok=True)
    calo_csv = target / f"{path.stem}_calo.csv"
    tracker_csv = target / f"{path.stem}_tracker.csv"
    calo.to_csv(calo_csv, index=False)
    tracker.to_csv(tracker_csv, index=False)
    typer.echo(f"Wrote {calo_csv} ({len(calo)} rows)")
    typer.echo(f"Wrote {tracker_csv} ({len(tracker)} rows)")

@app.command("waveform")
def waveform(
    archive: str = typer.Argument(..., help="Path to an event archive (.h5)"),
    event: int = typer.Option(0, "--event", "-e", help="Event index in the archive"),
    hit: int = typer.Option(0, "--hit", help="Calo hit index in the event"),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output PNG path (defaults to <archive>_e<E>_h<H>.png)"),
):
    """Render one calo hit waveform to a PNG."""
    path = resolve_path(archive)
    with EventArchiveReader(path) as reader:
        calo_hits = reader.load(event).calo_hits
    if not 0 <= hit < len(calo_hits):
        raise typer.BadParameter(f"event {event} has {len(calo_hits)} calo hits")
    out_png = out or str(path.with_name(f"{path.stem}_e{event}_h{hit}.png"))
    typer.echo(f"Wrote {save_waveform_png(calo_hits[hit], out_png)}")

if __name__ == "__main__":
    app()
