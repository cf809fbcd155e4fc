"""Command-line interface for topoprint."""

import os
from pathlib import Path
from typing import Optional

import typer
from rich import print
from rich.console import Console
from rich.table import Table

from topoprint import __version__
from topoprint.core.pipeline import TerrainPipeline
from topoprint.exceptions import InvalidRequestError, TopoPrintError
from topoprint.processing.stl import stl_z_range
from topoprint.types import Body, RenderRequest, Resolution, Shape
from topoprint.utils.logging import configure_logging, get_logger

app = typer.Typer(
    name="topoprint",
    help="Printable terrain models from Earth, Moon, Mars and Venus elevation data",
    add_completion=False
)

console = Console()
logger = get_logger(__name__)


def version_callback(value: bool):
    """Show version and exit."""
    if value:
        print(f"topoprint v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-V",
        help="Enable verbose logging"
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file"
    )
):
    """topoprint - turn a bounding box into a watertight STL terrain model."""
    log_level = "DEBUG" if verbose else "INFO"
    configure_logging(level=log_level, format_type="console")

    if config_file:
        os.environ["TOPOPRINT_CONFIG_PATH"] = str(config_file)


@app.command()
def generate(
    north: float = typer.Option(..., "--north", help="Northern latitude (degrees)"),
    south: float = typer.Option(..., "--south", help="Southern latitude (degrees)"),
    east: float = typer.Option(..., "--east", help="Eastern longitude (degrees)"),
    west: float = typer.Option(..., "--west", help="Western longitude (degrees)"),
    output: Path = typer.Option(Path("terrain.stl"), "--output", "-o", help="Output STL file"),
    body: Body = typer.Option(Body.EARTH, "--body", "-b", help="Celestial body"),
    resolution: Resolution = typer.Option(Resolution.MEDIUM, "--resolution", "-r", help="Resolution tier"),
    shape: Shape = typer.Option(Shape.RECTANGLE, "--shape", help="Model footprint"),
    exaggeration: float = typer.Option(1.5, "--exaggeration", help="Vertical exaggeration"),
    base_height: float = typer.Option(2.0, "--base-height", help="Base slab height (model units)"),
    model_width: float = typer.Option(100.0, "--width", help="Model width (model units)"),
    lithophane: bool = typer.Option(False, "--lithophane", help="Build a lithophane panel"),
    invert: bool = typer.Option(False, "--invert", help="Invert the relief"),
):
    """Generate a binary STL terrain model for a bounding box."""
    payload = {
        "bounds": {"north": north, "south": south, "east": east, "west": west},
        "body": body.value,
        "resolution": resolution.value,
        "shape": shape.value,
        "exaggeration": exaggeration,
        "base_height": base_height,
        "model_width": model_width,
        "lithophane": lithophane,
        "invert": invert,
    }
    try:
        request = RenderRequest.parse(payload)
    except InvalidRequestError as e:
        console.print(f"[red]Invalid request: {e}[/red]")
        raise typer.Exit(2)

    console.print(
        f"[bold blue]Generating {resolution.value} {body.value} model[/bold blue]"
    )
    try:
        result = TerrainPipeline().generate(request)
    except TopoPrintError as e:
        console.print(f"[red]✗ Generation failed: {e}[/red]")
        raise typer.Exit(1)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(result.stl)

    z_range = stl_z_range(result.stl)
    table = Table(title="Terrain Model")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Elevation Source", result.elevation_source)
    table.add_row("High Fidelity", "yes" if result.used_high_fidelity_source else "no")
    table.add_row("Zoom / Segments", f"{result.zoom} / {result.max_segments}")
    table.add_row("Fallback Triggered", "yes" if result.fallback_triggered else "no")
    table.add_row("Triangles", f"{result.triangle_count:,}")
    if z_range is not None:
        table.add_row("Height Range", f"{z_range[0]:.2f} - {z_range[1]:.2f}")
    table.add_row("Output", str(output))
    console.print(table)
    console.print(f"[green]✓ Wrote {len(result.stl):,} bytes[/green]")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address"),
    port: int = typer.Option(5000, "--port", "-p", help="Port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
):
    """Run the HTTP API server."""
    from topoprint.web.server import run_server

    run_server(host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
