"""
CLI interface using Click.
"""

import sys
import time
from pathlib import Path
from typing import Optional, Tuple

import click
from pydantic import ValidationError
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from canvas_capture import __version__
from canvas_capture.config import (
    CaptureConfig,
    ConfigurationError,
    TimingConfig,
    get_default_config_path,
    load_config,
    save_config,
)
from canvas_capture.driver import CaptureDriver
from canvas_capture.geometry import PlanningError, Vec2, ViewTransform, plan_tiles
from canvas_capture.logging import get_logger, setup_logging
from canvas_capture.scheduler import CaptureScheduler, StatusKind
from canvas_capture.sink import PngSink
from canvas_capture.views.image import ImageCanvasView, focus_transform

console = Console()
logger = get_logger(__name__)


def _parse_size(ctx: click.Context, param: click.Parameter, value: Optional[str]) -> Optional[Tuple[int, int]]:
    """Parse 'WIDTHxHEIGHT'."""
    if value is None:
        return None
    try:
        width, height = (int(part) for part in value.lower().split("x"))
    except ValueError:
        raise click.BadParameter(f"expected WIDTHxHEIGHT, got {value!r}")
    return (width, height)


def _parse_point(ctx: click.Context, param: click.Parameter, value: Optional[str]) -> Optional[Vec2]:
    """Parse 'X,Y'."""
    if value is None:
        return None
    try:
        x, y = (float(part) for part in value.split(","))
    except ValueError:
        raise click.BadParameter(f"expected X,Y, got {value!r}")
    return Vec2(x, y)


def _load(config: Optional[str]) -> CaptureConfig:
    try:
        return load_config(config)
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("--log-file", type=click.Path(path_type=Path), help="Also write JSON logs to this file")
@click.pass_context
def main(ctx: click.Context, version: bool, verbose: bool, log_file: Optional[Path]) -> None:
    """Canvas Capture - tiled capture of large zoomable canvases."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    setup_logging(level="DEBUG" if verbose else "INFO", log_file=log_file)

    if version:
        console.print(f"canvas-capture v{__version__}")
        sys.exit(0)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@main.command()
@click.option("--content", "content", required=True, callback=_parse_size, help="Content size in pixels, WIDTHxHEIGHT")
@click.option("--tile", "tile", required=True, callback=_parse_size, help="Tile size in pixels, WIDTHxHEIGHT")
def plan(content: Tuple[int, int], tile: Tuple[int, int]) -> None:
    """Show how a content area would be cut into tiles."""
    try:
        tile_plan = plan_tiles(content, tile)
    except PlanningError as e:
        console.print(f"[red]Cannot plan capture: {e}[/red]")
        sys.exit(1)

    table = Table(title="Tile Plan")
    table.add_column("Axis", style="cyan")
    table.add_column("Content", justify="right")
    table.add_column("Tile", justify="right")
    table.add_column("Tiles", justify="right")
    table.add_column("Last Tile", justify="right")

    for i, axis in enumerate("xy"):
        table.add_row(
            axis,
            str(tile_plan.content_size[i]),
            str(tile_plan.tile_size[i]),
            str(tile_plan.tile_count[i]),
            str(tile_plan.last_tile_size[i]),
        )

    console.print(table)
    console.print(f"Total captures: {tile_plan.total_tiles}")


@main.command("capture-image")
@click.argument("image", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--viewport", default="800x600", callback=_parse_size, help="Viewport size, WIDTHxHEIGHT (default: 800x600)")
@click.option("--zoom", type=float, help="View zoom (default: fit the whole image)")
@click.option("--origin", callback=_parse_point, help="Content point at the viewport's top-left, X,Y")
@click.option("--name", help="Output file name (default: image stem)")
@click.option("--output-dir", "-o", type=click.Path(file_okay=False, path_type=Path), help="Output directory")
@click.option("--settle-delay", type=float, help="Seconds to wait after each redraw")
@click.option("--config", "-c", type=click.Path(), help="Path to config file")
def capture_image(
    image: Path,
    viewport: Tuple[int, int],
    zoom: Optional[float],
    origin: Optional[Vec2],
    name: Optional[str],
    output_dir: Optional[Path],
    settle_delay: Optional[float],
    config: Optional[str],
) -> None:
    """Capture an image file through a zoomed viewport, tile by tile."""
    capture_config = _load(config)

    if output_dir:
        capture_config.output.directory = str(output_dir)
    if settle_delay is not None:
        timing = capture_config.timing.model_dump()
        timing["settle_delay"] = settle_delay
        timing["min_tick_interval"] = min(timing["min_tick_interval"], max(settle_delay, 0.0))
        try:
            capture_config.timing = TimingConfig(**timing)
        except ValidationError as e:
            raise click.BadParameter(str(e), param_hint="--settle-delay")

    for warning in capture_config.validate_for_run():
        console.print(f"[yellow]Warning: {warning}[/yellow]")

    view = ImageCanvasView.from_file(image, viewport)
    anchor = origin or Vec2(0.0, 0.0)
    if zoom:
        transform = ViewTransform(
            position=Vec2(-anchor.x * zoom, -anchor.y * zoom),
            scale=Vec2(zoom, zoom),
        )
    else:
        transform = focus_transform(view.content_size, viewport, anchor)
    view.set_view_transform(transform)
    view.request_redraw()

    scheduler = CaptureScheduler(view, PngSink(capture_config.output_path), capture_config)
    try:
        job = scheduler.start(name or image.stem)
    except PlanningError as e:
        console.print(f"[red]Cannot start capture: {e}[/red]")
        sys.exit(1)

    driver = CaptureDriver(scheduler)
    with Progress(
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total} tiles"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Capturing", total=job.plan.total_tiles)
        try:
            while True:
                status = driver.tick()
                progress.update(task, completed=scheduler.progress[0])
                if status.finished:
                    break
                time.sleep(driver.time_until_next_step())
        except KeyboardInterrupt:
            driver.stop()
            console.print("[yellow]Capture cancelled.[/yellow]")
            sys.exit(130)

    if status.kind == StatusKind.DONE:
        result = status.result
        console.print(f"[green]✓ Saved {result.width}x{result.height} capture to {result.path}[/green]")
        if result.mismatched_tiles:
            console.print(f"[yellow]{result.mismatched_tiles} tile(s) had unexpected sizes[/yellow]")
    else:
        console.print(f"[red]Capture failed: {status.error}[/red]")
        sys.exit(1)


@main.command("config")
@click.option("--init", "init_config", is_flag=True, help="Write the default config file")
@click.option("--config", "-c", type=click.Path(), help="Path to config file")
def config_cmd(init_config: bool, config: Optional[str]) -> None:
    """Show the effective configuration."""
    if init_config:
        path = Path(config) if config else get_default_config_path()
        if path.exists() and not click.confirm(f"{path} exists. Overwrite?"):
            console.print("Config unchanged.")
            return
        written = save_config(CaptureConfig(), str(path))
        console.print(f"[green]✓ Wrote default config to {written}[/green]")
        return

    capture_config = _load(config)

    table = Table(show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Settle delay", f"{capture_config.timing.settle_delay}s")
    table.add_row("Scale settle delay", f"{capture_config.timing.scale_settle_delay}s")
    table.add_row("Min tick interval", f"{capture_config.timing.min_tick_interval}s")
    table.add_row("Output directory", str(capture_config.output_path))
    table.add_row("Restore on cancel", "Yes" if capture_config.behavior.restore_on_cancel else "No")
    table.add_row("Background", str(tuple(capture_config.behavior.background)))
    console.print(table)


if __name__ == "__main__":
    main()
