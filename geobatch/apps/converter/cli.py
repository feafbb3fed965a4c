"""geobatch command line interface.

Menu surface for the converter: start/resume/reset jobs, configure the
region bias, run the single-pass variants and the continuation worker.
"""

import asyncio
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import orjson
import typer

from geobatch import __version__
from geobatch.apps.converter import legacy, worker
from geobatch.apps.converter.checkpoint import RegionStore
from geobatch.apps.converter.continuation import open_scheduler
from geobatch.apps.converter.controller import JobController, build_controller, validate_dataset
from geobatch.utils.config import settings
from geobatch.utils.errors import ConfigurationError, GeobatchError
from geobatch.utils.geocoder import GoogleGeocoder
from geobatch.utils.grid import dataset_from_a1, open_csv_grid
from geobatch.utils.kvstore import create_store
from geobatch.utils.logging import setup_logging
from geobatch.utils.schemas import JobMode, JobState

app = typer.Typer(
    name="geobatch",
    help="Resumable batch geocoding for tabular datasets.",
    no_args_is_help=True,
)

RANGE_HELP = "Region in A1 notation, exactly 3 columns wide (e.g. A2:C500)."


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"geobatch version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Configure logging for every command."""
    setup_logging(level=settings.LOG_LEVEL, format_type=settings.LOG_FORMAT)


@contextmanager
def controller_session() -> Iterator[JobController]:
    with open_scheduler() as scheduler, GoogleGeocoder() as geocoder:
        yield build_controller(scheduler, geocoder=geocoder)


def _fail(error: GeobatchError) -> None:
    typer.secho(f"Error: {error}", fg=typer.colors.RED, err=True)
    raise typer.Exit(2)


def _echo_state(state: JobState) -> None:
    typer.echo(orjson.dumps(state.model_dump(mode="json"), option=orjson.OPT_INDENT_2).decode("utf-8"))


def _start(mode: JobMode, source: Path, a1_range: str) -> None:
    try:
        dataset = dataset_from_a1(str(source), a1_range)
        with controller_session() as controller:
            state = controller.start(mode, dataset)
    except ConfigurationError as e:
        _fail(e)
        return

    if state.is_complete:
        typer.echo(f"Completed {state.processed_count} rows, {state.error_count} errors.")
    else:
        typer.echo(
            f"Processed {state.processed_count}/{state.total_rows} rows; "
            "the rest continues in the background."
        )


@app.command("start-forward")
def start_forward(
    source: Path = typer.Argument(..., help="CSV dataset to convert."),
    a1_range: str = typer.Option(..., "--range", "-r", help=RANGE_HELP),
) -> None:
    """Geocode addresses (column 1) into latitude/longitude (columns 2 and 3)."""
    _start(JobMode.ADDRESS_TO_POSITION, source, a1_range)


@app.command("start-reverse")
def start_reverse(
    source: Path = typer.Argument(..., help="CSV dataset to convert."),
    a1_range: str = typer.Option(..., "--range", "-r", help=RANGE_HELP),
) -> None:
    """Reverse-geocode latitude/longitude (columns 2 and 3) into addresses (column 1)."""
    _start(JobMode.POSITION_TO_ADDRESS, source, a1_range)


@app.command()
def resume() -> None:
    """Run the next slice of the active job now."""
    with controller_session() as controller:
        state = controller.resume()
    _echo_state(state)


@app.command()
def reset() -> None:
    """Cancel the active job and any pending continuation."""
    with controller_session() as controller:
        controller.reset()
    typer.echo("Job state cleared.")


@app.command()
def status() -> None:
    """Show the stored job state."""
    with controller_session() as controller:
        state = controller.status()
    _echo_state(state)


@app.command("configure-region")
def configure_region(
    code: str = typer.Argument(..., help="Two-letter region bias code, e.g. 'us' or 'de'."),
) -> None:
    """Set the region bias used for lookups."""
    regions = RegionStore(create_store())
    try:
        stored = regions.set(code)
    except ConfigurationError as e:
        _fail(e)
        return
    typer.echo(f"Region set to '{stored}'.")


def _single_pass(mode: JobMode, source: Path, a1_range: str) -> None:
    try:
        dataset = dataset_from_a1(str(source), a1_range)
        validate_dataset(mode, dataset)
        grid = open_csv_grid(dataset)
    except GeobatchError as e:
        _fail(e)
        return

    region = RegionStore(create_store()).get()
    with GoogleGeocoder() as geocoder:
        processed, errors = legacy.run_single_pass(mode, dataset, geocoder, grid, region)
    typer.echo(f"Finished {processed} rows, {errors} errors.")


@app.command("legacy-forward")
def legacy_forward(
    source: Path = typer.Argument(..., help="CSV dataset to convert."),
    a1_range: str = typer.Option(..., "--range", "-r", help=RANGE_HELP),
) -> None:
    """Single pass address -> coordinates, no checkpointing or retries."""
    _single_pass(JobMode.ADDRESS_TO_POSITION, source, a1_range)


@app.command("legacy-reverse")
def legacy_reverse(
    source: Path = typer.Argument(..., help="CSV dataset to convert."),
    a1_range: str = typer.Option(..., "--range", "-r", help=RANGE_HELP),
) -> None:
    """Single pass coordinates -> address, no checkpointing or retries."""
    _single_pass(JobMode.POSITION_TO_ADDRESS, source, a1_range)


@app.command("worker")
def run_worker() -> None:
    """Run the scheduler that fires pending continuations."""
    asyncio.run(worker.main())
