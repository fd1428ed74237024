"""Main application entry point for icyripper."""

import sys
import signal
import logging
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import RipperConfig, RipperSettings
from .errors import RipperError, ShutdownError
from .services.ripper import Ripper
from .storage.file_manager import FileManager
from .storage.track_file import format_bytes

logger = logging.getLogger(__name__)

DEFAULT_LOG_FILE = "data/logs/icyripper.log"

FILE_LOG_FORMAT = '%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s.%(funcName)s:%(lineno)d %(message)s'
CONSOLE_LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'


def _make_handler(handler: logging.Handler, level: int, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def setup_logging(config: Optional[RipperConfig], level: str = "INFO") -> None:
    """Route logs to the log file and, unless disabled, warnings to stderr.

    Reads ``logging.file_path`` and ``logging.console_output`` from the config.
    """
    log_file = DEFAULT_LOG_FILE
    console_output = True
    if config is not None:
        log_file = config.get('logging.file_path', DEFAULT_LOG_FILE)
        console_output = config.get('logging.console_output', True)

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    handlers = [_make_handler(logging.FileHandler(log_file), logging.DEBUG, FILE_LOG_FORMAT)]
    if console_output:
        handlers.append(_make_handler(logging.StreamHandler(sys.stderr), logging.WARNING,
                                      CONSOLE_LOG_FORMAT))

    root = logging.getLogger()
    for old in root.handlers[:]:
        root.removeHandler(old)
    root.setLevel(level.upper())
    for handler in handlers:
        root.addHandler(handler)

    logger.info(f"icyripper {__version__} logging to {log_file} at {level.upper()}")


def load_settings(config: Optional[RipperConfig], **overrides) -> RipperSettings:
    """Merge the config file's ripper section with command line overrides."""
    if config is not None:
        return config.get_settings(**overrides)
    return RipperSettings(**{k: v for k, v in overrides.items() if v is not None})


@click.group()
@click.version_option(__version__, prog_name="icyripper")
def cli() -> None:
    """icyripper - record internet radio streams, one file per track."""


@cli.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False),
              help="Path to configuration YAML file")
@click.option("--url", help="Stream or playlist URL to record")
@click.option("--dir", "output_dir", help="Directory to save recordings in")
@click.option("--write-buffer-size", type=int,
              help="Bytes to buffer before writing to disk (32KiB-4MiB, default 256KiB)")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
              help="Set logging level (default: INFO)")
def record(config_path: Optional[str], url: Optional[str], output_dir: Optional[str],
           write_buffer_size: Optional[int], log_level: Optional[str]) -> None:
    """Record a stream until interrupted."""
    try:
        config = RipperConfig(config_path) if config_path else None
        settings = load_settings(config, url=url, dir=output_dir,
                                 write_buffer_size=write_buffer_size)
    except (FileNotFoundError, ValueError, ValidationError) as e:
        raise click.ClickException(str(e))

    level = log_level or (config.get('logging.level', 'INFO') if config else 'INFO')
    setup_logging(config, level)

    ripper = Ripper(settings)
    signal.signal(signal.SIGTERM, lambda signum, frame: ripper.request_stop())

    try:
        ripper.start()
    except RipperError as e:
        logger.error(f"Failed to start: {e}")
        raise click.ClickException(f"Failed to start: {e}")

    exit_code = 0
    try:
        ripper.run()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    except RipperError as e:
        logger.error(f"Stream failed: {e}")
        click.echo(f"Stream failed: {e}", err=True)
        exit_code = 1
    finally:
        try:
            ripper.stop()
        except ShutdownError as e:
            logger.warning(f"Errors during shutdown: {e}")
        logger.info(f"Final status: {ripper.status()}")

    sys.exit(exit_code)


@cli.command()
@click.option("--dir", "output_dir", default=".", show_default=True,
              help="Directory recordings are saved in")
@click.option("--station", help="Only list this station's tracks")
def tracks(output_dir: str, station: Optional[str]) -> None:
    """List recorded tracks."""
    file_manager = FileManager(output_dir)
    stations = [station] if station else file_manager.list_stations()

    table = Table(title=f"Recordings in {output_dir}")
    table.add_column("Station", style="cyan")
    table.add_column("Title")
    table.add_column("Size", justify="right")
    table.add_column("Recorded", style="dim")

    for name in stations:
        for track in file_manager.list_tracks(name):
            table.add_row(track.station, track.title, format_bytes(track.size_bytes),
                          track.modified.strftime("%Y-%m-%d %H:%M"))

    stats = file_manager.get_storage_stats()
    summary = (f"{stats['track_count']} tracks in {stats['station_count']} stations, "
               f"{format_bytes(stats['total_size_bytes'])}")
    if stats["temp_files"]:
        summary += f", {stats['temp_files']} unfinished"

    console = Console()
    console.print(table)
    console.print(summary)


def main() -> None:
    """Main entry point for icyripper."""
    cli()


if __name__ == "__main__":
    main()
