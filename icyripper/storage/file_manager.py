"""File management module for recorded tracks."""

import re
import logging
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, List

from ..errors import WriteError
from ..models.track import CommitResult, TrackInfo
from .track_file import TEMP_SUFFIX, commit_track

logger = logging.getLogger(__name__)

TRACK_EXTENSION = ".mp3"

_UNSAFE = re.compile(r'[\x00-\x1f/\\]')


def sanitize_filename(name: str, fallback: str = "") -> str:
    """Make a station name or track title usable as a single path component."""
    name = _UNSAFE.sub("_", name).strip()
    # "." and ".." would escape or alias the station directory.
    if name.strip(".") == "":
        return fallback
    return name


class FileManager:
    """Lays out recordings as <output dir>/<station>/<title>.mp3."""

    def __init__(self, output_dir: str = "."):
        """Initialize file manager with the output directory.

        Args:
            output_dir: Root directory for all recordings
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"FileManager initialized with output_dir: {self.output_dir}")

    def station_dir(self, station: str) -> Path:
        """Directory holding a station's tracks; the root when the station is unnamed."""
        station = sanitize_filename(station)
        return self.output_dir / station if station else self.output_dir

    def track_path(self, station: str, title: str) -> Path:
        """Destination path of a track."""
        title = sanitize_filename(title, fallback="Unknown")
        return self.station_dir(station) / f"{title}{TRACK_EXTENSION}"

    def salvage_temp_files(self, station: str) -> Dict[str, CommitResult]:
        """Commit temp files left behind by an unclean shutdown.

        Each leftover goes through the same larger-wins policy as a normal
        commit, so a partial file never truncates a good prior recording.

        Returns:
            Mapping of destination path to commit result
        """
        results = {}
        directory = self.station_dir(station)
        if not directory.is_dir():
            return results

        for temp_path in sorted(directory.glob(f"*{TRACK_EXTENSION}{TEMP_SUFFIX}")):
            destination = temp_path.with_name(temp_path.name[:-len(TEMP_SUFFIX)])
            try:
                results[str(destination)] = commit_track(temp_path, destination)
                logger.warning(f"Salvaged leftover recording {temp_path}: "
                               f"{results[str(destination)].value}")
            except WriteError as e:
                logger.error(f"Failed to salvage {temp_path}: {e}")
        return results

    def list_stations(self) -> List[str]:
        """List station directories that contain recordings."""
        try:
            return sorted(
                path.name for path in self.output_dir.iterdir()
                if path.is_dir() and any(path.glob(f"*{TRACK_EXTENSION}"))
            )
        except OSError as e:
            logger.error(f"Error listing stations: {e}")
            return []

    def list_tracks(self, station: str) -> List[TrackInfo]:
        """List committed tracks of a station, oldest first."""
        tracks = []
        directory = self.station_dir(station)
        if not directory.is_dir():
            return tracks

        for path in directory.glob(f"*{TRACK_EXTENSION}"):
            if not path.is_file():
                continue
            stat = path.stat()
            tracks.append(TrackInfo(
                station=station,
                title=path.stem,
                path=str(path),
                size_bytes=stat.st_size,
                modified=datetime.fromtimestamp(stat.st_mtime),
            ))

        tracks.sort(key=lambda t: (t.modified, t.title))
        return tracks

    def get_storage_stats(self) -> Dict[str, Any]:
        """Get storage usage statistics."""
        total_size = 0
        track_count = 0
        temp_files = 0

        for path in self.output_dir.rglob("*"):
            if not path.is_file():
                continue
            if path.name.endswith(TEMP_SUFFIX):
                temp_files += 1
            elif path.suffix == TRACK_EXTENSION:
                track_count += 1
                total_size += path.stat().st_size

        return {
            "total_size_bytes": total_size,
            "total_size_mb": round(total_size / (1024 * 1024), 2),
            "station_count": len(self.list_stations()),
            "track_count": track_count,
            "temp_files": temp_files,
            "output_directory": str(self.output_dir),
        }
