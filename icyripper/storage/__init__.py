"""Track files on disk."""

from .file_manager import FileManager, sanitize_filename
from .track_file import TrackFile, commit_track, format_bytes

__all__ = [
    'FileManager',
    'sanitize_filename',
    'TrackFile',
    'commit_track',
    'format_bytes',
]
