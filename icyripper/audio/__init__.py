"""Audio hand-off and frame alignment."""

from .bridge import ChannelBridge
from .frame_sync import FrameSyncDetector, find_mp3_frame_sync

__all__ = [
    'ChannelBridge',
    'FrameSyncDetector',
    'find_mp3_frame_sync',
]
