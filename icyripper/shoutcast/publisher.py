"""Metadata publisher module for pub/sub event publishing."""

import logging
from typing import Callable
from pubsub import pub
from ..models.stream import Metadata

logger = logging.getLogger(__name__)


class MetadataPublisher:
    """Publishes stream metadata changes using pubsub.pub.

    ``pub.sendMessage`` delivers synchronously, so every listener has run
    before the demuxer resumes reading.
    """

    def __init__(self, topic: str = "stream_metadata"):
        """Initialize metadata publisher.

        Args:
            topic: Pub/sub topic name for metadata changes
        """
        self.topic = topic
        logger.info(f"MetadataPublisher initialized with topic: {topic}")

    def publish_metadata(self, metadata: Metadata) -> None:
        """Publish a metadata change to the pub/sub topic."""
        logger.debug(f"Publishing metadata change: {metadata.title!r}")
        pub.sendMessage(self.topic, metadata=metadata)

    def get_callback(self) -> Callable[[Metadata], None]:
        """Get callback function for the demuxer to use."""
        return self.publish_metadata
