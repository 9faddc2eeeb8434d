"""Remote synchronization of tier files."""

from .publisher import GitPublisher, NullPublisher, PublishError, Publisher, create_publisher

__all__ = [
    "GitPublisher",
    "NullPublisher",
    "PublishError",
    "Publisher",
    "create_publisher",
]
