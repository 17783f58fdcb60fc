"""Error taxonomy for the collection pipeline."""

from __future__ import annotations


class QueueWatchError(RuntimeError):
    pass


class SourceUnavailable(QueueWatchError):
    """Transport failure or non-success status from the queue provider."""


class MalformedSourceData(QueueWatchError):
    """Provider payload does not have the shape needed to build a snapshot."""


class PersistenceError(QueueWatchError):
    """The local log could not be written."""


class RemoteError(QueueWatchError):
    """The remote write endpoint did not accept a snapshot."""
