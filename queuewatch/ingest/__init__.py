"""Ingestion helpers."""

from __future__ import annotations

from queuewatch.ingest.models import Snapshot, normalize
from queuewatch.ingest.provider import ProviderClient, QueueCollector

__all__ = ["ProviderClient", "QueueCollector", "Snapshot", "normalize"]
