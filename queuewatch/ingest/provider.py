"""Queue provider client and snapshot collection."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from datetime import datetime
from typing import Any

import httpx

from queuewatch.errors import MalformedSourceData, SourceUnavailable
from queuewatch.ingest.models import Snapshot, StoreRecord, normalize
from queuewatch.utils.dates import utc_now

logger = logging.getLogger(__name__)

PROVIDER_ENDPOINT = "https://xcx.zhufuguihuoguo.com/api/item/lists"
DEFAULT_SEARCH = "禹悦汇"
DEFAULT_STORE_ID = 19
PROVIDER_OK = 1


class ProviderClient:
    def __init__(
        self,
        *,
        store_id: int | str = DEFAULT_STORE_ID,
        url: str = PROVIDER_ENDPOINT,
        search: str = DEFAULT_SEARCH,
        timeout: float = 10.0,
        session: httpx.AsyncClient | None = None,
    ) -> None:
        self.store_id = store_id
        self.url = url
        self.search = search
        self.session = session or httpx.AsyncClient(
            timeout=timeout, headers={"Content-Type": "application/json"}
        )

    @classmethod
    def from_env(cls) -> "ProviderClient":
        return cls(
            store_id=os.environ.get("TARGET_STORE_ID", str(DEFAULT_STORE_ID)),
            url=os.environ.get("PROVIDER_API_URL", PROVIDER_ENDPOINT),
            search=os.environ.get("PROVIDER_SEARCH", DEFAULT_SEARCH),
            timeout=float(os.environ.get("PROVIDER_TIMEOUT_SECONDS", "10")),
        )

    async def close(self) -> None:
        await self.session.aclose()

    async def fetch_target_store(self) -> StoreRecord | None:
        """Return the target store's record, or ``None`` when it is not listed."""
        try:
            response = await self.session.post(self.url, json={"search": self.search})
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SourceUnavailable(f"Provider returned HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise SourceUnavailable(f"Provider request failed: {exc!r}") from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise SourceUnavailable("Provider returned a non-JSON body") from exc
        if not isinstance(payload, dict):
            raise MalformedSourceData("Provider envelope is not an object")
        if payload.get("code") != PROVIDER_OK:
            raise SourceUnavailable(f"Provider error {payload.get('code')!r}: {payload.get('msg')}")
        stores = payload.get("data")
        if not isinstance(stores, list):
            raise MalformedSourceData("Provider envelope has no store list")
        return _find_store(stores, self.store_id)


def _find_store(stores: list[Any], store_id: int | str) -> StoreRecord | None:
    target = str(store_id)
    for store in stores:
        if isinstance(store, dict) and str(store.get("id")) == target:
            return store
    return None


class QueueCollector:
    def __init__(self, client: ProviderClient, *, clock: Callable[[], datetime] = utc_now) -> None:
        self.client = client
        self.clock = clock

    async def collect(self) -> Snapshot | None:
        """Fetch and normalize one observation; ``None`` when nothing usable came back."""
        try:
            record = await self.client.fetch_target_store()
            if record is None:
                logger.info("Target store %s not in provider response", self.client.store_id)
                return None
            snapshot = normalize(record, captured_at=self.clock())
        except SourceUnavailable as exc:
            logger.error("Provider unavailable: %s", exc)
            return None
        except MalformedSourceData as exc:
            logger.warning("Malformed provider data: %s", exc)
            return None
        details = snapshot.queue_details
        logger.info(
            "Queue for %s: 1-2=%s 3-4=%s 5-6=%s 7-8=%s total=%s",
            snapshot.store_name,
            details["type_a"],
            details["type_b"],
            details["type_c"],
            details["type_f"],
            snapshot.total_lineup,
        )
        return snapshot
