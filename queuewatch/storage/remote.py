"""Remote sink posting snapshots to the collect endpoint."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import httpx

from queuewatch.errors import RemoteError
from queuewatch.ingest.models import Snapshot

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:8000/api/collect"


@dataclass(slots=True)
class SendResult:
    ok: bool
    error: str | None = None


class RemoteSink:
    """Best-effort forwarder; ``send`` reports failures instead of raising."""

    def __init__(
        self,
        secret: str | None,
        *,
        url: str = DEFAULT_API_URL,
        timeout: float = 10.0,
        session: httpx.AsyncClient | None = None,
    ) -> None:
        self.secret = secret
        self.url = url
        self.session = session or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_env(cls) -> "RemoteSink":
        return cls(
            os.environ.get("API_SECRET") or None,
            url=os.environ.get("API_URL", DEFAULT_API_URL),
            timeout=float(os.environ.get("REMOTE_TIMEOUT_SECONDS", "10")),
        )

    async def close(self) -> None:
        await self.session.aclose()

    async def send(self, snapshot: Snapshot) -> SendResult:
        if not self.secret:
            logger.warning("API_SECRET not configured; skipping remote save")
            return SendResult(ok=False, error="missing credential")
        try:
            await self._post(snapshot)
        except RemoteError as exc:
            logger.error("Remote save failed for %s: %s", snapshot.to_dict()["timestamp"], exc)
            return SendResult(ok=False, error=str(exc))
        logger.info("Remote save ok: %s", snapshot.to_dict()["timestamp"])
        return SendResult(ok=True)

    async def _post(self, snapshot: Snapshot) -> None:
        headers = {"Authorization": f"Bearer {self.secret}"}
        try:
            response = await self.session.post(self.url, json=snapshot.to_dict(), headers=headers)
        except httpx.HTTPError as exc:
            raise RemoteError(f"request failed: {exc!r}") from exc
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if not response.is_success:
            raise RemoteError(f"HTTP {response.status_code}: {body.get('error') or response.text[:200]}")
        if body.get("success") is not True:
            raise RemoteError(f"endpoint rejected snapshot: {body.get('error', 'no success flag')}")
