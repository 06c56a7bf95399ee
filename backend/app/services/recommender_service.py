"""Recommender sync - best-effort replication of items and feedback to Gorse.

Writes are enqueued and delivered by a single background consumer so that the
interaction and catalog paths never wait on (or fail because of) the
recommender. Reads (recommendations) are direct calls that degrade to an
empty list.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from app.config import Settings, get_settings
from app.constants.catalog import FEEDBACK_TYPES, ITEM_BASE_LABELS, ITEM_CATEGORIES
from app.models.interaction import InteractionKind

logger = logging.getLogger(__name__)


@dataclass
class SyncEvent:
    """One pending write to the recommender."""

    operation: str
    method: str
    endpoint: str
    body: Any = None
    context: dict[str, Any] = field(default_factory=dict)


class GorseClient:
    """Thin async HTTP client for a Gorse-compatible API."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self.enabled = self.settings.recommender_enabled
        self.http = httpx.AsyncClient(
            base_url=self.settings.recommender_url or "http://recommender.invalid",
            timeout=self.settings.recommender_timeout_seconds,
            headers={"X-API-Key": self.settings.recommender_api_key},
            transport=transport,
        )

    async def request(self, method: str, endpoint: str, body: Any = None) -> Any:
        """Send a request; HTTP and transport errors propagate to the caller."""
        response = await self.http.request(method, endpoint, json=body)
        response.raise_for_status()
        return response.json() if response.content else None

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.http.aclose()


class RecommendationSync:
    """Stateless translation layer plus an in-process delivery queue."""

    def __init__(
        self,
        client: GorseClient | None = None,
        settings: Settings | None = None,
        max_attempts: int = 3,
        retry_wait: float = 0.5,
    ):
        self.settings = settings or get_settings()
        self.client = client or GorseClient(self.settings)
        self.max_attempts = max_attempts
        self.retry_wait = retry_wait
        self.queue: asyncio.Queue[SyncEvent] = asyncio.Queue(maxsize=self.settings.recommender_queue_size)
        self._worker: asyncio.Task | None = None

        if not self.enabled:
            logger.warning("Recommender sync disabled - RECOMMENDER_URL not configured")

    @property
    def enabled(self) -> bool:
        return self.client.enabled

    # Producers -------------------------------------------------------------

    def sync_feedback(self, user_id: UUID, external_article_id: str, kind: InteractionKind) -> bool:
        """Queue a feedback insert for a new interaction."""
        feedback = [
            {
                "FeedbackType": FEEDBACK_TYPES[kind],
                "UserId": str(user_id),
                "ItemId": external_article_id,
                "Timestamp": datetime.now(UTC).isoformat(),
            }
        ]
        return self._enqueue(
            SyncEvent(
                operation="insert_feedback",
                method="POST",
                endpoint="/api/feedback",
                body=feedback,
                context={"user_id": str(user_id), "item_id": external_article_id, "kind": kind.value},
            )
        )

    def sync_remove_feedback(self, user_id: UUID, external_article_id: str, kind: InteractionKind) -> bool:
        """Queue a feedback delete for an unlike/unsave."""
        if not kind.is_toggle:
            raise ValueError("Only LIKE and SAVE feedback can be removed")
        return self._enqueue(
            SyncEvent(
                operation="delete_feedback",
                method="DELETE",
                endpoint=f"/api/feedback/{FEEDBACK_TYPES[kind]}/{user_id}/{external_article_id}",
                context={"user_id": str(user_id), "item_id": external_article_id, "kind": kind.value},
            )
        )

    def sync_item(self, external_article_id: str, title: str, labels: list[str] | None = None) -> bool:
        """Queue an item upsert for a newly created catalog item."""
        item = {
            "ItemId": external_article_id,
            "IsHidden": False,
            "Labels": [*ITEM_BASE_LABELS, *(labels or [])],
            "Categories": list(ITEM_CATEGORIES),
            "Comment": title,
            "Timestamp": datetime.now(UTC).isoformat(),
        }
        return self._enqueue(
            SyncEvent(
                operation="upsert_item",
                method="POST",
                endpoint="/api/item",
                body=item,
                context={"item_id": external_article_id},
            )
        )

    def sync_user(self, user_id: UUID, interests: list[str] | None = None) -> bool:
        """Queue a user upsert carrying the user's declared interests."""
        return self._enqueue(
            SyncEvent(
                operation="upsert_user",
                method="POST",
                endpoint="/api/user",
                body={"UserId": str(user_id), "Labels": interests or []},
                context={"user_id": str(user_id)},
            )
        )

    def _enqueue(self, event: SyncEvent) -> bool:
        if not self.enabled:
            return False
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.error("Recommender queue full, dropping %s %s", event.operation, event.context)
            return False
        return True

    # Reads -----------------------------------------------------------------

    async def get_recommendations(self, user_id: UUID, count: int = 10) -> list[str]:
        """Recommended external item ids for a user; empty on any failure."""
        if not self.enabled:
            return []
        try:
            result = await self.client.request(
                "GET", f"/api/recommend/{user_id}/{ITEM_CATEGORIES[0]}?n={count}"
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Recommendation fetch failed for user %s: %s", user_id, e)
            return []

        if not isinstance(result, list):
            return []
        return [str(item_id) for item_id in result][:count]

    # Consumer --------------------------------------------------------------

    async def _deliver(self, event: SyncEvent) -> None:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_wait, max=5),
            reraise=True,
        ):
            with attempt:
                await self.client.request(event.method, event.endpoint, event.body)

    async def _run(self) -> None:
        while True:
            event = await self.queue.get()
            try:
                await self._deliver(event)
                logger.info("Synced %s to recommender %s", event.operation, event.context)
            except (httpx.HTTPError, ValueError) as e:
                logger.error(
                    "Recommender %s failed after %d attempts %s: %s",
                    event.operation,
                    self.max_attempts,
                    event.context,
                    e,
                )
            except Exception:
                logger.exception("Unexpected recommender failure for %s %s", event.operation, event.context)
            finally:
                self.queue.task_done()

    def start(self) -> None:
        """Start the background consumer (idempotent)."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="recommender-sync")
            logger.info("Recommender sync worker started")

    async def drain(self) -> None:
        """Wait until every queued event has been delivered or dropped."""
        if self._worker is not None and not self._worker.done():
            await self.queue.join()

    async def stop(self) -> None:
        """Flush the queue, stop the consumer and close the HTTP client."""
        await self.drain()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        await self.client.close()
        logger.info("Recommender sync worker stopped")


_recommender: RecommendationSync | None = None


def get_recommender() -> RecommendationSync:
    """Get or create the process-wide recommender sync."""
    global _recommender
    if _recommender is None:
        _recommender = RecommendationSync()
    return _recommender
