"""Outbound webhooks triggered by domain events."""

import asyncio
import hashlib
import hmac
import json
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Sequence
from uuid import uuid4

import aiohttp
import structlog
from prometheus_client import Counter

from .base import WILDCARD, DomainEvent, EventSubscriber


logger = structlog.get_logger(__name__)

WEBHOOK_DELIVERIES = Counter(
    "metabus_webhook_deliveries_total",
    "Total number of webhook delivery attempts",
    ["status"],
)

USER_AGENT = "metabus/0.1.0"


@dataclass(frozen=True)
class WebhookRegistration:
    """A tenant's subscription of a URL to an event type (or ``*``)."""

    tenant_id: str
    event_type: str
    url: str
    secret: Optional[str] = None
    active: bool = True
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class WebhookDelivery:
    """Outcome of one delivery attempt."""

    webhook_id: str
    event_type: str
    url: str
    status: str
    attempt: int
    status_code: Optional[int] = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class WebhookRegistry:
    """In-memory webhook registrations plus a bounded delivery log."""

    def __init__(self, delivery_log_size: int = 1000) -> None:
        self._webhooks: Dict[str, WebhookRegistration] = {}
        self._deliveries: Deque[WebhookDelivery] = deque(maxlen=delivery_log_size)

    def register(
        self,
        tenant_id: str,
        event_type: str,
        url: str,
        secret: Optional[str] = None,
        active: bool = True,
    ) -> WebhookRegistration:
        webhook = WebhookRegistration(
            tenant_id=tenant_id,
            event_type=event_type,
            url=url,
            secret=secret,
            active=active,
        )
        self._webhooks[webhook.id] = webhook

        logger.info(
            "Registered webhook",
            webhook_id=webhook.id,
            tenant=tenant_id,
            event_type=event_type,
            url=url,
        )
        return webhook

    def remove(self, webhook_id: str) -> bool:
        return self._webhooks.pop(webhook_id, None) is not None

    def list(self, tenant_id: str) -> List[WebhookRegistration]:
        return sorted(
            (w for w in self._webhooks.values() if w.tenant_id == tenant_id),
            key=lambda w: w.created_at,
            reverse=True,
        )

    def matching(self, event: DomainEvent) -> List[WebhookRegistration]:
        """Active webhooks for the event's type, limited to its tenant when known."""
        return [
            w
            for w in self._webhooks.values()
            if w.active
            and w.event_type in (event.type, WILDCARD)
            and (event.tenant_id is None or w.tenant_id == event.tenant_id)
        ]

    def record_delivery(self, delivery: WebhookDelivery) -> None:
        self._deliveries.append(delivery)

    def deliveries(self, webhook_id: Optional[str] = None) -> List[WebhookDelivery]:
        """Delivery log, newest first."""
        return [
            d
            for d in reversed(self._deliveries)
            if webhook_id is None or d.webhook_id == webhook_id
        ]


def sign_payload(secret: str, body: bytes) -> str:
    """HMAC-SHA256 hex digest receivers use to verify the sender."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class WebhookDeliverer:
    """Delivers events to registered webhooks with retry.

    Network errors and 5xx responses are retried until ``max_retries``
    attempts were made; every attempt is written to the delivery log.
    """

    def __init__(
        self,
        registry: WebhookRegistry,
        timeout: float = 10.0,
        max_retries: int = 3,
        retry_delays: Sequence[float] = (1.0, 5.0, 15.0),
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.registry = registry
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delays = tuple(retry_delays)
        self._session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def _post(self, url: str, body: bytes, headers: Dict[str, str]) -> int:
        session = await self._get_session()
        async with session.post(
            url,
            data=body,
            headers={"Content-Type": "application/json", "User-Agent": USER_AGENT, **headers},
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        ) as response:
            await response.read()
            return response.status

    def _retry_delay(self, attempt: int) -> float:
        if not self.retry_delays:
            return 0.0
        return self.retry_delays[min(attempt - 1, len(self.retry_delays) - 1)]

    async def deliver(self, webhook: WebhookRegistration, event: DomainEvent) -> bool:
        """Deliver one event to one webhook.

        Args:
            webhook: Target registration
            event: Event to deliver

        Returns:
            True once a 2xx response was received
        """
        timestamp = event.timestamp or datetime.now(timezone.utc)
        body = json.dumps(
            {"event": event.type, "data": event.payload, "timestamp": timestamp.isoformat()},
            default=str,
        ).encode()

        headers = {"X-Metabus-Event": event.type, "X-Metabus-Delivery": str(uuid4())}
        if webhook.secret:
            headers["X-Metabus-Signature"] = sign_payload(webhook.secret, body)

        for attempt in range(1, self.max_retries + 1):
            status_code: Optional[int] = None
            error: Optional[str] = None
            try:
                status_code = await self._post(webhook.url, body, headers)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                error = str(e) or type(e).__name__

            ok = status_code is not None and 200 <= status_code < 300
            self.registry.record_delivery(
                WebhookDelivery(
                    webhook_id=webhook.id,
                    event_type=event.type,
                    url=webhook.url,
                    status="success" if ok else "failed",
                    attempt=attempt,
                    status_code=status_code,
                    error=error,
                )
            )
            WEBHOOK_DELIVERIES.labels(status="success" if ok else "failed").inc()

            if ok:
                logger.info(
                    "Webhook delivered",
                    webhook_id=webhook.id,
                    url=webhook.url,
                    status=status_code,
                    attempt=attempt,
                )
                return True

            retryable = error is not None or (status_code is not None and status_code >= 500)
            logger.warning(
                "Webhook delivery failed",
                webhook_id=webhook.id,
                url=webhook.url,
                status=status_code,
                error=error,
                attempt=attempt,
                retryable=retryable,
            )
            if not retryable or attempt == self.max_retries:
                return False

            await asyncio.sleep(self._retry_delay(attempt))

        return False

    async def handle_event(self, event: DomainEvent) -> None:
        """Fan an event out to every matching webhook."""
        webhooks = self.registry.matching(event)
        if not webhooks:
            return
        results = await asyncio.gather(
            *(self.deliver(w, event) for w in webhooks), return_exceptions=True
        )
        for webhook, result in zip(webhooks, results):
            if isinstance(result, Exception):
                logger.error(
                    "Webhook delivery raised",
                    webhook_id=webhook.id,
                    url=webhook.url,
                    event_type=event.type,
                    error=str(result),
                )

    async def post(self, url: str, payload: Dict[str, Any]) -> int:
        """Single POST without retry; used by the ``webhook`` side effect.

        Returns:
            HTTP status code of the response
        """
        body = json.dumps(payload, default=str).encode()
        status = await self._post(url, body, {})
        WEBHOOK_DELIVERIES.labels(status="success" if 200 <= status < 300 else "failed").inc()
        return status

    def as_subscriber(self) -> EventSubscriber:
        """Wildcard subscriber that routes every event to matching webhooks."""
        return EventSubscriber(
            name="webhook-dispatcher", event_type=WILDCARD, handler=self.handle_event
        )

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
