"""Audit trail of every dispatched action."""

import json
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, List, Optional, Protocol
from uuid import uuid4

import structlog


logger = structlog.get_logger(__name__)


def truncate_input(raw_input: Any, max_chars: int) -> Optional[str]:
    """Serialize input to JSON and cap its length.

    The audit trail keeps context for debugging, not full request bodies.
    """
    if raw_input is None:
        return None
    try:
        serialized = json.dumps(raw_input, default=str)
    except Exception:
        try:
            serialized = repr(raw_input)
        except Exception as e:
            # Deeply nested or hostile input must never fail the dispatch
            logger.warning("Audit input not serializable", error_type=type(e).__name__)
            serialized = f"<unserializable {type(raw_input).__name__}>"
    return serialized[:max_chars]


@dataclass(frozen=True)
class AuditRecord:
    """One dispatch outcome."""

    tenant_id: str
    user_id: str
    action_id: str
    success: bool
    duration_ms: int
    input: Optional[str] = None
    error: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class AuditQueryResult:
    data: List[AuditRecord]
    total: int


class AuditSink(Protocol):
    """Destination for audit records."""

    async def write(self, record: AuditRecord) -> None: ...


class InMemoryAuditLog:
    """Bounded in-process audit log with tenant-scoped queries."""

    def __init__(self, max_entries: int = 10_000) -> None:
        """Initialize the audit log.

        Args:
            max_entries: Oldest records are dropped past this size
        """
        self._records: Deque[AuditRecord] = deque(maxlen=max_entries)

    async def write(self, record: AuditRecord) -> None:
        self._records.append(record)

        logger.debug(
            "Audit record written",
            action=record.action_id,
            tenant=record.tenant_id,
            success=record.success,
        )

    def query(
        self,
        tenant_id: str,
        *,
        user_id: Optional[str] = None,
        action_id: Optional[str] = None,
        entity: Optional[str] = None,
        success: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> AuditQueryResult:
        """Query records of one tenant, newest first.

        Args:
            tenant_id: Tenant whose records are searched
            user_id: Only records from this user
            action_id: Only records of this exact action
            entity: Only actions whose id starts with ``<entity>.``
            success: Only successful (True) or failed (False) dispatches
            limit: Page size
            offset: Records to skip

        Returns:
            Matching page and the total number of matches
        """
        entity_prefix = f"{entity.lower()}." if entity else None

        matches = [
            r
            for r in reversed(self._records)
            if r.tenant_id == tenant_id
            and (user_id is None or r.user_id == user_id)
            and (action_id is None or r.action_id == action_id)
            and (entity_prefix is None or r.action_id.lower().startswith(entity_prefix))
            and (success is None or r.success is success)
        ]

        return AuditQueryResult(data=matches[offset : offset + limit], total=len(matches))

    def __len__(self) -> int:
        return len(self._records)
