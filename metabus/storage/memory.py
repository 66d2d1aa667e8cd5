"""Tenant-scoped in-memory data access."""

from collections import defaultdict
from typing import Any, Dict, List, Optional, Protocol
from uuid import uuid4

import structlog


logger = structlog.get_logger(__name__)

Record = Dict[str, Any]


class DatabaseClient(Protocol):
    """Data access handle given to handlers, already scoped to one tenant."""

    tenant_id: str

    async def find_many(
        self,
        entity: str,
        where: Optional[Record] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Record]: ...

    async def find_by_id(self, entity: str, record_id: str) -> Optional[Record]: ...

    async def create(self, entity: str, data: Record) -> Record: ...

    async def update(self, entity: str, record_id: str, data: Record) -> Optional[Record]: ...

    async def delete(self, entity: str, record_id: str) -> bool: ...

    async def count(self, entity: str, where: Optional[Record] = None) -> int: ...


class InMemoryDatabase:
    """Process-local store partitioned by tenant.

    ``for_tenant`` hands out a fresh client per call; a client only ever
    sees its own tenant's rows.
    """

    def __init__(self) -> None:
        # tenant -> entity -> id -> record
        self._tables: Dict[str, Dict[str, Dict[str, Record]]] = defaultdict(
            lambda: defaultdict(dict)
        )

    def for_tenant(self, tenant_id: str) -> "TenantScopedClient":
        return TenantScopedClient(self, tenant_id)

    def _table(self, tenant_id: str, entity: str) -> Dict[str, Record]:
        return self._tables[tenant_id][entity]

    def clear(self) -> None:
        self._tables.clear()


def _matches(record: Record, where: Optional[Record]) -> bool:
    return not where or all(record.get(k) == v for k, v in where.items())


class TenantScopedClient:
    """``DatabaseClient`` bound to exactly one tenant."""

    def __init__(self, database: InMemoryDatabase, tenant_id: str) -> None:
        self._database = database
        self.tenant_id = tenant_id

    async def find_many(
        self,
        entity: str,
        where: Optional[Record] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Record]:
        rows = [
            dict(r)
            for r in self._database._table(self.tenant_id, entity).values()
            if _matches(r, where)
        ]
        if order_by:
            rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)), reverse=descending)
        end = None if limit is None else offset + limit
        return rows[offset:end]

    async def find_by_id(self, entity: str, record_id: str) -> Optional[Record]:
        record = self._database._table(self.tenant_id, entity).get(record_id)
        return dict(record) if record is not None else None

    async def create(self, entity: str, data: Record) -> Record:
        record = {**data, "id": data.get("id") or str(uuid4()), "tenant_id": self.tenant_id}
        self._database._table(self.tenant_id, entity)[record["id"]] = record
        logger.debug("Created record", entity=entity, id=record["id"], tenant=self.tenant_id)
        return dict(record)

    async def update(self, entity: str, record_id: str, data: Record) -> Optional[Record]:
        table = self._database._table(self.tenant_id, entity)
        if record_id not in table:
            return None
        updates = {k: v for k, v in data.items() if k not in ("id", "tenant_id")}
        table[record_id] = {**table[record_id], **updates}
        return dict(table[record_id])

    async def delete(self, entity: str, record_id: str) -> bool:
        return self._database._table(self.tenant_id, entity).pop(record_id, None) is not None

    async def count(self, entity: str, where: Optional[Record] = None) -> int:
        return sum(
            1
            for r in self._database._table(self.tenant_id, entity).values()
            if _matches(r, where)
        )
