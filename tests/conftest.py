"""Pytest configuration and fixtures for metabus tests."""

from typing import Optional

import pytest
from pydantic import BaseModel

from metabus.actions import (
    ALLOW_ALL,
    ActionBus,
    ActionDefinition,
    ActionRegistry,
    Caller,
    CallerType,
    PermissionRule,
)
from metabus.audit import InMemoryAuditLog
from metabus.config import BusSettings
from metabus.events import EventBus
from metabus.storage import InMemoryDatabase
from metabus.utils import RecordingExceptionCapture


class ContactInput(BaseModel):
    name: str
    email: Optional[str] = None


async def create_contact(data: ContactInput, ctx):
    return await ctx.db.create("contact", data.model_dump())


def build_action(action_id: str = "contact.create", **overrides) -> ActionDefinition:
    """Build an action definition with permissive defaults."""
    fields = {
        "id": action_id,
        "name": action_id.replace(".", " ").title(),
        "description": f"Test action {action_id}",
        "input_schema": ContactInput,
        "handler": create_contact,
        "permissions": [ALLOW_ALL],
    }
    fields.update(overrides)
    return ActionDefinition(**fields)


@pytest.fixture
def make_action():
    """Provide a factory for test action definitions."""
    return build_action


@pytest.fixture
def bus_settings():
    """Provide test bus settings."""
    return BusSettings(
        log_level="DEBUG",
        webhook_timeout=1,
        webhook_max_retries=2,
        webhook_retry_delays=[0.0],
        metrics_enabled=False,
        health_port=9999,
    )


@pytest.fixture
def registry():
    """Provide an empty ActionRegistry."""
    return ActionRegistry()


@pytest.fixture
def event_bus(exception_capture):
    """Provide an EventBus that records subscriber failures."""
    return EventBus(exception_capture=exception_capture)


@pytest.fixture
def audit_log():
    """Provide an in-memory audit log."""
    return InMemoryAuditLog()


@pytest.fixture
def exception_capture():
    """Provide a capture that keeps exceptions in memory."""
    return RecordingExceptionCapture()


@pytest.fixture
def database():
    """Provide an empty tenant-partitioned store."""
    return InMemoryDatabase()


@pytest.fixture
async def action_bus(registry, event_bus, audit_log, exception_capture, database):
    """Provide an ActionBus wired to the test collaborators."""
    bus = ActionBus(
        registry,
        event_bus,
        audit_sink=audit_log,
        exception_capture=exception_capture,
        db_factory=database.for_tenant,
    )
    yield bus
    await bus.drain()


@pytest.fixture
def admin():
    """Human caller with the admin role in tenant A."""
    return Caller(user_id="user-admin", tenant_id="tenant-a", roles={"admin"})


@pytest.fixture
def member():
    """Human caller with only the member role in tenant A."""
    return Caller(user_id="user-member", tenant_id="tenant-a", roles={"member"})


@pytest.fixture
def tenant_b_admin():
    """Human admin in tenant B."""
    return Caller(user_id="user-b", tenant_id="tenant-b", roles={"admin"})


@pytest.fixture
def system_caller():
    """System caller without roles."""
    return Caller(user_id="system", tenant_id="tenant-a", type=CallerType.SYSTEM)


@pytest.fixture
def ai_agent():
    """AI agent caller acting for tenant A."""
    return Caller(user_id="agent-1", tenant_id="tenant-a", roles={"member"}, type="ai-agent")


@pytest.fixture
def admin_only():
    """Rules admitting only callers with the admin role."""
    return [PermissionRule(effect="allow", roles=["admin"])]
