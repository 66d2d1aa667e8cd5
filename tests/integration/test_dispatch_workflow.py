"""Integration tests for the complete dispatch pipeline."""

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import BaseModel

import metabus
from metabus.actions import (
    ActionBus,
    ActionErrorType,
    ActionFailure,
    ActionSuccess,
    PermissionRule,
    RecordNotFoundError,
    SideEffect,
    SideEffectProcessor,
    SimpleWorkflowDefinition,
    WorkflowTransition,
    validate_workflow_transitions,
)
from metabus.actions.bus import GENERIC_ERROR_MESSAGE, set_action_bus
from metabus.events import DomainEvent, EventSubscriber, WebhookDeliverer
from metabus.main import bootstrap
from metabus.notifications import NotificationCenter


class GreetInput(BaseModel):
    name: str


async def greet(data: GreetInput, ctx):
    return {"result": "hello"}


def recorder(name, event_type):
    """Subscriber whose handler is an AsyncMock."""
    return EventSubscriber(name=name, event_type=event_type, handler=AsyncMock())


class TestDispatchFailures:
    """Test each failure category of the pipeline."""

    async def test_unknown_action(self, action_bus, audit_log, admin):
        """Test an unregistered id fails with not_found and writes no audit record."""
        result = await action_bus.dispatch("nope.missing", {}, admin)
        await action_bus.drain()

        assert isinstance(result, ActionFailure)
        assert result.error_type is ActionErrorType.NOT_FOUND
        assert result.error == "Action 'nope.missing' not found"
        assert len(audit_log) == 0

    async def test_validation_failure_stops_pipeline(
        self, action_bus, registry, make_action, admin
    ):
        """Test invalid input stops before hooks and the handler run."""
        before = AsyncMock()
        handler = AsyncMock()
        registry.register(make_action(handler=handler, before_execute=[before]))

        result = await action_bus.dispatch("contact.create", {"email": "a@example.com"}, admin)

        assert result.error_type is ActionErrorType.VALIDATION
        assert result.details == {
            "fieldErrors": [{"field": "name", "message": "Field required", "code": "missing"}]
        }
        before.assert_not_awaited()
        handler.assert_not_awaited()

    async def test_permission_denied(self, action_bus, registry, make_action, member, admin_only):
        """Test a caller without an allowing rule is rejected."""
        handler = AsyncMock()
        registry.register(make_action(handler=handler, permissions=admin_only))

        result = await action_bus.dispatch("contact.create", {"name": "Ada"}, member)

        assert result.error_type is ActionErrorType.PERMISSION
        assert "user-member" in result.error
        handler.assert_not_awaited()

    async def test_deny_rule_before_allow(self, action_bus, registry, make_action, admin):
        """Test a deny rule listed first blocks an admin."""
        rules = [PermissionRule(effect="deny"), PermissionRule(effect="allow", roles=["admin"])]
        registry.register(make_action(permissions=rules))

        result = await action_bus.dispatch("contact.create", {"name": "Ada"}, admin)

        assert result.error_type is ActionErrorType.PERMISSION

    async def test_validation_runs_before_permission(
        self, action_bus, registry, make_action, member, admin_only
    ):
        """Test validation is reported before authorization."""
        registry.register(make_action(permissions=admin_only))

        result = await action_bus.dispatch("contact.create", {}, member)

        assert result.error_type is ActionErrorType.VALIDATION

    async def test_unexpected_error_is_not_leaked(
        self, action_bus, registry, make_action, admin, exception_capture, audit_log
    ):
        """Test unexpected errors return a generic message and are captured."""
        boom = RuntimeError("connection to db-primary:5432 refused")
        registry.register(make_action(handler=AsyncMock(side_effect=boom)))

        result = await action_bus.dispatch("contact.create", {"name": "Ada"}, admin)
        await action_bus.drain()

        assert result.error_type is ActionErrorType.UNKNOWN
        assert result.error == GENERIC_ERROR_MESSAGE
        assert "db-primary" not in str(result.to_dict())

        error, context = exception_capture.captured[0]
        assert error is boom
        assert context == {
            "action_id": "contact.create",
            "user_id": "user-admin",
            "tenant_id": "tenant-a",
        }

        record = audit_log.query("tenant-a").data[0]
        assert record.success is False
        assert "db-primary" in record.error

    async def test_before_hook_abort(self, action_bus, registry, make_action, admin):
        """Test a raising before hook aborts the dispatch."""
        handler = AsyncMock()
        before = AsyncMock(side_effect=ValueError("quota exceeded"))
        registry.register(make_action(handler=handler, before_execute=[before]))

        result = await action_bus.dispatch("contact.create", {"name": "Ada"}, admin)

        assert result.error_type is ActionErrorType.UNKNOWN
        handler.assert_not_awaited()

    async def test_record_not_found(self, action_bus, registry, make_action, admin):
        """Test RecordNotFoundError maps to not_found with its own message."""
        async def load(data, ctx):
            raise RecordNotFoundError("Contact", "c-404")

        registry.register(make_action("contact.get", handler=load))

        result = await action_bus.dispatch("contact.get", {"name": "x"}, admin)

        assert result.error_type is ActionErrorType.NOT_FOUND
        assert result.error == "Contact 'c-404' not found"

    async def test_workflow_error(self, action_bus, registry, make_action, admin):
        """Test WorkflowError maps to workflow with transition details."""
        workflow = SimpleWorkflowDefinition(
            name="contact-lifecycle",
            field="status",
            transitions=(WorkflowTransition("lead", "customer"),),
        )

        async def change_status(data, ctx):
            validate_workflow_transitions([workflow], {"status": data.name}, {"status": "lead"})
            return {"status": data.name}

        registry.register(make_action("contact.set_status", handler=change_status))

        result = await action_bus.dispatch("contact.set_status", {"name": "churned"}, admin)

        assert result.error_type is ActionErrorType.WORKFLOW
        assert result.details == {
            "field": "status",
            "from": "lead",
            "to": "churned",
            "validTargets": ["customer"],
        }


class TestDispatchSuccess:
    """Test successful dispatches through hooks and side effects."""

    async def test_handler_output_returned(self, action_bus, registry, make_action, admin):
        """Test handler output is returned as success data."""
        registry.register(make_action())

        result = await action_bus.dispatch("contact.create", {"name": "Ada"}, admin)

        assert isinstance(result, ActionSuccess)
        assert result.data["name"] == "Ada"
        assert result.data["tenant_id"] == "tenant-a"

    async def test_before_hook_transforms_input(self, action_bus, registry, make_action, admin):
        """Test before hooks can rewrite the validated input."""
        async def normalize(data, ctx):
            return data.model_copy(update={"name": data.name.strip().title()})

        registry.register(make_action(before_execute=[normalize]))

        result = await action_bus.dispatch("contact.create", {"name": "  ada lovelace "}, admin)

        assert result.data["name"] == "Ada Lovelace"

    async def test_after_hook_transforms_output(self, action_bus, registry, make_action, admin):
        """Test after hooks transform the handler output."""
        async def shout(result, data, ctx):
            return {"result": result["result"].upper()}

        registry.register(
            make_action("greeting.say", input_schema=GreetInput, handler=greet, after_execute=[shout])
        )

        result = await action_bus.dispatch("greeting.say", {"name": "world"}, admin)

        assert result.to_dict() == {"success": True, "data": {"result": "HELLO"}}

    async def test_emit_event_side_effect(
        self, action_bus, registry, event_bus, make_action, admin
    ):
        """Test emit_event publishes exactly one tenant-stamped event."""
        sub = recorder("contact-listener", "contact.created")
        event_bus.subscribe(sub)
        registry.register(
            make_action(
                side_effects=[
                    SideEffect("emit_event", {"eventType": "contact.created", "payload": {"v": 1}})
                ]
            )
        )

        result = await action_bus.dispatch("contact.create", {"name": "Ada"}, admin)
        await action_bus.drain()

        sub.handler.assert_awaited_once()
        event = sub.handler.await_args.args[0]
        assert event.tenant_id == "tenant-a"
        assert event.payload["actionId"] == "contact.create"
        assert event.payload["result"] == result.data
        assert event.payload["v"] == 1

    async def test_default_side_effect_event_type(
        self, action_bus, registry, event_bus, make_action, admin
    ):
        """Test emit_event defaults to the <action>.sideEffect event type."""
        sub = recorder("listener", "contact.create.sideEffect")
        event_bus.subscribe(sub)
        registry.register(make_action(side_effects=[SideEffect("emit_event")]))

        await action_bus.dispatch("contact.create", {"name": "Ada"}, admin)
        await action_bus.drain()

        sub.handler.assert_awaited_once()

    async def test_no_side_effects_on_failure(
        self, action_bus, registry, event_bus, make_action, admin
    ):
        """Test side effects are skipped when the handler fails."""
        sub = recorder("listener", "contact.created")
        event_bus.subscribe(sub)
        registry.register(
            make_action(
                handler=AsyncMock(side_effect=RuntimeError("boom")),
                side_effects=[SideEffect("emit_event", {"eventType": "contact.created"})],
            )
        )

        await action_bus.dispatch("contact.create", {"name": "Ada"}, admin)
        await action_bus.drain()

        sub.handler.assert_not_awaited()

    async def test_handler_emits_through_context(
        self, action_bus, registry, event_bus, make_action, admin
    ):
        """Test events emitted through the context carry tenant and timestamp."""
        sub = recorder("listener", "contact.imported")
        event_bus.subscribe(sub)

        async def import_contact(data, ctx):
            await ctx.emit(DomainEvent(type="contact.imported", payload={"name": data.name}))
            return {"ok": True}

        registry.register(make_action("contact.import", handler=import_contact))

        await action_bus.dispatch("contact.import", {"name": "Ada"}, admin)

        event = sub.handler.await_args.args[0]
        assert event.tenant_id == "tenant-a"
        assert event.timestamp is not None

    async def test_failing_side_effect_isolated(self, registry, event_bus, make_action, admin):
        """Test a failing side effect does not stop its siblings."""
        center = NotificationCenter()
        broken = MagicMock(spec=WebhookDeliverer)
        broken.post = AsyncMock(side_effect=RuntimeError("webhook down"))
        bus = ActionBus(
            registry,
            event_bus,
            side_effects=SideEffectProcessor(notifications=center, webhooks=broken),
        )
        registry.register(
            make_action(
                side_effects=[
                    SideEffect("webhook", {"url": "https://hooks.example/contact"}),
                    SideEffect("notify", {"title": "Contact created", "type": "success"}),
                ]
            )
        )

        result = await bus.dispatch("contact.create", {"name": "Ada"}, admin)
        await bus.drain()

        assert result.success is True
        broken.post.assert_awaited_once()
        assert broken.post.await_args.args[0] == "https://hooks.example/contact"

        page = await center.get_for_user("tenant-a", "user-admin")
        assert page.total == 1
        assert page.data[0].title == "Contact created"
        assert page.data[0].body == "Action contact.create completed"

    async def test_audit_record_written(self, action_bus, registry, make_action, admin, audit_log):
        """Test a successful dispatch writes one audit record."""
        registry.register(make_action())

        await action_bus.dispatch("contact.create", {"name": "Ada"}, admin)
        await action_bus.drain()

        record = audit_log.query("tenant-a", user_id="user-admin").data[0]
        assert record.action_id == "contact.create"
        assert record.success is True
        assert record.input == '{"name": "Ada"}'
        assert record.error is None
        assert record.duration_ms >= 0


class TestTenantIsolation:
    """Test concurrent dispatches for different tenants."""

    async def test_concurrent_tenants(self, action_bus, registry, make_action, admin, tenant_b_admin):
        """Test concurrent dispatches only see their own tenant's data."""
        async def create_and_list(data, ctx):
            await ctx.db.create("contact", data.model_dump())
            await asyncio.sleep(0)
            rows = await ctx.db.find_many("contact")
            return {"tenant": ctx.caller.tenant_id, "names": [r["name"] for r in rows]}

        registry.register(make_action(handler=create_and_list))

        result_a, result_b = await asyncio.gather(
            action_bus.dispatch("contact.create", {"name": "Ada"}, admin),
            action_bus.dispatch("contact.create", {"name": "Bob"}, tenant_b_admin),
        )

        assert result_a.data == {"tenant": "tenant-a", "names": ["Ada"]}
        assert result_b.data == {"tenant": "tenant-b", "names": ["Bob"]}


class TestResultShape:
    """Test the serialized result shape."""

    def test_success_dict(self):
        """Test the success wire shape."""
        assert ActionSuccess(data={"id": 1}).to_dict() == {"success": True, "data": {"id": 1}}

    def test_failure_dict(self):
        """Test the failure wire shape without details."""
        failure = ActionFailure(error="nope", error_type=ActionErrorType.PERMISSION)

        assert failure.to_dict() == {
            "success": False,
            "error": "nope",
            "errorType": "permission",
        }

    def test_failure_dict_with_details(self):
        """Test the failure wire shape with details."""
        failure = ActionFailure(
            error="bad", error_type=ActionErrorType.VALIDATION, details={"fieldErrors": []}
        )

        assert failure.to_dict()["details"] == {"fieldErrors": []}


class TestBootstrap:
    """Test wiring through bootstrap and the module-level dispatch."""

    @pytest.fixture(autouse=True)
    def reset_global_bus(self):
        yield
        set_action_bus(None)

    async def test_bootstrap_and_dispatch(self, bus_settings, make_action, admin):
        """Test bootstrap wires the module-level dispatch end to end."""
        listener = recorder("listener", "contact.created")
        runtime = bootstrap(
            bus_settings,
            actions=[
                make_action(
                    side_effects=[SideEffect("emit_event", {"eventType": "contact.created"})]
                )
            ],
            subscribers=[listener],
        )

        assert "contact.create" in runtime.registry
        assert runtime.event_bus.subscriber_count() == 2

        result = await metabus.dispatch("contact.create", {"name": "Ada"}, admin)
        await runtime.shutdown()

        assert result.success is True
        listener.handler.assert_awaited_once()
        assert runtime.audit_log.query("tenant-a").total == 1
        created = await runtime.database.for_tenant("tenant-a").find_many("contact")
        assert [c["name"] for c in created] == ["Ada"]


class LooseInput(BaseModel):
    name: str
    extra: Any = None


def deeply_nested(depth):
    value = []
    for _ in range(depth):
        value = [value]
    return value


class TestAuditResilience:
    """Test audit problems never change the dispatch result."""

    async def test_failing_audit_sink(self, registry, event_bus, make_action, admin):
        """Test a raising audit sink leaves the result untouched."""
        sink = MagicMock()
        sink.write = AsyncMock(side_effect=RuntimeError("audit store offline"))
        bus = ActionBus(registry, event_bus, audit_sink=sink)
        registry.register(make_action())

        result = await bus.dispatch("contact.create", {"name": "Ada"}, admin)
        await bus.drain()

        assert result.success is True
        assert result.data["name"] == "Ada"
        sink.write.assert_awaited_once()

    async def test_deeply_nested_input_on_success(self, action_bus, registry, make_action, admin):
        """Test unserializable input still resolves and is audited with a placeholder."""
        handler = AsyncMock(return_value={"ok": True})
        registry.register(make_action("note.create", input_schema=LooseInput, handler=handler))

        result = await action_bus.dispatch(
            "note.create", {"name": "a", "extra": deeply_nested(5000)}, admin
        )
        await action_bus.drain()

        assert result.to_dict() == {"success": True, "data": {"ok": True}}
        handler.assert_awaited_once()
        record = action_bus.audit_sink.query("tenant-a").data[0]
        assert record.success is True
        assert record.input == "<unserializable dict>"

    async def test_deeply_nested_input_on_validation_failure(
        self, action_bus, registry, make_action, admin
    ):
        """Test a nested input that fails validation still returns a failure."""
        registry.register(make_action())

        result = await action_bus.dispatch("contact.create", deeply_nested(5000), admin)
        await action_bus.drain()

        assert result.error_type is ActionErrorType.VALIDATION
        assert action_bus.audit_sink.query("tenant-a").data[0].success is False
