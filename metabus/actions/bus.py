"""Action bus: the single dispatch pipeline for every operation.

Every action, whatever triggered it (UI, REST call, AI agent, another
action's side effect), runs through the same strictly ordered steps:

    1. lookup        unknown id            -> not_found
    2. validate      schema mismatch       -> validation (with fieldErrors)
    3. authorize     no allowing rule      -> permission
    4. before hooks  raise to abort
    5. handler       unexpected exception  -> unknown (generic message)
    6. after hooks   transform the output
    7. side effects  detached, success only, never change the result
    8. audit         detached, success and failure

``dispatch`` never raises for errors coming out of the pipeline; it always
resolves to an ``ActionSuccess`` or ``ActionFailure``.
"""

import dataclasses
import time
from typing import Any, Callable, Optional

import structlog
from prometheus_client import Counter, Histogram

from ..audit import AuditRecord, AuditSink, InMemoryAuditLog, truncate_input
from ..events.base import DomainEvent
from ..events.bus import EventBus, get_event_bus
from ..storage import InMemoryDatabase
from ..utils.observability import ExceptionCapture, LoggingExceptionCapture
from ..utils.tasks import BackgroundTasks
from .base import (
    ActionContext,
    ActionDefinition,
    ActionErrorType,
    ActionFailure,
    ActionResult,
    ActionSuccess,
    Caller,
)
from .errors import (
    InputValidationError,
    PermissionDeniedError,
    RecordNotFoundError,
    WorkflowError,
)
from .permissions import check_permission
from .registry import ActionRegistry, get_action_registry
from .side_effects import SideEffectProcessor
from .validation import validate_input


logger = structlog.get_logger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"

# Prometheus metrics
ACTIONS_DISPATCHED = Counter(
    "metabus_actions_dispatched_total",
    "Total number of dispatched actions",
    ["action", "outcome"],
)

ACTION_DURATION = Histogram(
    "metabus_action_duration_seconds",
    "Time spent in the dispatch pipeline",
    ["action"],
)


class ActionBus:
    """Dispatch pipeline bound to an action registry and an event bus."""

    def __init__(
        self,
        registry: Optional[ActionRegistry] = None,
        event_bus: Optional[EventBus] = None,
        *,
        audit_sink: Optional[AuditSink] = None,
        exception_capture: Optional[ExceptionCapture] = None,
        side_effects: Optional[SideEffectProcessor] = None,
        db_factory: Optional[Callable[[str], Any]] = None,
        audit_input_max_chars: int = 10_000,
    ) -> None:
        """Initialize the action bus.

        Args:
            registry: Where actions are looked up
            event_bus: Receives events emitted through ``ActionContext.emit``
            audit_sink: Receives one audit record per dispatch
            exception_capture: Receives unexpected handler/hook exceptions
            side_effects: Processes declared side effects
            db_factory: Builds a data handle scoped to the given tenant id
            audit_input_max_chars: Truncation limit for audited input
        """
        self.registry = registry if registry is not None else ActionRegistry()
        self.event_bus = event_bus if event_bus is not None else EventBus()
        self.audit_sink: AuditSink = audit_sink if audit_sink is not None else InMemoryAuditLog()
        self.exception_capture = exception_capture or LoggingExceptionCapture()
        self.side_effects = side_effects or SideEffectProcessor()
        self.db_factory = db_factory or InMemoryDatabase().for_tenant
        self.audit_input_max_chars = audit_input_max_chars
        self._tasks = BackgroundTasks("action-bus")

    async def dispatch(self, action_id: str, raw_input: Any, caller: Caller) -> ActionResult:
        """Run an action through the pipeline.

        Args:
            action_id: The action's unique id (e.g. "contact.create")
            raw_input: Untrusted input, validated against the action schema
            caller: Identity already resolved by the auth provider

        Returns:
            ActionSuccess with the output, or ActionFailure with an error type
        """
        start = time.perf_counter()
        log = logger.bind(action=action_id, tenant=caller.tenant_id, user=caller.user_id)

        action = self.registry.get(action_id)
        if action is None:
            log.warning("Action not found")
            ACTIONS_DISPATCHED.labels(action="unregistered", outcome="not_found").inc()
            return ActionFailure(
                error=f"Action '{action_id}' not found",
                error_type=ActionErrorType.NOT_FOUND,
            )

        try:
            output, context = await self._run(action, raw_input, caller, log)
        except Exception as e:
            failure = self._failure_from(action, caller, e, log)
            self._finish(action, caller, raw_input, start, failure, internal_error=str(e), log=log)
            return failure

        if action.side_effects:
            self._tasks.spawn(
                self.side_effects.process(action.side_effects, action.id, output, context),
                label=f"side-effects:{action.id}",
            )

        success = ActionSuccess(data=output)
        self._finish(action, caller, raw_input, start, success, log=log)
        return success

    async def _run(
        self, action: ActionDefinition, raw_input: Any, caller: Caller, log: Any
    ) -> tuple[Any, ActionContext]:
        validated = validate_input(action, raw_input)

        if not check_permission(action, caller):
            raise PermissionDeniedError(action.id, caller.user_id)

        context = self._build_context(caller, log)

        hook_input = validated
        for before in action.before_execute:
            hook_input = await before(hook_input, context)

        output = await action.handler(hook_input, context)

        for after in action.after_execute:
            output = await after(output, hook_input, context)

        return output, context

    def _build_context(self, caller: Caller, log: Any) -> ActionContext:
        event_bus = self.event_bus

        async def emit(event: DomainEvent) -> None:
            if event.tenant_id is None:
                event = dataclasses.replace(event, tenant_id=caller.tenant_id)
            log.info("Domain event emitted", event_type=event.type)
            await event_bus.publish(event)

        return ActionContext(
            caller=caller,
            db=self.db_factory(caller.tenant_id),
            emit=emit,
            logger=log,
        )

    def _failure_from(
        self, action: ActionDefinition, caller: Caller, error: Exception, log: Any
    ) -> ActionFailure:
        if isinstance(error, InputValidationError):
            return ActionFailure(
                error=str(error),
                error_type=ActionErrorType.VALIDATION,
                details={"fieldErrors": error.field_errors},
            )
        if isinstance(error, PermissionDeniedError):
            return ActionFailure(error=str(error), error_type=ActionErrorType.PERMISSION)
        if isinstance(error, WorkflowError):
            return ActionFailure(
                error=str(error),
                error_type=ActionErrorType.WORKFLOW,
                details=error.to_details(),
            )
        if isinstance(error, RecordNotFoundError):
            return ActionFailure(error=str(error), error_type=ActionErrorType.NOT_FOUND)

        # Internal details stay server-side
        log.error(
            "Action execution failed",
            error=str(error),
            error_type=type(error).__name__,
            exc_info=error,
        )
        try:
            self.exception_capture.capture_exception(
                error, action_id=action.id, user_id=caller.user_id, tenant_id=caller.tenant_id
            )
        except Exception as capture_error:
            log.warning("Exception capture failed", error=str(capture_error))

        return ActionFailure(error=GENERIC_ERROR_MESSAGE, error_type=ActionErrorType.UNKNOWN)

    def _finish(
        self,
        action: ActionDefinition,
        caller: Caller,
        raw_input: Any,
        start: float,
        result: ActionResult,
        *,
        log: Any,
        internal_error: Optional[str] = None,
    ) -> None:
        elapsed = time.perf_counter() - start
        duration_ms = round(elapsed * 1000)

        outcome = "success" if result.success else ActionErrorType(result.error_type).value
        ACTIONS_DISPATCHED.labels(action=action.id, outcome=outcome).inc()
        ACTION_DURATION.labels(action=action.id).observe(elapsed)

        if result.success:
            log.info("Action executed", duration_ms=duration_ms, success=True)
        else:
            log.info(
                "Action executed",
                duration_ms=duration_ms,
                success=False,
                error_type=outcome,
            )

        record = AuditRecord(
            tenant_id=caller.tenant_id,
            user_id=caller.user_id,
            action_id=action.id,
            success=result.success,
            duration_ms=duration_ms,
            input=truncate_input(raw_input, self.audit_input_max_chars),
            error=internal_error,
        )
        self._tasks.spawn(self._write_audit(record), label=f"audit:{action.id}")

    async def _write_audit(self, record: AuditRecord) -> None:
        try:
            await self.audit_sink.write(record)
        except Exception as e:
            logger.error("Failed to write audit record", action=record.action_id, error=str(e))

    async def drain(self) -> None:
        """Wait for all detached side-effect and audit tasks to finish."""
        await self._tasks.drain()

    def get_stats(self) -> dict[str, Any]:
        return {"registry": self.registry.get_stats(), "tasks": self._tasks.get_stats()}


# Global action bus instance, created on first use
_action_bus: Optional[ActionBus] = None


def get_action_bus() -> ActionBus:
    """Get the process-wide bus bound to the default registry and event bus."""
    global _action_bus

    if _action_bus is None:
        _action_bus = ActionBus(get_action_registry(), get_event_bus())
    return _action_bus


def set_action_bus(bus: Optional[ActionBus]) -> None:
    """Replace the process-wide bus (bootstrap and tests)."""
    global _action_bus
    _action_bus = bus


async def dispatch(action_id: str, raw_input: Any, caller: Caller) -> ActionResult:
    return await get_action_bus().dispatch(action_id, raw_input, caller)
