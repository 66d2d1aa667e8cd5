"""Processing of declarative side effects after a successful dispatch."""

from datetime import datetime, timezone
from typing import Any, Optional, Sequence

import structlog

from ..events.base import DomainEvent
from ..events.webhooks import WebhookDeliverer
from ..notifications import NotificationCenter, NotificationInput, NotificationType
from .base import ActionContext, SideEffect, SideEffectType


logger = structlog.get_logger(__name__)


class SideEffectProcessor:
    """Runs each declared side effect independently.

    A failing effect is logged and skipped; it never affects sibling effects
    or the already-computed action result.
    """

    def __init__(
        self,
        notifications: Optional[NotificationCenter] = None,
        webhooks: Optional[WebhookDeliverer] = None,
    ) -> None:
        self.notifications = notifications
        self.webhooks = webhooks

    async def process(
        self,
        effects: Sequence[SideEffect],
        action_id: str,
        result: Any,
        context: ActionContext,
    ) -> None:
        """Process every effect in declaration order.

        Args:
            effects: Side effects declared on the action
            action_id: Action that succeeded
            result: The action's final output
            context: Context of the originating dispatch
        """
        for effect in effects:
            try:
                if effect.type is SideEffectType.EMIT_EVENT:
                    await self._emit_event(effect, action_id, result, context)
                elif effect.type is SideEffectType.NOTIFY:
                    await self._notify(effect, action_id, context)
                elif effect.type is SideEffectType.WEBHOOK:
                    await self._webhook(effect, action_id, result, context)
            except Exception as e:
                context.logger.error(
                    "Side effect failed",
                    side_effect=effect.type.value,
                    action=action_id,
                    error=str(e),
                )

    async def _emit_event(
        self, effect: SideEffect, action_id: str, result: Any, context: ActionContext
    ) -> None:
        event_type = effect.config.get("eventType") or f"{action_id}.sideEffect"
        payload = {"actionId": action_id, "result": result, **effect.config.get("payload", {})}
        await context.emit(DomainEvent(type=event_type, payload=payload))

    async def _notify(self, effect: SideEffect, action_id: str, context: ActionContext) -> None:
        message = effect.config.get("message") or f"Action {action_id} completed"
        channel = effect.config.get("channel", "in_app")

        if self.notifications is None or channel == "log":
            context.logger.info("Notification", action=action_id, channel=channel, message=message)
            return

        await self.notifications.send(
            NotificationInput(
                tenant_id=context.caller.tenant_id,
                user_id=effect.config.get("userId") or context.caller.user_id,
                title=effect.config.get("title") or action_id,
                body=message,
                type=NotificationType(effect.config.get("type", "info")),
                link=effect.config.get("link"),
            )
        )

    async def _webhook(
        self, effect: SideEffect, action_id: str, result: Any, context: ActionContext
    ) -> None:
        url = effect.config.get("url")
        if not url:
            context.logger.warning("Webhook side effect missing url", action=action_id)
            return

        if self.webhooks is None:
            context.logger.warning("No webhook deliverer configured", action=action_id, url=url)
            return

        status = await self.webhooks.post(
            url,
            {
                "actionId": action_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "result": result,
            },
        )
        if status >= 300:
            context.logger.warning(
                "Webhook side effect rejected", action=action_id, url=url, status=status
            )
