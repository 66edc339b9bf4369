"""
Module State Events

One event type for every module state change, dispatched in-process through
Django signals and broadcast to real-time subscribers through Celery.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from django.utils import timezone

from .conf import module_settings
from .models import ModuleAction, module_snapshot
from .serializers import ModuleStateEventSerializer
from .signals import module_state_changed
from .tasks import broadcast_module_state

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModuleStateEvent:
    """A module was enabled or disabled for a tenant."""
    action: str
    tenant_id: str
    module: Dict[str, Any]
    timestamp: datetime
    performed_by_id: Optional[int] = None

    def __post_init__(self):
        if self.action not in (ModuleAction.ENABLED, ModuleAction.DISABLED):
            raise ValueError(f"Unsupported module event action: {self.action}")

    @classmethod
    def for_module(cls, action, tenant, module, performed_by=None, timestamp=None) -> 'ModuleStateEvent':
        return cls(
            action=ModuleAction(action).value,
            tenant_id=str(getattr(tenant, 'pk', tenant)),
            module=module_snapshot(module) if not isinstance(module, dict) else dict(module),
            timestamp=timestamp or timezone.now(),
            performed_by_id=getattr(performed_by, 'pk', None),
        )

    @property
    def module_name(self) -> str:
        return self.module['name']

    @property
    def enabled(self) -> bool:
        return self.action == ModuleAction.ENABLED

    def to_payload(self) -> Dict[str, Any]:
        return dict(ModuleStateEventSerializer(self).data)


class ModuleEventBus:
    """
    Publishes module state events.

    In-process receivers run synchronously. The outward broadcast is queued
    and its failures are logged, never raised.
    """

    def __init__(self, broadcast_enabled: Optional[bool] = None):
        self._broadcast_enabled = broadcast_enabled

    @property
    def broadcast_enabled(self) -> bool:
        if self._broadcast_enabled is None:
            return bool(module_settings.BROADCAST_ENABLED)
        return self._broadcast_enabled

    def publish(self, event: ModuleStateEvent) -> None:
        logger.debug(f"Publishing module {event.action} event for {event.module_name} on tenant {event.tenant_id}")

        responses = module_state_changed.send_robust(sender=ModuleStateEvent, event=event)
        for receiver, response in responses:
            if isinstance(response, Exception):
                logger.error(
                    f"Receiver {receiver} failed handling {event.action} of {event.module_name}",
                    exc_info=response
                )

        if self.broadcast_enabled:
            self.broadcast(event)

    def broadcast(self, event: ModuleStateEvent) -> None:
        try:
            broadcast_module_state.delay(event.to_payload())
        except Exception as e:
            logger.warning(f"Could not queue broadcast of {event.action} for {event.module_name}: {e}")


event_bus = ModuleEventBus()
