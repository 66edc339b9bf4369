"""
Module System Tasks

Celery tasks pushing module state changes to real-time subscribers.
"""

import logging

from asgiref.sync import async_to_sync
from celery import shared_task
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)

BROADCAST_EVENT_NAME = 'module-state-changed'


def tenant_channel(tenant_id) -> str:
    """Private channel group for a tenant."""
    return f"tenant.{tenant_id}"


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    max_retries=5,
)
def broadcast_module_state(self, payload):
    """Send a serialized ModuleStateEvent to the tenant's channel group"""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning("No channel layer configured, dropping module state broadcast")
        return False

    group = tenant_channel(payload['tenant_id'])
    async_to_sync(channel_layer.group_send)(
        group,
        {
            'type': 'module.state_changed',
            'event': BROADCAST_EVENT_NAME,
            'data': payload,
        }
    )

    logger.info(
        f"Broadcast {payload['action']} of {payload['module']['name']} to {group} "
        f"(attempt {self.request.retries + 1})"
    )
    return True
