"""
Tests for module state events and broadcasting
"""

from unittest.mock import AsyncMock, Mock, patch

from django.utils import timezone

from tenant_platform.modules.events import ModuleEventBus, ModuleStateEvent
from tenant_platform.modules.models import Module
from tenant_platform.modules.signals import module_state_changed
from tenant_platform.modules.tasks import BROADCAST_EVENT_NAME, broadcast_module_state, tenant_channel

from .base import ModuleTestCase


class ModuleStateEventTestCase(ModuleTestCase):
    """Test ModuleStateEvent"""

    def setUp(self):
        super().setUp()
        self.module = Module.objects.create(
            name='inventory',
            description='Stock keeping',
            version='1.2.0',
        )

    def test_payload(self):
        timestamp = timezone.now()
        event = ModuleStateEvent.for_module('enabled', self.tenant, self.module, timestamp=timestamp)

        payload = event.to_payload()

        self.assertEqual(set(payload), {'module', 'tenant_id', 'timestamp', 'action'})
        self.assertEqual(dict(payload['module']), {
            'name': 'inventory',
            'description': 'Stock keeping',
            'version': '1.2.0',
            'is_core': False,
        })
        self.assertEqual(payload['tenant_id'], str(self.tenant.pk))
        self.assertEqual(payload['action'], 'enabled')
        self.assertIsInstance(payload['timestamp'], str)
        self.assertTrue(payload['timestamp'].startswith(timestamp.strftime('%Y-%m-%dT%H:%M:%S')))

    def test_snapshot_survives_module_deletion(self):
        event = ModuleStateEvent.for_module('disabled', self.tenant, self.module)

        self.module.delete()

        self.assertEqual(event.module_name, 'inventory')
        self.assertEqual(event.to_payload()['module']['version'], '1.2.0')

    def test_rejects_other_actions(self):
        with self.assertRaises(ValueError):
            ModuleStateEvent.for_module('deleted', self.tenant, self.module)

    def test_enabled_flag(self):
        self.assertTrue(ModuleStateEvent.for_module('enabled', self.tenant, self.module).enabled)
        self.assertFalse(ModuleStateEvent.for_module('disabled', self.tenant, self.module).enabled)


class ModuleEventBusTestCase(ModuleTestCase):
    """Test ModuleEventBus"""

    def setUp(self):
        super().setUp()
        module = Module.objects.create(name='inventory')
        self.event = ModuleStateEvent.for_module('enabled', self.tenant, module)

    def test_enable_publishes_one_event(self):
        received = []

        def receiver(sender, event, **kwargs):
            received.append(event)

        module_state_changed.connect(receiver)
        self.addCleanup(module_state_changed.disconnect, receiver)

        self.enable('inventory')
        self.disable('inventory')

        self.assertEqual([event.action for event in received], ['enabled', 'disabled'])
        self.assertTrue(all(event.tenant_id == str(self.tenant.pk) for event in received))
        self.assertEqual(received[0].module['version'], '1.2.0')

    def test_failing_receiver_is_logged(self):
        def receiver(sender, event, **kwargs):
            raise RuntimeError('subscriber crashed')

        module_state_changed.connect(receiver)
        self.addCleanup(module_state_changed.disconnect, receiver)

        with self.assertLogs('tenant_platform.modules.events', level='ERROR'):
            ModuleEventBus(broadcast_enabled=False).publish(self.event)

    @patch('tenant_platform.modules.events.broadcast_module_state')
    def test_broadcast_disabled(self, task):
        ModuleEventBus(broadcast_enabled=False).publish(self.event)

        task.delay.assert_not_called()

    @patch('tenant_platform.modules.events.broadcast_module_state')
    def test_broadcast_setting(self, task):
        with self.settings(TENANT_MODULES={'BROADCAST_ENABLED': False}):
            ModuleEventBus().publish(self.event)
        task.delay.assert_not_called()

        with self.settings(TENANT_MODULES={'BROADCAST_ENABLED': True}):
            ModuleEventBus().publish(self.event)
        task.delay.assert_called_once_with(self.event.to_payload())


class BroadcastTaskTestCase(ModuleTestCase):
    """Test broadcast_module_state task"""

    def setUp(self):
        super().setUp()
        module = Module.objects.create(name='inventory')
        self.payload = ModuleStateEvent.for_module('enabled', self.tenant, module).to_payload()

    def test_tenant_channel(self):
        self.assertEqual(tenant_channel(self.tenant.pk), f'tenant.{self.tenant.pk}')

    @patch('tenant_platform.modules.tasks.get_channel_layer')
    def test_sends_to_tenant_group(self, get_layer):
        layer = Mock()
        layer.group_send = AsyncMock()
        get_layer.return_value = layer

        result = broadcast_module_state.apply(args=[self.payload])

        self.assertTrue(result.successful())
        layer.group_send.assert_awaited_once_with(
            f'tenant.{self.tenant.pk}',
            {
                'type': 'module.state_changed',
                'event': BROADCAST_EVENT_NAME,
                'data': self.payload,
            }
        )

    @patch('tenant_platform.modules.tasks.get_channel_layer', return_value=None)
    def test_without_channel_layer(self, get_layer):
        with self.assertLogs('tenant_platform.modules.tasks', level='WARNING'):
            result = broadcast_module_state.apply(args=[self.payload])

        self.assertFalse(result.get())
