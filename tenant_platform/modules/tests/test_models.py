"""
Tests for module system models
"""

from datetime import timedelta

from django.db import IntegrityError, transaction
from django.test import TestCase
from django.utils import timezone

from tenant_platform.modules.exceptions import ImmutableRecordError
from tenant_platform.modules.models import Module, ModuleAction, ModuleLog, TenantModule
from tenant_platform.tenants.models import Tenant


class ModuleModelTestCase(TestCase):
    """Test Module model"""

    def test_name_is_unique(self):
        Module.objects.create(name='inventory')

        with self.assertRaises(IntegrityError), transaction.atomic():
            Module.objects.create(name='inventory')

    def test_defaults(self):
        module = Module.objects.create(name='inventory')

        self.assertEqual(module.version, '1.0.0')
        self.assertFalse(module.is_core)
        self.assertIsNone(module.settings_schema)
        self.assertEqual(str(module), 'inventory@1.0.0')

    def test_active_tenants(self):
        module = Module.objects.create(name='inventory')
        acme = Tenant.objects.create(name='Acme')
        globex = Tenant.objects.create(name='Globex')
        TenantModule.objects.create(tenant=acme, module=module, is_active=True, activated_at=timezone.now())
        TenantModule.objects.create(tenant=globex, module=module, is_active=False)

        self.assertEqual(list(module.active_tenants()), [acme])

    def test_delete_cascades_activations(self):
        module = Module.objects.create(name='inventory')
        tenant = Tenant.objects.create(name='Acme')
        TenantModule.objects.create(tenant=tenant, module=module)
        ModuleLog.objects.record(tenant, 'inventory', ModuleAction.ENABLED)

        module.delete()

        self.assertFalse(TenantModule.objects.exists())
        self.assertEqual(ModuleLog.objects.for_module('inventory').count(), 1)


class TenantModuleModelTestCase(TestCase):
    """Test TenantModule model"""

    def setUp(self):
        self.tenant = Tenant.objects.create(name='Acme')
        self.module = Module.objects.create(name='inventory')
        self.activation = TenantModule.objects.create(tenant=self.tenant, module=self.module)

    def test_unique_per_tenant_and_module(self):
        with self.assertRaises(IntegrityError), transaction.atomic():
            TenantModule.objects.create(tenant=self.tenant, module=self.module)

    def test_activate_and_deactivate(self):
        activated = timezone.now() - timedelta(hours=2)
        self.activation.activate(activated)
        self.assertTrue(self.activation.is_active)
        self.assertEqual(self.activation.activated_at, activated)
        self.assertIsNone(self.activation.deactivated_at)

        deactivated = activated + timedelta(hours=1)
        self.activation.deactivate(deactivated)
        self.assertFalse(self.activation.is_active)
        self.assertEqual(self.activation.activated_at, activated)
        self.assertEqual(self.activation.deactivated_at, deactivated)

    def test_active_duration(self):
        now = timezone.now()
        self.assertEqual(self.activation.active_duration(now), 0.0)

        self.activation.activate(now - timedelta(minutes=10))
        self.assertEqual(self.activation.active_duration(now), 600.0)

        self.activation.deactivate(now - timedelta(minutes=4))
        self.assertEqual(self.activation.active_duration(now), 360.0)

    def test_needs_provisioning(self):
        self.assertTrue(self.activation.needs_provisioning('1.0.0'))

        self.activation.mark_provisioned('1.0.0')

        self.assertFalse(self.activation.needs_provisioning('1.0.0'))
        self.assertTrue(self.activation.needs_provisioning('1.1.0'))
        self.assertIsNotNone(self.activation.provisioned_at)

    def test_queryset(self):
        billing = Module.objects.create(name='billing')
        TenantModule.objects.create(tenant=self.tenant, module=billing, is_active=True)
        other = Tenant.objects.create(name='Globex')
        TenantModule.objects.create(tenant=other, module=self.module, is_active=True)

        self.assertEqual(TenantModule.objects.for_tenant(self.tenant).names(), {'inventory', 'billing'})
        self.assertEqual(TenantModule.objects.for_tenant(self.tenant).active().names(), {'billing'})
        self.assertEqual(TenantModule.objects.for_module('inventory').active().count(), 1)
        self.assertEqual(TenantModule.objects.for_tenant(self.tenant.pk).inactive().names(), {'inventory'})

    def test_tenant_delete_cascades(self):
        self.tenant.delete()

        self.assertFalse(TenantModule.objects.exists())
        self.assertTrue(Module.objects.filter(name='inventory').exists())


class ModuleLogModelTestCase(TestCase):
    """Test ModuleLog immutability"""

    def setUp(self):
        self.tenant = Tenant.objects.create(name='Acme')
        self.entry = ModuleLog.objects.record(self.tenant, 'inventory', ModuleAction.ENABLED)

    def test_record(self):
        self.assertEqual(self.entry.action, 'enabled')
        self.assertIsNotNone(self.entry.occurred_at)
        self.assertIsNone(self.entry.performed_by)

    def test_record_rejects_unknown_action(self):
        with self.assertRaises(ValueError):
            ModuleLog.objects.record(self.tenant, 'inventory', 'installed')

    def test_entries_cannot_be_updated(self):
        self.entry.action = ModuleAction.DISABLED

        with self.assertRaises(ImmutableRecordError):
            self.entry.save()
        with self.assertRaises(ImmutableRecordError):
            ModuleLog.objects.filter(pk=self.entry.pk).update(action='disabled')

        self.assertEqual(ModuleLog.objects.get(pk=self.entry.pk).action, 'enabled')

    def test_entries_cannot_be_deleted(self):
        with self.assertRaises(ImmutableRecordError):
            self.entry.delete()
        with self.assertRaises(ImmutableRecordError):
            ModuleLog.objects.for_tenant(self.tenant).delete()

        self.assertTrue(ModuleLog.objects.filter(pk=self.entry.pk).exists())

    def test_ordering(self):
        now = timezone.now()
        ModuleLog.objects.record(self.tenant, 'billing', ModuleAction.ENABLED, occurred_at=now - timedelta(days=1))
        ModuleLog.objects.record(self.tenant, 'billing', ModuleAction.DISABLED, occurred_at=now + timedelta(days=1))

        modules = list(ModuleLog.objects.for_tenant(self.tenant).values_list('module_name', 'action'))
        self.assertEqual(modules, [
            ('billing', 'enabled'),
            ('inventory', 'enabled'),
            ('billing', 'disabled'),
        ])

    def test_purge_tenant(self):
        other = Tenant.objects.create(name='Globex')
        ModuleLog.objects.record(other, 'inventory', ModuleAction.ENABLED)

        deleted = ModuleLog.objects.purge_tenant(self.tenant)

        self.assertEqual(deleted, 1)
        self.assertFalse(ModuleLog.objects.for_tenant(self.tenant).exists())
        self.assertTrue(ModuleLog.objects.for_tenant(other).exists())

    def test_tenant_delete_purges_entries(self):
        self.tenant.delete()

        self.assertFalse(ModuleLog.objects.exists())
