"""
Tests for module navigation and label translation
"""

from django.test import override_settings

from tenant_platform.modules.base import NavigationNode
from tenant_platform.modules.navigation import NavigationComposer, navigation_cache
from tenant_platform.modules.signals import navigation_invalidated
from tenant_platform.modules.translation import ModuleTranslator

from .base import ModuleTestCase


class NavigationComposerTestCase(ModuleTestCase):
    """Test NavigationComposer"""

    def setUp(self):
        super().setUp()
        self.member = self.create_user('member', 'Member')

    def composer(self, tenant=None, user=None, locale='en'):
        return NavigationComposer(
            tenant or self.tenant,
            user=user,
            locale=locale,
            registry=self.registry,
        )

    def labels(self, nodes):
        return [node.label for node in nodes]

    def test_registration_order(self):
        """Modules appear in the order they were enabled"""
        self.enable('billing')
        self.enable('inventory')

        tree = self.composer().get_flattened_tree()

        self.assertEqual(self.labels(tree), ['billing.menu', 'inventory.menu', 'inventory.purge'])

    def test_registration_order_not_alphabetical(self):
        self.enable('inventory')
        self.enable('billing')

        composer = self.composer()

        self.assertEqual(composer.registered_modules, ['inventory', 'billing'])
        self.assertEqual(self.labels(composer.get_flattened_tree()), ['inventory.menu', 'inventory.purge', 'billing.menu'])

    def test_follows_state_events(self):
        composer = self.composer()
        self.assertEqual(composer.get_flattened_tree(), [])

        self.enable('inventory')
        self.assertEqual(composer.registered_modules, ['inventory'])
        self.assertEqual(self.labels(composer.get_flattened_tree()), ['inventory.menu', 'inventory.purge'])

        self.disable('inventory')
        self.assertEqual(composer.registered_modules, [])
        self.assertEqual(composer.get_flattened_tree(), [])

    def test_ignores_other_tenants(self):
        other = self.create_tenant('Globex', 'globex.example.com')
        composer = self.composer(tenant=other)

        self.enable('inventory')

        self.assertEqual(composer.registered_modules, [])
        self.assertEqual(self.composer().registered_modules, ['inventory'])

    def test_switch_tenant(self):
        other = self.create_tenant('Globex', 'globex.example.com')
        self.enable('inventory')
        self.enable('billing', tenant=other)
        composer = self.composer()
        self.assertEqual(composer.registered_modules, ['inventory'])

        composer.switch_tenant(other)

        self.assertEqual(composer.registered_modules, ['billing'])
        self.assertEqual(self.labels(composer.get_flattened_tree()), ['billing.menu'])

    def test_kill_switched_module_not_registered(self):
        self.enable('inventory')
        self.write_module('inventory', dict(self.modules['inventory'], enabled=False))
        self.registry.refresh()

        self.assertEqual(self.composer().registered_modules, [])

    def test_cache_invalidated_on_state_change(self):
        self.enable('inventory')
        composer = self.composer()
        composer.get_flattened_tree()
        self.assertIsNotNone(navigation_cache.get(composer.tenant_id))

        received = []

        def receiver(sender, tenant_id, **kwargs):
            received.append(tenant_id)

        navigation_invalidated.connect(receiver)
        self.addCleanup(navigation_invalidated.disconnect, receiver)

        self.enable('billing')

        self.assertIn(composer.tenant_id, received)
        self.assertEqual(self.labels(composer.get_flattened_tree()), ['inventory.menu', 'inventory.purge', 'billing.menu'])

    def test_cache_dropped_on_disable(self):
        self.enable('inventory')
        composer = self.composer()
        composer.get_flattened_tree()
        del composer

        self.disable('inventory')

        self.assertIsNone(navigation_cache.get(str(self.tenant.pk)))
        self.assertEqual(self.composer().get_flattened_tree(), [])

    def test_can_view(self):
        self.enable('inventory')
        composer = self.composer(user=self.reload_user(self.member))

        self.assertTrue(composer.can_view(NavigationNode(label='public')))
        self.assertTrue(composer.can_view(NavigationNode(label='x', permission='inventory.view')))
        self.assertFalse(composer.can_view(NavigationNode(label='x', permission='inventory.delete')))
        self.assertFalse(self.composer().can_view(NavigationNode(label='x', permission='inventory.view')))

    def test_menu_filters_and_translates(self):
        self.enable('billing')
        self.enable('inventory')
        composer = self.composer(user=self.reload_user(self.member), locale='nb')

        menu = composer.get_menu()

        self.assertEqual([item['label'] for item in menu], ['Fakturering', 'Inventory'])
        self.assertEqual(menu[0]['children'][0]['label'], 'Invoices')
        self.assertEqual(menu[0]['route'], '/billing')
        self.assertEqual(menu[1]['icon'], 'box')

    def test_menu_without_user_hides_protected_nodes(self):
        self.enable('billing')
        self.enable('inventory')

        menu = self.composer().get_menu()

        self.assertEqual([item['label'] for item in menu], ['Inventory'])

    def test_module_groups(self):
        self.enable('billing')
        self.enable('inventory')
        composer = self.composer(user=self.reload_user(self.member), locale='nb')

        groups = composer.get_module_groups()

        self.assertEqual([group['module'] for group in groups], ['billing', 'inventory'])
        self.assertEqual(groups[0]['label'], 'Fakturering')
        self.assertEqual(groups[1]['label'], 'Inventory')

    def test_to_dict(self):
        self.enable('inventory')
        composer = self.composer(user=self.reload_user(self.member))

        data = composer.to_dict()

        self.assertEqual(data['tenant_id'], str(self.tenant.pk))
        self.assertEqual(data['modules'], ['inventory'])
        self.assertEqual(data['locale'], 'en')
        self.assertEqual(data['menu'][0]['label'], 'Inventory')


class ModuleTranslatorTestCase(ModuleTestCase):
    """Test label resolution"""

    def setUp(self):
        super().setUp()
        self.translator = ModuleTranslator(registry=self.registry, fallback_locale='en')

    def test_current_locale(self):
        self.assertEqual(self.translator.translate('billing.menu', 'nb', module='billing'), 'Fakturering')

    def test_fallback_locale(self):
        self.assertEqual(self.translator.translate('billing.invoices', 'nb', module='billing'), 'Invoices')

    def test_raw_key(self):
        self.assertEqual(self.translator.translate('billing.unknown', 'nb', module='billing'), 'billing.unknown')
        self.assertEqual(self.translator.translate('orphan.label', 'de'), 'orphan.label')
        self.assertEqual(self.translator.translate('inventory.menu', 'nb', module='missing'), 'inventory.menu')

    def test_empty_key(self):
        self.assertEqual(self.translator.translate('', 'nb'), '')

    @override_settings(TENANT_MODULES={'FALLBACK_LOCALE': 'nb'})
    def test_fallback_locale_from_settings(self):
        translator = ModuleTranslator(registry=self.registry)

        self.assertEqual(translator.fallback_locale, 'nb')
        self.assertEqual(translator.translate('billing.menu', 'de', module='billing'), 'Fakturering')
