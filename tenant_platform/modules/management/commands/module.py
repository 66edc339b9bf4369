"""
Management command to manage tenant modules.

Usage:
    python manage.py module enable inventory --domain=acme.example.com
    python manage.py module disable inventory --domain=acme.example.com
    python manage.py module status --domain=acme.example.com --module=inventory
    python manage.py module list --domain=acme.example.com
    python manage.py module delete inventory --force
    python manage.py module sync
"""

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from tenant_platform.modules.exceptions import ModuleError
from tenant_platform.modules.manager import module_manager
from tenant_platform.tenants.models import Tenant

User = get_user_model()


class Command(BaseCommand):
    help = 'Enable, disable and inspect modules for tenants'

    def __init__(self, *args, manager=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.manager = manager or module_manager

    def add_arguments(self, parser):
        subparsers = parser.add_subparsers(dest='action', required=True)

        enable = subparsers.add_parser('enable', help='Enable a module for a tenant')
        enable.add_argument('name', help='Module name')
        enable.add_argument('--domain', type=str, help='Tenant domain')
        enable.add_argument('--user', type=str, help='Username recorded as performing the change')

        disable = subparsers.add_parser('disable', help='Disable a module for a tenant')
        disable.add_argument('name', help='Module name')
        disable.add_argument('--domain', type=str, help='Tenant domain')
        disable.add_argument('--user', type=str, help='Username recorded as performing the change')

        status = subparsers.add_parser('status', help='Show module activation state')
        status.add_argument('--domain', type=str, help='Tenant domain (default: all tenants)')
        status.add_argument('--module', type=str, help='Only show this module')

        list_parser = subparsers.add_parser('list', help='List available modules')
        list_parser.add_argument('--domain', type=str, help='Show activation state for this tenant')

        delete = subparsers.add_parser('delete', help='Delete a module from the catalog')
        delete.add_argument('name', help='Module name')
        delete.add_argument('--force', action='store_true', help='Delete even if core or in use')

        subparsers.add_parser('sync', help='Write discovered modules to the catalog')

    def handle(self, *args, **options):
        handler = getattr(self, f"handle_{options['action']}")
        try:
            handler(options)
        except ModuleError as e:
            raise CommandError(str(e))

    # Sub-commands

    def handle_enable(self, options):
        tenant = self.manager.resolve_tenant(options.get('domain'))
        result = self.manager.enable(tenant, options['name'], acting_user=self._get_user(options))
        result.raise_for_error()

        if result.changed:
            self.stdout.write(self.style.SUCCESS(f"Module {options['name']} enabled for {options['domain']}"))
        else:
            self.stdout.write(self.style.WARNING(f"Module {options['name']} is already enabled for {options['domain']}"))

    def handle_disable(self, options):
        tenant = self.manager.resolve_tenant(options.get('domain'))
        result = self.manager.disable(tenant, options['name'], acting_user=self._get_user(options))
        result.raise_for_error()

        if result.changed:
            self.stdout.write(self.style.SUCCESS(f"Module {options['name']} disabled for {options['domain']}"))
        else:
            self.stdout.write(self.style.WARNING(f"Module {options['name']} is already disabled for {options['domain']}"))

    def handle_status(self, options):
        if options.get('domain'):
            tenants = [self.manager.resolve_tenant(options['domain'])]
        else:
            tenants = list(Tenant.objects.all())

        rows = []
        for tenant in tenants:
            for row in self.manager.get_status(tenant, options.get('module')):
                rows.append((tenant.primary_domain or str(tenant.pk), row))

        if not rows:
            self.stdout.write(self.style.WARNING('No module activations found'))
            return

        self.stdout.write('')
        self.stdout.write(f"{'Tenant':<30} {'Module':<25} {'Version':<10} {'Status':<10} {'Since'}")
        self.stdout.write('-' * 100)

        for tenant_label, row in rows:
            if row['is_active'] and row['available']:
                status = self.style.SUCCESS(f"{'Enabled':<10}")
                since = row['activated_at']
            elif row['is_active']:
                status = self.style.WARNING(f"{'Blocked':<10}")
                since = row['activated_at']
            else:
                status = self.style.ERROR(f"{'Disabled':<10}")
                since = row['deactivated_at']

            since_str = since.strftime('%Y-%m-%d %H:%M') if since else '-'
            self.stdout.write(
                f"{tenant_label[:29]:<30} {row['module'][:24]:<25} {row['version']:<10} {status} {since_str}"
            )

        self.stdout.write('')

    def handle_list(self, options):
        tenant = self.manager.resolve_tenant(options['domain']) if options.get('domain') else None
        descriptors = self.manager.registry.all_descriptors()

        if not descriptors:
            self.stdout.write(self.style.WARNING('No modules found'))
            return

        enabled = self.manager.get_enabled_modules(tenant) if tenant else set()

        self.stdout.write('')
        header = f"{'Module':<25} {'Version':<10} {'Core':<6} {'Available':<10}"
        if tenant:
            header += ' Tenant'
        self.stdout.write(header)
        self.stdout.write('-' * 80)

        for name, descriptor in descriptors.items():
            line = (
                f"{name[:24]:<25} {descriptor.version:<10} "
                f"{'yes' if descriptor.is_core else 'no':<6} {'yes' if descriptor.enabled else 'no':<10}"
            )
            if tenant:
                line += ' enabled' if name in enabled else ' disabled'
            self.stdout.write(line)

        self.stdout.write('')
        self.stdout.write(f'Total: {len(descriptors)} modules')

    def handle_delete(self, options):
        result = self.manager.delete_module(options['name'], force=options.get('force', False))
        result.raise_for_error()
        self.stdout.write(self.style.SUCCESS(f"Module {options['name']} deleted"))

    def handle_sync(self, options):
        self.manager.registry.refresh()
        results = self.manager.registry.sync_catalog()
        created = sum(1 for _, was_created in results if was_created)
        self.stdout.write(
            self.style.SUCCESS(f"Synced {len(results)} modules ({created} new)")
        )

    # Helpers

    def _get_user(self, options):
        username = options.get('user')
        if not username:
            return None
        try:
            return User.objects.get(**{User.USERNAME_FIELD: username})
        except User.DoesNotExist:
            raise CommandError(f"User '{username}' does not exist")
