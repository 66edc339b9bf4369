from django.apps import AppConfig


class ModulesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'tenant_platform.modules'
    label = 'modules'
    verbose_name = 'Tenant Modules'

    def ready(self):
        # Import signal handlers
        from . import receivers  # noqa: F401
