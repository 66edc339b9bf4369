# Generated manually for modules app

from django.conf import settings
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('tenants', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Module',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(help_text='Unique module name (e.g. inventory)', max_length=191, unique=True)),
                ('description', models.CharField(blank=True, default='', max_length=255)),
                ('version', models.CharField(default='1.0.0', help_text='Semantic version (e.g., 1.0.0)', max_length=50)),
                ('is_core', models.BooleanField(default=False, help_text='Core modules cannot be disabled or deleted through the normal flow')),
                ('settings_schema', models.JSONField(blank=True, help_text='JSON Schema for per-tenant module settings', null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'modules',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='TenantModule',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('is_active', models.BooleanField(default=False)),
                ('activated_at', models.DateTimeField(blank=True, null=True)),
                ('deactivated_at', models.DateTimeField(blank=True, null=True)),
                ('settings', models.JSONField(blank=True, default=dict, help_text='Module settings specific to this tenant')),
                ('last_billed_at', models.DateTimeField(blank=True, null=True)),
                ('billing_cycle', models.CharField(blank=True, default='', max_length=50)),
                ('provisioned_version', models.CharField(blank=True, default='', max_length=50)),
                ('provisioned_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('module', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='activations', to='modules.module')),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='module_activations', to='tenants.tenant')),
            ],
            options={
                'db_table': 'tenant_modules',
            },
        ),
        migrations.AddField(
            model_name='module',
            name='tenants',
            field=models.ManyToManyField(blank=True, related_name='modules', through='modules.TenantModule', to='tenants.tenant'),
        ),
        migrations.AddConstraint(
            model_name='tenantmodule',
            constraint=models.UniqueConstraint(fields=('tenant', 'module'), name='unique_tenant_module'),
        ),
        migrations.AddIndex(
            model_name='tenantmodule',
            index=models.Index(fields=['tenant', 'is_active'], name='tenant_mod_tenant_active_idx'),
        ),
        migrations.CreateModel(
            name='ModuleLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('module_name', models.CharField(db_index=True, max_length=191)),
                ('action', models.CharField(choices=[('enabled', 'Enabled'), ('disabled', 'Disabled'), ('deleted', 'Deleted')], max_length=20)),
                ('occurred_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('performed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='module_logs', to='tenants.tenant')),
            ],
            options={
                'db_table': 'module_logs',
                'ordering': ['occurred_at', 'id'],
            },
        ),
        migrations.AddIndex(
            model_name='modulelog',
            index=models.Index(fields=['tenant', 'module_name', 'occurred_at'], name='module_logs_tenant_mod_idx'),
        ),
    ]
