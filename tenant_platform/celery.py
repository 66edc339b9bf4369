"""
Celery Configuration
"""
import os
from celery import Celery

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'tenant_platform.settings')

app = Celery('tenant_platform')

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
app.config_from_object('django.conf:settings', namespace='CELERY')

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

# Module state broadcasts use their own queue
app.conf.task_routes = {
    'tenant_platform.modules.tasks.broadcast_module_state': {'queue': 'broadcasts'},
}
