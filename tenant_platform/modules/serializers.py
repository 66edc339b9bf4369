"""
Module System Serializers

Single serialization path for module state change payloads.
"""

from rest_framework import serializers

from .models import Module, ModuleAction

EVENT_ACTIONS = [
    (ModuleAction.ENABLED.value, ModuleAction.ENABLED.label),
    (ModuleAction.DISABLED.value, ModuleAction.DISABLED.label),
]


class ModuleSnapshotSerializer(serializers.ModelSerializer):
    """Module metadata as sent to subscribers"""

    class Meta:
        model = Module
        fields = ['name', 'description', 'version', 'is_core']
        read_only_fields = fields


class ModuleStateEventSerializer(serializers.Serializer):
    """Serializer for ModuleStateEvent"""

    module = ModuleSnapshotSerializer(read_only=True)
    tenant_id = serializers.CharField(read_only=True)
    timestamp = serializers.DateTimeField(read_only=True)
    action = serializers.ChoiceField(choices=EVENT_ACTIONS, read_only=True)
