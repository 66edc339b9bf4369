"""
Tenant Module System

Governs which optional feature modules are active for which tenant and keeps
permissions, navigation, the audit trail and external subscribers consistent
with that activation state.
"""
