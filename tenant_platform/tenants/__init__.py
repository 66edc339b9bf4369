"""
Tenants

Tenant, domain and membership models plus the tenancy context used to run
work inside a tenant's data scope.
"""
