"""
Module System Exceptions

Custom exceptions for the module system.
"""


class ModuleError(Exception):
    """Base exception for module system errors"""
    pass


class NotFoundError(ModuleError):
    """Raised when a tenant or module cannot be found"""
    pass


class ModuleNotFoundError(NotFoundError):
    """Raised when a module cannot be found"""
    pass


class TenantNotFoundError(NotFoundError):
    """Raised when a tenant cannot be found"""
    pass


class ModuleValidationError(ModuleError):
    """Raised when input or module state fails validation"""
    pass


class DescriptorError(ModuleValidationError):
    """Raised when a module descriptor is missing or malformed"""
    pass


class ProvisioningError(ModuleError):
    """Raised when module migrations or seeding fail"""
    pass


class PermissionSyncError(ModuleError):
    """Raised when the permission store cannot be reconciled"""
    pass


class TransactionError(ModuleError):
    """Raised when the underlying store fails to commit or roll back"""
    pass


class ImmutableRecordError(ModuleError):
    """Raised on attempts to change or remove audit records"""
    pass
