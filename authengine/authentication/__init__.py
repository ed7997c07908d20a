"""
Authentication configuration module.

Holds the global authentication settings and the LDAP directory registry.
Components are wired together in authengine.authentication.service.
"""

from authengine.authentication.errors import (
    AuthConfigError,
    Conflict,
    FieldError,
    NotFound,
    PermissionDenied,
    StorageError,
    ValidationError,
)

__all__ = [
    "AuthConfigError",
    "Conflict",
    "FieldError",
    "NotFound",
    "PermissionDenied",
    "StorageError",
    "ValidationError",
]
