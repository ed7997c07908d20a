# Database models
from authengine.models.authentication import (
    AuthConfig,
    UserDirectory,
    UserGroup,
    AuthAuditLog,
    # Enums
    AuthenticationType,
    HttpLoginForm,
    ResourceKind,
    AuditAction,
    AUTH_CONFIG_FIELDS,
)

__all__ = [
    "AuthConfig",
    "UserDirectory",
    "UserGroup",
    "AuthAuditLog",
    "AuthenticationType",
    "HttpLoginForm",
    "ResourceKind",
    "AuditAction",
    "AUTH_CONFIG_FIELDS",
]
