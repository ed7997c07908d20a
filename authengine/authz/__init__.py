"""
Authorization for authentication configuration operations.

Role-based access control using Casbin.
"""

from authengine.authz.gate import Actor, Operation, PermissionGate, UserType

__all__ = [
    "Actor",
    "Operation",
    "PermissionGate",
    "UserType",
]
