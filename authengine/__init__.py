"""
Authentication configuration engine for the monitoring platform.

Owns the global authentication settings record and the registry of LDAP
user directories, enforcing their shared invariants atomically.
"""

__version__ = "1.0.0"
