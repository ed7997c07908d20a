"""
Authentication configuration database models.

Implements:
- The global authentication config singleton
- LDAP user directories (identity providers)
- User groups (read-only here; counted to guard directory removal)
- Audit log of configuration changes
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from authengine.core.database import Base


class AuthenticationType(enum.IntEnum):
    """Login mechanism used at login time."""
    INTERNAL = 0
    LDAP = 1


class HttpLoginForm(enum.IntEnum):
    """Default login form when HTTP authentication is enabled."""
    DEFAULT = 0
    HTTP = 1


class ResourceKind(str, enum.Enum):
    """Audited resource kind."""
    AUTHENTICATION = "authentication"
    DIRECTORY = "directory"


class AuditAction(str, enum.Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


class AuthConfig(Base):
    """
    Global authentication configuration.

    Exactly one row exists; it is created at provisioning and never deleted.
    Toggles are stored as 0/1 integers.
    """
    __tablename__ = "config"

    configid: Mapped[int] = mapped_column(Integer, primary_key=True)

    authentication_type: Mapped[int] = mapped_column(
        Integer,
        default=AuthenticationType.INTERNAL,
        nullable=False,
    )

    # HTTP authentication
    http_auth_enabled: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    http_login_form: Mapped[int] = mapped_column(Integer, default=HttpLoginForm.DEFAULT, nullable=False)
    http_strip_domains: Mapped[str] = mapped_column(String(2048), default="", nullable=False)
    http_case_sensitive: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # LDAP
    ldap_configured: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ldap_case_sensitive: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    ldap_default_provider_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("userdirectory.userdirectoryid"),
        nullable=True,
    )

    # SAML
    saml_auth_enabled: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    saml_idp_entityid: Mapped[str] = mapped_column(String(1024), default="", nullable=False)
    saml_sso_url: Mapped[str] = mapped_column(String(2048), default="", nullable=False)
    saml_slo_url: Mapped[str] = mapped_column(String(2048), default="", nullable=False)
    saml_username_attribute: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    saml_sp_entityid: Mapped[str] = mapped_column(String(1024), default="", nullable=False)
    saml_nameid_format: Mapped[str] = mapped_column(String(2048), default="", nullable=False)
    saml_sign_messages: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    saml_sign_assertions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    saml_sign_authn_requests: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    saml_sign_logout_requests: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    saml_sign_logout_responses: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    saml_encrypt_nameid: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    saml_encrypt_assertions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    saml_case_sensitive: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Password policy
    passwd_min_length: Mapped[int] = mapped_column(Integer, default=8, nullable=False)
    passwd_check_rules: Mapped[int] = mapped_column(Integer, default=0x18, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


# Fields exposed by get/update; configid and timestamps are internal.
AUTH_CONFIG_FIELDS = (
    "authentication_type",
    "http_auth_enabled",
    "http_login_form",
    "http_strip_domains",
    "http_case_sensitive",
    "ldap_configured",
    "ldap_case_sensitive",
    "ldap_default_provider_id",
    "saml_auth_enabled",
    "saml_idp_entityid",
    "saml_sso_url",
    "saml_slo_url",
    "saml_username_attribute",
    "saml_sp_entityid",
    "saml_nameid_format",
    "saml_sign_messages",
    "saml_sign_assertions",
    "saml_sign_authn_requests",
    "saml_sign_logout_requests",
    "saml_sign_logout_responses",
    "saml_encrypt_nameid",
    "saml_encrypt_assertions",
    "saml_case_sensitive",
    "passwd_min_length",
    "passwd_check_rules",
)


class UserDirectory(Base):
    """
    LDAP identity provider.

    The bind password is stored encrypted in bind_password_enc and is never
    returned by reads.
    """
    __tablename__ = "userdirectory"

    userdirectoryid: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    host: Mapped[str] = mapped_column(String(255), nullable=False)
    port: Mapped[int] = mapped_column(Integer, default=389, nullable=False)
    base_dn: Mapped[str] = mapped_column(String(255), nullable=False)
    bind_dn: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    bind_password_enc: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)
    search_attribute: Mapped[str] = mapped_column(String(128), nullable=False)
    start_tls: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    search_filter: Mapped[str] = mapped_column(String(255), default="", nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.userdirectoryid,
            "name": self.name,
            "description": self.description,
            "host": self.host,
            "port": self.port,
            "base_dn": self.base_dn,
            "bind_dn": self.bind_dn,
            "search_attribute": self.search_attribute,
            "start_tls": self.start_tls,
            "search_filter": self.search_filter,
        }


class UserGroup(Base):
    """
    User group.

    Owned by the user management subsystem; this engine only counts how many
    groups point at a directory.
    """
    __tablename__ = "usrgrp"

    usrgrpid: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    userdirectory_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("userdirectory.userdirectoryid"),
        nullable=True,
    )


class AuthAuditLog(Base):
    """
    Append-only audit log for authentication configuration changes.
    """
    __tablename__ = "auditlog"

    auditid: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    actor_id: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String(16), nullable=False)
    resource_kind: Mapped[str] = mapped_column(String(32), nullable=False)
    resource_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    resource_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    old_value: Mapped[dict] = mapped_column(JSON, nullable=False)
    new_value: Mapped[dict] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_auditlog_resource_created", "resource_kind", "created_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.auditid,
            "actor_id": self.actor_id,
            "action": self.action,
            "resource_kind": self.resource_kind,
            "resource_id": self.resource_id,
            "resource_name": self.resource_name,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
