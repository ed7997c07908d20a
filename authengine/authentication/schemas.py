"""
Authentication configuration API schemas.

Request models leave every field optional; the service tells absent fields
from fields explicitly set to null via model_dump(exclude_unset=True).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RequestModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


# ===========================================
# Authentication configuration
# ===========================================

class AuthConfigUpdateRequest(RequestModel):
    """Request to update the authentication configuration."""
    authentication_type: Optional[int] = Field(default=None, description="0 internal, 1 LDAP")
    http_auth_enabled: Optional[int] = None
    http_login_form: Optional[int] = Field(default=None, description="0 default form, 1 HTTP form")
    http_strip_domains: Optional[str] = None
    http_case_sensitive: Optional[int] = None
    ldap_configured: Optional[int] = None
    ldap_case_sensitive: Optional[int] = None
    ldap_default_provider_id: Optional[int] = None
    saml_auth_enabled: Optional[int] = None
    saml_idp_entityid: Optional[str] = None
    saml_sso_url: Optional[str] = None
    saml_slo_url: Optional[str] = None
    saml_username_attribute: Optional[str] = None
    saml_sp_entityid: Optional[str] = None
    saml_nameid_format: Optional[str] = None
    saml_sign_messages: Optional[int] = None
    saml_sign_assertions: Optional[int] = None
    saml_sign_authn_requests: Optional[int] = None
    saml_sign_logout_requests: Optional[int] = None
    saml_sign_logout_responses: Optional[int] = None
    saml_encrypt_nameid: Optional[int] = None
    saml_encrypt_assertions: Optional[int] = None
    saml_case_sensitive: Optional[int] = None
    passwd_min_length: Optional[int] = None
    passwd_check_rules: Optional[int] = Field(default=None, description="Bitmask of password rules")


class UpdatedFieldsResponse(BaseModel):
    """Names of the fields that actually changed."""
    updated: List[str]


# ===========================================
# LDAP servers
# ===========================================

class LdapServerRequest(RequestModel):
    """LDAP server fields; required fields are checked by the service."""
    name: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    base_dn: Optional[str] = None
    search_attribute: Optional[str] = None
    bind_dn: Optional[str] = None
    bind_password: Optional[str] = None
    description: Optional[str] = None
    start_tls: Optional[int] = None
    search_filter: Optional[str] = None


class LdapServerResponse(BaseModel):
    """LDAP server response. The bind password is never returned."""
    id: int
    name: str
    description: str
    host: str
    port: int
    base_dn: str
    bind_dn: str
    search_attribute: str
    start_tls: int
    search_filter: str
    is_default: bool
    group_reference_count: int


class LdapServerListResponse(BaseModel):
    servers: List[LdapServerResponse]
    total: int


class LdapServerCreatedResponse(BaseModel):
    id: int


class LdapServerTestRequest(LdapServerRequest):
    """Settings to test, plus the credentials to log in with."""
    provider_id: Optional[int] = Field(default=None, description="Saved server whose bind password to reuse")
    test_username: Optional[str] = None
    test_password: Optional[str] = None


class LdapServerTestResponse(BaseModel):
    success: bool
    message: str
    details: Optional[str] = None


# ===========================================
# Audit
# ===========================================

class AuditLogResponse(BaseModel):
    """Audit log entry response."""
    id: int
    actor_id: int
    action: str
    resource_kind: str
    resource_id: Optional[int] = None
    resource_name: Optional[str] = None
    old_value: Dict[str, Any]
    new_value: Dict[str, Any]
    created_at: Optional[datetime] = None


class AuditLogListResponse(BaseModel):
    logs: List[AuditLogResponse]
    total: int
