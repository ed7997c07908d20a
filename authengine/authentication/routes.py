"""
Authentication configuration API routes.

Thin adapter over ConfigurationService; service errors are mapped to HTTP
status codes here.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, status

from authengine.authentication.errors import (
    AuthConfigError,
    Conflict,
    NotFound,
    PermissionDenied,
    StorageError,
    ValidationError,
)
from authengine.authentication.schemas import (
    AuditLogListResponse,
    AuthConfigUpdateRequest,
    LdapServerCreatedResponse,
    LdapServerListResponse,
    LdapServerRequest,
    LdapServerResponse,
    LdapServerTestRequest,
    LdapServerTestResponse,
    UpdatedFieldsResponse,
)
from authengine.core.dependencies import ConfigurationServiceDep, CurrentActorDep
from authengine.models.authentication import ResourceKind


router = APIRouter(prefix="/authentication", tags=["authentication"])

TEST_CREDENTIAL_FIELDS = ("test_username", "test_password")


def to_http_exception(error: AuthConfigError) -> HTTPException:
    """Map a service error to an HTTP error."""
    if isinstance(error, ValidationError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": error.title, "errors": [str(e) for e in error.errors]},
        )
    if isinstance(error, PermissionDenied):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=error.message)
    if isinstance(error, NotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.message)
    if isinstance(error, Conflict):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=error.message)
    if isinstance(error, StorageError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=error.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error.message)


# ===========================================
# Authentication configuration
# ===========================================

@router.get("")
async def get_auth_config(
    actor: CurrentActorDep,
    service: ConfigurationServiceDep,
    fields: Optional[List[str]] = Query(default=None, description="Fields to return"),
) -> Dict[str, Any]:
    """Get the authentication configuration, optionally projected to some fields."""
    try:
        return await service.get_auth_config(actor, fields)
    except AuthConfigError as e:
        raise to_http_exception(e)


@router.put("", response_model=UpdatedFieldsResponse)
async def update_auth_config(
    data: AuthConfigUpdateRequest,
    actor: CurrentActorDep,
    service: ConfigurationServiceDep,
):
    """
    Update the authentication configuration.

    Only fields present in the body are considered; the response lists the
    ones that actually changed.
    """
    try:
        updated = await service.update_auth_config(actor, data.model_dump(exclude_unset=True))
    except AuthConfigError as e:
        raise to_http_exception(e)
    return UpdatedFieldsResponse(updated=updated)


# ===========================================
# LDAP servers
# ===========================================

@router.get("/ldap-servers", response_model=LdapServerListResponse)
async def list_ldap_servers(
    actor: CurrentActorDep,
    service: ConfigurationServiceDep,
):
    try:
        servers = await service.list_providers(actor)
    except AuthConfigError as e:
        raise to_http_exception(e)
    return LdapServerListResponse(
        servers=[LdapServerResponse(**s) for s in servers],
        total=len(servers),
    )


@router.post("/ldap-servers", response_model=LdapServerCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_ldap_server(
    data: LdapServerRequest,
    actor: CurrentActorDep,
    service: ConfigurationServiceDep,
):
    try:
        provider_id = await service.add_provider(actor, data.model_dump(exclude_unset=True))
    except AuthConfigError as e:
        raise to_http_exception(e)
    return LdapServerCreatedResponse(id=provider_id)


@router.post("/ldap-servers/test", response_model=LdapServerTestResponse)
async def test_ldap_server(
    data: LdapServerTestRequest,
    actor: CurrentActorDep,
    service: ConfigurationServiceDep,
    timeout: Optional[int] = Query(default=None, description="Bind timeout in seconds, capped by LDAP_TEST_TIMEOUT"),
):
    """
    Test a login against LDAP server settings.

    A failed login is a 200 response with success=false.
    """
    values = data.model_dump(exclude_unset=True)
    credentials = {f: values.pop(f) for f in TEST_CREDENTIAL_FIELDS if f in values}
    try:
        result = await service.test_provider(actor, values, credentials, timeout)
    except AuthConfigError as e:
        raise to_http_exception(e)
    return LdapServerTestResponse(**result.to_dict())


@router.get("/ldap-servers/{provider_id}", response_model=LdapServerResponse)
async def get_ldap_server(
    provider_id: int,
    actor: CurrentActorDep,
    service: ConfigurationServiceDep,
):
    try:
        server = await service.get_provider(actor, provider_id)
    except AuthConfigError as e:
        raise to_http_exception(e)
    return LdapServerResponse(**server)


@router.patch("/ldap-servers/{provider_id}", response_model=UpdatedFieldsResponse)
async def update_ldap_server(
    provider_id: int,
    data: LdapServerRequest,
    actor: CurrentActorDep,
    service: ConfigurationServiceDep,
):
    try:
        updated = await service.update_provider(actor, provider_id, data.model_dump(exclude_unset=True))
    except AuthConfigError as e:
        raise to_http_exception(e)
    return UpdatedFieldsResponse(updated=updated)


@router.delete("/ldap-servers/{provider_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ldap_server(
    provider_id: int,
    actor: CurrentActorDep,
    service: ConfigurationServiceDep,
    authentication_type: Optional[int] = Query(
        default=None,
        description="Authentication type to switch to in the same change",
    ),
):
    """
    Delete an LDAP server.

    Deleting the last server while LDAP authentication is active requires
    authentication_type to switch away from LDAP.
    """
    try:
        await service.remove_provider(actor, provider_id, authentication_type)
    except AuthConfigError as e:
        raise to_http_exception(e)


@router.post("/ldap-servers/{provider_id}/default", response_model=UpdatedFieldsResponse)
async def set_default_ldap_server(
    provider_id: int,
    actor: CurrentActorDep,
    service: ConfigurationServiceDep,
):
    try:
        updated = await service.set_default_provider(actor, provider_id)
    except AuthConfigError as e:
        raise to_http_exception(e)
    return UpdatedFieldsResponse(updated=updated)


# ===========================================
# Audit
# ===========================================

@router.get("/audit", response_model=AuditLogListResponse)
async def list_audit_logs(
    actor: CurrentActorDep,
    service: ConfigurationServiceDep,
    resource_kind: Optional[ResourceKind] = None,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
):
    try:
        logs = await service.list_audit(actor, resource_kind=resource_kind, limit=limit, offset=offset)
    except AuthConfigError as e:
        raise to_http_exception(e)
    return AuditLogListResponse(logs=logs, total=len(logs))
