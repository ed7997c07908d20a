"""
LDAP bind collaborator used to test directory settings.

The engine never talks LDAP itself: the registry hands a BindRequest to a
client and maps the raw BindResult to a user-facing test result. The default
client is built on ldap3 and is blocking, so callers run it in a thread.
"""

import enum
from dataclasses import dataclass, field
from typing import Optional, Protocol

import structlog
from ldap3 import Connection, Server
from ldap3.core.exceptions import LDAPException
from ldap3.core.results import RESULT_SUCCESS
from ldap3.utils.conv import escape_filter_chars

logger = structlog.get_logger(__name__)


class BindResult(str, enum.Enum):
    SUCCESS = "success"
    ANONYMOUS_BIND_FAILED = "anonymous_bind_failed"
    BIND_FAILED = "bind_failed"
    TLS_FAILED = "tls_failed"
    SEARCH_FAILED = "search_failed"
    INVALID_CREDENTIALS = "invalid_credentials"


@dataclass(frozen=True)
class BindRequest:
    """Directory settings plus the credentials to test with."""
    host: str
    port: int
    base_dn: str
    search_attribute: str
    test_username: str
    test_password: str = field(repr=False)
    bind_dn: str = ""
    bind_password: str = field(default="", repr=False)
    start_tls: bool = False
    search_filter: str = ""


class LdapBindClient(Protocol):
    def bind(self, request: BindRequest, timeout: int) -> BindResult:
        ...


LOGIN_SUCCESSFUL = "Login successful"
LOGIN_FAILED = "Login failed"

BIND_RESULT_DETAILS = {
    BindResult.INVALID_CREDENTIALS: "Incorrect user name or password or account is temporarily blocked.",
    BindResult.ANONYMOUS_BIND_FAILED: "Cannot bind anonymously to LDAP server.",
    BindResult.BIND_FAILED: "Cannot bind to LDAP server.",
    BindResult.TLS_FAILED: "Starting TLS failed.",
    BindResult.SEARCH_FAILED: "Cannot search LDAP directory.",
}


@dataclass(frozen=True)
class ProviderTestResult:
    """Outcome of a test login against a directory."""
    success: bool
    message: str
    details: Optional[str] = None

    @classmethod
    def from_bind_result(cls, result: BindResult) -> "ProviderTestResult":
        if result == BindResult.SUCCESS:
            return cls(success=True, message=LOGIN_SUCCESSFUL)
        return cls(success=False, message=LOGIN_FAILED, details=BIND_RESULT_DETAILS[result])

    def to_dict(self) -> dict:
        return {"success": self.success, "message": self.message, "details": self.details}


def build_search_filter(request: BindRequest) -> str:
    """
    Build the user lookup filter.

    A custom filter may use %{attr} and %{user} placeholders; without one the
    filter is (<search_attribute>=<user>).
    """
    user = escape_filter_chars(request.test_username)
    if request.search_filter:
        return request.search_filter.replace("%{attr}", request.search_attribute).replace("%{user}", user)
    return f"({request.search_attribute}={user})"


class Ldap3BindClient:
    """
    Test login using ldap3.

    Binds with the service credentials (or anonymously), looks the user up
    under base_dn, then rebinds as the found entry with the test password.
    """

    def bind(self, request: BindRequest, timeout: int) -> BindResult:
        anonymous = not request.bind_dn
        bind_failed = BindResult.ANONYMOUS_BIND_FAILED if anonymous else BindResult.BIND_FAILED

        server = Server(request.host, port=request.port, connect_timeout=timeout)
        conn = Connection(
            server,
            user=request.bind_dn or None,
            password=request.bind_password or None,
            read_only=True,
            receive_timeout=timeout,
        )

        try:
            try:
                conn.open()
            except LDAPException as e:
                logger.info("LDAP connection failed", host=request.host, port=request.port, error=str(e))
                return bind_failed

            if request.start_tls:
                try:
                    if not conn.start_tls():
                        return BindResult.TLS_FAILED
                except LDAPException as e:
                    logger.info("LDAP StartTLS failed", host=request.host, error=str(e))
                    return BindResult.TLS_FAILED

            try:
                if not conn.bind():
                    return bind_failed
            except LDAPException as e:
                logger.info("LDAP bind failed", host=request.host, anonymous=anonymous, error=str(e))
                return bind_failed

            try:
                found = conn.search(request.base_dn, build_search_filter(request), attributes=[request.search_attribute])
            except LDAPException as e:
                logger.info("LDAP search failed", host=request.host, base_dn=request.base_dn, error=str(e))
                return BindResult.SEARCH_FAILED

            if not conn.entries:
                # A search that finds nothing still completes with RESULT_SUCCESS
                code = conn.result.get("result") if conn.result else RESULT_SUCCESS
                if not found and code != RESULT_SUCCESS:
                    logger.info(
                        "LDAP search failed",
                        host=request.host,
                        base_dn=request.base_dn,
                        result=code,
                        description=conn.result.get("description"),
                    )
                    return BindResult.SEARCH_FAILED
                return BindResult.INVALID_CREDENTIALS
            user_dn = conn.entries[0].entry_dn

            try:
                if not conn.rebind(user=user_dn, password=request.test_password):
                    return BindResult.INVALID_CREDENTIALS
            except LDAPException:
                return BindResult.INVALID_CREDENTIALS

            return BindResult.SUCCESS
        finally:
            if not conn.closed:
                conn.unbind()
