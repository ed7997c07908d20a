"""
Permission gate.

Authorizes the acting principal before an operation runs. Stateless apart
from the policy table loaded at construction.
"""

import enum
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

import structlog
from casbin import Enforcer
from casbin.model import Model

from authengine.authentication.errors import PermissionDenied
from authengine.authz.casbin_config import (
    DEFAULT_POLICIES,
    DEFAULT_ROLE_HIERARCHY,
    get_model_text,
)

logger = structlog.get_logger(__name__)


class UserType(enum.IntEnum):
    """User privilege tier; higher is more privileged."""
    USER = 1
    ADMIN = 2
    SUPER_ADMIN = 3

    @property
    def role(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class Actor:
    """The acting principal, as established by the session layer."""
    user_id: int
    username: str = ""
    user_type: UserType = UserType.USER


class Operation(str, enum.Enum):
    """Operations subject to authorization, as "<object>:<action>"."""
    GET_AUTH_CONFIG = "authentication:read"
    UPDATE_AUTH_CONFIG = "authentication:update"
    LIST_PROVIDERS = "directory:read"
    ADD_PROVIDER = "directory:add"
    UPDATE_PROVIDER = "directory:update"
    REMOVE_PROVIDER = "directory:delete"
    SET_DEFAULT_PROVIDER = "directory:set_default"
    TEST_PROVIDER = "directory:test"
    READ_AUDIT = "audit:read"

    @property
    def obj(self) -> str:
        return self.value.split(":", 1)[0]

    @property
    def act(self) -> str:
        return self.value.split(":", 1)[1]


class PermissionGate:
    """
    Casbin-backed authorization of (actor role, operation) pairs.
    """

    def __init__(
        self,
        policies: Optional[Iterable[Tuple[str, str, str]]] = None,
        role_hierarchy: Optional[Iterable[Tuple[str, str]]] = None,
    ):
        model = Model()
        model.load_model_from_text(get_model_text())
        self._enforcer = Enforcer(model)

        for sub, obj, act in policies if policies is not None else DEFAULT_POLICIES:
            self._enforcer.add_named_policy("p", sub, obj, act)
        for member, role in role_hierarchy if role_hierarchy is not None else DEFAULT_ROLE_HIERARCHY:
            self._enforcer.add_named_grouping_policy("g", member, role)

    def is_allowed(self, actor: Actor, operation: Operation) -> bool:
        return self._enforcer.enforce(actor.user_type.role, operation.obj, operation.act)

    def authorize(self, actor: Actor, operation: Operation) -> None:
        """
        Raises:
            PermissionDenied: If the actor's role does not grant the operation
        """
        if not self.is_allowed(actor, operation):
            logger.warning(
                "Permission denied",
                user_id=actor.user_id,
                role=actor.user_type.role,
                operation=operation.value,
            )
            raise PermissionDenied()
