"""
Field validation for authentication configuration attributes.

Each attribute has a declared kind (integer, string or enumeration) and
constraints. String length limits come from the storage schema, i.e. the
SQLAlchemy column types, so they cannot drift from the database.
"""

import enum
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from authengine.authentication.errors import FieldError, ValidationError
from authengine.models.authentication import (
    AuthConfig,
    AuthenticationType,
    HttpLoginForm,
    UserDirectory,
)


class FieldKind(str, enum.Enum):
    INTEGER = "integer"
    STRING = "string"
    ENUM = "enum"


@dataclass(frozen=True)
class FieldRule:
    """Declared type and constraints of one attribute."""
    kind: FieldKind
    max_length: Optional[int] = None
    value_range: Optional[Tuple[int, int]] = None
    choices: Optional[Tuple[int, ...]] = None
    not_empty: bool = False
    nullable: bool = False


_INT_PATTERN = re.compile(r"^[+-]?\d+$")


def column_length(model, field: str) -> Optional[int]:
    """Return the declared length of a string column, None for unbounded text."""
    return getattr(model.__table__.c[field].type, "length", None)


def to_int(value: Any) -> Optional[int]:
    """Coerce ints and numeric text to int; anything else yields None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return int(value)
    if isinstance(value, str) and _INT_PATTERN.match(value.strip()):
        return int(value.strip())
    return None


def values_differ(current: Any, proposed: Any) -> bool:
    """
    Compare a stored value with a proposed one.

    Numbers compare loosely so that "1" and 1 are equal; strings compare exactly.
    """
    if isinstance(current, int) or isinstance(proposed, int):
        left, right = to_int(current), to_int(proposed)
        if left is None or right is None:
            return not (current is None and proposed is None)
        return left != right
    return current != proposed


class FieldValidator:
    """
    Validates candidate values against a rule table.

    A field reports only its first violation, but every field is checked so
    callers get the complete list of problems in one ValidationError.
    """

    def __init__(self, rules: Mapping[str, FieldRule]):
        self.rules = rules

    def check(self, field: str, value: Any) -> Tuple[Any, Optional[str]]:
        """
        Validate one value.

        Returns:
            (normalized value, None) on success or (None, reason) on failure
        """
        rule = self.rules.get(field)
        if rule is None:
            return None, "unexpected parameter"

        if value is None:
            if rule.nullable:
                return None, None
            return None, "cannot be null"

        if rule.kind in (FieldKind.INTEGER, FieldKind.ENUM):
            number = to_int(value)
            if number is None:
                return None, "an integer is expected"
            if rule.choices is not None and number not in rule.choices:
                return None, "value must be one of " + ", ".join(str(c) for c in rule.choices)
            if rule.value_range is not None:
                low, high = rule.value_range
                if not low <= number <= high:
                    return None, f"value must be one of {low}-{high}"
            return number, None

        if not isinstance(value, str):
            return None, "a character string is expected"
        if rule.not_empty and value == "":
            return None, "cannot be empty"
        if rule.max_length is not None and len(value) > rule.max_length:
            return None, "value is too long"
        return value, None

    def collect(self, values: Mapping[str, Any]) -> Tuple[Dict[str, Any], List[FieldError]]:
        """Validate all present values; return normalized values and the violations."""
        normalized: Dict[str, Any] = {}
        errors: List[FieldError] = []

        # Declared fields first, in declaration order, so messages are stable
        ordered = [f for f in self.rules if f in values]
        ordered += [f for f in values if f not in self.rules]

        for field in ordered:
            value, reason = self.check(field, values[field])
            if reason is not None:
                errors.append(FieldError(field, reason))
            else:
                normalized[field] = value
        return normalized, errors

    def validate(self, values: Mapping[str, Any], title: str = "Invalid parameters") -> Dict[str, Any]:
        normalized, errors = self.collect(values)
        if errors:
            raise ValidationError(errors, title=title)
        return normalized


def _string(model, field: str, not_empty: bool = False) -> FieldRule:
    return FieldRule(FieldKind.STRING, max_length=column_length(model, field), not_empty=not_empty)


TOGGLE = FieldRule(FieldKind.ENUM, choices=(0, 1))


AUTH_CONFIG_RULES: Dict[str, FieldRule] = {
    "authentication_type": FieldRule(FieldKind.ENUM, choices=tuple(int(t) for t in AuthenticationType)),
    "http_auth_enabled": TOGGLE,
    "http_login_form": FieldRule(FieldKind.ENUM, choices=tuple(int(f) for f in HttpLoginForm)),
    "http_strip_domains": _string(AuthConfig, "http_strip_domains"),
    "http_case_sensitive": TOGGLE,
    "ldap_configured": TOGGLE,
    "ldap_case_sensitive": TOGGLE,
    "ldap_default_provider_id": FieldRule(FieldKind.INTEGER, value_range=(1, 2**63 - 1), nullable=True),
    "saml_auth_enabled": TOGGLE,
    "saml_idp_entityid": _string(AuthConfig, "saml_idp_entityid", not_empty=True),
    "saml_sso_url": _string(AuthConfig, "saml_sso_url", not_empty=True),
    "saml_slo_url": _string(AuthConfig, "saml_slo_url"),
    "saml_username_attribute": _string(AuthConfig, "saml_username_attribute", not_empty=True),
    "saml_sp_entityid": _string(AuthConfig, "saml_sp_entityid", not_empty=True),
    "saml_nameid_format": _string(AuthConfig, "saml_nameid_format"),
    "saml_sign_messages": TOGGLE,
    "saml_sign_assertions": TOGGLE,
    "saml_sign_authn_requests": TOGGLE,
    "saml_sign_logout_requests": TOGGLE,
    "saml_sign_logout_responses": TOGGLE,
    "saml_encrypt_nameid": TOGGLE,
    "saml_encrypt_assertions": TOGGLE,
    "saml_case_sensitive": TOGGLE,
    "passwd_min_length": FieldRule(FieldKind.INTEGER, value_range=(1, 255)),
    "passwd_check_rules": FieldRule(FieldKind.INTEGER, value_range=(0, 0x1F)),
}

# bind_password is stored encrypted, so its limit is not a column length
BIND_PASSWORD_MAX_LENGTH = 128

DIRECTORY_RULES: Dict[str, FieldRule] = {
    "name": _string(UserDirectory, "name", not_empty=True),
    "host": _string(UserDirectory, "host", not_empty=True),
    "port": FieldRule(FieldKind.INTEGER, value_range=(0, 65535)),
    "base_dn": _string(UserDirectory, "base_dn", not_empty=True),
    "search_attribute": _string(UserDirectory, "search_attribute", not_empty=True),
    "bind_dn": _string(UserDirectory, "bind_dn"),
    "bind_password": FieldRule(FieldKind.STRING, max_length=BIND_PASSWORD_MAX_LENGTH),
    "description": _string(UserDirectory, "description"),
    "start_tls": TOGGLE,
    "search_filter": _string(UserDirectory, "search_filter"),
}

REQUIRED_DIRECTORY_FIELDS = ("name", "host", "base_dn", "search_attribute")

TEST_CREDENTIAL_RULES: Dict[str, FieldRule] = {
    "test_username": FieldRule(FieldKind.STRING, not_empty=True),
    "test_password": FieldRule(FieldKind.STRING, not_empty=True),
}
