"""
Tests for field validation of authentication and LDAP server attributes.
"""

import pytest

from authengine.authentication.errors import FieldError, ValidationError
from authengine.authentication.validation import (
    AUTH_CONFIG_RULES,
    DIRECTORY_RULES,
    FieldKind,
    FieldRule,
    FieldValidator,
    column_length,
    to_int,
    values_differ,
)
from authengine.models.authentication import AuthConfig, UserDirectory


class TestFieldValidatorCheck:
    """Test single-value checks."""

    def setup_method(self):
        self.validator = FieldValidator(AUTH_CONFIG_RULES)

    def test_unknown_field(self):
        assert self.validator.check("foo", 1) == (None, "unexpected parameter")

    def test_enum_accepts_declared_values(self):
        assert self.validator.check("authentication_type", 1) == (1, None)

    def test_enum_rejects_other_values(self):
        value, reason = self.validator.check("authentication_type", 2)
        assert value is None
        assert reason == "value must be one of 0, 1"

    def test_integer_accepts_numeric_text(self):
        assert self.validator.check("passwd_min_length", "12") == (12, None)

    def test_integer_rejects_text(self):
        assert self.validator.check("passwd_min_length", "twelve")[1] == "an integer is expected"

    def test_integer_rejects_bool(self):
        assert self.validator.check("passwd_min_length", True)[1] == "an integer is expected"

    def test_integer_range(self):
        assert self.validator.check("passwd_min_length", 0)[1] == "value must be one of 1-255"
        assert self.validator.check("passwd_min_length", 256)[1] == "value must be one of 1-255"
        assert self.validator.check("passwd_min_length", 255) == (255, None)

    def test_check_rules_range(self):
        assert self.validator.check("passwd_check_rules", 0x1F) == (0x1F, None)
        assert self.validator.check("passwd_check_rules", 0x20)[1] == "value must be one of 0-31"

    def test_string_rejects_numbers(self):
        assert self.validator.check("http_strip_domains", 5)[1] == "a character string is expected"

    def test_string_length_limit_from_column(self):
        limit = column_length(AuthConfig, "http_strip_domains")
        assert limit == 2048
        assert self.validator.check("http_strip_domains", "a" * limit) == ("a" * limit, None)
        assert self.validator.check("http_strip_domains", "a" * (limit + 1))[1] == "value is too long"

    def test_non_empty_string(self):
        assert self.validator.check("saml_sso_url", "")[1] == "cannot be empty"

    def test_null(self):
        assert self.validator.check("http_auth_enabled", None)[1] == "cannot be null"
        assert self.validator.check("ldap_default_provider_id", None) == (None, None)


class TestFieldValidatorAggregation:
    """Test that every violation is reported at once."""

    def test_required_directory_fields_reported_together(self):
        validator = FieldValidator(DIRECTORY_RULES)
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(
                {"search_attribute": "", "base_dn": "", "host": "", "name": ""},
                title="Invalid LDAP configuration",
            )

        error = exc_info.value
        assert error.title == "Invalid LDAP configuration"
        assert error.fields == ["name", "host", "base_dn", "search_attribute"]
        assert str(error.errors[1]) == 'Incorrect value for field "host": cannot be empty.'

    def test_unknown_fields_come_last(self):
        validator = FieldValidator(DIRECTORY_RULES)
        _, errors = validator.collect({"bogus": 1, "port": "abc"})
        assert errors == [
            FieldError("port", "an integer is expected"),
            FieldError("bogus", "unexpected parameter"),
        ]

    def test_returns_normalized_values(self):
        validator = FieldValidator(DIRECTORY_RULES)
        assert validator.validate({"port": "636", "start_tls": "1"}) == {"port": 636, "start_tls": 1}

    def test_port_range(self):
        validator = FieldValidator(DIRECTORY_RULES)
        _, errors = validator.collect({"port": 65536})
        assert errors == [FieldError("port", "value must be one of 0-65535")]

    def test_directory_length_limits(self):
        assert DIRECTORY_RULES["name"].max_length == column_length(UserDirectory, "name") == 128
        assert DIRECTORY_RULES["description"].max_length is None


class TestHelpers:

    def test_to_int(self):
        assert to_int("  42 ") == 42
        assert to_int("-1") == -1
        assert to_int("1.5") is None
        assert to_int(None) is None
        assert to_int(False) is None

    def test_values_differ_is_loose_for_numbers(self):
        assert not values_differ(1, "1")
        assert not values_differ("389", 389)
        assert values_differ(1, 2)
        assert values_differ(1, None)
        assert values_differ(None, 3)

    def test_values_differ_is_exact_for_strings(self):
        assert not values_differ("uid", "uid")
        assert values_differ("uid", "UID")
        assert values_differ("uid", "uid ")

    def test_custom_rule_table(self):
        validator = FieldValidator({"size": FieldRule(FieldKind.INTEGER, value_range=(1, 3))})
        assert validator.validate({"size": 2}) == {"size": 2}
