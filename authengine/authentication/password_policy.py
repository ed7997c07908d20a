"""
Password policy satisfiability check.

The stored policy is a bitmask; here it is handled as a set of named rules.
"""

import enum
from typing import AbstractSet, FrozenSet, Iterable

from authengine.authentication.errors import ValidationError


class PasswordRule(enum.Enum):
    """Password complexity requirements and their storage bits."""
    CASE = 0x01
    DIGITS = 0x02
    SPECIAL = 0x04
    SIMPLE = 0x08
    LENGTH = 0x10


# Classes that each need at least one character of the password
CHARACTER_CLASSES: FrozenSet[PasswordRule] = frozenset(
    {PasswordRule.CASE, PasswordRule.DIGITS, PasswordRule.SPECIAL}
)

INSUFFICIENT_LENGTH = "length insufficient for selected requirements"


def rules_from_mask(mask: int) -> FrozenSet[PasswordRule]:
    return frozenset(rule for rule in PasswordRule if mask & rule.value)


def mask_from_rules(rules: Iterable[PasswordRule]) -> int:
    mask = 0
    for rule in rules:
        mask |= rule.value
    return mask


def is_satisfiable(min_length: int, rules: AbstractSet[PasswordRule]) -> bool:
    """
    Check whether a password of min_length can meet every required class.

    One character is never enough for two classes, two characters are never
    enough for three. Three or more characters always suffice.
    """
    required = len(CHARACTER_CLASSES & rules)
    if min_length == 1 and required >= 2:
        return False
    if min_length == 2 and required == 3:
        return False
    return True


def check_password_policy(min_length: int, check_rules: int) -> None:
    """
    Raise if the (min length, rules mask) pair cannot be satisfied.

    Raises:
        ValidationError: on field passwd_check_rules
    """
    if not is_satisfiable(min_length, rules_from_mask(check_rules)):
        raise ValidationError.single("passwd_check_rules", INSUFFICIENT_LENGTH)
