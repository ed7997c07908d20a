"""
Casbin RBAC configuration.

Roles form a chain (super_admin inherits admin inherits user). Objects are
resource kinds, actions are matched as regular expressions.
"""

CASBIN_MODEL = """
[request_definition]
r = sub, obj, act

[policy_definition]
p = sub, obj, act

[role_definition]
g = _, _

[policy_effect]
e = some(where (p.eft == allow))

[matchers]
m = g(r.sub, p.sub) && keyMatch(r.obj, p.obj) && regexMatch(r.act, p.act)
"""

# (role, object, action)
DEFAULT_POLICIES = [
    ("user", "authentication", "^read$"),
    ("user", "directory", "^read$"),
    ("user", "audit", "^read$"),
    ("super_admin", "authentication", "^update$"),
    ("super_admin", "directory", "^(add|update|delete|set_default|test)$"),
]

# (member, role)
DEFAULT_ROLE_HIERARCHY = [
    ("admin", "user"),
    ("super_admin", "admin"),
]


def get_model_text() -> str:
    """Get the Casbin model definition."""
    return CASBIN_MODEL
