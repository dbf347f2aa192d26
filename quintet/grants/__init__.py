"""Access control for quintet."""

from .rules import load_rules, write_rule, assign_role, principal_for_user
from .strategies import (
    GrantStrategy,
    OwnTypeStrategy,
    ArrayMembershipStrategy,
    ReferenceStrategy,
    ParentTypeStrategy,
    ParentIdStrategy,
    default_strategies
)
from .resolver import GrantResolver

__all__ = [
    "load_rules",
    "write_rule",
    "assign_role",
    "principal_for_user",
    "GrantStrategy",
    "OwnTypeStrategy",
    "ArrayMembershipStrategy",
    "ReferenceStrategy",
    "ParentTypeStrategy",
    "ParentIdStrategy",
    "default_strategies",
    "GrantResolver"
]
