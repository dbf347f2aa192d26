"""
Access-control models for quintet.
"""

from enum import Enum
from typing import Dict, List, Optional, Set
from pydantic import BaseModel, Field


class GrantLevel(str, Enum):
    READ = "READ"
    WRITE = "WRITE"

    def satisfies(self, requested: "GrantLevel") -> bool:
        """WRITE satisfies any request; READ only satisfies READ."""
        return self is GrantLevel.WRITE or self is GrantLevel(requested)


class Principal(BaseModel):
    """
    An authenticated caller.
    """

    username: str = Field(..., description="Login name")
    user_id: Optional[int] = Field(None, description="Identity of the user row")
    role_id: Optional[int] = Field(None, description="Role whose rules apply")

    def is_admin(self, admin_user: str) -> bool:
        return self.username.lower() == admin_user.lower()


class RuleMap(BaseModel):
    """
    A role's rules keyed by target id (an object or a type).
    """

    levels: Dict[int, GrantLevel] = Field(default_factory=dict)
    masks: Dict[int, Dict[str, GrantLevel]] = Field(
        default_factory=dict,
        description="Value patterns that restrict which instances of a target are visible"
    )
    export: Set[int] = Field(default_factory=set)
    delete: Set[int] = Field(default_factory=set)

    def has(self, key: Optional[int]) -> bool:
        return key is not None and key in self.levels

    def level_for(self, key: int) -> Optional[GrantLevel]:
        return self.levels.get(key)

    def masks_for(self, key: int) -> List[str]:
        return list(self.masks.get(key, {}).keys())

    def can_export(self, key: int) -> bool:
        return key in self.export

    def can_delete(self, key: int) -> bool:
        return key in self.delete


class StructuralContext(BaseModel):
    """
    Graph edges consulted when no explicit rule names the object or type.
    """

    row_kind: int = Field(..., description="Type pointer of the inspected row")
    own_type: int
    array_type: Optional[int] = Field(None, description="Element type when the row is an array element")
    reference: Optional[int] = Field(None, description="Id named by the row's value, if it looks like one")
    parent_type: int = 1
    parent_id: int = 1
