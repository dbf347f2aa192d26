"""
Fallback strategies for grant resolution.

When no rule names the object or the requested type directly, the resolver
looks at the object's structural context. Each strategy picks one key from that
context; the first key with a rule decides. The order returned by
default_strategies() is the precedence.
"""

from typing import Iterable, List, Optional

from ..models import StructuralContext


class GrantStrategy:
    """Selects the rule key a fallback step consults."""

    name = "base"

    def key(self, context: StructuralContext) -> Optional[int]:
        raise NotImplementedError

    def __repr__(self):
        return f"<{self.__class__.__name__}>"


class OwnTypeStrategy(GrantStrategy):
    name = "own_type"

    def key(self, context: StructuralContext) -> Optional[int]:
        return context.own_type


class ArrayMembershipStrategy(GrantStrategy):
    name = "array_type"

    def key(self, context: StructuralContext) -> Optional[int]:
        return context.array_type


class ReferenceStrategy(GrantStrategy):
    """
    Uses the id stored in the row's value.

    Rows of the exempt kinds store ids that mean something else (the field a
    report column shows, the target of a rule) and are skipped.
    """

    name = "reference"

    def __init__(self, exempt_kinds: Iterable[int] = ()):
        self.exempt_kinds = frozenset(int(k) for k in exempt_kinds)

    def key(self, context: StructuralContext) -> Optional[int]:
        if context.row_kind in self.exempt_kinds:
            return None
        return context.reference


class ParentTypeStrategy(GrantStrategy):
    name = "parent_type"

    def key(self, context: StructuralContext) -> Optional[int]:
        return context.parent_type


class ParentIdStrategy(GrantStrategy):
    name = "parent_id"

    def key(self, context: StructuralContext) -> Optional[int]:
        return context.parent_id


def default_strategies(reference_exempt_kinds: Iterable[int]) -> List[GrantStrategy]:
    """Build the fallback chain in precedence order."""
    return [
        OwnTypeStrategy(),
        ArrayMembershipStrategy(),
        ReferenceStrategy(reference_exempt_kinds),
        ParentTypeStrategy(),
        ParentIdStrategy()
    ]
