"""
Grant resolver for quintet.

Answers "may this principal read/write this row?" from a role's rule map by
walking the graph upward through type, array, reference and parent edges.
Resolution fails closed: when the store cannot answer, access is denied.
"""

import logging
from typing import List, Optional

from ..config import config
from ..constants import ROOT
from ..database import RelationStore
from ..errors import AccessDenied, StorageFailure
from ..models import FieldKind, GrantLevel, Principal, RuleMap, StructuralContext
from ..schema.resolver import SchemaResolver
from .rules import load_rules
from .strategies import GrantStrategy, default_strategies


class GrantResolver:
    """
    Decides access for one principal using one freshly loaded rule map.
    """

    def __init__(self, store: RelationStore, principal: Principal, rules: RuleMap,
                 strategies: Optional[List[GrantStrategy]] = None,
                 admin_user: Optional[str] = None, max_depth: Optional[int] = None):
        """
        Initialize the resolver.

        Args:
            store: Relation store
            principal: Caller whose access is checked
            rules: The principal's role rules
            strategies: Fallback chain; defaults to the standard precedence
            admin_user: Name of the principal that bypasses every check
            max_depth: Limit on parent-chain recursion
        """
        self.store = store
        self.principal = principal
        self.rules = rules
        self.schema = SchemaResolver(store)
        self.strategies = strategies if strategies is not None else default_strategies(
            config.reference_exempt_types
        )
        self.admin_user = admin_user or config.admin_user
        self.max_depth = max_depth if max_depth is not None else config.grant_max_depth

    @classmethod
    def for_principal(cls, store: RelationStore, principal: Principal, **kwargs) -> "GrantResolver":
        """
        Load the principal's rules and build a resolver.

        A failure to load rules yields an empty rule map, which grants nothing.
        """
        try:
            rules = load_rules(store, principal.role_id)
        except StorageFailure as e:
            logging.error(f"Could not load rules for role {principal.role_id}: {e}")
            rules = RuleMap()
        return cls(store, principal, rules, **kwargs)

    @property
    def is_admin(self) -> bool:
        return self.principal.is_admin(self.admin_user)

    def _decide(self, key: int, level: GrantLevel) -> bool:
        return self.rules.level_for(key).satisfies(level)

    def _array_type(self, pointer: int) -> Optional[int]:
        row = self.store.get(pointer)
        if row is None or row.up == 0:
            return None
        field = self.schema.field_from_row(row)
        if field is not None and field.kind is FieldKind.ARRAY:
            return field.target_type
        return None

    def context(self, row_id: int, type_id: int = 0) -> Optional[StructuralContext]:
        """
        Fetch the structural context consulted by the fallback strategies.

        Without a type the row itself is described. With a type, the described
        row is the type_id child of row_id, or the type_id field of row_id's
        type; its value is never read as a reference.

        Returns:
            The context, or None when nothing matches
        """
        if type_id == 0:
            records = self.store.query("""
                SELECT obj.t, obj.val, COALESCE(par.t, 1), COALESCE(par.id, 1)
                FROM {table} obj
                LEFT JOIN {table} par ON obj.up > 1 AND par.id = obj.up
                WHERE obj.id = ?
            """, [row_id], operation="grant context", target=row_id)
            if not records:
                return None
            kind, value, parent_type, parent_id = records[0]
            value = (value or "").strip()
            reference = int(value) if value.isdigit() else None
        else:
            records = self.store.query("""
                SELECT obj.t, par.t, par.id
                FROM {table} par
                JOIN {table} obj ON obj.up > 1
                    AND ((obj.up = par.id AND obj.t = ?) OR (obj.up = par.t AND obj.id = ?))
                WHERE par.id = ?
                ORDER BY obj.ord, obj.id
                LIMIT 1
            """, [type_id, type_id, row_id], operation="grant context", target=row_id)
            if not records:
                return None
            kind, parent_type, parent_id = records[0]
            reference = None

        return StructuralContext(
            row_kind=kind,
            own_type=kind,
            array_type=self._array_type(kind),
            reference=reference,
            parent_type=parent_type,
            parent_id=parent_id
        )

    def _check(self, row_id: int, type_id: int, level: GrantLevel, depth: int) -> bool:
        if type_id and self.rules.has(type_id):
            return self._decide(type_id, level)
        if self.rules.has(row_id):
            return self._decide(row_id, level)
        if type_id and row_id == ROOT:
            return self.rules.has(ROOT) and self._decide(ROOT, level)

        context = self.context(row_id, type_id)
        if context is None:
            return False

        for strategy in self.strategies:
            key = strategy.key(context)
            if self.rules.has(key):
                granted = self._decide(key, level)
                logging.debug(f"Grant on {row_id} decided by {strategy.name} ({key}): {granted}")
                return granted

        if context.parent_id > ROOT:
            if depth >= self.max_depth:
                logging.warning(f"Grant resolution for {row_id} exceeded depth {self.max_depth}")
                return False
            return self._check(context.parent_id, 0, level, depth + 1)
        return False

    def check_grant(self, row_id: int, type_id: int = 0, level: GrantLevel = GrantLevel.WRITE) -> bool:
        """
        Decide whether the principal holds a grant.

        Args:
            row_id: Object (or parent object, when type_id is given)
            type_id: Type or field being accessed under row_id; 0 for the row itself
            level: Requested level; WRITE satisfies READ requests too

        Returns:
            True if granted. Storage errors deny.
        """
        if self.is_admin:
            return True
        try:
            return self._check(row_id, type_id, GrantLevel(level), 0)
        except StorageFailure as e:
            logging.error(f"Grant check on {row_id} (type {type_id}) failed closed: {e}")
            return False

    def require_grant(self, row_id: int, type_id: int = 0, level: GrantLevel = GrantLevel.WRITE):
        """Raise AccessDenied unless check_grant succeeds."""
        if not self.check_grant(row_id, type_id, level):
            raise AccessDenied(row_id, GrantLevel(level).value, self.principal.username)

    def grant_1_level(self, row_id: int) -> Optional[GrantLevel]:
        """
        Visibility of a top-level type for listings.

        Returns the explicit or root level, READ when a type referencing
        row_id is granted, and None otherwise. Never use this to authorize writes.
        """
        if self.is_admin:
            return GrantLevel.WRITE
        if self.rules.has(row_id):
            return self.rules.level_for(row_id)
        if self.rules.has(ROOT):
            return self.rules.level_for(ROOT)
        try:
            records = self.store.query("""
                SELECT req.up
                FROM {table} ref
                JOIN {table} req ON req.t = ref.id
                WHERE ref.t = ? AND ref.up = 0
            """, [row_id], operation="grant_1_level", target=row_id)
        except StorageFailure as e:
            logging.error(f"Listing grant for {row_id} failed closed: {e}")
            return None
        for (owner,) in records:
            if self.rules.has(owner):
                return GrantLevel.READ
        return None

    def can_export(self, row_id: int = ROOT) -> bool:
        return self.is_admin or self.rules.can_export(row_id)

    def can_delete(self, row_id: int) -> bool:
        """Deletion needs a DELETE sub-grant on the row or on its type."""
        if self.is_admin or self.rules.can_delete(row_id):
            return True
        try:
            row = self.store.get(row_id)
        except StorageFailure as e:
            logging.error(f"Delete grant for {row_id} failed closed: {e}")
            return False
        return row is not None and self.rules.can_delete(row.t)

    def masks_for(self, type_id: int) -> List[str]:
        """Value patterns restricting which instances of a type are visible."""
        if self.is_admin:
            return []
        return self.rules.masks_for(type_id)
