"""
Loading and writing a role's access rules.

Rules are rows too: each role has ROLE_OBJECT children whose value names the
target (an object or a type). Below each sits a row typed by a LEVEL instance
(READ or WRITE) and optional MASK, EXPORT and DELETE rows.
"""

import logging
from typing import Optional

from ..constants import ROOT, USER, ROLE, LEVEL, MASK, EXPORT, DELETE, ROLE_OBJECT
from ..database import RelationStore
from ..errors import InvalidArgument, NotFound
from ..models import GrantLevel, Principal, RuleMap


def load_rules(store: RelationStore, role_id: Optional[int]) -> RuleMap:
    """
    Build the rule map for a role.

    Args:
        store: Relation store
        role_id: Role whose rules are loaded; None yields an empty map

    Returns:
        RuleMap keyed by target id
    """
    rules = RuleMap()
    if role_id is None:
        return rules

    records = store.query(f"""
        SELECT gr.val, COALESCE(def.val, ''), mask.val, exp.val, del.val
        FROM {{table}} gr
        LEFT JOIN (
            SELECT lev.up AS owner, def.val AS val
            FROM {{table}} lev
            JOIN {{table}} def ON def.id = lev.t AND def.t = {LEVEL}
        ) def ON def.owner = gr.id
        LEFT JOIN {{table}} mask ON mask.up = gr.id AND mask.t = {MASK}
        LEFT JOIN {{table}} exp ON exp.up = gr.id AND exp.t = {EXPORT}
        LEFT JOIN {{table}} del ON del.up = gr.id AND del.t = {DELETE}
        WHERE gr.up = ? AND gr.t = {ROLE_OBJECT}
        ORDER BY gr.ord, gr.id
    """, [role_id], operation="load_rules", target=role_id)

    for target, level, mask, export, delete in records:
        target = (target or "").strip()
        if not target.isdigit():
            logging.warning(f"Role {role_id} has a rule on non-id target {target!r}; ignored")
            continue
        key = int(target)
        grant = GrantLevel(level) if level in ("READ", "WRITE") else None
        if grant is not None:
            rules.levels[key] = grant
        if mask:
            rules.masks.setdefault(key, {})[mask] = grant or GrantLevel.READ
        if export:
            rules.export.add(key)
        if delete:
            rules.delete.add(key)

    logging.debug(f"Loaded {len(rules.levels)} rules for role {role_id}")
    return rules


def level_row(store: RelationStore, level: GrantLevel) -> int:
    """Return the id of the LEVEL instance for a grant level."""
    for row in store.children(ROOT, LEVEL):
        if row.val == GrantLevel(level).value:
            return row.id
    raise NotFound("level", GrantLevel(level).value)


def write_rule(store: RelationStore, role_id: int, target_id: int, level: GrantLevel,
               mask: Optional[str] = None, export: bool = False, delete: bool = False) -> int:
    """
    Create or replace a role's rule on a target.

    Args:
        store: Relation store
        role_id: Role receiving the rule
        target_id: Object or type the rule applies to
        level: READ or WRITE
        mask: Optional value pattern restricting visible instances
        export: Grant export of the target
        delete: Grant deletion of the target

    Returns:
        Id of the ROLE_OBJECT row
    """
    role = store.get(role_id)
    if role is None or role.t != ROLE:
        raise NotFound("role", role_id)
    level_id = level_row(store, level)

    with store.transaction():
        stale = []
        for existing in store.children(role_id, ROLE_OBJECT):
            if existing.val == str(target_id):
                rule_id = existing.id
                stale = store.children(rule_id)
                break
        else:
            rule_id = store.insert(role_id, store.next_order(role_id, ROLE_OBJECT), ROLE_OBJECT, str(target_id))

        # new rows first: ids of rows deleted in this transaction are not reused
        store.insert(rule_id, 1, level_id, "")
        if mask:
            store.insert(rule_id, 1, MASK, mask)
        if export:
            store.insert(rule_id, 1, EXPORT, "1")
        if delete:
            store.insert(rule_id, 1, DELETE, "1")
        for row in stale:
            store.delete(row.id)

    logging.info(f"Role {role_id}: {GrantLevel(level).value} on {target_id}")
    return rule_id


def assign_role(store: RelationStore, user_id: int, role_id: int) -> int:
    """Link a user to a role, replacing any previous role link."""
    user = store.get(user_id)
    if user is None or user.t != USER:
        raise NotFound("user", user_id)
    role = store.get(role_id)
    if role is None or role.t != ROLE:
        raise InvalidArgument(f"{role_id} is not a role")

    with store.transaction():
        link_id = store.insert(user_id, store.next_order(user_id), role_id, "")
        for child in store.children(user_id):
            linked = store.get(child.t)
            if child.id != link_id and linked is not None and linked.t == ROLE:
                store.delete(child.id)
        return link_id


def principal_for_user(store: RelationStore, user_id: int) -> Principal:
    """
    Build the principal for a user row.

    Args:
        store: Relation store
        user_id: Identity of a USER instance

    Returns:
        Principal with the user's name and role
    """
    user = store.get(user_id)
    if user is None or user.t != USER:
        raise NotFound("user", user_id)
    role_id = None
    for child in store.children(user_id):
        linked = store.get(child.t)
        if linked is not None and linked.t == ROLE:
            role_id = linked.id
            break
    return Principal(username=user.val, user_id=user.id, role_id=role_id)
