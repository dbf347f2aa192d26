"""
Error types raised by quintet.

Every failure the core surfaces derives from QuintetError so callers can catch
the whole family at the boundary.
"""

from typing import Optional


class QuintetError(Exception):
    """Base class for all quintet errors."""


class NotFound(QuintetError):
    """A referenced row (type, object, report, field) does not exist."""

    def __init__(self, kind: str, identifier):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class InvalidArgument(QuintetError):
    """A caller-supplied value is malformed or violates an invariant."""


class ConflictingReference(QuintetError):
    """Delete blocked because other rows still reference the target."""

    def __init__(self, target: int, count: int):
        self.target = target
        self.count = count
        super().__init__(f"Cannot delete {target}: {count} reference(s) exist")


class AccessDenied(QuintetError):
    """The principal lacks the grant required for an operation."""

    def __init__(self, target: int, level: str, username: Optional[str] = None):
        self.target = target
        self.level = level
        self.username = username
        who = f"user '{username}'" if username else "principal"
        super().__init__(f"{level} access to {target} denied for {who}")


class StorageFailure(QuintetError):
    """
    The relation store failed.

    Carries the operation and target only; the underlying driver message is kept
    on __cause__ and never copied into the public message.
    """

    def __init__(self, operation: str, target=None):
        self.operation = operation
        self.target = target
        where = f" on {target}" if target is not None else ""
        super().__init__(f"Storage failure during {operation}{where}")
