"""Relation storage for quintet."""

from .manager import RelationStore

__all__ = ["RelationStore"]
