"""
quintet: a schema-on-read object graph over one self-describing relation.

Types and the data that conforms to them share the rows {id, up, t, ord, val}.
This package resolves schemas, decides access, runs reports and dumps the
relation in a compact delta-encoded format.
"""

__version__ = "0.1.0"
__author__ = "quintet Project"

# Import main components
from .database import RelationStore
from .schema import SchemaResolver, SchemaEditor
from .grants import GrantResolver
from .reports import ReportCompiler, ReportExecutor, render
from .dump import DumpManager

__all__ = [
    "RelationStore",
    "SchemaResolver",
    "SchemaEditor",
    "GrantResolver",
    "ReportCompiler",
    "ReportExecutor",
    "render",
    "DumpManager"
]
