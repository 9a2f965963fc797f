"""
Task hierarchy resolution.
"""
from .closure import DescendantClosureBuilder, VisitedSet
from .flatten import ForestFlattener
from .references import ReferenceResolver
from .resolver import TaskForestResolver
from .roots import RootSelector

__all__ = [
    "DescendantClosureBuilder",
    "VisitedSet",
    "ForestFlattener",
    "ReferenceResolver",
    "TaskForestResolver",
    "RootSelector",
]
