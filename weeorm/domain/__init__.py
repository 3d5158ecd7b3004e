"""
Domain package for weeorm.

Exports the Active Record base class and the relation resolvers.
"""

from weeorm.domain.model import Model, ModelOptions, RecordState
from weeorm.domain.relations import (
    BelongsTo,
    HasMany,
    HasOne,
    Relation,
    RelationDescriptor,
    RelationKind,
    relation,
)

__all__ = [
    "Model",
    "ModelOptions",
    "RecordState",
    "BelongsTo",
    "HasMany",
    "HasOne",
    "Relation",
    "RelationDescriptor",
    "RelationKind",
    "relation",
]
