"""
Relation resolvers and the ``relation`` accessor decorator.

A resolver pairs an owning record with a related model type and a key pair,
and knows how to issue its fetching query through the related type's query
builder. Resolvers are built on demand by accessor methods declared with
``@relation``; the owning record caches each resolved value on itself.

    class User(Model):
        @relation
        def posts(self):
            return self.has_many(Post)

    user.posts      # one query, then served from user's relation cache
"""

from __future__ import annotations

import abc
import enum
import functools
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Type

from pydantic import BaseModel

from weeorm.query.grammar import validate_identifier

if TYPE_CHECKING:
    from weeorm.domain.model import Model
    from weeorm.query.builder import QueryBuilder


class RelationKind(str, enum.Enum):
    HAS_ONE = "HasOne"
    HAS_MANY = "HasMany"
    BELONGS_TO = "BelongsTo"


class RelationDescriptor(BaseModel):
    """Immutable description of how to fetch associated records."""

    kind: RelationKind
    related: type
    foreign_key: str
    local_key: str

    model_config = {"frozen": True}


def default_foreign_key(model: Type["Model"]) -> str:
    """``User`` -> ``user_id``."""
    return f"{model.__name__.lower()}_id"


class Relation(abc.ABC):
    """
    Base resolver. ``local_key`` is the owner key for BelongsTo.
    """

    kind: RelationKind

    def __init__(
        self,
        parent: "Model",
        related: Type["Model"],
        foreign_key: str,
        local_key: str,
    ) -> None:
        self.parent = parent
        self.descriptor = RelationDescriptor(
            kind=self.kind,
            related=related,
            foreign_key=validate_identifier(foreign_key),
            local_key=validate_identifier(local_key),
        )

    @property
    def related(self) -> Type["Model"]:
        return self.descriptor.related

    @property
    def foreign_key(self) -> str:
        return self.descriptor.foreign_key

    @property
    def local_key(self) -> str:
        return self.descriptor.local_key

    def related_query(self) -> "QueryBuilder":
        """Soft-delete-scoped query on the related type, on the owner's connection."""
        return self.related.query(connection=self.parent.pinned_connection())

    @abc.abstractmethod
    def get(self) -> Any:
        """Issue the fetching query and return the resolved value."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return (
            f"<{self.kind.value} {type(self.parent).__name__} -> {self.related.__name__} "
            f"fk={self.foreign_key} key={self.local_key}>"
        )


class HasOne(Relation):
    kind = RelationKind.HAS_ONE

    def get(self) -> Optional["Model"]:
        key = self.parent.get_attribute(self.local_key)
        if key is None:
            return None
        return self.related_query().where(self.foreign_key, key).first()


class HasMany(Relation):
    kind = RelationKind.HAS_MANY

    def get(self) -> List["Model"]:
        key = self.parent.get_attribute(self.local_key)
        if key is None:
            return []
        return self.related_query().where(self.foreign_key, key).get()


class BelongsTo(Relation):
    kind = RelationKind.BELONGS_TO

    def get(self) -> Optional["Model"]:
        key = self.parent.get_attribute(self.foreign_key)
        if key is None:
            return None
        if self.local_key == self.related.primary_key_name():
            return self.related.find(key, connection=self.parent.pinned_connection())
        return self.related_query().where(self.local_key, key).first()


class relation:
    """
    Declare a relation accessor on a Model subclass.

    The decorated method must return a Relation (usually via ``has_one``,
    ``has_many`` or ``belongs_to``). Reading the attribute on an instance
    returns the resolved, cached value; a stored column with the same name
    takes precedence.
    """

    def __init__(self, method: Callable[[Any], Relation]) -> None:
        self.method = method
        self.name = method.__name__
        functools.update_wrapper(self, method)

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Optional["Model"], owner: Optional[type] = None) -> Any:
        if instance is None:
            return self
        return instance.get_attribute(self.name)

    def resolver(self, instance: "Model") -> Relation:
        result = self.method(instance)
        if not isinstance(result, Relation):
            raise TypeError(
                f"Relation accessor {self.name!r} must return a Relation, "
                f"got {type(result).__name__}"
            )
        return result


__all__ = [
    "BelongsTo",
    "HasMany",
    "HasOne",
    "Relation",
    "RelationDescriptor",
    "RelationKind",
    "default_foreign_key",
    "relation",
]
