"""
Active Record base class.

A Model subclass describes one table; an instance represents one row. The
instance holds the attribute mapping, enforces the fillable/guarded policy on
writes, persists itself through the query builder, dispatches lifecycle hooks
and resolves declared relations lazily, caching each on the instance.

    class User(Model):
        class Meta:
            table = "users"
            fillable = ("name", "email")

        @relation
        def posts(self):
            return self.has_many(Post)

    with use_connection(conn):
        user = User.create({"name": "a", "email": "a@example.com"})
        user.update({"name": "b"})
        user.posts

Lifecycle: Unsaved -> Persisted on the first ``save()`` (INSERT); Persisted ->
Persisted on later saves (UPDATE); ``delete()`` moves to SoftDeleted when the
type uses soft deletes and to Removed otherwise; ``force_delete()`` always
removes the row. Removed is terminal.
"""

from __future__ import annotations

import enum
import functools
import json
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Type

from weeorm.domain.relations import (
    BelongsTo,
    HasMany,
    HasOne,
    default_foreign_key,
    relation,
)
from weeorm.errors import RecordStateError
from weeorm.infrastructure.connection import Connection, Row
from weeorm.infrastructure.session import current_connection
from weeorm.query.builder import QueryBuilder
from weeorm.query.grammar import validate_identifier
from weeorm.utils.logging import get_logger

log = get_logger(__name__)

_EVENTS = (
    "saving",
    "creating",
    "created",
    "updating",
    "updated",
    "saved",
    "deleting",
    "deleted",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_table_name(model: type) -> str:
    """``User`` -> ``users``."""
    return f"{model.__name__.lower()}s"


class RecordState(str, enum.Enum):
    UNSAVED = "unsaved"
    PERSISTED = "persisted"
    SOFT_DELETED = "soft_deleted"
    REMOVED = "removed"


class ModelOptions:
    """
    Per-type configuration collected from a model's inner ``Meta`` class.

    Options not declared on ``Meta`` are inherited from the parent model's
    options, except ``table``, which defaults to ``default_table_name``.
    """

    def __init__(self, model: type, meta: Optional[type], parent: Optional["ModelOptions"]) -> None:
        def option(name: str, default: Any) -> Any:
            if meta is not None and hasattr(meta, name):
                return getattr(meta, name)
            if parent is not None:
                return getattr(parent, name)
            return default

        self.model_name = model.__name__
        self.table = validate_identifier(
            getattr(meta, "table", None) or default_table_name(model)
        )
        self.primary_key = validate_identifier(option("primary_key", "id"))
        self.fillable: Tuple[str, ...] = tuple(option("fillable", ()))
        if meta is not None and hasattr(meta, "primary_key") and not hasattr(meta, "guarded"):
            # a redeclared key is guarded in place of the inherited one
            guarded = (self.primary_key,)
        else:
            guarded = option("guarded", (self.primary_key,))
        self.guarded: Tuple[str, ...] = tuple(guarded)
        self.timestamps: bool = bool(option("timestamps", True))
        self.soft_deletes: bool = bool(option("soft_deletes", False))
        self.created_at = validate_identifier(option("created_at", "created_at"))
        self.updated_at = validate_identifier(option("updated_at", "updated_at"))
        self.deleted_at = validate_identifier(option("deleted_at", "deleted_at"))

        self.relations: Dict[str, relation] = dict(parent.relations) if parent else {}
        for attr_name, attr_value in vars(model).items():
            if isinstance(attr_value, relation):
                self.relations[attr_name] = attr_value

    @property
    def managed_columns(self) -> Tuple[str, ...]:
        """Columns the model writes itself, persisted regardless of the fillable list."""
        columns: Tuple[str, ...] = ()
        if self.timestamps:
            columns += (self.created_at, self.updated_at)
        if self.soft_deletes:
            columns += (self.deleted_at,)
        return columns

    def __repr__(self) -> str:
        return f"<ModelOptions {self.model_name} table={self.table}>"


class Model:
    """
    Base class for all records.

    Configure a subclass with an inner ``Meta`` class (``table``,
    ``primary_key``, ``fillable``, ``guarded``, ``timestamps``,
    ``soft_deletes``, and the ``created_at``/``updated_at``/``deleted_at``
    column names). Override any ``on_<event>`` hook to react to the
    lifecycle.

    Column values are read as attributes (``user.name``, absent columns read
    as None) or by key (``user["name"]``). Assignments go through the fillable
    policy; ``force_fill`` bypasses it.
    """

    _meta: ClassVar[ModelOptions]

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        parent = getattr(super(cls, cls), "_meta", None)
        cls._meta = ModelOptions(cls, cls.__dict__.get("Meta"), parent)

    def __init__(
        self,
        attributes: Optional[Mapping[str, Any]] = None,
        *,
        connection: Optional[Connection] = None,
        **columns: Any,
    ) -> None:
        self._init_state(connection)
        self.fill({**(attributes or {}), **columns})

    def _init_state(self, connection: Optional[Connection]) -> None:
        self._attributes: Dict[str, Any] = {}
        self._original: Dict[str, Any] = {}
        self._exists = False
        self._removed = False
        self._relations: Dict[str, Any] = {}
        self._connection = connection

    # Connections and queries

    @classmethod
    def primary_key_name(cls) -> str:
        return cls._meta.primary_key

    @classmethod
    def table_name(cls) -> str:
        return cls._meta.table

    def pinned_connection(self) -> Optional[Connection]:
        """The connection this record was created or hydrated with, if any."""
        return self._connection

    def _resolve_connection(self) -> Connection:
        return self._connection or current_connection()

    @classmethod
    def query(cls, connection: Optional[Connection] = None, *, with_trashed: bool = False) -> QueryBuilder:
        """
        Return a builder on this type's table that hydrates rows into records.

        Soft-deleted rows are excluded unless ``with_trashed`` is set.
        """
        conn = connection or current_connection()
        builder = conn.table(
            cls._meta.table,
            primary_key=cls._meta.primary_key,
            hydrate=functools.partial(cls.hydrate, connection=connection),
        )
        if cls._meta.soft_deletes and not with_trashed:
            builder.where_null(cls._meta.deleted_at)
        return builder

    @classmethod
    def all(cls, connection: Optional[Connection] = None) -> List["Model"]:
        return cls.query(connection).get()

    @classmethod
    def find(cls, id: Any, connection: Optional[Connection] = None) -> Optional["Model"]:
        return cls.query(connection).where(cls._meta.primary_key, id).first()

    @classmethod
    def where(cls, column: str, *args: Any, connection: Optional[Connection] = None) -> QueryBuilder:
        """``User.where("name", "a")`` or ``User.where("age", ">", 18)``, ready to chain."""
        return cls.query(connection).where(column, *args)

    @classmethod
    def with_trashed(cls, connection: Optional[Connection] = None) -> QueryBuilder:
        return cls.query(connection, with_trashed=True)

    @classmethod
    def only_trashed(cls, connection: Optional[Connection] = None) -> QueryBuilder:
        if not cls._meta.soft_deletes:
            raise TypeError(f"{cls.__name__} does not use soft deletes")
        return cls.query(connection, with_trashed=True).where_not_null(cls._meta.deleted_at)

    @classmethod
    def create(
        cls,
        attributes: Optional[Mapping[str, Any]] = None,
        *,
        connection: Optional[Connection] = None,
        **columns: Any,
    ) -> "Model":
        record = cls(attributes, connection=connection, **columns)
        return record.save()

    @classmethod
    def hydrate(cls, row: Row, connection: Optional[Connection] = None) -> "Model":
        """Build a persisted record from a trusted row, bypassing the fillable policy."""
        record = cls.__new__(cls)
        record._init_state(connection)
        record._attributes = dict(row)
        record._original = dict(row)
        record._exists = True
        return record

    # Attribute policy

    @classmethod
    def is_fillable(cls, key: str) -> bool:
        meta = cls._meta
        if key in meta.guarded:
            return False
        if not meta.fillable:
            return True
        return key in meta.fillable

    @classmethod
    def partition_fillable(cls, attributes: Mapping[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
        """Split ``attributes`` into the accepted mapping and the rejected keys."""
        accepted: Dict[str, Any] = {}
        rejected: List[str] = []
        for key, value in attributes.items():
            if cls.is_fillable(key):
                accepted[key] = value
            else:
                rejected.append(key)
        return accepted, rejected

    def fill(self, attributes: Mapping[str, Any]) -> "Model":
        """Bulk-assign ``attributes``; keys the policy rejects are silently dropped."""
        accepted, rejected = self.partition_fillable(attributes)
        self._attributes.update(accepted)
        if rejected:
            log.debug(
                f"Ignored non-fillable attributes on {type(self).__name__}: {rejected}",
                extra={"model": type(self).__name__, "rejected": rejected},
            )
        return self

    def force_fill(self, attributes: Mapping[str, Any]) -> "Model":
        self._attributes.update(attributes)
        return self

    def get_attribute(self, key: str) -> Any:
        """
        Stored column value, else the resolved relation of that name, else None.
        """
        if key in self._attributes:
            return self._attributes[key]
        if key in self._meta.relations:
            return self.resolve_relation(key)
        return None

    # Persistence

    @classmethod
    def fresh_timestamp(cls) -> str:
        return _utcnow().strftime("%Y-%m-%d %H:%M:%S.%f")

    @property
    def exists(self) -> bool:
        return self._exists

    @property
    def record_state(self) -> RecordState:
        if self._removed:
            return RecordState.REMOVED
        if not self._exists:
            return RecordState.UNSAVED
        if self.trashed():
            return RecordState.SOFT_DELETED
        return RecordState.PERSISTED

    def trashed(self) -> bool:
        return self._meta.soft_deletes and self._attributes.get(self._meta.deleted_at) is not None

    def save(self) -> "Model":
        """
        INSERT an unsaved record or UPDATE a persisted one, firing hooks in order:
        saving, creating/updating, created/updated, saved.

        Raises
        ------
        RecordStateError
            If the row was already removed.
        """
        if self._removed:
            raise RecordStateError(f"Cannot save a removed {type(self).__name__} record")
        meta = self._meta
        if meta.timestamps:
            now = self.fresh_timestamp()
            if not self._exists:
                self._attributes[meta.created_at] = now
            self._attributes[meta.updated_at] = now

        self._fire_event("saving")
        if self._exists:
            self._fire_event("updating")
            self._perform_update()
            self._fire_event("updated")
        else:
            self._fire_event("creating")
            self._perform_insert()
            self._fire_event("created")
        self._fire_event("saved")

        self._original = dict(self._attributes)
        self._exists = True
        return self

    def update(self, attributes: Mapping[str, Any]) -> "Model":
        return self.fill(attributes).save()

    def delete(self) -> bool:
        """
        Soft-delete (stamp ``deleted_at`` and save) or hard-delete the row.

        Returns False without touching the database when the record was never
        persisted, is already soft-deleted, or was removed.
        """
        if not self._exists or self.trashed():
            return False
        self._fire_event("deleting")
        if self._meta.soft_deletes:
            self._attributes[self._meta.deleted_at] = self.fresh_timestamp()
            self.save()
        else:
            self._perform_delete()
        self._fire_event("deleted")
        return True

    def force_delete(self) -> bool:
        """Remove the row regardless of soft-delete configuration."""
        if not self._exists:
            return False
        self._perform_delete()
        return True

    def _table_query(self) -> QueryBuilder:
        return self._resolve_connection().table(self._meta.table, primary_key=self._meta.primary_key)

    def _persistable_attributes(self) -> Dict[str, Any]:
        managed = self._meta.managed_columns
        return {
            key: value
            for key, value in self._attributes.items()
            if key in managed or self.is_fillable(key)
        }

    def _key_for_write(self) -> Any:
        key = self._attributes.get(self._meta.primary_key)
        if key is None:
            raise RecordStateError(
                f"{type(self).__name__} has no {self._meta.primary_key!r} value to address its row"
            )
        return key

    def _perform_insert(self) -> None:
        pk = self._meta.primary_key
        data = self._persistable_attributes()
        supplied = self._attributes.get(pk) is not None
        if supplied:
            data = {pk: self._attributes[pk], **data}
        generated = self._table_query().insert(data, return_key=not supplied)
        if not supplied:
            self._attributes[pk] = generated
        log.debug(
            f"Inserted {type(self).__name__} {pk}={self._attributes[pk]}",
            extra={"model": type(self).__name__, "table": self._meta.table},
        )

    def _perform_update(self) -> None:
        pk = self._meta.primary_key
        key = self._key_for_write()
        data = self._persistable_attributes()
        data.pop(pk, None)
        if not data:
            log.debug(f"Nothing to update on {type(self).__name__} {pk}={key}")
            return
        self._table_query().where(pk, key).update(data)

    def _perform_delete(self) -> None:
        key = self._key_for_write()
        self._table_query().where(self._meta.primary_key, key).delete()
        self._exists = False
        self._removed = True

    # Hooks

    def _fire_event(self, event: str) -> None:
        log.debug(
            f"[{event}] {type(self).__name__}",
            extra={"model": type(self).__name__, "event": event},
        )
        getattr(self, f"on_{event}")()

    def on_saving(self) -> None:
        pass

    def on_creating(self) -> None:
        pass

    def on_created(self) -> None:
        pass

    def on_updating(self) -> None:
        pass

    def on_updated(self) -> None:
        pass

    def on_saved(self) -> None:
        pass

    def on_deleting(self) -> None:
        pass

    def on_deleted(self) -> None:
        pass

    # Relations

    def has_one(
        self,
        related: Type["Model"],
        foreign_key: Optional[str] = None,
        local_key: Optional[str] = None,
    ) -> HasOne:
        return HasOne(
            self,
            related,
            foreign_key or default_foreign_key(type(self)),
            local_key or self._meta.primary_key,
        )

    def has_many(
        self,
        related: Type["Model"],
        foreign_key: Optional[str] = None,
        local_key: Optional[str] = None,
    ) -> HasMany:
        return HasMany(
            self,
            related,
            foreign_key or default_foreign_key(type(self)),
            local_key or self._meta.primary_key,
        )

    def belongs_to(
        self,
        related: Type["Model"],
        foreign_key: Optional[str] = None,
        owner_key: Optional[str] = None,
    ) -> BelongsTo:
        return BelongsTo(
            self,
            related,
            foreign_key or default_foreign_key(related),
            owner_key or related.primary_key_name(),
        )

    def relation_resolver(self, name: str):
        """Return a fresh resolver for the declared relation ``name``."""
        try:
            accessor = self._meta.relations[name]
        except KeyError:
            raise AttributeError(f"{type(self).__name__} declares no relation {name!r}") from None
        return accessor.resolver(self)

    def resolve_relation(self, name: str) -> Any:
        """Resolve a declared relation once per instance; later reads hit the cache."""
        if name in self._relations:
            return self._relations[name]
        if name not in self._meta.relations:
            return None
        value = self.relation_resolver(name).get()
        self._relations[name] = value
        return value

    def relation_loaded(self, name: str) -> bool:
        return name in self._relations

    def forget_relation(self, name: str) -> None:
        self._relations.pop(name, None)

    def forget_relations(self) -> None:
        self._relations.clear()

    # Serialization and dirty tracking

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._attributes)

    def to_json(self) -> str:
        return json.dumps(self._attributes, default=str)

    def get_original(self) -> Dict[str, Any]:
        return dict(self._original)

    def get_dirty(self) -> Dict[str, Any]:
        return {
            key: value
            for key, value in self._attributes.items()
            if key not in self._original or self._original[key] != value
        }

    def is_dirty(self) -> bool:
        return bool(self.get_dirty())

    # Dynamic attribute access

    def __getattr__(self, key: str) -> Any:
        if key.startswith("_"):
            raise AttributeError(key)
        return self.get_attribute(key)

    def __setattr__(self, key: str, value: Any) -> None:
        if key.startswith("_"):
            object.__setattr__(self, key, value)
            return
        self.fill({key: value})

    def __getitem__(self, key: str) -> Any:
        return self.get_attribute(key)

    def __setitem__(self, key: str, value: Any) -> None:
        self.fill({key: value})

    def __contains__(self, key: object) -> bool:
        return key in self._attributes

    def __repr__(self) -> str:
        return f"<{type(self).__name__}:{self._attributes}>"


__all__ = [
    "Model",
    "ModelOptions",
    "RecordState",
    "default_table_name",
]
