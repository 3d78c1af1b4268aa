"""
Key resolution for entities.

Derives store keys from entities and stamps keys back onto them. Kind
names come from a pluggable resolver so each client can name kinds its
own way; the process-wide default can be replaced as well.

Dependencies: entitystore.core.entity, entitystore.core.keys
System role: Maps application entities to store keys (no I/O)
"""

from dataclasses import dataclass
from typing import Any, Callable, Sequence

from entitystore.core.entity import KeyedEntity
from entitystore.core.exceptions import (
    EmptyStringIdentityError,
    InvalidShapeError,
    MissingIdentityError,
    NotASequenceError,
)
from entitystore.core.keys import Key

KindNameResolver = Callable[[type], str]


def default_kind_name(entity_type: type) -> str:
    """Use the class's kind_name override, else the class name."""
    return getattr(entity_type, "kind_name", None) or entity_type.__name__


_default_resolver: KindNameResolver = default_kind_name


def get_default_kind_name_resolver() -> KindNameResolver:
    return _default_resolver


def set_default_kind_name_resolver(resolver: KindNameResolver) -> None:
    """Replace the resolver new clients are created with."""
    global _default_resolver
    _default_resolver = resolver


@dataclass(frozen=True)
class ResolvedKey:
    """A derived key plus whether the entity carries a string identity."""

    key: Key
    has_string_id: bool


class KeyResolver:
    """Derives keys from entities using a kind name resolver."""

    def __init__(self, kind_name_resolver: KindNameResolver | None = None) -> None:
        self.kind_name_resolver = kind_name_resolver or get_default_kind_name_resolver()

    def resolve(self, entity: Any) -> ResolvedKey:
        """
        Derive the key of a single entity.

        Args:
            entity: Entity implementing KeyedEntity

        Returns:
            ResolvedKey: Key (possibly incomplete) and string-identity flag

        Raises:
            InvalidShapeError: If entity is not a single addressable record
        """
        if isinstance(entity, type) or not isinstance(entity, KeyedEntity):
            raise InvalidShapeError(
                "expected an entity implementing KeyedEntity",
                value_type=type(entity).__name__,
            )

        identity = entity.get_identity()
        parent = entity.get_parent()
        if parent is not None and not isinstance(parent, Key):
            raise InvalidShapeError(
                "parent must be a Key", value_type=type(parent).__name__
            )
        kind = self.kind_name_resolver(type(entity))
        namespace = parent.namespace if parent is not None else None

        if identity is None:
            return ResolvedKey(Key(kind, parent=parent, namespace=namespace), False)
        if isinstance(identity, str):
            name = identity or None
            return ResolvedKey(
                Key(kind, name=name, parent=parent, namespace=namespace), True
            )
        if isinstance(identity, int) and not isinstance(identity, bool):
            id = identity or None
            return ResolvedKey(
                Key(kind, id=id, parent=parent, namespace=namespace), False
            )
        raise InvalidShapeError(
            "identity must be a str, an int or None",
            value_type=type(identity).__name__,
        )

    def resolve_all(self, entities: Sequence[Any], allow_incomplete: bool) -> list[Key]:
        """
        Derive keys for a batch of entities.

        Args:
            entities: List or tuple of entities of a single type
            allow_incomplete: True for puts, where the store assigns missing ids

        Returns:
            list[Key]: One key per entity, in order

        Raises:
            NotASequenceError: If entities is not a list or tuple
            InvalidShapeError: If the entities are of mixed types
            MissingIdentityError: If a read/delete entity has no identity
            EmptyStringIdentityError: If a put entity has a blank string identity
        """
        if not isinstance(entities, (list, tuple)):
            raise NotASequenceError(type(entities).__name__)

        keys = []
        entity_type = None
        for index, entity in enumerate(entities):
            if entity_type is None:
                entity_type = type(entity)
            elif type(entity) is not entity_type:
                raise InvalidShapeError(
                    f"mixed entity types at index {index}",
                    value_type=type(entity).__name__,
                )
            resolved = self.resolve(entity)
            if resolved.key.incomplete:
                if not allow_incomplete:
                    raise MissingIdentityError(index, entity)
                if resolved.has_string_id:
                    raise EmptyStringIdentityError(index)
            keys.append(resolved.key)
        return keys

    def apply(self, entity: Any, key: Key) -> None:
        """
        Stamp key fields back onto an entity.

        Raises:
            InvalidShapeError: If entity is not a KeyedEntity
        """
        if isinstance(entity, type) or not isinstance(entity, KeyedEntity):
            raise InvalidShapeError(
                "expected an entity implementing KeyedEntity",
                value_type=type(entity).__name__,
            )
        entity.set_identity(key)
