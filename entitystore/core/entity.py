"""
Entity capability interface.

Any type stored through the client implements KeyedEntity: it exposes its
identity and parent, accepts a key stamped back onto it, and converts its
fields to and from a property dictionary. Entity is the pydantic-based
implementation most application models inherit from.

Dependencies: pydantic
System role: Contract between application models and the key resolver
"""

from typing import Any, ClassVar, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from entitystore.core.keys import Key

Identity = str | int | None


@runtime_checkable
class KeyedEntity(Protocol):
    """Capabilities an entity must provide to be stored."""

    def get_identity(self) -> Identity: ...

    def set_identity(self, key: Key) -> None: ...

    def get_parent(self) -> Key | None: ...

    def to_properties(self) -> dict[str, Any]: ...

    def load_properties(self, properties: dict[str, Any]) -> list[tuple[str, str]]: ...


class Entity(BaseModel):
    """
    Base model for stored entities.

    Class variables configure how the key is derived:
        identity_field: Field holding the string name or numeric id
        parent_field: Field holding the parent Key, if any
        kind_name: Kind override; defaults to the resolver's naming

    A string identity of None means "not set" and requests auto-assignment
    on put, while "" is an explicit blank identity and is rejected.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    identity_field: ClassVar[str] = "id"
    parent_field: ClassVar[str | None] = None
    kind_name: ClassVar[str | None] = None

    def get_identity(self) -> Identity:
        return getattr(self, self.identity_field, None)

    def set_identity(self, key: Key) -> None:
        if self.identity_field in type(self).model_fields:
            value = key.name if key.name is not None else key.id
            setattr(self, self.identity_field, value)
        if self.parent_field and key.parent is not None:
            setattr(self, self.parent_field, key.parent)

    def get_parent(self) -> Key | None:
        if not self.parent_field:
            return None
        return getattr(self, self.parent_field, None)

    def _key_fields(self) -> set[str]:
        return {f for f in (self.identity_field, self.parent_field) if f}

    def to_properties(self) -> dict[str, Any]:
        """Dump every field except the key fields."""
        return self.model_dump(exclude=self._key_fields())

    def load_properties(self, properties: dict[str, Any]) -> list[tuple[str, str]]:
        """
        Load stored properties onto this entity.

        Properties without a matching field are skipped and reported, so
        records written by an older model still load.

        Returns:
            list[tuple[str, str]]: (property name, reason) for each skipped property
        """
        fields = type(self).model_fields
        key_fields = self._key_fields()
        mismatches = []
        for name, value in properties.items():
            if name not in fields or name in key_fields:
                mismatches.append((name, "no such struct field"))
                continue
            setattr(self, name, value)
        return mismatches


def new_entity(entity_type: type) -> Any:
    """Allocate a zero-value entity of entity_type for loading into."""
    if isinstance(entity_type, type) and issubclass(entity_type, BaseModel):
        return entity_type.model_construct()
    return entity_type()
