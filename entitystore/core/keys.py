"""
Store keys.

A key addresses one entity: its kind, an identifier (numeric id or string
name, or neither for an incomplete key), and an optional parent key that
places the entity in a hierarchical namespace. A blank name is no identifier.

Dependencies: None
System role: Value type shared by the client and store services
"""

import base64
import json
from dataclasses import dataclass, replace
from typing import Any


@dataclass(frozen=True)
class Key:
    """Structured entity key; equality is structural."""

    kind: str
    id: int | None = None
    name: str | None = None
    parent: "Key | None" = None
    namespace: str | None = None

    @property
    def incomplete(self) -> bool:
        """True when the key carries no identifier."""
        return not self.id and not self.name

    def with_id(self, id: int) -> "Key":
        """Return a copy of this key with an assigned numeric id."""
        return replace(self, id=id, name=None)

    def path(self) -> list[list[Any]]:
        """Flatten the key into root-first [kind, id, name] elements."""
        elements = [] if self.parent is None else self.parent.path()
        elements.append([self.kind, self.id, self.name])
        return elements

    def encode(self) -> str:
        """Encode the key as an opaque, URL-safe string."""
        payload = json.dumps(
            {"ns": self.namespace, "path": self.path()},
            separators=(",", ":"),
        )
        return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii").rstrip("=")

    @classmethod
    def decode(cls, encoded: str) -> "Key":
        """
        Decode a key produced by encode().

        Raises:
            ValueError: If the string is not an encoded key
        """
        padded = encoded + "=" * (-len(encoded) % 4)
        try:
            payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
            namespace = payload["ns"]
            path = payload["path"]
        except (ValueError, KeyError, TypeError) as e:
            raise ValueError(f"invalid encoded key: {encoded!r}") from e
        if not path:
            raise ValueError(f"invalid encoded key: {encoded!r}")

        key = None
        for kind, id, name in path:
            key = cls(kind=kind, id=id, name=name, parent=key, namespace=namespace)
        return key

    def __str__(self) -> str:
        parts = []
        for kind, id, name in self.path():
            ident = name if name is not None else (id or "")
            parts.append(f"{kind},{ident}")
        return "/" + "/".join(parts)
