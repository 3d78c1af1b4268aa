"""
Test suite for key resolution and keys.

Tests key derivation from entity identity and parent, batch validation
for put versus read/delete, stamping keys back onto entities, and the
encoded key form.

System role: Verification of entity-to-key mapping
"""

import pytest

from entitystore.core.entity import Entity
from entitystore.core.exceptions import (
    EmptyStringIdentityError,
    InvalidShapeError,
    MissingIdentityError,
    NotASequenceError,
)
from entitystore.core.key_resolver import (
    KeyResolver,
    default_kind_name,
    get_default_kind_name_resolver,
    set_default_kind_name_resolver,
)
from entitystore.core.keys import Key


class User(Entity):
    """Entity with a numeric identity."""

    id: int | None = None
    email: str = ""


class Tag(Entity):
    """Entity with a string identity and a custom kind."""

    kind_name = "tags"
    identity_field = "slug"

    slug: str | None = None
    label: str = ""


class Comment(Entity):
    """Entity stored under a parent key."""

    identity_field = "comment_id"
    parent_field = "post"

    comment_id: int | None = None
    post: Key | None = None
    body: str = ""


@pytest.fixture
def resolver() -> KeyResolver:
    """Provide a resolver with default kind naming."""
    return KeyResolver(default_kind_name)


class TestResolve:
    """Test suite for KeyResolver.resolve()."""

    def test_resolve_should_use_numeric_identity(self, resolver: KeyResolver) -> None:
        """Test an int identity becomes the key id."""
        # Act
        resolved = resolver.resolve(User(id=42))

        # Assert
        assert resolved.key == Key("User", id=42)
        assert not resolved.has_string_id

    def test_resolve_should_use_string_identity_and_kind_override(
        self, resolver: KeyResolver
    ) -> None:
        """Test a str identity becomes the key name under kind_name."""
        # Act
        resolved = resolver.resolve(Tag(slug="python"))

        # Assert
        assert resolved.key == Key("tags", name="python")
        assert resolved.has_string_id

    def test_resolve_should_return_incomplete_key_without_identity(
        self, resolver: KeyResolver
    ) -> None:
        """Test missing and zero identities both mean auto-assign."""
        assert resolver.resolve(User()).key.incomplete
        assert resolver.resolve(User(id=0)).key.incomplete

    def test_resolve_should_flag_explicit_empty_string(self, resolver: KeyResolver) -> None:
        """Test "" yields an incomplete key that remembers it was a string."""
        # Act
        resolved = resolver.resolve(Tag(slug=""))

        # Assert
        assert resolved.key.incomplete
        assert resolved.has_string_id

    def test_resolve_should_include_parent(self, resolver: KeyResolver) -> None:
        """Test the parent field becomes the key's parent."""
        # Arrange
        post = Key("Post", id=7, namespace="blog")

        # Act
        key = resolver.resolve(Comment(comment_id=3, post=post)).key

        # Assert
        assert key.parent == post
        assert key.namespace == "blog"
        assert key.kind == "Comment"

    @pytest.mark.parametrize("value", [{"id": 1}, "User", 5, User])
    def test_resolve_should_reject_non_entities(self, resolver: KeyResolver, value) -> None:
        """Test values without the entity capabilities are rejected."""
        with pytest.raises(InvalidShapeError):
            resolver.resolve(value)

    def test_resolve_should_reject_unsupported_identity_types(
        self, resolver: KeyResolver
    ) -> None:
        """Test identities other than str, int or None are rejected."""
        # Arrange
        user = User()
        user.id = 1.5

        # Act & Assert
        with pytest.raises(InvalidShapeError):
            resolver.resolve(user)

    def test_resolve_should_use_custom_kind_name_resolver(self) -> None:
        """Test a per-resolver naming strategy."""
        # Arrange
        resolver = KeyResolver(lambda cls: cls.__name__.lower() + "s")

        # Act
        key = resolver.resolve(User(id=1)).key

        # Assert
        assert key.kind == "users"


class TestResolveAll:
    """Test suite for KeyResolver.resolve_all()."""

    def test_resolve_all_should_keep_order(self, resolver: KeyResolver) -> None:
        """Test keys line up with their entities."""
        # Act
        keys = resolver.resolve_all([User(id=2), User(id=1)], allow_incomplete=False)

        # Assert
        assert keys == [Key("User", id=2), Key("User", id=1)]

    @pytest.mark.parametrize("value", [User(id=1), "abc", {"a": User(id=1)}, None])
    def test_resolve_all_should_require_a_sequence(self, resolver: KeyResolver, value) -> None:
        """Test non-list inputs are rejected before key derivation."""
        with pytest.raises(NotASequenceError):
            resolver.resolve_all(value, allow_incomplete=True)

    def test_resolve_all_should_reject_mixed_types(self, resolver: KeyResolver) -> None:
        """Test a batch must hold one entity type."""
        with pytest.raises(InvalidShapeError):
            resolver.resolve_all([User(id=1), Tag(slug="x")], allow_incomplete=True)

    def test_resolve_all_should_allow_incomplete_keys_on_put(
        self, resolver: KeyResolver
    ) -> None:
        """Test a put may leave ids to the store."""
        # Act
        keys = resolver.resolve_all([User(), User(id=3)], allow_incomplete=True)

        # Assert
        assert keys[0].incomplete
        assert keys[1] == Key("User", id=3)

    def test_resolve_all_should_reject_empty_string_identity_on_put(
        self, resolver: KeyResolver
    ) -> None:
        """Test an explicit blank name is a caller error."""
        with pytest.raises(EmptyStringIdentityError) as exc_info:
            resolver.resolve_all([Tag(slug="a"), Tag(slug="")], allow_incomplete=True)

        assert exc_info.value.details["index"] == 1

    def test_resolve_all_should_accept_unset_string_identity_on_put(
        self, resolver: KeyResolver
    ) -> None:
        """Test None on a string identity field is not a blank name."""
        # Act
        keys = resolver.resolve_all([Tag(slug=None)], allow_incomplete=True)

        # Assert
        assert keys[0].incomplete

    def test_resolve_all_should_require_identity_on_read(self, resolver: KeyResolver) -> None:
        """Test reads and deletes name the element without a key."""
        with pytest.raises(MissingIdentityError) as exc_info:
            resolver.resolve_all([User(id=1), User()], allow_incomplete=False)

        assert exc_info.value.details["index"] == 1


class TestApply:
    """Test suite for KeyResolver.apply()."""

    def test_apply_should_stamp_id_and_parent(self, resolver: KeyResolver) -> None:
        """Test the inverse of resolve fills identity and parent fields."""
        # Arrange
        comment = Comment(body="hi")
        key = Key("Comment", id=9, parent=Key("Post", id=1))

        # Act
        resolver.apply(comment, key)

        # Assert
        assert comment.comment_id == 9
        assert comment.post == Key("Post", id=1)
        assert resolver.resolve(comment).key == key

    def test_apply_should_stamp_name(self, resolver: KeyResolver) -> None:
        """Test a named key sets a string identity."""
        # Arrange
        tag = Tag()

        # Act
        resolver.apply(tag, Key("tags", name="go"))

        # Assert
        assert tag.slug == "go"

    def test_apply_should_reject_non_entities(self, resolver: KeyResolver) -> None:
        """Test stamping requires the entity capabilities."""
        with pytest.raises(InvalidShapeError):
            resolver.apply(object(), Key("User", id=1))


class TestDefaultKindNameResolver:
    """Test suite for the process-wide default resolver."""

    def test_set_default_should_apply_to_new_resolvers(self) -> None:
        """Test replacing the default affects resolvers created afterwards."""
        # Arrange
        original = get_default_kind_name_resolver()
        set_default_kind_name_resolver(lambda cls: "custom")

        try:
            # Act
            key = KeyResolver().resolve(User(id=1)).key
        finally:
            set_default_kind_name_resolver(original)

        # Assert
        assert key.kind == "custom"
        assert KeyResolver().resolve(User(id=1)).key.kind == "User"


class TestKey:
    """Test suite for Key."""

    def test_key_should_compare_structurally(self) -> None:
        """Test keys with equal parts are equal and hash alike."""
        # Arrange
        a = Key("Comment", id=1, parent=Key("Post", name="p"))
        b = Key("Comment", id=1, parent=Key("Post", name="p"))

        # Assert
        assert a == b
        assert hash(a) == hash(b)

    def test_key_should_be_incomplete_without_identifier(self) -> None:
        """Test completeness depends on a non-blank id or name."""
        assert Key("User").incomplete
        assert not Key("User", id=1).incomplete
        assert not Key("User", name="u").incomplete
        assert Key("User", name="").incomplete

    def test_key_should_round_trip_through_encoding(self) -> None:
        """Test encode/decode preserves parent chain and namespace."""
        # Arrange
        key = Key(
            "Comment", id=5, parent=Key("Post", name="a/b", namespace="ns"), namespace="ns"
        )

        # Act
        decoded = Key.decode(key.encode())

        # Assert
        assert decoded == key

    def test_decode_should_reject_garbage(self) -> None:
        """Test invalid encodings raise ValueError."""
        with pytest.raises(ValueError):
            Key.decode("not-a-key")

    def test_str_should_render_path(self) -> None:
        """Test readable form lists each path element."""
        assert str(Key("Comment", id=5, parent=Key("Post", name="a"))) == "/Post,a/Comment,5"
