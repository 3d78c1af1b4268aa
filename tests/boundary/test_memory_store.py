"""
Test suite for MemoryStoreService.

Tests the development store directly: itemized batch errors, id
generation, transaction rollback, and query selection and windowing.
"""

import pytest

from entitystore.boundary.store.memory_store import MemoryStoreService
from entitystore.boundary.store.service import StoreService, check_key
from entitystore.core.entity import Entity
from entitystore.core.exceptions import (
    Done,
    FieldMismatchError,
    InvalidEntityTypeError,
    InvalidKeyError,
    MultiError,
    NoSuchEntityError,
    StoreServiceError,
    TransactionError,
)
from entitystore.core.keys import Key
from entitystore.models.query import Cursor, Query


class Note(Entity):
    id: int | None = None
    text: str = ""
    rank: int = 0


class Draft(Entity):
    kind_name = "Note"

    id: int | None = None
    text: str = ""


class TestMemoryBatch:
    """Test suite for batch primitives."""

    def test_store_should_satisfy_protocol(self, memory_store: MemoryStoreService) -> None:
        """Test the store is usable wherever a StoreService is expected."""
        assert isinstance(memory_store, StoreService)

    def test_put_multi_should_generate_distinct_ids(
        self, memory_store: MemoryStoreService
    ) -> None:
        """Test incomplete keys get unique ids."""
        # Act
        keys = memory_store.put_multi([Key("Note"), Key("Note")], [Note(), Note()])

        # Assert
        assert all(not k.incomplete for k in keys)
        assert keys[0] != keys[1]
        assert len(memory_store) == 2

    def test_put_multi_should_itemize_invalid_items(
        self, memory_store: MemoryStoreService
    ) -> None:
        """Test bad items fail alone while the rest are stored."""
        # Arrange
        keys = [Key("Note", id=1), Key("Note", id=2)]

        # Act
        with pytest.raises(MultiError) as exc_info:
            memory_store.put_multi(keys, [Note(text="ok"), object()])

        # Assert
        assert exc_info.value[0] is None
        assert isinstance(exc_info.value[1], InvalidEntityTypeError)
        assert exc_info.value.keys == keys
        assert len(memory_store) == 1

    def test_put_multi_should_reject_length_mismatch(
        self, memory_store: MemoryStoreService
    ) -> None:
        """Test keys and entities must line up."""
        with pytest.raises(StoreServiceError):
            memory_store.put_multi([Key("Note", id=1)], [])

    def test_get_multi_should_report_missing_and_mismatch(
        self, memory_store: MemoryStoreService
    ) -> None:
        """Test each slot reports its own failure."""
        # Arrange
        memory_store.put_multi([Key("Note", id=1)], [Note(text="a", rank=3)])
        drafts = [Draft(), Draft()]

        # Act
        with pytest.raises(MultiError) as exc_info:
            memory_store.get_multi([Key("Note", id=1), Key("Note", id=2)], drafts)

        # Assert
        assert isinstance(exc_info.value[0], FieldMismatchError)
        assert exc_info.value[0].field_name == "rank"
        assert isinstance(exc_info.value[1], NoSuchEntityError)
        assert drafts[0].text == "a"

    def test_get_multi_should_return_copies(self, memory_store: MemoryStoreService) -> None:
        """Test loaded entities do not alias stored records."""
        # Arrange
        memory_store.put_multi([Key("Note", id=1)], [Note(text="a")])
        first, second = Note(), Note()
        memory_store.get_multi([Key("Note", id=1)], [first])

        # Act
        first.text = "changed"
        memory_store.get_multi([Key("Note", id=1)], [second])

        # Assert
        assert second.text == "a"

    def test_delete_multi_should_ignore_missing_keys(
        self, memory_store: MemoryStoreService
    ) -> None:
        """Test deleting an absent entity succeeds."""
        memory_store.delete_multi([Key("Note", id=404)])

    def test_delete_multi_should_reject_incomplete_key(
        self, memory_store: MemoryStoreService
    ) -> None:
        """Test incomplete keys fail per item."""
        with pytest.raises(MultiError) as exc_info:
            memory_store.delete_multi([Key("Note")])

        assert isinstance(exc_info.value[0], InvalidKeyError)


class TestCheckKey:
    """Test suite for check_key()."""

    @pytest.mark.parametrize(
        "key",
        [
            Key(""),
            Key("Note", id=1, parent=Key("Book")),
            Key("Note", id=1, parent=Key("Book", id=1, namespace="a"), namespace="b"),
        ],
    )
    def test_check_key_should_flag_unaddressable_keys(self, key: Key) -> None:
        """Test malformed keys are reported."""
        assert isinstance(check_key(key), InvalidKeyError)

    def test_check_key_should_accept_valid_key(self) -> None:
        """Test a well-formed key passes."""
        assert check_key(Key("Note", id=1, parent=Key("Book", name="b"))) is None


class TestMemoryTransaction:
    """Test suite for run_in_transaction()."""

    def test_transaction_should_restore_records_on_error(
        self, memory_store: MemoryStoreService
    ) -> None:
        """Test a failed transaction leaves no trace."""
        # Arrange
        memory_store.put_multi([Key("Note", id=1)], [Note(text="a")])

        def body(tx) -> None:
            tx.put_multi([Key("Note", id=2)], [Note()])
            tx.delete_multi([Key("Note", id=1)])
            raise ValueError("abort")

        # Act
        with pytest.raises(ValueError):
            memory_store.run_in_transaction(body)

        # Assert
        assert len(memory_store) == 1
        note = Note()
        memory_store.get_multi([Key("Note", id=1)], [note])
        assert note.text == "a"

    def test_transaction_should_close_after_return(
        self, memory_store: MemoryStoreService
    ) -> None:
        """Test a leaked transaction handle cannot be reused."""
        # Act
        tx = memory_store.run_in_transaction(lambda tx: tx)

        # Assert
        with pytest.raises(TransactionError):
            tx.delete_multi([Key("Note", id=1)])

    def test_transaction_should_reject_direct_calls_on_its_thread(
        self, memory_store: MemoryStoreService
    ) -> None:
        """Test store calls that bypass the handle fail instead of blocking."""
        # Arrange
        def body(tx) -> None:
            tx.put_multi([Key("Note", id=1)], [Note()])
            memory_store.put_multi([Key("Note", id=2)], [Note()])

        # Act
        with pytest.raises(TransactionError):
            memory_store.run_in_transaction(body)

        # Assert
        assert len(memory_store) == 0

    def test_transaction_should_reject_nesting(self, memory_store: MemoryStoreService) -> None:
        """Test a transaction cannot be opened inside another."""
        with pytest.raises(TransactionError):
            memory_store.run_in_transaction(
                lambda tx: memory_store.run_in_transaction(lambda inner: None)
            )


class TestMemoryQueries:
    """Test suite for count() and run_query()."""

    @pytest.fixture
    def notes(self, memory_store: MemoryStoreService) -> list[Key]:
        keys = [Key("Note", id=i) for i in range(1, 6)]
        memory_store.put_multi(keys, [Note(text=f"n{i}", rank=i % 3) for i in range(1, 6)])
        memory_store.put_multi([Key("Other", id=1)], [Note()])
        return keys

    def test_run_query_should_select_kind_in_insertion_order(
        self, memory_store: MemoryStoreService, notes: list[Key]
    ) -> None:
        """Test unordered queries keep storage order."""
        # Act
        cursor = memory_store.run_query(Query(kind="Note"))
        keys = []
        with pytest.raises(Done):
            while True:
                keys.append(cursor.next()[0])

        # Assert
        assert keys == notes

    def test_run_query_should_sort_by_multiple_orders(
        self, memory_store: MemoryStoreService, notes: list[Key]
    ) -> None:
        """Test later orders break ties of earlier ones."""
        # Arrange
        query = Query(kind="Note").order("rank").order("-text")

        # Act
        cursor = memory_store.run_query(query)
        ranks_and_texts = [
            (props["rank"], props["text"]) for _, props in (cursor.next() for _ in range(5))
        ]

        # Assert
        assert ranks_and_texts == [(0, "n3"), (1, "n4"), (1, "n1"), (2, "n5"), (2, "n2")]

    def test_run_query_should_return_no_properties_when_keys_only(
        self, memory_store: MemoryStoreService, notes: list[Key]
    ) -> None:
        """Test keys-only queries omit properties."""
        key, properties = memory_store.run_query(Query(kind="Note").keys_only()).next()

        assert key == notes[0]
        assert properties is None

    def test_count_should_apply_offset_and_limit(
        self, memory_store: MemoryStoreService, notes: list[Key]
    ) -> None:
        """Test count reflects the query window."""
        assert memory_store.count(Query(kind="Note").with_offset(1).with_limit(3)) == 3
        assert memory_store.count(Query(kind="Note").with_offset(4).with_limit(3)) == 1
        assert memory_store.count(Query(kind="Note").filter("rank", "in", [0, 2])) == 3

    def test_cursor_should_resume_after_offset(
        self, memory_store: MemoryStoreService, notes: list[Key]
    ) -> None:
        """Test a cursor taken mid-stream resumes at the next result."""
        # Arrange
        cursor = memory_store.run_query(Query(kind="Note").with_offset(1))
        cursor.next()
        position = cursor.cursor()

        # Act
        resumed = memory_store.run_query(Query(kind="Note").start_at(position)).next()

        # Assert
        assert resumed[0] == notes[2]

    def test_run_query_should_reject_invalid_cursor(
        self, memory_store: MemoryStoreService, notes: list[Key]
    ) -> None:
        """Test unreadable cursors are store errors."""
        with pytest.raises(StoreServiceError):
            memory_store.run_query(Query(kind="Note").start_at(Cursor(value="abc")))

    def test_run_query_should_reject_unorderable_values(
        self, memory_store: MemoryStoreService
    ) -> None:
        """Test ordering mixed value types fails."""
        # Arrange
        memory_store.put_multi(
            [Key("Mixed", id=1), Key("Mixed", id=2)],
            [Note(text="a"), Note(text="b")],
        )
        memory_store._records[Key("Mixed", id=2)]["rank"] = "high"

        # Act & Assert
        with pytest.raises(StoreServiceError):
            memory_store.run_query(Query(kind="Mixed").order("rank"))
