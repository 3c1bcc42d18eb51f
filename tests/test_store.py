"""
Unit tests for RiakDocStore over the in-memory fake client.

Tests:
- Persist with given and generated ids
- Point lookups, paged and assembled searches
- Streamed bulk operations (find_all, delete_all) and their failure modes
- Schema registration, unsupported sorting, health checks
"""

import pytest
from datetime import date

from conftest import hits
from vertector_riakstore import (
    DocSchema,
    FieldType,
    SchemaField,
    StoreStreamError,
    StoreTimeoutError,
    StoreUnsupportedOperationError,
    StoreValidationError,
)
from vertector_riakstore.client import Bucket
from vertector_riakstore.fields import DataType


BUCKET = Bucket("maps", "sumo")


def seed(store, schema, count, prefix="u"):
    """Persist ``count`` users with ids u0, u1, ... and reset call logs."""
    keys = [f"{prefix}{i}" for i in range(count)]
    for i, key in enumerate(keys):
        store.persist(schema.new_doc({"id": key, "name": f"user {i}", "age": i}))
    store.client.update_calls.clear()
    return keys


@pytest.mark.unit
class TestPersist:
    """Test inserting and updating documents."""

    def test_persist_with_id(self, store, fake_client, users_schema):
        """Test a document with an id is written once under that key."""
        doc = store.persist(users_schema.new_doc({"id": "ann", "name": "Ann", "age": 31}))

        assert [key for key, _ in fake_client.update_calls] == ["ann"]
        assert doc.get_field("id") == "ann"
        assert doc.get_field("age") == 31

    def test_persist_generates_id(self, store, fake_client, users_schema):
        """Test a key-less create followed by a write carrying the new id."""
        doc = store.persist(users_schema.new_doc({"name": "Ann"}))

        assert [key for key, _ in fake_client.update_calls] == [None, "gen1"]
        assert doc.get_field("id") == "gen1"

        stored = fake_client.maps[(BUCKET, "gen1")]
        assert stored.get("id", DataType.REGISTER).value == "gen1"
        assert stored.get("name", DataType.REGISTER).value == "Ann"

    def test_persist_returns_typed_values(self, store, users_schema):
        """Test the returned document has domain types, not stored text."""
        doc = store.persist(users_schema.new_doc({
            "id": "ann",
            "joined": date(2023, 5, 1),
            "active": True,
        }))

        assert doc.get_field("joined") == date(2023, 5, 1)
        assert doc.get_field("active") is True
        assert doc.get_field("email") is None

    def test_persist_integer_id(self, store, fake_client, people_schema):
        """Test a non-string id is stored as text and returned typed."""
        doc = store.persist(people_schema.new_doc({"pid": 7, "name": "Cy"}))

        assert fake_client.update_calls[0][0] == "7"
        assert doc.get_field("pid") == 7

    def test_generated_integer_id_fails_decode(self, store, people_schema):
        """Test a generated key that is not an integer cannot be woken up."""
        from vertector_riakstore import StoreDecodeError

        with pytest.raises(StoreDecodeError):
            store.persist(people_schema.new_doc({"name": "Cy"}))

    def test_persist_unknown_schema(self, store):
        """Test persisting a document of an unregistered schema."""
        from vertector_riakstore import Document

        with pytest.raises(StoreValidationError):
            store.persist(Document("ghosts", {"id": "x"}))

    def test_persist_empty_id_rejected(self, store, fake_client, users_schema):
        """Test an empty id is refused instead of hitting the key-less endpoint."""
        with pytest.raises(StoreValidationError) as exc_info:
            store.persist(users_schema.new_doc({"id": "", "name": "Ann"}))

        assert exc_info.value.field == "id"
        assert fake_client.update_calls == []

    def test_persist_then_fetch(self, store, users_schema):
        """Test a persisted document can be read back by id."""
        original = users_schema.new_doc({
            "id": "ann",
            "name": "Ann",
            "tags": ["a", "b"],
            "address": {"city": "Lisbon", "zip": "1100"},
        })
        store.persist(original)

        assert store.find_by("users", [("id", "ann")]) == [original]


@pytest.mark.unit
class TestFindBy:
    """Test queries, point lookups and pagination."""

    def test_point_lookup_skips_search(self, store, fake_client, users_schema):
        """Test an id-only condition fetches one key and never searches."""
        seed(store, users_schema, 2)
        fake_client.fetch_calls.clear()

        docs = store.find_by("users", [("id", "u1")])

        assert fake_client.search_calls == []
        assert fake_client.fetch_calls == ["u1"]
        assert [d.get_field("id") for d in docs] == ["u1"]

    def test_point_lookup_missing(self, store, fake_client):
        """Test a point lookup of a missing key returns no documents."""
        assert store.find_by("users", [("id", "nope")]) == []
        assert fake_client.search_calls == []

    def test_point_lookup_tuple_shorthand(self, store, fake_client, users_schema):
        """Test a bare id tuple is also a point lookup."""
        seed(store, users_schema, 1)
        assert len(store.find_by("users", ("id", "==", "u0"))) == 1
        assert fake_client.search_calls == []

    def test_assembles_all_matches(self, store, fake_client, users_schema):
        """Test a second search fetches the matches the first page missed."""
        keys = seed(store, users_schema, 150)
        fake_client.search_results = [hits(150, keys[:10]), hits(150, keys[10:])]

        docs = store.find_by("users", [("age", ">=", 0)])

        query = "(age_register:[0 TO *])"
        assert fake_client.search_calls == [
            ("sumo_index", query, 0, 0),
            ("sumo_index", query, 140, 10),
        ]
        assert [d.get_field("id") for d in docs] == keys
        assert len({d.get_field("id") for d in docs}) == 150

    def test_single_search_when_page_is_complete(self, store, fake_client, users_schema):
        """Test no second search when the first page holds every match."""
        keys = seed(store, users_schema, 3)
        fake_client.search_results = [hits(3, keys)]

        docs = store.find_by("users", [("name", "like", "user%")])

        assert len(fake_client.search_calls) == 1
        assert len(docs) == 3

    def test_explicit_window(self, store, fake_client, users_schema):
        """Test limit/offset issue exactly one windowed search."""
        keys = seed(store, users_schema, 20)
        fake_client.search_results = [hits(20, keys[10:15])]

        docs = store.find_by("users", [("age", ">", 1)], limit=5, offset=10)

        assert fake_client.search_calls == [("sumo_index", "(age_register:{1 TO *})", 5, 10)]
        assert [d.get_field("id") for d in docs] == keys[10:15]

    def test_offset_without_limit(self, store, fake_client, users_schema):
        """Test an offset alone skips into the assembled matches."""
        keys = seed(store, users_schema, 4)
        fake_client.search_results = [hits(4, keys)]

        docs = store.find_by("users", [("age", ">", -1)], offset=2)

        assert [d.get_field("id") for d in docs] == keys[2:]

    def test_missing_keys_skipped(self, store, fake_client, users_schema):
        """Test hits whose document has gone are left out."""
        keys = seed(store, users_schema, 2)
        fake_client.search_results = [hits(3, keys + ["gone"])]

        docs = store.find_by("users", [("name", "not_null")])

        assert [d.get_field("id") for d in docs] == keys

    def test_sort_not_supported(self, store, fake_client):
        """Test sorted searches are rejected before any request."""
        with pytest.raises(StoreUnsupportedOperationError):
            store.find_by("users", [("age", ">", 1)], sort=[("age", "asc")])
        assert fake_client.search_calls == []

    def test_unknown_schema(self, store):
        with pytest.raises(StoreValidationError):
            store.find_by("ghosts", [])


@pytest.mark.unit
class TestFindAll:
    """Test streamed and paged find_all."""

    def test_streams_every_key(self, store, fake_client, users_schema):
        """Test documents of later chunks come first."""
        seed(store, users_schema, 3)
        fake_client.key_chunks = [["u0", "u1"], ["u2"]]

        docs = store.find_all("users")

        assert [d.get_field("id") for d in docs] == ["u2", "u0", "u1"]
        assert fake_client.search_calls == []

    def test_paged_find_all_searches_everything(self, store, fake_client, users_schema):
        """Test limit/offset turn find_all into a match-all search."""
        keys = seed(store, users_schema, 3)
        fake_client.search_results = [hits(3, keys[1:2])]

        docs = store.find_all("users", limit=1, offset=1)

        assert fake_client.search_calls == [("sumo_index", "*:*", 1, 1)]
        assert [d.get_field("id") for d in docs] == ["u1"]

    def test_stream_failure_keeps_partial_docs(self, store, fake_client, users_schema):
        """Test a failed stream raises with the documents fetched so far."""
        seed(store, users_schema, 2)
        fake_client.key_chunks = [["u0", "u1"]]
        fake_client.stream_ending = "error"

        with pytest.raises(StoreStreamError) as exc_info:
            store.find_all("users")

        assert [d.get_field("id") for d in exc_info.value.partial_result] == ["u0", "u1"]
        assert isinstance(exc_info.value.original_error, ConnectionError)

    def test_sort_not_supported(self, store):
        with pytest.raises(StoreUnsupportedOperationError):
            store.find_all("users", sort="age")


@pytest.mark.unit
class TestDelete:
    """Test delete_by and delete_all."""

    def test_delete_by_id(self, store, fake_client):
        """Test an id condition deletes the key directly."""
        assert store.delete_by("users", [("id", "k1")]) == 1
        assert fake_client.delete_calls == ["k1"]
        assert fake_client.search_calls == []

    def test_delete_by_query(self, store, fake_client, users_schema):
        """Test every match of a query is deleted and counted."""
        keys = seed(store, users_schema, 12)
        fake_client.search_results = [hits(12, keys[:10]), hits(12, keys[10:])]

        assert store.delete_by("users", [("age", "<", 100)]) == 12
        assert fake_client.delete_calls == keys
        assert fake_client.maps == {}

    def test_delete_all(self, store, fake_client, users_schema):
        """Test every streamed key is deleted."""
        seed(store, users_schema, 3)
        fake_client.key_chunks = [["u0", "u1"], ["u2"]]

        assert store.delete_all("users") == 3
        assert fake_client.delete_calls == ["u0", "u1", "u2"]

    def test_delete_all_empty_bucket(self, store):
        assert store.delete_all("users") == 0

    def test_delete_all_timeout_reports_partial_count(self, store, fake_client):
        """Test a stream that goes quiet raises with the count deleted so far."""
        fake_client.key_chunks = [["a", "b"], ["c"]]
        fake_client.stream_ending = "silent"

        with pytest.raises(StoreTimeoutError) as exc_info:
            store.delete_all("users")

        assert exc_info.value.partial_result == 3
        assert exc_info.value.operation_type == "delete_all"

    def test_delete_all_foreign_message_fails(self, store, fake_client):
        """Test a message for another stream fails the operation."""
        fake_client.key_chunks = [["a"]]
        fake_client.stream_ending = "foreign"

        with pytest.raises(StoreStreamError) as exc_info:
            store.delete_all("users")
        assert exc_info.value.partial_result == 1


@pytest.mark.unit
class TestStoreMisc:
    """Test schema registration, health and lifecycle."""

    def test_create_schema(self, store, fake_client):
        """Test registering a schema makes it usable without any request."""
        books = DocSchema("books", [SchemaField("isbn", id=True), SchemaField("pages", FieldType.INTEGER)])

        store.create_schema(books)

        assert "books" in store.schemas
        assert fake_client.update_calls == []
        assert store.persist(books.new_doc({"isbn": "1", "pages": 3})).get_field("pages") == 3

    def test_health_check(self, store, fake_client):
        """Test health follows the node's ping."""
        assert store.health_check()["status"] == "healthy"

        fake_client.alive = False
        health = store.health_check()
        assert health["status"] == "unhealthy"
        assert health["checks"]["connectivity"]["status"] == "unhealthy"

    def test_metrics_exposed(self, store):
        """Test metrics accessors work on a fresh store."""
        assert store.get_metrics()["total_queries"] == 0
        assert store.export_prometheus_metrics() == ""

    def test_context_manager_closes_client(self, store, fake_client):
        with store:
            pass
        assert fake_client.closed

    def test_tracing_enabled_store_still_works(self, fake_client, users_schema):
        """Test operations run inside spans when tracing is on."""
        from vertector_riakstore import RiakDocStore

        store = RiakDocStore(fake_client, schemas=[users_schema], enable_tracing=True)
        doc = store.persist(users_schema.new_doc({"id": "t1", "name": "Tia"}))

        assert store.tracer is not None
        assert doc.get_field("name") == "Tia"
