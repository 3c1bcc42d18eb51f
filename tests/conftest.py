"""
Pytest configuration and fixtures for RiakDocStore tests.

Provides:
- In-memory fake Riak client (maps, search, key streams)
- Sample schemas
- Store fixtures over the fake client and over a live Riak node
"""

import os
import pytest
from typing import Any
from dotenv import load_dotenv

from vertector_riakstore.client import (
    Bucket,
    KeysChunk,
    KeyStream,
    SearchResults,
    StreamDone,
    StreamError,
)
from vertector_riakstore.datatypes import RiakMap
from vertector_riakstore.schema import DocSchema, FieldType, SchemaField

# Load environment variables for tests
load_dotenv()


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (require a Riak node with search)"
    )


# ============================================================================
# Fake Riak client
# ============================================================================

class FakeRiakClient:
    """
    In-memory stand-in for RiakHttpClient.

    Maps live in a dict keyed by (bucket, key). Search answers come from
    ``search_results`` (consumed in order) and every call is recorded.
    ``stream_keys`` replays ``key_chunks`` then ends according to
    ``stream_ending``: "done", "error", "foreign" or "silent".
    """

    def __init__(self):
        self.maps: dict[tuple[Bucket, str], RiakMap] = {}
        self.search_results: list[SearchResults] = []
        self.key_chunks: list[list[str]] = []
        self.stream_ending = "done"

        self.fetch_calls: list[str] = []
        self.update_calls: list[tuple[str | None, dict[str, Any]]] = []
        self.delete_calls: list[str] = []
        self.search_calls: list[tuple[str, str, int, int]] = []
        self.closed = False
        self.alive = True
        self._next_key = 0

    def fetch_map(self, bucket, key, options=None):
        self.fetch_calls.append(key)
        return self.maps.get((bucket, key))

    def update_map(self, bucket, key, rmap, options=None):
        self.update_calls.append((key, rmap.to_op()))
        if key is None:
            self._next_key += 1
            key = f"gen{self._next_key}"
        stored = self.maps.setdefault((bucket, key), RiakMap())
        stored.entries.update(rmap.entries)
        return key

    def delete(self, bucket, key, options=None):
        self.delete_calls.append(key)
        self.maps.pop((bucket, key), None)

    def search(self, index, query, limit=0, offset=0):
        self.search_calls.append((index, query, limit, offset))
        if self.search_results:
            return self.search_results.pop(0)
        return SearchResults(total=0)

    def stream_keys(self, bucket):
        stream = KeyStream(maxsize=0)
        for keys in self.key_chunks:
            stream.put(KeysChunk(stream.ref, list(keys)))
        if self.stream_ending == "done":
            stream.put(StreamDone(stream.ref))
        elif self.stream_ending == "error":
            stream.put(StreamError(stream.ref, ConnectionError("socket closed")))
        elif self.stream_ending == "foreign":
            stream.put(StreamDone(stream.ref + 1000))
        return stream

    def ping(self):
        return self.alive

    def close(self):
        self.closed = True


def hits(total: int, keys: list[str]) -> SearchResults:
    """Search results carrying ``keys`` as hits."""
    return SearchResults(total=total, docs=[{"_yz_rk": key} for key in keys])


# ============================================================================
# Schemas
# ============================================================================

@pytest.fixture
def users_schema():
    """Schema exercising every declared type."""
    return DocSchema("users", [
        SchemaField("id", FieldType.STRING, id=True),
        SchemaField("name"),
        SchemaField("email"),
        SchemaField("age", FieldType.INTEGER),
        SchemaField("score", FieldType.FLOAT),
        SchemaField("active", FieldType.BOOLEAN),
        SchemaField("joined", FieldType.DATE),
        SchemaField("last_login", FieldType.DATETIME),
        SchemaField("avatar", FieldType.BINARY),
        SchemaField("tags", FieldType.LIST),
        SchemaField("address", FieldType.DOCUMENT, fields=(
            SchemaField("city"),
            SchemaField("zip", stored_as="postcode"),
        )),
    ])


@pytest.fixture
def people_schema():
    """Schema whose id field is not called ``id`` and is stored renamed."""
    return DocSchema("people", [
        SchemaField("pid", FieldType.INTEGER, id=True, stored_as="person_id"),
        SchemaField("name"),
    ])


# ============================================================================
# Store Fixtures
# ============================================================================

@pytest.fixture
def fake_client():
    return FakeRiakClient()


@pytest.fixture
def store(fake_client, users_schema, people_schema):
    """Store over the fake client with short stream timeouts."""
    from vertector_riakstore import RiakDocStore

    return RiakDocStore(
        fake_client,
        schemas=[users_schema, people_schema],
        stream_timeout=0.2,
    )


@pytest.fixture
def riak_store(users_schema):
    """
    Store over a live Riak node.

    Uses RIAK_URL (default http://127.0.0.1:8098); skips when the node is down.
    Deletes every key of the test bucket afterwards.
    """
    from vertector_riakstore import BucketConfig, RiakDocStore, RiakStoreConfig

    config = RiakStoreConfig(
        url=os.getenv("RIAK_URL", "http://127.0.0.1:8098"),
        bucket=BucketConfig(
            bucket_type=os.getenv("RIAK_BUCKET_TYPE", "maps"),
            bucket=os.getenv("RIAK_TEST_BUCKET", "sumo_test"),
            index=os.getenv("RIAK_SEARCH_INDEX", "sumo_index"),
        ),
    )

    with RiakDocStore.from_config(config, schemas=[users_schema]) as store:
        if not store.client.ping():
            pytest.skip(f"Riak not reachable at {config.url}")
        yield store
        store.delete_all("users")
