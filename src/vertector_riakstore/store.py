"""
Riak implementation of a document store.

This module provides RiakDocStore, which persists schema-described documents
as Riak maps and queries them through Riak Search.

Implementation notes:
- Documents are stored as Riak data type maps (registers, nested maps, sets).
- Bulk operations (delete_all, find_all) stream the bucket's keys through the
  ``$bucket`` secondary index in chunks and apply the operation per chunk,
  so the full key set is never held in memory.
- Queries are compiled to Solr syntax and run through Riak Search; only keys
  are taken from the hits, documents are then fetched one by one.
"""

import logging
import time
from contextlib import contextmanager, nullcontext
from datetime import datetime, timezone
from typing import Any, Iterator

from vertector_riakstore.client import Bucket, RiakHttpClient
from vertector_riakstore.codec import doc_to_rmap, rmap_to_doc, sleep, wakeup
from vertector_riakstore.conditions import id_lookup, normalize
from vertector_riakstore.config import BucketConfig, RequestOptions, RiakStoreConfig
from vertector_riakstore.datatypes import to_text
from vertector_riakstore.exceptions import (
    StoreStreamError,
    StoreTimeoutError,
    StoreUnsupportedOperationError,
    StoreValidationError,
)
from vertector_riakstore.logging_utils import PerformanceLogger, log_with_context
from vertector_riakstore.observability import EnhancedMetrics, Tracer
from vertector_riakstore.query import build_query
from vertector_riakstore.schema import DocSchema, Document, SchemaRegistry
from vertector_riakstore.streaming import STREAM_TIMEOUT_SECONDS, StreamStatus, stream_keys

logger = logging.getLogger(__name__)


class RiakDocStore:
    """
    Document store over Riak maps and Riak Search.

    All calls are blocking and run sequentially on one client. The store is
    never modified by a failed call, so callers may retry on the same store.

    Example:
        users = DocSchema("users", [
            SchemaField("id", FieldType.STRING, id=True),
            SchemaField("name"),
            SchemaField("age", FieldType.INTEGER),
        ])

        with RiakDocStore.from_config(load_config_from_env(), schemas=[users]) as store:
            ann = store.persist(users.new_doc({"name": "Ann", "age": 31}))
            adults = store.find_by("users", [("age", ">=", 18)])
    """

    def __init__(
        self,
        client: Any,
        *,
        bucket: BucketConfig | None = None,
        options: RequestOptions | None = None,
        schemas: list[DocSchema] | None = None,
        stream_timeout: float = STREAM_TIMEOUT_SECONDS,
        metrics: EnhancedMetrics | None = None,
        enable_tracing: bool = False,
    ) -> None:
        """
        Initialize the store.

        Args:
            client: Riak client (RiakHttpClient or anything with the same methods)
            bucket: Bucket type, bucket and search index names
            options: Per-operation Riak request options
            schemas: Schemas to register up front
            stream_timeout: Maximum wait for each key stream message in seconds
            metrics: Metrics collector (the client's, if it has one)
            enable_tracing: Wrap operations in OpenTelemetry spans
        """
        bucket = bucket or BucketConfig()
        options = options or RequestOptions()

        self.client = client
        self.bucket = Bucket(bucket.bucket_type, bucket.bucket)
        self.index = bucket.index
        self.get_opts = dict(options.get_options)
        self.put_opts = dict(options.put_options)
        self.del_opts = dict(options.delete_options)
        self.stream_timeout = stream_timeout
        self.schemas = SchemaRegistry(schemas)

        self.metrics = metrics or getattr(client, "metrics", None) or EnhancedMetrics()

        if enable_tracing:
            self.tracer = Tracer(service_name=f"riak_docstore_{bucket.bucket}")
            logger.info("OpenTelemetry tracing enabled")
        else:
            self.tracer = None

    @classmethod
    @contextmanager
    def from_config(
        cls,
        config: RiakStoreConfig,
        *,
        schemas: list[DocSchema] | None = None,
    ) -> Iterator["RiakDocStore"]:
        """
        Create a store with its own HTTP client from a configuration.

        Yields:
            RiakDocStore instance; its client is closed on exit
        """
        metrics = EnhancedMetrics(
            service_name=f"riak_docstore_{config.bucket.bucket}",
            percentiles=config.metrics.percentiles,
        )
        client = RiakHttpClient(
            config.url,
            request_timeout=config.timeouts.request_timeout,
            connect_timeout=config.timeouts.connect_timeout,
            stream_timeout=config.timeouts.stream_timeout,
            metrics=metrics if config.metrics.enabled else None,
        )
        try:
            yield cls(
                client,
                bucket=config.bucket,
                options=config.options,
                schemas=schemas,
                stream_timeout=config.timeouts.stream_timeout,
                metrics=metrics,
                enable_tracing=config.enable_tracing,
            )
        finally:
            client.close()

    # ------------------------------------------------------------------
    # Store API
    # ------------------------------------------------------------------

    def create_schema(self, schema: DocSchema) -> None:
        """
        Register a schema.

        Riak maps need no server-side schema, so nothing is sent to Riak.
        """
        self.schemas.register(schema)
        logger.info(f"Registered schema '{schema.name}'")

    def persist(self, doc: Document) -> Document:
        """
        Insert or update a document.

        A document whose id field is None gets a Riak-generated key: an
        initial key-less write creates the map, then the document is written
        again with the key set in its id field.

        Returns:
            The stored document, id included

        Raises:
            StoreValidationError: If the schema is unknown or the id is empty
            RiakStoreError: If a write fails
        """
        with self._span("persist", schema=doc.schema_name):
            schema = self.schemas.get(doc.schema_name)
            slept = sleep(doc, schema)

            key = slept.get_field(schema.id_field)
            if key is None:
                key = self.client.update_map(self.bucket, None, doc_to_rmap(slept, schema), self.put_opts)
                logger.debug(f"Riak generated key '{key}' for '{schema.name}'")
            else:
                key = to_text(key)
                if not key:
                    raise StoreValidationError("Document id must not be empty", field=schema.id_field, value=key)

            slept = slept.set_field(schema.id_field, key)
            self.client.update_map(self.bucket, key, doc_to_rmap(slept, schema), self.put_opts)
            return wakeup(slept, schema)

    def delete_by(self, schema_name: str, conditions: Any) -> int:
        """
        Delete every document matching ``conditions``.

        Conditions that are exactly ``id == X`` delete key X directly.

        Returns:
            Number of documents deleted
        """
        with self._span("delete_by", schema=schema_name):
            schema = self.schemas.get(schema_name)
            expr = normalize(conditions)

            is_point, key = id_lookup(expr, schema.id_field)
            if is_point:
                self.client.delete(self.bucket, to_text(key), self.del_opts)
                return 1

            query = build_query(expr)
            keys = self.find_keys(query)
            for key in keys:
                self.client.delete(self.bucket, key, self.del_opts)
            log_with_context(logger, "info", f"Deleted {len(keys)} documents by query", schema=schema_name, query=query)
            return len(keys)

    def delete_all(self, schema_name: str) -> int:
        """
        Delete every key in the bucket, streaming keys in chunks.

        Returns:
            Number of keys deleted

        Raises:
            StoreTimeoutError: If the key stream went quiet; ``partial_result``
                is the number deleted so far
            StoreStreamError: If the key stream failed; ``partial_result``
                is the number deleted so far
        """
        def delete_chunk(keys: list[str], count: int) -> int:
            for key in keys:
                self.client.delete(self.bucket, key, self.del_opts)
            return count + len(keys)

        with self._span("delete_all", schema=schema_name):
            with PerformanceLogger("delete_all", logger=logger, schema=schema_name):
                return self._stream(delete_chunk, 0, "delete_all")

    def find_all(
        self,
        schema_name: str,
        sort: Any = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Document]:
        """
        Fetch every document of ``schema_name``.

        Without limit/offset the whole bucket is streamed; documents of later
        chunks come first. With limit/offset this is ``find_by`` with no
        conditions.

        Raises:
            StoreUnsupportedOperationError: If ``sort`` is given
            StoreTimeoutError, StoreStreamError: If the key stream does not
                complete; ``partial_result`` holds the documents fetched so far
        """
        if sort is not None:
            raise StoreUnsupportedOperationError("find_all with sort")

        if limit is not None or offset is not None:
            return self.find_by(schema_name, [], limit=limit, offset=offset)

        schema = self.schemas.get(schema_name)

        def fetch_chunk(keys: list[str], docs: list[Document]) -> list[Document]:
            return self.fetch_docs(schema, keys) + docs

        with self._span("find_all", schema=schema_name):
            with PerformanceLogger("find_all", logger=logger, schema=schema_name):
                return self._stream(fetch_chunk, [], "find_all")

    def find_by(
        self,
        schema_name: str,
        conditions: Any,
        limit: int | None = None,
        offset: int | None = None,
        sort: Any = None,
    ) -> list[Document]:
        """
        Find documents matching ``conditions``.

        Args:
            schema_name: Schema of the documents
            conditions: Condition node, list (implicit AND) or tuple shorthand
            limit: Page size; None together with offset=None returns all matches
            offset: Number of matches to skip
            sort: Not supported; must be None

        Returns:
            Matching documents in search hit order

        Raises:
            StoreUnsupportedOperationError: If ``sort`` is given
            StoreValidationError: If the schema or conditions are invalid
            RiakStoreError: If a search or fetch fails
        """
        if sort is not None:
            raise StoreUnsupportedOperationError("find_by with sort")

        with self._span("find_by", schema=schema_name, limit=limit or 0, offset=offset or 0):
            schema = self.schemas.get(schema_name)
            expr = normalize(conditions)

            # A lone id condition is a point lookup, no search needed
            is_point, key = id_lookup(expr, schema.id_field)
            if is_point:
                doc = self.fetch_doc(schema, to_text(key))
                return [doc] if doc is not None else []

            query = build_query(expr)
            if limit is None and offset is None:
                keys = self.find_keys(query)
            elif limit is None:
                keys = self.find_keys(query)[offset:]
            else:
                keys = self.search_keys(query, limit, offset or 0)[1]

            return self.fetch_docs(schema, keys)

    # ------------------------------------------------------------------
    # Building blocks
    # ------------------------------------------------------------------

    def fetch_doc(self, schema: DocSchema, key: str) -> Document | None:
        """Fetch and decode one document; None if the key does not exist."""
        rmap = self.client.fetch_map(self.bucket, key, self.get_opts)
        if rmap is None:
            return None
        return rmap_to_doc(schema, rmap)

    def fetch_docs(self, schema: DocSchema, keys: list[str]) -> list[Document]:
        """Fetch documents one key at a time, skipping keys that no longer exist."""
        docs = []
        for key in keys:
            doc = self.fetch_doc(schema, key)
            if doc is not None:
                docs.append(doc)
        return docs

    def search_keys(self, query: str, limit: int = 0, offset: int = 0) -> tuple[int, list[str]]:
        """
        One windowed search.

        Returns:
            (total number of matches, keys of this window)
        """
        results = self.client.search(self.index, query, limit, offset)
        return results.total, results.keys

    def find_keys(self, query: str) -> list[str]:
        """
        Keys of all matches, despite the server's default page size.

        A first search with the default window reports the total; if it
        returned fewer keys than that, a second search fetches the rest.
        Writes landing between the two searches can make the result
        inconsistent.
        """
        total, keys = self.search_keys(query, 0, 0)
        if len(keys) < total:
            _, rest = self.search_keys(query, total - len(keys), len(keys))
            keys = keys + rest
        return keys

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def get_metrics(self) -> dict[str, Any]:
        """
        Current request metrics.

        Returns:
            Dictionary with total_queries, total_errors, error_rate,
            avg/min/max latency, per-operation counts and error types
        """
        return self.metrics.get_stats()

    def reset_metrics(self) -> None:
        self.metrics.reset()
        logger.info("Performance metrics reset")

    def export_prometheus_metrics(self) -> str:
        """Request metrics in Prometheus text format."""
        return self.metrics.export_prometheus()

    def health_check(self) -> dict[str, Any]:
        """
        Check that the Riak node answers and the error rate is acceptable.

        Returns:
            Dictionary with status ("healthy" | "degraded" | "unhealthy"),
            timestamp, latency_ms and individual checks
        """
        start_time = time.perf_counter()
        checks = {}
        overall_status = "healthy"

        if self.client.ping():
            checks["connectivity"] = {"status": "healthy", "message": "Riak node answered ping"}
        else:
            checks["connectivity"] = {"status": "unhealthy", "message": "Riak node did not answer ping"}
            overall_status = "unhealthy"

        metrics = self.metrics.get_stats()
        metrics_status = "healthy" if metrics["error_rate"] < 0.05 else "degraded"
        checks["metrics"] = {
            "status": metrics_status,
            "error_rate": metrics["error_rate"],
            "avg_latency_ms": metrics["avg_latency_ms"],
        }
        if metrics_status == "degraded" and overall_status == "healthy":
            overall_status = "degraded"

        return {
            "status": overall_status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "latency_ms": (time.perf_counter() - start_time) * 1000,
            "checks": checks,
            "bucket": self.bucket.name,
            "index": self.index,
        }

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "RiakDocStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _stream(self, reducer, acc, operation: str):
        result = stream_keys(self.client, self.bucket, reducer, acc, timeout=self.stream_timeout)
        if result.status is StreamStatus.TIMED_OUT:
            raise StoreTimeoutError(
                "Key stream timed out",
                timeout_seconds=self.stream_timeout,
                operation_type=operation,
                partial_result=result.acc
            )
        if result.status is StreamStatus.FAILED:
            raise StoreStreamError(
                f"Key stream failed during {operation}",
                original_error=result.error,
                partial_result=result.acc
            )
        return result.acc

    def _span(self, name: str, **attributes: Any):
        if self.tracer is None:
            return nullcontext()
        return self.tracer.span(f"riak.{name}", attributes=attributes)
