"""
Riak HTTP client used by the document store.

Wraps the subset of the Riak HTTP API the store needs: map fetch/update,
key delete, Riak Search queries and streamed ``$bucket`` index scans.
Transport and status failures are mapped onto the store exception hierarchy
here, so the store never sees raw httpx errors.
"""

import itertools
import json
import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Iterator
from urllib.parse import quote as urlquote, unquote

import httpx

from vertector_riakstore.datatypes import RiakMap
from vertector_riakstore.exceptions import (
    RiakStoreError,
    StoreConnectionError,
    StoreQueryError,
    StoreTimeoutError,
)

logger = logging.getLogger(__name__)

# Search hit field carrying the Riak key (default Riak Search schema)
KEY_FIELD = "_yz_rk"

# Covering index that lists every key of a bucket
BUCKET_INDEX = "$bucket"

# Key chunks buffered ahead of the consumer before the reader thread blocks
STREAM_QUEUE_SIZE = 16

_PUT_POLL_SECONDS = 0.1

_stream_refs = itertools.count(1)


@dataclass(frozen=True)
class Bucket:
    """A bucket inside a bucket type."""
    type: str
    name: str

    @property
    def path(self) -> str:
        return f"/types/{urlquote(self.type, safe='')}/buckets/{urlquote(self.name, safe='')}"


@dataclass
class SearchResults:
    """One page of Riak Search hits plus the total match count."""
    total: int
    docs: list[dict[str, Any]] = field(default_factory=list)

    @property
    def keys(self) -> list[str]:
        return [doc[KEY_FIELD] for doc in self.docs if KEY_FIELD in doc]


# ============================================================================
# Key stream messages
# ============================================================================

@dataclass(frozen=True)
class KeysChunk:
    ref: int
    keys: list[str]


@dataclass(frozen=True)
class StreamDone:
    ref: int


@dataclass(frozen=True)
class StreamError:
    ref: int
    error: Exception


class KeyStream:
    """
    Bounded channel of key stream messages tagged with a correlation ref.

    A producer (usually a reader thread over the HTTP response) puts
    ``KeysChunk`` messages followed by ``StreamDone`` or ``StreamError``;
    the consumer calls ``receive`` with a per-wait timeout. Once ``maxsize``
    messages are waiting, ``put`` blocks until the consumer catches up or
    the stream is closed.
    """

    def __init__(self, ref: int | None = None, maxsize: int = STREAM_QUEUE_SIZE):
        self.ref = ref if ref is not None else next(_stream_refs)
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()
        self._response: httpx.Response | None = None

    def put(self, message: Any) -> bool:
        """
        Queue ``message``, waiting for room while the stream is open.

        Returns:
            False if the stream was closed before the message was queued
        """
        while not self.closed:
            try:
                self._queue.put(message, timeout=_PUT_POLL_SECONDS)
                return True
            except queue.Full:
                continue
        return False

    def receive(self, timeout: float) -> Any | None:
        """Next message, or ``None`` if nothing arrived within ``timeout`` seconds."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        """Stop the producer; messages still queued are discarded."""
        self._closed.set()
        if self._response is not None:
            self._response.close()

    @classmethod
    def from_messages(cls, messages: list[Any], ref: int | None = None) -> "KeyStream":
        """Stream preloaded with ``messages`` (unbounded, no producer needed)."""
        stream = cls(ref, maxsize=0)
        for message in messages:
            stream.put(message)
        return stream


def iter_multipart(chunks: Iterator[bytes], boundary: str) -> Iterator[bytes]:
    """
    Yield part bodies of a multipart/mixed byte stream as they complete.

    Part headers are dropped; the closing delimiter ends iteration.
    """
    delimiter = b"--" + boundary.encode("ascii")
    buffer = bytearray()
    start = -1
    scan_from = 0
    for chunk in chunks:
        buffer += chunk
        while True:
            if start < 0:
                start = buffer.find(delimiter, scan_from)
                if start < 0:
                    scan_from = max(0, len(buffer) - len(delimiter) + 1)
                    break
                scan_from = start + len(delimiter)

            end = buffer.find(delimiter, scan_from)
            if end < 0:
                # a delimiter may straddle the next chunk
                scan_from = max(start + len(delimiter), len(buffer) - len(delimiter) + 1)
                break

            part = bytes(buffer[start + len(delimiter):end])
            del buffer[:end]
            start = 0
            scan_from = len(delimiter)

            _, _, body = part.partition(b"\r\n\r\n")
            body = body.strip()
            if body:
                yield body
        if start == 0 and buffer.startswith(delimiter + b"--"):
            return


def _boundary(content_type: str) -> str:
    for param in content_type.split(";")[1:]:
        name, _, value = param.strip().partition("=")
        if name.lower() == "boundary":
            return value.strip('"')
    raise ValueError(f"no multipart boundary in {content_type!r}")


# ============================================================================
# Client
# ============================================================================

class RiakHttpClient:
    """
    Blocking Riak HTTP client.

    Example:
        >>> client = RiakHttpClient("http://127.0.0.1:8098")
        >>> bucket = Bucket("maps", "users")
        >>> client.fetch_map(bucket, "user-1")   # None if missing
    """

    def __init__(
        self,
        url: str = "http://127.0.0.1:8098",
        *,
        request_timeout: float = 10.0,
        connect_timeout: float = 5.0,
        stream_timeout: float = 30.0,
        metrics: Any | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            url: Base url of a Riak node's HTTP interface
            request_timeout: Timeout for single requests in seconds
            connect_timeout: Connection establishment timeout in seconds
            stream_timeout: Read timeout for key stream responses in seconds
            metrics: Optional EnhancedMetrics recording per-request latency
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.url = url.rstrip("/")
        self.request_timeout = request_timeout
        self.stream_timeout = stream_timeout
        self.metrics = metrics
        self._http = httpx.Client(
            base_url=self.url,
            timeout=httpx.Timeout(request_timeout, connect=connect_timeout),
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Maps and keys
    # ------------------------------------------------------------------

    def fetch_map(self, bucket: Bucket, key: str, options: dict[str, Any] | None = None) -> RiakMap | None:
        """
        Fetch the map stored under ``key``.

        Returns:
            The map, or None if the key does not exist
        """
        path = f"{bucket.path}/datatypes/{urlquote(key, safe='')}"
        response = self._request("fetch", "GET", path, params=options, allow_not_found=True)
        if response.status_code == 404:
            return None
        return RiakMap.from_json(response.json().get("value", {}))

    def update_map(
        self,
        bucket: Bucket,
        key: str | None,
        rmap: RiakMap,
        options: dict[str, Any] | None = None,
    ) -> str:
        """
        Apply ``rmap`` as a map update.

        With ``key=None`` Riak generates the key.

        Returns:
            The key the map was written under
        """
        path = f"{bucket.path}/datatypes"
        if key is not None:
            path = f"{path}/{urlquote(key, safe='')}"

        response = self._request("update", "POST", path, params=options, json_body=rmap.to_op())
        if key is not None:
            return key
        return self._generated_key(response, path)

    def delete(self, bucket: Bucket, key: str, options: dict[str, Any] | None = None) -> None:
        """Delete ``key``; deleting a missing key is not an error."""
        path = f"{bucket.path}/keys/{urlquote(key, safe='')}"
        self._request("delete", "DELETE", path, params=options, allow_not_found=True)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, index: str, query: str, limit: int = 0, offset: int = 0) -> SearchResults:
        """
        Run a Riak Search query.

        ``limit=0`` and ``offset=0`` leave the window to the server default
        page size; otherwise ``rows``/``start`` are sent.
        """
        params: dict[str, Any] = {"wt": "json", "q": query}
        if limit or offset:
            params["start"] = offset
            params["rows"] = limit

        path = f"/search/query/{urlquote(index, safe='')}"
        response = self._request("search", "GET", path, params=params, query=query)
        body = response.json().get("response", {})
        return SearchResults(total=int(body.get("numFound", 0)), docs=list(body.get("docs", [])))

    # ------------------------------------------------------------------
    # Key streaming
    # ------------------------------------------------------------------

    def stream_keys(self, bucket: Bucket) -> KeyStream:
        """
        Start a streamed ``$bucket`` index scan.

        Returns immediately; a daemon thread feeds the returned stream.
        """
        stream = KeyStream()
        path = f"{bucket.path}/index/{BUCKET_INDEX}/_"
        reader = threading.Thread(
            target=self._pump_keys,
            args=(stream, path),
            name=f"riak-keys-{stream.ref}",
            daemon=True,
        )
        reader.start()
        logger.debug(f"Started key stream {stream.ref} on {bucket.path}")
        return stream

    def _pump_keys(self, stream: KeyStream, path: str) -> None:
        start_time = time.perf_counter()
        timeout = httpx.Timeout(self.request_timeout, read=self.stream_timeout)
        try:
            with self._http.stream("GET", path, params={"stream": "true"}, timeout=timeout) as response:
                stream._response = response
                if response.status_code >= 400:
                    response.read()
                    raise StoreQueryError("Key stream request failed", query=path, status_code=response.status_code)

                boundary = _boundary(response.headers.get("content-type", ""))
                for body in iter_multipart(response.iter_bytes(), boundary):
                    keys = json.loads(body).get("keys")
                    if keys and not stream.put(KeysChunk(stream.ref, list(keys))):
                        return

            stream.put(StreamDone(stream.ref))
            self._record("stream_keys", start_time, success=True)
        except httpx.ReadTimeout:
            # Silence: the consumer's own wait runs out and reports the timeout
            self._record("stream_keys", start_time, success=False, error_type="Timeout")
            logger.debug(f"Key stream {stream.ref} went quiet for {self.stream_timeout}s")
        except Exception as e:
            if stream.closed:
                return
            self._record("stream_keys", start_time, success=False, error_type=type(e).__name__)
            stream.put(StreamError(stream.ref, e))

    # ------------------------------------------------------------------
    # Misc
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """True if the node answers ``GET /ping``."""
        try:
            self._request("ping", "GET", "/ping")
        except RiakStoreError:
            return False
        return True

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "RiakHttpClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        query: str | None = None,
        allow_not_found: bool = False,
    ) -> httpx.Response:
        """
        Send one request with error mapping and metrics.

        Raises:
            StoreConnectionError: If the node cannot be reached
            StoreTimeoutError: If the request times out
            StoreQueryError: If Riak answers with an error status
            RiakStoreError: For any other transport failure
        """
        start_time = time.perf_counter()
        try:
            response = self._http.request(method, path, params=params, json=json_body)
        except httpx.TimeoutException as e:
            self._record(operation, start_time, success=False, error_type="Timeout")
            raise StoreTimeoutError(
                "Riak request timed out",
                original_error=e,
                timeout_seconds=self.request_timeout,
                operation_type=operation
            )
        except httpx.ConnectError as e:
            self._record(operation, start_time, success=False, error_type="ConnectError")
            raise StoreConnectionError(f"Cannot reach Riak at {self.url}", original_error=e)
        except httpx.HTTPError as e:
            self._record(operation, start_time, success=False, error_type="HTTPError")
            raise RiakStoreError(f"Riak {operation} request failed: {e}", original_error=e)

        if response.status_code == 404 and allow_not_found:
            self._record(operation, start_time, success=True)
            return response

        if response.status_code >= 400:
            self._record(operation, start_time, success=False, error_type=f"HTTP{response.status_code}")
            raise StoreQueryError(
                f"Riak {operation} failed: {response.text[:200]}",
                query=query or path,
                status_code=response.status_code
            )

        self._record(operation, start_time, success=True)
        return response

    def _generated_key(self, response: httpx.Response, path: str) -> str:
        location = response.headers.get("location")
        if location:
            return unquote(location.rstrip("/").rsplit("/", 1)[-1])
        try:
            key = response.json().get("key")
        except ValueError:
            key = None
        if not key:
            raise StoreQueryError("Riak did not return a generated key", query=path, status_code=response.status_code)
        return key

    def _record(self, operation: str, start_time: float, success: bool, error_type: str | None = None) -> None:
        if self.metrics is None:
            return
        latency_ms = (time.perf_counter() - start_time) * 1000
        self.metrics.record_query(operation, latency_ms, success=success, error_type=error_type)
