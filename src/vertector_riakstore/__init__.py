"""
Vertector Riak Store - Document store over Riak maps and Riak Search.

This package persists schema-described documents as Riak data type maps,
compiles condition trees into Riak Search queries, and streams bucket keys
in chunks for bulk operations.
"""

from vertector_riakstore.store import RiakDocStore

from vertector_riakstore.schema import (
    DocSchema,
    Document,
    FieldType,
    SchemaField,
    SchemaRegistry,
)

from vertector_riakstore.conditions import (
    And,
    Or,
    Not,
    Compare,
    Eq,
    IsNull,
    IsNotNull,
    normalize,
)

from vertector_riakstore.query import build_query

from vertector_riakstore.client import (
    Bucket,
    KeyStream,
    RiakHttpClient,
    SearchResults,
)

from vertector_riakstore.streaming import (
    StreamResult,
    StreamStatus,
    stream_keys,
)

from vertector_riakstore.exceptions import (
    RiakStoreError,
    StoreConnectionError,
    StoreQueryError,
    StoreConfigurationError,
    StoreValidationError,
    StoreDecodeError,
    StoreTimeoutError,
    StoreStreamError,
    StoreUnsupportedOperationError,
)

from vertector_riakstore.config import (
    RiakStoreConfig,
    BucketConfig,
    RequestOptions,
    TimeoutConfig,
    MetricsConfig,
    load_config_from_env,
)

from vertector_riakstore.observability import (
    Tracer,
    EnhancedMetrics,
)

__version__ = "1.0.0"

__all__ = [
    # Core store
    "RiakDocStore",
    "DocSchema",
    "Document",
    "FieldType",
    "SchemaField",
    "SchemaRegistry",
    # Conditions and queries
    "And",
    "Or",
    "Not",
    "Compare",
    "Eq",
    "IsNull",
    "IsNotNull",
    "normalize",
    "build_query",
    # Client and key streaming
    "Bucket",
    "KeyStream",
    "RiakHttpClient",
    "SearchResults",
    "StreamResult",
    "StreamStatus",
    "stream_keys",
    # Errors
    "RiakStoreError",
    "StoreConnectionError",
    "StoreQueryError",
    "StoreConfigurationError",
    "StoreValidationError",
    "StoreDecodeError",
    "StoreTimeoutError",
    "StoreStreamError",
    "StoreUnsupportedOperationError",
    # Configuration
    "RiakStoreConfig",
    "BucketConfig",
    "RequestOptions",
    "TimeoutConfig",
    "MetricsConfig",
    "load_config_from_env",
    # Observability
    "Tracer",
    "EnhancedMetrics",
]
