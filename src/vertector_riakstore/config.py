"""
Configuration management for RiakDocStore.

This module provides:
- Pydantic-based configuration validation
- Bucket/search index naming
- Per-operation Riak request options
- Timeouts, including the key stream wait
"""

import os
import logging
from typing import Any
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict

from vertector_riakstore.exceptions import StoreConfigurationError

logger = logging.getLogger(__name__)

# Riak request parameters accepted per operation (sent as query parameters)
GET_OPTION_NAMES = {"r", "pr", "basic_quorum", "notfound_ok", "timeout", "include_context"}
PUT_OPTION_NAMES = {"w", "dw", "pw", "returnbody", "timeout"}
DELETE_OPTION_NAMES = {"rw", "r", "w", "pr", "pw", "dw", "timeout"}


# ============================================================================
# Configuration Models
# ============================================================================

class BucketConfig(BaseModel):
    """Where documents live and which search index covers them."""

    bucket_type: str = Field(
        default="maps",
        description="Bucket type with datatype = map"
    )

    bucket: str = Field(
        default="sumo",
        description="Bucket holding the documents"
    )

    index: str = Field(
        default="sumo_index",
        description="Riak Search index associated with the bucket"
    )

    @field_validator('bucket_type', 'bucket', 'index')
    @classmethod
    def validate_name(cls, v):
        """Names end up in url paths, keep them non-empty and slash-free."""
        if not v or "/" in v:
            raise ValueError(f"Invalid bucket/index name: {v!r}")
        return v


class RequestOptions(BaseModel):
    """Riak request parameters for reads, writes and deletes."""

    get_options: dict[str, Any] = Field(
        default_factory=dict,
        description="Fetch parameters (r, pr, notfound_ok, ...)"
    )

    put_options: dict[str, Any] = Field(
        default_factory=dict,
        description="Update parameters (w, dw, pw, ...)"
    )

    delete_options: dict[str, Any] = Field(
        default_factory=dict,
        description="Delete parameters (rw, w, ...)"
    )

    @model_validator(mode='after')
    def validate_option_names(self):
        """Reject parameters Riak would not understand for the operation."""
        for label, options, allowed in (
            ("get_options", self.get_options, GET_OPTION_NAMES),
            ("put_options", self.put_options, PUT_OPTION_NAMES),
            ("delete_options", self.delete_options, DELETE_OPTION_NAMES),
        ):
            unknown = set(options) - allowed
            if unknown:
                raise ValueError(f"Unknown {label}: {sorted(unknown)}")
        return self


class TimeoutConfig(BaseModel):
    """Timeouts in seconds."""

    request_timeout: float = Field(
        default=10.0,
        ge=0.1,
        le=300.0,
        description="Timeout for single requests"
    )

    connect_timeout: float = Field(
        default=5.0,
        ge=0.1,
        le=60.0,
        description="Connection establishment timeout"
    )

    stream_timeout: float = Field(
        default=30.0,
        gt=0.0,
        le=600.0,
        description="Maximum wait for each key stream message"
    )


class MetricsConfig(BaseModel):
    """Metrics and monitoring configuration."""

    enabled: bool = Field(
        default=True,
        description="Enable metrics collection"
    )

    percentiles: list[float] = Field(
        default=[0.5, 0.95, 0.99],
        description="Latency percentiles to track (p50, p95, p99)"
    )

    @field_validator('percentiles')
    @classmethod
    def validate_percentiles(cls, v):
        """Validate percentile values."""
        for p in v:
            if not 0.0 < p < 1.0:
                raise ValueError(f"Percentile must be between 0.0 and 1.0, got {p}")
        return sorted(v)


class RiakStoreConfig(BaseModel):
    """
    Complete configuration for RiakDocStore.

    Example usage:
        config = RiakStoreConfig(
            url="http://riak1.example.com:8098",
            bucket=BucketConfig(bucket="users", index="users_index"),
            options=RequestOptions(put_options={"w": 2}),
        )

        with RiakDocStore.from_config(config, schemas=[users]) as store:
            store.find_all("users")
    """

    url: str = Field(
        default="http://127.0.0.1:8098",
        description="Riak node HTTP url"
    )

    bucket: BucketConfig = Field(
        default_factory=BucketConfig,
        description="Bucket and search index"
    )

    options: RequestOptions = Field(
        default_factory=RequestOptions,
        description="Per-operation request options"
    )

    timeouts: TimeoutConfig = Field(
        default_factory=TimeoutConfig,
        description="Request and stream timeouts"
    )

    metrics: MetricsConfig = Field(
        default_factory=MetricsConfig,
        description="Metrics configuration"
    )

    enable_tracing: bool = Field(
        default=False,
        description="Wrap store operations in OpenTelemetry spans"
    )

    model_config = ConfigDict(validate_assignment=True)

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        """Validate the node url."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")
        return v.rstrip("/")


def load_config_from_env() -> RiakStoreConfig:
    """
    Load configuration from environment variables.

    Environment variables:
        RIAK_URL: Riak node HTTP url (default: http://127.0.0.1:8098)
        RIAK_BUCKET_TYPE: Bucket type (default: maps)
        RIAK_BUCKET: Bucket name (default: sumo)
        RIAK_SEARCH_INDEX: Search index (default: sumo_index)
        RIAK_REQUEST_TIMEOUT: Request timeout in seconds (default: 10)
        RIAK_STREAM_TIMEOUT: Key stream wait in seconds (default: 30)
        RIAK_ENABLE_TRACING: Enable tracing (true/false)

    Returns:
        Validated configuration

    Raises:
        StoreConfigurationError: If a variable holds an invalid value
    """
    try:
        config = _config_from_env()
    except ValueError as e:
        raise StoreConfigurationError("Invalid Riak store environment configuration", original_error=e)

    logger.debug(f"Loaded Riak store config for {config.url}")
    return config


def _config_from_env() -> RiakStoreConfig:
    return RiakStoreConfig(
        url=os.getenv("RIAK_URL", "http://127.0.0.1:8098"),
        bucket=BucketConfig(
            bucket_type=os.getenv("RIAK_BUCKET_TYPE", "maps"),
            bucket=os.getenv("RIAK_BUCKET", "sumo"),
            index=os.getenv("RIAK_SEARCH_INDEX", "sumo_index"),
        ),
        timeouts=TimeoutConfig(
            request_timeout=float(os.getenv("RIAK_REQUEST_TIMEOUT", "10.0")),
            stream_timeout=float(os.getenv("RIAK_STREAM_TIMEOUT", "30.0")),
        ),
        enable_tracing=os.getenv("RIAK_ENABLE_TRACING", "false").lower() == "true",
    )
