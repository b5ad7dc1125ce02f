"""Marshmallow schemas for ECU Link configuration validation."""

from __future__ import annotations

from typing import Any, Dict

from marshmallow import Schema, fields, post_load, pre_load, validate

from ..const import (
    DEFAULT_CONSOLE_ENABLED,
    DEFAULT_DEBUG_LOGGING,
    DEFAULT_HOST,
    DEFAULT_MAX_RECONNECT_ATTEMPTS,
    DEFAULT_METRICS_ENABLED,
    DEFAULT_METRICS_HOST,
    DEFAULT_METRICS_PORT,
    DEFAULT_PORT,
    DEFAULT_RECONNECT_INTERVAL_MS,
    DEFAULT_STATUS_INTERVAL,
    STATUS_FILE_PATH,
)
from .model import ConnectionConfig, RuntimeConfig

CONNECTION_FIELDS = ("host", "port", "reconnect_interval_ms", "max_reconnect_attempts")


class ConnectionConfigSchema(Schema):
    """Declarative validation for the link endpoint and reconnect policy.

    Loading with ``partial=True`` validates a subset of keys and returns the
    plain dict so it can be merged into an existing config.
    """

    host = fields.Str(load_default=DEFAULT_HOST, validate=validate.Length(min=1))
    port = fields.Int(load_default=DEFAULT_PORT, validate=validate.Range(min=1, max=65535))
    reconnect_interval_ms = fields.Int(
        load_default=DEFAULT_RECONNECT_INTERVAL_MS, validate=validate.Range(min=1)
    )
    max_reconnect_attempts = fields.Int(
        load_default=DEFAULT_MAX_RECONNECT_ATTEMPTS, validate=validate.Range(min=0)
    )

    @pre_load
    def strip_host(self, data: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        if isinstance(data.get("host"), str):
            data = dict(data)
            data["host"] = data["host"].strip()
        return data

    @post_load
    def make_config(self, data: Dict[str, Any], **kwargs: Any) -> ConnectionConfig | Dict[str, Any]:
        if kwargs.get("partial"):
            return data
        return ConnectionConfig(**data)


class RuntimeConfigSchema(ConnectionConfigSchema):
    """Flat schema for the daemon settings; builds ``RuntimeConfig``."""

    debug_logging = fields.Bool(load_default=DEFAULT_DEBUG_LOGGING)
    status_interval = fields.Int(load_default=DEFAULT_STATUS_INTERVAL, validate=validate.Range(min=1))
    status_file = fields.Str(load_default=STATUS_FILE_PATH, validate=validate.Length(min=1))
    metrics_enabled = fields.Bool(load_default=DEFAULT_METRICS_ENABLED)
    metrics_host = fields.Str(load_default=DEFAULT_METRICS_HOST, validate=validate.Length(min=1))
    metrics_port = fields.Int(load_default=DEFAULT_METRICS_PORT, validate=validate.Range(min=0, max=65535))
    console_enabled = fields.Bool(load_default=DEFAULT_CONSOLE_ENABLED)

    @post_load
    def make_config(self, data: Dict[str, Any], **kwargs: Any) -> RuntimeConfig:
        connection = ConnectionConfig(**{name: data.pop(name) for name in CONNECTION_FIELDS})
        return RuntimeConfig(connection=connection, **data)


__all__ = ["CONNECTION_FIELDS", "ConnectionConfigSchema", "RuntimeConfigSchema"]
