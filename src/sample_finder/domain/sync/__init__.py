"""Sync domain - cloud store and reconciliation of the local library."""

from .reconcile import MigrationResult, iso_timestamp, migrate
from .remote_store import (
    RemoteStore,
    RemoteStoreError,
    RemoteTable,
    SQLRemoteStore,
    open_remote_store,
)

__all__ = [
    "MigrationResult",
    "iso_timestamp",
    "migrate",
    "RemoteStore",
    "RemoteStoreError",
    "RemoteTable",
    "SQLRemoteStore",
    "open_remote_store",
]
