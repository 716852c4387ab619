"""Spreadsheet-to-database synchronisation for signup records."""

from .pipeline import BatchOrchestrator, SyncServices, SyncState
from .schema import SIGNUP_SCHEMA, FieldKind, Schema

__all__ = ["BatchOrchestrator", "FieldKind", "SIGNUP_SCHEMA", "Schema", "SyncServices", "SyncState"]
