"""Storage ports and adapters."""

from absence_engine.store.base import (
    TRANSITION_FIELDS,
    AbsenceStore,
    NotificationSink,
    StoreTransaction,
)
from absence_engine.store.memory import InMemoryAbsenceStore, InMemoryNotificationSink
from absence_engine.store.sql import SqlAbsenceStore, SqlNotificationSink, SqlStoreTransaction

__all__ = [
    "TRANSITION_FIELDS",
    "AbsenceStore",
    "NotificationSink",
    "StoreTransaction",
    "InMemoryAbsenceStore",
    "InMemoryNotificationSink",
    "SqlAbsenceStore",
    "SqlNotificationSink",
    "SqlStoreTransaction",
]
