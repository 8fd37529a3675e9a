"""
Capacity Analytics Engine - Integrations

Read access to the roster and schedule records:
- RecordStore: abstract async read interface
- InMemoryRecordStore: process-local store for embedding and tests
- HTTPRecordStore: REST record service client
"""

from .records import (
    Team,
    Member,
    ScheduleEntry,
    SprintDescriptor,
    Schedule,
    RecordStore,
    InMemoryRecordStore,
    HTTPRecordStore
)

__all__ = [
    "Team",
    "Member",
    "ScheduleEntry",
    "SprintDescriptor",
    "Schedule",
    "RecordStore",
    "InMemoryRecordStore",
    "HTTPRecordStore",
]
