"""Datastore and object storage backends.

base
    Abstract interfaces the core depends on.
datastore
    SQLite implementation of the profile, record and config stores.
object_storage
    Local filesystem bucket served under ``/storage/<bucket>/``.
"""

from creatorgen.storage.base import ConfigStore, GenerationRecordStore, ObjectStorage, ProfileStore
from creatorgen.storage.datastore import SQLiteDatastore
from creatorgen.storage.object_storage import LocalObjectStorage

__all__ = [
    "ConfigStore",
    "GenerationRecordStore",
    "LocalObjectStorage",
    "ObjectStorage",
    "ProfileStore",
    "SQLiteDatastore",
]
