"""Interfaces for pluggable object store backends."""

from digestmirror.interfaces.store import MetadataUpdater, ObjectHead, ObjectStore

__all__ = [
    "MetadataUpdater",
    "ObjectHead",
    "ObjectStore",
]
