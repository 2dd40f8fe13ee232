"""Object store interface consumed by the reconciler."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field


class ObjectHead(BaseModel):
    """Result of a HEAD request: metadata without the body."""

    model_config = ConfigDict(frozen=True)

    bucket: str
    key: str
    metadata: dict[str, str] = Field(default_factory=dict)
    size: int | None = None
    etag: str | None = None

    def digest(self, field: str) -> str | None:
        """Recorded digest under *field*, or None. Empty values count as absent."""
        value = self.metadata.get(field.lower()) or self.metadata.get(field)
        return value or None


@runtime_checkable
class ObjectStore(Protocol):
    """Minimal remote object operations: head, download, upload.

    Implementations raise ObjectNotFound for a missing object and
    StoreServiceError for everything else that goes wrong remotely.
    """

    def head(self, bucket: str, key: str) -> ObjectHead: ...

    def download(self, bucket: str, key: str, dest: Path) -> None: ...

    def upload(self, bucket: str, key: str, source: Path, metadata: dict[str, str]) -> None: ...


@runtime_checkable
class MetadataUpdater(Protocol):
    """Stores that can replace an object's metadata without resending the body.

    When *if_match* is given the update must fail with StoreServiceError if
    the object's ETag no longer equals it.
    """

    def update_metadata(
        self,
        bucket: str,
        key: str,
        metadata: dict[str, str],
        if_match: str | None = None,
    ) -> None: ...
