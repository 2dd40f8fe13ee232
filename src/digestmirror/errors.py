"""Error types raised by the reconciler and its collaborators."""

from __future__ import annotations

from pathlib import Path


class MirrorError(Exception):
    """Base class for every digestmirror failure."""


class ObjectNotFound(MirrorError):
    """The remote object does not exist."""

    def __init__(self, bucket: str, key: str) -> None:
        self.bucket = bucket
        self.key = key
        super().__init__(f"s3://{bucket}/{key} not found")


class StoreServiceError(MirrorError):
    """Wraps object-store exceptions with context.

    Any StoreServiceError aborts the current pass. ``retryable`` is a hint
    for whoever schedules the next pass; nothing in here retries.
    """

    def __init__(
        self,
        operation: str,
        bucket: str,
        key: str,
        cause: Exception,
        retryable: bool = False,
    ) -> None:
        self.operation = operation
        self.bucket = bucket
        self.key = key
        self.retryable = retryable
        super().__init__(f"{operation} s3://{bucket}/{key} failed: {cause}")
        self.__cause__ = cause


class LocalIOError(MirrorError, OSError):
    """A local filesystem operation failed (read, rename, unlink)."""

    def __init__(self, operation: str, path: Path | str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.path = Path(path)
        msg = f"{operation} {self.path} failed"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)
        self.__cause__ = cause


class BackupExistsError(LocalIOError):
    """Backup destination already exists and the policy forbids replacing it."""

    def __init__(self, path: Path | str) -> None:
        super().__init__("backup", path, FileExistsError(f"{path} already exists"))


class DigestMismatchAfterDownload(MirrorError):
    """Downloaded body does not hash to the digest recorded in its metadata.

    This is a data-integrity anomaly on the remote side (stale or forged
    metadata, or a corrupted body), not an ordinary local/remote divergence.
    """

    def __init__(
        self,
        bucket: str,
        key: str,
        expected: str,
        actual: str,
        path: Path | str | None = None,
    ) -> None:
        self.bucket = bucket
        self.key = key
        self.expected = expected
        self.actual = actual
        self.path = Path(path) if path is not None else None
        msg = (
            f"s3://{bucket}/{key} body digest {actual[:16]}... does not match "
            f"recorded digest {expected[:16]}..."
        )
        if self.path is not None:
            msg += f" (downloaded to {self.path})"
        super().__init__(msg)
