"""Pydantic models describing a reconciliation pass."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, computed_field

from digestmirror.errors import DigestMismatchAfterDownload


class Branch(str, Enum):
    """Which path a pass takes, decided once from the entry state."""

    compare = "compare"      # local present, digest recorded
    adopt = "adopt"          # local present, object has no digest
    fetch = "fetch"          # local absent, digest recorded
    bootstrap = "bootstrap"  # local absent, object has no digest
    publish = "publish"      # local present, object missing


class Outcome(str, Enum):
    in_sync = "in_sync"
    local_replaced = "local_replaced"
    downloaded = "downloaded"
    baseline_established = "baseline_established"
    baseline_adopted = "baseline_adopted"
    local_demoted = "local_demoted"
    published = "published"
    integrity_anomaly = "integrity_anomaly"


class ReconcileState(BaseModel):
    """Snapshot of both sides taken at the start of a pass."""

    model_config = ConfigDict(frozen=True)

    local_exists: bool
    remote_exists: bool
    remote_digest: str | None = None

    @computed_field
    @property
    def branch(self) -> Branch | None:
        if not self.remote_exists:
            return Branch.publish if self.local_exists else None
        if self.local_exists:
            return Branch.compare if self.remote_digest else Branch.adopt
        return Branch.fetch if self.remote_digest else Branch.bootstrap


class IntegrityAnomaly(BaseModel):
    """Recorded digest and actual body digest disagree."""

    expected: str
    actual: str
    path: Path | None = None


class ReconcileReport(BaseModel):
    bucket: str
    key: str
    local_path: Path
    branch: Branch
    outcome: Outcome
    local_digest: str | None = None
    remote_digest: str | None = None
    backup_path: Path | None = None
    downloaded: bool = False  # remote body was fetched, into a temp file or in place
    local_written: bool = False
    uploaded: bool = False
    metadata_updated: bool = False
    anomaly: IntegrityAnomaly | None = None
    duration: float = 0.0

    @property
    def changed(self) -> bool:
        """True when the pass touched the local file or the remote object."""
        return (
            self.local_written
            or self.uploaded
            or self.metadata_updated
            or self.backup_path is not None
        )

    def raise_for_anomaly(self) -> None:
        """Raise DigestMismatchAfterDownload if this pass found one."""
        if self.anomaly is not None:
            raise DigestMismatchAfterDownload(
                self.bucket,
                self.key,
                expected=self.anomaly.expected,
                actual=self.anomaly.actual,
                path=self.anomaly.path,
            )
