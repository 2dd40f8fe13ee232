"""digestmirror - keep a local file mirroring a remote object by content digest."""

from digestmirror.backup import BackupMover, BackupPolicy
from digestmirror.config import MirrorConfig, MirrorTarget, load_config
from digestmirror.digest import compute_digest, compute_file_digest
from digestmirror.errors import (
    BackupExistsError,
    DigestMismatchAfterDownload,
    LocalIOError,
    MirrorError,
    ObjectNotFound,
    StoreServiceError,
)
from digestmirror.models import Branch, Outcome, ReconcileReport, ReconcileState
from digestmirror.reconciler import FileReconciler

__version__ = "0.1.0"

__all__ = [
    "BackupExistsError",
    "BackupMover",
    "BackupPolicy",
    "Branch",
    "DigestMismatchAfterDownload",
    "FileReconciler",
    "LocalIOError",
    "MirrorConfig",
    "MirrorError",
    "MirrorTarget",
    "ObjectNotFound",
    "Outcome",
    "ReconcileReport",
    "ReconcileState",
    "StoreServiceError",
    "compute_digest",
    "compute_file_digest",
    "load_config",
]
