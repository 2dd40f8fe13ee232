"""FileReconciler: one pass of "local file mirrors remote object".

The recorded digest in object metadata is what makes this cheap: when it is
present and matches the local file, a pass costs one HEAD request and one
local hash. Bodies are only downloaded when something disagrees or no digest
has been recorded yet.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from digestmirror.backup import BackupMover, BackupPolicy, allocate_temp_path, discard, promote
from digestmirror.config.models import MirrorTarget
from digestmirror.digest import DEFAULT_CHUNK_SIZE, compute_file_digest
from digestmirror.errors import LocalIOError, ObjectNotFound
from digestmirror.interfaces.store import MetadataUpdater, ObjectHead, ObjectStore
from digestmirror.models import (
    Branch,
    IntegrityAnomaly,
    Outcome,
    ReconcileReport,
    ReconcileState,
)

logger = logging.getLogger(__name__)


class FileReconciler:
    """Reconciles a single local path against a single remote object.

    State is read once per pass (local existence plus the HEAD response) and
    never re-polled. The caller is responsible for not running two passes on
    the same path at the same time.
    """

    def __init__(
        self,
        store: ObjectStore,
        target: MirrorTarget,
        backup_policy: BackupPolicy = BackupPolicy.rotate,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        missing = target.missing_fields()
        if missing:
            raise ValueError(f"Mirror target is missing: {', '.join(missing)}")
        self.store = store
        self.target = target
        self.mover = BackupMover(backup_policy)
        self.chunk_size = chunk_size

    @property
    def local_path(self) -> Path:
        return Path(self.target.local_path)

    @property
    def field(self) -> str:
        return self.target.metadata_field

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def inspect(self) -> ReconcileState:
        """Read both sides without changing either."""
        state, _head = self._snapshot()
        return state

    def reconcile(self) -> ReconcileReport:
        """Run one pass and return what happened.

        Store and filesystem failures propagate (StoreServiceError,
        LocalIOError). A body that does not match its own recorded digest is
        not raised; it is returned as ``Outcome.integrity_anomaly`` so the
        caller can decide, see ``ReconcileReport.raise_for_anomaly``.
        """
        start = time.monotonic()
        state, head = self._snapshot()
        branch = state.branch
        if branch is None:
            raise ObjectNotFound(self.target.bucket, self.target.key)

        logger.info(
            "Reconciling %s with s3://%s/%s (branch: %s)",
            self.local_path, self.target.bucket, self.target.key, branch.value,
        )
        handlers = {
            Branch.compare: self._compare,
            Branch.adopt: self._adopt,
            Branch.fetch: self._fetch,
            Branch.bootstrap: self._bootstrap,
            Branch.publish: self._publish,
        }
        report = handlers[branch](state, head)
        report.duration = time.monotonic() - start
        return report

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def _compare(self, state: ReconcileState, head: ObjectHead | None) -> ReconcileReport:
        remote = state.remote_digest
        local = self._digest(self.local_path)
        if local == remote:
            logger.info("Digests match: %s", local)
            return self._report(Branch.compare, Outcome.in_sync, local_digest=local, remote_digest=remote)

        logger.info("Digests differ (local %s, remote %s); remote is authoritative", local[:16], remote[:16])
        with self._side_download() as temp:
            fetched = self._digest(temp)
            if fetched != remote:
                return self._anomaly(
                    Branch.compare, remote, fetched, path=None, local_digest=local, downloaded=True
                )
            backup = self.mover.backup(self.local_path)
            promote(temp, self.local_path)

        logger.info("Replaced %s with remote object, previous content kept at %s", self.local_path, backup)
        return self._report(
            Branch.compare,
            Outcome.local_replaced,
            local_digest=fetched,
            remote_digest=remote,
            backup_path=backup,
            downloaded=True,
            local_written=True,
        )

    def _adopt(self, state: ReconcileState, head: ObjectHead | None) -> ReconcileReport:
        """Local exists, remote has no digest: neither side is known-good."""
        logger.info("No %r metadata on remote object; comparing bodies", self.field)
        with self._side_download() as temp:
            local = self._digest(self.local_path)
            fetched = self._digest(temp)
            if local == fetched:
                backup = None
            else:
                logger.warning(
                    "Local %s differs from remote body; trusting remote", self.local_path
                )
                backup = self.mover.backup(self.local_path)
                promote(temp, self.local_path)

        uploaded, metadata_updated = self._record_digest(head, fetched)
        if backup is None:
            logger.info("Bodies match; recorded %s baseline %s", self.field, fetched[:16])
            outcome = Outcome.baseline_adopted
        else:
            logger.info("Demoted local copy to %s; recorded %s baseline %s", backup, self.field, fetched[:16])
            outcome = Outcome.local_demoted
        return self._report(
            Branch.adopt,
            outcome,
            local_digest=fetched,
            remote_digest=fetched,
            backup_path=backup,
            downloaded=True,
            local_written=backup is not None,
            uploaded=uploaded,
            metadata_updated=metadata_updated,
        )

    def _fetch(self, state: ReconcileState, head: ObjectHead | None) -> ReconcileReport:
        remote = state.remote_digest
        logger.info("%s does not exist; downloading", self.local_path)
        with self._side_download() as temp:
            fetched = self._digest(temp)
            promote(temp, self.local_path)

        if fetched != remote:
            return self._anomaly(
                Branch.fetch,
                remote,
                fetched,
                path=self.local_path,
                local_digest=fetched,
                downloaded=True,
                local_written=True,
            )
        logger.info("Digest verified after download: %s", fetched[:16])
        return self._report(
            Branch.fetch,
            Outcome.downloaded,
            local_digest=fetched,
            remote_digest=remote,
            downloaded=True,
            local_written=True,
        )

    def _bootstrap(self, state: ReconcileState, head: ObjectHead | None) -> ReconcileReport:
        logger.info("No local file and no %r metadata; downloading to establish a baseline", self.field)
        with self._side_download() as temp:
            fetched = self._digest(temp)
            promote(temp, self.local_path)

        uploaded, metadata_updated = self._record_digest(head, fetched)
        logger.info("Recorded %s baseline %s", self.field, fetched[:16])
        return self._report(
            Branch.bootstrap,
            Outcome.baseline_established,
            local_digest=fetched,
            remote_digest=fetched,
            downloaded=True,
            local_written=True,
            uploaded=uploaded,
            metadata_updated=metadata_updated,
        )

    def _publish(self, state: ReconcileState, head: ObjectHead | None) -> ReconcileReport:
        logger.info("Remote object missing; uploading %s", self.local_path)
        local = self._digest(self.local_path)
        self.store.upload(self.target.bucket, self.target.key, self.local_path, {self.field: local})
        return self._report(
            Branch.publish, Outcome.published, local_digest=local, remote_digest=local, uploaded=True
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _snapshot(self) -> tuple[ReconcileState, ObjectHead | None]:
        try:
            head = self.store.head(self.target.bucket, self.target.key)
        except ObjectNotFound:
            head = None
        state = ReconcileState(
            local_exists=self.local_path.is_file(),
            remote_exists=head is not None,
            remote_digest=head.digest(self.field) if head is not None else None,
        )
        logger.debug("Entry state: %s", state)
        return state, head

    def _digest(self, path: Path) -> str:
        return compute_file_digest(path, self.chunk_size)

    @contextmanager
    def _side_download(self) -> Iterator[Path]:
        """Download the remote body next to the local path.

        The temp file is removed on exit unless it was promoted. If the block
        is already failing, a cleanup failure is logged and the original
        error propagates.
        """
        temp = allocate_temp_path(self.local_path)
        try:
            self.store.download(self.target.bucket, self.target.key, temp)
            yield temp
        except BaseException:
            try:
                discard(temp)
            except LocalIOError:
                logger.warning("Could not remove temp file %s", temp, exc_info=True)
            raise
        discard(temp)

    def _record_digest(self, head: ObjectHead | None, digest: str) -> tuple[bool, bool]:
        """Attach *digest* to the remote object. Returns (uploaded, metadata_updated).

        Uses a metadata-only update when the store supports one, otherwise
        re-uploads the local body, which at this point has that digest. The
        metadata-only update is conditional on the ETag seen at snapshot time,
        so it fails instead of stamping *digest* onto a body replaced since.
        """
        metadata = dict(head.metadata) if head is not None else {}
        metadata[self.field] = digest
        if isinstance(self.store, MetadataUpdater):
            etag = head.etag if head is not None else None
            self.store.update_metadata(self.target.bucket, self.target.key, metadata, if_match=etag)
            return False, True
        self.store.upload(self.target.bucket, self.target.key, self.local_path, metadata)
        return True, False

    def _anomaly(
        self, branch: Branch, expected: str, actual: str, path: Path | None, **fields
    ) -> ReconcileReport:
        logger.error(
            "Integrity anomaly on s3://%s/%s: body hashes to %s but metadata records %s; "
            "leaving metadata untouched",
            self.target.bucket, self.target.key, actual, expected,
        )
        return self._report(
            branch,
            Outcome.integrity_anomaly,
            remote_digest=expected,
            anomaly=IntegrityAnomaly(expected=expected, actual=actual, path=path),
            **fields,
        )

    def _report(self, branch: Branch, outcome: Outcome, **fields) -> ReconcileReport:
        return ReconcileReport(
            bucket=self.target.bucket,
            key=self.target.key,
            local_path=self.local_path,
            branch=branch,
            outcome=outcome,
            **fields,
        )
