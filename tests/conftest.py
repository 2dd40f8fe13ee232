"""Shared test fixtures for digestmirror."""

from __future__ import annotations

from pathlib import Path

import pytest

from digestmirror.config.models import MirrorConfig, MirrorTarget
from digestmirror.digest import compute_digest
from digestmirror.errors import ObjectNotFound, StoreServiceError
from digestmirror.interfaces.store import ObjectHead


class FakeObjectStore:
    """In-memory ObjectStore. Records every call so tests can assert on traffic."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], tuple[bytes, dict[str, str]]] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.fail_on: set[str] = set()

    def put(self, bucket: str, key: str, body: bytes, metadata: dict[str, str] | None = None) -> None:
        self.objects[(bucket, key)] = (body, dict(metadata or {}))

    def body(self, bucket: str, key: str) -> bytes:
        return self.objects[(bucket, key)][0]

    def metadata(self, bucket: str, key: str) -> dict[str, str]:
        return self.objects[(bucket, key)][1]

    def etag(self, bucket: str, key: str) -> str:
        return f'"{compute_digest(self.body(bucket, key))[:32]}"'

    def mutating_calls(self) -> list[str]:
        return [op for op, _, _ in self.calls if op in {"upload", "update_metadata"}]

    def _record(self, op: str, bucket: str, key: str) -> None:
        self.calls.append((op, bucket, key))
        if op in self.fail_on:
            raise StoreServiceError(op, bucket, key, RuntimeError("injected failure"), retryable=True)

    def head(self, bucket: str, key: str) -> ObjectHead:
        self._record("head", bucket, key)
        if (bucket, key) not in self.objects:
            raise ObjectNotFound(bucket, key)
        body, metadata = self.objects[(bucket, key)]
        return ObjectHead(
            bucket=bucket, key=key, metadata=dict(metadata), size=len(body), etag=self.etag(bucket, key)
        )

    def download(self, bucket: str, key: str, dest: Path) -> None:
        self._record("download", bucket, key)
        if (bucket, key) not in self.objects:
            raise ObjectNotFound(bucket, key)
        Path(dest).write_bytes(self.objects[(bucket, key)][0])

    def upload(self, bucket: str, key: str, source: Path, metadata: dict[str, str]) -> None:
        self._record("upload", bucket, key)
        self.objects[(bucket, key)] = (Path(source).read_bytes(), dict(metadata))


class FakeMetadataStore(FakeObjectStore):
    """Fake store that also supports metadata-only updates."""

    def update_metadata(
        self, bucket: str, key: str, metadata: dict[str, str], if_match: str | None = None
    ) -> None:
        self._record("update_metadata", bucket, key)
        if (bucket, key) not in self.objects:
            raise ObjectNotFound(bucket, key)
        if if_match is not None and if_match != self.etag(bucket, key):
            raise StoreServiceError(
                "update_metadata", bucket, key, RuntimeError("PreconditionFailed"), retryable=True
            )
        body, _ = self.objects[(bucket, key)]
        self.objects[(bucket, key)] = (body, dict(metadata))


BUCKET = "mirror-bucket"
KEY = "configs/app.conf"


def sha(content: bytes) -> str:
    return compute_digest(content)


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def metadata_store():
    return FakeMetadataStore()


@pytest.fixture
def local_file(tmp_path: Path) -> Path:
    """Path of the mirrored file; not created."""
    return tmp_path / "app.conf"


@pytest.fixture
def target(local_file: Path) -> MirrorTarget:
    return MirrorTarget(bucket=BUCKET, key=KEY, local_path=local_file)


@pytest.fixture
def sample_config(target: MirrorTarget) -> MirrorConfig:
    return MirrorConfig(target=target)
