"""Object store backends.

Backends are imported lazily so the cloud SDK is only loaded when a store
is actually built.
"""

from __future__ import annotations

import importlib

from digestmirror.config.models import StoreConfig
from digestmirror.interfaces.store import ObjectStore

_PROVIDER_MAP: dict[str, tuple[str, str]] = {
    "s3": ("digestmirror.store.s3", "S3ObjectStore"),
}


def create_store(config: StoreConfig) -> ObjectStore:
    """Build an ObjectStore from the ``store`` section of the config."""
    entry = _PROVIDER_MAP.get(config.provider)
    if entry is None:
        raise ValueError(
            f"Unsupported store provider: {config.provider!r}. "
            f"Supported: {', '.join(_PROVIDER_MAP)}"
        )
    module_path, class_name = entry
    cls = getattr(importlib.import_module(module_path), class_name)
    return cls.from_config(config)


__all__ = ["S3ObjectStore", "create_store"]


def __getattr__(name: str):
    if name == "S3ObjectStore":
        from digestmirror.store.s3 import S3ObjectStore

        return S3ObjectStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
