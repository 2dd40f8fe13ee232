from .loader import load_config
from .models import (
    BackupConfig,
    MirrorConfig,
    MirrorTarget,
    StoreConfig,
)

__all__ = [
    "BackupConfig",
    "MirrorConfig",
    "MirrorTarget",
    "StoreConfig",
    "load_config",
]
