from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from digestmirror.backup import BackupPolicy
from digestmirror.digest import DEFAULT_CHUNK_SIZE


class StoreConfig(BaseModel):
    provider: Literal["s3"] = "s3"
    region: str | None = None
    endpoint_url: str | None = None
    profile: str | None = None
    connect_timeout: int = Field(default=5, gt=0)
    read_timeout: int = Field(default=30, gt=0)
    max_attempts: int = Field(default=3, ge=1)


class MirrorTarget(BaseModel):
    """The single (local file, remote object) pair one pass reconciles."""

    bucket: str = ""
    key: str = ""
    local_path: Path = Path("")
    metadata_field: str = "sha512"

    @field_validator("metadata_field")
    @classmethod
    def validate_metadata_field(cls, v: str) -> str:
        # S3 lowercases user metadata keys on the way back
        v = v.strip().lower()
        if not v:
            raise ValueError("metadata_field cannot be empty")
        return v

    def missing_fields(self) -> list[str]:
        missing = [name for name in ("bucket", "key") if not getattr(self, name)]
        if self.local_path == Path(""):
            missing.append("local_path")
        return missing


class BackupConfig(BaseModel):
    policy: BackupPolicy = BackupPolicy.rotate


class MirrorConfig(BaseModel):
    store: StoreConfig = Field(default_factory=StoreConfig)
    target: MirrorTarget = Field(default_factory=MirrorTarget)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0)
    log_level: Literal["debug", "info", "warn", "error"] = "info"
    log_format: Literal["text", "json"] = "text"
