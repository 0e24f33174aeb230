from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class LocationKind(str, Enum):
    NONE = "none"
    CACHE_PATH = "cache-path"
    PERSISTENT_PATH = "persistent-path"
    MEDIA_ASSET_ID = "media-asset-id"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class ExportState(str, Enum):
    IDLE = "idle"
    CONVERTING = "converting"
    WRITING_PRIMARY = "writing-primary"
    PLATFORM_BRANCH = "platform-branch"
    MEDIA_ASSET_ATTEMPT = "media-asset-attempt"
    SHARE_DIRECT = "share-direct"
    WRITE_FALLBACK_LOCATION = "write-fallback-location"
    SHARE_FALLBACK_FILE = "share-fallback-file"
    SHARE_CONTENT_ONLY = "share-content-only"
    PROMPT_USER = "prompt-user"
    DELIVERED = "delivered"
    FAILED_TERMINAL = "failed-terminal"


class FailureReason(str, Enum):
    ENCODE_EMPTY = "encode-empty"
    WRITE_DENIED = "write-denied"
    ALL_STRATEGIES_EXHAUSTED = "all-strategies-exhausted"
    USER_ABANDONED = "user-abandoned"


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    FAIL = "fail"


class Location(BaseModel):
    kind: LocationKind = LocationKind.NONE
    value: Optional[str] = None


class ExportArtifact(BaseModel):
    name: str
    content: str
    location: Location = Field(default_factory=Location)
    status: DeliveryStatus = DeliveryStatus.PENDING
    share_id: Optional[str] = None


class AttemptEntry(BaseModel):
    strategy: str
    outcome: AttemptOutcome
    detail: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.strategy}:{self.outcome.value}"


class ExportReport(BaseModel):
    state: ExportState
    reason: Optional[FailureReason] = None
    message: str
    artifact: Optional[ExportArtifact] = None
    attempts: List[AttemptEntry] = Field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return self.state is ExportState.DELIVERED


class FileInfo(BaseModel):
    exists: bool
    size: int = 0


class FileHandle(BaseModel):
    uri: str
    name: str


class DecodeResponse(BaseModel):
    file_name: str
    headers: List[str]
    rows: int = 0
    preview: List[Dict[str, str]] = Field(default_factory=list)


class ComputeResponse(BaseModel):
    file_name: str
    rows_sent: int
    results: int
    share_id: Optional[str] = None
    export: ExportReport


class HealthResponse(BaseModel):
    ok: bool = True
