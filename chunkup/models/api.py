"""Response models for the upload server API."""

from __future__ import annotations

from pydantic import Field

from .base import BaseModel


class InitiateResponse(BaseModel):
    """Upload intent accepted by the server."""

    session_id: str = Field(..., alias="upload_id", description="Upload session ID")


class ChunkReceipt(BaseModel):
    """Server acknowledgement of one stored chunk."""

    progress: float = Field(0.0, description="Server-side progress percentage")
    uploaded_count: int = Field(0, alias="uploaded_chunks", description="Chunks stored so far")
    total_chunks: int = Field(0, alias="total_chunks", description="Chunks expected")


class SessionStatus(BaseModel):
    """Server-reported state of an upload session."""

    session_id: str = Field("", alias="upload_id", description="Upload session ID")
    filename: str | None = Field(None, description="Original file name")
    size: int | None = Field(None, alias="file_size", description="File size in bytes")
    mime_type: str | None = Field(None, alias="mime_type", description="MIME type")
    total_chunks: int = Field(..., alias="total_chunks", description="Authoritative chunk count")
    uploaded_count: int = Field(0, alias="uploaded_chunks", description="Chunks stored")
    missing_chunks: list[int] = Field(
        default_factory=list, alias="missing_chunks", description="Chunks not yet stored"
    )
    progress: float = Field(0.0, description="Server-side progress percentage")
    status: str = Field("", description="Server session state")
    created_at: float | None = Field(None, alias="created_at", description="Creation timestamp")

    @classmethod
    def table_columns(cls) -> list[str]:
        """Return columns for table output."""
        return ["session_id", "filename", "status", "progress", "uploaded_count", "total_chunks"]


class FinalizeResult(BaseModel):
    """Outcome of assembling an uploaded file on the server."""

    message: str = Field("", description="Server message")
    file_path: str = Field("", alias="file_path", description="Stored file location")
    filename: str = Field("", description="Stored file name")
    size: int = Field(0, alias="file_size", description="Stored size in bytes")
    content_hash: str | None = Field(None, alias="md5", description="Server-computed digest")
    is_duplicate: bool = Field(False, alias="is_duplicate", description="Content already stored")


class StorageStats(BaseModel):
    """Aggregate storage usage on the server."""

    total_size: int = 0
    total_size_mb: float = 0.0
    file_count: int = 0


class UploadSnapshot(BaseModel):
    """Progress of one upload as seen by the server."""

    session_id: str = Field(..., alias="upload_id")
    filename: str = ""
    progress: float = 0.0
    status: str = ""


class UploadMetrics(BaseModel):
    """Cumulative upload outcome counters."""

    total_uploads: int = 0
    successful_uploads: int = 0
    success_rate: float = 0.0


class MonitoringStats(BaseModel):
    """Server monitoring snapshot."""

    storage: StorageStats = Field(default_factory=StorageStats)
    active_uploads: int = 0
    upload_details: list[UploadSnapshot] = Field(default_factory=list)
    metrics: UploadMetrics = Field(default_factory=UploadMetrics)


class HealthStatus(BaseModel):
    """Server health report."""

    status: str = "unknown"
    services: dict[str, str] = Field(default_factory=dict)

    @property
    def healthy(self) -> bool:
        return self.status.lower() in ("ok", "healthy")
