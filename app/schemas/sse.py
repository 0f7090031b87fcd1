"""Pydantic schemas for Server-Sent Events."""

from typing import Literal

from pydantic import BaseModel, Field

NotificationLevel = Literal["info", "success", "warning", "error"]


class JobUpdateRequest(BaseModel):
    """Job progress relayed by the processing worker."""

    job_id: str
    status: str
    user_id: str
    progress: int | None = Field(default=None, ge=0, le=100)
    message: str | None = None


class DatasetUpdateRequest(BaseModel):
    """Dataset status relayed by the processing worker."""

    dataset_id: str
    status: str
    user_id: str
    findings_count: int | None = Field(default=None, ge=0)


class NotificationRequest(BaseModel):
    """User-facing notification relayed by the processing worker."""

    user_id: str
    title: str = Field(max_length=200)
    message: str = Field(max_length=2000)
    type: NotificationLevel = "info"


class RelayResponse(BaseModel):
    success: bool = True
    message: str


class ConnectionStatsResponse(BaseModel):
    total: int
    by_user: dict[str, int]
