from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Literal

JobStatus = Literal["running", "success", "failed"]


class RunResultOut(BaseModel):
    processed: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class ProcessChatsResponse(BaseModel):
    success: bool
    message: str
    results: RunResultOut = Field(default_factory=RunResultOut)
    duration_ms: int = Field(0, ge=0)
    error: str | None = None


class JobRunOut(BaseModel):
    id: int
    job_name: str
    status: JobStatus
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None
    summary: dict[str, Any] | None = None


class RedisHealthOut(BaseModel):
    status: Literal["ok", "error"]
    redis: bool
    error: str | None = None
