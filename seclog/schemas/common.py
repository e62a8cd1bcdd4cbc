from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel


class APIError(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    status: Literal["error"] = "error"
    error: APIError


class PipelineStatus(BaseModel):
    watermark: str
    running: bool
    tasks: list[str]
    dead_lettered: int = 0
    polled: int = 0
    enqueued: int = 0
    fetch_errors: int = 0
    enqueue_errors: int = 0
    processed: int = 0
    sanitized: int = 0
    dropped: int = 0
    skipped: int = 0
    retried: int = 0
    placeholders: int = 0
    lifecycle_runs: int = 0
    lifecycle_errors: int = 0
    last_poll_at: Optional[str] = None
    last_lifecycle_at: Optional[str] = None
    last_error: Optional[str] = None


class PipelineStatusResponse(BaseModel):
    status: Literal["ok"] = "ok"
    pipeline: PipelineStatus
